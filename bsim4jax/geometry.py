"""Layout-dependent diffusion geometry and series resistance.

Implements the multi-finger source/drain diffusion model of BSIM4: the
effective perimeters and areas of the junctions (geomod) and the
sheet-resistance based source/drain series resistance (rgeomod).

Terminal codes follow the BSIM4 convention: SOURCE = 1, DRAIN = 0.
"""

from typing import Callable, NamedTuple, Optional

from bsim4jax.logging import logger

DRAIN = 0
SOURCE = 1

Warn = Optional[Callable[[str], None]]


class FingerDiffusions(NamedTuple):
    """Number of interior (shared) and end diffusions on each side."""

    nu_int_d: float
    nu_end_d: float
    nu_int_s: float
    nu_end_s: float


class PerimeterArea(NamedTuple):
    ps: float
    pd: float
    as_: float
    ad: float


def _warn(warn: Warn, message: str):
    if warn is None:
        logger.warning(message)
    else:
        warn(message)


def finger_diffusions(nf: float, minsd: int) -> FingerDiffusions:
    """Split ``nf`` fingers into interior and end diffusions.

    An odd finger count has one end diffusion per side. An even count puts
    both end diffusions on the drain when ``minsd`` is 1 (fewest source
    diffusions), otherwise on the source.
    """
    if int(nf) % 2 != 0:
        nu_int = 2.0 * max((nf - 1.0) / 2.0, 0.0)
        return FingerDiffusions(nu_int, 1.0, nu_int, 1.0)
    if minsd == 1:
        # minimize the number of source diffusions
        return FingerDiffusions(2.0 * max(nf / 2.0 - 1.0, 0.0), 2.0, nf, 0.0)
    return FingerDiffusions(nf, 0.0, 2.0 * max(nf / 2.0 - 1.0, 0.0), 2.0)


def perimeter_area(
    nf: float,
    geo: int,
    minsd: int,
    weffcj: float,
    dmcg: float,
    dmci: float,
    dmdg: float,
    warn: Warn = None,
) -> PerimeterArea:
    """Effective source/drain perimeters and areas for layout code ``geo``.

    Codes 0-8 combine isolated, shared and merged diffusions on each side;
    codes 9 and 10 describe even-finger layouts with a fixed diffusion count.
    An unknown code is reported and yields zeros.
    """
    if geo < 9:
        nu = finger_diffusions(nf, minsd)
    else:
        nu = FingerDiffusions(0.0, 0.0, 0.0, 0.0)

    t0 = dmcg + dmci
    p_iso = t0 + t0 + weffcj
    p_sha = dmcg + dmcg
    p_mer = dmdg + dmdg
    a_iso = t0 * weffcj
    a_sha = dmcg * weffcj
    a_mer = dmdg * weffcj

    # Per side: (end perimeter, end area) for each kind of end diffusion
    iso = (p_iso, a_iso)
    sha = (p_sha, a_sha)
    mer = (p_mer, a_mer)
    layouts = {
        0: (iso, iso),
        1: (iso, sha),
        2: (sha, iso),
        3: (sha, sha),
        4: (iso, mer),
        5: (sha, mer),
        6: (mer, iso),
        7: (mer, sha),
        8: (mer, mer),
    }

    if geo in layouts:
        source_end, drain_end = layouts[geo]
        ps = nu.nu_end_s * source_end[0] + nu.nu_int_s * p_sha
        pd = nu.nu_end_d * drain_end[0] + nu.nu_int_d * p_sha
        as_ = nu.nu_end_s * source_end[1] + nu.nu_int_s * a_sha
        ad = nu.nu_end_d * drain_end[1] + nu.nu_int_d * a_sha
        return PerimeterArea(ps, pd, as_, ad)
    if geo == 9:
        return PerimeterArea(
            p_iso + (nf - 1.0) * p_sha, nf * p_sha, a_iso + (nf - 1.0) * a_sha, nf * a_sha
        )
    if geo == 10:
        return PerimeterArea(
            nf * p_sha, p_iso + (nf - 1.0) * p_sha, nf * a_sha, a_iso + (nf - 1.0) * a_sha
        )
    _warn(warn, f"Specified GEO = {geo} not matched")
    return PerimeterArea(0.0, 0.0, 0.0, 0.0)


# rgeomod codes with wide contacts (as opposed to point contacts), per side
_WIDE_CONTACT = {SOURCE: (1, 2, 5), DRAIN: (1, 3, 7)}
_POINT_CONTACT = {SOURCE: (3, 4, 6), DRAIN: (2, 4, 8)}


def _end_resistance(
    shared: bool,
    weffcj: float,
    rsh: float,
    dmcg: float,
    dmci: float,
    nu_end: float,
    rgeo: int,
    terminal: int,
    warn: Warn,
) -> float:
    """End-diffusion resistance for an isolated or shared end."""
    if rgeo in _WIDE_CONTACT[terminal]:
        if nu_end == 0.0:
            return 0.0
        return rsh * dmcg / (weffcj * nu_end)
    if rgeo in _POINT_CONTACT[terminal]:
        if shared:
            if dmcg == 0.0:
                _warn(warn, "DMCG can not be equal to zero")
            if nu_end == 0.0:
                return 0.0
            return rsh * weffcj / (6.0 * nu_end * dmcg)
        if dmcg + dmci == 0.0:
            _warn(warn, "(DMCG + DMCI) can not be equal to zero")
            return 0.0
        if nu_end == 0.0:
            return 0.0
        return rsh * weffcj / (3.0 * nu_end * (dmcg + dmci))
    _warn(warn, f"Specified RGEO = {rgeo} not matched")
    return 0.0


def series_resistance(
    nf: float,
    geo: int,
    rgeo: int,
    minsd: int,
    weffcj: float,
    rsh: float,
    dmcg: float,
    dmci: float,
    dmdg: float,
    terminal: int,
    warn: Warn = None,
) -> float:
    """Sheet-resistance based series resistance of one terminal.

    Combines the interior (shared) and end diffusion resistances in
    parallel. ``terminal`` is SOURCE (1) or DRAIN (0). Returns 0 when there
    is no resistance; a negative result is clamped to 0 with a warning.
    """
    r_int = 0.0
    if geo < 9:
        nu = finger_diffusions(nf, minsd)
        nu_int = nu.nu_int_s if terminal == SOURCE else nu.nu_int_d
        nu_end = nu.nu_end_s if terminal == SOURCE else nu.nu_end_d
        if nu_int != 0.0:
            r_int = rsh * dmcg / (weffcj * nu_int)
    else:
        nu_end = 0.0

    # End diffusion kind per layout code: (source side, drain side)
    ends = {
        0: ("iso", "iso"),
        1: ("iso", "sha"),
        2: ("sha", "iso"),
        3: ("sha", "sha"),
        4: ("iso", "mer"),
        5: ("sha", "mer_nu"),
        6: ("mer", "iso"),
        7: ("mer_nu", "sha"),
        8: ("mer", "mer"),
    }

    if geo in ends:
        kind = ends[geo][0] if terminal == SOURCE else ends[geo][1]
        if kind == "mer":
            r_end = rsh * dmdg / weffcj
        elif kind == "mer_nu":
            r_end = 0.0 if nu_end == 0.0 else rsh * dmdg / (weffcj * nu_end)
        else:
            r_end = _end_resistance(
                kind == "sha", weffcj, rsh, dmcg, dmci, nu_end, rgeo, terminal, warn
            )
    elif geo in (9, 10):
        # all wide contacts; the side with the isolated end carries nf - 2 shared fingers
        end_side = SOURCE if geo == 9 else DRAIN
        if terminal == end_side:
            r_end = 0.5 * rsh * dmcg / weffcj
            r_int = 0.0 if nf == 2.0 else rsh * dmcg / (weffcj * (nf - 2.0))
        else:
            r_end = 0.0
            r_int = rsh * dmcg / (weffcj * nf)
    else:
        _warn(warn, f"Specified GEO = {geo} not matched")
        r_end = 0.0

    if r_int <= 0.0:
        r_tot = r_end
    elif r_end <= 0.0:
        r_tot = r_int
    else:
        r_tot = r_int * r_end / (r_int + r_end)

    if r_tot < 0.0:
        _warn(warn, f"Negative resistance {r_tot:g} returned from RdseffGeo, clamped to zero")
        return 0.0
    if r_tot == 0.0:
        logger.debug("Zero resistance returned from RdseffGeo")
    return r_tot

