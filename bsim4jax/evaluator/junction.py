"""Source/drain junction diodes: DC current, trap-assisted tunneling, charge."""

import jax.numpy as jnp

from bsim4jax.config import EXP_THRESHOLD, MIN_EXP
from bsim4jax.errors import ModelError
from bsim4jax.evaluator.common import dexp


def diode_current(v, limits, diomod: int, bv: float, xjbv: float, gmin: float):
    """Junction current for junction voltage ``v`` (body minus diffusion).

    diomod 0 is the resistance-free diode with breakdown, 1 adds a linear
    forward extension above vjm_fwd, 2 adds both forward and reverse linear
    extensions around the breakdown model.
    """
    isat = limits.sat_current
    nvtm = limits.nvtm
    if isat <= 0.0:
        return gmin * v

    if diomod == 0:
        ev = jnp.exp(v / nvtm)
        t1 = xjbv * jnp.exp(-(bv + v) / nvtm)
        return isat * (ev + limits.xexp_bv - t1 - 1.0) + gmin * v

    if diomod == 1:
        if limits.ivjm_fwd <= 0.0:
            raise ModelError(
                f"Junction forward transition current {limits.ivjm_fwd:g} is not positive "
                f"for saturation current {isat:g}")
        if v / nvtm < -EXP_THRESHOLD:
            return isat * (MIN_EXP - 1.0) + gmin * v
        if v <= limits.vjm_fwd:
            return isat * (jnp.exp(v / nvtm) - 1.0) + gmin * v
        slope = limits.ivjm_fwd / nvtm
        return limits.ivjm_fwd - isat + slope * (v - limits.vjm_fwd) + gmin * v

    if limits.ivjm_fwd <= 0.0 or limits.ivjm_rev <= 0.0:
        raise ModelError(
            f"Junction transition currents ({limits.ivjm_fwd:g}, {limits.ivjm_rev:g}) "
            f"inconsistent with saturation current {isat:g}")
    if v < limits.vjm_rev:
        ev = MIN_EXP + 0.0 * v if v / nvtm < -EXP_THRESHOLD else jnp.exp(v / nvtm)
        t2 = limits.ivjm_rev + limits.slope_rev * (v - limits.vjm_rev)
        return (ev - 1.0) * t2 + gmin * v
    if v <= limits.vjm_fwd:
        ev = MIN_EXP + 0.0 * v if v / nvtm < -EXP_THRESHOLD else jnp.exp(v / nvtm)
        t1 = (bv + v) / nvtm
        t2 = MIN_EXP + 0.0 * v if t1 > EXP_THRESHOLD else jnp.exp(-t1)
        return isat * (ev + limits.xexp_bv - 1.0 - xjbv * t2) + gmin * v
    return limits.ivjm_fwd + limits.slope_fwd * (v - limits.vjm_fwd) + gmin * v


def tunneling_factor(v, vts: float, nvtmr: float):
    """exp-shaped reverse-bias TAT factor; the current is rev_sat * (factor - 1)."""
    if vts - v < vts * 1e-3:
        t0 = -v / nvtmr * 1.0e3
    else:
        t0 = -v / nvtmr * vts / (vts - v)
    return dexp(t0)


def junction_currents(ops, vbs_jct, vbd_jct, gmin: float):
    """Return (cbs, cbd): diode plus trap-assisted tunneling currents."""
    p, mt, it = ops.p, ops.mt, ops.it
    cbs = diode_current(vbs_jct, it.source, p.diomod, p.bvs, p.xjbvs, gmin)
    cbd = diode_current(vbd_jct, it.drain, p.diomod, p.bvd, p.xjbvd, gmin)

    vtm0 = mt.vtm0
    cbs = cbs - (
        it.sjct_rev_sat * (tunneling_factor(vbs_jct, p.vtss, vtm0 * mt.njts_temp) - 1.0)
        + it.ssw_rev_sat * (tunneling_factor(vbs_jct, p.vtssws, vtm0 * mt.njtssw_temp) - 1.0)
        + it.sswg_rev_sat * (tunneling_factor(vbs_jct, p.vtsswgs, vtm0 * mt.njtsswg_temp) - 1.0)
    )
    cbd = cbd - (
        it.djct_rev_sat * (tunneling_factor(vbd_jct, p.vtsd, vtm0 * mt.njtsd_temp) - 1.0)
        + it.dsw_rev_sat * (tunneling_factor(vbd_jct, p.vtsswd, vtm0 * mt.njtsswd_temp) - 1.0)
        + it.dswg_rev_sat * (tunneling_factor(vbd_jct, p.vtsswgd, vtm0 * mt.njtsswgd_temp) - 1.0)
    )
    return cbs, cbd


def depletion_charge(v, components):
    """Junction depletion charge for bottom, sidewall and gate-edge parts.

    Args:
        v: Junction voltage (body minus diffusion)
        components: Iterable of (zero-bias capacitance, built-in potential,
            grading coefficient)

    Returns:
        Stored charge; forward bias uses the linearized capacitance.
    """
    if v < 0.0:
        q = 0.0 * v
        for cz, phi, mj in components:
            if cz <= 0.0:
                continue
            arg = 1.0 - v / phi
            if mj == 0.5:
                sarg = 1.0 / jnp.sqrt(arg)
            else:
                sarg = jnp.exp(-mj * jnp.log(arg))
            q = q + phi * cz * (1.0 - arg * sarg) / (1.0 - mj)
        return q
    t0 = 0.0
    t1 = 0.0
    for cz, phi, mj in components:
        t0 += cz
        t1 += cz * mj / phi
    return v * (t0 + 0.5 * t1 * v)


def junction_charges(ops, vbs_jct, vbd_jct):
    """Return (qbs, qbd) for the source and drain junctions."""
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    nf = ops.inst.nf
    source = (
        (mt.cjs_temp * it.aseff, mt.phi_bs, p.mjs),
        (mt.cjsws_temp * it.pseff, mt.phi_bsws, p.mjsws),
        (mt.cjswgs_temp * s.weffCJ * nf, mt.phi_bswgs, p.mjswgs),
    )
    drain = (
        (mt.cjd_temp * it.adeff, mt.phi_bd, p.mjd),
        (mt.cjswd_temp * it.pdeff, mt.phi_bswd, p.mjswd),
        (mt.cjswgd_temp * s.weffCJ * nf, mt.phi_bswgd, p.mjswgd),
    )
    return depletion_charge(vbs_jct, source), depletion_charge(vbd_jct, drain)
