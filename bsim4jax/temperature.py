"""Size- and temperature-dependent parameter derivation.

derive_size_parameters() evaluates the binning polynomials for one drawn
geometry and folds in the temperature laws; the result is shared through the
model's size cache. derive_instance_temperature() adds the per-device
corrections (layout stress, well proximity, delvto), the junction and
parasitic quantities and, for high-k stacks, toxp from EOT.
"""

import math
from dataclasses import dataclass, field
from types import SimpleNamespace

from bsim4jax.checkmodel import check_model
from bsim4jax.config import (
    DELTA,
    EPS0,
    EXP_THRESHOLD,
    KboQ,
    MAX_EXP,
    MIN_EXP,
    Q_ELECTRON,
    Charge_q,
)
from bsim4jax.errors import GeometryError
from bsim4jax.geometry import DRAIN, SOURCE, perimeter_area, series_resistance
from bsim4jax.logging import logger
from bsim4jax.parameters import BINNED_PARAMETERS, NMOS, binned_name

# Well-proximity coefficients are binned like the regular parameters
WPE_BINNED = ("kvth0we", "k2we", "ku0we")


class SizeDependentParameters(SimpleNamespace):
    """Binned, size-scaled coefficients for one (w, l, nf) geometry.

    Attribute names follow the model-card names (``vth0``, ``k1``, ...)
    plus the derived quantities (``leff``, ``phi``, ``Xdep0``, ...).
    """

    def copy(self) -> "SizeDependentParameters":
        return SizeDependentParameters(**vars(self))


def dexp(a: float) -> float:
    """Exponential continued linearly above EXP_THRESHOLD."""
    if a > EXP_THRESHOLD:
        return MAX_EXP * (1.0 + a - EXP_THRESHOLD)
    if a < -EXP_THRESHOLD:
        return MIN_EXP
    return math.exp(a)


def _theta(x: float) -> float:
    """Short-channel roll-off factor 1 / (2 (cosh(x) - 1)), overflow-safe."""
    if x < EXP_THRESHOLD:
        t1 = math.exp(x)
        t2 = t1 - 1.0
        return t1 / (t2 * t2 + 2.0 * t1 * MIN_EXP)
    return 1.0 / (MAX_EXP - 2.0)


def junction_transition_voltage(nvtm: float, ijth: float, isb: float, xexpbv: float) -> float:
    """Junction voltage where the diode current reaches ``ijth``.

    Solves isb * (exp(v/nvtm) - xexpbv * exp(-v/nvtm) + xexpbv - 1) = ijth
    for v in closed form.
    """
    tb = 1.0 + ijth / isb - xexpbv
    tc = -xexpbv
    td = 0.5 * (tb + math.sqrt(tb * tb - 4.0 * tc))
    return nvtm * math.log(td)


def _effective(value: float, label: str, parameter: str, model) -> float:
    if value <= 0.0:
        raise GeometryError(f"{model.name}: {label} <= 0", parameter, value)
    return value


def derive_size_parameters(model, instance, mt) -> SizeDependentParameters:
    """Evaluate the size-dependent parameters for ``instance``'s geometry.

    Args:
        model: A set-up Bsim4Model.
        instance: InstanceParameters providing w, l and nf.
        mt: ModelTemperature at the current circuit temperature.

    Raises:
        GeometryError: An effective length or width is not positive.
    """
    p = model.params
    warn = model.diagnostics.warn
    nf = instance.nf

    l_new = instance.l + p.xl
    w_new = instance.w / nf + p.xw

    t0 = l_new ** p.lln
    t1 = w_new ** p.lwn
    dl = p.lint + p.ll / t0 + p.lw / t1 + p.lwl / (t0 * t1)
    dlc = p.dlc + p.llc / t0 + p.lwc / t1 + p.lwlc / (t0 * t1)
    t2 = l_new ** p.wln
    t3 = w_new ** p.wwn
    dw = p.wint + p.wl / t2 + p.ww / t3 + p.wwl / (t2 * t3)
    tmp2 = p.wlc / t2 + p.wwc / t3 + p.wwlc / (t2 * t3)
    dwc = p.dwc + tmp2
    dwj = p.dwj + tmp2

    leff = _effective(l_new - 2.0 * dl, "Effective channel length", "leff", model)
    weff = _effective(w_new - 2.0 * dw, "Effective channel width", "weff", model)
    leff_cv = _effective(l_new - 2.0 * dlc, "Effective channel length for C-V", "leffcv", model)
    weff_cv = _effective(w_new - 2.0 * dwc, "Effective channel width for C-V", "weffcv", model)
    weff_cj = _effective(
        w_new - 2.0 * dwj, "Effective channel width for S/D junctions", "weffcj", model)

    if p.binunit == 1:
        inv_l = 1.0e-6 / leff
        inv_w = 1.0e-6 / weff
        inv_lw = 1.0e-12 / (leff * weff)
    else:
        inv_l = 1.0 / leff
        inv_w = 1.0 / weff
        inv_lw = 1.0 / (leff * weff)

    values = {}
    for name in BINNED_PARAMETERS + WPE_BINNED:
        values[name] = (
            getattr(p, name)
            + getattr(p, binned_name("l", name)) * inv_l
            + getattr(p, binned_name("w", name)) * inv_w
            + getattr(p, binned_name("p", name)) * inv_lw
        )
    s = SizeDependentParameters(**values)
    s.nfinger = nf
    s.l_new = l_new
    s.w_new = w_new
    s.dl, s.dlc, s.dw, s.dwc, s.dwj = dl, dlc, dw, dwc, dwj
    s.leff, s.weff, s.leffCV, s.weffCV, s.weffCJ = leff, weff, leff_cv, weff_cv, weff_cj
    s.tfactor = 0.0
    s.VgsteffVth = 0.0

    s.abulkCVfactor = 1.0 + (s.clc / leff_cv) ** s.cle

    t0 = mt.t_ratio - 1.0
    pow_weff_wr = (weff_cj * 1.0e6) ** s.wr * nf
    t1 = t2 = t3 = t4 = 0.0
    s.ucs = s.ucs * mt.t_ratio ** s.ucste
    if p.tempmod == 0:
        s.ua = s.ua + s.ua1 * t0
        s.ub = s.ub + s.ub1 * t0
        s.uc = s.uc + s.uc1 * t0
        s.ud = s.ud + s.ud1 * t0
        s.vsattemp = s.vsat - s.at * t0
        t10 = s.prt * t0
        if p.rdsmod != 0:
            t1 = s.rdw + t10
            t2 = p.rdwmin + t10
            t3 = s.rsw + t10
            t4 = p.rswmin + t10
        s.rds0 = (s.rdsw + t10) * nf / pow_weff_wr
        s.rdswmin = (p.rdswmin + t10) * nf / pow_weff_wr
    else:
        if p.tempmod == 3:
            s.ua = s.ua * mt.t_ratio ** s.ua1
            s.ub = s.ub * mt.t_ratio ** s.ub1
            s.uc = s.uc * mt.t_ratio ** s.uc1
            s.ud = s.ud * mt.t_ratio ** s.ud1
        else:
            s.ua = s.ua * (1.0 + s.ua1 * mt.del_temp)
            s.ub = s.ub * (1.0 + s.ub1 * mt.del_temp)
            s.uc = s.uc * (1.0 + s.uc1 * mt.del_temp)
            s.ud = s.ud * (1.0 + s.ud1 * mt.del_temp)
        s.vsattemp = s.vsat * (1.0 - s.at * mt.del_temp)
        t10 = 1.0 + s.prt * mt.del_temp
        if p.rdsmod != 0:
            t1 = s.rdw * t10
            t2 = p.rdwmin * t10
            t3 = s.rsw * t10
            t4 = p.rswmin * t10
        s.rds0 = s.rdsw * t10 * nf / pow_weff_wr
        s.rdswmin = p.rdswmin * t10 * nf / pow_weff_wr

    clamped = []
    for label, value in (("Rdw", t1), ("Rdwmin", t2), ("Rsw", t3), ("Rswmin", t4)):
        if value < 0.0:
            warn(f"{label} at current temperature is negative; set to 0.", label.lower())
            value = 0.0
        clamped.append(value)
    t1, t2, t3, t4 = clamped
    s.rd0 = t1 / pow_weff_wr
    s.rdwmin = t2 / pow_weff_wr
    s.rs0 = t3 / pow_weff_wr
    s.rswmin = t4 / pow_weff_wr

    if s.u0 > 1.0:
        s.u0 = s.u0 / 1.0e4

    # mobility channel length dependence
    t5 = 1.0 - s.up * math.exp(-leff / s.lp)
    s.u0temp = s.u0 * t5 * mt.t_ratio ** s.ute
    if s.eu < 0.0:
        s.eu = 0.0
        warn("eu has been negative; reset to 0.0.", "eu")
    if s.ucs < 0.0:
        s.ucs = 0.0
        warn("ucs has been negative; reset to 0.0.", "ucs")

    s.vfbsdoff = s.vfbsdoff * (1.0 + s.tvfbsdoff * mt.del_temp)
    s.voff = s.voff * (1.0 + s.tvoff * mt.del_temp)
    s.nfactor = s.nfactor + s.tnfactor * mt.del_temp / mt.tnom
    s.voffcv = s.voffcv * (1.0 + s.tvoffcv * mt.del_temp)
    s.eta0 = s.eta0 + s.teta0 * mt.del_temp / mt.tnom

    # source end velocity limit
    if p.given("vtl") and p.vtl > 0.0:
        s.lc = max(p.lc, 0.0)
        t0 = leff / (s.xn * leff + s.lc)
        s.tfactor = (1.0 - t0) / (1.0 + t0)
    else:
        s.lc = p.lc

    s.cgdo = (p.cgdo + s.cf) * weff_cv
    s.cgso = (p.cgso + s.cf) * weff_cv
    s.cgbo = p.cgbo * leff_cv * nf

    if not p.given("ndep") and p.given("gamma1"):
        t0 = s.gamma1 * mt.coxe
        s.ndep = 3.01248e22 * t0 * t0

    s.phi = mt.vtm0 * math.log(s.ndep / mt.ni) + s.phin + 0.4
    s.sqrtPhi = math.sqrt(s.phi)
    s.phis3 = s.sqrtPhi * s.phi
    s.Xdep0 = math.sqrt(2.0 * mt.epssub / (Charge_q * s.ndep * 1.0e6)) * s.sqrtPhi
    s.sqrtXdep0 = math.sqrt(s.Xdep0)
    if p.mtrlmod == 0:
        s.litl = math.sqrt(3.0 * 3.9 / mt.epsrox * s.xj * mt.toxe)
    else:
        s.litl = math.sqrt(p.epsrsub / mt.epsrox * s.xj * mt.toxe)
    s.vbi = mt.vtm0 * math.log(s.nsd * s.ndep / (mt.ni * mt.ni))
    if p.mtrlmod == 0:
        s.vfbsd = mt.vtm0 * math.log(s.ngate / s.nsd) if s.ngate > 0.0 else 0.0
    else:
        t0 = min(mt.vtm0 * math.log(s.nsd / mt.ni), 0.5 * mt.eg0)
        s.vfbsd = p.phig - (p.easub + 0.5 * mt.eg0 - p.polarity * t0)
    s.cdep0 = math.sqrt(Charge_q * mt.epssub * s.ndep * 1.0e6 / 2.0 / s.phi)

    # gate tunneling
    s.ToxRatio = math.exp(s.ntox * math.log(p.toxref / mt.toxe)) / mt.toxe / mt.toxe
    s.ToxRatioEdge = (
        math.exp(s.ntox * math.log(p.toxref / (mt.toxe * s.poxedge)))
        / mt.toxe / mt.toxe / s.poxedge / s.poxedge
    )
    nmos = p.polarity == NMOS
    aechvb = 4.97232e-7 if nmos else 3.42537e-7
    bechvb = 7.45669e11 if nmos else 1.16645e12
    s.AechvbEdgeS = aechvb * weff * p.dlcig * s.ToxRatioEdge
    s.AechvbEdgeD = aechvb * weff * p.dlcigd * s.ToxRatioEdge
    s.BechvbEdge = -bechvb * mt.toxe * s.poxedge
    s.Aechvb = aechvb * weff * leff * s.ToxRatio
    s.Bechvb = -bechvb * mt.toxe

    s.mstar = 0.5 + math.atan(s.minv) / math.pi
    s.mstarcv = 0.5 + math.atan(s.minvcv) / math.pi
    s.voffcbn = s.voff + p.voffl / leff
    s.voffcbncv = s.voffcv + p.voffcvl / leff
    s.ldeb = math.sqrt(mt.epssub * mt.vtm0 / (Charge_q * s.ndep * 1.0e6)) / 3.0
    s.acde = s.acde * (s.ndep / 2.0e16) ** -0.25

    if p.given("k1") or p.given("k2"):
        if not p.given("k1"):
            warn("k1 should be specified with k2.", "k1")
            s.k1 = 0.53
        if not p.given("k2"):
            warn("k2 should be specified with k1.", "k2")
            s.k2 = -0.0186
        for name in ("nsub", "xt", "vbx", "gamma1", "gamma2"):
            if p.given(name):
                warn(f"{name} is ignored because k1 or k2 is given.", name)
    else:
        if not p.given("vbx"):
            s.vbx = s.phi - 7.7348e-4 * s.ndep * s.xt * s.xt
        if s.vbx > 0.0:
            s.vbx = -s.vbx
        if s.vbm > 0.0:
            s.vbm = -s.vbm
        if not p.given("gamma1"):
            s.gamma1 = 5.753e-12 * math.sqrt(s.ndep) / mt.coxe
        if not p.given("gamma2"):
            s.gamma2 = 5.753e-12 * math.sqrt(s.nsub) / mt.coxe
        t0 = s.gamma1 - s.gamma2
        t1 = math.sqrt(s.phi - s.vbx) - s.sqrtPhi
        t2 = math.sqrt(s.phi * (s.phi - s.vbm)) - s.phi
        s.k2 = t0 * t1 / (2.0 * t2 + s.vbm)
        s.k1 = s.gamma2 - 2.0 * s.k2 * math.sqrt(s.phi - s.vbm)

    if not p.given("vfb"):
        if p.given("vth0"):
            s.vfb = p.polarity * s.vth0 - s.phi - s.k1 * s.sqrtPhi
        elif p.mtrlmod != 0 and p.given("phig") and p.given("nsub"):
            t0 = min(mt.vtm0 * math.log(s.nsub / mt.ni), 0.5 * mt.eg0)
            s.vfb = p.phig - (p.easub + 0.5 * mt.eg0 + p.polarity * t0)
        else:
            s.vfb = -1.0
    if not p.given("vth0"):
        s.vth0 = p.polarity * (s.vfb + s.phi + s.k1 * s.sqrtPhi)

    s.k1ox = s.k1 * mt.toxe / p.toxm

    tmp = math.sqrt(mt.epssub / (mt.epsrox * EPS0) * mt.toxe * s.Xdep0)
    s.theta0vb0 = _theta(s.dsub * leff / tmp)
    s.thetaRout = s.pdibl1 * _theta(s.drout * leff / tmp) + s.pdibl2

    tmp1 = s.vbi - s.phi
    tmp2 = mt.factor1 * s.sqrtXdep0
    t8 = s.dvt0w * _theta(s.dvt1w * weff * leff / tmp2) * tmp1
    t9 = s.dvt0 * _theta(s.dvt1 * leff / tmp2) * tmp1
    t4 = mt.toxe * s.phi / (weff + s.w0)
    t0 = math.sqrt(1.0 + s.lpe0 / leff)
    if p.tempmod in (0, 1):
        t3 = (s.kt1 + s.kt1l / leff) * (mt.t_ratio - 1.0)
    else:
        t3 = -s.kt1 * (mt.t_ratio - 1.0)
    t5 = s.k1ox * (t0 - 1.0) * s.sqrtPhi + t3
    s.vfbzbfactor = -t8 - t9 + s.k3 * t4 + t5 - s.phi - s.k1 * s.sqrtPhi

    # stress effect reference point
    wlod = p.wlod
    if wlod < 0.0:
        warn(f"WLOD = {wlod:g} is less than 0. 0.0 is used", "wlod")
        wlod = 0.0
    w_tmp = w_new + wlod
    t0 = l_new ** p.llodku0
    t1 = w_tmp ** p.wlodku0
    s.ku0 = 1.0 + p.lku0 / t0 + p.wku0 / t1 + p.pku0 / (t0 * t1)
    t0 = l_new ** p.llodvth
    t1 = w_tmp ** p.wlodvth
    kvth0 = 1.0 + p.lkvth0 / t0 + p.wkvth0 / t1 + p.pkvth0 / (t0 * t1)
    s.kvth0 = math.sqrt(kvth0 * kvth0 + DELTA)
    s.ku0temp = s.ku0 * (1.0 + p.tku0 * (mt.t_ratio - 1.0)) + DELTA
    l_drawn = instance.l
    s.inv_od_ref = 1.0 / (p.saref + 0.5 * l_drawn) + 1.0 / (p.sbref + 0.5 * l_drawn)
    s.rho_ref = p.ku0 / s.ku0temp * s.inv_od_ref

    if p.mobmod == 3:
        # n at vbs = vds = 0
        theta0 = _theta(s.dvt1 * leff / (mt.factor1 * s.sqrtXdep0))
        n0 = _swing(s, mt, theta0)
        t0 = n0 * mt.vtm
        t2 = s.voffcbn / t0
        if t2 < -EXP_THRESHOLD:
            t3 = mt.coxe * MIN_EXP / s.cdep0
        elif t2 > EXP_THRESHOLD:
            t3 = mt.coxe * MAX_EXP / s.cdep0
        else:
            t3 = math.exp(t2) * mt.coxe / s.cdep0
        s.VgsteffVth = t0 * math.log(2.0) / (s.mstar + t3 * n0)

    # DITS
    s.dvtp2factor = s.dvtp5 + s.dvtp2 * dexp(-s.dvtp3 * math.log(leff))

    logger.debug(
        f"{model.name}: size parameters for w={instance.w:g} l={instance.l:g} nf={nf:g} "
        f"(leff={leff:g}, weff={weff:g})"
    )
    return s


def _swing(s, mt, theta0: float) -> float:
    """Subthreshold swing factor with small-denominator protection."""
    tmp3 = (s.nfactor * mt.epssub / s.Xdep0 + s.cdsc * theta0 + s.cit) / mt.coxe
    if tmp3 >= -0.5:
        return 1.0 + tmp3
    return (1.0 + 3.0 * tmp3) / (3.0 + 8.0 * tmp3)


@dataclass
class JunctionLimits:
    """Saturation current and diomod transition points of one junction."""

    sat_current: float = 0.0
    nvtm: float = 0.0
    xexp_bv: float = 0.0
    vjm_fwd: float = 0.0
    ivjm_fwd: float = 0.0
    slope_fwd: float = 0.0
    vjm_rev: float = 0.0
    ivjm_rev: float = 0.0
    slope_rev: float = 0.0


@dataclass
class InstanceTemperature:
    """Per-device values derived by the temperature pass."""

    size: SizeDependentParameters
    u0temp: float = 0.0
    vsattemp: float = 0.0
    vth0: float = 0.0
    k2: float = 0.0
    eta0: float = 0.0
    vfb: float = 0.0
    vtfbphi1: float = 0.0
    vtfbphi2: float = 0.0
    vbsc: float = 0.0
    k2ox: float = 0.0
    vfbzb: float = 0.0
    cgso: float = 0.0
    cgdo: float = 0.0
    # body resistance network conductances
    grbdb: float = 0.0
    grbsb: float = 0.0
    grbpb: float = 0.0
    grbps: float = 0.0
    grbpd: float = 0.0
    grgeltd: float = 0.0
    # diffusion geometry
    pseff: float = 0.0
    pdeff: float = 0.0
    aseff: float = 0.0
    adeff: float = 0.0
    source_conductance: float = 0.0
    drain_conductance: float = 0.0
    source: JunctionLimits = field(default_factory=JunctionLimits)
    drain: JunctionLimits = field(default_factory=JunctionLimits)
    # trap-assisted tunneling reverse saturation currents
    sjct_rev_sat: float = 0.0
    djct_rev_sat: float = 0.0
    ssw_rev_sat: float = 0.0
    dsw_rev_sat: float = 0.0
    sswg_rev_sat: float = 0.0
    dswg_rev_sat: float = 0.0
    toxp: float = 0.0
    coxp: float = 0.0


def _junction_limits(
    sat_current: float,
    nvtm: float,
    diomod: int,
    bv: float,
    xjbv: float,
    ijth_fwd: float,
    ijth_rev: float,
    side: str,
    warn,
) -> JunctionLimits:
    limits = JunctionLimits(sat_current=sat_current, nvtm=nvtm)
    if sat_current <= 0.0:
        return limits
    if diomod == 0:
        if bv / nvtm > EXP_THRESHOLD:
            limits.xexp_bv = xjbv * MIN_EXP
        else:
            limits.xexp_bv = xjbv * math.exp(-bv / nvtm)
    elif diomod == 1:
        limits.vjm_fwd = junction_transition_voltage(nvtm, ijth_fwd, sat_current, 0.0)
        limits.ivjm_fwd = sat_current * math.exp(limits.vjm_fwd / nvtm)
    elif diomod == 2:
        if bv / nvtm > EXP_THRESHOLD:
            limits.xexp_bv = xjbv * MIN_EXP
        else:
            limits.xexp_bv = xjbv * math.exp(-bv / nvtm)
        xexp = limits.xexp_bv
        limits.vjm_fwd = junction_transition_voltage(nvtm, ijth_fwd, sat_current, xexp)
        t0 = math.exp(limits.vjm_fwd / nvtm)
        limits.ivjm_fwd = sat_current * (t0 - xexp / t0 + xexp - 1.0)
        limits.slope_fwd = sat_current * (t0 + xexp / t0) / nvtm
        t2 = ijth_rev / sat_current
        if t2 < 1.0:
            t2 = 10.0
            warn(f"ijth{side}rev too small and set to 10 times I{side}bSat.", f"ijth{side}rev")
        limits.vjm_rev = -bv - nvtm * math.log((t2 - 1.0) / xjbv)
        t1 = xjbv * math.exp(-(bv + limits.vjm_rev) / nvtm)
        limits.ivjm_rev = sat_current * (1.0 + t1)
        limits.slope_rev = -sat_current * t1 / nvtm
    else:
        warn(f"Specified dioMod = {diomod} not matched", "diomod")
    return limits


def _body_conductance(r: float, gbmin: float) -> float:
    if r < 1.0e-3:
        return 1.0e3
    return gbmin + 1.0 / r


def _effective_perimeter(given: bool, value: float, permod: int, weff_cj: float, nf: float,
                         fallback: float, label: str, warn) -> float:
    if given:
        if value == 0.0:
            result = 0.0
        elif value < 0.0:
            warn(f"{label} Perimeter is specified as negative, it is set to zero.",
                 "ps" if label == "Source" else "pd")
            result = 0.0
        elif permod == 0:
            result = value
        else:
            result = value - weff_cj * nf
    else:
        result = fallback
    return result


def derive_instance_temperature(
    model,
    instance,
    mt,
    base: SizeDependentParameters,
    source_separate: bool,
    drain_separate: bool,
) -> InstanceTemperature:
    """Apply the per-device corrections to a cached size record.

    ``instance`` must already carry its resolved selectors and defaults.
    The sc/sca/scb/scc and body-resistance values it holds are back-filled
    here, as are any resets made by the parameter check.

    Args:
        model: A set-up Bsim4Model.
        instance: InstanceParameters of the device.
        mt: ModelTemperature at the circuit temperature.
        base: Cached SizeDependentParameters for the device geometry.
        source_separate: The device has a separate source-prime node.
        drain_separate: The device has a separate drain-prime node.

    Raises:
        FatalParameterError: The parameter check found a fatal violation.
    """
    p = model.params
    warn = model.diagnostics.warn
    s = base.copy()
    it = InstanceTemperature(size=s)
    nf = instance.nf
    l_drawn = instance.l
    w_drawn = instance.w / nf

    # layout stress
    if instance.sa > 0.0 and instance.sb > 0.0 and (
            nf == 1.0 or (nf > 1.0 and instance.sd > 0.0)):
        kvsat = p.kvsat
        if kvsat < -1.0:
            warn(f"KVSAT = {p.kvsat:g} is too small; -1.0 is used.", "kvsat")
            kvsat = -1.0
        if kvsat > 1.0:
            warn(f"KVSAT = {p.kvsat:g} is too big; 1.0 is used.", "kvsat")
            kvsat = 1.0
        inv_sa = 0.0
        inv_sb = 0.0
        for i in range(int(math.ceil(nf))):
            inv_sa += 1.0 / nf / (instance.sa + 0.5 * l_drawn + i * (instance.sd + l_drawn))
            inv_sb += 1.0 / nf / (instance.sb + 0.5 * l_drawn + i * (instance.sd + l_drawn))
        inv_od_eff = inv_sa + inv_sb
        rho = p.ku0 / s.ku0temp * inv_od_eff
        it.u0temp = s.u0temp * (1.0 + rho) / (1.0 + s.rho_ref)
        it.vsattemp = s.vsattemp * (1.0 + kvsat * rho) / (1.0 + kvsat * s.rho_ref)
        od_offset = inv_od_eff - s.inv_od_ref
        it.vth0 = s.vth0 + p.kvth0 / s.kvth0 * od_offset
        it.eta0 = s.eta0 + p.steta0 / s.kvth0 ** p.lodeta0 * od_offset
        it.k2 = s.k2 + p.stk2 / s.kvth0 ** p.lodk2 * od_offset
    else:
        it.u0temp = s.u0temp
        it.vth0 = s.vth0
        it.vsattemp = s.vsattemp
        it.eta0 = s.eta0
        it.k2 = s.k2

    # well proximity
    if p.wpemod != 0:
        if not (instance.given("sca") or instance.given("scb") or instance.given("scc")):
            if instance.given("sc") and instance.sc > 0.0:
                sc = instance.sc
                t1 = sc + w_drawn
                t2 = 1.0 / p.scref
                instance.reset("sca", p.scref * p.scref / (sc * t1))
                instance.reset("scb", (
                    (0.1 * sc + 0.01 * p.scref) * math.exp(-10.0 * sc * t2)
                    - (0.1 * t1 + 0.01 * p.scref) * math.exp(-10.0 * t1 * t2)) / w_drawn)
                instance.reset("scc", (
                    (0.05 * sc + 0.0025 * p.scref) * math.exp(-20.0 * sc * t2)
                    - (0.05 * t1 + 0.0025 * p.scref) * math.exp(-20.0 * t1 * t2)) / w_drawn)
            else:
                warn("No WPE as none of SCA, SCB, SCC, SC is given and/or SC not positive.", "sc")
        for name in ("sca", "scb", "scc", "sc"):
            value = getattr(instance, name)
            if value < 0.0:
                warn(f"{name.upper()} = {value:g} is negative. Set to 0.0.", name)
                instance.reset(name, 0.0)
        sceff = instance.sca + p.web * instance.scb + p.wec * instance.scc
        it.vth0 += s.kvth0we * sceff
        it.k2 += s.k2we * sceff
        t3 = 1.0 + s.ku0we * sceff
        if t3 <= 0.0:
            t3 = 0.0
            warn(f"ku0we = {s.ku0we:g} is negatively too high. Negative mobility!", "ku0we")
        it.u0temp *= t3

    it.vth0 += instance.delvto
    it.vfb = s.vfb + p.polarity * instance.delvto

    t3 = p.polarity * it.vth0 - it.vfb - s.phi
    it.vtfbphi1 = max(2.0 * t3 if p.polarity == NMOS else 2.5 * t3, 0.0)
    it.vtfbphi2 = max(4.0 * t3, 0.0)
    if it.k2 < 0.0:
        t0 = 0.5 * s.k1 / it.k2
        it.vbsc = min(max(0.9 * (s.phi - t0 * t0), -30.0), -3.0)
    else:
        it.vbsc = -30.0
    it.vbsc = min(it.vbsc, s.vbm)
    it.k2ox = it.k2 * mt.toxe / p.toxm
    it.vfbzb = s.vfbzbfactor + p.polarity * it.vth0
    it.cgso = s.cgso
    it.cgdo = s.cgdo

    _body_resistance(model, instance, s, it)

    # gate electrode resistance
    grgeltd = p.rshg * (instance.xgw + s.weffCJ / 3.0 / instance.ngcon) / (
        instance.ngcon * nf * (s.l_new - p.xgl))
    if grgeltd > 0.0:
        it.grgeltd = 1.0 / grgeltd
    else:
        it.grgeltd = 1.0e3
        if instance.rgatemod != 0:
            warn("The gate conductance reset to 1.0e3 mho.", "grgeltd")

    geo = perimeter_area(nf, instance.geomod, instance.min, s.weffCJ,
                         model.dmcg_eff, model.dmci_eff, model.dmdg_eff, warn)
    it.pseff = _effective_perimeter(instance.given("ps"), instance.ps, p.permod, s.weffCJ, nf,
                                    geo.ps, "Source", warn)
    if it.pseff < 0.0:
        it.pseff = 0.0
        warn("Pseff is negative, it is set to zero.", "ps")
    it.pdeff = _effective_perimeter(instance.given("pd"), instance.pd, p.permod, s.weffCJ, nf,
                                    geo.pd, "Drain", warn)
    if it.pdeff < 0.0:
        it.pdeff = 0.0
        warn("Pdeff is negative, it is set to zero.", "pd")
    it.aseff = instance.as_ if instance.given("as_") else geo.as_
    if it.aseff < 0.0:
        it.aseff = 0.0
        warn("Aseff is negative, it is set to zero.", "as")
    it.adeff = instance.ad if instance.given("ad") else geo.ad
    if it.adeff < 0.0:
        it.adeff = 0.0
        warn("Adeff is negative, it is set to zero.", "ad")

    it.source_conductance = _series_conductance(
        model, instance, s, source_separate, "nrs", SOURCE, "Source", warn)
    it.drain_conductance = _series_conductance(
        model, instance, s, drain_separate, "nrd", DRAIN, "Drain", warn)

    # junction saturation currents
    nvtms = mt.vtm * p.njs
    if it.aseff <= 0.0 and it.pseff <= 0.0:
        source_sat = 0.0
    else:
        source_sat = (it.aseff * mt.js_temp + it.pseff * mt.jsws_temp
                      + s.weffCJ * nf * mt.jswgs_temp)
    it.source = _junction_limits(source_sat, nvtms, p.diomod, p.bvs, p.xjbvs,
                                 p.ijthsfwd, p.ijthsrev, "s", warn)
    nvtmd = mt.vtm * p.njd
    if it.adeff <= 0.0 and it.pdeff <= 0.0:
        drain_sat = 0.0
    else:
        drain_sat = (it.adeff * mt.jd_temp + it.pdeff * mt.jswd_temp
                     + s.weffCJ * nf * mt.jswgd_temp)
    it.drain = _junction_limits(drain_sat, nvtmd, p.diomod, p.bvd, p.xjbvd,
                                p.ijthdfwd, p.ijthdrev, "d", warn)

    # trap-assisted tunneling, reverse bias
    t7 = mt.eg0 / mt.vtm * (mt.t_ratio - 1.0)
    if p.jtweff < 0.0:
        p.reset("jtweff", 0.0)
        warn("TAT width dependence effect is negative. Jtweff is clamped to zero.", "jtweff")
    t11 = math.sqrt(p.jtweff / s.weffCJ) + 1.0
    t10 = s.weffCJ * nf
    it.sjct_rev_sat = dexp(p.xtss * t7) * it.aseff * p.jtss
    it.djct_rev_sat = dexp(p.xtsd * t7) * it.adeff * p.jtsd
    it.ssw_rev_sat = dexp(p.xtssws * t7) * it.pseff * p.jtssws
    it.dsw_rev_sat = dexp(p.xtsswd * t7) * it.pdeff * p.jtsswd
    it.sswg_rev_sat = dexp(p.xtsswgs * t7) * t10 * t11 * p.jtsswgs
    it.dswg_rev_sat = dexp(p.xtsswgd * t7) * t10 * t11 * p.jtsswgd

    if p.mtrlmod != 0 and p.mtrlcompatmod == 0:
        it.toxp = _toxp_from_eot(p, mt, s, it)
        it.coxp = mt.epsrox * EPS0 / it.toxp
    else:
        it.toxp = p.toxp
        it.coxp = mt.coxp

    check_model(model, mt, instance, it)
    return it


def _body_resistance(model, instance, s, it):
    """Scale the rbodymod 2 network and derive its conductances."""
    p = model.params
    lnl = math.log(s.leff * 1.0e6)
    lnw = math.log(s.weff * 1.0e6)
    lnnf = math.log(instance.nf)

    bodymode = 5
    if not p.given("rbps0") or not p.given("rbpd0"):
        bodymode = 1
    elif ((not p.given("rbsbx0") and not p.given("rbsby0"))
            or (not p.given("rbdbx0") and not p.given("rbdby0"))):
        bodymode = 3

    def scaled(r0, l_coeff, w_coeff, nf_coeff):
        return r0 * math.exp(l_coeff * lnl + w_coeff * lnw + nf_coeff * lnnf)

    def parallel(a, b):
        return a * b / (a + b)

    if instance.rbodymod == 2:
        if bodymode == 5:
            rbsbx = scaled(p.rbsbx0, p.rbsdbxl, p.rbsdbxw, p.rbsdbxnf)
            rbsby = scaled(p.rbsby0, p.rbsdbyl, p.rbsdbyw, p.rbsdbynf)
            instance.reset("rbsb", parallel(rbsbx, rbsby))
            rbdbx = scaled(p.rbdbx0, p.rbsdbxl, p.rbsdbxw, p.rbsdbxnf)
            rbdby = scaled(p.rbdby0, p.rbsdbyl, p.rbsdbyw, p.rbsdbynf)
            instance.reset("rbdb", parallel(rbdbx, rbdby))
        if bodymode in (3, 5):
            instance.reset("rbps", scaled(p.rbps0, p.rbpsl, p.rbpsw, p.rbpsnf))
            instance.reset("rbpd", scaled(p.rbpd0, p.rbpdl, p.rbpdw, p.rbpdnf))
        rbpbx = scaled(p.rbpbx0, p.rbpbxl, p.rbpbxw, p.rbpbxnf)
        rbpby = scaled(p.rbpby0, p.rbpbyl, p.rbpbyw, p.rbpbynf)
        instance.reset("rbpb", parallel(rbpbx, rbpby))

    gbmin = p.gbmin
    if instance.rbodymod == 1 or (instance.rbodymod == 2 and bodymode == 5):
        it.grbdb = _body_conductance(instance.rbdb, gbmin)
        it.grbpb = _body_conductance(instance.rbpb, gbmin)
        it.grbps = _body_conductance(instance.rbps, gbmin)
        it.grbsb = _body_conductance(instance.rbsb, gbmin)
        it.grbpd = _body_conductance(instance.rbpd, gbmin)
    elif instance.rbodymod == 2 and bodymode == 3:
        it.grbdb = it.grbsb = gbmin
        it.grbpb = _body_conductance(instance.rbpb, gbmin)
        it.grbps = _body_conductance(instance.rbps, gbmin)
        it.grbpd = _body_conductance(instance.rbpd, gbmin)
    elif instance.rbodymod == 2 and bodymode == 1:
        it.grbdb = it.grbsb = gbmin
        it.grbps = it.grbpd = 1.0e3
        it.grbpb = _body_conductance(instance.rbpb, gbmin)


def _series_conductance(model, instance, s, separate, squares, terminal, label, warn) -> float:
    if not separate:
        return 0.0
    p = model.params
    if instance.given(squares):
        resistance = p.rsh * getattr(instance, squares)
    elif instance.rgeomod > 0:
        resistance = series_resistance(
            instance.nf, instance.geomod, instance.rgeomod, instance.min, s.weffCJ, p.rsh,
            model.dmcg_eff, model.dmci_eff, model.dmdg_eff, terminal, warn)
    else:
        resistance = 0.0
    if resistance > 0.0:
        return 1.0 / resistance
    warn(f"{label} conductance reset to 1.0e3 mho.", squares)
    return 1.0e3


def _toxp_from_eot(p, mt, s, it) -> float:
    """Physical oxide thickness from EOT at vgs = vddeot, vds = vbs = 0."""
    vtm0eot = KboQ * p.tempeot
    vbieot = vtm0eot * math.log(s.nsd * s.ndep / (mt.ni * mt.ni))
    phieot = vtm0eot * math.log(s.ndep / mt.ni) + s.phin + 0.4
    tmp2 = it.vfb + phieot
    vddeot = p.polarity * p.vddeot
    t0 = p.epsrgate * EPS0
    if 1.0e18 < s.ngate < 1.0e25 and vddeot > tmp2 and t0 != 0.0:
        # poly depletion at vgs = vddeot
        t1 = 1.0e6 * Q_ELECTRON * t0 * s.ngate / (mt.coxe * mt.coxe)
        t8 = vddeot - tmp2
        t4 = math.sqrt(1.0 + 2.0 * t8 / t1)
        t2 = 2.0 * t8 / (t4 + 1.0)
        t3 = 0.5 * t2 * t2 / t1
        t7 = 1.12 - t3 - 0.05
        t6 = math.sqrt(t7 * t7 + 0.224)
        t5 = 1.12 - 0.5 * (t7 + t6)
        vgs_eff = vddeot - t5
    else:
        vgs_eff = vddeot

    v0 = vbieot - phieot
    lt1 = mt.factor1 * s.sqrtXdep0
    theta0 = _theta(s.dvt1 * p.leffeot / lt1)
    delt_vth = s.dvt0 * theta0 * v0
    t2 = s.dvt0w * _theta(s.dvt1w * p.weffeot * p.leffeot / lt1) * v0
    temp_ratio = p.tempeot / mt.tnom - 1.0
    t0 = math.sqrt(1.0 + s.lpe0 / p.leffeot)
    t1 = (s.k1ox * (t0 - 1.0) * math.sqrt(phieot)
          + (s.kt1 + s.kt1l / p.leffeot) * temp_ratio)
    vth_narrow_w = mt.toxe * phieot / (p.weffeot + s.w0)
    lpe_vb = math.sqrt(1.0 + s.lpeb / p.leffeot)
    vth = (p.polarity * it.vth0 + (s.k1ox - s.k1) * math.sqrt(phieot) * lpe_vb
           - delt_vth - t2 + s.k3 * vth_narrow_w + t1)

    n = _swing(s, mt, theta0)
    if s.dvtp0 > 0.0:
        # both temperature branches use the EOT thermal voltage
        vth -= n * vtm0eot * math.log(p.leffeot / (p.leffeot + 2.0 * s.dvtp0))
    vgsteff = vgs_eff - vth

    vtfbphi2eot = max(4.0 * (p.polarity * it.vth0 - it.vfb - phieot), 0.0)
    toxpf = mt.toxe
    for _ in range(5):
        toxpi = toxpf
        t0 = (vgsteff + vtfbphi2eot) / (2.0e8 * toxpf)
        tcen = p.ados * 1.9e-9 / (1.0 + math.exp(p.bdos * 0.7 * math.log(t0)))
        toxpf = mt.toxe - mt.epsrox / p.epsrsub * tcen
        if abs(toxpf - toxpi) <= 1e-12:
            break
    return toxpf
