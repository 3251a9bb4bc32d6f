"""Drain current of the intrinsic channel.

Covers the DC part of the evaluation pipeline: effective body bias,
threshold voltage, effective gate overdrive, mobility, saturation voltage,
the output-resistance terms, substrate current and the bias-dependent
gate and source/drain resistances. All voltages are in the mode-normalized
frame (Vds >= 0) unless the argument name says otherwise.
"""

from typing import NamedTuple

import jax.numpy as jnp
from jax import lax

from bsim4jax.config import EPS0, EPSSI, EXP_THRESHOLD, MAX_EXP, MIN_EXP, MM, Q_ELECTRON
from bsim4jax.evaluator.common import dexp, soft_floor


class ChannelPoint(NamedTuple):
    """Channel quantities shared with the leakage and charge stages."""

    vbseff: object
    phis: object
    sqrt_phis: object
    vth: object
    von: object
    n: object
    vgs_eff: object      # poly-depleted gate voltage in the mode frame
    vgs_eff_ext: object  # poly-depleted external vgs
    vgd_eff_ext: object  # poly-depleted external vgd
    vgst: object
    vgsteff: object
    abulk0: object
    abulk: object
    ueff: object
    vdsat: object
    vdseff: object
    ids: object     # Ids before the Vdseff factor, per finger
    cdrain: object  # channel current, all fingers
    isub: object
    beta: object
    gche: object
    coxeff: object
    rds: object


def effective_vbs(it, vbs):
    """Smoothly clamp Vbs between vbsc and 0.95 phi."""
    vbsc = it.vbsc
    t0 = vbs - vbsc - 0.001
    t1 = jnp.sqrt(t0 * t0 - 0.004 * vbsc)
    if t0 >= 0.0:
        vbseff = vbsc + 0.5 * (t0 + t1)
    else:
        t2 = -0.002 / (t1 - t0)
        vbseff = vbsc * (1.0 + t2)
    t9 = 0.95 * it.size.phi
    t0 = t9 - vbseff - 0.001
    t1 = jnp.sqrt(t0 * t0 + 0.004 * t9)
    return t9 - 0.5 * (t0 + t1)


def rolloff(x):
    """Short-channel roll-off factor 1 / (2 (cosh(x) - 1))."""
    if x < EXP_THRESHOLD:
        t1 = jnp.exp(x)
        t2 = t1 - 1.0
        return t1 / (t2 * t2 + 2.0 * t1 * MIN_EXP)
    return 1.0 / (MAX_EXP - 2.0) + 0.0 * x


def poly_depletion(phi: float, ngate: float, epsgate: float, coxe: float, vgs):
    """Gate voltage reduced by poly-silicon depletion."""
    if 1.0e18 < ngate < 1.0e25 and vgs > phi and epsgate != 0.0:
        t1 = 1.0e6 * Q_ELECTRON * epsgate * ngate / (coxe * coxe)
        t8 = vgs - phi
        t4 = jnp.sqrt(1.0 + 2.0 * t8 / t1)
        t2 = 2.0 * t8 / (t4 + 1.0)
        t3 = 0.5 * t2 * t2 / t1
        t7 = 1.12 - t3 - 0.05
        t6 = jnp.sqrt(t7 * t7 + 0.224)
        t5 = 1.12 - 0.5 * (t7 + t6)
        return vgs - t5
    return vgs


def effective_overdrive(vgst, n, vtm: float, mstar: float, voffcbn: float, coxe: float,
                        cdep0: float):
    """Unified Vgsteff spanning subthreshold and strong inversion."""
    t0 = n * vtm
    t1 = mstar * vgst
    t2 = t1 / t0
    if t2 > EXP_THRESHOLD:
        t10 = t1
    elif t2 < -EXP_THRESHOLD:
        t10 = vtm * jnp.log1p(MIN_EXP) * n
    else:
        t10 = n * vtm * jnp.log(1.0 + jnp.exp(t2))

    t1 = voffcbn - (1.0 - mstar) * vgst
    t2 = t1 / t0
    if t2 < -EXP_THRESHOLD:
        t9 = mstar + coxe * MIN_EXP / cdep0 * n
    elif t2 > EXP_THRESHOLD:
        t9 = mstar + coxe * MAX_EXP / cdep0 * n
    else:
        t9 = mstar + n * coxe / cdep0 * jnp.exp(t2)
    return t10 / t9


def _threshold(ops, vds, vbseff, sqrt_phis, xdep):
    """Return (Vth before the pocket and DITS shifts, n, Vth_NarrowW, Lpe_Vb)."""
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    leff = s.leff

    t3 = jnp.sqrt(xdep)
    v0 = s.vbi - s.phi
    lt1 = mt.factor1 * t3 * soft_floor(s.dvt2 * vbseff, -0.5)
    ltw = mt.factor1 * t3 * soft_floor(s.dvt2w * vbseff, -0.5)

    theta0 = rolloff(s.dvt1 * leff / lt1)
    delt_vth = s.dvt0 * theta0 * v0
    t2 = s.dvt0w * rolloff(s.dvt1w * s.weff * leff / ltw) * v0

    temp_ratio = mt.temp / mt.tnom - 1.0
    t0 = jnp.sqrt(1.0 + s.lpe0 / leff)
    t1 = (s.k1ox * (t0 - 1.0) * s.sqrtPhi
          + (s.kt1 + s.kt1l / leff + s.kt2 * vbseff) * temp_ratio)
    vth_narrow_w = mt.toxe * s.phi / (s.weff + s.w0)

    t3 = it.eta0 + s.etab * vbseff
    if t3 < 1.0e-4:
        t9 = 1.0 / (3.0 - 2.0e4 * t3)
        t3 = (2.0e-4 - t3) * t9
    dibl_sft = t3 * s.theta0vb0 * vds

    lpe_vb = jnp.sqrt(1.0 + s.lpeb / leff)
    vth = (p.polarity * it.vth0 + (s.k1ox * sqrt_phis - s.k1 * s.sqrtPhi) * lpe_vb
           - it.k2ox * vbseff - delt_vth - t2 + (s.k3 + s.k3b * vbseff) * vth_narrow_w
           + t1 - dibl_sft)

    tmp1 = mt.epssub / xdep
    tmp3 = s.cdsc + s.cdscb * vbseff + s.cdscd * vds
    tmp4 = (s.nfactor * tmp1 + tmp3 * theta0 + s.cit) / mt.coxe
    n = soft_floor(tmp4, -0.5)
    return vth, n, vth_narrow_w, lpe_vb


def _mobility(ops, vgsteff, vth, vbseff):
    """Effective mobility for the selected mobmod."""
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    toxe = mt.toxe
    if p.mtrlmod != 0 and p.mtrlcompatmod == 0:
        t14 = 2.0 * p.polarity * (p.phig - p.easub - 0.5 * mt.eg0 + 0.45)
    else:
        t14 = 0.0

    mobmod = p.mobmod
    # mobmod 4-6 take the flat-band offset where 0-2 take Vth
    vref = vth if mobmod in (0, 1, 2) else it.vtfbphi1

    if mobmod in (0, 1, 2, 4, 5, 6):
        t12 = jnp.sqrt(vref * vref + 0.0001)
        t10 = toxe / (vgsteff + 2.0 * t12)
        t6 = s.ud * t10 * t10 * vref * vref
        if mobmod in (0, 1, 4, 5):
            if mobmod in (0, 1):
                t3 = (vgsteff + vth + vth - t14) / toxe
            else:
                t3 = (vgsteff + it.vtfbphi1 - t14) / toxe
            if mobmod in (0, 4):
                t5 = t3 * (s.ua + s.uc * vbseff + s.ub * t3) + t6
            else:
                t5 = t3 * (s.ua + s.ub * t3) * (1.0 + s.uc * vbseff) + t6
        else:
            t0 = (vgsteff + it.vtfbphi1) / toxe
            t1 = jnp.exp(s.eu * jnp.log(t0))
            t5 = t1 * (s.ua + s.uc * vbseff) + t6
    else:
        # universal mobility with Coulomb scattering
        t0 = (vgsteff + it.vtfbphi1) * 1.0e-8 / toxe / 6.0
        t1 = jnp.exp(s.eu * jnp.log(t0))
        t10 = jnp.exp(s.ucs * jnp.log(0.5 + 0.5 * vgsteff / s.VgsteffVth))
        t5 = t1 * (s.ua + s.uc * vbseff) + s.ud / t10

    if t5 >= -0.8:
        denomi = 1.0 + t5
    else:
        denomi = (0.6 + t5) / (7.0 + 10.0 * t5)
    return it.u0temp / denomi


def _saturation_voltage(vgst2vtm, abulk, esat_l, wv_cox_rds, rds, lam):
    if rds == 0.0 and lam == 1.0:
        return esat_l * vgst2vtm / (abulk * esat_l + vgst2vtm)
    t9 = abulk * wv_cox_rds
    t7 = vgst2vtm * t9
    t6 = vgst2vtm * wv_cox_rds
    t0 = 2.0 * abulk * (t9 - 1.0 + 1.0 / lam)
    t1 = vgst2vtm * (2.0 / lam - 1.0) + abulk * esat_l + 3.0 * t7
    t2 = vgst2vtm * (esat_l + 2.0 * t6)
    t3 = jnp.sqrt(t1 * t1 - 2.0 * t0 * t2)
    return (t1 - t3) / t0


def smooth_vdseff(vdsat, vds, delta: float):
    """min(Vds, Vdsat) smoothed by ``delta``; zero-valued at Vds == 0."""
    t1 = vdsat - vds - delta
    t2 = jnp.sqrt(t1 * t1 + 4.0 * delta * vdsat)
    if t1 >= 0.0:
        vdseff = vdsat - 0.5 * (t1 + t2)
    else:
        t4 = 2.0 * delta / (t2 - t1)
        vdseff = vdsat * (1.0 - t4)
    if vds == 0.0:
        # keep the tangent, drop the rounding residue
        vdseff = vdseff - lax.stop_gradient(vdseff)
    return vdseff


def channel_current(ops, mode: int, vds, vbs, vgs_ext, vgd_ext) -> ChannelPoint:
    """Evaluate the channel at mode-normalized (vds, vbs).

    Args:
        ops: Operands of the device
        mode: 1 when the external vds is non-negative, else -1
        vds, vbs: Mode-normalized drain and body voltages (vds >= 0)
        vgs_ext, vgd_ext: External gate-source and gate-drain voltages
            for the poly depletion of both gate edges
    """
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    inst = ops.inst
    leff = s.leff
    vtm = mt.vtm

    vbseff = effective_vbs(it, vbs)
    phis = s.phi - vbseff
    sqrt_phis = jnp.sqrt(phis)
    xdep = s.Xdep0 * sqrt_phis / s.sqrtPhi

    vth, n, vth_narrow_w, lpe_vb = _threshold(ops, vds, vbseff, sqrt_phis, xdep)

    # pocket implant
    if s.dvtp0 > 0.0:
        t0 = -s.dvtp1 * vds
        t2 = MIN_EXP + 0.0 * t0 if t0 < -EXP_THRESHOLD else jnp.exp(t0)
        t3 = leff + s.dvtp0 * (1.0 + t2)
        vtm_pocket = vtm if p.tempmod < 2 else mt.vtm0
        vth = vth - n * vtm_pocket * jnp.log(leff / t3)

    # drain-induced threshold shift
    if s.dvtp4 != 0.0 and s.dvtp2factor != 0.0:
        t0 = dexp(2.0 * s.dvtp4 * vds)
        vth = vth - s.dvtp2factor * (t0 - 1.0) / (t0 + 1.0)
    von = vth

    epsgate = EPSSI if p.mtrlmod == 0 else p.epsrgate * EPS0
    phi_gate = it.vfb + s.phi
    vgs_eff_ext = poly_depletion(phi_gate, s.ngate, epsgate, mt.coxe, vgs_ext)
    vgd_eff_ext = poly_depletion(phi_gate, s.ngate, epsgate, mt.coxe, vgd_ext)
    vgs_eff = vgs_eff_ext if mode > 0 else vgd_eff_ext

    vgst = vgs_eff - vth
    vgsteff = effective_overdrive(vgst, n, vtm, s.mstar, s.voffcbn, mt.coxe, s.cdep0)

    # effective width
    t9 = sqrt_phis - s.sqrtPhi
    weff = s.weff - 2.0 * (s.dwg * vgsteff + s.dwb * t9)
    if weff < 2.0e-8:
        t0 = 1.0 / (6.0e-8 - 2.0 * weff)
        weff = 2.0e-8 * (4.0e-8 - weff) * t0

    if p.rdsmod == 1:
        rds = 0.0
    else:
        t0 = 1.0 + s.prwg * vgsteff
        t2 = 1.0 / t0 + s.prwb * t9
        t3 = t2 + jnp.sqrt(t2 * t2 + 0.01)
        rds = s.rdswmin + t3 * s.rds0 * 0.5

    # bulk charge factor
    t1 = 0.5 * s.k1ox * lpe_vb / sqrt_phis + it.k2ox - s.k3b * vth_narrow_w
    t5 = leff / (leff + 2.0 * jnp.sqrt(s.xj * xdep))
    t2 = s.a0 * t5 + s.b0 / (s.weff + s.b1)
    abulk0 = 1.0 + t1 * t2
    abulk = abulk0 - t1 * s.ags * s.a0 * t5 * t5 * t5 * vgsteff
    if abulk0 < 0.1:
        abulk0 = (0.2 - abulk0) / (3.0 - 20.0 * abulk0)
    if abulk < 0.1:
        abulk = (0.2 - abulk) / (3.0 - 20.0 * abulk)
    t2 = s.keta * vbseff
    if t2 >= -0.9:
        t0 = 1.0 / (1.0 + t2)
    else:
        t0 = (17.0 + 20.0 * t2) / (0.8 + t2)
    abulk = abulk * t0
    abulk0 = abulk0 * t0

    ueff = _mobility(ops, vgsteff, vth, vbseff)

    # saturation voltage
    wv_cox = weff * it.vsattemp * mt.coxe
    wv_cox_rds = wv_cox * rds
    esat = 2.0 * it.vsattemp / ueff
    esat_l = esat * leff

    a1 = s.a1
    if a1 == 0.0:
        lam = s.a2
    elif a1 > 0.0:
        t0 = 1.0 - s.a2
        t1 = t0 - a1 * vgsteff - 0.0001
        t2 = jnp.sqrt(t1 * t1 + 0.0004 * t0)
        lam = s.a2 + t0 - 0.5 * (t1 + t2)
    else:
        t1 = s.a2 + a1 * vgsteff - 0.0001
        t2 = jnp.sqrt(t1 * t1 + 0.0004 * s.a2)
        lam = 0.5 * (t1 + t2)

    vgst2vtm = vgsteff + 2.0 * vtm
    vdsat = _saturation_voltage(vgst2vtm, abulk, esat_l, wv_cox_rds, rds, lam)
    vdseff = smooth_vdseff(vdsat, vds, s.delta)
    if vdseff > vds:
        vdseff = vds
    diff_vds = vds - vdseff

    # velocity overshoot
    if p.given("lambda_") and p.lambda_ > 0.0:
        t2 = s.lambda_ / (leff * ueff)
        t6 = 1.0 + diff_vds / (esat * s.litl)
        t8 = 1.0 - 2.0 / (t6 * t6 + 1.0)
        esat_l = esat_l * (1.0 + t2 * t8)
        esat = esat_l / leff

    tmp4 = 1.0 - 0.5 * abulk * vdsat / vgst2vtm
    t0 = esat_l + vdsat + 2.0 * wv_cox_rds * vgsteff * tmp4
    t1 = 2.0 / lam - 1.0 + wv_cox_rds * abulk
    vasat = t0 / t1

    # linear-region current with the charge-centroid oxide capacitance
    t0 = (vgsteff + it.vtfbphi2) / (2.0e8 * it.toxp)
    tcen = p.ados * 1.9e-9 / (1.0 + jnp.exp(p.bdos * 0.7 * jnp.log(t0)))
    coxeff = mt.epssub * it.coxp / (mt.epssub + it.coxp * tcen)
    coxeff_w_ov_l = coxeff * weff / leff
    beta = ueff * coxeff_w_ov_l

    fgche1 = vgsteff * (1.0 - 0.5 * vdseff * abulk / vgst2vtm)
    fgche2 = 1.0 + vdseff / esat_l
    gche = beta * fgche1 / fgche2
    idl = gche / (1.0 + gche * rds)

    if s.fprout <= 0.0:
        fp = 1.0
    else:
        fp = 1.0 / (1.0 + s.fprout * jnp.sqrt(leff) / vgst2vtm)

    t9 = s.pvag / esat_l * vgsteff
    if t9 > -0.9:
        pvag_term = 1.0 + t9
    else:
        pvag_term = (0.8 + t9) / (17.0 + 20.0 * t9)

    # channel-length modulation
    if s.pclm > MIN_EXP and diff_vds > 1.0e-10:
        t0 = 1.0 + rds * idl
        t1 = leff + vdsat / esat
        cclm = fp * pvag_term * t0 * t1 / (s.pclm * s.litl)
        vaclm = cclm * diff_vds
    else:
        vaclm = cclm = MAX_EXP

    # drain-induced barrier lowering
    if s.thetaRout > MIN_EXP:
        t8 = abulk * vdsat
        t0 = vgst2vtm * t8
        t1 = vgst2vtm + t8
        vadibl = (vgst2vtm - t0 / t1) / s.thetaRout
        t7 = s.pdiblb * vbseff
        if t7 >= -0.9:
            vadibl = vadibl / (1.0 + t7)
        else:
            vadibl = vadibl * (17.0 + 20.0 * t7) / (0.8 + t7)
        vadibl = vadibl * pvag_term
    else:
        vadibl = MAX_EXP

    va = vasat + vaclm

    # drain-induced threshold shift
    t0 = s.pditsd * vds
    t1 = MAX_EXP + 0.0 * t0 if t0 > EXP_THRESHOLD else jnp.exp(t0)
    if s.pdits > MIN_EXP:
        t2 = 1.0 + p.pditsl * leff
        vadits = (1.0 + t2 * t1) / s.pdits * fp
    else:
        vadits = MAX_EXP

    # substrate current induced body effect
    if s.pscbe2 > 0.0 and s.pscbe1 >= 0.0:
        if diff_vds > s.pscbe1 * s.litl / EXP_THRESHOLD:
            vascbe = leff * jnp.exp(s.pscbe1 * s.litl / diff_vds) / s.pscbe2
        else:
            vascbe = MAX_EXP * leff / s.pscbe2
    else:
        vascbe = MAX_EXP

    idsa = idl * (1.0 + diff_vds / vadibl)
    idsa = idsa * (1.0 + diff_vds / vadits)
    idsa = idsa * (1.0 + jnp.log(va / vasat) / cclm)

    # impact ionization
    tmp = s.alpha0 + s.alpha1 * leff
    if tmp <= 0.0 or s.beta0 <= 0.0:
        isub = 0.0 * idsa
    else:
        t2 = tmp / leff
        if diff_vds > s.beta0 / EXP_THRESHOLD:
            t1 = t2 * diff_vds * jnp.exp(-s.beta0 / diff_vds)
        else:
            t1 = t2 * MIN_EXP * diff_vds
        isub = t1 * idsa * vdseff

    ids = idsa * (1.0 + diff_vds / vascbe)
    cdrain = ids * vdseff

    # source-end velocity limit
    if p.given("vtl") and p.vtl > 0.0:
        vs = cdrain / leff / coxeff_w_ov_l / vgsteff
        t0 = 2.0 * MM
        t1 = vs / (s.vtl * s.tfactor)
        if t1 > 0.0:
            t2 = 1.0 + jnp.exp(t0 * jnp.log(t1))
            cdrain = cdrain / jnp.exp(jnp.log(t2) / t0)

    nf = inst.nf
    if nf != 1.0:
        cdrain = cdrain * nf
        isub = isub * nf

    return ChannelPoint(
        vbseff=vbseff,
        phis=phis,
        sqrt_phis=sqrt_phis,
        vth=vth,
        von=von,
        n=n,
        vgs_eff=vgs_eff,
        vgs_eff_ext=vgs_eff_ext,
        vgd_eff_ext=vgd_eff_ext,
        vgst=vgst,
        vgsteff=vgsteff,
        abulk0=abulk0,
        abulk=abulk,
        ueff=ueff,
        vdsat=vdsat,
        vdseff=vdseff,
        ids=ids,
        cdrain=cdrain,
        isub=isub,
        beta=beta,
        gche=gche,
        coxeff=coxeff,
        rds=rds,
    )


def gate_resistance_conductance(ops, ch: ChannelPoint):
    """Bias-dependent intrinsic-input conductance gcrg."""
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    inst = ops.inst
    gcrg = s.xrcrg1 * (s.xrcrg2 * mt.vtm * ch.beta + ch.ids)
    if inst.nf != 1.0:
        gcrg = gcrg * inst.nf
    if inst.rgatemod == 2:
        gcrg = it.grgeltd * gcrg / (it.grgeltd + gcrg)
    return gcrg


def _series_resistance(vgx, vbx, s, r0: float, rmin: float):
    t0 = vgx - s.vfbsd
    vg_eff = 0.5 * (t0 + jnp.sqrt(t0 * t0 + 1.0e-4))
    t2 = 1.0 / (1.0 + s.prwg * vg_eff) - s.prwb * vbx
    t3 = t2 + jnp.sqrt(t2 * t2 + 0.01)
    return rmin + t3 * r0 * 0.5


def source_drain_conductances(ops, vgs, vbs, vgd, vbd):
    """Return (gstot, gdtot) of the bias-dependent source/drain resistances.

    Arguments are external (not mode-normalized) voltages.
    """
    it, s = ops.it, ops.s
    rs = _series_resistance(vgs, vbs, s, s.rs0, s.rswmin)
    gstot = it.source_conductance / (1.0 + it.source_conductance * rs)
    rd = _series_resistance(vgd, vbd, s, s.rd0, s.rdwmin)
    gdtot = it.drain_conductance / (1.0 + it.drain_conductance * rd)
    return gstot, gdtot
