"""Intrinsic and overlap charges.

Three intrinsic charge models are selected with capmod: 0 is the simple
piecewise model, 1 the smooth single-expression model and 2 the
charge-thickness model with the inversion-charge centroid. The partition
between drain and source follows xpart: above 0.5 is 0/100, below 0.5 is
40/60, and exactly 0.5 is 50/50.
"""

from typing import NamedTuple

import jax.numpy as jnp

from bsim4jax.config import DELTA_1, DELTA_3, DELTA_4, EXP_THRESHOLD, MAX_EXP, MIN_EXP
from bsim4jax.evaluator.channel import effective_overdrive, smooth_vdseff


class IntrinsicCharge(NamedTuple):
    """Channel charges in the mode frame (drain is the mode drain)."""

    qgate: object
    qbulk: object
    qdrn: object


def coxwl(ops):
    """Gate oxide capacitance of the whole channel (all fingers)."""
    s = ops.s
    return ops.mt.coxe * s.weffCV * s.leffCV * ops.inst.nf


def _capmod0(ops, ch, vds, vbs):
    p, s = ops.p, ops.s
    vbseff_cv = vbs if ch.vbseff < 0.0 else s.phi - ch.phis
    vfb = s.vfbcv
    vth = vfb + s.phi + s.k1ox * ch.sqrt_phis
    vgst = ch.vgs_eff - vth
    cox_wl = coxwl(ops)
    arg1 = ch.vgs_eff - vbseff_cv - vfb
    zero = 0.0 * arg1

    if arg1 <= 0.0:
        qgate = cox_wl * arg1
        return IntrinsicCharge(qgate, -qgate, zero)
    if vgst <= 0.0:
        t1 = 0.5 * s.k1ox
        qgate = cox_wl * s.k1ox * (jnp.sqrt(t1 * t1 + arg1) - t1)
        return IntrinsicCharge(qgate, -qgate, zero)

    two_third = 2.0 * cox_wl / 3.0
    abulk_cv = ch.abulk0 * s.abulkCVfactor
    vdsat = vgst / abulk_cv
    base = ch.vgs_eff - vfb - s.phi

    if vds >= vdsat:
        qgate = cox_wl * (base - vdsat / 3.0)
        t2 = -two_third * vgst
        qbulk = -(qgate + t2)
        if p.xpart > 0.5:
            qdrn = zero
        elif p.xpart < 0.5:
            qdrn = 0.4 * t2
        else:
            qdrn = 0.5 * t2
        return IntrinsicCharge(qgate, qbulk, qdrn)

    # linear region
    alphaz = vgst / vdsat
    t1 = 2.0 * vdsat - vds
    t2 = vds / (3.0 * t1)
    t3 = t2 * vds
    t4 = 0.25 * cox_wl * alphaz
    qgate = cox_wl * (base - 0.5 * (vds - t3))
    if p.xpart > 0.5:
        qdrn = t4 * (2.0 * vds - t1 - 3.0 * t3)
        qbulk = -(qgate + qdrn + t4 * (t3 - t1 - 2.0 * vds))
    elif p.xpart < 0.5:
        t6 = 8.0 * vdsat * vdsat - 6.0 * vdsat * vds + 1.2 * vds * vds
        qdrn = t4 * (vds - t1 - t2 / t1 * t6)
        qbulk = -(qgate - t4 * 2.0 * (t1 + t3))
    else:
        qdrn = -t4 * (t1 + t3)
        qbulk = -(qgate + qdrn + qdrn)
    return IntrinsicCharge(qgate, qbulk, qdrn)


def _vgsteff_cv(ops, ch):
    p, mt, s = ops.p, ops.mt, ops.s
    vtm = mt.vtm
    if p.cvchargemod == 0:
        t0 = vtm * ch.n * s.noff
        x = ch.vgst - s.voffcv
        ratio = x / t0
        if ratio > EXP_THRESHOLD:
            return x
        if ratio < -EXP_THRESHOLD:
            return t0 * jnp.log1p(MIN_EXP) + 0.0 * x
        return t0 * jnp.log(1.0 + jnp.exp(ratio))
    return effective_overdrive(ch.vgst, ch.n, vtm, s.mstarcv, s.voffcbncv, mt.coxe, s.cdep0)


def _cv_bias(ops, ch):
    """Return (VbseffCV, CV Vgsteff) of the smooth charge models."""
    vbseff_cv = ch.vbseff if ch.vbseff < 0.0 else ops.s.phi - ch.phis
    return vbseff_cv, _vgsteff_cv(ops, ch)


def _flatband_smoothing(vfb, vgs_eff, vbseff_cv):
    v3 = vfb - vgs_eff + vbseff_cv - DELTA_3
    if vfb <= 0.0:
        t0 = jnp.sqrt(v3 * v3 - 4.0 * DELTA_3 * vfb)
    else:
        t0 = jnp.sqrt(v3 * v3 + 4.0 * DELTA_3 * vfb)
    return vfb - 0.5 * (v3 + t0)


def _depletion_charge(k1ox, vgs_eff, vfbeff, vbseff_cv, vgsteff, cox):
    t0 = 0.5 * k1ox
    t3 = vgs_eff - vfbeff - vbseff_cv - vgsteff
    if k1ox == 0.0:
        t1 = 0.0 * t3
    elif t3 < 0.0:
        t1 = t0 + t3 / k1ox
    else:
        t1 = jnp.sqrt(t0 * t0 + t3)
    return cox * k1ox * (t1 - t0)


def _capmod1(ops, ch, vds, vbs):
    p, it, s = ops.p, ops.it, ops.s
    vbseff_cv, vgsteff = _cv_bias(ops, ch)
    cox_wl = coxwl(ops)
    vfb = it.vfbzb
    vfbeff = _flatband_smoothing(vfb, ch.vgs_eff, vbseff_cv)
    qac0 = cox_wl * (vfbeff - vfb)
    qsub0 = _depletion_charge(s.k1ox, ch.vgs_eff, vfbeff, vbseff_cv, vgsteff, cox_wl)

    abulk_cv = ch.abulk0 * s.abulkCVfactor
    vdseff_cv = smooth_vdseff(vgsteff / abulk_cv, vds, DELTA_4)

    t0 = abulk_cv * vdseff_cv
    t1 = 12.0 * (vgsteff - 0.5 * t0 + 1.0e-20)
    t3 = t0 * vdseff_cv / t1
    qgate = cox_wl * (vgsteff - 0.5 * vdseff_cv + t3)
    qbulk = cox_wl * (1.0 - abulk_cv) * (0.5 * vdseff_cv - t3)

    if p.xpart > 0.5:
        qsrc = -cox_wl * (0.5 * vgsteff + 0.25 * t0 - t0 * t0 / (2.0 * t1))
    elif p.xpart < 0.5:
        t1 = t1 / 12.0
        t2 = 0.5 * cox_wl / (t1 * t1)
        t3 = (vgsteff * (2.0 * t0 * t0 / 3.0 + vgsteff * (vgsteff - 4.0 * t0 / 3.0))
              - 2.0 * t0 * t0 * t0 / 15.0)
        qsrc = -t2 * t3
    else:
        qsrc = -0.5 * (qgate + qbulk)

    qgate = qgate + qac0 + qsub0
    qbulk = qbulk - (qac0 + qsub0)
    return IntrinsicCharge(qgate, qbulk, -(qgate + qbulk + qsrc))


def _capmod2(ops, ch, vds, vbs):
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    vbseff_cv, vgsteff = _cv_bias(ops, ch)
    cox_wl = coxwl(ops)
    vfbzb = it.vfbzb
    vfbeff = _flatband_smoothing(vfbzb, ch.vgs_eff, vbseff_cv)

    cox = it.coxp
    tox = 1.0e8 * it.toxp
    tmp = (ch.vgs_eff - vbseff_cv - vfbzb) / tox * s.acde
    if -EXP_THRESHOLD < tmp < EXP_THRESHOLD:
        tcen = s.ldeb * jnp.exp(tmp)
    elif tmp <= -EXP_THRESHOLD:
        tcen = s.ldeb * MIN_EXP + 0.0 * tmp
    else:
        tcen = s.ldeb * MAX_EXP + 0.0 * tmp
    link = 1.0e-3 * it.toxp
    v3 = s.ldeb - tcen - link
    v4 = jnp.sqrt(v3 * v3 + 4.0 * link * s.ldeb)
    tcen = s.ldeb - 0.5 * (v3 + v4)
    ccen = mt.epssub / tcen
    coxeff = cox / (cox + ccen) * ccen
    coxwl_cen = cox_wl * coxeff / mt.coxe

    qac0 = coxwl_cen * (vfbeff - vfbzb)
    qsub0 = _depletion_charge(s.k1ox, ch.vgs_eff, vfbeff, vbseff_cv, vgsteff, coxwl_cen)

    # gate-bias dependent surface potential shift
    vtm = mt.vtm
    if s.k1ox <= 0.0:
        denomi = 0.25 * s.moin * vtm
        t0 = 0.5 * s.sqrtPhi
    else:
        denomi = s.moin * vtm * s.k1ox * s.k1ox
        t0 = s.k1ox * s.sqrtPhi
    t1 = 2.0 * t0 + vgsteff
    delta_phi = vtm * jnp.log(1.0 + t1 * vgsteff / denomi)

    t0 = vgsteff - delta_phi - 0.001
    vg_dp = 0.5 * (t0 + jnp.sqrt(t0 * t0 + vgsteff * 0.004))

    # centroid at the inversion charge
    t0 = (vgsteff + it.vtfbphi2) / (2.0 * tox)
    tcen = p.ados * 1.9e-9 / (1.0 + jnp.exp(p.bdos * 0.7 * jnp.log(t0)))
    ccen = mt.epssub / tcen
    coxeff = cox / (cox + ccen) * ccen
    coxwl_cen = cox_wl * coxeff / mt.coxe

    abulk_cv = ch.abulk0 * s.abulkCVfactor
    vdseff_cv = smooth_vdseff(vg_dp / abulk_cv, vds, DELTA_4)

    t0 = abulk_cv * vdseff_cv
    t2 = 12.0 * (vg_dp - 0.5 * t0 + 1.0e-20)
    t3 = t0 / t2
    qgate = coxwl_cen * (vg_dp - t0 * (0.5 - t3))
    qbulk = coxwl_cen * (1.0 - abulk_cv) * (0.5 * vdseff_cv - t0 * vdseff_cv / t2)

    if p.xpart > 0.5:
        qsrc = -coxwl_cen * (vg_dp / 2.0 + t0 / 4.0 - 0.5 * t0 * t0 / t2)
    elif p.xpart < 0.5:
        t2 = t2 / 12.0
        t3 = 0.5 * coxwl_cen / (t2 * t2)
        t4 = (vg_dp * (2.0 * t0 * t0 / 3.0 + vg_dp * (vg_dp - 4.0 * t0 / 3.0))
              - 2.0 * t0 * t0 * t0 / 15.0)
        qsrc = -t3 * t4
    else:
        qsrc = -0.5 * qgate

    qgate = qgate + qac0 + qsub0 - qbulk
    qbulk = qbulk - (qac0 + qsub0)
    return IntrinsicCharge(qgate, qbulk, -(qgate + qbulk + qsrc))


_CHARGE_MODELS = {0: _capmod0, 1: _capmod1, 2: _capmod2}


def intrinsic_charge(ops, ch, vds, vbs) -> IntrinsicCharge:
    """Channel charges for the selected capmod at mode-normalized bias."""
    if ops.p.xpart < 0.0:
        zero = 0.0 * ch.vgsteff
        return IntrinsicCharge(zero, zero, zero)
    return _CHARGE_MODELS[ops.p.capmod](ops, ch, vds, vbs)


def _bias_dependent_overlap(v, cgo, weff_cv, cgl, ckappa):
    t0 = v + DELTA_1
    t1 = jnp.sqrt(t0 * t0 + 4.0 * DELTA_1)
    t2 = 0.5 * (t0 - t1)
    t3 = weff_cv * cgl
    t4 = jnp.sqrt(1.0 - 4.0 * t2 / ckappa)
    return (cgo + t3) * v - t3 * (t2 + 0.5 * ckappa * (t4 - 1.0))


def overlap_charges(ops, vgdx, vgsx):
    """Return (qgdo, qgso), all fingers, for the gate-drain/gate-source overlaps."""
    p, it, s = ops.p, ops.it, ops.s
    if p.capmod == 0:
        qgdo = it.cgdo * vgdx
        qgso = it.cgso * vgsx
    else:
        qgdo = _bias_dependent_overlap(vgdx, it.cgdo, s.weffCV, s.cgdl, s.ckappad)
        qgso = _bias_dependent_overlap(vgsx, it.cgso, s.weffCV, s.cgsl, s.ckappas)
    nf = ops.inst.nf
    if nf != 1.0:
        qgdo = qgdo * nf
        qgso = qgso * nf
    return qgdo, qgso


def nqs_partition(ops, qdrn, qcheq):
    """Fraction of the channel charge assigned to the mode drain."""
    cox_wl = coxwl(ops)
    xpart = ops.p.xpart
    if abs(qcheq) <= 1.0e-5 * cox_wl:
        if xpart < 0.5:
            return 0.4
        if xpart > 0.5:
            return 0.0
        return 0.5
    return qdrn / qcheq
