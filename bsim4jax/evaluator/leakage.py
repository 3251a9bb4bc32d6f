"""Gate-induced drain/source leakage and gate tunneling currents."""

from typing import NamedTuple

import jax.numpy as jnp

from bsim4jax.config import (
    DELTA_3,
    EXP_THRESHOLD,
    EXPL_THRESHOLD,
    MAX_EXP,
    MAX_EXPL,
    MIN_EXP,
    MIN_EXPL,
)


class Leakage(NamedTuple):
    """Leakage currents, all fingers, in the type-normalized frame.

    igcs and igcd are the channel-side gate currents toward the mode
    source and mode drain.
    """

    igidl: object
    igisl: object
    igcs: object
    igcd: object
    igs: object
    igd: object
    igb: object


def _clamped_exp(x):
    if x > EXP_THRESHOLD:
        return MAX_EXP + 0.0 * x
    if x < -EXP_THRESHOLD:
        return MIN_EXP + 0.0 * x
    return jnp.exp(x)


def _softplus(x, scale):
    """scale * log(1 + exp(x / scale)) with the exponential guards."""
    ratio = x / scale
    if ratio > EXP_THRESHOLD:
        return x
    if ratio < -EXP_THRESHOLD:
        return scale * jnp.log1p(MIN_EXP) + 0.0 * x
    return scale * jnp.log(1.0 + jnp.exp(ratio))


def _edge_leakage_classic(a, b, c, weff_cj, t1, vbx):
    """GIDL/GISL of gidlmod 0 for field term ``t1`` and body bias ``vbx``."""
    if a <= 0.0 or b <= 0.0 or t1 <= 0.0 or c <= 0.0 or vbx > 0.0:
        return 0.0 * t1
    t2 = b / t1
    if t2 < 100.0:
        i = a * weff_cj * t1 * jnp.exp(-t2)
    else:
        i = a * weff_cj * MIN_EXPL * t1
    t5 = -vbx * vbx * vbx
    return i * t5 / (c + t5)


def _edge_leakage(a, b, c, weff_cj, t1, vbx, f, k):
    """GIDL/GISL of gidlmod 1 with the kgidl/fgidl body dependence."""
    if a <= 0.0 or b <= 0.0 or t1 <= 0.0 or c < 0.0:
        return 0.0 * t1
    t2 = b / t1
    if t2 < EXPL_THRESHOLD:
        i = weff_cj * a * t1 * jnp.exp(-t2)
    else:
        i = weff_cj * a * MIN_EXPL * t1
    t4 = vbx - f
    t5 = EXPL_THRESHOLD + 0.0 * t4 if t4 == 0.0 else k / t4
    t6 = jnp.exp(t5) if t5 < EXPL_THRESHOLD else MAX_EXPL
    return i * t6


def gate_induced_leakage(ops, vds, vbs, vbd, vgs_eff, vgd_eff):
    """Return (Igidl, Igisl) from external voltages and poly-depleted gates."""
    p, mt, s = ops.p, ops.mt, ops.s
    if p.mtrlmod == 0:
        t0 = 3.0 * mt.toxe
        offset = 0.0
    else:
        t0 = p.epsrsub * mt.toxe / mt.epsrox
        offset = s.vfbsd

    if p.gidlmod == 0:
        t1 = (vds - vgs_eff - s.egidl + offset) / t0
        igidl = _edge_leakage_classic(s.agidl, s.bgidl, s.cgidl, s.weffCJ, t1, vbd)
        t1 = (-vds - vgd_eff - s.egisl + offset) / t0
        igisl = _edge_leakage_classic(s.agisl, s.bgisl, s.cgisl, s.weffCJ, t1, vbs)
    else:
        t1 = (-vds - s.rgisl * vgd_eff - s.egisl + offset) / t0
        igisl = _edge_leakage(s.agisl, s.bgisl, s.cgisl, s.weffCJ, t1, vbs, s.fgisl, s.kgisl)
        t1 = (vds - s.rgidl * vgs_eff - s.egidl + offset) / t0
        igidl = _edge_leakage(s.agidl, s.bgidl, s.cgidl, s.weffCJ, t1, vbd, s.fgidl, s.kgidl)
    return igidl, igisl


def _tunnel(prefactor, b, a_coef, b_coef, c_coef, vox, v2):
    """prefactor * v2 * exp(b (a + (a c - b') vox - b' c vox^2))."""
    t3 = a_coef * c_coef - b_coef
    t4 = b_coef * c_coef
    t5 = b * (a_coef + t3 * vox - t4 * vox * vox)
    return prefactor * v2 * _clamped_exp(t5)


def _edge_tunneling(v, s, prefactor, a, b, c):
    """Gate-to-diffusion overlap tunneling for external gate voltage ``v``."""
    t0 = v - (s.vfbsd + s.vfbsdoff)
    v_eff = jnp.sqrt(t0 * t0 + 1.0e-4)
    return _tunnel(prefactor, s.BechvbEdge, a, b, c, v_eff, v * v_eff)


def gate_tunneling(ops, ch, vgs_ext, vgd_ext):
    """Return (Igcs, Igcd, Igs, Igd, Igb), per finger.

    Args:
        ops: Operands of the device
        ch: ChannelPoint of the same evaluation
        vgs_ext, vgd_ext: External gate-source and gate-drain voltages
    """
    p, mt, it, s = ops.p, ops.mt, ops.it, ops.s
    zero = 0.0 * ch.vgsteff
    if p.igcmod == 0 and p.igbmod == 0:
        return zero, zero, zero, zero, zero

    vgs_eff = ch.vgs_eff
    vbseff = ch.vbseff
    vgsteff = ch.vgsteff

    vfb = it.vfbzb
    v3 = vfb - vgs_eff + vbseff - DELTA_3
    if vfb <= 0.0:
        t0 = jnp.sqrt(v3 * v3 - 4.0 * DELTA_3 * vfb)
    else:
        t0 = jnp.sqrt(v3 * v3 + 4.0 * DELTA_3 * vfb)
    vfbeff = vfb - 0.5 * (v3 + t0)
    voxacc = vfb - vfbeff
    if voxacc < 0.0:
        voxacc = 0.0 * voxacc

    t0 = 0.5 * s.k1ox
    t3 = vgs_eff - vfbeff - vbseff - vgsteff
    if s.k1ox == 0.0:
        voxdepinv = zero
    elif t3 < 0.0:
        voxdepinv = -t3
    else:
        voxdepinv = s.k1ox * (jnp.sqrt(t0 * t0 + t3) - t0)
    voxdepinv = voxdepinv + vgsteff

    vt = mt.vtm if p.tempmod < 2 else mt.vtm0

    igcs = igcd = igs = igd = zero
    if p.igcmod != 0:
        if p.igcmod == 1:
            vx = vgs_eff - p.polarity * it.vth0
        else:
            vx = vgs_eff - ch.von
        vaux = _softplus(vx, vt * s.nigc)
        igc = _tunnel(s.Aechvb, s.Bechvb, s.aigc, s.bigc, s.cigc, voxdepinv, vgs_eff * vaux)

        if p.given("pigcd"):
            pigcd = s.pigcd
        else:
            t12 = vgsteff + 1.0e-20
            pigcd = -s.Bechvb / t12 / t12 * (1.0 - 0.5 * ch.vdseff / t12)

        # partition between the source and drain ends of the channel
        t7 = -pigcd * ch.vdseff
        t8 = t7 * t7 + 2.0e-4
        t9 = _clamped_exp(t7)
        igcs = igc * (t9 - 1.0 + 1.0e-4 - t7) / t8
        igcd = igc * (t7 * t9 - (t9 - 1.0 - 1.0e-4)) / t8

        igs = _edge_tunneling(vgs_ext, s, s.AechvbEdgeS, s.aigs, s.bigs, s.cigs)
        igd = _edge_tunneling(vgd_ext, s, s.AechvbEdgeD, s.aigd, s.bigd, s.cigd)

    igb = zero
    if p.igbmod != 0:
        prefactor = 4.97232e-7 * s.weff * s.leff * s.ToxRatio
        b = -7.45669e11 * mt.toxe
        vaux = _softplus(-vgs_eff + vbseff + vfb, vt * s.nigbacc)
        igbacc = _tunnel(prefactor, b, s.aigbacc, s.bigbacc, s.cigbacc, voxacc,
                         (vgs_eff - vbseff) * vaux)
        vaux = _softplus(voxdepinv - s.eigbinv, vt * s.nigbinv)
        igbinv = _tunnel(prefactor * 0.75610, b * 1.31724, s.aigbinv, s.bigbinv, s.cigbinv,
                         voxdepinv, (vgs_eff - vbseff) * vaux)
        igb = igbacc + igbinv

    return igcs, igcd, igs, igd, igb


def leakage_currents(ops, ch, vds, vbs, vgs_ext, vgd_ext) -> Leakage:
    """All leakage currents scaled to the finger count; voltages are external."""
    vbd = vbs - vds
    igidl, igisl = gate_induced_leakage(
        ops, vds, vbs, vbd, ch.vgs_eff_ext, ch.vgd_eff_ext)
    igcs, igcd, igs, igd, igb = gate_tunneling(ops, ch, vgs_ext, vgd_ext)
    nf = ops.inst.nf
    if nf != 1.0:
        igidl, igisl = igidl * nf, igisl * nf
        igcs, igcd, igs, igd, igb = igcs * nf, igcd * nf, igs * nf, igd * nf, igb * nf
    return Leakage(igidl=igidl, igisl=igisl, igcs=igcs, igcd=igcd, igs=igs, igd=igd, igb=igb)
