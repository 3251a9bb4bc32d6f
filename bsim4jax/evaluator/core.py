"""Device equations of one BSIM4 instance and their Jacobians.

The equations map the branch-voltage vector x (see BranchVoltages) to

- the current leaving each device node into the device,
- the stored charges of the history slots,
- the signed channel current and the four intrinsic charges, which the
  small-signal load needs separately for the AC NQS model.

All derivatives come from jax.jacfwd over x, so conductances and
capacitances are exact derivatives of the currents and charges. Every
value is in the type-normalized frame: multiply by the polarity to get
physical currents and charges.
"""

from typing import Dict, NamedTuple

import jax
import jax.numpy as jnp
import numpy as np

from bsim4jax.config import DEFAULT_GMIN, DELTA_4, SCALING_FACTOR
from bsim4jax.evaluator.channel import (
    channel_current,
    gate_resistance_conductance,
    smooth_vdseff,
    source_drain_conductances,
)
from bsim4jax.evaluator.charge import coxwl, intrinsic_charge, nqs_partition, overlap_charges
from bsim4jax.evaluator.common import Operands
from bsim4jax.evaluator.junction import junction_charges, junction_currents
from bsim4jax.evaluator.leakage import leakage_currents
from bsim4jax.state import CHARGE_SLOTS, BranchVoltages

NODES = ("d", "g", "s", "b", "dp", "gp", "sp", "bp", "gm", "db", "sb", "q")
NODE_INDEX = {name: i for i, name in enumerate(NODES)}

# Node each Jacobian column is taken against; the first nine are relative
# to sp, qdef is absolute
COLUMN_NODES = ("dp", "gp", "bp", "g", "gm", "db", "sb", "s", "d", "q")
N_BRANCH = len(BranchVoltages._fields)

# Node of each charge slot and the sign it enters that node's equation with;
# the remaining charge of every slot but the NQS pair sits on sp
SLOT_NODES = {
    "qb": ("bp", 1.0),
    "qg": ("gp", 1.0),
    "qd": ("dp", 1.0),
    "qgmid": ("gm", 1.0),
    "qbs": ("sb", 1.0),
    "qbd": ("db", 1.0),
    "qcheq": ("q", -1.0),
    "qcdump": ("q", 1.0),
}
NQS_SLOTS = ("qcheq", "qcdump")

INTRINSIC = ("qg", "qd", "qs", "qb")
INTRINSIC_NODES = ("gp", "dp", "sp", "bp")


class Jacobians(NamedTuple):
    """Derivatives with respect to the branch-voltage vector."""

    currents: np.ndarray   # (len(NODES), N_BRANCH)
    charges: np.ndarray    # (len(CHARGE_SLOTS), N_BRANCH)
    channel: np.ndarray    # (N_BRANCH,)
    intrinsic: np.ndarray  # (4, N_BRANCH)
    junctions: np.ndarray  # (2, N_BRANCH): cbs, cbd


class Evaluation(NamedTuple):
    """Primal values of one evaluation.

    Attributes:
        voltages: Branch voltages the device was evaluated at
        mode: 1 for forward operation (vds >= 0), -1 for reverse
        currents: Node currents, indexed like NODES
        charges: Stored charges, indexed like CHARGE_SLOTS (zero when
            charges were not requested)
        channel: Drain-to-source channel current (mode * Ids)
        intrinsic: Intrinsic gate, drain, source and bulk charges
        junctions: Source and drain junction currents (cbs, cbd)
        charges_computed: Charges were evaluated
        active_slots: Charge slots that carry their own integrated current
        extras: Intermediate values reported by the operating point
    """

    voltages: BranchVoltages
    mode: int
    currents: np.ndarray
    charges: np.ndarray
    channel: float
    intrinsic: np.ndarray
    junctions: np.ndarray
    charges_computed: bool
    active_slots: tuple
    extras: Dict[str, float]


def active_charge_slots(inst) -> tuple:
    """Charge slots integrated for an instance with these selectors."""
    slots = ["qb", "qg", "qd"]
    if inst.rgatemod == 3:
        slots.append("qgmid")
    if inst.rbodymod != 0:
        slots.extend(("qbs", "qbd"))
    if inst.trnqsmod != 0:
        slots.extend(NQS_SLOTS)
    return tuple(slots)


def _device_equations(ops: Operands, mode: int, charges: bool, gmin: float, x):
    p, inst, s = ops.p, ops.inst, ops.s
    vds, vgs, vbs, vges, vgms, vdbs, vsbs, vses, vdes, qdef = (x[i] for i in range(N_BRANCH))

    vbd = vbs - vds
    vgd = vgs - vds
    vgb = vgs - vbs
    vgmd = vgms - vds
    vgmb = vgms - vbs
    vdbd = vdbs - vds
    if inst.rbodymod == 0:
        vbs_jct, vbd_jct = vbs, vbd
    else:
        vbs_jct, vbd_jct = vsbs, vdbd

    if mode > 0:
        vds_m, vbs_m = vds, vbs
    else:
        vds_m, vbs_m = -vds, vbd

    cbs, cbd = junction_currents(ops, vbs_jct, vbd_jct, gmin)
    ch = channel_current(ops, mode, vds_m, vbs_m, vgs, vgd)
    lk = leakage_currents(ops, ch, vds, vbs, vgs, vgd)

    zero = 0.0 * vds
    current = {name: zero for name in NODES}

    def flow(a, b, i):
        current[a] = current[a] + i
        current[b] = current[b] - i

    channel = mode * ch.cdrain
    flow("dp", "sp", channel)
    flow("dp" if mode > 0 else "sp", "bp", ch.isub)
    flow("dp", "bp", lk.igidl)
    flow("sp", "bp", lk.igisl)
    flow("sb", "sp", cbs)
    flow("db", "dp", cbd)
    flow("gp", "sp", lk.igs)
    flow("gp", "dp", lk.igd)
    flow("gp", "bp", lk.igb)
    if mode > 0:
        flow("gp", "sp", lk.igcs)
        flow("gp", "dp", lk.igcd)
    else:
        flow("gp", "dp", lk.igcs)
        flow("gp", "sp", lk.igcd)

    gcrg = zero
    if inst.rgatemod > 1 or inst.trnqsmod != 0 or inst.acnqsmod != 0:
        gcrg = gate_resistance_conductance(ops, ch)
    if inst.rgatemod == 2:
        flow("g", "gp", gcrg * (vges - vgs))
    elif inst.rgatemod == 3:
        flow("gm", "gp", gcrg * (vgms - vgs))

    gstot = gdtot = zero
    if p.rdsmod != 0:
        gstot, gdtot = source_drain_conductances(ops, vgs, vbs, vgd, vbd)
        flow("s", "sp", gstot * vses)
        flow("d", "dp", gdtot * (vdes - vds))

    gtau = taunet = zero
    if inst.trnqsmod != 0:
        gtau = gcrg / coxwl(ops) * SCALING_FACTOR
    elif inst.acnqsmod != 0 and gcrg > 0.0:
        taunet = coxwl(ops) / gcrg

    slot = {name: zero for name in CHARGE_SLOTS}
    qs_slot = zero
    intrinsic = (zero, zero, zero, zero)
    qbs = qbd = zero
    dxpart = 0.4 if mode > 0 else 0.6
    if charges:
        qi = intrinsic_charge(ops, ch, vds_m, vbs_m)
        qg_int, qb_int = qi.qgate, qi.qbulk
        if mode > 0:
            qd_int = qi.qdrn
            qs_int = -(qg_int + qb_int + qd_int)
        else:
            qs_int = qi.qdrn
            qd_int = -(qg_int + qb_int + qs_int)
        intrinsic = (qg_int, qd_int, qs_int, qb_int)

        if inst.rgatemod == 3:
            qgdo, qgso = overlap_charges(ops, vgmd, vgms)
        else:
            qgdo, qgso = overlap_charges(ops, vgd, vgs)
        cgbo = s.cgbo

        qgmid = zero
        if inst.trnqsmod != 0:
            qcheq = -(qb_int + qg_int)
            slot["qcheq"] = qcheq
            slot["qcdump"] = qdef * SCALING_FACTOR
            part = nqs_partition(ops, qi.qdrn, qcheq)
            dxpart = part if mode > 0 else 1.0 - part
            if inst.rgatemod == 3:
                qgmb = cgbo * vgmb
                qgate = zero
                qgmid = qgdo + qgso + qgmb
                qbulk = -qgmb
            else:
                qgb = cgbo * vgb
                qgate = qgdo + qgso + qgb
                qbulk = -qgb
            qdrn = -qgdo
            qsrc = -qgso
        else:
            if inst.rgatemod == 3:
                qgmb = cgbo * vgmb
                qgmid = qgdo + qgso + qgmb
                qgate = qg_int
                qbulk = qb_int - qgmb
            else:
                qgb = cgbo * vgb
                qgate = qg_int + qgdo + qgso + qgb
                qbulk = qb_int - qgb
            qdrn = qd_int - qgdo
            qsrc = qs_int - qgso

        qbs, qbd = junction_charges(ops, vbs_jct, vbd_jct)
        slot["qg"] = qgate
        slot["qd"] = qdrn - qbd
        slot["qgmid"] = qgmid
        slot["qbs"] = qbs
        slot["qbd"] = qbd
        if inst.rbodymod == 0:
            slot["qb"] = qbulk + qbd + qbs
        else:
            slot["qb"] = qbulk
        qs_slot = qsrc - qbs

    if inst.trnqsmod != 0:
        relax = gtau * qdef
        current["q"] = current["q"] + relax
        current["dp"] = current["dp"] + dxpart * relax
        current["sp"] = current["sp"] + (1.0 - dxpart) * relax
        current["gp"] = current["gp"] - relax

    outputs = jnp.concatenate([
        jnp.stack([current[name] for name in NODES]),
        jnp.stack([slot[name] for name in CHARGE_SLOTS]),
        jnp.stack([channel]),
        jnp.stack(intrinsic),
        jnp.stack([cbs, cbd]),
    ])

    t0 = ch.abulk0 * s.abulkCVfactor
    extras = {
        "von": ch.von,
        "vth": ch.vth,
        "vdsat": ch.vdsat,
        "vdseff": ch.vdseff,
        "vgsteff": ch.vgsteff,
        "vbseff": ch.vbseff,
        "abulk": ch.abulk,
        "ueff": ch.ueff,
        "rds": ch.rds,
        "beta": ch.beta,
        "ids": ch.cdrain,
        "isub": ch.isub,
        "igidl": lk.igidl,
        "igisl": lk.igisl,
        "igs": lk.igs,
        "igd": lk.igd,
        "igb": lk.igb,
        "igcs": lk.igcs,
        "igcd": lk.igcd,
        "gcrg": gcrg,
        "gtau": gtau,
        "taunet": taunet,
        "gstot": gstot,
        "gdtot": gdtot,
        "qs": qs_slot,
        "qbs": qbs,
        "qbd": qbd,
        "dxpart": dxpart + zero,
        "qinv": _inversion_charge(ops, ch, t0, vds_m),
        "noiGd0": inst.nf * ch.beta * ch.vgsteff / (1.0 + ch.gche * ch.rds),
    }
    return outputs, extras


def _inversion_charge(ops, ch, abulk_cv, vds):
    """Channel inversion charge used by the charge-based thermal noise model."""
    s = ops.s
    vdseff = smooth_vdseff(ch.vgsteff / abulk_cv, vds, DELTA_4)
    t0 = abulk_cv * vdseff
    t1 = 12.0 * (ch.vgsteff - 0.5 * t0 + 1.0e-20)
    t3 = t0 * vdseff / t1
    return ch.coxeff * s.weffCV * ops.inst.nf * s.leffCV * (ch.vgsteff - 0.5 * t0 + abulk_cv * t3)


def _split(outputs):
    n_nodes = len(NODES)
    n_slots = len(CHARGE_SLOTS)
    i = 0
    currents = outputs[i:i + n_nodes]
    i += n_nodes
    charges = outputs[i:i + n_slots]
    i += n_slots
    channel = outputs[i]
    i += 1
    intrinsic = outputs[i:i + 4]
    i += 4
    junctions = outputs[i:i + 2]
    return currents, charges, channel, intrinsic, junctions


def evaluate(model, inst, sizes, temps, voltages: BranchVoltages, *, gmin: float = DEFAULT_GMIN,
             charges: bool = True):
    """Evaluate one device at ``voltages``.

    Args:
        model: Set-up Bsim4Model whose temperature data is current
        inst: InstanceParameters with resolved selectors
        sizes: Stress-corrected SizeDependentParameters of the instance
        temps: InstanceTemperature of the instance (holds ``sizes``)
        voltages: Type-normalized branch voltages
        gmin: Junction parallel conductance
        charges: Evaluate the charges as well as the currents

    Returns:
        Tuple of (Evaluation, Jacobians)
    """
    if temps.size is not sizes:
        raise ValueError("sizes must be the size record held by temps")
    mt = model.current_temperature
    if mt is None:
        raise RuntimeError(f"{model.name}: temperature() must run before evaluation")
    ops = Operands(p=model.params, mt=mt, it=temps, inst=inst)

    mode = 1 if voltages.vds >= 0.0 else -1
    x = jnp.asarray(np.array(voltages, dtype=np.float64))

    def equations(v):
        outputs, extras = _device_equations(ops, mode, charges, gmin, v)
        return outputs, (outputs, {name: jnp.asarray(value) for name, value in extras.items()})

    jac, (outputs, extras) = jax.jacfwd(equations, has_aux=True)(x)
    values = _split(np.asarray(outputs))
    derivatives = _split(np.asarray(jac))

    evaluation = Evaluation(
        voltages=voltages,
        mode=mode,
        currents=values[0],
        charges=values[1],
        channel=float(values[2]),
        intrinsic=values[3],
        junctions=values[4],
        charges_computed=charges,
        active_slots=active_charge_slots(inst),
        extras={name: float(value) for name, value in extras.items()},
    )
    jacobians = Jacobians(*derivatives)
    return evaluation, jacobians
