"""SPICE-compatible voltage limiting for Newton-Raphson convergence.

These functions implement the classic SPICE limiting algorithms (fetlim,
limvds, pnjlim) used by the BSIM4 load routine. They compress large voltage
changes between Newton iterations so the device equations are never
evaluated far from the last operating point.

PN junction currents are exponential in voltage:
    I = Is * (exp(V/Vt) - 1)

so an unlimited step of a few hundred millivolts can change the junction
current by many orders of magnitude. pnjlim compresses such steps
logarithmically; fetlim and limvds bound the gate and drain steps relative
to the threshold voltage.

The three limiters are elementwise jnp kernels, so they accept scalars or
arrays of branch voltages alike.
"""

from typing import Tuple

import jax.numpy as jnp
from jax import Array

from bsim4jax.state import BranchVoltages, StateView

# The limiter returns the same branch set it receives
LimitedVoltages = BranchVoltages


def fetlim(vnew: Array, vold: Array, vto: float) -> Array:
    """FET gate voltage limiting (SPICE3 DEVfetlim).

    The allowed step depends on where the previous voltage sits relative to
    the threshold ``vto``:

    1. Strongly on (vold >= vto + 3.5): steps are bounded by a window that
       grows with the gate overdrive; turning off stops at vto + 2.
    2. Middle region (vto <= vold < vto + 3.5): decreasing steps stop at
       vto - 0.5, increasing steps at vto + 4.
    3. Off (vold < vto): large decreasing steps are bounded; increasing
       steps stop just above threshold (vto + 0.5).

    Args:
        vnew: Proposed gate voltage (from NR step)
        vold: Gate voltage of the previous iteration
        vto: Threshold voltage (the device's von)

    Returns:
        Limited gate voltage
    """
    vnew = jnp.asarray(vnew)
    vtsthi = jnp.abs(2.0 * (vold - vto)) + 2.0
    vtstlo = vtsthi / 2.0 + 2.0
    vtox = vto + 3.5
    delv = vnew - vold

    # Strongly on: going off stops at vto + 2, staying on is windowed
    going_off = jnp.where(
        vnew >= vtox,
        jnp.where(-delv > vtstlo, vold - vtstlo, vnew),
        jnp.maximum(vnew, vto + 2.0),
    )
    strong = jnp.where(
        delv <= 0.0,
        going_off,
        jnp.where(delv >= vtsthi, vold + vtsthi, vnew),
    )

    middle = jnp.where(delv <= 0.0, jnp.maximum(vnew, vto - 0.5), jnp.minimum(vnew, vto + 4.0))

    vtemp = vto + 0.5
    off = jnp.where(
        delv <= 0.0,
        jnp.where(-delv > vtsthi, vold - vtsthi, vnew),
        jnp.where(vnew <= vtemp, jnp.where(delv > vtstlo, vold + vtstlo, vnew), vtemp),
    )

    return jnp.where(vold >= vto, jnp.where(vold >= vtox, strong, middle), off)


def limvds(vnew: Array, vold: Array) -> Array:
    """Drain-source voltage limiting (SPICE3 DEVlimvds).

    Above 3.5 V an increasing step may at most triple the voltage (plus 2 V)
    and a decreasing step below 3.5 V stops at 2 V. Below 3.5 V steps are
    bounded to [-0.5, 4] V.

    Args:
        vnew: Proposed drain-source voltage
        vold: Drain-source voltage of the previous iteration

    Returns:
        Limited drain-source voltage
    """
    vnew = jnp.asarray(vnew)
    high = jnp.where(
        vnew > vold,
        jnp.minimum(vnew, 3.0 * vold + 2.0),
        jnp.where(vnew < 3.5, jnp.maximum(vnew, 2.0), vnew),
    )
    low = jnp.where(vnew > vold, jnp.minimum(vnew, 4.0), jnp.maximum(vnew, -0.5))
    return jnp.where(vold >= 3.5, high, low)


def pnjlim(vnew: Array, vold: Array, vt: float, vcrit: float) -> Tuple[Array, Array]:
    """PN junction voltage limiting (SPICE3 DEVpnjlim).

    Applies logarithmic damping when the proposed voltage is above the
    critical voltage and the step exceeds two thermal voltages:

    - vold > 0: vold + vt * log(1 + delta/vt), or vcrit when the argument
      is not positive
    - vold <= 0: vt * log(vnew/vt)

    Args:
        vnew: Proposed junction voltage
        vold: Junction voltage of the previous iteration
        vt: Thermal voltage (kT/q)
        vcrit: Critical voltage above which limiting is applied

    Returns:
        Tuple of (limited voltage, whether limiting was applied)
    """
    vnew = jnp.asarray(vnew)
    delta_v = vnew - vold
    applied = (vnew > vcrit) & (jnp.abs(delta_v) > vt + vt)

    arg = 1.0 + delta_v / vt
    from_forward = jnp.where(arg > 0.0, vold + vt * jnp.log(jnp.maximum(arg, 1e-30)), vcrit)
    from_reverse = vt * jnp.log(jnp.maximum(vnew / vt, 1e-30))
    limited = jnp.where(vold > 0.0, from_forward, from_reverse)

    return jnp.where(applied, limited, vnew), applied


def limit_voltages(
    proposed: BranchVoltages,
    previous: StateView,
    von: float,
    vcrit: float,
    rgatemod: int,
    rbodymod: int,
    rdsmod: int,
    vt: float,
) -> Tuple[LimitedVoltages, bool]:
    """Apply the BSIM4 limiting sequence to one Newton step.

    The gate voltage is limited against ``von`` on the side of the channel
    that currently acts as source: vgs in forward mode, vgd in reverse mode.
    The drain-source voltage and the gate-resistance branches follow, then
    the body junctions are limited with pnjlim.

    Args:
        proposed: Branch voltages predicted from the new solution
        previous: Depth-0 view of the device history (last iteration)
        von: Threshold voltage of the last evaluation
        vcrit: Junction critical voltage
        rgatemod: Gate resistance model selector
        rbodymod: Body resistance model selector
        rdsmod: Bias-dependent source/drain resistance selector
        vt: Thermal voltage used by pnjlim

    Returns:
        Tuple of (limited voltages, nonconverged flag)
    """
    vds, vgs, vbs = proposed.vds, proposed.vgs, proposed.vbs
    vges, vgms = proposed.vges, proposed.vgms
    vdbs, vsbs = proposed.vdbs, proposed.vsbs
    vses, vdes = proposed.vses, proposed.vdes

    vgdo = previous.vgs - previous.vds
    vgedo = previous.vges - previous.vds
    vgmdo = previous.vgms - previous.vds
    vbd = vbs - vds
    vdbd = vdbs - vds
    vgd = vgs - vds
    vged = vges - vds
    vgmd = vgms - vds

    if previous.vds >= 0.0:
        vgs = fetlim(vgs, previous.vgs, von)
        vds = vgs - vgd
        vds = limvds(vds, previous.vds)
        vgd = vgs - vds
        if rgatemod == 3:
            vges = fetlim(vges, previous.vges, von)
            vgms = fetlim(vgms, previous.vgms, von)
        elif rgatemod in (1, 2):
            vges = fetlim(vges, previous.vges, von)
        if rdsmod != 0:
            vdes = limvds(vdes, previous.vdes)
            vses = -limvds(-vses, -previous.vses)
    else:
        vgd = fetlim(vgd, vgdo, von)
        vds = vgs - vgd
        vds = -limvds(-vds, -previous.vds)
        vgs = vgd + vds
        if rgatemod == 3:
            vged = fetlim(vged, vgedo, von)
            vges = vged + vds
            vgmd = fetlim(vgmd, vgmdo, von)
            vgms = vgmd + vds
        elif rgatemod in (1, 2):
            vged = fetlim(vged, vgedo, von)
            vges = vged + vds
        if rdsmod != 0:
            vdes = -limvds(-vdes, -previous.vdes)
            vses = limvds(vses, previous.vses)

    if vds >= 0.0:
        vbs, limited = pnjlim(vbs, previous.vbs, vt, vcrit)
        if rbodymod != 0:
            vdbs, limited_d = pnjlim(vdbs, previous.vdbs, vt, vcrit)
            vsbs, limited_s = pnjlim(vsbs, previous.vsbs, vt, vcrit)
            limited = limited_d | limited_s
    else:
        vbd, limited = pnjlim(vbd, previous.vbd, vt, vcrit)
        vbs = vbd + vds
        if rbodymod != 0:
            vdbd, limited_d = pnjlim(vdbd, previous.vdbd, vt, vcrit)
            vdbs = vdbd + vds
            vsbdo = previous.vsbs - previous.vds
            vsbd, limited_s = pnjlim(vsbs - vds, vsbdo, vt, vcrit)
            vsbs = vsbd + vds
            limited = limited_d | limited_s

    limited_voltages = LimitedVoltages(
        vds=float(vds),
        vgs=float(vgs),
        vbs=float(vbs),
        vges=float(vges),
        vgms=float(vgms),
        vdbs=float(vdbs),
        vsbs=float(vsbs),
        vses=float(vses),
        vdes=float(vdes),
        qdef=proposed.qdef,
    )
    return limited_voltages, bool(limited)
