"""Companion-model stamps of one evaluated device.

Every node equation is linearized around the evaluated voltages:

    G[n, m] += dI_n/dV_m
    rhs[n]  += type * (sum_m dI_n/dV_m * x_m - I_n)

where the branch vector x holds voltages relative to the source-prime
node, so the source-prime column of a row receives minus the sum of its
other branch columns. Charges contribute ag0 * dQ/dV to the matrix and
their integrated currents to the right-hand side. The small-signal stamp
is G + j*omega*C without a right-hand side.
"""

from collections import defaultdict
from typing import Dict, NamedTuple, Tuple

import numpy as np

from bsim4jax.evaluator import COLUMN_NODES, NODE_INDEX, NODES, SLOT_NODES, Evaluation, Jacobians
from bsim4jax.evaluator.core import NQS_SLOTS, N_BRANCH
from bsim4jax.logging import logger
from bsim4jax.state import CHARGE_SLOTS, DeviceState

_CHARGE_ROW = {name: i for i, name in enumerate(CHARGE_SLOTS)}
_SP = NODE_INDEX["sp"]


class Network(NamedTuple):
    """Topology of one device in the host matrix.

    Attributes:
        node_ids: Host node id of every device node; collapsed internal
            nodes share the id of the node they alias
        polarity: +1 for NMOS, -1 for PMOS
        linear: (node a, node b, conductance) of the bias-independent
            branches: series, gate electrode and body resistances
        acnqs: The small-signal load uses the AC NQS channel model
    """

    node_ids: Dict[str, int]
    polarity: float
    linear: Tuple[Tuple[str, str, float], ...] = ()
    acnqs: bool = False


class Stamps(NamedTuple):
    """Matrix entries keyed (row, col) and right-hand side keyed by node."""

    matrix: Dict[Tuple[int, int], float]
    rhs: Dict[int, float]


def charge_rows(charge_jacobian: np.ndarray, slots) -> np.ndarray:
    """Charge derivatives of the ``slots``, gathered per device node."""
    rows = np.zeros((len(NODES), N_BRANCH), dtype=charge_jacobian.dtype)
    for name in slots:
        node, sign = SLOT_NODES[name]
        d = charge_jacobian[_CHARGE_ROW[name]]
        rows[NODE_INDEX[node]] += sign * d
        if name not in NQS_SLOTS:
            rows[_SP] -= d
    return rows


def charge_currents(state: DeviceState, slots) -> np.ndarray:
    """Integrated charge currents of the ``slots``, gathered per device node."""
    now = state[0]
    currents = np.zeros(len(NODES))
    for name in slots:
        node, sign = SLOT_NODES[name]
        cq = getattr(now, "c" + name)
        currents[NODE_INDEX[node]] += sign * cq
        if name not in NQS_SLOTS:
            currents[_SP] -= cq
    return currents


def _stamp_rows(matrix, rows: np.ndarray, ids: Dict[str, int]):
    sp = ids["sp"]
    for n, name in enumerate(NODES):
        r = ids[name]
        if r == 0:
            continue
        row = rows[n]
        for k, col in enumerate(COLUMN_NODES):
            c = ids[col]
            if c != 0 and row[k] != 0.0:
                matrix[(r, c)] += row[k]
        total = row[:N_BRANCH - 1].sum()
        if sp != 0 and total != 0.0:
            matrix[(r, sp)] -= total


def _stamp_linear(matrix, network: Network):
    ids = network.node_ids
    for a, b, g in network.linear:
        ia, ib = ids[a], ids[b]
        if ia == ib or g == 0.0:
            continue
        if ia != 0:
            matrix[(ia, ia)] += g
        if ib != 0:
            matrix[(ib, ib)] += g
        if ia != 0 and ib != 0:
            matrix[(ia, ib)] -= g
            matrix[(ib, ia)] -= g


def stamp_dc(evaluation: Evaluation, jacobians: Jacobians, state: DeviceState, integrator,
             network: Network) -> Stamps:
    """Stamp the linearized device for one Newton iteration.

    Args:
        evaluation: Primal values of the evaluation
        jacobians: Derivatives of the evaluation
        state: History whose charge-current slots are already integrated
        integrator: Integrator of the transient step, or None for DC
        network: Node ids, polarity and linear branches of the device
    """
    x = np.asarray(evaluation.voltages, dtype=np.float64)
    rows = np.array(jacobians.currents)
    currents = np.array(evaluation.currents)
    if integrator is not None and evaluation.charges_computed:
        slots = evaluation.active_slots
        rows = rows + integrator.ag0 * charge_rows(jacobians.charges, slots)
        currents = currents + charge_currents(state, slots)

    matrix = defaultdict(float)
    _stamp_rows(matrix, rows, network.node_ids)
    _stamp_linear(matrix, network)

    rhs = defaultdict(float)
    equivalent = network.polarity * (rows @ x - currents)
    for n, name in enumerate(NODES):
        r = network.node_ids[name]
        if r != 0 and equivalent[n] != 0.0:
            rhs[r] += equivalent[n]
    return Stamps(matrix=dict(matrix), rhs=dict(rhs))


def stamp_ac(evaluation: Evaluation, jacobians: Jacobians, omega: float,
             network: Network) -> Stamps:
    """Stamp the small-signal admittance G + j*omega*C at ``omega`` (rad/s).

    With the AC NQS model the channel transconductances and the intrinsic
    drain and source capacitances are weighted by 1 / (1 + j*omega*tau);
    the gate row takes what keeps the intrinsic charge conserved and the
    bulk row is left quasi-static.
    """
    conductance = np.array(jacobians.currents, dtype=np.complex128)
    capacitance = charge_rows(np.asarray(jacobians.charges, dtype=np.complex128),
                              evaluation.active_slots)

    if network.acnqs:
        tau = evaluation.extras.get("taunet", 0.0)
        factor = 1.0 / (1.0 + 1j * omega * tau) - 1.0
        dp, sp, gp = NODE_INDEX["dp"], NODE_INDEX["sp"], NODE_INDEX["gp"]
        conductance[dp] += factor * jacobians.channel
        conductance[sp] -= factor * jacobians.channel
        dqd = jacobians.intrinsic[1]
        dqs = jacobians.intrinsic[2]
        capacitance[dp] += factor * dqd
        capacitance[sp] += factor * dqs
        capacitance[gp] -= factor * (dqd + dqs)
        logger.debug(f"AC NQS weighting at omega={omega:g} with tau={tau:g}")

    matrix = defaultdict(complex)
    _stamp_rows(matrix, conductance + 1j * omega * capacitance, network.node_ids)
    _stamp_linear(matrix, network)
    return Stamps(matrix=dict(matrix), rhs={})


class StampAccumulator:
    """Dense matrix and right-hand side assembled from device stamps.

    Row and column 0 are ground; entries on them are dropped.

    Args:
        size: Number of host nodes including ground
        dtype: numpy dtype of the matrix (complex for AC)
    """

    def __init__(self, size: int, dtype=np.float64):
        self.matrix = np.zeros((size, size), dtype=dtype)
        self.rhs = np.zeros(size, dtype=dtype)

    def add(self, row: int, col: int, value):
        if row == 0 or col == 0:
            return
        self.matrix[row, col] += value

    def add_rhs(self, node: int, value):
        if node == 0:
            return
        self.rhs[node] += value

    def add_stamps(self, stamps: Stamps):
        for (row, col), value in stamps.matrix.items():
            self.add(row, col, value)
        for node, value in stamps.rhs.items():
            self.add_rhs(node, value)

    def reduced(self) -> Tuple[np.ndarray, np.ndarray]:
        """Matrix and right-hand side without the ground row and column."""
        return self.matrix[1:, 1:], self.rhs[1:]
