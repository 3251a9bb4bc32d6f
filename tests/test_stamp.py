"""Tests for the companion-model stamps and the host accumulator."""

import numpy as np
import pytest

from bsim4jax import Bsim4Model, InitMode, SimulationContext, StampAccumulator
from bsim4jax.stamp import Network, Stamps, _stamp_linear, stamp_ac

# d, g, s, b on their own host nodes so that every row and column is kept
NODES = (1, 2, 3, 4)


def solve_context(vd, vg, vs, vb, **kwargs):
    return SimulationContext(solution=np.array([0.0, vd, vg, vs, vb]), **kwargs)


def assembled(stamps, size=5, dtype=np.float64):
    acc = StampAccumulator(size, dtype=dtype)
    acc.add_stamps(stamps)
    return acc


class TestAccumulator:
    def test_ground_entries_dropped(self):
        acc = StampAccumulator(3)
        acc.add(0, 1, 5.0)
        acc.add(1, 0, 5.0)
        acc.add(1, 1, 2.0)
        acc.add_rhs(0, 1.0)
        acc.add_rhs(2, 3.0)
        matrix, rhs = acc.reduced()
        assert matrix.shape == (2, 2)
        assert matrix[0, 0] == 2.0
        assert matrix.sum() == 2.0
        assert list(rhs) == [0.0, 3.0]

    def test_add_stamps(self):
        acc = StampAccumulator(3)
        acc.add_stamps(Stamps(matrix={(1, 2): 1.5, (2, 2): 0.5}, rhs={1: -1.0}))
        assert acc.matrix[1, 2] == 1.5
        assert acc.rhs[1] == -1.0


class TestLinearBranches:
    def test_conductance_between_nodes(self):
        from collections import defaultdict

        matrix = defaultdict(float)
        ids = {"d": 1, "dp": 2, "s": 0, "sp": 0}
        _stamp_linear(matrix, Network(node_ids=ids, polarity=1.0,
                                      linear=(("d", "dp", 0.1), ("s", "sp", 0.2))))
        assert matrix[(1, 1)] == 0.1
        assert matrix[(2, 2)] == 0.1
        assert matrix[(1, 2)] == -0.1
        # collapsed and grounded pairs contribute nothing
        assert (0, 0) not in matrix


class TestDcStamp:
    @pytest.fixture
    def loaded(self, make_device):
        device = make_device(nodes=NODES)
        context = solve_context(1.0, 1.0, 0.2, 0.0)
        result = device.load_dc(context)
        return device, context, result

    def test_converged_first_step(self, loaded):
        _, _, result = loaded
        assert result.converged

    def test_current_conservation(self, loaded):
        _, _, result = loaded
        acc = assembled(result.stamps)
        assert np.allclose(acc.matrix.sum(axis=0), 0.0, atol=1e-12 * np.abs(acc.matrix).max())
        assert np.allclose(acc.matrix.sum(axis=1), 0.0, atol=1e-12 * np.abs(acc.matrix).max())
        assert abs(acc.rhs.sum()) <= 1e-12 * np.abs(acc.rhs).max() + 1e-20

    def test_linearization_reproduces_currents(self, loaded):
        _, context, result = loaded
        acc = assembled(result.stamps)
        currents = acc.matrix @ context.solution - acc.rhs
        drain, source = NODES[0], NODES[2]
        assert currents[drain] == pytest.approx(result.outputs["id"], rel=1e-6, abs=1e-11)
        assert currents[source] == pytest.approx(-result.outputs["id"], rel=1e-6, abs=1e-11)

    def test_pmos_rhs_sign(self, make_device, pmos_model):
        device = make_device(model=pmos_model, nodes=NODES)
        context = solve_context(-1.0, -1.0, -0.2, 0.0)
        result = device.load_dc(context)
        acc = assembled(result.stamps)
        currents = acc.matrix @ context.solution - acc.rhs
        assert result.outputs["id"] < 0.0
        assert currents[NODES[0]] == pytest.approx(result.outputs["id"], rel=1e-6, abs=1e-11)

    def test_series_resistance_is_stamped(self, make_device):
        model = Bsim4Model(rsh=10.0).setup()
        device = make_device(model=model, nodes=NODES, nrd=2.0)
        dp = device.node_ids["dp"]
        assert dp not in NODES
        context = SimulationContext(solution=np.array([0.0, 1.0, 1.0, 0.0, 0.0, 0.99]))
        result = device.load_dc(context)
        assert result.stamps.matrix[(1, dp)] == pytest.approx(-0.05)
        assert result.stamps.matrix[(1, 1)] == pytest.approx(0.05)

    def test_small_signal_mode_does_not_stamp(self, loaded):
        device, _, _ = loaded
        result = device.load_dc(SimulationContext(mode=InitMode.SMSIG))
        assert result.stamps.matrix == {}
        assert result.stamps.rhs == {}


class TestAcStamp:
    @pytest.fixture
    def biased(self, make_device):
        device = make_device(nodes=NODES)
        device.load_dc(solve_context(1.0, 1.0, 0.0, 0.0))
        return device

    def test_zero_frequency_is_real(self, biased):
        stamps = biased.load_ac(SimulationContext(analysis="ac"), 0.0)
        assert all(value.imag == 0.0 for value in stamps.matrix.values())
        assert stamps.rhs == {}

    def test_gate_capacitance(self, biased):
        omega = 2.0 * np.pi * 1e6
        stamps = biased.load_ac(SimulationContext(analysis="ac"), omega)
        gate = NODES[1]
        assert stamps.matrix[(gate, gate)].imag > 0.0
        op = biased.operating_point()
        assert stamps.matrix[(gate, gate)].imag / omega >= op["cggb"] * 0.999

    def test_acnqs_matches_quasi_static_at_low_frequency(self, make_device):
        drain, gate = NODES[0], NODES[1]
        stamps = []
        for acnqsmod in (0, 1):
            model = Bsim4Model(acnqsmod=acnqsmod).setup()
            device = make_device(model=model, nodes=NODES)
            device.load_dc(solve_context(1.0, 1.0, 0.0, 0.0))
            stamps.append(device.load_ac(SimulationContext(analysis="ac"), 1.0))
            if acnqsmod:
                assert device.operating_point()["taunet"] > 0.0
        qs, nqs = stamps
        assert nqs.matrix[(drain, gate)].real == pytest.approx(qs.matrix[(drain, gate)].real, rel=1e-6)


class TestAcNqsWeighting:
    """A bare transconductance is weighted by 1 / (1 + j*omega*tau)."""

    def _stamps(self, omega, tau, gm=1e-3):
        from bsim4jax.evaluator import NODE_INDEX, NODES as DEVICE_NODES, Evaluation, Jacobians
        from bsim4jax.state import BranchVoltages

        currents = np.zeros((len(DEVICE_NODES), 10))
        currents[NODE_INDEX["dp"], 1] = gm
        currents[NODE_INDEX["sp"], 1] = -gm
        channel = np.zeros(10)
        channel[1] = gm
        evaluation = Evaluation(
            voltages=BranchVoltages(), mode=1, currents=np.zeros(len(DEVICE_NODES)),
            charges=np.zeros(8), channel=0.0, intrinsic=np.zeros(4), junctions=np.zeros(2),
            charges_computed=True, active_slots=("qb", "qg", "qd"), extras={"taunet": tau})
        jacobians = Jacobians(currents=currents, charges=np.zeros((8, 10)), channel=channel,
                              intrinsic=np.zeros((4, 10)), junctions=np.zeros((2, 10)))
        ids = {"d": 1, "g": 2, "s": 0, "b": 0, "dp": 1, "gp": 2, "sp": 0, "bp": 0,
               "gm": 2, "db": 0, "sb": 0, "q": 0}
        return stamp_ac(evaluation, jacobians, omega, Network(ids, 1.0, acnqs=True))

    def test_corner_frequency(self):
        tau = 1e-9
        stamps = self._stamps(1.0 / tau, tau)
        assert stamps.matrix[(1, 2)] == pytest.approx(1e-3 / (1.0 + 1j))

    def test_low_frequency_unchanged(self):
        stamps = self._stamps(1.0, 1e-9)
        assert stamps.matrix[(1, 2)] == pytest.approx(1e-3)
