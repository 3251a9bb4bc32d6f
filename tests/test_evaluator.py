"""Tests for the device equations and their autodiff Jacobians.

Covers the bias scenarios of a default 5 um x 5 um device, source/drain
symmetry, continuity across the region boundaries, monotonicity of the
output characteristic and conservation of the terminal charges.
"""

import numpy as np
import pytest

from bsim4jax import Bsim4Model
from bsim4jax.evaluator import INTRINSIC, evaluate
from bsim4jax.state import CHARGE_SLOTS

from conftest import branch_voltages


def run(device, vds, vgs, vbs=0.0, charges=True):
    return evaluate(device.model, device.instance, device.temps.size, device.temps,
                    branch_voltages(vds, vgs, vbs), charges=charges)


class TestOnState:
    """NMOS, W = L = 5 um, Vgs = Vds = 1.2 V, Vbs = 0, T = 300 K."""

    def test_drain_current_and_conductances(self, make_device, op_at):
        device = make_device(temp=300.0)
        op = op_at(device, 1.2, 1.2)
        assert op["id"] > 0.0
        assert op["gm"] > 0.0
        assert op["gds"] > 0.0
        assert op["von"] == pytest.approx(op["vth"], rel=0.05)

    def test_threshold_near_vth0(self, make_device, op_at):
        model = Bsim4Model(vth0=0.7).setup()
        op = op_at(make_device(model=model, temp=300.0), 1.2, 1.2)
        assert 0.3 < op["vth"] < 1.0

    def test_threshold_from_flat_band_when_not_given(self, make_device):
        # vth0 = vfb + phi + k1 * sqrt(phi) with the default vfb of -1 V
        it = make_device().temps
        s = it.size
        assert s.vth0 == pytest.approx(-1.0 + s.phi + s.k1 * s.sqrtPhi)
        assert 0.0 < s.vth0 < 0.4

    def test_pmos_mirror(self, make_device, pmos_model, op_at):
        device = make_device(model=pmos_model, temp=300.0)
        op = op_at(device, 1.2, 1.2)
        # type-normalized bias 1.2 V is -1.2 V physical on a PMOS
        assert op["vgs"] == pytest.approx(-1.2)
        assert op["id"] < 0.0
        assert op["gm"] > 0.0

    def test_off_state_current_is_small(self, make_device, op_at):
        device = make_device()
        on = op_at(device, 1.2, 1.2)["id"]
        off = op_at(device, 1.2, 0.0)["id"]
        assert 0.0 <= off < 1e-3 * on


class TestZeroDrainBias:
    def test_no_current_at_vds_zero(self, make_device, op_at):
        op = op_at(make_device(), 0.0, 1.2)
        assert op["id"] == 0.0
        assert op["vdseff"] == 0.0

    def test_conductance_survives_at_vds_zero(self, make_device, op_at):
        op = op_at(make_device(), 0.0, 1.2)
        assert op["gds"] > 0.0

    @pytest.mark.parametrize("capmod", [0, 1, 2])
    def test_symmetric_drain_source_charges(self, capmod, make_device, op_at):
        model = Bsim4Model(capmod=capmod).setup()
        op = op_at(make_device(model=model), 0.0, 1.2)
        scale = abs(op["cggb"])
        assert op["cdgb"] == pytest.approx(op["csgb"], abs=1e-6 * scale)


class TestSymmetry:
    def test_swapping_drain_and_source(self, make_device):
        device = make_device()
        forward, fj = run(device, 0.5, 1.0, 0.0)
        # same terminals with the roles of drain and source exchanged
        reverse, rj = run(device, -0.5, 0.5, -0.5)
        assert forward.mode == 1 and reverse.mode == -1
        assert reverse.channel == pytest.approx(-forward.channel, rel=1e-9)

        qg, qd, qs, qb = (INTRINSIC.index(n) for n in ("qg", "qd", "qs", "qb"))
        assert reverse.intrinsic[qd] == pytest.approx(forward.intrinsic[qs], rel=1e-9)
        assert reverse.intrinsic[qs] == pytest.approx(forward.intrinsic[qd], rel=1e-9)
        assert reverse.intrinsic[qg] == pytest.approx(forward.intrinsic[qg], rel=1e-9)
        assert reverse.intrinsic[qb] == pytest.approx(forward.intrinsic[qb], rel=1e-9)


class TestContinuity:
    """No jump larger than what the local derivative allows."""

    @staticmethod
    def _assert_lipschitz(values, slopes, step):
        values = np.asarray(values)
        slopes = np.abs(np.asarray(slopes))
        jumps = np.abs(np.diff(values))
        bound = 1.5 * np.maximum(slopes[:-1], slopes[1:]) * step + 1e-15
        assert np.all(jumps <= bound)

    def test_across_threshold(self, make_device, op_at):
        device = make_device()
        vth = op_at(device, 0.05, 1.0)["vth"]
        step = 2e-3
        points = [op_at(device, 0.05, vgs) for vgs in np.arange(vth - 0.05, vth + 0.05, step)]
        self._assert_lipschitz([p["id"] for p in points], [p["gm"] for p in points], step)
        vgsteff = [p["vgsteff"] for p in points]
        assert all(b > a for a, b in zip(vgsteff, vgsteff[1:]))

    def test_across_saturation(self, make_device, op_at):
        device = make_device()
        vdsat = op_at(device, 1.0, 1.2)["vdsat"]
        step = 5e-3
        points = [op_at(device, vds, 1.2) for vds in np.arange(vdsat - 0.1, vdsat + 0.1, step)]
        self._assert_lipschitz([p["id"] for p in points], [p["gds"] for p in points], step)
        vdseff = [p["vdseff"] for p in points]
        assert all(b >= a for a, b in zip(vdseff, vdseff[1:]))

    def test_across_zero_body_bias(self, make_device, op_at):
        device = make_device()
        step = 5e-3
        points = [op_at(device, 0.5, 1.2, vbs) for vbs in np.arange(-0.05, 0.05, step)]
        self._assert_lipschitz([p["id"] for p in points], [p["gmbs"] for p in points], step)


class TestMonotonicity:
    def test_current_rises_to_saturation(self, make_device, op_at):
        device = make_device()
        vdsat = op_at(device, 1.0, 1.2)["vdsat"]
        currents = [op_at(device, vds, 1.2)["id"] for vds in np.linspace(0.0, vdsat, 15)]
        assert all(b >= a for a, b in zip(currents, currents[1:]))

    def test_output_conductance_in_saturation(self, make_device, op_at):
        device = make_device()
        vdsat = op_at(device, 1.0, 1.2)["vdsat"]
        for vds in np.linspace(vdsat + 0.1, vdsat + 1.0, 5):
            assert op_at(device, vds, 1.2)["gds"] >= -1e-12


class TestChargeConservation:
    @pytest.mark.parametrize("capmod", [0, 1, 2])
    @pytest.mark.parametrize("xpart", [0.0, 0.5, 1.0])
    def test_terminal_charges_sum_to_zero(self, capmod, xpart, make_device):
        model = Bsim4Model(capmod=capmod, xpart=xpart).setup()
        device = make_device(model=model)
        for vds, vgs, vbs in ((0.5, 1.2, 0.0), (-0.3, 0.8, -0.2), (1.0, -0.5, 0.0)):
            evaluation, jacobians = run(device, vds, vgs, vbs)
            scale = np.max(np.abs(evaluation.intrinsic)) + 1e-30
            assert abs(np.sum(evaluation.intrinsic)) <= 1e-9 * scale

            slots = evaluation.charges
            total = (slots[CHARGE_SLOTS.index("qg")] + slots[CHARGE_SLOTS.index("qd")]
                     + slots[CHARGE_SLOTS.index("qb")] + evaluation.extras["qs"])
            assert abs(total) <= 1e-9 * (np.max(np.abs(slots)) + 1e-30)

            # capacitance rows of a conserved charge set add up to zero
            assert np.allclose(np.sum(jacobians.intrinsic, axis=0), 0.0,
                               atol=1e-9 * np.max(np.abs(jacobians.intrinsic)))

    def test_negative_xpart_disables_channel_charge(self, make_device):
        model = Bsim4Model(xpart=-1.0).setup()
        evaluation, _ = run(make_device(model=model), 0.5, 1.2)
        assert np.all(evaluation.intrinsic == 0.0)


class TestEvaluationOptions:
    def test_charges_can_be_skipped(self, make_device):
        evaluation, jacobians = run(make_device(), 0.5, 1.2, charges=False)
        assert not evaluation.charges_computed
        assert np.all(evaluation.charges == 0.0)
        assert np.all(jacobians.charges == 0.0)

    def test_jacobian_matches_finite_difference(self, make_device):
        device = make_device()
        base, jacobians = run(device, 0.6, 1.0)
        h = 1e-6
        plus, _ = run(device, 0.6, 1.0 + h)
        minus, _ = run(device, 0.6, 1.0 - h)
        # vgs column, with vges/vgms moved along (gate resistance is off)
        numeric = (plus.channel - minus.channel) / (2.0 * h)
        analytic = jacobians.channel[1] + jacobians.channel[3] + jacobians.channel[4]
        assert analytic == pytest.approx(numeric, rel=1e-4)
