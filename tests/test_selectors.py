"""Tests for the selector families and the optional effects they switch on.

Each selector value is evaluated over a spread of bias points and must give
finite currents and charges with a non-trivial Jacobian. Each family then
gets a physical check of what it adds.
"""

import numpy as np
import pytest

from bsim4jax import Bsim4Model, FatalParameterError, ModelError
from bsim4jax.evaluator import evaluate
from bsim4jax.evaluator.junction import diode_current
from bsim4jax.temperature import JunctionLimits

from conftest import branch_voltages

BIASES = (
    (1.2, 1.2, 0.0),
    (0.05, 0.4, -0.3),
    (-0.6, 0.9, 0.0),
    (0.8, -0.3, 0.2),
)

JUNCTIONS = {"as": 1e-11, "ad": 1e-11, "ps": 1e-5, "pd": 1e-5}

SELECTOR_CASES = [
    *[({"mobmod": m}, {}) for m in range(7)],
    *[({"diomod": m}, {}) for m in range(3)],
    *[({"tempmod": m}, {}) for m in range(4)],
    ({"gidlmod": 0, "agidl": 1e-6}, {}),
    ({"gidlmod": 1, "agidl": 1e-6}, {}),
    ({"igcmod": 1}, {}),
    ({"igcmod": 2}, {}),
    ({"igbmod": 1}, {}),
    ({"igcmod": 1, "igbmod": 1}, {}),
    ({"wpemod": 1, "kvth0we": 1e-3}, {"sc": 1e-6}),
    ({"vtl": 2e5}, {}),
    ({"lambda_": 1e-8}, {}),
    ({"dvtp0": 1e-7, "dvtp1": 2.0}, {}),
    ({"dvtp4": 1.0, "dvtp5": 0.05}, {}),
    ({"jtss": 1e-3, "jtssws": 1e-9, "jtsswgs": 1e-9}, {}),
]


def case_id(case):
    model_values, instance_values = case
    return "-".join(f"{k}={v:g}" for k, v in {**model_values, **instance_values}.items())


def run(device, vds, vgs, vbs=0.0):
    return evaluate(device.model, device.instance, device.temps.size, device.temps,
                    branch_voltages(vds, vgs, vbs))


def with_model(make_device, temp=300.15, instance=None, **model_values):
    model = Bsim4Model(**model_values).setup()
    return make_device(model=model, temp=temp, **JUNCTIONS, **(instance or {}))


class TestSelectorGrid:
    @pytest.mark.parametrize("case", SELECTOR_CASES, ids=case_id)
    def test_finite_with_jacobian(self, make_device, case):
        model_values, instance_values = case
        device = with_model(make_device, instance=instance_values, **model_values)
        for bias in BIASES:
            evaluation, jacobians = run(device, *bias)
            assert np.all(np.isfinite(np.asarray(evaluation.currents)))
            assert np.all(np.isfinite(np.asarray(evaluation.charges)))
            assert np.all(np.isfinite(np.asarray(jacobians.currents)))
            assert np.all(np.isfinite(np.asarray(jacobians.charges)))
            assert np.any(np.asarray(jacobians.currents) != 0.0)


class TestMobilityModels:
    @pytest.mark.parametrize("mobmod", range(7))
    def test_field_degrades_mobility(self, make_device, op_at, mobmod):
        device = with_model(make_device, mobmod=mobmod)
        op = op_at(device, 0.5, 1.2)
        assert 0.0 < op["ueff"] < device.temps.u0temp
        assert op["id"] > 0.0
        assert op["gm"] > 0.0

    @pytest.mark.parametrize("mobmod", [0, 1, 2])
    def test_mobility_falls_with_gate_drive(self, make_device, op_at, mobmod):
        device = with_model(make_device, mobmod=mobmod)
        assert op_at(device, 0.5, 1.6)["ueff"] < op_at(device, 0.5, 0.8)["ueff"]


class TestTemperatureModels:
    @pytest.mark.parametrize("tempmod,at", [(0, 3.3e4), (1, 1e-3), (2, 1e-3), (3, 1e-3)])
    def test_hot_device_is_slower(self, make_device, tempmod, at):
        cold = with_model(make_device, temp=300.15, tempmod=tempmod, at=at)
        hot = with_model(make_device, temp=360.0, tempmod=tempmod, at=at)
        assert hot.temps.u0temp < cold.temps.u0temp
        assert hot.temps.vsattemp < cold.temps.vsattemp


class TestJunctionDiodes:
    @pytest.mark.parametrize("diomod", [0, 1, 2])
    def test_rectifying_characteristic(self, make_device, diomod):
        device = with_model(make_device, diomod=diomod)
        currents = [float(run(device, 0.0, 0.0, vbs)[0].junctions[0]) for vbs in (-0.5, 0.3, 0.6)]
        reverse, weak, strong = currents
        assert reverse < 0.0 < weak < strong
        assert strong > 1e3 * abs(reverse)

    def test_forward_extension_is_linear(self, make_device):
        device = with_model(make_device, diomod=1, ijthsfwd=1e-6)
        p = device.model.params
        limits = device.temps.source
        vjm = limits.vjm_fwd
        i1, i2, i3 = (float(diode_current(vjm + dv, limits, 1, p.bvs, p.xjbvs, 0.0))
                      for dv in (0.1, 0.2, 0.3))
        assert i3 - i2 == pytest.approx(i2 - i1, rel=1e-9)
        assert i2 - i1 == pytest.approx(0.1 * limits.ivjm_fwd / limits.nvtm, rel=1e-9)

    @pytest.mark.parametrize("diomod", [1, 2])
    def test_bad_transition_current_raises(self, diomod):
        limits = JunctionLimits(sat_current=1e-15, nvtm=0.0259)
        with pytest.raises(ModelError):
            diode_current(0.1, limits, diomod, 10.0, 1.0, 1e-12)


class TestTrapAssistedTunneling:
    def test_adds_reverse_leakage(self, make_device):
        plain = with_model(make_device)
        tunneling = with_model(make_device, jtss=1e-3)
        base = float(run(plain, 0.0, 0.0, -0.5)[0].junctions[0])
        with_tat = float(run(tunneling, 0.0, 0.0, -0.5)[0].junctions[0])
        itat = base - with_tat
        assert itat > 0.0

    def test_grows_with_reverse_bias(self, make_device):
        plain = with_model(make_device)
        tunneling = with_model(make_device, jtss=1e-3)

        def itat(vbs):
            return (float(run(plain, 0.0, 0.0, vbs)[0].junctions[0])
                    - float(run(tunneling, 0.0, 0.0, vbs)[0].junctions[0]))

        assert itat(-1.0) > itat(-0.3) > 0.0


class TestGateInducedLeakage:
    @pytest.mark.parametrize("gidlmod", [0, 1])
    def test_grows_with_drain_gate_voltage(self, make_device, op_at, gidlmod):
        device = with_model(make_device, gidlmod=gidlmod, agidl=1e-6)
        low = op_at(device, 1.2, 0.0)["igidl"]
        high = op_at(device, 1.6, 0.0)["igidl"]
        assert high > low > 0.0

    def test_off_without_prefactor(self, make_device, op_at):
        op = op_at(with_model(make_device), 1.6, 0.0)
        assert op["igidl"] == 0.0
        assert op["igisl"] == 0.0


class TestGateTunneling:
    @pytest.mark.parametrize("igcmod", [1, 2])
    def test_channel_current_grows_with_gate(self, make_device, op_at, igcmod):
        device = with_model(make_device, igcmod=igcmod)

        def igc(vgs):
            op = op_at(device, 0.1, vgs)
            return op["igcs"] + op["igcd"]

        assert igc(1.4) > igc(1.0) > 0.0

    def test_bulk_current_grows_in_inversion(self, make_device, op_at):
        device = with_model(make_device, igbmod=1)
        assert op_at(device, 0.1, 1.8)["igb"] > op_at(device, 0.1, 1.0)["igb"] > 0.0

    def test_disabled_by_default(self, make_device, op_at):
        op = op_at(with_model(make_device), 0.1, 1.4)
        assert op["igcs"] == op["igcd"] == op["igb"] == 0.0


class TestWellProximity:
    def test_threshold_rises_near_the_well_edge(self, make_device):
        base = with_model(make_device, instance={"sc": 0.5e-6})
        near = with_model(make_device, wpemod=1, kvth0we=1e-3, instance={"sc": 0.5e-6})
        far = with_model(make_device, wpemod=1, kvth0we=1e-3, instance={"sc": 2e-6})
        assert near.temps.vth0 > far.temps.vth0 > base.temps.vth0

    def test_missing_spacing_warns(self, make_device):
        device = with_model(make_device, wpemod=1, kvth0we=1e-3)
        assert any(record.parameter == "sc" for record in device.model.diagnostics)


class TestVelocityEffects:
    def test_source_velocity_limit_lowers_current(self, make_device, op_at):
        plain = op_at(with_model(make_device), 1.2, 1.2)["id"]
        limited = op_at(with_model(make_device, vtl=2e5), 1.2, 1.2)["id"]
        assert 0.0 < limited < plain

    def test_overshoot_raises_saturation_current(self, make_device, op_at):
        plain = op_at(with_model(make_device), 1.5, 1.2)["id"]
        overshoot = op_at(with_model(make_device, lambda_=1e-8), 1.5, 1.2)["id"]
        assert overshoot > plain


class TestThresholdShifts:
    def test_pocket_implant_raises_threshold(self, make_device, op_at):
        plain = op_at(with_model(make_device), 0.05, 1.0)["vth"]
        pocket = op_at(with_model(make_device, dvtp0=1e-7), 0.05, 1.0)["vth"]
        assert pocket > plain

    def test_drain_induced_shift_grows_with_drain_bias(self, make_device, op_at):
        plain = with_model(make_device)
        dits = with_model(make_device, dvtp4=1.0, dvtp5=0.05)

        def shift(vds):
            return op_at(dits, vds, 1.0)["vth"] - op_at(plain, vds, 1.0)["vth"]

        assert shift(1.0) < shift(0.1) < 0.0
        assert shift(1.0) == pytest.approx(-0.05 * np.tanh(1.0), rel=1e-6)


class TestFatalParameters:
    @pytest.mark.parametrize("model_values,instance_values,parameter", [
        ({"pclm": -1.0}, {}, "pclm"),
        ({"delta": -0.1}, {}, "delta"),
        ({"pdits": -1.0}, {}, "pdits"),
        ({"fprout": -1.0}, {}, "fprout"),
        ({"vtss": -1.0}, {}, "vtss"),
        ({"xgl": 1e-5}, {}, "xgl"),
        ({}, {"ngcon": 0.5}, "ngcon"),
    ])
    def test_reported_with_parameter(self, make_device, model_values, instance_values, parameter):
        with pytest.raises(FatalParameterError) as info:
            with_model(make_device, instance=instance_values, **model_values)
        assert info.value.parameter == parameter

    def test_all_findings_in_one_error(self, make_device):
        with pytest.raises(FatalParameterError) as info:
            with_model(make_device, pclm=-1.0, delta=-0.1)
        assert info.value.parameter == "delta"
        assert "Pclm" in str(info.value)
        assert "Delta" in str(info.value)
