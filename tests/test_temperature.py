"""Tests for size- and temperature-dependent parameter derivation."""

import pytest

from bsim4jax import Bsim4Device, Bsim4Model, FatalParameterError, GeometryError
from bsim4jax.temperature import derive_size_parameters, junction_transition_voltage


class TestSizeParameters:
    def test_effective_dimensions(self, nmos_model):
        from bsim4jax.parameters import InstanceParameters

        mt = nmos_model.temperature(300.15)
        s = derive_size_parameters(nmos_model, InstanceParameters(w=5e-6, l=5e-6), mt)
        assert s.leff == pytest.approx(5e-6)
        assert s.weff == pytest.approx(5e-6)
        assert s.leffCV > 0.0
        assert s.weffCV > 0.0

    def test_binning_terms_scale_with_length(self):
        model = Bsim4Model(vth0=0.5, lvth0=1e-8).setup()  # binunit 1: micron units
        short = Bsim4Device("m1", model, w=1e-6, l=0.5e-6)
        long = Bsim4Device("m2", model, w=1e-6, l=5e-6)
        short.setup((1, 2, 0, 0))
        long.setup((1, 2, 0, 0))
        assert short.temperature(300.15).size.vth0 > long.temperature(300.15).size.vth0

    def test_negative_length_raises(self):
        model = Bsim4Model(lint=3e-6).setup()
        device = Bsim4Device("m1", model, w=5e-6, l=5e-6)
        device.setup((1, 2, 0, 0))
        with pytest.raises(GeometryError):
            device.temperature(300.15)

    def test_geometry_error_is_fatal_parameter_error(self):
        assert issubclass(GeometryError, FatalParameterError)


class TestInstanceTemperature:
    def test_delvto_shifts_threshold(self, make_device):
        base = make_device()
        shifted = make_device(name="m2", delvto=0.05)
        assert shifted.temps.vth0 == pytest.approx(base.temps.vth0 + 0.05)

    def test_mobility_falls_with_temperature(self, make_device):
        cold = make_device(temp=300.0)
        cold_u0 = cold.temps.u0temp
        hot = make_device(name="m2", temp=400.0)
        assert hot.temps.u0temp < cold_u0

    def test_junction_areas_from_layout(self, make_device):
        device = make_device(**{"as": 2e-12, "ad": 3e-12})
        assert device.temps.aseff == pytest.approx(2e-12)
        assert device.temps.adeff == pytest.approx(3e-12)

    def test_fatal_finger_count(self, make_device):
        with pytest.raises(FatalParameterError) as info:
            make_device(nf=0.5)
        assert info.value.parameter == "nf"

    def test_ngcon_reset_with_warning(self, make_device, nmos_model):
        device = make_device(ngcon=3.0)
        assert device.instance.ngcon == 1.0
        assert any(record.parameter == "ngcon" for record in nmos_model.diagnostics)

    def test_sheet_resistance_gives_drain_conductance(self):
        model = Bsim4Model(rsh=10.0).setup()
        device = Bsim4Device("m1", model, w=5e-6, l=5e-6, nrd=2.0)
        device.setup((1, 2, 0, 0))
        it = device.temperature(300.15)
        assert it.drain_conductance == pytest.approx(1.0 / 20.0)
        # no nrs and rgeomod 0: no source node and no source conductance
        assert it.source_conductance == 0.0


class TestLayoutStress:
    """Stress moves vth0 and mobility monotonically with the diffusion extent."""

    @pytest.fixture
    def stress_model(self):
        return Bsim4Model(kvth0=1e-8, ku0=1e-8, saref=1e-6, sbref=1e-6).setup()

    def _temps(self, model, **values):
        device = Bsim4Device("m1", model, w=1e-6, l=0.1e-6, **values)
        device.setup((1, 2, 0, 0))
        return device.temperature(300.15)

    def test_monotonic_in_sa_sb(self, stress_model):
        spacings = [0.2e-6, 0.5e-6, 1.0e-6, 2.0e-6]
        temps = [self._temps(stress_model, sa=sa, sb=sa) for sa in spacings]
        vth0 = [it.vth0 for it in temps]
        u0 = [it.u0temp for it in temps]
        assert all(a > b for a, b in zip(vth0, vth0[1:]))
        assert all(a > b for a, b in zip(u0, u0[1:]))

    def test_reference_spacing_is_neutral(self, stress_model):
        it = self._temps(stress_model, sa=1e-6, sb=1e-6)
        assert it.vth0 == pytest.approx(it.size.vth0)
        assert it.u0temp == pytest.approx(it.size.u0temp)

    def test_no_stress_without_sa_sb(self, stress_model):
        it = self._temps(stress_model)
        assert it.vth0 == it.size.vth0
        assert it.u0temp == it.size.u0temp
        assert it.vsattemp == it.size.vsattemp


class TestJunctionTransition:
    def test_forward_transition_above_zero(self):
        v = junction_transition_voltage(0.026, 0.1, 1e-14, 1.0)
        assert v > 0.0

    def test_larger_ijth_moves_transition_up(self):
        low = junction_transition_voltage(0.026, 0.01, 1e-14, 1.0)
        high = junction_transition_voltage(0.026, 0.1, 1e-14, 1.0)
        assert high > low
