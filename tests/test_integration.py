"""Tests for charge integration and engine options."""

import pytest

from bsim4jax import Bsim4Options, DeviceState
from bsim4jax.integration import IntegrationMethod, Integrator, compute_coefficients


class TestIntegrationCoefficients:
    def test_backward_euler_coefficients(self):
        dt = 1e-12
        coeffs = compute_coefficients(IntegrationMethod.BACKWARD_EULER, dt)
        assert coeffs.ag0 == pytest.approx(1.0 / dt)
        assert coeffs.ag1 == pytest.approx(-1.0 / dt)
        assert coeffs.d1 == 0.0

    def test_trapezoidal_coefficients(self):
        dt = 1e-12
        coeffs = compute_coefficients(IntegrationMethod.TRAPEZOIDAL, dt)
        assert coeffs.ag0 == pytest.approx(2.0 / dt)
        assert coeffs.d1 == -1.0

    def test_invalid_timestep(self):
        with pytest.raises(ValueError):
            compute_coefficients(IntegrationMethod.TRAPEZOIDAL, 0.0)


class TestMethodParsing:
    @pytest.mark.parametrize("name,expected", [
        ("be", IntegrationMethod.BACKWARD_EULER),
        ("Backward_Euler", IntegrationMethod.BACKWARD_EULER),
        ("TRAP", IntegrationMethod.TRAPEZOIDAL),
        ("'trapezoidal'", IntegrationMethod.TRAPEZOIDAL),
    ])
    def test_names(self, name, expected):
        assert IntegrationMethod.from_string(name) is expected

    @pytest.mark.parametrize("name", ["gear7", "euler", "am2"])
    def test_unknown(self, name):
        with pytest.raises(ValueError):
            IntegrationMethod.from_string(name)


class TestIntegrator:
    def test_backward_euler_current(self):
        state = DeviceState()
        state[1].qg = 1e-15
        state[0].qg = 3e-15
        integrator = Integrator("be", 1e-9)
        assert integrator.integrate(state, "qg", "cqg") is None
        assert state[0].cqg == pytest.approx(2e-15 / 1e-9)
        assert state[1].cqg == 0.0

    def test_trapezoidal_uses_previous_current(self):
        state = DeviceState()
        state[1].qg = 1e-15
        state[1].cqg = 1e-6
        state[0].qg = 3e-15
        Integrator(IntegrationMethod.TRAPEZOIDAL, 1e-9).integrate(state, "qg", "cqg")
        assert state[0].cqg == pytest.approx(2.0 * 2e-15 / 1e-9 - 1e-6)


class TestOptions:
    def test_defaults(self):
        options = Bsim4Options()
        assert options.gmin == 1e-12
        assert options.nominal_temperature == pytest.approx(300.15)
        assert options.method is IntegrationMethod.TRAPEZOIDAL

    def test_from_dict_converts_tnom(self):
        options = Bsim4Options.from_dict({"tnom": 25, "gmin": "1e-13", "method": "be"})
        assert options.nominal_temperature == pytest.approx(298.15)
        assert options.gmin == 1e-13
        assert options.method is IntegrationMethod.BACKWARD_EULER

    def test_rejects_unknown_option(self):
        with pytest.raises(ValueError):
            Bsim4Options.from_dict({"reltol": 1e-3})

    def test_rejects_negative_gmin(self):
        with pytest.raises(ValueError):
            Bsim4Options(gmin=-1.0)
