"""Pytest configuration for bsim4jax tests

Forces the CPU backend on macOS, where Metal has no float64, before JAX is
imported, then imports bsim4jax so precision is configured once.

Shared fixtures:
- nmos_model / pmos_model: default model cards, set up
- make_device: factory returning a device that is set up and at 300.15 K
- op_at: operating point of a device at type-normalized branch voltages
"""

import os
import sys

import pytest


def pytest_configure(config):
    """Configure JAX before any test module is imported."""
    if sys.platform == "darwin":
        os.environ["JAX_PLATFORMS"] = "cpu"

    import bsim4jax  # noqa: F401


@pytest.fixture
def nmos_model():
    from bsim4jax import Bsim4Model

    return Bsim4Model(type="nmos", name="nch").setup()


@pytest.fixture
def pmos_model():
    from bsim4jax import Bsim4Model

    return Bsim4Model(type="pmos", name="pch").setup()


@pytest.fixture
def make_device(nmos_model):
    """Build, set up and temperature a device.

    ``make_device(w=1e-6)`` uses the default NMOS model; pass ``model=`` to
    use another one and ``nodes=`` to choose host node ids.
    """
    from bsim4jax import Bsim4Device

    def factory(model=None, nodes=(1, 2, 0, 3), temp=300.15, name="m1", **values):
        values.setdefault("w", 5.0e-6)
        values.setdefault("l", 5.0e-6)
        device = Bsim4Device(name, model if model is not None else nmos_model, **values)
        device.setup(nodes)
        device.temperature(temp)
        return device

    return factory


def branch_voltages(vds, vgs, vbs=0.0):
    """Branch vector of a device without series, gate or body resistance."""
    from bsim4jax import BranchVoltages

    return BranchVoltages(vds=vds, vgs=vgs, vbs=vbs, vges=vgs, vgms=vgs,
                          vdbs=vbs, vsbs=vbs, vses=0.0, vdes=vds)


@pytest.fixture
def op_at():
    """Operating point of ``device`` evaluated at the given bias.

    The voltages are stored as the device's operating point and loaded in
    small-signal mode, so no limiting is applied.
    """
    from bsim4jax import InitMode, SimulationContext

    def evaluate_op(device, vds, vgs, vbs=0.0):
        device.state.store_voltages(branch_voltages(vds, vgs, vbs))
        result = device.load_dc(SimulationContext(mode=InitMode.SMSIG))
        return result.outputs

    return evaluate_op
