"""bsim4jax: BSIM4 v4.8 MOSFET compact model with JAX-derived Jacobians"""

import jax

from bsim4jax.logging import logger

__version__ = "0.1.0"


def _backend_supports_x64() -> bool:
    """Whether the default JAX backend has native float64.

    Metal and TPU backends do not; CPU and CUDA do.
    """
    backend = jax.default_backend().lower()
    if backend in ("metal", "tpu", "iree_metal"):
        return False
    for d in jax.devices():
        if "metal" in getattr(d, "platform", "").lower():
            return False
    return True


def configure_precision(force_x64: bool | None = None) -> bool:
    """Configure JAX precision based on backend capabilities.

    Args:
        force_x64: If True, force x64 even on unsupported backends (may fail).
                   If False, force x32. If None (default), auto-detect.

    Returns:
        True if x64 is enabled, False otherwise.

    Called automatically on import. Device equations span many decades
    (junction currents near 1e-15 A next to mA drain currents), so 32-bit
    results are only indicative.
    """
    if force_x64 is not None:
        enable_x64 = force_x64
    else:
        enable_x64 = _backend_supports_x64()

    if enable_x64:
        logger.debug("Using 64-bit float precision")
    else:
        logger.warning("Using 32-bit float precision")

    jax.config.update("jax_enable_x64", enable_x64)
    return enable_x64


configure_precision()

from bsim4jax.cache import SizeParameterCache, size_key  # noqa: E402
from bsim4jax.context import InitMode, SimulationContext  # noqa: E402
from bsim4jax.device import Bsim4Device, LoadResult  # noqa: E402
from bsim4jax.errors import (  # noqa: E402
    Bsim4Error,
    ClampedWarning,
    FatalParameterError,
    GeometryError,
    ModelError,
)
from bsim4jax.integration import IntegrationMethod, Integrator  # noqa: E402
from bsim4jax.model import Bsim4Model  # noqa: E402
from bsim4jax.options import Bsim4Options  # noqa: E402
from bsim4jax.parameters import InstanceParameters, ModelParameters  # noqa: E402
from bsim4jax.stamp import StampAccumulator, Stamps  # noqa: E402
from bsim4jax.state import BranchVoltages, DeviceState  # noqa: E402

__all__ = [
    "BranchVoltages",
    "Bsim4Device",
    "Bsim4Error",
    "Bsim4Model",
    "Bsim4Options",
    "ClampedWarning",
    "DeviceState",
    "FatalParameterError",
    "GeometryError",
    "InitMode",
    "InstanceParameters",
    "IntegrationMethod",
    "Integrator",
    "LoadResult",
    "ModelError",
    "ModelParameters",
    "SimulationContext",
    "SizeParameterCache",
    "StampAccumulator",
    "Stamps",
    "configure_precision",
    "size_key",
    "__version__",
]
