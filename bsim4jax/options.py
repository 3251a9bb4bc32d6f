"""Simulator-supplied options consumed by the BSIM4 engine.

Example usage:
    options = Bsim4Options.from_dict({"gmin": "1e-13", "tnom": 25})
    model.setup(options.nominal_temperature)
"""

from dataclasses import dataclass, fields
from typing import Any, Dict

from bsim4jax.config import CELSIUS_TO_KELVIN, DEFAULT_GMIN, DEFAULT_TEMPERATURE_K
from bsim4jax.integration import IntegrationMethod


@dataclass
class Bsim4Options:
    """Options the host passes down to models and devices.

    Temperature convention: ``nominal_temperature`` is in Kelvin, while the
    ``tnom`` key accepted by :meth:`from_dict` is in Celsius as on a
    SPICE ``.options`` line.
    """

    gmin: float = DEFAULT_GMIN
    """Junction parallel conductance (S)."""

    nominal_temperature: float = DEFAULT_TEMPERATURE_K
    """Temperature (K) used for a model card without tnom."""

    method: IntegrationMethod = IntegrationMethod.TRAPEZOIDAL
    """Charge integration method of the host."""

    def __post_init__(self):
        if self.gmin < 0.0:
            raise ValueError(f"gmin must be non-negative, got {self.gmin}")
        if self.nominal_temperature <= 0.0:
            raise ValueError(
                f"nominal_temperature must be positive (Kelvin), got {self.nominal_temperature}")
        if isinstance(self.method, str):
            self.method = IntegrationMethod.from_string(self.method)

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "Bsim4Options":
        """Build options from netlist-style ``name=value`` pairs."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for name, value in values.items():
            key = name.lower()
            if key == "tnom":
                kwargs["nominal_temperature"] = float(value) + CELSIUS_TO_KELVIN
            elif key == "method":
                kwargs["method"] = IntegrationMethod.from_string(str(value))
            elif key in known:
                kwargs[key] = float(value)
            else:
                raise ValueError(f"Unknown option: {name}")
        return cls(**kwargs)
