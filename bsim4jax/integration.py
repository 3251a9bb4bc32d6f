"""Charge integration for transient loads.

The device stores each charge in a history slot and asks the integrator
for the matching current:

    BE:    i = ag0 * (q - q_prev),                 ag0 = 1/dt
    Trap:  i = ag0 * (q - q_prev) - i_prev,        ag0 = 2/dt

The current is written into the slot that follows the charge (``qg`` ->
``cqg``) so the next step can use it as history.
"""

from enum import Enum
from typing import NamedTuple

from bsim4jax.state import DeviceState


class IntegrationMethod(Enum):
    """Supported integration methods."""

    BACKWARD_EULER = "be"
    TRAPEZOIDAL = "trap"

    @classmethod
    def from_string(cls, s: str) -> "IntegrationMethod":
        """Parse a method name: the enum value or the long form, quotes allowed."""
        s_lower = s.lower().strip().strip("\"'")
        for method in cls:
            if s_lower in (method.value, method.name.lower()):
                return method
        raise ValueError(f"Unknown integration method: {s}. Supported: be, trap")


class IntegrationCoeffs(NamedTuple):
    """dQ/dt = ag0 * Q + ag1 * Q_prev + d1 * dQdt_prev."""

    ag0: float
    ag1: float
    d1: float


def compute_coefficients(method: IntegrationMethod, dt: float) -> IntegrationCoeffs:
    if dt <= 0.0:
        raise ValueError(f"Timestep must be positive, got {dt}")
    inv_dt = 1.0 / dt
    if method == IntegrationMethod.BACKWARD_EULER:
        return IntegrationCoeffs(ag0=inv_dt, ag1=-inv_dt, d1=0.0)
    return IntegrationCoeffs(ag0=2.0 * inv_dt, ag1=-2.0 * inv_dt, d1=-1.0)


class Integrator:
    """Integrates device charges for one timestep.

    Args:
        method: Integration method
        dt: Timestep size
    """

    def __init__(self, method: IntegrationMethod, dt: float):
        if isinstance(method, str):
            method = IntegrationMethod.from_string(method)
        self.method = method
        self.dt = dt
        self.coeffs = compute_coefficients(method, dt)

    @property
    def ag0(self) -> float:
        """Leading coefficient: d(current)/d(charge)."""
        return self.coeffs.ag0

    def integrate(self, state: DeviceState, charge_slot: str, current_slot: str) -> None:
        """Write the current of one stored charge into its history slot."""
        now, prev = state[0], state[1]
        c = self.coeffs
        q = getattr(now, charge_slot)
        history = c.ag1 * getattr(prev, charge_slot) + c.d1 * getattr(prev, current_slot)
        setattr(now, current_slot, c.ag0 * q + history)

    def __repr__(self) -> str:
        return f"Integrator({self.method.value}, dt={self.dt:g})"
