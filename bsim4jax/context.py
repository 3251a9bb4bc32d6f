"""Simulation context passed to device loads.

Holds the host solution vector and the flags that select how a load picks
its branch voltages and whether it needs charges.
"""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from bsim4jax.config import DEFAULT_GMIN, DEFAULT_TEMPERATURE_K


class InitMode(Enum):
    """Newton initialization phase of the host.

    FLOAT is the ordinary iteration, JCT the first junction-initialized
    iteration, FIX the iteration that holds ``off`` devices at zero bias,
    SMSIG the small-signal operating-point load, TRAN the first load of a
    transient step and PRED an iteration seeded by the host predictor.
    """

    FLOAT = "float"
    JCT = "jct"
    FIX = "fix"
    SMSIG = "smsig"
    TRAN = "tran"
    PRED = "pred"


@dataclass
class SimulationContext:
    """Context of one device load.

    Attributes:
        solution: Node voltages indexed by host node id (0 is ground)
        temperature: Circuit temperature in Kelvin
        mode: Initialization phase of the iteration
        analysis: 'dc', 'tran' or 'ac'
        use_small_signal: Reuse the stored operating point
        uic: Initial conditions are imposed ("use initial conditions")
        gmin: Conductance added in parallel with each junction
        time_zero: The first timepoint of a transient run
    """

    solution: np.ndarray = field(default_factory=lambda: np.zeros(1))
    temperature: float = DEFAULT_TEMPERATURE_K
    mode: InitMode = InitMode.FLOAT
    analysis: str = "dc"
    use_small_signal: bool = False
    uic: bool = False
    gmin: float = DEFAULT_GMIN
    time_zero: bool = False

    def __post_init__(self):
        self.solution = np.asarray(self.solution, dtype=np.float64)

    @property
    def charges_needed(self) -> bool:
        """Charges are evaluated for transient, small-signal and UIC loads."""
        return (self.analysis in ("tran", "ac") or self.use_small_signal or self.uic
                or self.mode is InitMode.SMSIG)

    def voltage(self, node: int) -> float:
        return float(self.solution[node]) if node > 0 else 0.0
