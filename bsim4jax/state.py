"""Per-device history buffer and branch-voltage record.

The history is a small named record with two depths: depth 0 holds the
values of the current Newton iteration, depth 1 the values of the last
accepted timepoint. Slots are addressed by name, never by offset.
"""

from typing import Iterable, NamedTuple

import numpy as np

SLOTS = (
    "vbd",
    "vbs",
    "vgs",
    "vds",
    "vdbs",
    "vdbd",
    "vsbs",
    "vges",
    "vgms",
    "vses",
    "vdes",
    "qb",
    "cqb",
    "qg",
    "cqg",
    "qd",
    "cqd",
    "qgmid",
    "cqgmid",
    "qbs",
    "cqbs",
    "qbd",
    "cqbd",
    "qcheq",
    "cqcheq",
    "qcdump",
    "cqcdump",
    "qdef",
    "qs",
)
SLOT_INDEX = {name: i for i, name in enumerate(SLOTS)}
DEPTH = 2

# Charges whose integrated currents live in the slot that follows them
CHARGE_SLOTS = ("qb", "qg", "qd", "qgmid", "qbs", "qbd", "qcheq", "qcdump")


class BranchVoltages(NamedTuple):
    """Terminal voltages relative to the source-prime node, type-normalized.

    The field order is the order of the Jacobian columns.
    """

    vds: float = 0.0
    vgs: float = 0.0
    vbs: float = 0.0
    vges: float = 0.0
    vgms: float = 0.0
    vdbs: float = 0.0
    vsbs: float = 0.0
    vses: float = 0.0
    vdes: float = 0.0
    qdef: float = 0.0


class StateView:
    """Attribute access to one depth of a DeviceState."""

    __slots__ = ("_row",)

    def __init__(self, row: np.ndarray):
        object.__setattr__(self, "_row", row)

    def __getattr__(self, name: str) -> float:
        try:
            return float(self._row[SLOT_INDEX[name]])
        except KeyError:
            raise AttributeError(f"Unknown state slot: {name}") from None

    def __setattr__(self, name: str, value: float):
        if name not in SLOT_INDEX:
            raise AttributeError(f"Unknown state slot: {name}")
        self._row[SLOT_INDEX[name]] = value

    def as_dict(self) -> dict:
        return {name: float(self._row[i]) for i, name in enumerate(SLOTS)}


class DeviceState:
    """History buffer of one BSIM4 device.

    ``state[0].vds`` reads the current iteration, ``state[1].qg`` the charge
    of the previous accepted timepoint.
    """

    def __init__(self):
        self.values = np.zeros((DEPTH, len(SLOTS)), dtype=np.float64)

    def __getitem__(self, depth: int) -> StateView:
        return StateView(self.values[depth])

    def voltages(self, depth: int = 0) -> BranchVoltages:
        """Branch voltages stored at ``depth``."""
        view = self[depth]
        return BranchVoltages(*(getattr(view, name) for name in BranchVoltages._fields))

    def store_voltages(self, voltages: BranchVoltages):
        """Record the voltages an evaluation was made at (depth 0)."""
        now = self[0]
        for name, value in voltages._asdict().items():
            setattr(now, name, value)
        now.vbd = voltages.vbs - voltages.vds
        now.vdbd = voltages.vdbs - voltages.vds

    def copy_forward(self, names: Iterable[str]):
        """Copy the named slots from depth 0 into depth 1."""
        for name in names:
            i = SLOT_INDEX[name]
            self.values[1, i] = self.values[0, i]

    def accept(self):
        """Make the current iteration the accepted history."""
        self.values[1, :] = self.values[0, :]

    def reset(self):
        self.values[:, :] = 0.0

    def __repr__(self) -> str:
        return f"DeviceState(vds={self.values[0, SLOT_INDEX['vds']]:g}, vgs={self.values[0, SLOT_INDEX['vgs']]:g})"
