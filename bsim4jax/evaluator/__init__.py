"""BSIM4 device equations, differentiated with jax.jacfwd."""

from bsim4jax.evaluator.common import Operands
from bsim4jax.evaluator.core import (
    COLUMN_NODES,
    INTRINSIC,
    INTRINSIC_NODES,
    NODE_INDEX,
    NODES,
    SLOT_NODES,
    Evaluation,
    Jacobians,
    active_charge_slots,
    evaluate,
)

__all__ = [
    "COLUMN_NODES",
    "INTRINSIC",
    "INTRINSIC_NODES",
    "NODE_INDEX",
    "NODES",
    "SLOT_NODES",
    "Evaluation",
    "Jacobians",
    "Operands",
    "active_charge_slots",
    "evaluate",
]
