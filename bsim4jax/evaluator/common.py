"""Traceable numeric helpers shared by the evaluator stages.

Every function here accepts JAX values and is differentiated through by
jax.jacfwd, so branch selection uses Python comparisons on the primal value
and the arithmetic uses jnp.
"""

from typing import NamedTuple

import jax.numpy as jnp

from bsim4jax.config import EXP_THRESHOLD, MAX_EXP, MIN_EXP


class Operands(NamedTuple):
    """Bias-independent inputs of one evaluation.

    Attributes:
        p: Resolved model ParameterSet
        mt: ModelTemperature at the circuit temperature
        it: InstanceTemperature of the device
        inst: InstanceParameters with resolved selectors
    """

    p: object
    mt: object
    it: object
    inst: object

    @property
    def s(self):
        return self.it.size


def dexp(a):
    """Exponential continued linearly above EXP_THRESHOLD."""
    if a > EXP_THRESHOLD:
        return MAX_EXP * (1.0 + a - EXP_THRESHOLD)
    if a < -EXP_THRESHOLD:
        return MIN_EXP + 0.0 * a
    return jnp.exp(a)


def smooth_max(x, floor, delta):
    """floor + 0.5 (t + sqrt(t^2 + 4 delta floor)) with t = x - floor - delta."""
    t = x - floor - delta
    return floor + 0.5 * (t + jnp.sqrt(t * t + 4.0 * delta * floor))


def soft_floor(x, limit):
    """Bound x below by ``limit`` with the (1 + 3x)/(3 + 8x) rational tail."""
    if x >= limit:
        return 1.0 + x
    return (1.0 + 3.0 * x) / (3.0 + 8.0 * x)
