"""Physical constants and numerical limits used by the BSIM4 engine.

Centralizes the constants shared by the temperature derivation, the
evaluator and the companion stamp.
"""

import math

# Physical constants (CODATA 2018 exact values)
K_BOLTZMANN = 1.380649e-23  # Boltzmann constant (J/K)
Q_ELECTRON = 1.602176634e-19  # Elementary charge (C)

# Temperature in Kelvin (27C = 300.15K)
DEFAULT_TEMPERATURE_K = 300.15
CELSIUS_TO_KELVIN = 273.15

# Thermal voltage at the reference temperature, and the junction critical
# voltage derived from it (used by pnjlim)
VT0 = K_BOLTZMANN * DEFAULT_TEMPERATURE_K / Q_ELECTRON
VCRIT = VT0 * math.log(VT0 / (math.sqrt(2.0) * 1.0e-14))

# BSIM4 model constants
EPS0 = 8.85418e-12  # Vacuum permittivity (F/m)
EPSSI = 1.03594e-10  # Silicon permittivity (F/m)
KboQ = 8.617087e-5  # Kb / q where q = 1.60219e-19
Charge_q = 1.60219e-19

# Exponential guards
MAX_EXP = 5.834617425e14
MIN_EXP = 1.713908431e-15
EXP_THRESHOLD = 34.0
MAX_EXPL = 2.688117142e43
MIN_EXPL = 3.720075976e-44
EXPL_THRESHOLD = 100.0

# Smoothing parameters
DELTA_1 = 0.02
DELTA_2 = 0.02
DELTA_3 = 0.02
DELTA_4 = 0.02
MM = 3  # smooth coefficient

# Floor used when smoothing the stress coefficients
DELTA = 1.0e-9

# NQS charge node scaling
SCALING_FACTOR = 1.0e-9

# Simulator defaults
DEFAULT_GMIN = 1.0e-12
