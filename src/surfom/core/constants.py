"""
Physical constants, default values, and system-wide constants.
"""
from typing import Dict, Final, Tuple

# Number of decomposability classes (carbohydrate, cellulose, lignin)
MAX_FR: Final[int] = 3

# Unit conversion
PPM_TO_FRACTION: Final[float] = 1.0e-6

# Numerical stability
REAL_EQUALITY_TOLERANCE: Final[float] = 2 * 5e-324  # twice the smallest subnormal
ACCEPTABLE_DECOMPOSITION_ERROR: Final[float] = 1e-4  # kg/ha
ROUNDING_DECIMALS: Final[int] = 8
ZERO_TILLAGE_DEPTH_MM: Final[float] = 1e-6
REMOVAL_TOLERANCE: Final[float] = 1e-6  # kg/ha
MAX_COVER: Final[float] = 0.999999999

# Residue type defaults applied when neither the entry nor its template set a value
DEFAULT_RESIDUE_FIELDS: Final[Dict[str, object]] = {
    "fraction_c": 0.4,
    "po4ppm": 0.0,
    "nh4ppm": 0.0,
    "no3ppm": 0.0,
    "specific_area": 0.0005,  # ha/kg
    "pot_decomp_rate": 0.1,  # /day
    "cf_contrib": 1,
    "fr_c": (0.2, 0.7, 0.1),
    "fr_n": (0.2, 0.7, 0.1),
    "fr_p": (0.2, 0.7, 0.1),
}

# Bounds applied to type parameters when a pool takes them up
RESIDUE_PARAMETER_BOUNDS: Final[Dict[str, Tuple[float, float]]] = {
    "fraction_c": (0.0, 1.0),
    "po4ppm": (0.0, 1000.0),
    "nh4ppm": (0.0, 2000.0),
    "no3ppm": (0.0, 1000.0),
    "specific_area": (0.0, 0.01),
    "pot_decomp_rate": (0.0, 1.0),
    "cf_contrib": (0, 1),
}

# Bounds on add requests (kg/ha, or ratio)
ADD_MASS_BOUNDS: Final[Tuple[float, float]] = (-100000.0, 100000.0)
ADD_NUTRIENT_BOUNDS: Final[Tuple[float, float]] = (-10000.0, 10000.0)
ADD_RATIO_BOUNDS: Final[Tuple[float, float]] = (0.0, 10000.0)

# Rainfall above which cumulative soil evaporation restarts (mm)
CUMEOS_RESET_RAIN_MM: Final[float] = 4.0

# Pond moisture factor
FLOODED_MOISTURE_FACTOR: Final[float] = 0.5

MANURE_POOL_NAME: Final[str] = "manure"
USER_TILLAGE_NAME: Final[str] = "User"
SURFACE_POOL_CLASS: Final[str] = "surface"
