"""
Built-in residue and tillage type tables.

Residue entries only set what differs from their template; everything
else is filled by ``ResidueTypeRegistry.fill_derived``.
"""
from typing import Dict, Final

DEFAULT_RESIDUE_TYPES: Final[Dict[str, Dict]] = {
    # Generic crop stubble, the template most crops derive from
    "crop_residue": {
        "fraction_c": 0.4,
        "po4ppm": 0.0,
        "nh4ppm": 0.0,
        "no3ppm": 0.0,
        "specific_area": 0.0005,
        "cf_contrib": 1,
        "pot_decomp_rate": 0.1,
        "fr_c": [0.2, 0.7, 0.1],
        "fr_n": [0.2, 0.7, 0.1],
        "fr_p": [0.2, 0.7, 0.1],
    },
    "wheat": {"derived_from": "crop_residue"},
    "barley": {"derived_from": "wheat"},
    "oats": {"derived_from": "wheat"},
    "canola": {"derived_from": "wheat", "specific_area": 0.0004},
    "maize": {"derived_from": "crop_residue", "specific_area": 0.0004},
    "sorghum": {"derived_from": "maize"},
    "millet": {"derived_from": "maize"},
    "rice": {"derived_from": "crop_residue", "specific_area": 0.0004, "pot_decomp_rate": 0.08},
    "sugar": {"derived_from": "crop_residue", "specific_area": 0.0007, "pot_decomp_rate": 0.05},
    "cotton": {"derived_from": "crop_residue", "specific_area": 0.0002, "pot_decomp_rate": 0.05},
    "chickpea": {"derived_from": "crop_residue", "pot_decomp_rate": 0.12},
    "soybean": {"derived_from": "chickpea"},
    "lucerne": {"derived_from": "chickpea", "specific_area": 0.0006},
    "grass": {"derived_from": "crop_residue", "specific_area": 0.0006, "pot_decomp_rate": 0.12},
    "algae": {
        "derived_from": "crop_residue",
        "specific_area": 0.0001,
        "cf_contrib": 0,
        "pot_decomp_rate": 0.2,
        "fr_c": [0.6, 0.3, 0.1],
        "fr_n": [0.6, 0.3, 0.1],
        "fr_p": [0.6, 0.3, 0.1],
    },
    "manure": {
        "fraction_c": 0.3,
        "nh4ppm": 1000.0,
        "no3ppm": 200.0,
        "po4ppm": 100.0,
        "specific_area": 0.0002,
        "cf_contrib": 0,
        "pot_decomp_rate": 0.05,
        "fr_c": [0.3, 0.6, 0.1],
        "fr_n": [0.3, 0.6, 0.1],
        "fr_p": [0.3, 0.6, 0.1],
    },
    "inert": {"pot_decomp_rate": 0.0, "cf_contrib": 0},
}

# name -> (fraction incorporated, tillage depth mm); depth 0 removes from the system
DEFAULT_TILLAGE_TYPES: Final[Dict[str, Dict[str, float]]] = {
    "chisel": {"f_incorp": 0.5, "tillage_depth_mm": 100.0},
    "disc": {"f_incorp": 0.5, "tillage_depth_mm": 100.0},
    "mouldboard": {"f_incorp": 0.9, "tillage_depth_mm": 150.0},
    "scarifier": {"f_incorp": 0.3, "tillage_depth_mm": 50.0},
    "planter": {"f_incorp": 0.1, "tillage_depth_mm": 50.0},
    "rake": {"f_incorp": 0.3, "tillage_depth_mm": 0.0},
    "burn": {"f_incorp": 0.9, "tillage_depth_mm": 0.0},
    "burn_90": {"f_incorp": 0.9, "tillage_depth_mm": 0.0},
}
