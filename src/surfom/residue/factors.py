"""
Environmental limiting factors and ground cover for surface residues.

All factors are dimensionless in [0, 1] and are silently clamped.
"""
import logging
from typing import Iterable

import numpy as np

from surfom.core.constants import FLOODED_MOISTURE_FACTOR, MAX_COVER
from surfom.core.mathutils import add_cover, bound, divide
from surfom.residue.pools import ResiduePool

logger = logging.getLogger(__name__)


def temperature_factor(max_temperature_c: float, min_temperature_c: float, opt_temp: float) -> float:
    """
    Temperature limitation of decomposition.

    Quadratic in mean air temperature up to the optimum, zero at or
    below 0 oC.
    """
    avg_temp = (max_temperature_c + min_temperature_c) / 2.0
    if avg_temp <= 0.0:
        return 0.0
    return bound(np.power(avg_temp / opt_temp, 2.0), 0.0, 1.0)


def moisture_factor(cumulative_eos: float, cum_eos_max: float, pond_active: bool = False) -> float:
    """Moisture limitation from cumulative soil evaporation since the last wetting"""
    if pond_active:
        return FLOODED_MOISTURE_FACTOR
    return bound(1.0 - divide(cumulative_eos, cum_eos_max), 0.0, 1.0)


def contact_factor(pools: Iterable[ResiduePool], crit_residue_wt: float) -> float:
    """
    Soil contact limitation.

    Above a critical lying mass only the bottom layer of residue touches
    the soil. Pools whose type does not contribute are ignored.
    """
    effective_wt = sum(pool.lying_sum("amount") * pool.residue_type.cf_contrib for pool in pools)
    if effective_wt <= crit_residue_wt:
        return 1.0
    return bound(divide(crit_residue_wt, effective_wt, 1.0), 0.0, 1.0)


def cn_ratio(pool: ResiduePool) -> float:
    """C:N of lying residue including mineral N carried on the pool"""
    total_n = pool.lying_sum("n") + pool.mineral_n
    return divide(pool.lying_sum("c"), total_n)


def cn_ratio_factor(pool: ResiduePool, cnrf_coeff: float, cnrf_optcn: float) -> float:
    """Nitrogen limitation, falling exponentially above the optimum C:N"""
    if cnrf_optcn == 0:
        return 1.0
    cnr = cn_ratio(pool)
    return bound(np.exp(-cnrf_coeff * (cnr - cnrf_optcn) / cnrf_optcn), 0.0, 1.0)


def pool_cover(pool: ResiduePool, standing_extinct_coeff: float) -> float:
    """
    Fraction of ground covered by one pool (Gregory 1982).

    Lying and standing material each intercept ``1 - exp(-A * mass)``,
    with standing mass further scaled by the extinction coefficient.
    """
    area = pool.residue_type.specific_area
    cover_lying = 1.0 - np.exp(-area * pool.lying_sum("amount"))
    cover_standing = 1.0 - np.exp(-standing_extinct_coeff * area * pool.standing_sum("amount"))
    return bound(add_cover(cover_lying, cover_standing), 0.0, 1.0)


def total_cover(pools: Iterable[ResiduePool], standing_extinct_coeff: float) -> float:
    """Combined cover of all pools, never quite reaching full cover"""
    cover = 0.0
    for pool in pools:
        cover = add_cover(cover, pool_cover(pool, standing_extinct_coeff))
    return bound(cover, 0.0, MAX_COVER)
