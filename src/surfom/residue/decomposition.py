"""
Two-phase residue decomposition.

The engine first computes a potential decomposition request from the
environmental factors without touching state. A soil nutrient model then
decides how much actually decomposes, and only that actual amount is
applied to the lying residue.
"""
import logging
from datetime import date
from typing import Dict, Optional, Tuple

from surfom.core.config import DecompositionConfig
from surfom.core.contracts import DailyWeather, PoolDecomposition, PotentialDecomposition
from surfom.core.exceptions import MassImbalanceError, NotFoundError, ErrorContext
from surfom.core.mathutils import bound, bound_check, check_non_negative, divide, reals_are_equal
from surfom.core.types import ActualDecomposition, KgPerHa, PoolName
from surfom.residue import factors
from surfom.residue.pools import PoolStore, ResiduePool

logger = logging.getLogger(__name__)


class DecompositionEngine:
    """Potential and actual decomposition of lying residue"""

    def __init__(self, config: Optional[DecompositionConfig] = None):
        self.config = config or DecompositionConfig()

    # =========================================================================
    # POTENTIAL
    # =========================================================================

    def environmental_factors(
        self,
        pools: PoolStore,
        weather: DailyWeather,
        cumulative_eos: float,
        pond_active: bool = False,
    ) -> Tuple[float, float, float]:
        """Moisture, temperature and contact factors for the day"""
        mf = factors.moisture_factor(cumulative_eos, self.config.cum_eos_max, pond_active)
        tf = factors.temperature_factor(
            weather.max_temperature_c, weather.min_temperature_c, self.config.opt_temp
        )
        cf = factors.contact_factor(pools, self.config.crit_residue_wt)
        return mf, tf, cf

    def decomposition_fraction(self, pool: ResiduePool, mf: float, tf: float, cf: float) -> float:
        """Fraction of lying residue that could decompose today"""
        if pool.lying_sum("c") < self.config.crit_min_surfom_orgC:
            # Trace residue disappears in one step
            return 1.0
        cnrf = factors.cn_ratio_factor(pool, self.config.cnrf_coeff, self.config.cnrf_optcn)
        return pool.pot_decomp_rate * mf * tf * cnrf * cf

    def compute_potential(
        self,
        pools: PoolStore,
        weather: DailyWeather,
        cumulative_eos: float,
        pond_active: bool = False,
        day: Optional[date] = None,
    ) -> PotentialDecomposition:
        """
        Build today's potential decomposition request.

        Args:
            pools: Current residue pools (not modified)
            weather: Daily air temperatures
            cumulative_eos: Cumulative soil evaporation since last wetting (mm)
            pond_active: Whether the surface is flooded
            day: Simulation date recorded on the request

        Returns:
            Potential C, N and P decomposition per pool
        """
        mf, tf, cf = self.environmental_factors(pools, weather, cumulative_eos, pond_active)

        requests = []
        for pool in pools:
            fraction = self.decomposition_fraction(pool, mf, tf, cf)
            c_pot = fraction * pool.lying_sum("c")
            requests.append(PoolDecomposition(
                name=pool.name,
                residue_type=pool.type_name,
                amount=divide(c_pot, pool.residue_type.fraction_c),
                c=c_pot,
                n=fraction * pool.lying_sum("n"),
                p=fraction * pool.lying_sum("p"),
                ash_alk=0.0,
            ))

        logger.debug(f"Potential decomposition: mf={mf:.3f}, tf={tf:.3f}, cf={cf:.3f}")

        return PotentialDecomposition(
            day=day or weather.day,
            moisture_factor=mf,
            temperature_factor=tf,
            contact_factor=cf,
            pools=requests,
        )

    # =========================================================================
    # ACTUAL
    # =========================================================================

    def apply_actual(
        self,
        pools: PoolStore,
        potential: PotentialDecomposition,
        actuals: ActualDecomposition,
    ) -> Dict[PoolName, Tuple[KgPerHa, KgPerHa, KgPerHa]]:
        """
        Remove the actual decomposition from lying residue.

        ``actuals`` maps pool names to the (C, N) decomposed. P follows C
        at the potential P:C ratio. Returns the (C, N, P) applied per pool.

        Raises:
            NotFoundError: An actual names a pool without a potential
            MassImbalanceError: An actual is negative or exceeds the potential
        """
        applied = {}
        for name, (c_actual, n_actual) in actuals.items():
            pool = pools.get(name)
            request = potential.get(name)
            context = ErrorContext(
                pool_name=name,
                date=str(potential.day) if potential.day else None,
                component="DecompositionEngine",
                operation="apply_actual",
            )
            if request is None:
                raise NotFoundError(f"No potential decomposition for {name}", context)

            bound_check(n_actual, 0.0, request.n, "total n decomposition")
            c_actual = check_non_negative(c_actual, "actual C decomposition", context)
            n_actual = check_non_negative(n_actual, "actual N decomposition", context)

            if reals_are_equal(c_actual, 0.0) and reals_are_equal(n_actual, 0.0):
                continue
            if c_actual > request.c + self.config.acceptable_err:
                raise MassImbalanceError("C decomposition exceeds potential rate", context)
            if n_actual > request.n + self.config.acceptable_err:
                raise MassImbalanceError("N decomposition exceeds potential rate", context)

            p_actual = c_actual * divide(request.p, request.c)
            self.decompose(pool, c_actual, n_actual, p_actual)
            applied[pool.name] = (c_actual, n_actual, p_actual)

        return applied

    @staticmethod
    def decompose(pool: ResiduePool, c_decomp: float, n_decomp: float, p_decomp: float):
        """Shrink lying classes proportionally; C and dry matter together, then N, then P"""
        fraction = bound(divide(c_decomp, pool.lying_sum("c")), 0.0, 1.0)
        for lying in pool.lying:
            lying.c *= 1.0 - fraction
            lying.amount *= 1.0 - fraction

        fraction = divide(n_decomp, pool.lying_sum("n"))
        for lying in pool.lying:
            lying.n *= 1.0 - fraction

        fraction = divide(p_decomp, pool.lying_sum("p"))
        for lying in pool.lying:
            lying.p *= 1.0 - fraction
