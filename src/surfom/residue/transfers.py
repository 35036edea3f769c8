"""
Mass transfer operations on the residue pools.

Additions from managers, crops and livestock, removals, tillage
incorporation into the soil profile and rainfall leaching of the
mineral nutrients carried on residue. Operations mutate the pool store
immediately and in call order.
"""
import logging
from typing import List, Optional, Sequence

import numpy as np

from surfom.core.config import AdditionConfig, LeachingConfig
from surfom.core.constants import (
    ADD_MASS_BOUNDS, ADD_NUTRIENT_BOUNDS, ADD_RATIO_BOUNDS, CUMEOS_RESET_RAIN_MM,
    MANURE_POOL_NAME, MAX_FR, PPM_TO_FRACTION, REMOVAL_TOLERANCE, USER_TILLAGE_NAME,
    ZERO_TILLAGE_DEPTH_MM,
)
from surfom.core.contracts import (
    AddFaeces, AddSurfaceOMRequest, BiomassRemoved, CropChopped, ExternalMassFlow,
    FOMFraction, FOMPoolLayer, FOMPoolProfile, NutrientChange, ResidueAdded,
    ResidueRemoved, SurfaceOMRemoved, SurfaceOrganicMatterState, TillageRequest,
)
from surfom.core.exceptions import (
    ConfigurationError, InputError, InsufficientMassError, ErrorContext
)
from surfom.core.mathutils import bound, divide, get_cumulative_index
from surfom.core.types import FlowType, KgPerHa, Millimetres
from surfom.residue.balance import Notifier
from surfom.residue.pools import ResiduePool, PoolStore
from surfom.residue.registry import TillageTypeRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# SURFACE WATER DRIVERS
# =============================================================================

def update_cumulative_eos(cumulative_eos: Millimetres, eos: Millimetres, precipitation: Millimetres) -> Millimetres:
    """
    Cumulative soil evaporation since the last significant wetting.

    Precipitation above 4 mm restarts the sum from today's evaporation.
    """
    if precipitation > CUMEOS_RESET_RAIN_MM:
        cumulative_eos = eos - precipitation
    else:
        cumulative_eos = cumulative_eos + eos - precipitation
    return max(cumulative_eos, 0.0)


def leaching_rain(precipitation: Millimetres, min_rain_to_leach: Millimetres) -> Millimetres:
    """Precipitation available for leaching; zero below the threshold"""
    return precipitation if precipitation >= min_rain_to_leach else 0.0


class MassTransfers:
    """
    Additions, removals, incorporation and leaching of surface residue.

    Events are published through the notifier; the caller is responsible
    for auditing operations whose net change crosses the system boundary.
    """

    def __init__(
        self,
        pools: PoolStore,
        tillage_types: TillageTypeRegistry,
        notifier: Notifier,
        addition: Optional[AdditionConfig] = None,
        leaching: Optional[LeachingConfig] = None,
    ):
        self.pools = pools
        self.tillage_types = tillage_types
        self.notifier = notifier
        self.addition = addition or AdditionConfig()
        self.leaching = leaching or LeachingConfig()

    # =========================================================================
    # ADDITIONS
    # =========================================================================

    @staticmethod
    def _add_minerals(pool: ResiduePool, mass: KgPerHa):
        params = pool.residue_type
        pool.no3 += params.no3ppm * PPM_TO_FRACTION * mass
        pool.nh4 += params.nh4ppm * PPM_TO_FRACTION * mass
        pool.po4 += params.po4ppm * PPM_TO_FRACTION * mass

    @staticmethod
    def _add_to_lying(pool: ResiduePool, mass: KgPerHa, n: KgPerHa, p: KgPerHa):
        params = pool.residue_type
        for i, lying in enumerate(pool.lying):
            lying.amount += mass * params.fr_c[i]
            lying.c += mass * params.fraction_c * params.fr_c[i]
            lying.n += n * params.fr_n[i]
            lying.p += p * params.fr_p[i]

    def add(self, request: AddSurfaceOMRequest):
        """
        Add (or, with negative mass, take away) residue of a given type.

        N comes from the request, or from its C:N ratio. P comes from the
        request, from its C:P ratio, or from the default C:P ratio.

        Raises:
            InputError: Neither N nor a C:N ratio was given
            InsufficientMassError: More taken away than the pool holds
        """
        mass = bound(request.mass, *ADD_MASS_BOUNDS)
        existing = self.pools.find(request.pool_name)
        available = existing.total("amount") if existing is not None else 0.0
        if -mass > available + REMOVAL_TOLERANCE:
            raise InsufficientMassError(
                f"Attempting to remove {-mass} (kg/ha) from {request.pool_name} Surface Organic "
                f"Matter but only {available} (kg/ha) is available.",
                ErrorContext(pool_name=request.pool_name, component="MassTransfers", operation="add")
            )

        pool = self.pools.get_or_create(request.pool_name, request.residue_type)
        params = pool.residue_type

        n_added = bound(request.n, *ADD_NUTRIENT_BOUNDS)
        p_added = bound(request.p, *ADD_NUTRIENT_BOUNDS)
        cnr = bound(request.cnr, *ADD_RATIO_BOUNDS)
        cpr = bound(request.cpr, *ADD_RATIO_BOUNDS)
        c_added = mass * params.fraction_c

        if n_added == 0:
            if cnr == 0:
                raise InputError(
                    "SurfaceOM CN ratio not specified.",
                    ErrorContext(pool_name=pool.name, component="MassTransfers", operation="add")
                )
            n_added = divide(c_added, cnr)

        if p_added == 0:
            if cpr == 0:
                logger.warning("SurfOM P or SurfaceOM C:P ratio not specified - Default value applied.")
                p_added = divide(c_added, self.addition.default_cpr)
            else:
                p_added = divide(c_added, cpr)

        self._add_minerals(pool, mass)

        if mass > 0.0:
            self._add_to_lying(pool, mass, n_added, p_added)
        else:
            # Removal is shared between standing and lying by their current mass
            from_standing = mass * pool.standing_fraction
            from_lying = mass - from_standing
            for share, fractions in ((from_lying, pool.lying), (from_standing, pool.standing)):
                ratio = divide(share, mass)
                for i, fraction in enumerate(fractions):
                    fraction.amount += share * params.fr_c[i]
                    fraction.c += share * params.fraction_c * params.fr_c[i]
                    fraction.n += n_added * ratio * params.fr_n[i]
                    fraction.p += p_added * ratio * params.fr_p[i]

        if self.addition.report_additions:
            logger.info(
                f"Added SurfaceOM: name={pool.name}, type={pool.type_name}, "
                f"amount={mass:.3f} kg/ha"
            )

        self.notifier.residue_added(ResidueAdded(
            residue_type=pool.type_name,
            dm_type=pool.type_name,
            dlt_residue_wt=mass,
            dlt_dm_n=n_added,
            dlt_dm_p=p_added,
        ))

    def add_surface_om(self, mass: KgPerHa, n: KgPerHa, p: KgPerHa, crop_type: str):
        """Add crop residue to the lying pool named after the crop"""
        if self.addition.report_additions:
            logger.info(f"Added surfom: type={crop_type}, amount={mass:.3f} kg/ha")

        pool = self.pools.get_or_create(crop_type, crop_type)
        self._add_minerals(pool, mass)
        self._add_to_lying(pool, mass, n, p)

        self.notifier.residue_added(ResidueAdded(
            residue_type=pool.type_name,
            dm_type=pool.type_name,
            dlt_residue_wt=mass,
            dlt_dm_n=n,
            dlt_dm_p=p,
        ))

    @staticmethod
    def _to_residue(values: Sequence[float], fractions: Sequence[float]) -> float:
        return sum(value * fraction for value, fraction in zip(values, fractions))

    def crop_chopped(self, event: CropChopped, phosphorus_aware: bool = False) -> KgPerHa:
        """Return chopped crop material to the surface; P only when phosphorus aware"""
        if sum(event.fraction_to_residue) == 0:
            return 0.0
        mass = self._to_residue(event.dlt_crop_dm, event.fraction_to_residue)
        if mass <= 0.0:
            return 0.0
        n = self._to_residue(event.dlt_dm_n, event.fraction_to_residue)
        p = self._to_residue(event.dlt_dm_p, event.fraction_to_residue) if phosphorus_aware else 0.0
        self.add_surface_om(mass, n, p, event.crop_type)
        return mass

    def biomass_removed(self, event: BiomassRemoved) -> KgPerHa:
        """Return the residue share of removed crop biomass to the surface"""
        if sum(event.fraction_to_residue) == 0:
            return 0.0
        mass = self._to_residue(event.dlt_crop_dm, event.fraction_to_residue)
        if mass <= 0.0:
            return 0.0
        n = self._to_residue(event.dlt_dm_n, event.fraction_to_residue)
        p = self._to_residue(event.dlt_dm_p, event.fraction_to_residue)
        self.add_surface_om(mass, n, p, event.crop_type)
        return mass

    def add_faeces(self, event: AddFaeces):
        """
        Add excreta to the manure pool.

        Only a share of the excreta reaches the surface. Ash alkalinity
        is split between classes like P. Sulphur is not tracked.
        """
        share = self.addition.fraction_faeces_added
        self.add_surface_om(event.om_weight * share, event.om_n * share, event.om_p * share, MANURE_POOL_NAME)

        pool = self.pools.get(MANURE_POOL_NAME)
        for i, lying in enumerate(pool.lying):
            lying.ash_alk += event.om_ash_alk * share * pool.residue_type.fr_p[i]

    # =========================================================================
    # REMOVAL
    # =========================================================================

    def remove(self, request: SurfaceOrganicMatterState):
        """
        Subtract the described material from each named pool.

        A lying class short of dry matter is an error. A standing class
        short of dry matter is only logged and keeps its dry matter, while
        its C, N, P and ash alkalinity are still subtracted.

        Raises:
            InsufficientMassError: More lying dry matter requested than present
        """
        for removal in request.pools:
            pool = self.pools.find(removal.name)
            if pool is None:
                logger.warning(
                    f"Attempting to remove Surface Organic Matter from unknown "
                    f"{removal.name} Surface Organic Matter name."
                )
                continue

            for i in range(MAX_FR):
                lying, taken = pool.lying[i], removal.lying[i]
                if lying.amount >= taken.amount:
                    lying.amount -= taken.amount
                else:
                    raise InsufficientMassError(
                        f"Attempting to remove more dm from {removal.name} lying Surface Organic "
                        f"Matter pool {i} than available. Removing {taken.amount} (kg/ha) "
                        f"from {lying.amount} (kg/ha) available.",
                        ErrorContext(pool_name=pool.name, component="MassTransfers", operation="remove")
                    )
                lying.c -= taken.c
                lying.n -= taken.n
                lying.p -= taken.p
                lying.ash_alk -= taken.ash_alk

                standing, taken = pool.standing[i], removal.standing[i]
                if standing.amount >= taken.amount:
                    standing.amount -= taken.amount
                else:
                    logger.warning(
                        f"Attempting to remove more dm from {removal.name} standing Surface Organic "
                        f"Matter pool {i} than available. Removing {taken.amount} (kg/ha) "
                        f"from {standing.amount} (kg/ha) available."
                    )
                standing.c -= taken.c
                standing.n -= taken.n
                standing.p -= taken.p
                standing.ash_alk -= taken.ash_alk

            pool.no3 -= removal.no3
            pool.nh4 -= removal.nh4
            pool.po4 -= removal.po4

            standing_wt = sum(f.amount for f in removal.standing)
            lying_wt = sum(f.amount for f in removal.lying)
            removed_n = sum(f.n for f in removal.standing + removal.lying)
            removed_p = sum(f.p for f in removal.standing + removal.lying)

            if self.addition.report_removals:
                logger.info(
                    f"Removed SurfaceOM: name={removal.name}, type={removal.residue_type}, "
                    f"lying={lying_wt:.3f} kg/ha, standing={standing_wt:.3f} kg/ha"
                )

            self.notifier.surface_om_removed(SurfaceOMRemoved(
                surface_om_type=removal.residue_type,
                surface_om_dm_type=removal.residue_type,
                dlt_surface_om_wt=standing_wt + lying_wt,
                surface_om_dlt_dm_n=removed_n,
                surface_om_dlt_dm_p=removed_p,
            ))

    # =========================================================================
    # TILLAGE
    # =========================================================================

    def tillage(self, request: TillageRequest, layer_thickness_mm: Sequence[float]) -> TillageRequest:
        """
        Incorporate residue by a tillage operation.

        When neither fraction nor depth is given, both come from the
        tillage type table entry named by the request.

        Returns:
            The tillage actually applied
        """
        if request.f_incorp == 0 and request.tillage_depth_mm == 0:
            logger.info("    - Reading default residue tillage info")
            tillage_type = self.tillage_types.resolve(request.name)
            request = TillageRequest(
                name=request.name,
                f_incorp=tillage_type.f_incorp,
                tillage_depth_mm=tillage_type.tillage_depth_mm,
            )

        self.incorporate(request.f_incorp, request.tillage_depth_mm, layer_thickness_mm, request.name)

        logger.info(
            f"Residue removed using {request.name}: fraction incorporated = "
            f"{request.f_incorp:.3f}, incorporated depth = {request.tillage_depth_mm:.3f}"
        )
        return request

    def incorporate(
        self,
        fraction: float,
        depth_mm: Millimetres,
        layer_thickness_mm: Sequence[float],
        action: str = USER_TILLAGE_NAME,
    ) -> Optional[FOMPoolProfile]:
        """
        Move a fraction of all residue into the soil layers above ``depth_mm``.

        Each layer receives a share proportional to the part of the
        tillage depth it spans, and the deepest layer reached takes the
        remainder, so the profile always carries the whole fraction. A
        depth of zero or less removes the fraction from the system
        altogether (burning, raking) and is published as a loss.

        Returns:
            The incorporated profile, or None when no carbon was incorporated
        """
        fraction = bound(fraction, 0.0, 1.0)
        if depth_mm <= ZERO_TILLAGE_DEPTH_MM:
            self._lose(fraction)
            return None

        layers = np.asarray(layer_thickness_mm, dtype=float)
        if layers.size == 0:
            raise ConfigurationError(
                "Soil layer thicknesses are required for incorporation",
                ErrorContext(component="MassTransfers", operation="incorporate")
            )

        deepest = get_cumulative_index(depth_mm, layers)
        n_layers = deepest + 1

        c_pool = np.zeros((MAX_FR, n_layers))
        n_pool = np.zeros((MAX_FR, n_layers))
        p_pool = np.zeros((MAX_FR, n_layers))
        ash_pool = np.zeros((MAX_FR, n_layers))
        no3 = np.zeros(n_layers)
        nh4 = np.zeros(n_layers)
        po4 = np.zeros(n_layers)
        layer_fractions = np.zeros(layers.size)

        cum_depth = 0.0
        for layer in range(n_layers):
            if layer == deepest:
                # Also covers tillage deeper than the whole profile
                layer_fraction = 1.0 - layer_fractions[:layer].sum()
            else:
                layer_fraction = divide(min(depth_mm - cum_depth, layers[layer]), depth_mm)
            share = fraction * layer_fraction
            for pool in self.pools:
                for i in range(MAX_FR):
                    c_pool[i, layer] += (pool.lying[i].c + pool.standing[i].c) * share
                    n_pool[i, layer] += (pool.lying[i].n + pool.standing[i].n) * share
                    p_pool[i, layer] += (pool.lying[i].p + pool.standing[i].p) * share
                    ash_pool[i, layer] += (pool.lying[i].ash_alk + pool.standing[i].ash_alk) * share
                no3[layer] += pool.no3 * share
                nh4[layer] += pool.nh4 * share
                po4[layer] += pool.po4 * share
            cum_depth += layers[layer]
            layer_fractions[layer] = layer_fraction

        profile = None
        if c_pool.sum() > 0.0:
            profile = FOMPoolProfile(layers=[
                FOMPoolLayer(
                    thickness_mm=float(layers[layer]),
                    no3=float(no3[layer]),
                    nh4=float(nh4[layer]),
                    po4=float(po4[layer]),
                    pools=[
                        FOMFraction(
                            c=float(c_pool[i, layer]),
                            n=float(n_pool[i, layer]),
                            p=float(p_pool[i, layer]),
                            ash_alk=float(ash_pool[i, layer]),
                        )
                        for i in range(MAX_FR)
                    ],
                )
                for layer in range(n_layers)
            ])
            self.notifier.incorp_fom_pool(profile)
            self.notifier.residue_removed(ResidueRemoved(
                residue_removed_action=action,
                dlt_residue_fraction=fraction,
                residue_incorp_fraction=layer_fractions.tolist(),
            ))

        for pool in self.pools:
            pool.scale(1.0 - fraction)

        return profile

    def _lose(self, fraction: float):
        """Take a fraction of all residue out of the system without moving it to the soil"""
        # Mineral N and P are not counted in the loss
        self.notifier.external_mass_flow(ExternalMassFlow(
            flow_type=FlowType.LOSS,
            dm=-self.pools.sum(lambda p: p.total("amount")) * fraction,
            c=-self.pools.sum(lambda p: p.total("c")) * fraction,
            n=-self.pools.sum(lambda p: p.total("n")) * fraction,
            p=-self.pools.sum(lambda p: p.total("p")) * fraction,
            sw=0.0,
        ))
        for pool in self.pools:
            pool.scale(1.0 - fraction)

    # =========================================================================
    # LEACHING
    # =========================================================================

    def leach(self, rain_mm: Millimetres, layer_thickness_mm: Sequence[float]) -> float:
        """
        Wash mineral N and P off the residue into the top soil layer.

        Returns:
            Fraction of the mineral nutrients leached
        """
        fraction = bound(divide(rain_mm, self.leaching.leach_rain_tot), 0.0, 1.0)

        no3 = self.pools.sum(lambda p: p.no3) * fraction
        nh4 = self.pools.sum(lambda p: p.nh4) * fraction
        po4 = self.pools.sum(lambda p: p.po4) * fraction

        if no3 > 0.0 or nh4 > 0.0 or po4 > 0.0:
            n_layers = max(len(layer_thickness_mm), 1)
            change = NutrientChange(
                delta_no3=self._top_layer(no3, n_layers),
                delta_nh4=self._top_layer(nh4, n_layers),
                delta_urea=[0.0] * n_layers,
                delta_labile_p=self._top_layer(po4, n_layers),
            )
            self.notifier.nutrient_changed(change)
            logger.debug(f"Leached {no3:.4f} NO3, {nh4:.4f} NH4 and {po4:.4f} PO4 kg/ha")

        for pool in self.pools:
            pool.no3 *= 1.0 - fraction
            pool.nh4 *= 1.0 - fraction
            pool.po4 *= 1.0 - fraction

        return fraction

    @staticmethod
    def _top_layer(value: float, n_layers: int) -> List[float]:
        deltas = [0.0] * n_layers
        deltas[0] = value
        return deltas
