"""
Daily surface organic matter model.

Ties the pool store, decomposition engine, transfer operations and mass
balance auditor together behind one object driven once per simulated day:

    model.begin_day(day)
    potential = model.request_potential(weather, soil)
    model.apply_actual(nutrient_model.actual_decomposition(potential))
    model.end_day()

Management operations (additions, removals, tillage) may be called at any
point of the day and take effect immediately.
"""
import logging
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from surfom.core.config import SurfomConfig, get_config
from surfom.core.contracts import (
    AddFaeces, AddSurfaceOMRequest, BiomassRemoved, CropChopped, DailyWeather,
    ExternalMassFlow, PotentialDecomposition, SoilSurfaceState,
    SurfaceOrganicMatterState, TillageRequest,
)
from surfom.core.constants import PPM_TO_FRACTION, USER_TILLAGE_NAME
from surfom.core.exceptions import InputError, SurfomError, ErrorContext, handle_exception
from surfom.core.mathutils import divide
from surfom.core.types import (
    ActualDecomposition, AuditScope, KgPerHa, Millimetres, NutrientModel,
    OperationKind, OperationRecord, PoolName, SurfaceOMListener,
)
from surfom.residue import factors
from surfom.residue.balance import MassBalanceAuditor, Notifier
from surfom.residue.decomposition import DecompositionEngine
from surfom.residue.pools import OrganicMatterFraction, PoolStore
from surfom.residue.registry import ResidueTypeRegistry, TillageTypeRegistry
from surfom.residue.transfers import MassTransfers, leaching_rain, update_cumulative_eos

logger = logging.getLogger(__name__)


class PassThroughNutrientModel:
    """Nutrient model that lets every pool decompose at its potential rate"""

    def actual_decomposition(self, potential: PotentialDecomposition) -> ActualDecomposition:
        return potential.as_actual()


class SurfaceOrganicMatter:
    """
    Surface residue pools advanced one day at a time.

    Args:
        config: Model configuration; the global configuration when omitted
        residue_types: Residue type registry; built from configuration when omitted
        tillage_types: Tillage type table; the built-in table when omitted
        listeners: Receivers of published notifications
        layer_thickness_mm: Soil layer thicknesses used for incorporation
    """

    def __init__(
        self,
        config: Optional[SurfomConfig] = None,
        residue_types: Optional[ResidueTypeRegistry] = None,
        tillage_types: Optional[TillageTypeRegistry] = None,
        listeners: Optional[Iterable[SurfaceOMListener]] = None,
        layer_thickness_mm: Optional[Sequence[float]] = None,
    ):
        self.config = config or get_config()
        self._setup_logging()

        self.residue_types = residue_types or self._load_residue_types()
        self.tillage_types = tillage_types or self._load_tillage_types()

        self.pools = PoolStore(self.residue_types)
        self.notifier = Notifier(listeners)
        self.auditor = MassBalanceAuditor(self.pools, self.notifier)
        self.engine = DecompositionEngine(self.config.decomposition)
        self.transfers = MassTransfers(
            self.pools,
            self.tillage_types,
            self.notifier,
            addition=self.config.addition,
            leaching=self.config.leaching,
        )

        self.layer_thickness_mm: List[float] = list(layer_thickness_mm or [])
        self.day: Optional[date] = None
        self.operation_log: List[OperationRecord] = []
        self._day_start = None
        self._last_potential: Optional[PotentialDecomposition] = None
        self._last_weather: Optional[DailyWeather] = None
        self._replaying = False

        self.reset()

    def _setup_logging(self):
        """Configure model-specific logging"""
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self.logger.setLevel(getattr(logging, self.config.monitoring.log_level))

    def _load_residue_types(self) -> ResidueTypeRegistry:
        if self.config.use_builtin_residue_types:
            registry = ResidueTypeRegistry.builtin()
        else:
            registry = ResidueTypeRegistry()
        if self.config.residue_types_file is not None:
            registry.update_from_yaml(self.config.residue_types_file)
            registry.fill_derived()
        return registry

    def _load_tillage_types(self) -> TillageTypeRegistry:
        registry = TillageTypeRegistry.builtin()
        if self.config.residue_types_file is not None:
            registry.update_from_yaml(self.config.residue_types_file)
        return registry

    def subscribe(self, listener: SurfaceOMListener):
        self.notifier.subscribe(listener)

    # =========================================================================
    # INITIALISATION
    # =========================================================================

    def reset(self) -> ExternalMassFlow:
        """
        Rebuild the pools from the configured initial residues.

        The change from the previous state is published as a reset mass flow.
        """
        before = self.auditor.snapshot()

        self.pools.clear()
        self.cumulative_eos: Millimetres = 0.0
        self.irrigation_mm: Millimetres = 0.0
        self.soil_evaporation_mm: Millimetres = 0.0
        self.leaching_fraction = 0.0
        self.pond_active = False
        self.phosphorus_aware = False
        self._initialise_pools()

        self._day_start = self.auditor.snapshot()
        self._daily_initial_c = self.pools.sum(lambda p: p.total("c"))
        self._daily_initial_n = self.pools.sum(lambda p: p.total("n"))

        return self.auditor.emit_delta(before, self._day_start, scope=AuditScope.RESET)

    def _initialise_pools(self):
        residues = self.config.initial_residues
        default_cpr = self.config.addition.default_cpr
        self.phosphorus_aware = bool(residues) and (residues[0].cpr or 0.0) > 0.0

        for residue in residues:
            pool = self.pools.create(residue.name, residue.residue_type)
            params = pool.residue_type
            cpr = residue.cpr if residue.cpr is not None else default_cpr

            pool.no3 = params.no3ppm * PPM_TO_FRACTION * residue.mass
            pool.nh4 = params.nh4ppm * PPM_TO_FRACTION * residue.mass
            pool.po4 = params.po4ppm * PPM_TO_FRACTION * residue.mass

            tot_c = residue.mass * params.fraction_c
            tot_n = divide(tot_c, residue.cnr)
            tot_p = divide(tot_c, cpr)

            for share, fractions in (
                (residue.standing_fraction, pool.standing),
                (1.0 - residue.standing_fraction, pool.lying),
            ):
                for i in range(len(fractions)):
                    fractions[i] = OrganicMatterFraction(
                        amount=residue.mass * params.fr_c[i] * share,
                        c=tot_c * params.fr_c[i] * share,
                        n=tot_n * params.fr_n[i] * share,
                        p=tot_p * params.fr_p[i] * share,
                        ash_alk=0.0,
                    )

            self.logger.info(
                f"Initialised pool '{pool.name}' ({pool.type_name}) with "
                f"{residue.mass:.1f} kg/ha, C:N {residue.cnr:.1f}"
            )

    # =========================================================================
    # DAILY CYCLE
    # =========================================================================

    def begin_day(self, day: Optional[date] = None):
        """Snapshot totals for the daily balance and start a new operation log"""
        self.day = day
        self.operation_log = []
        self._day_start = self.auditor.snapshot()
        self._daily_initial_c = self.pools.sum(lambda p: p.total("c"))
        self._daily_initial_n = self.pools.sum(lambda p: p.total("n"))

    def request_potential(self, weather: DailyWeather, soil: SoilSurfaceState) -> PotentialDecomposition:
        """
        Update surface drivers, leach, and return today's potential decomposition.

        Pools are changed only by leaching; decomposition waits for
        ``apply_actual``.
        """
        self._last_weather = weather
        self.soil_evaporation_mm = soil.soil_evaporation_mm
        self.pond_active = soil.pond_active
        if soil.layer_thickness_mm:
            self.layer_thickness_mm = list(soil.layer_thickness_mm)
        if soil.labile_p_available:
            self.phosphorus_aware = True

        precipitation = weather.rainfall_mm + self.irrigation_mm
        self.cumulative_eos = update_cumulative_eos(
            self.cumulative_eos, soil.soil_evaporation_mm, precipitation
        )
        irrigation_mm, self.irrigation_mm = self.irrigation_mm, 0.0

        self._leach(
            leaching_rain(precipitation, self.config.leaching.min_rain_to_leach),
            self.layer_thickness_mm,
            irrigation_mm,
        )

        self._last_potential = self.engine.compute_potential(
            self.pools, weather, self.cumulative_eos, self.pond_active, day=self.day
        )
        return self._last_potential

    def apply_actual(
        self,
        actuals: ActualDecomposition,
        potential: Optional[PotentialDecomposition] = None,
    ):
        """Apply the decomposition a nutrient model accepted from a potential request"""
        potential = potential or self._last_potential
        if potential is None:
            raise InputError(
                "No potential decomposition has been requested",
                ErrorContext(component="SurfaceOrganicMatter", operation="apply_actual")
            )
        applied = self.engine.apply_actual(self.pools, potential, actuals)
        self._record(OperationKind.DECOMPOSE, {
            "potential": potential.model_dump(mode="json"),
            "actuals": {name: list(values) for name, values in actuals.items()},
        })
        return applied

    def end_day(self) -> ExternalMassFlow:
        """Publish the day's net mass flow and the resulting pool state"""
        flow = self.auditor.emit_delta(self._day_start, scope=AuditScope.DAILY)
        self.notifier.surface_om_state(self.get_state())
        return flow

    def step(
        self,
        weather: DailyWeather,
        soil: SoilSurfaceState,
        nutrient_model: Optional[NutrientModel] = None,
        day: Optional[date] = None,
    ) -> ExternalMassFlow:
        """Run a complete day with no management operations"""
        nutrient_model = nutrient_model or PassThroughNutrientModel()
        self.begin_day(day or weather.day)
        potential = self.request_potential(weather, soil)
        self.apply_actual(nutrient_model.actual_decomposition(potential), potential)
        return self.end_day()

    # =========================================================================
    # MANAGEMENT OPERATIONS
    # =========================================================================

    def add(
        self,
        residue_type: str,
        mass: KgPerHa,
        n: KgPerHa = 0.0,
        name: Optional[PoolName] = None,
        cnr: float = 0.0,
        p: KgPerHa = 0.0,
        cpr: float = 0.0,
    ) -> ExternalMassFlow:
        """Add residue from an external source; published as an operation mass flow"""
        request = AddSurfaceOMRequest(
            residue_type=residue_type, mass=mass, n=n, name=name, cnr=cnr, p=p, cpr=cpr
        )
        before = self.auditor.snapshot()
        self.transfers.add(request)
        self._record(OperationKind.ADD, request.model_dump())
        return self.auditor.emit_delta(before, scope=AuditScope.OPERATION)

    def add_surface_om(self, mass: KgPerHa, n: KgPerHa, p: KgPerHa, crop_type: str):
        """Add crop residue to the lying pool named after the crop"""
        self.transfers.add_surface_om(mass, n, p, crop_type)
        self._record(OperationKind.ADD_SURFACE_OM, {"mass": mass, "n": n, "p": p, "crop_type": crop_type})

    def crop_chopped(self, event: CropChopped) -> KgPerHa:
        added = self.transfers.crop_chopped(event, self.phosphorus_aware)
        self._record(OperationKind.CROP_CHOPPED, event.model_dump())
        return added

    def biomass_removed(self, event: BiomassRemoved) -> KgPerHa:
        added = self.transfers.biomass_removed(event)
        self._record(OperationKind.BIOMASS_REMOVED, event.model_dump())
        return added

    def add_faeces(self, event: AddFaeces):
        self.transfers.add_faeces(event)
        self._record(OperationKind.ADD_FAECES, event.model_dump())

    def remove(self, request: SurfaceOrganicMatterState) -> ExternalMassFlow:
        """Remove the described material; published as an operation mass flow"""
        before = self.auditor.snapshot()
        self.transfers.remove(request)
        self._record(OperationKind.REMOVE, request.model_dump())
        return self.auditor.emit_delta(before, scope=AuditScope.OPERATION)

    def tillage(
        self,
        name: str = USER_TILLAGE_NAME,
        f_incorp: float = 0.0,
        tillage_depth_mm: Millimetres = 0.0,
        layer_thickness_mm: Optional[Sequence[float]] = None,
    ) -> TillageRequest:
        """Incorporate residue; zero fraction and depth look the operation up by name"""
        layers = list(layer_thickness_mm) if layer_thickness_mm is not None else self.layer_thickness_mm
        request = TillageRequest(name=name, f_incorp=f_incorp, tillage_depth_mm=tillage_depth_mm)
        applied = self.transfers.tillage(request, layers)
        self._record(OperationKind.TILLAGE, {**request.model_dump(), "layer_thickness_mm": layers})
        return applied

    def incorporate(self, fraction: float, depth_mm: Millimetres) -> TillageRequest:
        return self.tillage(USER_TILLAGE_NAME, fraction, depth_mm)

    def record_irrigation(self, amount_mm: Millimetres):
        """Irrigation counts towards today's precipitation"""
        self.irrigation_mm += amount_mm
        self._record(OperationKind.IRRIGATION, {"amount_mm": amount_mm})

    def leach(self, rain_mm: Millimetres, layer_thickness_mm: Optional[Sequence[float]] = None) -> float:
        layers = list(layer_thickness_mm) if layer_thickness_mm is not None else self.layer_thickness_mm
        return self._leach(rain_mm, layers)

    def _leach(self, rain_mm: Millimetres, layers: List[float], irrigation_mm: Millimetres = 0.0) -> float:
        """Leach and log; ``irrigation_mm`` is the pending irrigation the day's request used up"""
        self.leaching_fraction = self.transfers.leach(rain_mm, layers)
        if rain_mm > 0.0 or irrigation_mm > 0.0:
            self._record(OperationKind.LEACH, {
                "rain_mm": rain_mm,
                "layer_thickness_mm": list(layers),
                "irrigation_mm": irrigation_mm,
            })
        return self.leaching_fraction

    def _replay_leach(self, rain_mm: Millimetres, layer_thickness_mm: List[float], irrigation_mm: Millimetres = 0.0):
        self.irrigation_mm = max(self.irrigation_mm - irrigation_mm, 0.0)
        self._leach(rain_mm, layer_thickness_mm, irrigation_mm)

    # =========================================================================
    # OPERATION LOG
    # =========================================================================

    def _record(self, kind: OperationKind, parameters: Dict[str, Any]):
        if self._replaying:
            return
        self.operation_log.append(OperationRecord(
            day=self.day,
            sequence=len(self.operation_log),
            kind=kind,
            parameters=parameters,
        ))

    def _dispatch(self) -> Dict[OperationKind, Callable[[Dict[str, Any]], Any]]:
        return {
            OperationKind.ADD: lambda p: self.add(**p),
            OperationKind.ADD_SURFACE_OM: lambda p: self.add_surface_om(**p),
            OperationKind.ADD_FAECES: lambda p: self.add_faeces(AddFaeces(**p)),
            OperationKind.CROP_CHOPPED: lambda p: self.crop_chopped(CropChopped(**p)),
            OperationKind.BIOMASS_REMOVED: lambda p: self.biomass_removed(BiomassRemoved(**p)),
            OperationKind.REMOVE: lambda p: self.remove(SurfaceOrganicMatterState(**p)),
            OperationKind.TILLAGE: lambda p: self.tillage(**p),
            OperationKind.IRRIGATION: lambda p: self.record_irrigation(**p),
            OperationKind.LEACH: lambda p: self._replay_leach(**p),
            OperationKind.DECOMPOSE: lambda p: self.apply_actual(
                {name: tuple(values) for name, values in p["actuals"].items()},
                PotentialDecomposition(**p["potential"]),
            ),
        }

    def replay(self, records: Iterable[OperationRecord]):
        """
        Re-apply logged operations in order.

        The model must be in the state the records started from, such as
        freshly reset or restored from a checkpoint taken before them.
        Replayed operations publish their events again. Each record is
        logged once, as given, rather than re-recorded by the operation.

        Raises:
            SurfomError: Any failure, wrapped with the operation that caused it
        """
        dispatch = self._dispatch()
        for record in sorted(records, key=lambda r: r.sequence):
            context = ErrorContext(
                date=str(record.day) if record.day else None,
                component="SurfaceOrganicMatter",
                operation=record.kind.value,
            )
            self._replaying = True
            try:
                dispatch[record.kind](dict(record.parameters))
            except SurfomError:
                raise
            except Exception as e:
                raise handle_exception(e, context) from e
            finally:
                self._replaying = False
            self.operation_log.append(replace(record, sequence=len(self.operation_log)))

    # =========================================================================
    # CHECKPOINT
    # =========================================================================

    def get_state(self) -> SurfaceOrganicMatterState:
        return self.pools.to_state()

    def restore_state(self, state: SurfaceOrganicMatterState):
        """Replace the pools with a previously saved state"""
        self.pools.restore(state)
        self.logger.info(f"Restored {len(self.pools)} residue pools")

    # =========================================================================
    # OUTPUTS
    # =========================================================================

    @property
    def surfaceom_wt(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.total("amount"))

    @property
    def surfaceom_c(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.total("c"))

    @property
    def surfaceom_n(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.total("n"))

    @property
    def surfaceom_p(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.total("p"))

    @property
    def surfaceom_ashalk(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.total("ash_alk"))

    @property
    def surfaceom_no3(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.no3)

    @property
    def surfaceom_nh4(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.nh4)

    @property
    def surfaceom_labile_p(self) -> KgPerHa:
        return self.pools.sum(lambda p: p.po4)

    @property
    def surfaceom_cover(self) -> float:
        return factors.total_cover(self.pools, self.config.addition.standing_extinct_coeff)

    @property
    def carbonbalance(self) -> KgPerHa:
        """Carbon lost from the surface since the start of the day"""
        return -(self.surfaceom_c - self._daily_initial_c)

    @property
    def nitrogenbalance(self) -> KgPerHa:
        return -(self.surfaceom_n - self._daily_initial_n)

    @property
    def tf(self) -> float:
        if self._last_weather is None:
            return 0.0
        return factors.temperature_factor(
            self._last_weather.max_temperature_c,
            self._last_weather.min_temperature_c,
            self.config.decomposition.opt_temp,
        )

    @property
    def wf(self) -> float:
        return factors.moisture_factor(
            self.cumulative_eos, self.config.decomposition.cum_eos_max, self.pond_active
        )

    @property
    def cf(self) -> float:
        return factors.contact_factor(self.pools, self.config.decomposition.crit_residue_wt)

    def pool_values(self, attr: str) -> Dict[PoolName, float]:
        """Standing plus lying ``attr`` of every pool, keyed by pool name"""
        return self.pools.per_pool(lambda p: p.total(attr))

    def weight_of(self, name: PoolName) -> KgPerHa:
        return self.pools.get(name).total("amount")

    def pool_summary(self) -> pd.DataFrame:
        """One row per pool with masses, nutrients and cover"""
        coeff = self.config.addition.standing_extinct_coeff
        rows = [{
            "name": pool.name,
            "residue_type": pool.type_name,
            "standing_wt": pool.standing_sum("amount"),
            "lying_wt": pool.lying_sum("amount"),
            "wt": pool.total("amount"),
            "c": pool.total("c"),
            "n": pool.total("n"),
            "p": pool.total("p"),
            "ash_alk": pool.total("ash_alk"),
            "no3": pool.no3,
            "nh4": pool.nh4,
            "po4": pool.po4,
            "cnr": factors.cn_ratio(pool),
            "cover": factors.pool_cover(pool, coeff),
        } for pool in self.pools]
        columns = ["name", "residue_type", "standing_wt", "lying_wt", "wt", "c", "n", "p",
                   "ash_alk", "no3", "nh4", "po4", "cnr", "cover"]
        return pd.DataFrame(rows, columns=columns).set_index("name")
