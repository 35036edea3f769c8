"""
Mass balance auditing and notification fan-out.

Every change in total surface residue that is not a transfer to the soil
is published as an external mass flow, so that a whole-system balance
can be closed by the listener.
"""
import logging
from typing import Iterable, List, Optional

from surfom.core.contracts import (
    ExternalMassFlow, FOMPoolProfile, NutrientChange, ResidueAdded,
    ResidueRemoved, SurfaceOMRemoved, SurfaceOrganicMatterState,
)
from surfom.core.exceptions import InputError, ErrorContext
from surfom.core.types import AuditScope, FlowType, SurfaceOMListener
from surfom.residue.pools import MassTotals, PoolStore

logger = logging.getLogger(__name__)


class Notifier:
    """Delivers published notifications to every registered listener, in order"""

    def __init__(self, listeners: Optional[Iterable[SurfaceOMListener]] = None):
        self._listeners: List[SurfaceOMListener] = []
        for listener in listeners or []:
            self.subscribe(listener)

    def subscribe(self, listener: SurfaceOMListener):
        if not isinstance(listener, SurfaceOMListener):
            raise InputError(
                f"{type(listener).__name__} does not implement SurfaceOMListener",
                ErrorContext(component="Notifier", operation="subscribe")
            )
        self._listeners.append(listener)

    def unsubscribe(self, listener: SurfaceOMListener):
        self._listeners.remove(listener)

    @property
    def listeners(self) -> List[SurfaceOMListener]:
        return list(self._listeners)

    def _publish(self, method: str, payload):
        for listener in self._listeners:
            getattr(listener, method)(payload)

    def external_mass_flow(self, flow: ExternalMassFlow):
        self._publish("on_external_mass_flow", flow)

    def nutrient_changed(self, change: NutrientChange):
        self._publish("on_nutrient_changed", change)

    def incorp_fom_pool(self, profile: FOMPoolProfile):
        self._publish("on_incorp_fom_pool", profile)

    def residue_added(self, event: ResidueAdded):
        self._publish("on_residue_added", event)

    def residue_removed(self, event: ResidueRemoved):
        self._publish("on_residue_removed", event)

    def surface_om_removed(self, event: SurfaceOMRemoved):
        self._publish("on_surface_om_removed", event)

    def surface_om_state(self, state: SurfaceOrganicMatterState):
        self._publish("on_surface_om_state", state)


class RecordingListener:
    """Listener that keeps every notification it receives"""

    def __init__(self):
        self.mass_flows: List[ExternalMassFlow] = []
        self.nutrient_changes: List[NutrientChange] = []
        self.fom_profiles: List[FOMPoolProfile] = []
        self.residues_added: List[ResidueAdded] = []
        self.residues_removed: List[ResidueRemoved] = []
        self.surface_om_removals: List[SurfaceOMRemoved] = []
        self.states: List[SurfaceOrganicMatterState] = []

    def on_external_mass_flow(self, flow: ExternalMassFlow) -> None:
        self.mass_flows.append(flow)

    def on_nutrient_changed(self, change: NutrientChange) -> None:
        self.nutrient_changes.append(change)

    def on_incorp_fom_pool(self, profile: FOMPoolProfile) -> None:
        self.fom_profiles.append(profile)

    def on_residue_added(self, event: ResidueAdded) -> None:
        self.residues_added.append(event)

    def on_residue_removed(self, event: ResidueRemoved) -> None:
        self.residues_removed.append(event)

    def on_surface_om_removed(self, event: SurfaceOMRemoved) -> None:
        self.surface_om_removals.append(event)

    def on_surface_om_state(self, state: SurfaceOrganicMatterState) -> None:
        self.states.append(state)

    def flows(self, scope: AuditScope) -> List[ExternalMassFlow]:
        return [flow for flow in self.mass_flows if flow.scope == scope]

    def clear(self):
        for attr in vars(self).values():
            attr.clear()


class MassBalanceAuditor:
    """Brackets changes to the pool store and publishes their net effect"""

    def __init__(self, pools: PoolStore, notifier: Notifier):
        self.pools = pools
        self.notifier = notifier

    def snapshot(self) -> MassTotals:
        return self.pools.totals()

    def emit_delta(
        self,
        before: MassTotals,
        after: Optional[MassTotals] = None,
        scope: AuditScope = AuditScope.OPERATION,
    ) -> ExternalMassFlow:
        """Publish the change between two snapshots (``after`` defaults to now)"""
        if after is None:
            after = self.snapshot()
        delta = after - before
        flow = ExternalMassFlow(
            flow_type=FlowType.GAIN if delta.amount >= 0.0 else FlowType.LOSS,
            scope=scope,
            dm=delta.amount,
            c=delta.c,
            n=delta.n,
            p=delta.p,
            sw=0.0,
        )
        logger.debug(
            f"Mass flow ({scope.value}, {flow.flow_type.value}): "
            f"dm={flow.dm:.3f} c={flow.c:.3f} n={flow.n:.3f} p={flow.p:.3f}"
        )
        self.notifier.external_mass_flow(flow)
        return flow
