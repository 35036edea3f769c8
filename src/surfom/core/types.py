"""
Type definitions and type aliases for the surfom system.
Provides strong typing throughout the codebase.
"""
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Protocol, Tuple, runtime_checkable
from enum import Enum
from dataclasses import dataclass, field
from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from surfom.core.contracts import (
        ExternalMassFlow, NutrientChange, FOMPoolProfile, ResidueAdded,
        ResidueRemoved, SurfaceOMRemoved, SurfaceOrganicMatterState,
        PotentialDecomposition,
    )


# Type aliases for clarity
PoolName: TypeAlias = str
ResidueTypeName: TypeAlias = str
Date: TypeAlias = date
KgPerHa: TypeAlias = float
Millimetres: TypeAlias = float
Fraction: TypeAlias = float  # 0-1

# Actual decomposition returned by a nutrient model: pool name -> (C, N) kg/ha
ActualDecomposition: TypeAlias = Mapping[PoolName, Tuple[KgPerHa, KgPerHa]]


class FlowType(str, Enum):
    """Direction of a mass flow across the surface residue boundary"""
    GAIN = "gain"
    LOSS = "loss"


class AuditScope(str, Enum):
    """What a mass-flow event brackets"""
    DAILY = "daily"
    OPERATION = "operation"
    RESET = "reset"


class OperationKind(str, Enum):
    """Mutating operations recorded in the daily operation log"""
    ADD = "add"
    ADD_SURFACE_OM = "add_surface_om"
    ADD_FAECES = "add_faeces"
    CROP_CHOPPED = "crop_chopped"
    BIOMASS_REMOVED = "biomass_removed"
    REMOVE = "remove"
    TILLAGE = "tillage"
    IRRIGATION = "irrigation"
    LEACH = "leach"
    DECOMPOSE = "decompose"


@dataclass(frozen=True)
class OperationRecord:
    """One entry of the per-day operation log"""
    day: Optional[Date]
    sequence: int
    kind: OperationKind
    parameters: Dict[str, Any] = field(default_factory=dict)


# Protocol definitions for dependency injection
@runtime_checkable
class NutrientModel(Protocol):
    """Soil nutrient model that turns potential into actual decomposition"""

    def actual_decomposition(self, potential: "PotentialDecomposition") -> ActualDecomposition:
        """Return the C and N each pool actually decomposes today"""
        ...


@runtime_checkable
class SurfaceOMListener(Protocol):
    """Receiver for notifications published by the residue model"""

    def on_external_mass_flow(self, flow: "ExternalMassFlow") -> None:
        ...

    def on_nutrient_changed(self, change: "NutrientChange") -> None:
        ...

    def on_incorp_fom_pool(self, profile: "FOMPoolProfile") -> None:
        ...

    def on_residue_added(self, event: "ResidueAdded") -> None:
        ...

    def on_residue_removed(self, event: "ResidueRemoved") -> None:
        ...

    def on_surface_om_removed(self, event: "SurfaceOMRemoved") -> None:
        ...

    def on_surface_om_state(self, state: "SurfaceOrganicMatterState") -> None:
        ...
