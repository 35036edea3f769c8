"""Surface residue pools, decomposition and mass transfers."""
from surfom.residue.registry import (
    ResidueType,
    ResidueTypeRegistry,
    TillageType,
    TillageTypeRegistry,
)
from surfom.residue.pools import (
    OrganicMatterFraction,
    ResiduePool,
    PoolStore,
    MassTotals,
)
from surfom.residue.decomposition import DecompositionEngine
from surfom.residue.transfers import MassTransfers
from surfom.residue.balance import (
    MassBalanceAuditor,
    Notifier,
    RecordingListener,
)
from surfom.residue.model import (
    SurfaceOrganicMatter,
    PassThroughNutrientModel,
)

__all__ = [
    # Registries
    "ResidueType",
    "ResidueTypeRegistry",
    "TillageType",
    "TillageTypeRegistry",
    # Pool state
    "OrganicMatterFraction",
    "ResiduePool",
    "PoolStore",
    "MassTotals",
    # Processes
    "DecompositionEngine",
    "MassTransfers",
    "MassBalanceAuditor",
    "Notifier",
    "RecordingListener",
    # Daily model
    "SurfaceOrganicMatter",
    "PassThroughNutrientModel",
]
