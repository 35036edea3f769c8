"""
Data contracts and schemas for the surfom system.
Ensures data consistency for everything exchanged with collaborators:
daily drivers, decomposition requests, and published notifications.
"""
from datetime import date
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from surfom.core.constants import MAX_FR, SURFACE_POOL_CLASS, USER_TILLAGE_NAME
from surfom.core.types import (
    AuditScope, FlowType, KgPerHa, Millimetres, PoolName, ResidueTypeName
)


# =============================================================================
# DAILY DRIVERS
# =============================================================================

class DailyWeather(BaseModel):
    """Daily weather supplied by the weather service"""
    day: Optional[date] = None
    max_temperature_c: float
    min_temperature_c: float
    rainfall_mm: Millimetres = Field(0.0, ge=0)
    radiation_mj_m2: float = Field(0.0, ge=0)

    @model_validator(mode='after')
    def validate_temperature_range(self):
        """Ensure temperature max >= min"""
        if self.max_temperature_c < self.min_temperature_c:
            raise ValueError('max_temperature_c must be >= min_temperature_c')
        return self

    @property
    def mean_temperature_c(self) -> float:
        return (self.max_temperature_c + self.min_temperature_c) / 2.0


class SoilSurfaceState(BaseModel):
    """Soil quantities read each day from the soil service"""
    soil_evaporation_mm: Millimetres = Field(0.0, ge=0, description="Potential soil evaporation (eos)")
    layer_thickness_mm: List[float] = Field(default_factory=list)
    pond_active: bool = False
    labile_p_available: bool = Field(False, description="A soil phosphorus model is present")

    @field_validator('layer_thickness_mm')
    @classmethod
    def validate_thickness(cls, v):
        if any(t <= 0 for t in v):
            raise ValueError('layer thicknesses must be positive')
        return v


# =============================================================================
# POOL STATE REPORT (checkpoint / removal requests)
# =============================================================================

class FOMFraction(BaseModel):
    """Amount, C, N, P and ash alkalinity of one organic matter fraction (kg/ha)"""
    amount: KgPerHa = 0.0
    c: KgPerHa = 0.0
    n: KgPerHa = 0.0
    p: KgPerHa = 0.0
    ash_alk: KgPerHa = 0.0


def _empty_fractions() -> List[FOMFraction]:
    return [FOMFraction() for _ in range(MAX_FR)]


class PoolState(BaseModel):
    """Full state of one residue pool"""
    name: PoolName
    residue_type: ResidueTypeName
    pot_decomp_rate: float = 0.0
    no3: KgPerHa = 0.0
    nh4: KgPerHa = 0.0
    po4: KgPerHa = 0.0
    standing: List[FOMFraction] = Field(default_factory=_empty_fractions)
    lying: List[FOMFraction] = Field(default_factory=_empty_fractions)

    @model_validator(mode='after')
    def validate_class_count(self):
        if len(self.standing) != MAX_FR or len(self.lying) != MAX_FR:
            raise ValueError(f'standing and lying must each hold {MAX_FR} fractions')
        return self


class SurfaceOrganicMatterState(BaseModel):
    """State of every residue pool, in pool order"""
    pools: List[PoolState] = Field(default_factory=list)

    def get(self, name: PoolName) -> Optional[PoolState]:
        for pool in self.pools:
            if pool.name.lower() == name.lower():
                return pool
        return None


# =============================================================================
# DECOMPOSITION REQUEST
# =============================================================================

class PoolDecomposition(BaseModel):
    """Potential decomposition of one pool for one day"""
    name: PoolName
    residue_type: ResidueTypeName
    amount: KgPerHa = 0.0
    c: KgPerHa = 0.0
    n: KgPerHa = 0.0
    p: KgPerHa = 0.0
    ash_alk: KgPerHa = 0.0


class PotentialDecomposition(BaseModel):
    """Decomposition requested from the nutrient model; not yet applied"""
    day: Optional[date] = None
    moisture_factor: float = Field(1.0, ge=0, le=1)
    temperature_factor: float = Field(1.0, ge=0, le=1)
    contact_factor: float = Field(1.0, ge=0, le=1)
    pools: List[PoolDecomposition] = Field(default_factory=list)

    def get(self, name: PoolName) -> Optional[PoolDecomposition]:
        for pool in self.pools:
            if pool.name.lower() == name.lower():
                return pool
        return None

    def as_actual(self) -> Dict[PoolName, tuple]:
        """Accept the whole request unchanged"""
        return {pool.name: (pool.c, pool.n) for pool in self.pools}


# =============================================================================
# COLLABORATOR REQUESTS
# =============================================================================

class AddSurfaceOMRequest(BaseModel):
    """Manual addition (or removal, when mass is negative) of residue"""
    residue_type: ResidueTypeName
    mass: KgPerHa
    name: Optional[PoolName] = None
    n: KgPerHa = 0.0
    cnr: float = 0.0
    p: KgPerHa = 0.0
    cpr: float = 0.0

    @property
    def pool_name(self) -> PoolName:
        return self.name or self.residue_type


class TillageRequest(BaseModel):
    """Tillage operation; zero fraction and depth mean 'look up by name'"""
    name: str = USER_TILLAGE_NAME
    f_incorp: float = 0.0
    tillage_depth_mm: Millimetres = 0.0


class CropChopped(BaseModel):
    """Crop material sent to the surface at harvest or chopping"""
    crop_type: str
    dm_type: List[str] = Field(default_factory=list)
    dlt_crop_dm: List[KgPerHa] = Field(default_factory=list)
    dlt_dm_n: List[KgPerHa] = Field(default_factory=list)
    dlt_dm_p: List[KgPerHa] = Field(default_factory=list)
    fraction_to_residue: List[float] = Field(default_factory=list)


class BiomassRemoved(CropChopped):
    """Biomass removed from a crop with a share returned to the surface"""
    pass


class AddFaeces(BaseModel):
    """Excreta deposited on the surface by livestock"""
    defaecations: float = 0.0
    volume_per_defaecation: float = 0.0
    area_per_defaecation: float = 0.0
    eccentricity: float = 0.0
    om_weight: KgPerHa = 0.0
    om_n: KgPerHa = 0.0
    om_p: KgPerHa = 0.0
    om_s: KgPerHa = 0.0
    om_ash_alk: KgPerHa = 0.0
    no3_n: KgPerHa = 0.0
    nh4_n: KgPerHa = 0.0
    pox_p: KgPerHa = 0.0
    so4_s: KgPerHa = 0.0


# =============================================================================
# PUBLISHED NOTIFICATIONS
# =============================================================================

class ExternalMassFlow(BaseModel):
    """Net gain or loss of material across the surface residue boundary"""
    model_config = ConfigDict(extra="forbid")

    pool_class: str = SURFACE_POOL_CLASS
    flow_type: FlowType
    scope: AuditScope = AuditScope.OPERATION
    dm: KgPerHa = 0.0
    c: KgPerHa = 0.0
    n: KgPerHa = 0.0
    p: KgPerHa = 0.0
    sw: float = 0.0


class NutrientChange(BaseModel):
    """Per-layer mineral nutrient deltas sent to the soil (kg/ha)"""
    sender: str = "SurfaceOrganicMatter"
    sender_type: str = "SurfaceOrganicMatter"
    delta_no3: List[KgPerHa] = Field(default_factory=list)
    delta_nh4: List[KgPerHa] = Field(default_factory=list)
    delta_urea: List[KgPerHa] = Field(default_factory=list)
    delta_labile_p: List[KgPerHa] = Field(default_factory=list)


class FOMPoolLayer(BaseModel):
    """Residue incorporated into one soil layer"""
    thickness_mm: Millimetres
    no3: KgPerHa = 0.0
    nh4: KgPerHa = 0.0
    po4: KgPerHa = 0.0
    pools: List[FOMFraction] = Field(default_factory=_empty_fractions)


class FOMPoolProfile(BaseModel):
    """Layered residue transfer produced by tillage"""
    layers: List[FOMPoolLayer] = Field(default_factory=list)

    @property
    def total_c(self) -> float:
        return sum(f.c for layer in self.layers for f in layer.pools)


class ResidueAdded(BaseModel):
    residue_type: str
    dm_type: str
    dlt_residue_wt: KgPerHa
    dlt_dm_n: KgPerHa
    dlt_dm_p: KgPerHa


class ResidueRemoved(BaseModel):
    residue_removed_action: str
    dlt_residue_fraction: float
    residue_incorp_fraction: List[float] = Field(default_factory=list)


class SurfaceOMRemoved(BaseModel):
    surface_om_type: str
    surface_om_dm_type: str
    dlt_surface_om_wt: KgPerHa
    surface_om_dlt_dm_n: KgPerHa
    surface_om_dlt_dm_p: KgPerHa
