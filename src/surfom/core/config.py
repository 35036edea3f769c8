"""
Configuration system with validation and environment awareness.
Based on Pydantic Settings for robust configuration management.
"""
import logging
from pathlib import Path
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict
from pydantic_settings import BaseSettings
from typing import List, Optional, Literal, Union


class InitialResidue(BaseModel):
    """One residue pool present at the start of the simulation"""
    name: str
    residue_type: str
    mass: float = Field(0.0, ge=0, description="Initial dry matter (kg/ha)")
    standing_fraction: float = Field(0.0, ge=0, le=1)
    cnr: float = Field(..., gt=0, description="C:N ratio of the initial residue")
    cpr: Optional[float] = Field(None, ge=0, description="C:P ratio; None uses default_cpr")


class DecompositionConfig(BaseSettings):
    """Configuration for residue decomposition drivers"""

    crit_residue_wt: float = Field(2000.0, gt=0, description="Lying mass above which contact limits decomposition (kg/ha)")
    opt_temp: float = Field(20.0, gt=0, description="Optimum air temperature for decomposition (oC)")
    cum_eos_max: float = Field(20.0, gt=0, description="Cumulative soil evaporation at which moisture factor reaches zero (mm)")
    cnrf_coeff: float = Field(0.277, ge=0, description="C:N factor coefficient")
    cnrf_optcn: float = Field(25.0, ge=0, description="C:N ratio above which decomposition slows")
    crit_min_surfom_orgC: float = Field(0.004, ge=0, description="Lying C below which a pool decomposes completely (kg/ha)")
    acceptable_err: float = Field(1e-4, ge=0, description="Tolerance on actual vs potential decomposition (kg/ha)")

    model_config = ConfigDict(env_prefix="SURFOM_DECOMPOSITION_", case_sensitive=False)


class LeachingConfig(BaseSettings):
    """Configuration for rainfall leaching of surface mineral nutrients"""

    leach_rain_tot: float = Field(25.0, gt=0, description="Rainfall that leaches all mineral N and P (mm)")
    min_rain_to_leach: float = Field(10.0, ge=0, description="Minimum daily rain + irrigation before leaching (mm)")

    model_config = ConfigDict(env_prefix="SURFOM_LEACHING_", case_sensitive=False)


class AdditionConfig(BaseSettings):
    """Configuration for residue additions and reporting"""

    default_cpr: float = Field(0.0, ge=0, description="C:P ratio used when an addition gives neither P nor C:P")
    fraction_faeces_added: float = Field(0.5, ge=0, le=1, description="Share of excreta reaching the surface pool")
    standing_extinct_coeff: float = Field(0.5, ge=0, description="Extinction coefficient for standing residue cover")
    report_additions: bool = Field(False, description="Log a summary of every addition")
    report_removals: bool = Field(False, description="Log a summary of every removal")

    model_config = ConfigDict(env_prefix="SURFOM_ADDITION_", case_sensitive=False)


class MonitoringConfig(BaseSettings):
    """Configuration for logging and run monitoring"""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    model_config = ConfigDict(env_prefix="SURFOM_MONITORING_", case_sensitive=False)


class SurfomConfig(BaseSettings):
    """Main configuration for the surface organic matter model"""

    project_name: str = "surfom"

    # Component configurations
    decomposition: DecompositionConfig = Field(default_factory=DecompositionConfig)
    leaching: LeachingConfig = Field(default_factory=LeachingConfig)
    addition: AdditionConfig = Field(default_factory=AdditionConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    # Residue and tillage tables
    residue_types_file: Optional[Path] = Field(None, description="YAML file of extra residue types")
    use_builtin_residue_types: bool = Field(True, description="Load the built-in residue type library")

    # Initial pools
    initial_residues: List[InitialResidue] = Field(default_factory=list)

    model_config = ConfigDict(
        env_prefix="SURFOM_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    @field_validator("residue_types_file", mode="before")
    @classmethod
    def set_path(cls, v):
        if v is None or v == "":
            return None
        return Path(v)

    @model_validator(mode="after")
    def validate_config(self):
        """Cross-field validation"""
        names = [r.name.lower() for r in self.initial_residues]
        if len(names) != len(set(names)):
            raise ValueError("Initial residue pool names must be unique")
        return self

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "SurfomConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)

    def get_initial_residue(self, name: str) -> Optional[InitialResidue]:
        for residue in self.initial_residues:
            if residue.name.lower() == name.lower():
                return residue
        return None


def setup_logging(config: Optional["SurfomConfig"] = None):
    """Configure root logging from the monitoring section of the configuration"""
    config = config or get_config()
    logging.basicConfig(
        level=getattr(logging, config.monitoring.log_level),
        format=config.monitoring.log_format,
    )


# Global configuration instance
_config: Optional[SurfomConfig] = None


def get_config(config_path: Optional[Path] = None) -> SurfomConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and config_path.exists():
            _config = SurfomConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = SurfomConfig()

    return _config


def set_config(config: Optional[SurfomConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config
