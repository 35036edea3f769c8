"""
Residue and tillage type registries.

Residue types carry the static decomposition parameters of a residue
(carbon fraction, nutrient ppm, decomposability splits, specific area).
An entry may name a template in ``derived_from``; unset fields are filled
from the template, or from defaults, in one explicit resolution pass.
"""
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple, Union

import yaml

from surfom.core.constants import (
    DEFAULT_RESIDUE_FIELDS, MAX_FR, RESIDUE_PARAMETER_BOUNDS
)
from surfom.core.exceptions import ConfigurationError, NotFoundError, ErrorContext
from surfom.core.mathutils import bound
from surfom.residue.library import DEFAULT_RESIDUE_TYPES, DEFAULT_TILLAGE_TYPES

logger = logging.getLogger(__name__)

# Fields that take part in template derivation
DERIVED_FIELDS: Tuple[str, ...] = tuple(DEFAULT_RESIDUE_FIELDS)
SPLIT_FIELDS: Tuple[str, ...] = ("fr_c", "fr_n", "fr_p")
SPLIT_SUM_TOLERANCE = 1e-6


@dataclass
class ResidueType:
    """Decomposition parameters for one residue type"""
    name: str
    derived_from: Optional[str] = None
    fraction_c: Optional[float] = None  # 0-1
    po4ppm: Optional[float] = None
    nh4ppm: Optional[float] = None
    no3ppm: Optional[float] = None
    specific_area: Optional[float] = None  # ha/kg
    cf_contrib: Optional[int] = None  # 1 if it contributes to the contact factor
    pot_decomp_rate: Optional[float] = None  # /day
    fr_c: Optional[Tuple[float, ...]] = None
    fr_n: Optional[Tuple[float, ...]] = None
    fr_p: Optional[Tuple[float, ...]] = None

    @classmethod
    def from_dict(cls, name: str, data: Mapping) -> "ResidueType":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(
                f"Unknown residue type fields {sorted(unknown)}",
                ErrorContext(component="ResidueTypeRegistry", details={"type": name})
            )
        values = dict(data)
        values.pop("name", None)
        for split in SPLIT_FIELDS:
            if values.get(split) is not None:
                values[split] = tuple(float(v) for v in values[split])
        return cls(name=name, **values)

    @property
    def is_complete(self) -> bool:
        return all(getattr(self, f) is not None for f in DERIVED_FIELDS)

    def validate(self):
        """Check that the decomposability splits are consistent"""
        lengths = {split: len(getattr(self, split)) for split in SPLIT_FIELDS
                   if getattr(self, split) is not None}
        if len(set(lengths.values())) > 1:
            raise ConfigurationError(
                "Error reading in fr_c/n/p values, inconsistent array lengths",
                ErrorContext(component="ResidueTypeRegistry", details={"type": self.name, **lengths})
            )
        for split, length in lengths.items():
            if length != MAX_FR:
                raise ConfigurationError(
                    f"{split} must have {MAX_FR} decomposability classes, got {length}",
                    ErrorContext(component="ResidueTypeRegistry", details={"type": self.name})
                )
            total = sum(getattr(self, split))
            if abs(total - 1.0) > SPLIT_SUM_TOLERANCE:
                raise ConfigurationError(
                    f"{split} must sum to 1, got {total}",
                    ErrorContext(component="ResidueTypeRegistry", details={"type": self.name})
                )

    def bounded(self) -> "ResidueType":
        """Copy with every parameter clamped to its physical range"""
        if not self.is_complete:
            raise ConfigurationError(
                f"Residue type '{self.name}' has unresolved fields",
                ErrorContext(component="ResidueTypeRegistry")
            )
        values = {}
        for name, (lower, upper) in RESIDUE_PARAMETER_BOUNDS.items():
            values[name] = bound(getattr(self, name), lower, upper)
        values["cf_contrib"] = int(values["cf_contrib"])
        return replace(self, **values)


class ResidueTypeRegistry:
    """
    Name-keyed table of residue types.

    Lookups are case-insensitive. Entries are read-only after
    ``fill_derived`` apart from the one-off derivation fill-in.
    """

    def __init__(self, residue_types: Optional[Iterable[ResidueType]] = None):
        self._types: Dict[str, ResidueType] = {}
        self._filled: Set[str] = set()
        for residue_type in residue_types or []:
            self.register(residue_type)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping]) -> "ResidueTypeRegistry":
        return cls(ResidueType.from_dict(name, data or {}) for name, data in mapping.items())

    @classmethod
    def builtin(cls) -> "ResidueTypeRegistry":
        """Registry holding the built-in residue library, fully derived"""
        registry = cls.from_mapping(DEFAULT_RESIDUE_TYPES)
        registry.fill_derived()
        return registry

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "ResidueTypeRegistry":
        """Load residue types from the ``residue_types`` section of a YAML file"""
        registry = cls()
        registry.update_from_yaml(yaml_path)
        return registry

    def update_from_yaml(self, yaml_path: Union[str, Path]):
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise ConfigurationError(f"Residue type file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}

        for name, data in (content.get("residue_types") or {}).items():
            self.register(ResidueType.from_dict(name, data or {}))

    def register(self, residue_type: ResidueType):
        key = residue_type.name.lower()
        if key in self._types:
            logger.debug(f"Replacing residue type '{residue_type.name}'")
        self._types[key] = residue_type
        self._filled.discard(key)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._types

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self) -> Iterator[ResidueType]:
        return iter(self._types.values())

    @property
    def names(self) -> List[str]:
        return [t.name for t in self._types.values()]

    def resolve(self, name: str) -> ResidueType:
        """Return the fully derived residue type called ``name``"""
        key = name.lower()
        if key not in self._types:
            raise NotFoundError(
                f"Could not find residue name {name}",
                ErrorContext(component="ResidueTypeRegistry", operation="resolve")
            )
        self._fill(key, set())
        return self._types[key]

    def fill_derived(self):
        """Fill unset fields of every entry from its template or the defaults"""
        for key in list(self._types):
            self._fill(key, set())

    def _fill(self, key: str, resolving: Set[str]):
        if key in self._filled:
            return
        if key in resolving:
            # Cyclic template chain; the caller fills from what is set so far
            logger.warning(f"Cyclic derived_from chain through residue type '{key}'")
            return

        resolving.add(key)
        residue = self._types[key]
        template = None
        if residue.derived_from:
            parent_key = residue.derived_from.lower()
            if parent_key in self._types:
                self._fill(parent_key, resolving)
                template = self._types[parent_key]
            else:
                logger.warning(
                    f"Residue type '{residue.name}' derives from unknown type "
                    f"'{residue.derived_from}'; using defaults"
                )

        for field_name in DERIVED_FIELDS:
            if getattr(residue, field_name) is not None:
                continue
            value = getattr(template, field_name) if template is not None else None
            if value is None:
                value = DEFAULT_RESIDUE_FIELDS[field_name]
            if field_name in SPLIT_FIELDS:
                value = tuple(value)
            setattr(residue, field_name, value)

        residue.validate()
        resolving.discard(key)
        self._filled.add(key)


@dataclass(frozen=True)
class TillageType:
    """Default residue incorporation of a named tillage implement"""
    name: str
    f_incorp: float
    tillage_depth_mm: float


class TillageTypeRegistry:
    """Lookup table of tillage operations keyed by name"""

    def __init__(self, tillage_types: Optional[Iterable[TillageType]] = None):
        self._types: Dict[str, TillageType] = {}
        for tillage_type in tillage_types or []:
            self._types[tillage_type.name.lower()] = tillage_type

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Mapping]) -> "TillageTypeRegistry":
        return cls(
            TillageType(name=name, f_incorp=float(data["f_incorp"]),
                        tillage_depth_mm=float(data["tillage_depth_mm"]))
            for name, data in mapping.items()
        )

    @classmethod
    def builtin(cls) -> "TillageTypeRegistry":
        return cls.from_mapping(DEFAULT_TILLAGE_TYPES)

    def update_from_yaml(self, yaml_path: Union[str, Path]):
        """Add the ``tillage_types`` section of a YAML file"""
        with open(Path(yaml_path), encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
        extra = TillageTypeRegistry.from_mapping(content.get("tillage_types") or {})
        self._types.update(extra._types)

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._types

    def get(self, name: str) -> Optional[TillageType]:
        return self._types.get(name.lower())

    def resolve(self, name: str) -> TillageType:
        tillage_type = self.get(name)
        if tillage_type is None:
            raise NotFoundError(
                f"Cannot find info for tillage:- {name}",
                ErrorContext(component="TillageTypeRegistry", operation="resolve")
            )
        return tillage_type
