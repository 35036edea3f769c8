"""
Residue pool state.

Each pool holds standing and lying material split into three
decomposability classes, plus mineral N and P carried on the residue.
Only lying material is in contact with the soil and decomposes.
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional

from surfom.core.constants import MAX_FR
from surfom.core.contracts import FOMFraction, PoolState, SurfaceOrganicMatterState
from surfom.core.exceptions import NotFoundError, ErrorContext
from surfom.core.types import KgPerHa, PoolName
from surfom.residue.registry import ResidueType, ResidueTypeRegistry

logger = logging.getLogger(__name__)


@dataclass
class OrganicMatterFraction:
    """Dry matter and its C, N, P and ash alkalinity (kg/ha)"""
    amount: KgPerHa = 0.0
    c: KgPerHa = 0.0
    n: KgPerHa = 0.0
    p: KgPerHa = 0.0
    ash_alk: KgPerHa = 0.0

    def scale(self, factor: float):
        self.amount *= factor
        self.c *= factor
        self.n *= factor
        self.p *= factor
        self.ash_alk *= factor

    def to_contract(self) -> FOMFraction:
        return FOMFraction(amount=self.amount, c=self.c, n=self.n, p=self.p, ash_alk=self.ash_alk)

    @classmethod
    def from_contract(cls, fraction: FOMFraction) -> "OrganicMatterFraction":
        return cls(amount=fraction.amount, c=fraction.c, n=fraction.n,
                   p=fraction.p, ash_alk=fraction.ash_alk)


def _fractions() -> List[OrganicMatterFraction]:
    return [OrganicMatterFraction() for _ in range(MAX_FR)]


@dataclass
class MassTotals:
    """Aggregate of all pools, used for before/after mass balance"""
    amount: KgPerHa = 0.0
    c: KgPerHa = 0.0
    n: KgPerHa = 0.0
    p: KgPerHa = 0.0
    ash_alk: KgPerHa = 0.0

    def __sub__(self, other: "MassTotals") -> "MassTotals":
        return MassTotals(
            amount=self.amount - other.amount,
            c=self.c - other.c,
            n=self.n - other.n,
            p=self.p - other.p,
            ash_alk=self.ash_alk - other.ash_alk,
        )


@dataclass
class ResiduePool:
    """One named surface residue pool"""
    name: PoolName
    residue_type: ResidueType  # bounded copy of the registry entry
    pot_decomp_rate: float = 0.0
    no3: KgPerHa = 0.0
    nh4: KgPerHa = 0.0
    po4: KgPerHa = 0.0
    standing: List[OrganicMatterFraction] = field(default_factory=_fractions)
    lying: List[OrganicMatterFraction] = field(default_factory=_fractions)

    @property
    def type_name(self) -> str:
        return self.residue_type.name

    @staticmethod
    def _sum(fractions: List[OrganicMatterFraction], attr: str) -> float:
        return sum(getattr(f, attr) for f in fractions)

    def lying_sum(self, attr: str) -> float:
        return self._sum(self.lying, attr)

    def standing_sum(self, attr: str) -> float:
        return self._sum(self.standing, attr)

    def total(self, attr: str) -> float:
        """Standing plus lying total of ``attr`` (amount, c, n, p or ash_alk)"""
        return self.lying_sum(attr) + self.standing_sum(attr)

    @property
    def mineral_n(self) -> KgPerHa:
        return self.no3 + self.nh4

    @property
    def standing_fraction(self) -> float:
        total = self.total("amount")
        return self.standing_sum("amount") / total if total > 0 else 0.0

    @property
    def is_depleted(self) -> bool:
        return self.total("amount") <= 0.0

    def scale(self, factor: float):
        """Scale every organic and mineral component by ``factor``"""
        for fraction in self.standing + self.lying:
            fraction.scale(factor)
        self.no3 *= factor
        self.nh4 *= factor
        self.po4 *= factor

    def to_state(self) -> PoolState:
        return PoolState(
            name=self.name,
            residue_type=self.type_name,
            pot_decomp_rate=self.pot_decomp_rate,
            no3=self.no3,
            nh4=self.nh4,
            po4=self.po4,
            standing=[f.to_contract() for f in self.standing],
            lying=[f.to_contract() for f in self.lying],
        )


class PoolStore:
    """
    Ordered, name-keyed collection of residue pools.

    Names are case-insensitive. Pools are never removed, so the insertion
    index of a pool is a stable handle for the lifetime of the store.
    """

    def __init__(self, registry: ResidueTypeRegistry):
        self.registry = registry
        self._pools: "OrderedDict[str, ResiduePool]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._pools)

    def __iter__(self) -> Iterator[ResiduePool]:
        return iter(self._pools.values())

    def __contains__(self, name: PoolName) -> bool:
        return name.lower() in self._pools

    @property
    def names(self) -> List[PoolName]:
        return [pool.name for pool in self._pools.values()]

    def find(self, name: PoolName) -> Optional[ResiduePool]:
        return self._pools.get(name.lower())

    def get(self, name: PoolName) -> ResiduePool:
        pool = self.find(name)
        if pool is None:
            raise NotFoundError(
                f"No organic matter called {name} present",
                ErrorContext(pool_name=name, component="PoolStore")
            )
        return pool

    def index(self, name: PoolName) -> int:
        """Stable position of the pool called ``name``"""
        for i, key in enumerate(self._pools):
            if key == name.lower():
                return i
        raise NotFoundError(f"No organic matter called {name} present",
                            ErrorContext(pool_name=name, component="PoolStore"))

    def create(self, name: PoolName, type_name: str) -> ResiduePool:
        """Add an empty pool of the given residue type"""
        if name in self:
            return self.get(name)
        residue_type = self.registry.resolve(type_name).bounded()
        pool = ResiduePool(
            name=name,
            residue_type=residue_type,
            pot_decomp_rate=residue_type.pot_decomp_rate,
        )
        self._pools[name.lower()] = pool
        logger.debug(f"Created residue pool '{name}' of type '{residue_type.name}'")
        return pool

    def get_or_create(self, name: PoolName, type_name: str) -> ResiduePool:
        pool = self.find(name)
        if pool is None:
            pool = self.create(name, type_name)
        return pool

    def clear(self):
        self._pools.clear()

    def sum(self, func: Callable[[ResiduePool], float]) -> float:
        return sum(func(pool) for pool in self._pools.values())

    def totals(self) -> MassTotals:
        """Organic totals of all pools with mineral N and P folded into N and P"""
        totals = MassTotals()
        for pool in self._pools.values():
            totals.amount += pool.total("amount")
            totals.c += pool.total("c")
            totals.n += pool.total("n") + pool.mineral_n
            totals.p += pool.total("p") + pool.po4
            totals.ash_alk += pool.total("ash_alk")
        return totals

    def to_state(self) -> SurfaceOrganicMatterState:
        return SurfaceOrganicMatterState(pools=[pool.to_state() for pool in self._pools.values()])

    def restore(self, state: SurfaceOrganicMatterState):
        """Replace all pools with those described in ``state``"""
        self.clear()
        for pool_state in state.pools:
            pool = self.create(pool_state.name, pool_state.residue_type)
            pool.pot_decomp_rate = pool_state.pot_decomp_rate
            pool.no3 = pool_state.no3
            pool.nh4 = pool_state.nh4
            pool.po4 = pool_state.po4
            pool.standing = [OrganicMatterFraction.from_contract(f) for f in pool_state.standing]
            pool.lying = [OrganicMatterFraction.from_contract(f) for f in pool_state.lying]

    def per_pool(self, func: Callable[[ResiduePool], float]) -> Dict[PoolName, float]:
        return {pool.name: func(pool) for pool in self._pools.values()}
