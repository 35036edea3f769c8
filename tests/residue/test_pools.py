"""
Tests for the residue pool store.
"""
import pytest

from surfom.core.exceptions import NotFoundError
from surfom.residue.pools import PoolStore


class TestPoolStore:

    def test_create_takes_bounded_type_parameters(self, store):
        pool = store.create("stubble", "wheat")
        assert pool.type_name == "wheat"
        assert pool.pot_decomp_rate == pytest.approx(0.1)
        assert pool.residue_type.cf_contrib == 1
        assert pool.is_depleted

    def test_names_are_case_insensitive(self, store):
        pool = store.create("Wheat", "wheat")
        assert store.get("WHEAT") is pool
        assert store.create("wheat", "wheat") is pool
        assert len(store) == 1

    def test_stable_index(self, store):
        store.create("wheat", "wheat")
        store.create("maize", "maize")
        store.create("manure", "manure")
        assert store.index("maize") == 1
        assert store.names == ["wheat", "maize", "manure"]

    def test_unknown_pool(self, store):
        assert store.find("rice") is None
        with pytest.raises(NotFoundError):
            store.get("rice")
        with pytest.raises(NotFoundError):
            store.index("rice")

    def test_unknown_residue_type(self, store):
        with pytest.raises(NotFoundError):
            store.create("lupin", "lupin")

    def test_totals_fold_in_minerals(self, store):
        pool = store.create("manure", "manure")
        pool.lying[0].amount = 100.0
        pool.lying[0].c = 30.0
        pool.lying[0].n = 2.0
        pool.standing[1].p = 0.5
        pool.no3, pool.nh4, pool.po4 = 0.1, 0.2, 0.3

        totals = store.totals()
        assert totals.amount == pytest.approx(100.0)
        assert totals.c == pytest.approx(30.0)
        assert totals.n == pytest.approx(2.3)
        assert totals.p == pytest.approx(0.8)

    def test_state_round_trip(self, store, registry):
        pool = store.create("wheat", "wheat")
        pool.lying[1].amount = 700.0
        pool.standing[0].c = 12.0
        pool.nh4 = 0.4

        restored = PoolStore(registry)
        restored.restore(store.to_state())
        copy = restored.get("wheat")
        assert copy.lying[1].amount == 700.0
        assert copy.standing[0].c == 12.0
        assert copy.nh4 == 0.4

    def test_scale(self, store):
        pool = store.create("wheat", "wheat")
        pool.lying[0].amount = 100.0
        pool.no3 = 1.0
        pool.scale(0.25)
        assert pool.lying[0].amount == pytest.approx(25.0)
        assert pool.no3 == pytest.approx(0.25)
