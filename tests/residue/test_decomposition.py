"""
Tests for potential and actual residue decomposition.
"""
from datetime import date

import pytest

from surfom.core.config import DecompositionConfig
from surfom.core.contracts import DailyWeather
from surfom.core.exceptions import MassImbalanceError, NotFoundError
from surfom.residue.decomposition import DecompositionEngine


@pytest.fixture
def engine():
    return DecompositionEngine(DecompositionConfig())


@pytest.fixture
def wheat_store(store):
    """1000 kg/ha lying wheat at C:N 25 (400 kg C, 16 kg N, 2 kg P)"""
    pool = store.create("wheat", "wheat")
    for i, split in enumerate((0.2, 0.7, 0.1)):
        pool.lying[i].amount = 1000.0 * split
        pool.lying[i].c = 400.0 * split
        pool.lying[i].n = 16.0 * split
        pool.lying[i].p = 2.0 * split
    return store


class TestPotentialDecomposition:

    def test_unconstrained_rate(self, engine, wheat_store, warm_weather):
        potential = engine.compute_potential(wheat_store, warm_weather, cumulative_eos=0.0)
        request = potential.get("wheat")
        assert potential.temperature_factor == pytest.approx(1.0)
        assert potential.moisture_factor == pytest.approx(1.0)
        assert potential.contact_factor == pytest.approx(1.0)
        assert request.c == pytest.approx(40.0)
        assert request.n == pytest.approx(1.6)
        assert request.p == pytest.approx(0.2)
        assert request.amount == pytest.approx(100.0)

    def test_request_leaves_pools_untouched(self, engine, wheat_store, warm_weather):
        engine.compute_potential(wheat_store, warm_weather, cumulative_eos=0.0)
        assert wheat_store.get("wheat").lying_sum("c") == pytest.approx(400.0)

    def test_dry_surface_slows_decomposition(self, engine, wheat_store, warm_weather):
        potential = engine.compute_potential(wheat_store, warm_weather, cumulative_eos=10.0)
        assert potential.get("wheat").c == pytest.approx(20.0)

    def test_pond_halves_moisture_factor(self, engine, wheat_store, warm_weather):
        potential = engine.compute_potential(wheat_store, warm_weather, 30.0, pond_active=True)
        assert potential.moisture_factor == pytest.approx(0.5)

    def test_trace_residue_decomposes_completely(self, engine, store, warm_weather):
        pool = store.create("wheat", "wheat")
        pool.lying[0].c = 0.001
        pool.lying[0].n = 0.0001
        potential = engine.compute_potential(store, warm_weather, cumulative_eos=20.0)
        assert potential.get("wheat").c == pytest.approx(0.001)

    def test_frozen(self, engine, wheat_store):
        cold = DailyWeather(max_temperature_c=0.0, min_temperature_c=-8.0)
        potential = engine.compute_potential(wheat_store, cold, cumulative_eos=0.0)
        assert potential.get("wheat").c == 0.0

    def test_day_recorded(self, engine, wheat_store, warm_weather):
        potential = engine.compute_potential(wheat_store, warm_weather, 0.0, day=date(2024, 3, 1))
        assert potential.day == date(2024, 3, 1)


class TestActualDecomposition:

    @pytest.fixture
    def potential(self, engine, wheat_store, warm_weather):
        return engine.compute_potential(wheat_store, warm_weather, cumulative_eos=0.0)

    def test_full_potential(self, engine, wheat_store, potential):
        applied = engine.apply_actual(wheat_store, potential, potential.as_actual())
        pool = wheat_store.get("wheat")
        assert applied["wheat"] == pytest.approx((40.0, 1.6, 0.2))
        assert pool.lying_sum("c") == pytest.approx(360.0)
        assert pool.lying_sum("amount") == pytest.approx(900.0)
        assert pool.lying_sum("n") == pytest.approx(14.4)
        assert pool.lying_sum("p") == pytest.approx(1.8)

    def test_proportional_across_classes(self, engine, wheat_store, potential):
        engine.apply_actual(wheat_store, potential, {"wheat": (20.0, 0.8)})
        pool = wheat_store.get("wheat")
        assert [f.c for f in pool.lying] == pytest.approx([76.0, 266.0, 38.0])

    def test_phosphorus_follows_carbon(self, engine, wheat_store, potential):
        applied = engine.apply_actual(wheat_store, potential, {"wheat": (20.0, 1.6)})
        assert applied["wheat"][2] == pytest.approx(0.1)

    def test_zero_actual_is_noop(self, engine, wheat_store, potential):
        assert engine.apply_actual(wheat_store, potential, {"wheat": (0.0, 0.0)}) == {}
        assert wheat_store.get("wheat").lying_sum("c") == pytest.approx(400.0)

    def test_within_tolerance(self, engine, wheat_store, potential):
        engine.apply_actual(wheat_store, potential, {"wheat": (40.0 + 5e-5, 1.6)})

    def test_carbon_above_potential(self, engine, wheat_store, potential):
        with pytest.raises(MassImbalanceError, match="C decomposition exceeds potential"):
            engine.apply_actual(wheat_store, potential, {"wheat": (40.01, 1.6)})

    def test_nitrogen_above_potential(self, engine, wheat_store, potential):
        with pytest.raises(MassImbalanceError, match="N decomposition exceeds potential"):
            engine.apply_actual(wheat_store, potential, {"wheat": (40.0, 1.7)})

    def test_negative_actual(self, engine, wheat_store, potential):
        with pytest.raises(MassImbalanceError):
            engine.apply_actual(wheat_store, potential, {"wheat": (-1.0, 0.0)})

    def test_unknown_pool(self, engine, wheat_store, potential):
        with pytest.raises(NotFoundError):
            engine.apply_actual(wheat_store, potential, {"rice": (1.0, 0.0)})
