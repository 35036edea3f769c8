"""Shared fixtures for the surfom test suite."""
import pytest

from surfom.core.config import InitialResidue, SurfomConfig, set_config
from surfom.core.contracts import DailyWeather, SoilSurfaceState
from surfom.residue.balance import Notifier, RecordingListener
from surfom.residue.pools import PoolStore
from surfom.residue.registry import ResidueTypeRegistry, TillageTypeRegistry


@pytest.fixture(autouse=True)
def reset_global_config():
    """Each test starts without a cached global configuration"""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def registry():
    return ResidueTypeRegistry.builtin()


@pytest.fixture
def tillage_types():
    return TillageTypeRegistry.builtin()


@pytest.fixture
def store(registry):
    return PoolStore(registry)


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def notifier(listener):
    return Notifier([listener])


@pytest.fixture
def warm_weather():
    """Mean temperature at the 20 oC optimum, no rain"""
    return DailyWeather(max_temperature_c=30.0, min_temperature_c=10.0, rainfall_mm=0.0)


@pytest.fixture
def dry_soil():
    return SoilSurfaceState(soil_evaporation_mm=0.0, layer_thickness_mm=[100.0, 200.0, 300.0])


@pytest.fixture
def wheat_config():
    """1000 kg/ha of lying wheat stubble at C:N 25"""
    return SurfomConfig(initial_residues=[
        InitialResidue(name="wheat", residue_type="wheat", mass=1000.0, standing_fraction=0.0, cnr=25.0)
    ])
