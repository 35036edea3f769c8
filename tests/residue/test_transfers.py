"""
Tests for additions, removals, tillage incorporation and leaching.
"""
import logging

import pytest

from surfom.core.config import AdditionConfig, LeachingConfig
from surfom.core.contracts import (
    AddFaeces, AddSurfaceOMRequest, BiomassRemoved, CropChopped,
    FOMFraction, PoolState, SurfaceOrganicMatterState, TillageRequest,
)
from surfom.core.exceptions import (
    ConfigurationError, InputError, InsufficientMassError, NotFoundError
)
from surfom.core.types import FlowType
from surfom.residue.transfers import MassTransfers, leaching_rain, update_cumulative_eos


@pytest.fixture
def transfers(store, tillage_types, notifier):
    return MassTransfers(store, tillage_types, notifier, AdditionConfig(), LeachingConfig())


@pytest.fixture
def wheat(transfers, store):
    transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=1000.0, cnr=25.0, cpr=200.0))
    return store.get("wheat")


def _removal(name, residue_type, lying=None, standing=None, **minerals):
    def fractions(values):
        values = values or [{}] * 3
        return [FOMFraction(**v) for v in values]
    return SurfaceOrganicMatterState(pools=[PoolState(
        name=name, residue_type=residue_type,
        lying=fractions(lying), standing=fractions(standing), **minerals,
    )])


class TestAdd:

    def test_nitrogen_from_cn_ratio(self, wheat):
        assert wheat.lying_sum("n") == pytest.approx(16.0)
        assert [f.c for f in wheat.lying] == pytest.approx([80.0, 280.0, 40.0])
        assert [f.amount for f in wheat.lying] == pytest.approx([200.0, 700.0, 100.0])
        assert wheat.standing_sum("amount") == 0.0

    def test_phosphorus_from_cp_ratio(self, wheat):
        assert wheat.lying_sum("p") == pytest.approx(2.0)

    def test_explicit_nitrogen_wins(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=1000.0, n=10.0, cnr=25.0))
        assert store.get("wheat").lying_sum("n") == pytest.approx(10.0)

    def test_missing_nitrogen_information(self, transfers):
        with pytest.raises(InputError, match="CN ratio not specified"):
            transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=1000.0))

    def test_default_cp_ratio_warns(self, transfers, store, caplog):
        with caplog.at_level(logging.WARNING):
            transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=1000.0, cnr=25.0))
        assert "Default value applied" in caplog.text
        # default C:P of zero gives no P
        assert store.get("wheat").lying_sum("p") == 0.0

    def test_named_pool(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="wheat", name="stubble", mass=100.0, cnr=25.0))
        assert "stubble" in store
        assert store.get("stubble").type_name == "wheat"

    def test_mineral_ppm(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="manure", mass=1000.0, cnr=20.0))
        manure = store.get("manure")
        assert manure.no3 == pytest.approx(0.2)
        assert manure.nh4 == pytest.approx(1.0)
        assert manure.po4 == pytest.approx(0.1)

    def test_negative_mass_shared_by_standing_and_lying(self, transfers, wheat):
        for i, split in enumerate((0.2, 0.7, 0.1)):
            wheat.standing[i].amount = 1000.0 * split
            wheat.standing[i].c = 400.0 * split
        transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=-500.0, cnr=25.0))
        assert wheat.standing_sum("amount") == pytest.approx(750.0)
        assert wheat.lying_sum("amount") == pytest.approx(750.0)

    def test_negative_mass_beyond_pool_is_fatal(self, transfers, wheat):
        with pytest.raises(InsufficientMassError):
            transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=-1500.0, cnr=25.0))
        assert wheat.total("amount") == pytest.approx(1000.0)
        assert wheat.lying_sum("c") == pytest.approx(400.0)

    def test_negative_mass_on_new_pool_is_fatal(self, transfers, store):
        with pytest.raises(InsufficientMassError):
            transfers.add(AddSurfaceOMRequest(residue_type="maize", mass=-500.0, cnr=25.0))
        assert "maize" not in store

    def test_negative_mass_can_empty_pool(self, transfers, wheat):
        transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=-1000.0, cnr=25.0))
        assert wheat.total("amount") == pytest.approx(0.0, abs=1e-9)
        assert wheat.lying_sum("c") == pytest.approx(0.0, abs=1e-9)

    def test_mass_bounded(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="wheat", mass=1.0e7, cnr=25.0))
        assert store.get("wheat").lying_sum("amount") == pytest.approx(100000.0)

    def test_residue_added_event(self, wheat, listener):
        event = listener.residues_added[-1]
        assert event.residue_type == "wheat"
        assert event.dlt_residue_wt == 1000.0
        assert event.dlt_dm_n == pytest.approx(16.0)
        assert event.dlt_dm_p == pytest.approx(2.0)

    def test_unknown_type(self, transfers):
        with pytest.raises(NotFoundError):
            transfers.add(AddSurfaceOMRequest(residue_type="lupin", mass=100.0, cnr=25.0))


class TestCropResidue:

    def test_crop_chopped(self, transfers, store, listener):
        event = CropChopped(
            crop_type="wheat", dm_type=["stem", "leaf"],
            dlt_crop_dm=[100.0, 50.0], dlt_dm_n=[1.0, 0.5], dlt_dm_p=[0.1, 0.05],
            fraction_to_residue=[1.0, 0.5],
        )
        assert transfers.crop_chopped(event) == pytest.approx(125.0)
        pool = store.get("wheat")
        assert pool.lying_sum("amount") == pytest.approx(125.0)
        assert pool.lying_sum("n") == pytest.approx(1.25)
        assert pool.lying_sum("p") == 0.0
        assert listener.residues_added[-1].dlt_residue_wt == pytest.approx(125.0)
        # Crop residue is not an external flow
        assert listener.mass_flows == []

    def test_crop_chopped_phosphorus_aware(self, transfers, store):
        event = CropChopped(
            crop_type="wheat", dlt_crop_dm=[100.0], dlt_dm_n=[1.0], dlt_dm_p=[0.2],
            fraction_to_residue=[0.5],
        )
        transfers.crop_chopped(event, phosphorus_aware=True)
        assert store.get("wheat").lying_sum("p") == pytest.approx(0.1)

    def test_nothing_to_residue(self, transfers, store):
        event = CropChopped(crop_type="wheat", dlt_crop_dm=[100.0], dlt_dm_n=[1.0], fraction_to_residue=[0.0])
        assert transfers.crop_chopped(event) == 0.0
        assert "wheat" not in store

    def test_biomass_removed_includes_phosphorus(self, transfers, store):
        event = BiomassRemoved(
            crop_type="maize", dlt_crop_dm=[200.0], dlt_dm_n=[2.0], dlt_dm_p=[0.4],
            fraction_to_residue=[0.25],
        )
        assert transfers.biomass_removed(event) == pytest.approx(50.0)
        pool = store.get("maize")
        assert pool.lying_sum("n") == pytest.approx(0.5)
        assert pool.lying_sum("p") == pytest.approx(0.1)

    def test_faeces(self, transfers, store):
        transfers.add_faeces(AddFaeces(om_weight=100.0, om_n=2.0, om_p=0.5, om_ash_alk=10.0, om_s=1.0))
        manure = store.get("manure")
        assert manure.lying_sum("amount") == pytest.approx(50.0)
        assert manure.lying_sum("n") == pytest.approx(1.0)
        assert manure.lying_sum("p") == pytest.approx(0.25)
        assert manure.lying_sum("ash_alk") == pytest.approx(5.0)
        assert [f.ash_alk for f in manure.lying] == pytest.approx([1.5, 3.0, 0.5])


class TestRemove:

    def test_lying_removal(self, transfers, wheat, listener):
        transfers.remove(_removal(
            "wheat", "wheat",
            lying=[{"amount": 100.0, "c": 40.0, "n": 1.6}, {}, {}],
            no3=0.0,
        ))
        assert wheat.lying[0].amount == pytest.approx(100.0)
        assert wheat.lying[0].c == pytest.approx(40.0)
        assert wheat.lying[0].n == pytest.approx(1.6)
        removed = listener.surface_om_removals[-1]
        assert removed.dlt_surface_om_wt == pytest.approx(100.0)
        assert removed.surface_om_dlt_dm_n == pytest.approx(1.6)

    def test_lying_shortfall_is_fatal(self, transfers, wheat):
        with pytest.raises(InsufficientMassError):
            transfers.remove(_removal("wheat", "wheat", lying=[{"amount": 500.0}, {}, {}]))

    def test_standing_shortfall_keeps_dry_matter_but_loses_nutrients(self, transfers, wheat, caplog):
        wheat.standing[0].amount = 50.0
        wheat.standing[0].c = 20.0
        with caplog.at_level(logging.WARNING):
            transfers.remove(_removal("wheat", "wheat", standing=[{"amount": 80.0, "c": 15.0}, {}, {}]))
        assert "standing" in caplog.text
        assert wheat.standing[0].amount == pytest.approx(50.0)
        assert wheat.standing[0].c == pytest.approx(5.0)

    def test_unknown_pool_is_skipped(self, transfers, wheat, listener, caplog):
        with caplog.at_level(logging.WARNING):
            transfers.remove(_removal("rice", "rice", lying=[{"amount": 1.0}, {}, {}]))
        assert "unknown rice" in caplog.text
        assert listener.surface_om_removals == []

    def test_minerals_subtracted(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="manure", mass=1000.0, cnr=20.0))
        transfers.remove(_removal("manure", "manure", nh4=0.4))
        assert store.get("manure").nh4 == pytest.approx(0.6)


class TestTillage:

    def test_layer_split(self, transfers, wheat, listener):
        profile = transfers.incorporate(0.5, 100.0, [50.0, 50.0, 100.0])
        assert len(profile.layers) == 2
        assert profile.layers[0].pools[1].c == pytest.approx(280.0 * 0.5 * 0.5)
        assert profile.layers[1].pools[1].c == pytest.approx(280.0 * 0.5 * 0.5)
        assert profile.total_c == pytest.approx(200.0)
        assert wheat.total("c") == pytest.approx(200.0)
        assert wheat.total("amount") == pytest.approx(500.0)
        assert listener.residues_removed[-1].residue_incorp_fraction == pytest.approx([0.5, 0.5, 0.0])
        # Incorporation moves material to the soil, not out of the system
        assert listener.mass_flows == []

    def test_partial_last_layer(self, transfers, wheat):
        profile = transfers.incorporate(1.0, 75.0, [50.0, 50.0])
        assert profile.layers[0].pools[0].c == pytest.approx(80.0 * 50.0 / 75.0)
        assert profile.layers[1].pools[0].c == pytest.approx(80.0 * 25.0 / 75.0)
        assert wheat.total("c") == pytest.approx(0.0)

    def test_carbon_conserved(self, transfers, wheat):
        before = wheat.total("c")
        profile = transfers.incorporate(0.3, 150.0, [100.0, 100.0])
        assert profile.total_c + wheat.total("c") == pytest.approx(before, abs=1e-6)

    def test_lookup_by_name(self, transfers, wheat):
        applied = transfers.tillage(TillageRequest(name="disc"), [100.0, 100.0])
        assert applied.f_incorp == 0.5
        assert applied.tillage_depth_mm == 100.0
        assert wheat.total("amount") == pytest.approx(500.0)

    def test_unknown_tillage(self, transfers, wheat):
        with pytest.raises(NotFoundError):
            transfers.tillage(TillageRequest(name="spade"), [100.0])

    def test_zero_depth_is_a_loss(self, transfers, wheat, listener):
        applied = transfers.tillage(TillageRequest(name="burn"), [100.0])
        assert listener.fom_profiles == []
        assert applied.tillage_depth_mm == 0.0
        flow = listener.mass_flows[-1]
        assert flow.flow_type == FlowType.LOSS
        assert flow.dm == pytest.approx(-900.0)
        assert flow.c == pytest.approx(-360.0)
        assert wheat.total("amount") == pytest.approx(100.0)

    def test_negative_depth_is_a_loss(self, transfers, wheat, listener):
        profile = transfers.incorporate(0.5, -10.0, [50.0, 50.0])
        assert profile is None
        assert listener.fom_profiles == []
        assert listener.residues_removed == []
        flow = listener.mass_flows[-1]
        assert flow.flow_type == FlowType.LOSS
        assert flow.c == pytest.approx(-200.0)
        assert wheat.total("c") == pytest.approx(200.0)

    def test_depth_below_profile(self, transfers, wheat, listener):
        profile = transfers.incorporate(1.0, 1000.0, [100.0, 200.0])
        assert profile.total_c == pytest.approx(400.0)
        assert profile.layers[1].pools[1].c == pytest.approx(280.0 * 0.9)
        assert listener.residues_removed[-1].residue_incorp_fraction == pytest.approx([0.1, 0.9])
        assert wheat.total("c") == pytest.approx(0.0)
        assert listener.mass_flows == []

    def test_same_day_tillage_composes(self, transfers, wheat):
        transfers.incorporate(0.5, 100.0, [100.0])
        transfers.incorporate(0.5, 100.0, [100.0])
        assert wheat.total("amount") == pytest.approx(250.0)

    def test_layers_required(self, transfers, wheat):
        with pytest.raises(ConfigurationError):
            transfers.incorporate(0.5, 100.0, [])

    def test_fraction_clamped(self, transfers, wheat):
        transfers.incorporate(1.5, 100.0, [100.0])
        assert wheat.total("amount") == pytest.approx(0.0)


class TestLeaching:

    @pytest.fixture
    def manure(self, transfers, store):
        transfers.add(AddSurfaceOMRequest(residue_type="manure", mass=1000.0, cnr=20.0))
        return store.get("manure")

    def test_full_leach_to_top_layer(self, transfers, manure, listener):
        fraction = transfers.leach(25.0, [100.0, 200.0])
        assert fraction == 1.0
        change = listener.nutrient_changes[-1]
        assert change.delta_no3 == pytest.approx([0.2, 0.0])
        assert change.delta_nh4 == pytest.approx([1.0, 0.0])
        assert change.delta_labile_p == pytest.approx([0.1, 0.0])
        assert manure.no3 == 0.0
        assert manure.nh4 == 0.0
        assert manure.po4 == 0.0

    def test_partial_leach(self, transfers, manure):
        assert transfers.leach(12.5, [100.0]) == pytest.approx(0.5)
        assert manure.nh4 == pytest.approx(0.5)

    def test_no_rain(self, transfers, manure, listener):
        assert transfers.leach(0.0, [100.0]) == 0.0
        assert listener.nutrient_changes == []
        assert manure.nh4 == pytest.approx(1.0)


class TestSurfaceWater:

    def test_small_rain_accumulates(self):
        assert update_cumulative_eos(5.0, 3.0, 2.0) == pytest.approx(6.0)

    def test_large_rain_restarts(self):
        assert update_cumulative_eos(15.0, 3.0, 5.0) == 0.0
        assert update_cumulative_eos(15.0, 8.0, 5.0) == pytest.approx(3.0)

    def test_floored_at_zero(self):
        assert update_cumulative_eos(1.0, 0.0, 3.0) == 0.0

    def test_leaching_threshold(self):
        assert leaching_rain(9.9, 10.0) == 0.0
        assert leaching_rain(10.0, 10.0) == 10.0
