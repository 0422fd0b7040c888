"""Tests for death penalties and post-raid vitality."""

import pytest

from raidsync.state.config import LostOnDeathConfig
from raidsync.state.items import find_broken_items
from raidsync.state.schema import (
    BodyPartEffect,
    EquipmentSlot,
    HealthSync,
    Item,
    QuestStatus,
    Vital,
)
from raidsync.systems import DeathPenaltyEngine, is_player_dead, reset_vitality, save_vitality

from conftest import NOW


@pytest.fixture
def engine(tables):
    return DeathPenaltyEngine(LostOnDeathConfig(), tables)


def remaining_ids(character) -> set[str]:
    return {item.id for item in character.inventory.items}


class TestIsPlayerDead:
    """Which exits count as death."""

    @pytest.mark.parametrize("exit", ["survived", "runner", "Survived", "RUNNER"])
    def test_surviving_exits(self, exit):
        """Survived and runner are the only surviving exits, in any case."""
        assert not is_player_dead(exit)

    @pytest.mark.parametrize("exit", ["killed", "left", "missinginaction", "somethingnew"])
    def test_everything_else_is_death(self, exit):
        """Any other exit, known or not, counts as death."""
        assert is_player_dead(exit)


class TestHealthPenalty:
    """Health scaling for early exits."""

    @pytest.mark.parametrize("multiplier", [0.0, 0.01, 0.3, 1.0])
    def test_reduce_health_to_percent(self, engine, pmc, multiplier):
        """Every body part ends at maximum times the multiplier."""
        engine.reduce_health_to_percent(pmc, multiplier)
        for part in pmc.health.body_parts.values():
            assert part.current == pytest.approx(part.maximum * multiplier)

    def test_negative_multiplier_rejected(self, engine, pmc):
        """Negative multipliers are a caller error."""
        with pytest.raises(ValueError):
            engine.reduce_health_to_percent(pmc, -0.5)

    def test_left_exit(self, engine, pmc):
        """Leaving the raid drops health to one percent."""
        assert engine.update_health_post_raid(pmc, "left") == 0.01
        assert pmc.health.body_parts["Chest"].current == pytest.approx(0.85)

    def test_missing_in_action(self, engine, pmc):
        """MIA drops health to thirty percent."""
        assert engine.update_health_post_raid(pmc, "MissingInAction") == 0.3
        assert pmc.health.body_parts["Head"].current == pytest.approx(10.5)

    @pytest.mark.parametrize("exit", ["killed", "survived", "somethingnew"])
    def test_other_exits_leave_health_alone(self, engine, pmc, exit):
        """Only left and MIA change health here."""
        assert engine.update_health_post_raid(pmc, exit) is None
        assert pmc.health.body_parts["Head"].current == 35


class TestDeleteInventory:
    """What a dead PMC forfeits."""

    def test_default_policy(self, engine, pmc):
        """Gear, loose loot and pocket contents go; protected slots stay."""
        removed = engine.delete_inventory(pmc)
        remaining = remaining_ids(pmc)

        for item_id in ("helmet", "rig", "rig_ammo", "backpack", "backpack_loot",
                        "pocket_loot", "rifle", "rifle_mag"):
            assert item_id not in remaining
            assert item_id in removed

        for item_id in ("equipment", "stash", "pockets", "special_item", "secure",
                        "secure_loot", "stash_item", "roubles"):
            assert item_id in remaining

    def test_slot_marked_kept_survives(self, tables, pmc):
        """A slot configured as kept keeps its item; lost slots lose theirs with contents."""
        config = LostOnDeathConfig(equipment={
            EquipmentSlot.HEADWEAR: False,
            EquipmentSlot.TACTICAL_VEST: True,
        })
        engine = DeathPenaltyEngine(config, tables)

        engine.delete_inventory(pmc)
        remaining = remaining_ids(pmc)

        assert "helmet" in remaining
        assert "rig" not in remaining
        assert "rig_ammo" not in remaining

    def test_loose_loot_kept_when_configured(self, tables, pmc):
        """With loose loot protected, contents of lost containers move to the stash."""
        engine = DeathPenaltyEngine(LostOnDeathConfig(loose_loot=False), tables)
        removed = engine.delete_inventory(pmc)
        remaining = remaining_ids(pmc)

        assert "pocket_loot" in remaining
        assert "rig" not in remaining
        assert "backpack" not in remaining
        for item_id in ("rig_ammo", "backpack_loot"):
            assert item_id in remaining
            assert item_id not in removed
            item = pmc.inventory.get(item_id)
            assert item.parent_id == "stash"
            assert item.slot_id == "hideout"
            assert item.location is None
        assert find_broken_items(pmc.inventory.items) == set()

    def test_loose_loot_leaves_lost_pockets(self, tables, pmc):
        """Pocket contents survive even when the pockets themselves are lost."""
        config = LostOnDeathConfig(loose_loot=False, special_slot_items=True)
        config.equipment[EquipmentSlot.POCKETS] = True
        engine = DeathPenaltyEngine(config, tables)

        engine.delete_inventory(pmc)
        remaining = remaining_ids(pmc)

        assert "pockets" not in remaining
        assert "special_item" not in remaining
        assert pmc.inventory.get("pocket_loot").parent_id == "stash"
        assert find_broken_items(pmc.inventory.items) == set()

    def test_lost_pockets_keep_special_slots(self, tables, pmc):
        """Pockets marked lost stay put while they hold protected special slot items."""
        config = LostOnDeathConfig()
        config.equipment[EquipmentSlot.POCKETS] = True
        engine = DeathPenaltyEngine(config, tables)

        engine.delete_inventory(pmc)
        remaining = remaining_ids(pmc)

        assert "pockets" in remaining
        assert pmc.inventory.get("special_item").parent_id == "pockets"
        assert "pocket_loot" not in remaining

    def test_special_slot_items_follow_their_container(self, tables, pmc):
        """Special slot items are only lost when the pockets holding them are."""
        config = LostOnDeathConfig(special_slot_items=True)
        engine = DeathPenaltyEngine(config, tables)
        engine.delete_inventory(pmc)
        assert "special_item" in remaining_ids(pmc)

        config.equipment[EquipmentSlot.POCKETS] = True
        engine.delete_inventory(pmc)
        assert "special_item" not in remaining_ids(pmc)

    def test_quest_raid_items_lost(self, engine, pmc):
        """Quest items carried in raid are lost when quest items are forfeit."""
        pmc.inventory.items.append(
            Item(id="quest_thing", tpl="tpl_gold", parent_id="quest_raid", slot_id="main")
        )
        engine.delete_inventory(pmc)
        assert "quest_thing" not in remaining_ids(pmc)

    def test_fast_panel_cleared(self, engine, pmc):
        """Quick-access bindings are wiped."""
        engine.delete_inventory(pmc)
        assert pmc.inventory.fast_panel == {}


class TestQuestItemReset:
    """Hand-in progress for quest items carried at death."""

    def test_matching_conditions_removed_from_started_quests(self, engine, pmc):
        """Conditions targeting a carried item are undone."""
        pmc.stats.carried_quest_items = ["tpl_gold"]
        engine.reset_carried_quest_items(pmc)
        assert pmc.quests[0].completed_conditions == ["cond_other"]
        assert pmc.stats.carried_quest_items == []

    def test_other_quest_states_untouched(self, engine, pmc):
        """Only started quests are rolled back."""
        pmc.quests[0].status = QuestStatus.SUCCESS
        pmc.stats.carried_quest_items = ["tpl_gold"]
        engine.reset_carried_quest_items(pmc)
        assert pmc.quests[0].completed_conditions == ["cond_find_gold", "cond_other"]

    def test_apply_skips_quest_reset_when_items_kept(self, tables, pmc, make_request):
        """With quest items protected, progress is left alone."""
        engine = DeathPenaltyEngine(LostOnDeathConfig(quest_items=False), tables)
        pmc.stats.carried_quest_items = ["tpl_gold"]
        engine.apply(pmc, make_request(pmc, exit="killed"))
        assert "cond_find_gold" in pmc.quests[0].completed_conditions


class TestVitality:
    """Health sync and full reset."""

    def test_save_vitality_clamps(self, pmc):
        """Synced values are clamped to the part's range."""
        sync = HealthSync(
            health={"Head": Vital(current=50, maximum=35), "Chest": Vital(current=-3, maximum=85)},
            hydration=40,
            energy=500,
        )
        save_vitality(pmc, sync, "s1", clock=lambda: NOW)

        assert pmc.health.body_parts["Head"].current == 35
        assert pmc.health.body_parts["Chest"].current == 0
        assert pmc.health.hydration.current == 40
        assert pmc.health.energy.current == 100
        assert pmc.health.update_time == NOW

    def test_unknown_body_part_ignored(self, pmc):
        """Parts the character does not have are skipped."""
        sync = HealthSync(health={"Tail": Vital(current=1, maximum=1)})
        save_vitality(pmc, sync, "s1", clock=lambda: NOW)
        assert "Tail" not in pmc.health.body_parts

    def test_reset_vitality(self, pmc):
        """Everything is back at maximum with no effects."""
        pmc.health.body_parts["Head"].current = 1
        pmc.health.body_parts["Head"].ensure_effects()["Fracture"] = BodyPartEffect()
        pmc.health.energy.current = 3

        reset_vitality(pmc, clock=lambda: NOW)

        assert pmc.health.body_parts["Head"].current == 35
        assert pmc.health.body_parts["Head"].effects is None
        assert pmc.health.energy.current == 100
