"""
Death penalties for raidsync.

Decides whether an exit counts as death, scales body-part health down for
early exits, and strips the inventory of whatever the loss policy says a
dead PMC forfeits.
"""

import logging

from ..state.config import LostOnDeathConfig
from ..state.items import remove_item
from ..state.schema import (
    Character,
    EquipmentSlot,
    ExitStatus,
    HIDEOUT_SLOT,
    Item,
    QuestStatus,
    RaidOutcomeRequest,
)
from ..state.tables import GameTables

logger = logging.getLogger(__name__)


# Exit status -> fraction of maximum health left on each body part
HEALTH_MULTIPLIERS = {
    ExitStatus.LEFT: 0.01,
    ExitStatus.MISSING_IN_ACTION: 0.3,
}

SURVIVING_EXITS = frozenset([ExitStatus.SURVIVED.value, ExitStatus.RUNNER.value])

LOOSE_LOOT_CONTAINERS = (
    EquipmentSlot.TACTICAL_VEST,
    EquipmentSlot.POCKETS,
    EquipmentSlot.BACKPACK,
)


def is_player_dead(exit: str) -> bool:
    """Anything other than survived or runner counts as death."""
    return exit.lower() not in SURVIVING_EXITS


class DeathPenaltyEngine:
    """Applies the loss-on-death policy to a PMC."""

    def __init__(self, config: LostOnDeathConfig, tables: GameTables):
        self.config = config
        self.tables = tables

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    def update_health_post_raid(self, character: Character, exit: str) -> float | None:
        """Reduce health for the exit status. Returns the multiplier applied, if any."""
        try:
            status = ExitStatus(exit.lower())
        except ValueError:
            status = None

        multiplier = HEALTH_MULTIPLIERS.get(status)
        if multiplier is None:
            return None

        self.reduce_health_to_percent(character, multiplier)
        return multiplier

    def reduce_health_to_percent(self, character: Character, multiplier: float) -> None:
        """Set every body part to maximum * multiplier."""
        if multiplier < 0:
            raise ValueError(f"health multiplier must be >= 0, got {multiplier}")
        for part in character.health.body_parts.values():
            part.current = part.maximum * multiplier

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    def loose_loot_ids(self, character: Character) -> set[str]:
        """Ids of items sitting directly in the vest, pockets or backpack."""
        inventory = character.inventory
        containers = set()
        for slot in LOOSE_LOOT_CONTAINERS:
            container = inventory.find_by_slot(slot.value)
            if container is not None:
                containers.add(container.id)
        return {item.id for item in inventory.items if item.parent_id in containers}

    def is_item_kept(self, character: Character, item: Item, loose_ids: set[str]) -> bool:
        inventory = character.inventory

        # Structural roots
        if not item.parent_id:
            return True

        if item.parent_id == inventory.equipment:
            return not self.config.slot_lost(item.slot_id)

        if item.parent_id == inventory.quest_raid_items and not self.config.quest_items:
            return True

        if "SpecialSlot" in (item.slot_id or ""):
            return not self.config.special_slot_items

        if item.id in loose_ids and not self.config.loose_loot:
            return True

        return False

    def items_lost_on_death(self, character: Character) -> list[Item]:
        inventory = character.inventory
        loose_ids = self.loose_loot_ids(character)
        lost = []
        for item in inventory.items:
            if self.is_item_kept(character, item, loose_ids):
                continue
            if item.parent_id == inventory.equipment:
                if item.slot_id == EquipmentSlot.POCKETS.value and self._holds_kept_special_slot(
                    character, item
                ):
                    continue
                lost.append(item)
            elif item.parent_id == inventory.quest_raid_items:
                lost.append(item)
            elif (item.slot_id or "").startswith("pocket"):
                lost.append(item)
        return lost

    def _holds_kept_special_slot(self, character: Character, pockets: Item) -> bool:
        if self.config.special_slot_items:
            return False
        return any(
            item.parent_id == pockets.id and "SpecialSlot" in (item.slot_id or "")
            for item in character.inventory.items
        )

    def _rehome_kept_children(self, character: Character, container: Item, loose_ids: set[str]) -> None:
        """Move kept items out of a container that is about to be removed."""
        inventory = character.inventory
        stash = inventory.get(inventory.stash) if inventory.stash else None
        for item in inventory.items:
            if item.parent_id != container.id:
                continue
            if not self.is_item_kept(character, item, loose_ids):
                continue
            if stash is None:
                logger.warning(f"No stash on {character.id}, {item.id} is lost with {container.id}")
                continue
            item.parent_id = stash.id
            item.slot_id = HIDEOUT_SLOT
            item.location = None

    def delete_inventory(self, character: Character) -> list[str]:
        """Remove everything lost on death. Returns the removed ids."""
        loose_ids = self.loose_loot_ids(character)
        removed: list[str] = []
        for item in self.items_lost_on_death(character):
            self._rehome_kept_children(character, item, loose_ids)
            removed.extend(i.id for i in remove_item(character, item.id))

        character.inventory.fast_panel = {}
        logger.info(f"Removed {len(removed)} item(s) from {character.id} on death")
        return removed

    # -------------------------------------------------------------------------
    # Quest items
    # -------------------------------------------------------------------------

    def reset_carried_quest_items(self, character: Character) -> None:
        """Undo hand-in progress for quest items the player died carrying."""
        for item_tpl in character.stats.carried_quest_items:
            condition_ids = set(self.tables.find_item_condition_ids(item_tpl))
            if not condition_ids:
                continue
            for quest in character.quests:
                if quest.status != QuestStatus.STARTED:
                    continue
                quest.completed_conditions = [
                    cid for cid in quest.completed_conditions if cid not in condition_ids
                ]
        character.stats.carried_quest_items = []

    def apply(self, character: Character, request: RaidOutcomeRequest) -> Character:
        """Run the full set of death penalties for a PMC."""
        self.update_health_post_raid(character, request.exit)
        self.delete_inventory(character)
        if self.config.quest_items:
            self.reset_carried_quest_items(character)
        return character
