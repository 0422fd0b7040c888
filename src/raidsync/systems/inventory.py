"""
Inventory reconciliation for raidsync.

Folds the client's post-raid character snapshot into the authoritative
character: base stats, found-in-raid provenance, id replacement, money
stacks and the inventory splice itself.
"""

import logging

from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.items import remove_item
from ..state.schema import (
    BodyPartEffect,
    Character,
    EquipmentSlot,
    ExitStatus,
    HIDEOUT_SLOT,
    InsuredItem,
    Item,
    Money,
    POCKET_SLOTS,
    QuestStatus,
    RaidOutcomeRequest,
    generate_id,
)
from ..state.store import ProfileStore
from ..state.tables import GameTables
from .collaborators import ProfileFixer

logger = logging.getLogger(__name__)


# Slots whose contents count as gear carried into a raid
GEAR_SLOTS = frozenset(
    [slot.value for slot in EquipmentSlot if slot is not EquipmentSlot.POCKETS]
    + list(POCKET_SLOTS)
)


def get_player_gear(items: list[Item]) -> list[Item]:
    """Items sitting in gear slots plus everything nested inside them."""
    gear = [item for item in items if item.slot_id in GEAR_SLOTS]
    seen = {item.id for item in gear}
    frontier = {item.id for item in gear}

    while frontier:
        found = [item for item in items if item.parent_id in frontier and item.id not in seen]
        for item in found:
            seen.add(item.id)
        gear.extend(found)
        frontier = {item.id for item in found}

    return gear


class InventoryReconciler:
    """
    Merges a post-raid snapshot into a stored character.

    Requires a ProfileStore for the raid context (current map) and the
    static tables for quest-item and map-key lookups.
    """

    def __init__(
        self,
        store: ProfileStore,
        tables: GameTables,
        profile_fixer: ProfileFixer | None = None,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.tables = tables
        self.profile_fixer = profile_fixer
        self.event_bus = event_bus or get_event_bus()

    # -------------------------------------------------------------------------
    # Base stats
    # -------------------------------------------------------------------------

    def merge_base_stats(
        self, session_id: str, character: Character, request: RaidOutcomeRequest
    ) -> Character:
        """
        Copy progression from the snapshot onto the stored character.

        Also consumes the map's one-time access key from the snapshot and
        clears the in-raid location marker.
        """
        snapshot = request.profile

        # Fatigue is per raid
        for skill in snapshot.skills.common:
            skill.points_earned_during_session = 0

        character.info.level = snapshot.info.level
        character.skills = snapshot.skills.model_copy(deep=True)
        character.stats = snapshot.stats.model_copy(deep=True)
        character.encyclopedia = dict(snapshot.encyclopedia)
        character.condition_counters = dict(snapshot.condition_counters)

        self._report_failed_quests(session_id, character, request)
        character.quests = [quest.model_copy(deep=True) for quest in snapshot.quests]

        self._transfer_limb_effects(character, request)
        character.survivor_class = snapshot.survivor_class

        character.info.experience += character.stats.total_session_experience
        character.stats.total_session_experience = 0

        self._remove_map_access_key(session_id, request)

        profile = self.store.get_profile(session_id)
        profile.inraid.location = "none"

        if not request.is_player_scav and self.profile_fixer is not None:
            self.profile_fixer.check_for_and_fix_pmc_profile_issues(character)

        return character

    def _report_failed_quests(
        self, session_id: str, character: Character, request: RaidOutcomeRequest
    ) -> None:
        before = {quest.qid: quest.status for quest in character.quests}
        for quest in request.profile.quests:
            previous = before.get(quest.qid)
            if previous is None:
                continue
            if quest.status == QuestStatus.FAIL and previous != QuestStatus.FAIL:
                logger.info(f"Quest {quest.qid} failed during raid for {session_id}")
                self.event_bus.emit(EventType.QUEST_FAILED, session_id=session_id, qid=quest.qid)

    def _transfer_limb_effects(self, character: Character, request: RaidOutcomeRequest) -> None:
        """Add snapshot body-part effects the stored character lacks. Existing effects win."""
        for part_id, part in request.profile.health.body_parts.items():
            if not part.effects:
                continue
            target = character.health.body_parts.get(part_id)
            if target is None:
                logger.debug(f"Character {character.id} has no body part {part_id}, skipping effects")
                continue
            effects = target.ensure_effects()
            for effect_id, effect in part.effects.items():
                if effect_id in effects:
                    continue
                effects[effect_id] = BodyPartEffect(time=effect.time)

    def _remove_map_access_key(self, session_id: str, request: RaidOutcomeRequest) -> None:
        """Consume the map's access key if the player still carries one."""
        location_id = self.store.get_profile(session_id).inraid.location
        location = self.tables.location(location_id)
        if location is None or not location.access_keys:
            return

        map_key = location.access_keys[0]
        for item in request.profile.inventory.items:
            if item.tpl != map_key:
                continue
            if (item.slot_id or "").lower() == HIDEOUT_SLOT:
                continue
            remove_item(request.profile, item.id)
            logger.debug(f"Removed access key {item.id} for {location_id}")
            break

    # -------------------------------------------------------------------------
    # Found in raid
    # -------------------------------------------------------------------------

    def mark_found_in_raid(
        self,
        request: RaidOutcomeRequest,
        pre_raid_character: Character,
        is_player_scav: bool,
    ) -> None:
        """
        Stamp or strip found-in-raid on the snapshot's items.

        Survived: new items are stamped; items brought in lose any stamp
        (scav runs stamp everything). Any other exit strips the stamp from
        every item that is not a quest item.
        """
        items = request.profile.inventory.items

        if request.exit.lower() != ExitStatus.SURVIVED.value:
            for item in items:
                if item.found_in_raid and not self.tables.is_quest_item(item.tpl):
                    item.clear_found_in_raid()
            return

        pre_raid_ids = {item.id for item in pre_raid_character.inventory.items}
        for item in items:
            if not is_player_scav and item.id in pre_raid_ids:
                item.clear_found_in_raid()
                continue
            item.set_found_in_raid()

    # -------------------------------------------------------------------------
    # Item ids and money
    # -------------------------------------------------------------------------

    def replace_ids(
        self,
        snapshot: Character,
        insured_items: list[InsuredItem],
    ) -> list[Item]:
        """
        Give the snapshot's items fresh ids.

        Insured items and the snapshot's structural roots keep their ids.
        Parent references and quick-access slots follow the new ids, and
        any id appearing more than once is split into distinct ids.
        """
        keep = {insured.item_id for insured in insured_items} | snapshot.inventory.root_ids()

        mapping: dict[str, str] = {}
        for item in snapshot.inventory.items:
            if item.id in keep or item.id in mapping:
                continue
            mapping[item.id] = generate_id()

        items = []
        for item in snapshot.inventory.items:
            renamed = item.model_copy(deep=True)
            renamed.id = mapping.get(item.id, item.id)
            if renamed.parent_id:
                renamed.parent_id = mapping.get(renamed.parent_id, renamed.parent_id)
            items.append(renamed)

        fast_panel = snapshot.inventory.fast_panel
        for slot, item_id in fast_panel.items():
            fast_panel[slot] = mapping.get(item_id, item_id)

        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                new_id = generate_id()
                logger.debug(f"Duplicate item id {item.id} renamed to {new_id}")
                item.id = new_id
            seen.add(item.id)

        snapshot.inventory.items = items
        return items

    def normalize_money_stacks(self, items: list[Item]) -> None:
        """Give currency items without a stack count a count of 1."""
        for item in items:
            if not Money.is_money(item.tpl):
                continue
            upd = item.ensure_upd()
            if not upd.stack_objects_count:
                upd.stack_objects_count = 1

    # -------------------------------------------------------------------------
    # Splice
    # -------------------------------------------------------------------------

    def splice_inventory(
        self, session_id: str, character: Character, snapshot: Character
    ) -> Character:
        """
        Replace the character's raid-facing subtrees with the snapshot's items.

        The equipment, quest-raid and sorting-table roots are removed with
        everything under them. Insurance bookkeeping is left untouched.
        """
        insured = [insured.model_copy() for insured in character.insured_items]
        inventory = character.inventory

        removed = 0
        for root_id in (inventory.equipment, inventory.quest_raid_items, inventory.sorting_table):
            if root_id:
                removed += len(remove_item(character, root_id))

        inventory.items = [
            item.model_copy(deep=True) for item in snapshot.inventory.items
        ] + inventory.items
        inventory.fast_panel = dict(snapshot.inventory.fast_panel)
        character.insured_items = insured

        logger.debug(
            f"Spliced {len(snapshot.inventory.items)} raid item(s) into {session_id}, "
            f"replacing {removed}"
        )
        return character
