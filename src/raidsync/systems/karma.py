"""
Scav karma and regeneration for raidsync.

Fence standing is the scav's reputation. Kills and extractions move it,
and the integer part of it selects the karma tier that shapes the next
regenerated scav's loadout.
"""

import logging
import math
import random
import time
from typing import Callable

from ..state.config import InRaidConfig, KarmaLevel, PlayerScavConfig
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.items import remove_item
from ..state.schema import (
    Character,
    EquipmentSlot,
    ExitStatus,
    Item,
    LABS_ACCESS_CARD_TPL,
    POCKET_SLOTS,
    Skills,
    Stats,
    TraderInfo,
    Victim,
)
from ..state.store import ProfileStore
from ..state.tables import BotType, GameTables, MinMax
from .collaborators import BotGenerator

logger = logging.getLogger(__name__)

FENCE_STANDING_MIN = -7
FENCE_STANDING_MAX = 15
MAX_KARMA_LEVEL = 6

BASE_SCAV_TYPE = "assault"
SCAV_DIFFICULTY = "easy"
COOLDOWN_BONUS = "ScavCooldownTimer"

# Containers the access card may be placed in, in order of preference
ACCESS_CARD_CONTAINERS = (
    EquipmentSlot.TACTICAL_VEST,
    EquipmentSlot.POCKETS,
    EquipmentSlot.BACKPACK,
)


def clamp_standing(standing: float) -> float:
    return min(max(standing, FENCE_STANDING_MIN), FENCE_STANDING_MAX)


class ScavKarmaEngine:
    """
    Fence standing bookkeeping and scav regeneration.

    Standing changes from one raid are summed first and clamped once.
    """

    def __init__(
        self,
        store: ProfileStore,
        tables: GameTables,
        player_scav: PlayerScavConfig,
        in_raid: InRaidConfig,
        bot_generator: BotGenerator,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.tables = tables
        self.player_scav = player_scav
        self.in_raid = in_raid
        self.bot_generator = bot_generator
        self.rng = rng or random.Random()
        self.clock = clock
        self.event_bus = event_bus or get_event_bus()

    @property
    def fence_id(self) -> str:
        return self.tables.globals.fence_id

    # -------------------------------------------------------------------------
    # Karma tiers
    # -------------------------------------------------------------------------

    def get_scav_karma_level(self, pmc: Character) -> int:
        """Karma tier for the PMC's fence standing, capped at the top tier."""
        info = pmc.traders_info.get(self.fence_id)
        if info is None:
            logger.warning(f"Character {pmc.id} has no fence standing, using karma level 0")
            return 0
        if info.standing > MAX_KARMA_LEVEL:
            return MAX_KARMA_LEVEL
        return math.floor(info.standing)

    def karma_settings(self, level: int) -> KarmaLevel:
        settings = self.player_scav.karma_level.get(level)
        if settings is None:
            logger.error(f"No player scav settings for karma level {level}, using empty tier")
            return KarmaLevel()
        return settings

    def extract_gain(self, standing: float) -> float:
        """Standing bonus for a successful scav extract at this standing."""
        level = min(math.floor(standing), MAX_KARMA_LEVEL)
        settings = self.player_scav.karma_level.get(level)
        if settings is not None and settings.extract_standing_gain is not None:
            return settings.extract_standing_gain
        return self.in_raid.scav_extract_gain

    # -------------------------------------------------------------------------
    # Standing
    # -------------------------------------------------------------------------

    def get_standing_for_kill(self, victim: Victim) -> float | None:
        """Standing delta for a kill, looked up by role for scavs and by side for PMCs."""
        if victim.side.lower() == "savage":
            key = victim.role.lower()
        else:
            key = victim.side.lower()
        bot = self.tables.bots.get(key)
        if bot is None:
            return None
        return bot.experience.standing_for_kill

    def apply_kill_karma(self, standing: float, victims: list[Victim], exit: str) -> float:
        """New fence standing after the raid's kills and extraction, clamped once."""
        total = standing
        for victim in victims:
            delta = self.get_standing_for_kill(victim)
            if delta is None:
                logger.warning(
                    f"No standing for kill configured for side {victim.side} role {victim.role}"
                )
                continue
            total += delta

        if exit.lower() == ExitStatus.SURVIVED.value:
            total += self.extract_gain(standing)

        return clamp_standing(total)

    def apply_karma_changes(
        self,
        session_id: str,
        pmc: Character,
        scav: Character,
        victims: list[Victim],
        exit: str,
    ) -> float:
        """Write the raid's standing change to both characters. Returns the new standing."""
        fence_id = self.fence_id
        pmc_info = pmc.traders_info.setdefault(fence_id, TraderInfo())
        before = pmc_info.standing
        logger.debug(f"Old fence standing: {before}")

        standing = self.apply_kill_karma(before, victims, exit)

        # Scav shares the PMC's fence reputation
        if fence_id not in scav.traders_info:
            scav.traders_info[fence_id] = pmc_info.model_copy()
        scav.traders_info[fence_id].standing = standing
        pmc_info.standing = standing
        logger.debug(f"New fence standing: {standing}")

        self.update_loyalty_level(pmc, fence_id)
        pmc_info.loyalty_level = max(pmc_info.loyalty_level, 1)

        self.event_bus.emit(
            EventType.FENCE_STANDING_CHANGED,
            session_id=session_id,
            before=before,
            after=standing,
        )
        return standing

    def update_loyalty_level(self, character: Character, trader_id: str) -> None:
        """Recompute the loyalty level from the trader's thresholds."""
        trader = self.tables.traders.get(trader_id)
        info = character.traders_info.get(trader_id)
        if trader is None or info is None:
            return

        level = 0
        for index, threshold in enumerate(trader.loyalty_levels, start=1):
            if character.info.level < threshold.min_level or info.standing < threshold.min_standing:
                break
            level = index
        info.loyalty_level = level

    # -------------------------------------------------------------------------
    # Regeneration
    # -------------------------------------------------------------------------

    def construct_bot_base_template(self, bot_type_for_loot: str) -> BotType:
        """The assault template, with another type's loot pools swapped in if asked."""
        base = self.tables.bots.get(BASE_SCAV_TYPE)
        if base is None:
            logger.warning(f"No {BASE_SCAV_TYPE} bot template, using an empty one")
            base = BotType()
        template = base.model_copy(deep=True)

        loot_type = bot_type_for_loot.lower()
        if loot_type == BASE_SCAV_TYPE:
            return template

        loot = self.tables.bots.get(loot_type)
        if loot is None:
            logger.warning(f"No bot template {loot_type} for scav loot, using {BASE_SCAV_TYPE}")
            return template

        template.inventory = loot.inventory.model_copy(deep=True)
        template.chances = loot.chances.model_copy(deep=True)
        template.generation = loot.generation.model_copy(deep=True)
        return template

    def adjust_bot_template(self, settings: KarmaLevel, template: BotType) -> None:
        """Apply a karma tier's chance deltas, item limits and blacklist to template."""
        for slot, delta in settings.modifiers.equipment.items():
            if delta == 0:
                continue
            chances = template.chances.equipment
            chances[slot] = chances.get(slot, 0) + delta

        for mod, delta in settings.modifiers.mod.items():
            if delta == 0:
                continue
            chances = template.chances.mods
            chances[mod] = chances.get(mod, 0) + delta

        for key, limit in settings.item_limits.items():
            template.generation.items[key] = MinMax(min=limit.min, max=limit.max)

        for slot, tpls in settings.equipment_blacklist.items():
            pool = template.inventory.equipment.get(slot)
            if pool is None:
                continue
            for tpl in tpls:
                pool.pop(tpl, None)

    def regenerate(self, session_id: str) -> Character:
        """
        Generate a fresh scav for the session and store it on the profile.

        The first scav a profile ever gets uses karma level 0.
        """
        profile = self.store.get_profile(session_id)
        pmc = profile.characters.pmc
        existing = profile.characters.scav

        level = 0 if existing is None else self.get_scav_karma_level(pmc)
        settings = self.karma_settings(level)
        logger.debug(f"Generating player scav with karma level {level}")

        template = self.construct_bot_base_template(settings.bot_type_for_loot)
        self.adjust_bot_template(settings, template)

        scav = self.bot_generator.generate_player_scav(
            session_id, settings.bot_type_for_loot.lower(), SCAV_DIFFICULTY, template
        )

        if pmc.savage:
            scav.id = pmc.savage
        scav.aid = pmc.aid or session_id
        scav.info.settings = {}
        scav.traders_info = {
            trader_id: info.model_copy(deep=True) for trader_id, info in pmc.traders_info.items()
        }

        if existing is not None:
            scav.skills = existing.skills.model_copy(deep=True)
            scav.stats = existing.stats.model_copy(deep=True)
            scav.info.level = existing.info.level or 1
            scav.info.experience = existing.info.experience or 0
        else:
            scav.skills = Skills()
            scav.stats = Stats()
            scav.info.level = 1
            scav.info.experience = 0

        if self.rng.random() * 100 < settings.labs_access_card_chance_percent:
            self._add_access_card(scav)

        self._remove_secure_container(scav)
        self._set_cooldown(scav, pmc)

        profile.characters.scav = scav
        self.event_bus.emit(EventType.SCAV_REGENERATED, session_id=session_id, karma_level=level)
        return scav

    def _add_access_card(self, scav: Character) -> None:
        inventory = scav.inventory
        occupied = {(item.parent_id, item.slot_id) for item in inventory.items}

        for slot in ACCESS_CARD_CONTAINERS:
            container = inventory.find_by_slot(slot.value)
            if container is None:
                continue
            if slot is EquipmentSlot.POCKETS:
                free = [s for s in POCKET_SLOTS if (container.id, s) not in occupied]
                if not free:
                    continue
                slot_id = free[0]
            else:
                slot_id = "main"
            inventory.items.append(
                Item(tpl=LABS_ACCESS_CARD_TPL, parent_id=container.id, slot_id=slot_id)
            )
            logger.debug(f"Added access card to scav {scav.id} {slot.value}")
            return

        logger.debug(f"No container for access card on scav {scav.id}")

    def _remove_secure_container(self, scav: Character) -> None:
        container = scav.inventory.find_by_slot(EquipmentSlot.SECURED_CONTAINER.value)
        if container is not None:
            remove_item(scav, container.id)

    def _set_cooldown(self, scav: Character, pmc: Character) -> None:
        duration = self.tables.globals.savage_play_cooldown

        # Bonus values are negative percentages and stack additively
        modifier = 1.0
        for bonus in pmc.bonuses:
            if bonus.type == COOLDOWN_BONUS:
                modifier += bonus.value / 100
        modifier *= self.tables.fence_level(pmc).savage_cooldown_modifier

        scav.info.savage_lock_time = self.clock() + duration * modifier
