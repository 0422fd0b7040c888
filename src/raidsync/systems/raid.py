"""
Raid outcome resolution for raidsync.

RaidOutcomeController takes one post-raid request and drives the other
engines through the PMC or scav path, then persists the profile.
"""

import logging
import random
import time
from typing import Callable

from ..state.config import ServerConfig
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.items import prune_orphaned_items
from ..state.schema import (
    Character,
    CharacterType,
    RaidOutcome,
    RaidOutcomeRequest,
    generate_id,
)
from ..state.store import ProfileStore
from ..state.tables import GameTables
from .collaborators import (
    BasicProfileFixer,
    BotDetailsCache,
    BotGenerator,
    ChatResponder,
    MatchBotDetailsCache,
    Notifier,
    ProfileFixer,
    RecordingChatResponder,
    RecordingNotifier,
    WeightedLoadoutGenerator,
)
from .death import DeathPenaltyEngine, is_player_dead
from .insurance import InsuranceLedger
from .inventory import InventoryReconciler, get_player_gear
from .karma import ScavKarmaEngine
from .vitality import reset_vitality, save_vitality

logger = logging.getLogger(__name__)

# Victim roles that trigger a PvP chat reaction
PMC_VICTIM_ROLES = ("sptBear", "sptUsec")


class RaidOutcomeController:
    """
    Orchestrates post-raid reconciliation for one session at a time.

    Each resolve() holds the session's guard for its whole duration; a
    second call for the same session while one is running is rejected.
    """

    def __init__(
        self,
        store: ProfileStore,
        tables: GameTables,
        config: ServerConfig,
        inventory: InventoryReconciler,
        death: DeathPenaltyEngine,
        insurance: InsuranceLedger,
        karma: ScavKarmaEngine,
        chat: ChatResponder,
        bot_cache: BotDetailsCache,
        clock: Callable[[], float] = time.time,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.tables = tables
        self.config = config
        self.inventory = inventory
        self.death = death
        self.insurance = insurance
        self.karma = karma
        self.chat = chat
        self.bot_cache = bot_cache
        self.clock = clock
        self.event_bus = event_bus or get_event_bus()

    def add_player(self, session_id: str, location_id: str) -> None:
        """Record the map a player is entering."""
        profile = self.store.get_profile(session_id)
        profile.inraid.location = location_id
        logger.info(f"Session {session_id} entering {location_id}")
        self.event_bus.emit(EventType.RAID_REGISTERED, session_id=session_id, location=location_id)

    def resolve(self, session_id: str, request: RaidOutcomeRequest) -> RaidOutcome:
        """
        Fold a post-raid request into the session's profile and save it.

        Raises:
            ProfileNotFoundError: if the session has no profile
            ReconciliationInProgressError: if the session is already resolving
        """
        self.store.get_profile(session_id)

        with self.store.session_guard(session_id):
            if not self.config.in_raid.save_loot:
                logger.info(f"Post-raid saving disabled, ignoring raid outcome for {session_id}")
                return RaidOutcome(
                    session_id=session_id,
                    character=CharacterType.SCAV if request.is_player_scav else CharacterType.PMC,
                    exit=request.exit,
                    dead=is_player_dead(request.exit),
                    skipped=True,
                )

            if request.is_player_scav:
                outcome = self._resolve_scav(session_id, request)
            else:
                outcome = self._resolve_pmc(session_id, request)

            self.store.save_profile(session_id)

        logger.info(
            f"Resolved {outcome.character.value} raid for {session_id}: "
            f"exit={outcome.exit} dead={outcome.dead}"
        )
        self.event_bus.emit(
            EventType.RAID_RESOLVED,
            session_id=session_id,
            character=outcome.character.value,
            exit=outcome.exit,
            dead=outcome.dead,
        )
        return outcome

    # -------------------------------------------------------------------------
    # PMC
    # -------------------------------------------------------------------------

    def _resolve_pmc(self, session_id: str, request: RaidOutcomeRequest) -> RaidOutcome:
        profile = self.store.get_profile(session_id)
        pmc = profile.characters.pmc

        location_id = profile.inraid.location.lower()
        location = self.tables.location(location_id)
        if location is None:
            logger.warning(f"Unknown location {location_id} for {session_id}, insurance disabled")
        insurance_enabled = location is not None and location.insurance

        dead = is_player_dead(request.exit)
        pre_raid_gear = [item.model_copy(deep=True) for item in get_player_gear(pmc.inventory.items)]

        profile.inraid.character = CharacterType.PMC

        self.inventory.merge_base_stats(session_id, pmc, request)
        self.inventory.mark_found_in_raid(request, pmc, False)
        self.inventory.replace_ids(request.profile, pmc.insured_items)
        self.inventory.normalize_money_stacks(request.profile.inventory.items)
        self.inventory.splice_inventory(session_id, pmc, request.profile)
        save_vitality(pmc, request.health, session_id, self.clock)

        captured = 0
        if insurance_enabled:
            captured = self.insurance.store_lost_gear(pmc, request, pre_raid_gear, session_id, dead)
        elif location_id == self.config.in_raid.laboratory_location:
            self.insurance.send_lost_insurance_message(session_id)

        if dead:
            self.chat.send_killer_response(session_id, pmc, request.profile.stats.aggressor)
            self.bot_cache.clear_cache()
            self.death.apply(pmc, request)

        victims = [v for v in request.profile.stats.victims if v.role in PMC_VICTIM_ROLES]
        if victims:
            self.chat.send_victim_response(session_id, victims, pmc)

        records = []
        if insurance_enabled:
            records = self.insurance.send_insured_items(pmc, session_id, location.id)

        return RaidOutcome(
            session_id=session_id,
            character=CharacterType.PMC,
            exit=request.exit,
            dead=dead,
            captured_items=captured,
            scheduled_records=len(records),
        )

    # -------------------------------------------------------------------------
    # Scav
    # -------------------------------------------------------------------------

    def _resolve_scav(self, session_id: str, request: RaidOutcomeRequest) -> RaidOutcome:
        profile = self.store.get_profile(session_id)
        pmc = profile.characters.pmc
        scav = profile.characters.scav
        if scav is None:
            logger.warning(f"Profile {session_id} has no scav, starting from an empty one")
            scav = Character(id=pmc.savage or generate_id(), aid=pmc.aid or session_id)
            profile.characters.scav = scav

        dead = is_player_dead(request.exit)
        profile.inraid.character = CharacterType.SCAV

        self.inventory.merge_base_stats(session_id, scav, request)
        # Scavs carry no insurance of their own; the PMC's context applies
        self.inventory.mark_found_in_raid(request, pmc, True)
        self.inventory.replace_ids(request.profile, pmc.insured_items)
        self.inventory.normalize_money_stacks(request.profile.inventory.items)
        self.inventory.splice_inventory(session_id, scav, request.profile)
        reset_vitality(scav, self.clock)

        standing = self.karma.apply_karma_changes(
            session_id, pmc, scav, request.profile.stats.victims, request.exit
        )

        if dead:
            self.karma.regenerate(session_id)

        pmc.info.last_time_played_as_savage = self.clock()

        return RaidOutcome(
            session_id=session_id,
            character=CharacterType.SCAV,
            exit=request.exit,
            dead=dead,
            fence_standing=standing,
            scav_regenerated=dead,
        )


def create_controller(
    store: ProfileStore,
    tables: GameTables,
    config: ServerConfig | None = None,
    notifier: Notifier | None = None,
    chat: ChatResponder | None = None,
    bot_cache: BotDetailsCache | None = None,
    profile_fixer: ProfileFixer | None = None,
    bot_generator: BotGenerator | None = None,
    rng: random.Random | None = None,
    clock: Callable[[], float] = time.time,
    event_bus: EventBus | None = None,
) -> RaidOutcomeController:
    """
    Wire up a controller and its engines around one store.

    Collaborators left as None get the in-process implementations. Also
    registers the orphaned-item pruning hook on the store.
    """
    config = config or ServerConfig()
    rng = rng or random.Random()
    event_bus = event_bus or store.event_bus

    inventory = InventoryReconciler(
        store, tables, profile_fixer or BasicProfileFixer(), event_bus=event_bus
    )
    death = DeathPenaltyEngine(config.lost_on_death, tables)
    insurance = InsuranceLedger(
        store,
        tables,
        config.insurance,
        notifier or RecordingNotifier(),
        rng=rng,
        clock=clock,
        event_bus=event_bus,
    )
    karma = ScavKarmaEngine(
        store,
        tables,
        config.player_scav,
        config.in_raid,
        bot_generator or WeightedLoadoutGenerator(rng),
        rng=rng,
        clock=clock,
        event_bus=event_bus,
    )

    store.register_save_hook("prune_orphaned_items", prune_orphaned_items)

    return RaidOutcomeController(
        store,
        tables,
        config,
        inventory,
        death,
        insurance,
        karma,
        chat or RecordingChatResponder(),
        bot_cache or MatchBotDetailsCache(),
        clock=clock,
        event_bus=event_bus,
    )
