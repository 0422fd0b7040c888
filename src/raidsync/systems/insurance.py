"""
Insurance ledger for raidsync.

Insured gear lost in a raid is captured into a per-session, per-trader
bucket, then turned into InsuranceRecords on the profile's delivery queue.
The ledger also prices premiums and records new insurance.

Every insured item taken into a raid ends up in exactly one place: still
on the character, captured for return, or dropped because its slot is
blacklisted.
"""

import logging
import math
import random
import time
from datetime import datetime
from typing import Callable

from ..state.config import InsuranceConfig
from ..state.event_bus import EventBus, EventType, get_event_bus
from ..state.schema import (
    HIDEOUT_SLOT,
    Character,
    InsuranceRecord,
    InsuredItem,
    Item,
    MessageContent,
    MessageType,
    POCKET_SLOTS,
    RaidOutcomeRequest,
    Traders,
)
from ..state.store import ProfileStore
from ..state.tables import GameTables, TraderBase
from .collaborators import Notifier

logger = logging.getLogger(__name__)

DEFAULT_INSURANCE_MULTIPLIER = 0.3
RETURN_TIME_BONUS = "InsuranceReturnTime"
SECONDS_PER_HOUR = 3600


class InsuranceError(ValueError):
    """An insure or quote request that cannot be honoured."""


class InsuranceLedger:
    """
    Captures lost insured gear and schedules its return.

    Capture buckets live only between store_lost_gear and
    send_insured_items; the durable queue is the profile's insurance list.
    """

    def __init__(
        self,
        store: ProfileStore,
        tables: GameTables,
        config: InsuranceConfig,
        notifier: Notifier,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        event_bus: EventBus | None = None,
    ):
        self.store = store
        self.tables = tables
        self.config = config
        self.notifier = notifier
        self.rng = rng or random.Random()
        self.clock = clock
        self.event_bus = event_bus or get_event_bus()

        # session -> trader -> captured items
        self._captured: dict[str, dict[str, list[Item]]] = {}
        # session -> item id -> slot before it was forced to hideout
        self._forced_slots: dict[str, dict[str, str | None]] = {}

    # -------------------------------------------------------------------------
    # Capture buckets
    # -------------------------------------------------------------------------

    def get_captured(self, session_id: str) -> dict[str, list[Item]]:
        """Current capture buckets for a session, by trader id."""
        return {
            trader_id: list(items)
            for trader_id, items in self._captured.get(session_id, {}).items()
        }

    def reset(self, session_id: str) -> None:
        self._captured.pop(session_id, None)
        self._forced_slots.pop(session_id, None)

    def store_lost_gear(
        self,
        character: Character,
        request: RaidOutcomeRequest,
        pre_raid_gear: list[Item],
        session_id: str,
        died: bool,
    ) -> int:
        """
        Capture every insured item brought into the raid that was lost.

        An item is lost if it is missing from the post-raid snapshot, or
        unconditionally when the player died. Returns how many were captured.
        """
        pre_raid = {item.id: item for item in pre_raid_gear}
        post_raid_ids = {item.id for item in request.profile.inventory.items}

        to_send = []
        for insured in character.insured_items:
            item = pre_raid.get(insured.item_id)
            if item is None:
                continue
            if died or insured.item_id not in post_raid_ids:
                to_send.append((insured, item))

        captured = 0
        for insured, item in to_send:
            if self.add_gear_to_send(character, insured, item, session_id):
                captured += 1
        return captured

    def add_gear_to_send(
        self,
        character: Character,
        insured_item: InsuredItem,
        item: Item,
        session_id: str,
    ) -> bool:
        """
        Move one lost insured item into its trader's capture bucket.

        Returns False if the item's slot is blacklisted and it was dropped.
        """
        if item.slot_id in self.config.blacklisted_equipment:
            logger.debug(f"Insured item {item.id} in blacklisted slot {item.slot_id}, not captured")
            return False

        captured = item.model_copy(deep=True)
        forced = self._forced_slots.setdefault(session_id, {})

        if (
            captured.slot_id is None
            or captured.slot_id in POCKET_SLOTS
            or captured.parent_id == character.inventory.equipment
        ):
            forced[captured.id] = captured.slot_id
            captured.slot_id = HIDEOUT_SLOT

        if captured.slot_id == HIDEOUT_SLOT:
            captured.location = None

        # Insurance returns are never found in raid
        captured.clear_found_in_raid()

        bucket = self._captured.setdefault(session_id, {}).setdefault(insured_item.trader_id, [])
        bucket.append(captured)

        character.insured_items = [
            i for i in character.insured_items if i.item_id != insured_item.item_id
        ]

        self.event_bus.emit(
            EventType.INSURANCE_CAPTURED,
            session_id=session_id,
            item_id=captured.id,
            trader_id=insured_item.trader_id,
        )
        return True

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _trader(self, trader_id: str) -> TraderBase:
        trader = self.tables.traders.get(trader_id)
        if trader is None:
            logger.warning(f"No trader base for {trader_id}, using default insurance terms")
            trader = TraderBase(id=trader_id)
        return trader

    def _pick(self, templates: list[str]) -> str:
        return self.rng.choice(templates) if templates else ""

    def send_insured_items(
        self, character: Character, session_id: str, map_id: str
    ) -> list[InsuranceRecord]:
        """
        Turn every non-empty capture bucket into an InsuranceRecord.

        The trader's "searching for your gear" message goes out now; the
        record carries the "found your gear" message for later delivery.
        Capture buckets are cleared afterwards.
        """
        profile = self.store.get_profile(session_id)
        forced = self._forced_slots.get(session_id, {})
        records = []

        for trader_id, items in self._captured.get(session_id, {}).items():
            if not items:
                continue

            trader = self._trader(trader_id)
            scheduled_time = self.get_insurance_return_timestamp(character, trader)

            now = datetime.fromtimestamp(self.clock())
            content = MessageContent(
                template_id=self._pick(trader.dialogue.insurance_start),
                type=MessageType.NPC_TRADER,
                max_storage_time=trader.insurance.max_storage_time * SECONDS_PER_HOUR,
                text="",
                system_data={
                    "date": now.strftime("%d.%m.%Y"),
                    "time": now.strftime("%H:%M"),
                    "location": map_id,
                },
            )
            self.notifier.add_dialogue_message(session_id, trader_id, content)

            self._settle_slots(items, forced)

            found = content.model_copy(deep=True)
            found.template_id = self._pick(trader.dialogue.insurance_found)
            found.type = MessageType.INSURANCE_RETURN

            record = InsuranceRecord(
                scheduled_time=scheduled_time,
                trader_id=trader_id,
                message_content=found,
                items=list(items),
            )
            profile.insurance.append(record)
            records.append(record)

            logger.info(
                f"Scheduled {len(items)} insured item(s) from {trader_id} "
                f"for {session_id} at {scheduled_time:.0f}"
            )
            self.event_bus.emit(
                EventType.INSURANCE_SCHEDULED,
                session_id=session_id,
                trader_id=trader_id,
                items=len(items),
                scheduled_time=scheduled_time,
            )

        self.reset(session_id)
        return records

    def _settle_slots(self, items: list[Item], forced: dict[str, str | None]) -> None:
        """Only parcel roots stay in the hideout slot; nested items get their slot back."""
        ids = {item.id for item in items}
        for item in items:
            if item.parent_id in ids:
                if item.id in forced:
                    item.slot_id = forced[item.id]
            else:
                item.slot_id = HIDEOUT_SLOT
                item.location = None

    def get_insurance_return_timestamp(self, character: Character, trader: TraderBase) -> float:
        """When the trader will deliver, in epoch seconds."""
        now = self.clock()

        if self.config.return_time_override_seconds > 0:
            logger.debug(
                f"Insurance override used: returning in "
                f"{self.config.return_time_override_seconds} seconds"
            )
            return now + self.config.return_time_override_seconds

        bonus = character.first_bonus(RETURN_TIME_BONUS)
        bonus_factor = 1.0 - (abs(bonus.value) if bonus else 0) / 100

        min_seconds = int(trader.insurance.min_return_hour * SECONDS_PER_HOUR)
        max_seconds = int(trader.insurance.max_return_hour * SECONDS_PER_HOUR)
        seconds = self.rng.randint(min_seconds, max_seconds)

        return now + seconds * bonus_factor

    # -------------------------------------------------------------------------
    # Maps without insurance
    # -------------------------------------------------------------------------

    def send_lost_insurance_message(self, session_id: str) -> None:
        """Tell the player their gear is gone for good."""
        prapor = self._trader(Traders.PRAPOR.value)
        text = self._pick(prapor.dialogue.insurance_failed)
        self.notifier.send_message_to_player(
            session_id, Traders.PRAPOR.value, text, MessageType.NPC_TRADER
        )
        self.event_bus.emit(EventType.INSURANCE_LOST, session_id=session_id)

    # -------------------------------------------------------------------------
    # Pricing and insuring
    # -------------------------------------------------------------------------

    def get_premium(self, character: Character, item: Item, trader_id: str) -> int:
        """Price to insure item with trader_id."""
        multiplier = self.config.insurance_multiplier.get(trader_id)
        if not multiplier:
            logger.warning(
                f"No insurance multiplier for trader {trader_id}, "
                f"using {DEFAULT_INSURANCE_MULTIPLIER}"
            )
            multiplier = DEFAULT_INSURANCE_MULTIPLIER

        premium = self.tables.handbook_price(item.tpl) * multiplier
        coef = self._trader(trader_id).loyalty_for(character).insurance_price_coef
        if coef > 0:
            premium *= 1 - coef / 100

        # Halves round up
        return math.floor(premium + 0.5)

    def _pending_item_ids(self, session_id: str, trader_id: str) -> set[str]:
        profile = self.store.get_profile(session_id)
        ids = {
            item.id
            for record in profile.insurance
            if record.trader_id == trader_id
            for item in record.items
        }
        ids.update(item.id for item in self._captured.get(session_id, {}).get(trader_id, []))
        return ids

    def quote(
        self, session_id: str, trader_ids: list[str], item_ids: list[str]
    ) -> dict[str, dict[str, int]]:
        """Premiums per trader, keyed by item template id."""
        character = self.store.get_pmc(session_id)
        quotes: dict[str, dict[str, int]] = {}
        for trader_id in trader_ids:
            prices = quotes.setdefault(trader_id, {})
            for item_id in item_ids:
                item = character.inventory.get(item_id)
                if item is None:
                    raise InsuranceError(f"item {item_id} not in inventory")
                prices[item.tpl] = self.get_premium(character, item, trader_id)
        return quotes

    def insure(self, session_id: str, trader_id: str, item_ids: list[str]) -> int:
        """
        Insure items with a trader. Returns the total premium owed.

        Raises:
            InsuranceError: if an item is missing, already insured, or still
                pending return from this trader
        """
        character = self.store.get_pmc(session_id)
        pending = self._pending_item_ids(session_id, trader_id)

        total = 0
        to_insure = []
        for item_id in item_ids:
            item = character.inventory.get(item_id)
            if item is None:
                raise InsuranceError(f"item {item_id} not in inventory")
            if character.is_insured(item_id) or any(i.item_id == item_id for i in to_insure):
                raise InsuranceError(f"item {item_id} is already insured")
            if item_id in pending:
                raise InsuranceError(f"item {item_id} is awaiting return from {trader_id}")
            total += self.get_premium(character, item, trader_id)
            to_insure.append(InsuredItem(item_id=item_id, trader_id=trader_id))

        character.insured_items.extend(to_insure)
        logger.info(f"Insured {len(to_insure)} item(s) with {trader_id} for {session_id}")
        return total
