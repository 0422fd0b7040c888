"""
External collaborators used by the raid engines.

Each collaborator is a Protocol so a host server can plug in its own
mail, chat, profile-fixing and bot-generation services. The concrete
classes here are small in-process implementations used by the CLI and
the test suite.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from ..state.schema import (
    Aggressor,
    Character,
    EquipmentSlot,
    Item,
    MessageContent,
    MessageType,
    Victim,
)
from ..state.tables import BotType

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Messaging
# -----------------------------------------------------------------------------

@runtime_checkable
class Notifier(Protocol):
    """Delivers trader mail and direct notifications to a player."""

    def add_dialogue_message(
        self, session_id: str, trader_id: str, content: MessageContent
    ) -> None:
        """Store a message in the player's dialogue with a trader."""
        ...

    def send_message_to_player(
        self, session_id: str, sender_id: str, text: str, message_type: MessageType
    ) -> None:
        """Push a one-off notification to the player."""
        ...


@dataclass
class SentMessage:
    session_id: str
    sender_id: str
    text: str
    message_type: MessageType
    content: MessageContent | None = None


class RecordingNotifier:
    """Notifier that keeps every message in memory."""

    def __init__(self):
        self.messages: list[SentMessage] = []

    def add_dialogue_message(
        self, session_id: str, trader_id: str, content: MessageContent
    ) -> None:
        self.messages.append(SentMessage(
            session_id=session_id,
            sender_id=trader_id,
            text=content.template_id,
            message_type=content.type,
            content=content.model_copy(deep=True),
        ))
        logger.debug(f"Dialogue message from {trader_id} for {session_id}")

    def send_message_to_player(
        self, session_id: str, sender_id: str, text: str, message_type: MessageType
    ) -> None:
        self.messages.append(SentMessage(
            session_id=session_id,
            sender_id=sender_id,
            text=text,
            message_type=message_type,
        ))
        logger.debug(f"Notification from {sender_id} for {session_id}")

    def for_session(self, session_id: str) -> list[SentMessage]:
        return [m for m in self.messages if m.session_id == session_id]


# -----------------------------------------------------------------------------
# PvP chat reactions
# -----------------------------------------------------------------------------

@runtime_checkable
class ChatResponder(Protocol):
    """Sends chat reactions from PMCs the player met in raid."""

    def send_killer_response(
        self, session_id: str, character: Character, killer: Aggressor | None
    ) -> None:
        ...

    def send_victim_response(
        self, session_id: str, victims: list[Victim], character: Character
    ) -> None:
        ...


class RecordingChatResponder:
    def __init__(self):
        self.killer_responses: list[tuple[str, Aggressor | None]] = []
        self.victim_responses: list[tuple[str, list[Victim]]] = []

    def send_killer_response(
        self, session_id: str, character: Character, killer: Aggressor | None
    ) -> None:
        self.killer_responses.append((session_id, killer))

    def send_victim_response(
        self, session_id: str, victims: list[Victim], character: Character
    ) -> None:
        self.victim_responses.append((session_id, list(victims)))


# -----------------------------------------------------------------------------
# Caches and profile fixing
# -----------------------------------------------------------------------------

@runtime_checkable
class BotDetailsCache(Protocol):
    def clear_cache(self) -> None:
        ...


class MatchBotDetailsCache:
    """Per-match bot details, keyed by bot name."""

    def __init__(self):
        self.details: dict[str, dict] = {}
        self.clears = 0

    def add(self, name: str, details: dict) -> None:
        self.details[name] = details

    def clear_cache(self) -> None:
        self.details.clear()
        self.clears += 1


@runtime_checkable
class ProfileFixer(Protocol):
    def check_for_and_fix_pmc_profile_issues(self, character: Character) -> None:
        ...


class BasicProfileFixer:
    """Repairs the few PMC fields the client is known to send broken."""

    def check_for_and_fix_pmc_profile_issues(self, character: Character) -> None:
        if character.info.level < 1:
            logger.warning(f"Character {character.id} had level {character.info.level}, set to 1")
            character.info.level = 1
        for trader_id, info in character.traders_info.items():
            if info.loyalty_level < 1:
                logger.warning(f"Character {character.id} had loyalty 0 with {trader_id}, set to 1")
                info.loyalty_level = 1


# -----------------------------------------------------------------------------
# Bot generation
# -----------------------------------------------------------------------------

@runtime_checkable
class BotGenerator(Protocol):
    def generate_player_scav(
        self, session_id: str, role: str, difficulty: str, template: BotType
    ) -> Character:
        """Build a fresh scav character from a (possibly adjusted) bot template."""
        ...


class WeightedLoadoutGenerator:
    """
    Minimal scav generator.

    Creates the structural roots, then rolls each equipment slot against
    the template's spawn chance and picks a template by weight. Every
    character also gets a secured container so callers can strip it.
    """

    SECURED_CONTAINER_TPL = "544a11ac4bdc2d470e8b456a"

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()

    def generate_player_scav(
        self, session_id: str, role: str, difficulty: str, template: BotType
    ) -> Character:
        character = Character(aid=session_id)
        character.info.side = "Savage"
        character.info.settings = {"role": role, "bot_difficulty": difficulty}

        inventory = character.inventory
        roots = {
            "equipment": "55d7217a4bdc2d86028b456d",
            "stash": "566abbc34bdc2d92178b4576",
            "sorting_table": "602543c13fee350cd564d032",
            "quest_raid_items": "5963866286f7747bf429b572",
            "quest_stash_items": "5963866b86f7747bfa1c4462",
        }
        for attr, tpl in roots.items():
            root = Item(tpl=tpl)
            inventory.items.append(root)
            setattr(inventory, attr, root.id)

        for slot, pool in template.inventory.equipment.items():
            if slot == EquipmentSlot.SECURED_CONTAINER.value:
                continue
            tpls = [tpl for tpl, weight in pool.items() if weight > 0]
            if not tpls:
                continue
            chance = template.chances.equipment.get(slot, 100)
            if self.rng.uniform(0, 100) >= chance:
                continue
            tpl = self.rng.choices(tpls, weights=[pool[t] for t in tpls])[0]
            inventory.items.append(Item(tpl=tpl, parent_id=inventory.equipment, slot_id=slot))

        inventory.items.append(Item(
            tpl=self.SECURED_CONTAINER_TPL,
            parent_id=inventory.equipment,
            slot_id=EquipmentSlot.SECURED_CONTAINER.value,
        ))
        return character
