"""
Raid reconciliation engines for raidsync.

Each engine operates on profile state held by a ProfileStore; the
RaidOutcomeController strings them together per request.
"""

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
from .inventory import InventoryReconciler, get_player_gear
from .vitality import reset_vitality, save_vitality
from .death import DeathPenaltyEngine, is_player_dead
from .insurance import InsuranceError, InsuranceLedger
from .karma import ScavKarmaEngine, clamp_standing
from .raid import RaidOutcomeController, create_controller

__all__ = [
    # Collaborators
    "BasicProfileFixer",
    "BotDetailsCache",
    "BotGenerator",
    "ChatResponder",
    "MatchBotDetailsCache",
    "Notifier",
    "ProfileFixer",
    "RecordingChatResponder",
    "RecordingNotifier",
    "WeightedLoadoutGenerator",
    # Engines
    "InventoryReconciler",
    "get_player_gear",
    "reset_vitality",
    "save_vitality",
    "DeathPenaltyEngine",
    "is_player_dead",
    "InsuranceError",
    "InsuranceLedger",
    "ScavKarmaEngine",
    "clamp_standing",
    # Orchestration
    "RaidOutcomeController",
    "create_controller",
]
