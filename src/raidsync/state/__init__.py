"""Profile state, static tables and persistence for raidsync."""

from .schema import (
    Character,
    CharacterType,
    EquipmentSlot,
    ExitStatus,
    HealthSync,
    InsuranceRecord,
    InsuredItem,
    Inventory,
    Item,
    ItemUpd,
    Profile,
    RaidOutcome,
    RaidOutcomeRequest,
    Traders,
)
from .tables import GameTables
from .config import ServerConfig, load_config, save_config
from .store import (
    HookFailure,
    JsonProfileBackend,
    MemoryProfileBackend,
    ProfileBackend,
    ProfileExistsError,
    ProfileNotFoundError,
    ProfileStore,
    ReconciliationInProgressError,
    SaveReport,
)
from .event_bus import (
    EventBus,
    EventType,
    RaidEvent,
    get_event_bus,
    reset_event_bus,
)

__all__ = [
    # Schema
    "Character",
    "CharacterType",
    "EquipmentSlot",
    "ExitStatus",
    "HealthSync",
    "InsuranceRecord",
    "InsuredItem",
    "Inventory",
    "Item",
    "ItemUpd",
    "Profile",
    "RaidOutcome",
    "RaidOutcomeRequest",
    "Traders",
    # Tables and config
    "GameTables",
    "ServerConfig",
    "load_config",
    "save_config",
    # Store
    "HookFailure",
    "JsonProfileBackend",
    "MemoryProfileBackend",
    "ProfileBackend",
    "ProfileExistsError",
    "ProfileNotFoundError",
    "ProfileStore",
    "ReconciliationInProgressError",
    "SaveReport",
    # Events
    "EventBus",
    "EventType",
    "RaidEvent",
    "get_event_bus",
    "reset_event_bus",
]
