"""
Static game tables.

Read-only data the engines consult: item templates, map bases, trader
bases, bot type templates, globals and quest hand-in conditions. Loaded
from a directory of JSON files; a missing file yields an empty table.
"""

import json
import logging
import math
from pathlib import Path

from pydantic import BaseModel, Field

from .schema import Character, Traders

logger = logging.getLogger(__name__)

TABLE_FILES = ("items", "locations", "traders", "bots", "globals", "quests")


class ItemTemplate(BaseModel):
    id: str
    name: str = ""
    parent: str = ""
    quest_item: bool = False
    handbook_price: int = 0


class LocationBase(BaseModel):
    id: str
    name: str = ""
    insurance: bool = True
    access_keys: list[str] = Field(default_factory=list)


class TraderInsurance(BaseModel):
    availability: bool = True
    min_return_hour: float = 24
    max_return_hour: float = 36
    max_storage_time: int = 96


class LoyaltyLevel(BaseModel):
    min_level: int = 1
    min_standing: float = 0
    insurance_price_coef: float = 0


class TraderDialogue(BaseModel):
    insurance_start: list[str] = Field(default_factory=list)
    insurance_found: list[str] = Field(default_factory=list)
    insurance_failed: list[str] = Field(default_factory=list)


class TraderBase(BaseModel):
    id: str
    nickname: str = ""
    side: str = "Bear"
    insurance: TraderInsurance = Field(default_factory=TraderInsurance)
    loyalty_levels: list[LoyaltyLevel] = Field(default_factory=lambda: [LoyaltyLevel()])
    dialogue: TraderDialogue = Field(default_factory=TraderDialogue)

    def loyalty_for(self, character: Character) -> LoyaltyLevel:
        """Loyalty level entry matching the character's level with this trader."""
        info = character.traders_info.get(self.id)
        level = info.loyalty_level if info else 1
        index = min(max(level, 1), len(self.loyalty_levels)) - 1
        return self.loyalty_levels[index]


class MinMax(BaseModel):
    min: int = 0
    max: int = 0


class BotChances(BaseModel):
    equipment: dict[str, float] = Field(default_factory=dict)
    mods: dict[str, float] = Field(default_factory=dict)


class BotGeneration(BaseModel):
    items: dict[str, MinMax] = Field(default_factory=dict)


class BotInventory(BaseModel):
    # slot -> template id -> weight
    equipment: dict[str, dict[str, float]] = Field(default_factory=dict)
    items: dict[str, list[str]] = Field(default_factory=dict)


class BotExperience(BaseModel):
    standing_for_kill: float | None = None


class BotType(BaseModel):
    chances: BotChances = Field(default_factory=BotChances)
    generation: BotGeneration = Field(default_factory=BotGeneration)
    inventory: BotInventory = Field(default_factory=BotInventory)
    experience: BotExperience = Field(default_factory=BotExperience)


class FenceLevel(BaseModel):
    savage_cooldown_modifier: float = 1
    price_modifier: float = 1


class Globals(BaseModel):
    savage_play_cooldown: int = 1500
    fence_id: str = Traders.FENCE.value
    fence_levels: dict[int, FenceLevel] = Field(default_factory=lambda: {0: FenceLevel()})


class FindItemCondition(BaseModel):
    id: str
    target: list[str] = Field(default_factory=list)


class QuestTemplate(BaseModel):
    id: str
    find_item_conditions: list[FindItemCondition] = Field(default_factory=list)


class GameTables(BaseModel):
    """All static tables, keyed by id."""
    items: dict[str, ItemTemplate] = Field(default_factory=dict)
    locations: dict[str, LocationBase] = Field(default_factory=dict)
    traders: dict[str, TraderBase] = Field(default_factory=dict)
    bots: dict[str, BotType] = Field(default_factory=dict)
    globals: Globals = Field(default_factory=Globals)
    quests: dict[str, QuestTemplate] = Field(default_factory=dict)

    @classmethod
    def from_directory(cls, tables_dir: Path | str) -> "GameTables":
        """Load every table file present in tables_dir."""
        tables_dir = Path(tables_dir)
        data = {}
        for name in TABLE_FILES:
            path = tables_dir / f"{name}.json"
            if not path.exists():
                logger.debug(f"No {name} table at {path}, using empty table")
                continue
            with open(path, "r", encoding="utf-8") as f:
                data[name] = json.load(f)
        return cls.model_validate(data)

    def is_quest_item(self, tpl: str) -> bool:
        template = self.items.get(tpl)
        return bool(template and template.quest_item)

    def handbook_price(self, tpl: str) -> int:
        template = self.items.get(tpl)
        return template.handbook_price if template else 0

    def location(self, location_id: str) -> LocationBase | None:
        return self.locations.get(location_id.lower())

    def find_item_condition_ids(self, item_tpl: str) -> list[str]:
        """Ids of every quest FindItem condition that targets item_tpl."""
        return [
            condition.id
            for quest in self.quests.values()
            for condition in quest.find_item_conditions
            if item_tpl in condition.target
        ]

    def fence_level(self, character: Character) -> FenceLevel:
        """Fence level entry for the character's current fence standing."""
        levels = self.globals.fence_levels
        info = character.traders_info.get(self.globals.fence_id)
        if info is None or not levels:
            return levels.get(0, FenceLevel())

        level = math.floor(info.standing)
        level = min(max(level, min(levels)), max(levels))
        return levels.get(level, FenceLevel())
