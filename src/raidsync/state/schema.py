"""
Pydantic models for raidsync profile state.

One Profile document is persisted per session id. Designed to serialize to
JSON, structured like the server-side profile the game client expects.
"""

from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


# -----------------------------------------------------------------------------
# Enums and well-known ids
# -----------------------------------------------------------------------------

class ExitStatus(str, Enum):
    """How the player left the raid."""
    SURVIVED = "survived"
    KILLED = "killed"
    LEFT = "left"
    RUNNER = "runner"
    MISSING_IN_ACTION = "missinginaction"


class CharacterType(str, Enum):
    PMC = "pmc"
    SCAV = "scav"
    NONE = "none"


class EquipmentSlot(str, Enum):
    """Slots directly under a character's equipment root."""
    FIRST_PRIMARY_WEAPON = "FirstPrimaryWeapon"
    SECOND_PRIMARY_WEAPON = "SecondPrimaryWeapon"
    HOLSTER = "Holster"
    SCABBARD = "Scabbard"
    COMPASS = "Compass"
    HEADWEAR = "Headwear"
    EARPIECE = "Earpiece"
    EYEWEAR = "Eyewear"
    FACE_COVER = "FaceCover"
    ARM_BAND = "ArmBand"
    ARMOR_VEST = "ArmorVest"
    TACTICAL_VEST = "TacticalVest"
    BACKPACK = "Backpack"
    POCKETS = "Pockets"
    SECURED_CONTAINER = "SecuredContainer"


class QuestStatus(str, Enum):
    LOCKED = "Locked"
    AVAILABLE_FOR_START = "AvailableForStart"
    STARTED = "Started"
    AVAILABLE_FOR_FINISH = "AvailableForFinish"
    SUCCESS = "Success"
    FAIL = "Fail"
    FAIL_RESTARTABLE = "FailRestartable"
    MARKED_AS_FAILED = "MarkedAsFailed"
    EXPIRED = "Expired"


class MessageType(int, Enum):
    USER_MESSAGE = 1
    NPC_TRADER = 2
    SYSTEM_MESSAGE = 6
    INSURANCE_RETURN = 8


class Traders(str, Enum):
    PRAPOR = "54cb50c76803fa8b248b4571"
    THERAPIST = "54cb57776803fa99248b456e"
    FENCE = "579dc571d53a0658a154fbec"
    SKIER = "58330581ace78e27b8b10cee"
    PEACEKEEPER = "5935c25fb3acc3127c3d8cd9"
    MECHANIC = "5a7c2eca46aef81a7ca2145d"
    RAGMAN = "5ac3b934156ae10c4430e83c"
    JAEGER = "5c0647fdd443bc2504c2d371"


class Money(str, Enum):
    ROUBLES = "5449016a4bdc2d6f028b456f"
    DOLLARS = "5696686a4bdc2da3298b456a"
    EUROS = "569668774bdc2da2298b4568"

    @classmethod
    def is_money(cls, tpl: str) -> bool:
        return tpl in {m.value for m in cls}


# Slot used for items that sit loose in the stash
HIDEOUT_SLOT = "hideout"

POCKET_SLOTS = ("pocket1", "pocket2", "pocket3", "pocket4")

# Labs keycard template, the rare access item a scav can spawn with
LABS_ACCESS_CARD_TPL = "5c94bbff86f7747ee735c08f"


def generate_id() -> str:
    """Generate a 24-character hex id in the style the client uses."""
    return uuid4().hex[:24]


# -----------------------------------------------------------------------------
# Items
# -----------------------------------------------------------------------------

class ItemUpd(BaseModel):
    """Mutable per-item metadata. Unknown client keys are preserved."""
    model_config = ConfigDict(extra="allow")

    stack_objects_count: int | None = None
    spawned_in_session: bool | None = None


class Item(BaseModel):
    """
    A node in a character's item forest.

    Root items (equipment, stash, sorting table, ...) have no parent_id.
    Every other item's parent_id must point at another item in the same
    inventory.
    """
    id: str = Field(default_factory=generate_id)
    tpl: str
    parent_id: str | None = None
    slot_id: str | None = None
    location: Any = None
    upd: ItemUpd | None = None

    def ensure_upd(self) -> ItemUpd:
        """Return upd, creating an empty one if absent."""
        if self.upd is None:
            self.upd = ItemUpd()
        return self.upd

    @property
    def stack_count(self) -> int:
        """Stack size; items without stack metadata count as one."""
        if self.upd is None or not self.upd.stack_objects_count:
            return 1
        return self.upd.stack_objects_count

    @property
    def found_in_raid(self) -> bool:
        return bool(self.upd and self.upd.spawned_in_session)

    def set_found_in_raid(self) -> None:
        self.ensure_upd().spawned_in_session = True

    def clear_found_in_raid(self) -> None:
        """Drop the found-in-raid stamp entirely."""
        if self.upd is not None:
            self.upd.spawned_in_session = None


class Inventory(BaseModel):
    """A character's items plus ids of its structural root items."""
    items: list[Item] = Field(default_factory=list)
    equipment: str = ""
    stash: str = ""
    sorting_table: str = ""
    quest_raid_items: str = ""
    quest_stash_items: str = ""
    fast_panel: dict[str, str] = Field(default_factory=dict)

    def root_ids(self) -> set[str]:
        return {
            item_id
            for item_id in (
                self.equipment,
                self.stash,
                self.sorting_table,
                self.quest_raid_items,
                self.quest_stash_items,
            )
            if item_id
        }

    def get(self, item_id: str) -> Item | None:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def find_by_slot(self, slot_id: str) -> Item | None:
        for item in self.items:
            if item.slot_id == slot_id:
                return item
        return None


class InsuredItem(BaseModel):
    """Promise that trader_id will recover item_id if it is lost in a raid."""
    item_id: str
    trader_id: str


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------

class BodyPartEffect(BaseModel):
    time: float = -1


class BodyPartHealth(BaseModel):
    current: float
    maximum: float
    effects: dict[str, BodyPartEffect] | None = None

    def ensure_effects(self) -> dict[str, BodyPartEffect]:
        if self.effects is None:
            self.effects = {}
        return self.effects


class Vital(BaseModel):
    current: float
    maximum: float


def default_body_parts() -> dict[str, BodyPartHealth]:
    maxima = {
        "Head": 35,
        "Chest": 85,
        "Stomach": 70,
        "LeftArm": 60,
        "RightArm": 60,
        "LeftLeg": 65,
        "RightLeg": 65,
    }
    return {
        part: BodyPartHealth(current=value, maximum=value)
        for part, value in maxima.items()
    }


class Health(BaseModel):
    body_parts: dict[str, BodyPartHealth] = Field(default_factory=default_body_parts)
    hydration: Vital = Field(default_factory=lambda: Vital(current=100, maximum=100))
    energy: Vital = Field(default_factory=lambda: Vital(current=100, maximum=100))
    temperature: Vital = Field(default_factory=lambda: Vital(current=36.6, maximum=40))
    update_time: float = 0


class HealthSync(BaseModel):
    """Health payload the client sends alongside a raid outcome."""
    is_alive: bool = True
    health: dict[str, Vital] = Field(default_factory=dict)
    hydration: float | None = None
    energy: float | None = None
    temperature: float | None = None


# -----------------------------------------------------------------------------
# Skills, stats, quests
# -----------------------------------------------------------------------------

class CommonSkill(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    progress: float = 0
    points_earned_during_session: float = 0


class Skills(BaseModel):
    common: list[CommonSkill] = Field(default_factory=list)
    mastering: list[dict] = Field(default_factory=list)
    points: float = 0


class Victim(BaseModel):
    """A kill recorded during the raid."""
    model_config = ConfigDict(extra="allow")

    side: str
    role: str
    name: str = ""
    level: int = 0


class Aggressor(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = ""
    side: str = ""
    role: str = ""


class Stats(BaseModel):
    model_config = ConfigDict(extra="allow")

    carried_quest_items: list[str] = Field(default_factory=list)
    victims: list[Victim] = Field(default_factory=list)
    total_session_experience: int = 0
    last_session_date: float = 0
    session_counters: dict = Field(default_factory=dict)
    overall_counters: dict = Field(default_factory=dict)
    total_in_game_time: float = 0
    aggressor: Aggressor | None = None


class Quest(BaseModel):
    qid: str
    status: QuestStatus = QuestStatus.LOCKED
    completed_conditions: list[str] = Field(default_factory=list)
    start_time: float = 0


class TraderInfo(BaseModel):
    standing: float = 0
    loyalty_level: int = 1
    sales_sum: float = 0
    unlocked: bool = True


class Bonus(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    value: float = 0


# -----------------------------------------------------------------------------
# Character
# -----------------------------------------------------------------------------

class CharacterInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    nickname: str = ""
    side: str = "Savage"
    level: int = 1
    experience: int = 0
    savage_lock_time: float = 0
    last_time_played_as_savage: float = 0
    settings: dict = Field(default_factory=dict)


class Character(BaseModel):
    """A PMC or scav character: inventory, stats, standings and health."""
    id: str = Field(default_factory=generate_id)
    aid: str = ""
    savage: str | None = None  # PMC only: id the scav character takes
    info: CharacterInfo = Field(default_factory=CharacterInfo)
    inventory: Inventory = Field(default_factory=Inventory)
    health: Health = Field(default_factory=Health)
    skills: Skills = Field(default_factory=Skills)
    stats: Stats = Field(default_factory=Stats)
    encyclopedia: dict[str, bool] = Field(default_factory=dict)
    condition_counters: dict = Field(default_factory=dict)
    quests: list[Quest] = Field(default_factory=list)
    traders_info: dict[str, TraderInfo] = Field(default_factory=dict)
    insured_items: list[InsuredItem] = Field(default_factory=list)
    bonuses: list[Bonus] = Field(default_factory=list)
    survivor_class: str | None = None

    def bonus_total(self, bonus_type: str) -> float | None:
        """Sum of all bonuses of a type, or None if the character has none."""
        values = [b.value for b in self.bonuses if b.type == bonus_type]
        if not values:
            return None
        return sum(values)

    def first_bonus(self, bonus_type: str) -> Bonus | None:
        for bonus in self.bonuses:
            if bonus.type == bonus_type:
                return bonus
        return None

    def is_insured(self, item_id: str) -> bool:
        return any(i.item_id == item_id for i in self.insured_items)


# -----------------------------------------------------------------------------
# Insurance records and messages
# -----------------------------------------------------------------------------

class MessageContent(BaseModel):
    template_id: str = ""
    type: MessageType = MessageType.NPC_TRADER
    max_storage_time: int = 0
    text: str = ""
    profile_change_events: list = Field(default_factory=list)
    system_data: dict[str, str] = Field(default_factory=dict)


class InsuranceRecord(BaseModel):
    """A parcel of lost insured items awaiting delivery by a trader."""
    scheduled_time: float
    trader_id: str
    message_content: MessageContent
    items: list[Item] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# Profile root
# -----------------------------------------------------------------------------

class ProfileInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    username: str = ""
    wipe: bool = False
    edition: str = "Standard"


class Characters(BaseModel):
    pmc: Character = Field(default_factory=Character)
    scav: Character | None = None


class InRaid(BaseModel):
    location: str = "none"
    character: CharacterType = CharacterType.NONE


class Profile(BaseModel):
    """
    Complete profile state for one session id.

    This is the root model that gets serialized to JSON.
    """
    info: ProfileInfo
    characters: Characters = Field(default_factory=Characters)
    insurance: list[InsuranceRecord] = Field(default_factory=list)
    weaponbuilds: dict = Field(default_factory=dict)
    inraid: InRaid = Field(default_factory=InRaid)

    @property
    def pmc(self) -> Character:
        return self.characters.pmc

    @property
    def scav(self) -> Character | None:
        return self.characters.scav


# -----------------------------------------------------------------------------
# Raid outcome request
# -----------------------------------------------------------------------------

class RaidOutcomeRequest(BaseModel):
    """
    Post-raid snapshot submitted by the client.

    exit is kept as a plain string so unrecognized values still validate.
    They count as death but leave health untouched.
    """
    exit: str
    profile: Character
    is_player_scav: bool = False
    health: HealthSync = Field(default_factory=HealthSync)

    @property
    def exit_status(self) -> ExitStatus | None:
        try:
            return ExitStatus(self.exit.lower())
        except ValueError:
            return None


class RaidOutcome(BaseModel):
    """Summary of what a resolve() call did."""
    session_id: str
    character: CharacterType
    exit: str
    dead: bool
    captured_items: int = 0
    scheduled_records: int = 0
    fence_standing: float | None = None
    scav_regenerated: bool = False
    skipped: bool = False
