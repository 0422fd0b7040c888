"""
Server configuration.

Loss-on-death, insurance, post-raid and player-scav settings. Stored as a
YAML file; any key left out falls back to the defaults below.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from .schema import EquipmentSlot, Traders

logger = logging.getLogger(__name__)


class LostOnDeathConfig(BaseModel):
    """What a PMC loses when they die. True means lost."""
    equipment: dict[EquipmentSlot, bool] = Field(
        default_factory=lambda: {
            EquipmentSlot.ARM_BAND: True,
            EquipmentSlot.HEADWEAR: True,
            EquipmentSlot.EARPIECE: True,
            EquipmentSlot.FACE_COVER: True,
            EquipmentSlot.ARMOR_VEST: True,
            EquipmentSlot.EYEWEAR: True,
            EquipmentSlot.TACTICAL_VEST: True,
            EquipmentSlot.BACKPACK: True,
            EquipmentSlot.HOLSTER: True,
            EquipmentSlot.FIRST_PRIMARY_WEAPON: True,
            EquipmentSlot.SECOND_PRIMARY_WEAPON: True,
            EquipmentSlot.SCABBARD: False,
            EquipmentSlot.COMPASS: True,
            EquipmentSlot.POCKETS: False,
            EquipmentSlot.SECURED_CONTAINER: False,
        }
    )
    quest_items: bool = True
    loose_loot: bool = True
    special_slot_items: bool = False

    def slot_lost(self, slot_id: str | None) -> bool:
        """Whether equipment in slot_id is lost. Unknown slots are lost."""
        try:
            slot = EquipmentSlot(slot_id)
        except ValueError:
            return True
        return self.equipment.get(slot, True)


class InsuranceConfig(BaseModel):
    insurance_multiplier: dict[str, float] = Field(
        default_factory=lambda: {
            Traders.PRAPOR.value: 0.16,
            Traders.THERAPIST.value: 0.25,
        }
    )
    blacklisted_equipment: list[str] = Field(
        default_factory=lambda: ["SpecialSlot1", "SpecialSlot2", "SpecialSlot3"]
    )
    return_time_override_seconds: int = 0


class InRaidConfig(BaseModel):
    save_loot: bool = True
    scav_extract_gain: float = 0.01
    laboratory_location: str = "laboratory"


class KarmaModifiers(BaseModel):
    equipment: dict[str, float] = Field(default_factory=dict)
    mod: dict[str, float] = Field(default_factory=dict)


class ItemLimit(BaseModel):
    min: int
    max: int


class KarmaLevel(BaseModel):
    """Loadout settings for one scav karma tier."""
    bot_type_for_loot: str = "assault"
    modifiers: KarmaModifiers = Field(default_factory=KarmaModifiers)
    item_limits: dict[str, ItemLimit] = Field(default_factory=dict)
    equipment_blacklist: dict[str, list[str]] = Field(default_factory=dict)
    labs_access_card_chance_percent: float = 0
    extract_standing_gain: float | None = None  # overrides InRaidConfig.scav_extract_gain


class PlayerScavConfig(BaseModel):
    karma_level: dict[int, KarmaLevel] = Field(
        default_factory=lambda: {level: KarmaLevel() for level in range(0, 7)}
    )


class ServerConfig(BaseModel):
    lost_on_death: LostOnDeathConfig = Field(default_factory=LostOnDeathConfig)
    insurance: InsuranceConfig = Field(default_factory=InsuranceConfig)
    in_raid: InRaidConfig = Field(default_factory=InRaidConfig)
    player_scav: PlayerScavConfig = Field(default_factory=PlayerScavConfig)


DEFAULT_CONFIG_FILE = "raidsync.yaml"


def load_config(path: Path | str = DEFAULT_CONFIG_FILE) -> ServerConfig:
    """Load config from YAML, or return defaults if missing or unreadable."""
    path = Path(path)

    if not path.exists():
        return ServerConfig()

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = yaml.safe_load(f) or {}
        return ServerConfig.model_validate(saved)
    except (yaml.YAMLError, ValidationError, OSError) as e:
        logger.error(f"Could not read config {path}, using defaults: {e}")
        return ServerConfig()


def save_config(config: ServerConfig, path: Path | str = DEFAULT_CONFIG_FILE) -> bool:
    """Save config to YAML. Returns True on success."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    try:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(
                config.model_dump(mode="json"),
                f,
                default_flow_style=False,
                sort_keys=False,
            )
        return True
    except OSError:
        return False
