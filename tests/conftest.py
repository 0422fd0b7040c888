"""
Pytest fixtures for raidsync tests.

Provides an in-memory profile store, a small set of static tables, a
fully equipped PMC and recording collaborators.
"""

import random

import pytest

from raidsync.state import (
    EventBus,
    MemoryProfileBackend,
    ProfileStore,
    ServerConfig,
    reset_event_bus,
)
from raidsync.state.schema import (
    Bonus,
    Character,
    CharacterInfo,
    HealthSync,
    InsuredItem,
    Inventory,
    Item,
    ItemUpd,
    Money,
    Profile,
    ProfileInfo,
    Quest,
    QuestStatus,
    RaidOutcomeRequest,
    TraderInfo,
    Traders,
    Victim,
)
from raidsync.state.tables import (
    BotChances,
    BotExperience,
    BotGeneration,
    BotInventory,
    BotType,
    FenceLevel,
    FindItemCondition,
    GameTables,
    Globals,
    ItemTemplate,
    LocationBase,
    LoyaltyLevel,
    MinMax,
    QuestTemplate,
    TraderBase,
    TraderDialogue,
    TraderInsurance,
)
from raidsync.systems import (
    MatchBotDetailsCache,
    RecordingChatResponder,
    RecordingNotifier,
    create_controller,
)

SESSION_ID = "session1"
NOW = 1_700_000_000.0

# Ids of the items under the PMC's equipment root
EQUIPMENT_SUBTREE = [
    "helmet",
    "rig",
    "rig_ammo",
    "backpack",
    "backpack_loot",
    "pockets",
    "pocket_loot",
    "special_item",
    "rifle",
    "rifle_mag",
    "secure",
    "secure_loot",
]


@pytest.fixture(autouse=True)
def fresh_event_bus():
    """Keep the process-wide bus from leaking between tests."""
    reset_event_bus()
    yield
    reset_event_bus()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def backend():
    """In-memory profile documents."""
    return MemoryProfileBackend()


@pytest.fixture
def store(backend, event_bus):
    """Profile store over the in-memory backend."""
    return ProfileStore(backend, event_bus=event_bus)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def rng():
    return random.Random(7)


@pytest.fixture
def config():
    return ServerConfig()


@pytest.fixture
def tables():
    """Static tables covering two maps, three traders and a few bot types."""
    return GameTables(
        items={
            "tpl_helmet": ItemTemplate(id="tpl_helmet", handbook_price=10000),
            "tpl_rifle": ItemTemplate(id="tpl_rifle", handbook_price=50000),
            "tpl_gold": ItemTemplate(id="tpl_gold", quest_item=True),
            "tpl_labs_key": ItemTemplate(id="tpl_labs_key"),
            Money.ROUBLES.value: ItemTemplate(id=Money.ROUBLES.value, handbook_price=1),
        },
        locations={
            "bigmap": LocationBase(id="bigmap", name="Customs"),
            "laboratory": LocationBase(
                id="laboratory",
                name="The Lab",
                insurance=False,
                access_keys=["tpl_labs_key"],
            ),
        },
        traders={
            Traders.PRAPOR.value: TraderBase(
                id=Traders.PRAPOR.value,
                nickname="Prapor",
                insurance=TraderInsurance(min_return_hour=2, max_return_hour=2),
                loyalty_levels=[
                    LoyaltyLevel(min_level=1, min_standing=0, insurance_price_coef=0),
                    LoyaltyLevel(min_level=15, min_standing=0.2, insurance_price_coef=10),
                ],
                dialogue=TraderDialogue(
                    insurance_start=["prapor_start"],
                    insurance_found=["prapor_found"],
                    insurance_failed=["prapor_failed"],
                ),
            ),
            Traders.THERAPIST.value: TraderBase(
                id=Traders.THERAPIST.value,
                nickname="Therapist",
                insurance=TraderInsurance(min_return_hour=1, max_return_hour=1),
                dialogue=TraderDialogue(
                    insurance_start=["therapist_start"],
                    insurance_found=["therapist_found"],
                ),
            ),
            Traders.FENCE.value: TraderBase(
                id=Traders.FENCE.value,
                nickname="Fence",
                loyalty_levels=[
                    LoyaltyLevel(min_level=1, min_standing=-7),
                    LoyaltyLevel(min_level=1, min_standing=6),
                ],
            ),
        },
        bots={
            "assault": BotType(
                chances=BotChances(
                    equipment={"Headwear": 100, "TacticalVest": 100, "Backpack": 100, "Pockets": 100},
                    mods={"mod_magazine": 50},
                ),
                generation=BotGeneration(items={"healing": MinMax(min=0, max=1)}),
                inventory=BotInventory(equipment={
                    "Headwear": {"tpl_scav_hat": 1, "tpl_scav_helmet": 1},
                    "TacticalVest": {"tpl_scav_rig": 1},
                    "Backpack": {"tpl_scav_bag": 1},
                    "Pockets": {"tpl_pockets": 1},
                }),
                experience=BotExperience(standing_for_kill=-0.25),
            ),
            "cursedassault": BotType(
                chances=BotChances(equipment={"Headwear": 100}),
                inventory=BotInventory(equipment={"Headwear": {"tpl_cursed_hat": 1}}),
            ),
            "bear": BotType(experience=BotExperience(standing_for_kill=0.1)),
            "usec": BotType(experience=BotExperience(standing_for_kill=0.1)),
        },
        globals=Globals(
            savage_play_cooldown=1500,
            fence_levels={
                0: FenceLevel(savage_cooldown_modifier=1.0),
                2: FenceLevel(savage_cooldown_modifier=0.8),
            },
        ),
        quests={
            "quest_gold": QuestTemplate(
                id="quest_gold",
                find_item_conditions=[FindItemCondition(id="cond_find_gold", target=["tpl_gold"])],
            ),
        },
    )


def build_pmc() -> Character:
    """A level 20 PMC wearing a full kit, with a little in the stash."""
    items = [
        Item(id="equipment", tpl="tpl_equipment_root"),
        Item(id="stash", tpl="tpl_stash_root"),
        Item(id="sorting", tpl="tpl_sorting_root"),
        Item(id="quest_raid", tpl="tpl_quest_raid_root"),
        Item(id="quest_stash", tpl="tpl_quest_stash_root"),
        Item(id="helmet", tpl="tpl_helmet", parent_id="equipment", slot_id="Headwear"),
        Item(id="rig", tpl="tpl_rig", parent_id="equipment", slot_id="TacticalVest"),
        Item(id="rig_ammo", tpl="tpl_ammo", parent_id="rig", slot_id="main"),
        Item(id="backpack", tpl="tpl_backpack", parent_id="equipment", slot_id="Backpack"),
        Item(id="backpack_loot", tpl="tpl_bolts", parent_id="backpack", slot_id="main"),
        Item(id="pockets", tpl="tpl_pockets", parent_id="equipment", slot_id="Pockets"),
        Item(id="pocket_loot", tpl="tpl_bandage", parent_id="pockets", slot_id="pocket1",
             location={"x": 0, "y": 0, "r": 0}),
        Item(id="special_item", tpl="tpl_compass_item", parent_id="pockets", slot_id="SpecialSlot1"),
        Item(id="rifle", tpl="tpl_rifle", parent_id="equipment", slot_id="FirstPrimaryWeapon"),
        Item(id="rifle_mag", tpl="tpl_mag", parent_id="rifle", slot_id="mod_magazine"),
        Item(id="secure", tpl="tpl_secure", parent_id="equipment", slot_id="SecuredContainer"),
        Item(id="secure_loot", tpl="tpl_gold", parent_id="secure", slot_id="main"),
        Item(id="stash_item", tpl="tpl_salewa", parent_id="stash", slot_id="hideout",
             location={"x": 1, "y": 2, "r": 0}),
        Item(id="roubles", tpl=Money.ROUBLES.value, parent_id="stash", slot_id="hideout",
             upd=ItemUpd(stack_objects_count=5000)),
    ]
    return Character(
        id="pmc1",
        aid="account1",
        savage="scav1",
        info=CharacterInfo(nickname="Tarkov", side="Bear", level=20, experience=1000),
        inventory=Inventory(
            items=items,
            equipment="equipment",
            stash="stash",
            sorting_table="sorting",
            quest_raid_items="quest_raid",
            quest_stash_items="quest_stash",
            fast_panel={"Item4": "rig_ammo"},
        ),
        quests=[
            Quest(qid="quest_gold", status=QuestStatus.STARTED,
                  completed_conditions=["cond_find_gold", "cond_other"]),
            Quest(qid="quest_delivery", status=QuestStatus.STARTED),
        ],
        traders_info={
            Traders.FENCE.value: TraderInfo(standing=2.5, loyalty_level=1),
            Traders.PRAPOR.value: TraderInfo(standing=0.3, loyalty_level=2),
        },
        insured_items=[
            InsuredItem(item_id="helmet", trader_id=Traders.PRAPOR.value),
            InsuredItem(item_id="rifle", trader_id=Traders.PRAPOR.value),
            InsuredItem(item_id="pocket_loot", trader_id=Traders.THERAPIST.value),
            InsuredItem(item_id="special_item", trader_id=Traders.PRAPOR.value),
        ],
        bonuses=[Bonus(type="ScavCooldownTimer", value=-10)],
    )


def build_scav() -> Character:
    items = [
        Item(id="scav_equipment", tpl="tpl_equipment_root"),
        Item(id="scav_stash", tpl="tpl_stash_root"),
        Item(id="scav_sorting", tpl="tpl_sorting_root"),
        Item(id="scav_quest_raid", tpl="tpl_quest_raid_root"),
        Item(id="scav_hat", tpl="tpl_scav_hat", parent_id="scav_equipment", slot_id="Headwear"),
        Item(id="scav_rig", tpl="tpl_scav_rig", parent_id="scav_equipment", slot_id="TacticalVest"),
    ]
    return Character(
        id="scav1",
        aid="account1",
        info=CharacterInfo(nickname="Scav", level=3, experience=300),
        inventory=Inventory(
            items=items,
            equipment="scav_equipment",
            stash="scav_stash",
            sorting_table="scav_sorting",
            quest_raid_items="scav_quest_raid",
        ),
        traders_info={Traders.FENCE.value: TraderInfo(standing=2.5, loyalty_level=1)},
    )


def raid_snapshot(character: Character) -> Character:
    """
    What the client sends back: the character with only its raid-facing
    subtrees (equipment, quest raid items, sorting table).
    """
    snapshot = character.model_copy(deep=True)
    inventory = snapshot.inventory
    keep = {inventory.equipment, inventory.quest_raid_items, inventory.sorting_table}
    changed = True
    while changed:
        changed = False
        for item in inventory.items:
            if item.id not in keep and item.parent_id in keep:
                keep.add(item.id)
                changed = True
    inventory.items = [item for item in inventory.items if item.id in keep]
    return snapshot


@pytest.fixture
def pmc():
    return build_pmc()


@pytest.fixture
def profile(store):
    """Stored profile for SESSION_ID with a PMC and a scav, last seen entering Customs."""
    profile = Profile(info=ProfileInfo(id=SESSION_ID, username="tester"))
    profile.characters.pmc = build_pmc()
    profile.characters.scav = build_scav()
    profile.inraid.location = "bigmap"
    store.add_profile(profile)
    return profile


@pytest.fixture
def make_request():
    """Factory for raid outcome requests built from a character snapshot."""
    def _make(
        character: Character,
        exit: str = "survived",
        is_player_scav: bool = False,
        drop: tuple[str, ...] = (),
        add: tuple[Item, ...] = (),
        victims: tuple[Victim, ...] = (),
        health: HealthSync | None = None,
    ) -> RaidOutcomeRequest:
        snapshot = raid_snapshot(character)
        snapshot.inventory.items = [
            item for item in snapshot.inventory.items if item.id not in drop
        ] + [item.model_copy(deep=True) for item in add]
        snapshot.stats.victims = list(victims)
        return RaidOutcomeRequest(
            exit=exit,
            profile=snapshot,
            is_player_scav=is_player_scav,
            health=health or HealthSync(),
        )
    return _make


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def chat():
    return RecordingChatResponder()


@pytest.fixture
def bot_cache():
    return MatchBotDetailsCache()


@pytest.fixture
def controller(store, tables, config, notifier, chat, bot_cache, rng, clock, event_bus):
    """Fully wired controller with recording collaborators."""
    return create_controller(
        store,
        tables,
        config,
        notifier=notifier,
        chat=chat,
        bot_cache=bot_cache,
        rng=rng,
        clock=clock,
        event_bus=event_bus,
    )
