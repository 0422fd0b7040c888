"""
Item forest helpers.

A character's items form a forest keyed by parent_id. These helpers walk,
cut and check that forest without knowing anything about raids.
"""

import logging
from collections import defaultdict

from .schema import Character, Item, Profile

logger = logging.getLogger(__name__)


def children_by_parent(items: list[Item]) -> dict[str, list[Item]]:
    """Index items by their parent id. Parentless items are not indexed."""
    index: dict[str, list[Item]] = defaultdict(list)
    for item in items:
        if item.parent_id:
            index[item.parent_id].append(item)
    return index


def find_with_children(items: list[Item], item_id: str) -> list[str]:
    """
    Ids of item_id and everything nested beneath it.

    The starting id is always first in the result, even if no item with
    that id exists.
    """
    index = children_by_parent(items)
    result = [item_id]
    seen = {item_id}
    stack = [item_id]
    while stack:
        current = stack.pop()
        for child in index.get(current, []):
            if child.id in seen:
                continue
            seen.add(child.id)
            result.append(child.id)
            stack.append(child.id)
    return result


def items_under(items: list[Item], parent_id: str) -> list[Item]:
    """All descendants of parent_id, excluding the parent itself."""
    ids = set(find_with_children(items, parent_id)[1:])
    return [item for item in items if item.id in ids]


def remove_item(character: Character, item_id: str) -> list[Item]:
    """Remove an item and its children from the character. Returns the removed items."""
    doomed = set(find_with_children(character.inventory.items, item_id))
    removed = [item for item in character.inventory.items if item.id in doomed]
    character.inventory.items = [
        item for item in character.inventory.items if item.id not in doomed
    ]
    return removed


def find_broken_items(items: list[Item]) -> set[str]:
    """
    Ids of items whose parent chain dangles or loops.

    An item is broken if any ancestor reference points at a missing item
    or if following parents revisits an item.
    """
    by_id = {item.id: item for item in items}
    status: dict[str, bool] = {}  # id -> ok

    for item in items:
        path: list[str] = []
        on_path: set[str] = set()
        current: Item | None = item
        ok = True

        while current is not None:
            if current.id in status:
                ok = status[current.id]
                break
            if current.id in on_path:
                ok = False
                break
            path.append(current.id)
            on_path.add(current.id)
            if not current.parent_id:
                break
            parent = by_id.get(current.parent_id)
            if parent is None:
                ok = False
                break
            current = parent

        for item_id in path:
            status[item_id] = ok

    return {item_id for item_id, ok in status.items() if not ok}


def prune_orphaned_items(profile: Profile) -> Profile:
    """Pre-save hook dropping dangling or cyclic items from every character."""
    characters = [profile.characters.pmc]
    if profile.characters.scav is not None:
        characters.append(profile.characters.scav)

    for character in characters:
        broken = find_broken_items(character.inventory.items)
        if not broken:
            continue
        for item_id in sorted(broken):
            logger.warning(f"Pruning orphaned item {item_id} from character {character.id}")
        character.inventory.items = [
            item for item in character.inventory.items if item.id not in broken
        ]

    return profile
