"""Post-raid vitality: apply the client's health sync, or reset to full."""

import logging
import time
from typing import Callable

from ..state.schema import Character, HealthSync

logger = logging.getLogger(__name__)


def save_vitality(
    character: Character,
    sync: HealthSync,
    session_id: str,
    clock: Callable[[], float] = time.time,
) -> Character:
    """Copy synced body-part and vital values onto the character, clamped to their maxima."""
    health = character.health

    for part_id, vital in sync.health.items():
        part = health.body_parts.get(part_id)
        if part is None:
            logger.debug(f"Ignoring health sync for unknown body part {part_id} ({session_id})")
            continue
        part.current = min(max(vital.current, 0), part.maximum)

    if sync.hydration is not None:
        health.hydration.current = min(max(sync.hydration, 0), health.hydration.maximum)
    if sync.energy is not None:
        health.energy.current = min(max(sync.energy, 0), health.energy.maximum)
    if sync.temperature is not None:
        health.temperature.current = sync.temperature

    health.update_time = clock()
    return character


def reset_vitality(character: Character, clock: Callable[[], float] = time.time) -> Character:
    """Restore every body part and vital to its maximum and drop all effects."""
    health = character.health
    for part in health.body_parts.values():
        part.current = part.maximum
        part.effects = None
    health.hydration.current = health.hydration.maximum
    health.energy.current = health.energy.maximum
    health.update_time = clock()
    return character
