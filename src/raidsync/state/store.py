"""
Profile storage.

ProfileStore owns the authoritative in-memory profile map. A ProfileBackend
underneath it holds one JSON document per session id.

Backends:
- JsonProfileBackend: file-based persistence (production)
- MemoryProfileBackend: in-memory documents (testing)
"""

import hashlib
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Protocol, runtime_checkable

import yaml
from pydantic import ValidationError

from .event_bus import EventBus, EventType, get_event_bus
from .schema import Character, Profile, ProfileInfo

logger = logging.getLogger(__name__)


class ProfileNotFoundError(KeyError):
    """No profile is held for the session id."""


class ProfileExistsError(ValueError):
    """A profile already exists for the session id."""


class ReconciliationInProgressError(RuntimeError):
    """Another reconciliation for the same session is still running."""


# -----------------------------------------------------------------------------
# Backends
# -----------------------------------------------------------------------------

@runtime_checkable
class ProfileBackend(Protocol):
    """Durable storage for serialized profile documents."""

    def read(self, session_id: str) -> str | None:
        """Return the raw document, or None if there is none."""
        ...

    def write(self, session_id: str, document: str) -> None:
        ...

    def list_ids(self) -> list[str]:
        ...

    def remove(self, session_id: str) -> bool:
        """Delete the document. Returns True if one existed."""
        ...


class JsonProfileBackend:
    """
    One <session_id>.json file per profile.

    The previous document is kept as <session_id>.json.bak on every write.
    """

    def __init__(self, profiles_dir: Path | str = "profiles"):
        self.profiles_dir = Path(profiles_dir)
        self.profiles_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, session_id: str) -> Path:
        return self.profiles_dir / f"{session_id}.json"

    def read(self, session_id: str) -> str | None:
        path = self._path(session_id)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, session_id: str, document: str) -> None:
        path = self._path(session_id)

        # Backup previous save
        if path.exists():
            backup = path.with_suffix(".json.bak")
            backup.write_text(path.read_text(encoding="utf-8"), encoding="utf-8")

        path.write_text(document, encoding="utf-8")

    def list_ids(self) -> list[str]:
        return sorted(f.stem for f in self.profiles_dir.glob("*.json"))

    def remove(self, session_id: str) -> bool:
        path = self._path(session_id)
        if path.exists():
            path.unlink()
            return True
        return False


class MemoryProfileBackend:
    """In-memory documents for testing. Counts durable writes."""

    def __init__(self):
        self.documents: dict[str, str] = {}
        self.writes = 0

    def read(self, session_id: str) -> str | None:
        return self.documents.get(session_id)

    def write(self, session_id: str, document: str) -> None:
        self.documents[session_id] = document
        self.writes += 1

    def list_ids(self) -> list[str]:
        return sorted(self.documents)

    def remove(self, session_id: str) -> bool:
        return self.documents.pop(session_id, None) is not None


# -----------------------------------------------------------------------------
# Save hooks
# -----------------------------------------------------------------------------

# A hook transforms a profile before it is written. It may mutate in place
# and return the same profile, or return a replacement.
SaveHook = Callable[[Profile], Profile | None]


@dataclass
class HookFailure:
    hook_id: str
    error: str


@dataclass
class SaveReport:
    """What save_profile did for one session."""
    session_id: str
    written: bool = False
    failures: list[HookFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def _content_hash(document: str) -> str:
    return hashlib.md5(document.encode("utf-8")).hexdigest()


def _assign(target: Profile, source: Profile) -> None:
    """Overwrite target's fields with source's, keeping target's identity."""
    for name in Profile.model_fields:
        setattr(target, name, getattr(source, name))


# -----------------------------------------------------------------------------
# Store
# -----------------------------------------------------------------------------

class ProfileStore:
    """
    Authoritative profile map with durable write-back.

    Saving runs every registered pre-save hook in order, then writes the
    profile unless its serialized content is unchanged since the last
    write. A failing hook is rolled back on its own; the others still run.
    """

    def __init__(self, backend: ProfileBackend, event_bus: EventBus | None = None):
        self.backend = backend
        self.event_bus = event_bus or get_event_bus()
        self.profiles: dict[str, Profile] = {}
        self._hashes: dict[str, str] = {}
        self._hooks: dict[str, SaveHook] = {}
        self._guard_lock = threading.Lock()
        self._in_flight: set[str] = set()

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def get_profile(self, session_id: str) -> Profile:
        try:
            return self.profiles[session_id]
        except KeyError:
            raise ProfileNotFoundError(session_id) from None

    def has_profile(self, session_id: str) -> bool:
        return session_id in self.profiles

    def get_pmc(self, session_id: str) -> Character:
        return self.get_profile(session_id).characters.pmc

    def get_scav(self, session_id: str) -> Character | None:
        return self.get_profile(session_id).characters.scav

    def create_profile(self, session_id: str, username: str = "") -> Profile:
        """Create an empty profile. Raises ProfileExistsError if taken."""
        if session_id in self.profiles:
            raise ProfileExistsError(session_id)
        profile = Profile(info=ProfileInfo(id=session_id, username=username))
        self.profiles[session_id] = profile
        logger.info(f"Created profile {session_id}")
        return profile

    def add_profile(self, profile: Profile) -> None:
        """Hold a profile built elsewhere, replacing any with the same id."""
        self.profiles[profile.info.id] = profile

    def delete_profile(self, session_id: str) -> bool:
        """Drop the in-memory profile only. The durable document stays."""
        return self.profiles.pop(session_id, None) is not None

    def remove_profile(self, session_id: str) -> bool:
        """Drop the profile from memory and from durable storage."""
        in_memory = self.delete_profile(session_id)
        self._hashes.pop(session_id, None)
        on_disk = self.backend.remove(session_id)
        if in_memory or on_disk:
            logger.info(f"Removed profile {session_id}")
        return in_memory or on_disk

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load_profile(self, session_id: str) -> Profile:
        """Load one profile from the backend into memory."""
        document = self.backend.read(session_id)
        if document is None:
            raise ProfileNotFoundError(session_id)

        data = self._parse(session_id, document)
        self._apply_fixups(session_id, data)
        profile = Profile.model_validate(data)

        self.profiles[session_id] = profile
        self._hashes[session_id] = _content_hash(profile.model_dump_json())
        self.event_bus.emit(EventType.PROFILE_LOADED, session_id=session_id)
        return profile

    def load_all(self) -> int:
        """Load every profile the backend holds. Returns how many loaded."""
        loaded = 0
        for session_id in self.backend.list_ids():
            try:
                self.load_profile(session_id)
                loaded += 1
            except (ValueError, ValidationError) as e:
                logger.error(f"Could not load profile {session_id}: {e}")
        logger.info(f"Loaded {loaded} profile(s)")
        return loaded

    def _parse(self, session_id: str, document: str) -> dict:
        try:
            data = json.loads(document)
        except json.JSONDecodeError as e:
            # YAML's flow syntax tolerates trailing commas, comments and single quotes
            logger.error(f"Profile {session_id} is malformed ({e}), attempting repair")
            try:
                data = yaml.safe_load(document)
            except yaml.YAMLError as yaml_error:
                raise ValueError(f"profile {session_id} could not be repaired: {yaml_error}") from e
        if not isinstance(data, dict):
            raise ValueError(f"profile {session_id} is not a JSON object")
        return data

    def _apply_fixups(self, session_id: str, data: dict) -> None:
        if "inraid" not in data:
            data["inraid"] = {"location": "none", "character": "none"}
            logger.warning(f"Profile {session_id} had no inraid record, added default")
        if "insurance" not in data:
            data["insurance"] = []
            logger.warning(f"Profile {session_id} had no insurance queue, added empty one")
        if "characters" not in data:
            data["characters"] = {"pmc": {}, "scav": None}
            logger.warning(f"Profile {session_id} had no characters, added empty PMC")
        if "info" not in data:
            data["info"] = {"id": session_id}
            logger.warning(f"Profile {session_id} had no info block, added default")

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    def register_save_hook(self, hook_id: str, hook: SaveHook) -> None:
        """Add a pre-save hook. Hooks run in registration order."""
        self._hooks[hook_id] = hook

    def unregister_save_hook(self, hook_id: str) -> None:
        self._hooks.pop(hook_id, None)

    def _run_hooks(self, session_id: str, profile: Profile) -> list[HookFailure]:
        failures = []
        for hook_id, hook in list(self._hooks.items()):
            snapshot = profile.model_copy(deep=True)
            try:
                result = hook(profile)
                if result is not None and result is not profile:
                    _assign(profile, result)
            except Exception as e:
                logger.error(f"Pre-save hook {hook_id} failed for {session_id}: {e}")
                _assign(profile, snapshot)
                failures.append(HookFailure(hook_id=hook_id, error=str(e)))
                self.event_bus.emit(
                    EventType.SAVE_HOOK_FAILED,
                    session_id=session_id,
                    hook_id=hook_id,
                    error=str(e),
                )
        return failures

    def save_profile(self, session_id: str) -> SaveReport:
        """
        Run pre-save hooks and write the profile if its content changed.

        Raises:
            ProfileNotFoundError: if no profile is held for session_id
        """
        profile = self.get_profile(session_id)
        report = SaveReport(session_id=session_id)
        report.failures = self._run_hooks(session_id, profile)

        document = profile.model_dump_json(indent=2)
        digest = _content_hash(profile.model_dump_json())
        if self._hashes.get(session_id) == digest:
            logger.debug(f"Profile {session_id} unchanged, skipping write")
            return report

        self.backend.write(session_id, document)
        self._hashes[session_id] = digest
        report.written = True
        logger.debug(f"Saved profile {session_id}")
        self.event_bus.emit(EventType.PROFILE_SAVED, session_id=session_id)
        return report

    def save_all(self) -> list[SaveReport]:
        return [self.save_profile(session_id) for session_id in list(self.profiles)]

    # -------------------------------------------------------------------------
    # Concurrency
    # -------------------------------------------------------------------------

    @contextmanager
    def session_guard(self, session_id: str) -> Iterator[None]:
        """
        Hold the reconciliation slot for session_id.

        Does not wait: raises ReconciliationInProgressError if the slot is
        already held. Distinct sessions never contend.
        """
        with self._guard_lock:
            if session_id in self._in_flight:
                raise ReconciliationInProgressError(session_id)
            self._in_flight.add(session_id)
        try:
            yield
        finally:
            with self._guard_lock:
                self._in_flight.discard(session_id)

    def in_flight(self, session_id: str) -> bool:
        with self._guard_lock:
            return session_id in self._in_flight
