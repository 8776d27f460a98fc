"""Most-recently-used emote list, persisted between runs."""

import json
import logging
from pathlib import Path

from ...core.settings import get_data_dir
from ..errors import PersistenceFailure
from ..models import Emote

logger = logging.getLogger(__name__)

MAX_RECENT_EMOTES = 20
RECENT_EMOTES_FILE = "recent_emotes.json"


def _default_path() -> Path:
    return get_data_dir() / RECENT_EMOTES_FILE


class RecencyTracker:
    """Bounded MRU list of emotes, deduplicated by id, newest first.

    Storage problems never reach the caller: the first failure is logged,
    persistence is switched off, and the list keeps working in memory.
    """

    def __init__(self, path: Path | None = None, capacity: int = MAX_RECENT_EMOTES):
        self._path = path
        self._capacity = capacity
        self._persist = True
        self._emotes: list[Emote] = []
        self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def is_persistent(self) -> bool:
        return self._persist

    def add(self, emote: Emote) -> None:
        """Move (or insert) an emote to the front of the list."""
        emotes = [e for e in self._emotes if e.id != emote.id]
        emotes.insert(0, emote)
        self._emotes = emotes[: self._capacity]
        self._save()

    def get(self) -> list[Emote]:
        return list(self._emotes)

    def clear(self) -> None:
        self._emotes = []
        self._save()

    def __len__(self) -> int:
        return len(self._emotes)

    def _storage_path(self) -> Path:
        if self._path is None:
            self._path = _default_path()
        return self._path

    def _load(self) -> None:
        try:
            self._emotes = self._read()[: self._capacity]
        except PersistenceFailure as e:
            self._disable(e)
            self._emotes = []

    def _read(self) -> list[Emote]:
        try:
            path = self._storage_path()
            if not path.exists():
                return []
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceFailure(f"Failed to read recent emotes: {e}") from e

        if not isinstance(data, list):
            raise PersistenceFailure("Recent emotes file is not a list")

        emotes: list[Emote] = []
        seen: set[str] = set()
        for record in data:
            if not isinstance(record, dict):
                continue
            try:
                emote = Emote.from_dict(record)
            except ValueError:
                continue
            if emote.id in seen:
                continue
            seen.add(emote.id)
            emotes.append(emote)
        return emotes

    def _save(self) -> None:
        if not self._persist:
            return
        try:
            path = self._storage_path()
            path.write_text(
                json.dumps([e.to_dict() for e in self._emotes], indent=1), encoding="utf-8"
            )
        except OSError as e:
            self._disable(PersistenceFailure(f"Failed to save recent emotes: {e}"))

    def _disable(self, error: PersistenceFailure) -> None:
        if self._persist:
            logger.warning(f"{error}; recent emotes will not be saved this session")
        self._persist = False
