"""
Key-value access to the JSON data file.

Reads go straight to the file. Every write is a read-modify-write performed under
one asyncio lock, so concurrent handlers never clobber each other's updates.
Callers that need a multi-step critical section (check state, mutate roles,
persist) take a per-key lock from ``DataStore.locks``.
"""
import asyncio
import weakref
from typing import Any, Callable, Dict, Hashable, List, Optional

from utils.config_manager import load_data, save_data
from utils.lifecycle_storage import LifecycleRecord, WorkflowSettings
from utils.logging_setup import get_logger

logger = get_logger(__name__)


class KeyedLocks:
    """One asyncio.Lock per key, released from memory once nobody holds it."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __call__(self, *key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


class DataStore:
    """Hierarchy store, settings store and lifecycle records over one JSON file"""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self.locks = KeyedLocks()
        self._write_lock: Optional[asyncio.Lock] = None

    # ------------------------------------------------------------------ raw

    def read_section(self, section: str) -> Dict[str, Any]:
        return load_data(self.path)[section]

    async def update(self, section: str, key: Any, mutate: Callable[[Optional[Any]], Optional[Any]]) -> Optional[Any]:
        """
        Atomically replace ``data[section][key]`` with ``mutate(current)``.

        Returning None from ``mutate`` deletes the key. Returns the new value.
        """
        key = str(key)
        if self._write_lock is None:
            # Created on first write so it belongs to the running event loop
            self._write_lock = asyncio.Lock()
        async with self._write_lock:
            data = load_data(self.path)
            new_value = mutate(data[section].get(key))
            if new_value is None:
                data[section].pop(key, None)
            else:
                data[section][key] = new_value
            if not save_data(data, self.path):
                raise OSError(f"could not persist {section}/{key}")
            return new_value

    # ------------------------------------------------------------ hierarchy

    def get_hierarchy(self, guild_id: int) -> Optional[List[int]]:
        role_ids = self.read_section('hierarchy').get(str(guild_id))
        if not role_ids:
            return None
        return [int(role_id) for role_id in role_ids]

    async def set_hierarchy(self, guild_id: int, role_ids: List[int]) -> None:
        stored = [str(role_id) for role_id in role_ids]
        await self.update('hierarchy', guild_id, lambda _current: stored)
        logger.info("Hierarchy for guild %s replaced: %s", guild_id, stored)

    # ------------------------------------------------------------- settings

    def get_settings(self, guild_id: int) -> Optional[WorkflowSettings]:
        raw = self.read_section('settings').get(str(guild_id))
        if not raw:
            return None
        try:
            return WorkflowSettings.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Stored settings for guild %s are malformed: %s", guild_id, e)
            return None

    async def set_settings(self, guild_id: int, settings: WorkflowSettings) -> None:
        stored = settings.to_dict()
        await self.update('settings', guild_id, lambda _current: stored)
        logger.info("Workflow settings for guild %s replaced: %s", guild_id, stored)

    # ------------------------------------------------------ lifecycle records

    def get_record(self, user_id: int) -> Optional[LifecycleRecord]:
        raw = self.read_section('user_data').get(str(user_id))
        if not raw:
            return None
        return LifecycleRecord.from_dict(raw)

    async def save_record(self, user_id: int, record: LifecycleRecord) -> None:
        stored = record.to_dict()
        await self.update('user_data', user_id, lambda _current: stored)

    async def delete_record(self, user_id: int) -> bool:
        """Delete a record; False when there was nothing to delete."""
        existed = False

        def _drop(current):
            nonlocal existed
            existed = current is not None
            return None

        await self.update('user_data', user_id, _drop)
        return existed


data_store = DataStore()
