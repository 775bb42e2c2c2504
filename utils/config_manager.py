"""
JSON data file manager with backup and recovery.

The whole bot state lives in one file:
    hierarchy  - guild id -> ordered list of role ids (lowest rank first)
    settings   - guild id -> break/resign workflow settings
    user_data  - user id  -> lifecycle record of a resigned member
"""
import copy
import datetime
import json
import os
import shutil
from typing import Any, Dict, List, Optional

from utils.logging_setup import get_logger

logger = get_logger(__name__)

DATA_FILE = os.getenv('BOT_DATA_FILE', 'data/data.json')
BACKUP_DIR = os.getenv('BOT_BACKUP_DIR') or os.path.join(os.path.dirname(DATA_FILE) or '.', 'backups')
BACKUP_KEEP_COUNT = 10

SECTIONS = ('hierarchy', 'settings', 'user_data')

default_data = {section: {} for section in SECTIONS}


def _resolve_path(path: Optional[str]) -> str:
    return path or DATA_FILE


def _backup_dir(path: Optional[str]) -> str:
    path = _resolve_path(path)
    if path == DATA_FILE:
        return BACKUP_DIR
    return os.path.join(os.path.dirname(path) or '.', 'backups')


def empty_data() -> Dict[str, Dict[str, Any]]:
    return copy.deepcopy(default_data)


def create_backup(reason: str = "auto", path: Optional[str] = None) -> str:
    """Copy the data file into the backup directory. Returns the backup path or ''."""
    path = _resolve_path(path)
    backup_dir = _backup_dir(path)
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = os.path.join(backup_dir, f"data_backup_{timestamp}_{reason}.json")

    if not os.path.exists(path):
        logger.info("No data file to back up")
        return ""

    try:
        os.makedirs(backup_dir, exist_ok=True)
        shutil.copy2(path, backup_path)
        logger.debug("Backup created: %s", backup_path)
        cleanup_old_backups(path=path)
        return backup_path
    except OSError as e:
        logger.error("Failed to create backup: %s", e)
        return ""


def list_backups(path: Optional[str] = None) -> List[str]:
    """Backup file names, newest first."""
    backup_dir = _backup_dir(path)
    if not os.path.exists(backup_dir):
        return []

    backups = [f for f in os.listdir(backup_dir) if f.startswith('data_backup_') and f.endswith('.json')]
    # Names embed a sortable timestamp; mtime alone ties within the same second
    backups.sort(reverse=True)
    return backups


def cleanup_old_backups(keep_count: int = BACKUP_KEEP_COUNT, path: Optional[str] = None) -> None:
    """Keep only the newest ``keep_count`` backups."""
    backup_dir = _backup_dir(path)
    for old_backup in list_backups(path)[keep_count:]:
        try:
            os.remove(os.path.join(backup_dir, old_backup))
            logger.debug("Removed old backup: %s", old_backup)
        except OSError as e:
            logger.error("Failed to remove old backup %s: %s", old_backup, e)


def _normalize(data: Any) -> Dict[str, Dict[str, Any]]:
    """Make sure every section exists and is a mapping."""
    if not isinstance(data, dict):
        raise ValueError("data file root must be an object")
    for section in SECTIONS:
        if not isinstance(data.get(section), dict):
            data[section] = {}
    return data


def save_data(data: Dict[str, Any], path: Optional[str] = None) -> bool:
    """Atomically write the data file: temp file, validate, move into place."""
    path = _resolve_path(path)
    temp_path = f"{path}.tmp"

    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        with open(temp_path, 'r', encoding='utf-8') as f:
            json.load(f)

        if os.path.exists(path):
            create_backup("replaced", path=path)

        shutil.move(temp_path, path)
        logger.debug("Data file saved: %s", path)
        return True

    except (OSError, TypeError, ValueError) as e:
        logger.error("Failed to save data file %s: %s", path, e)
        if os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                logger.warning("Could not remove temporary file %s", temp_path)
        return False


def load_data(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Load the data file, creating it on first use and recovering it when corrupted."""
    path = _resolve_path(path)

    if not os.path.exists(path):
        logger.info("Data file %s doesn't exist, creating empty structure", path)
        data = empty_data()
        save_data(data, path)
        return data

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return _normalize(json.load(f))
    except (json.JSONDecodeError, ValueError) as e:
        logger.error("Data file %s is corrupted: %s", path, e)
        return attempt_recovery(path)


def attempt_recovery(path: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
    """Restore the newest readable backup, or fall back to an empty structure."""
    path = _resolve_path(path)
    backup_dir = _backup_dir(path)
    logger.warning("Attempting data file recovery...")

    for backup_file in list_backups(path):
        backup_path = os.path.join(backup_dir, backup_file)
        try:
            with open(backup_path, 'r', encoding='utf-8') as f:
                recovered = _normalize(json.load(f))
        except (OSError, json.JSONDecodeError, ValueError) as e:
            logger.warning("Backup %s is also unreadable: %s", backup_file, e)
            continue

        shutil.copy2(backup_path, path)
        logger.info("Recovered data file from backup: %s", backup_file)
        return recovered

    logger.warning("No readable backups, starting with empty data")
    data = empty_data()
    save_data(data, path)
    return data


def get_data_status(path: Optional[str] = None) -> Dict[str, Any]:
    """Diagnostics for start-up logging."""
    path = _resolve_path(path)
    status = {
        'data_exists': os.path.exists(path),
        'data_size': 0,
        'data_valid': False,
        'backup_count': 0,
        'last_backup': None,
    }

    if status['data_exists']:
        status['data_size'] = os.path.getsize(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                _normalize(json.load(f))
            status['data_valid'] = True
        except (OSError, json.JSONDecodeError, ValueError) as e:
            logger.error("Data file check failed: %s", e)

    backups = list_backups(path)
    status['backup_count'] = len(backups)
    if backups:
        latest = os.path.join(_backup_dir(path), backups[0])
        status['last_backup'] = datetime.datetime.fromtimestamp(os.path.getmtime(latest)).isoformat()

    return status


def is_administrator(user) -> bool:
    """A principal is an administrator when it holds the Administrator permission."""
    permissions = getattr(user, 'guild_permissions', None)
    return bool(permissions and permissions.administrator)
