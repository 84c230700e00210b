"""Locating the running game and its log files."""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

import psutil

from tarkovmonitor.events import LogType

logger = logging.getLogger(__name__)

DEFAULT_PROCESS_NAMES = ("EscapeFromTarkov.exe", "EscapeFromTarkov")

# Session folders look like log_2024.05.05_20-11-02_0.14.6.0.29862
SESSION_DIR_PATTERN = re.compile(r'log_(?P<timestamp>\d+\.\d+\.\d+_\d+-\d+-\d+)')
SESSION_TIMESTAMP_FORMAT = "%Y.%m.%d_%H-%M-%S"

# "... application.log", "... notifications_001.log", ...
LOG_FILE_PATTERN = re.compile(r'(?P<role>application|notifications|traces)(?:_\d+)?\.log$')


def find_game_process(names: Iterable[str] = DEFAULT_PROCESS_NAMES) -> Optional[psutil.Process]:
    """Return the first running game process, or None."""
    wanted = {name.lower() for name in names}
    for proc in psutil.process_iter(["name"]):
        name = (proc.info.get("name") or "").lower()
        if name in wanted:
            logger.debug(f"Found game process {proc.pid} ({name})")
            return proc
    return None


def resolve_log_directory(process: psutil.Process) -> Path:
    """Logs live in a ``Logs`` folder next to the game executable.

    Raises:
        psutil.Error: The process vanished or its executable is not readable.
    """
    return Path(process.exe()).parent / "Logs"


def log_type_for_path(path: str) -> Optional[LogType]:
    """Which log role a file name belongs to, if any."""
    match = LOG_FILE_PATTERN.search(Path(path).name)
    if not match:
        return None
    return LogType(match.group("role"))


def parse_session_timestamp(name: str) -> Optional[datetime]:
    match = SESSION_DIR_PATTERN.search(name)
    if not match:
        return None
    try:
        return datetime.strptime(match.group("timestamp"), SESSION_TIMESTAMP_FORMAT)
    except ValueError:
        return None


def select_latest_session_dir(logs_path: Path) -> Optional[Path]:
    """Pick the newest session folder under the game's Logs directory.

    Folders are ordered by the timestamp embedded in their name; folders
    without a readable timestamp sort before all others. Ties fall back to
    the folder name, so the choice never depends on listing order.

    Raises:
        OSError: logs_path does not exist or cannot be listed.
    """
    folders = [p for p in Path(logs_path).iterdir() if p.is_dir()]
    if not folders:
        return None

    def sort_key(folder: Path) -> tuple[datetime, str]:
        return parse_session_timestamp(folder.name) or datetime.min, folder.name

    latest = max(folders, key=sort_key)
    logger.info(f"Latest log folder: {latest}")
    return latest
