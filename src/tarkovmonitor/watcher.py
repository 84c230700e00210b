"""Tarkov log watcher using watchdog.

GameWatcher follows the game process, picks the newest session folder in
the game's Logs directory, and keeps one LogMonitor per log role tailing
the current file. Everything that can race (the presence poll, file
creation events, appended text from every monitor) is funnelled through
one queue and handled on a single worker thread, which owns the raid
state machine and publishes events to subscribers in order.
"""

import codecs
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Union

import psutil
from watchdog.events import FileCreatedEvent, FileModifiedEvent, FileSystemEventHandler
from watchdog.observers import Observer

from tarkovmonitor.events import (
    DebugMessage,
    EventType,
    ExceptionOccurred,
    GameEvent,
    GameStarted,
    LogType,
    NewLogData,
)
from tarkovmonitor.log_utils import (
    find_game_process,
    log_type_for_path,
    resolve_log_directory as resolve_game_log_directory,
    select_latest_session_dir,
)
from tarkovmonitor.parser import LogParser, LogRecord
from tarkovmonitor.raidstate import RaidInfo, RaidStateMachine
from tarkovmonitor.settings import Settings, get_settings

logger = logging.getLogger(__name__)

EventHandler = Callable[[EventType], None]


class LogMonitor:
    """Tails one log file, delivering appended text via callback.

    Tracks a byte position and decodes incrementally, so a multi-byte
    character split across two writes is delivered whole. Once stop()
    returns, the callback is never invoked again.
    """

    def __init__(
        self,
        path: Union[str, Path],
        log_type: LogType,
        callback: Callable[["LogMonitor", str], None],
    ) -> None:
        """Initialize the monitor.

        Args:
            path: Log file to tail.
            log_type: Role of the file within the session folder.
            callback: Called with (monitor, text) for each appended chunk.
        """
        self.path = Path(path).resolve()
        self.log_type = log_type
        self.callback = callback
        self.file_position: int = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._lock = threading.Lock()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self, from_beginning: bool = True) -> None:
        """Start delivering content.

        Args:
            from_beginning: Read the existing file content first. If False,
                only text appended from now on is delivered.
        """
        with self._lock:
            self.file_position = 0
            if not from_beginning and self.path.exists():
                try:
                    self.file_position = self.path.stat().st_size
                except OSError as e:
                    logger.warning(f"Could not get file size: {e}")
            self._running = True
        logger.info(f"Started {self.log_type.value} monitor at position {self.file_position}: {self.path}")
        self.poll()

    def stop(self) -> None:
        """Stop delivering content, waiting out a read in progress."""
        with self._lock:
            if not self._running:
                return
            self._running = False
        logger.info(f"Stopped {self.log_type.value} monitor: {self.path}")

    def poll(self) -> None:
        """Read anything appended since the last read.

        Safe to call from any thread and after stop().
        """
        with self._lock:
            if not self._running:
                return
            self._read_new_content()

    def _read_new_content(self) -> None:
        try:
            with open(self.path, 'rb') as f:
                f.seek(0, 2)
                file_size = f.tell()

                if file_size < self.file_position:
                    # File was truncated, reset to beginning
                    logger.info(f"File truncated (size {file_size} < position {self.file_position}), resetting")
                    self.file_position = 0
                    self._decoder.reset()

                f.seek(self.file_position)
                data = f.read()
        except FileNotFoundError:
            logger.debug(f"Log file not found: {self.path}")
            return
        except PermissionError as e:
            # Retried on the next event or poll
            logger.debug(f"Permission error reading log: {e}")
            return
        except OSError as e:
            logger.warning(f"Error reading log file: {e}")
            return

        if not data:
            return

        self.file_position += len(data)
        text = self._decoder.decode(data)
        logger.debug(f"Read {len(data)} bytes from {self.path.name}, new position: {self.file_position}")
        if text:
            self.callback(self, text)


class _LogsDirectoryHandler(FileSystemEventHandler):
    """Routes watchdog events under the Logs directory to the GameWatcher."""

    def __init__(self, watcher: "GameWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileCreatedEvent) -> None:
        if event.is_directory:
            return
        if log_type_for_path(event.src_path) is not None:
            self._watcher.on_file_created(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if event.is_directory:
            return
        self._watcher.poll_path(event.src_path)


@dataclass(frozen=True)
class _Poll:
    pass


@dataclass(frozen=True)
class _FileCreated:
    path: str


@dataclass(frozen=True)
class _Append:
    monitor: LogMonitor
    text: str


_STOP = object()


class GameWatcher:
    """Follows the game process and turns its logs into domain events.

    Example:
        watcher = GameWatcher(on_event=print)
        with watcher:
            time.sleep(60)
    """

    def __init__(
        self,
        on_event: Optional[EventHandler] = None,
        settings: Optional[Settings] = None,
        find_process: Optional[Callable[[], Any]] = None,
        resolve_log_directory: Optional[Callable[[Any], Union[str, Path]]] = None,
        poll_interval: Optional[float] = None,
        flush_interval: Optional[float] = None,
        backfill: Optional[bool] = None,
        log_types: Optional[list[Union[str, LogType]]] = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            on_event: Subscriber receiving every event.
            settings: Settings to read defaults from. Defaults to the global ones.
            find_process: Returns a process handle (anything with
                is_running()) or None. Defaults to a psutil scan for the
                configured process names.
            resolve_log_directory: Maps a process handle to its Logs
                directory. Defaults to the ``logs_path`` setting, or the
                Logs folder next to the executable.
            poll_interval: Seconds between process checks.
            flush_interval: Idle seconds before held-back records are released.
            backfill: Read the latest session's files from the start on attach.
            log_types: Log roles to monitor.
        """
        settings = settings or get_settings()

        self.poll_interval = float(poll_interval if poll_interval is not None else settings.get("poll_interval"))
        self.flush_interval = float(flush_interval if flush_interval is not None else settings.get("flush_interval"))
        self.backfill = bool(backfill if backfill is not None else settings.get("backfill"))
        self.log_types = frozenset(
            LogType(t) for t in (log_types if log_types is not None else settings.get("log_types"))
        )

        if find_process is None:
            process_names = tuple(settings.get("process_names"))
            find_process = lambda: find_game_process(process_names)
        self._find_process = find_process

        if resolve_log_directory is None:
            logs_path = settings.get("logs_path")
            if logs_path:
                resolve_log_directory = lambda process: Path(logs_path)
            else:
                resolve_log_directory = resolve_game_log_directory
        self._resolve_log_directory = resolve_log_directory

        self._state = RaidStateMachine()
        self._queue: queue.Queue = queue.Queue()
        self._subscribers: list[tuple[Optional[type], EventHandler]] = []
        if on_event is not None:
            self.subscribe(on_event)

        # Monitors are replaced on the worker thread; the lock covers
        # lookups from watchdog's thread.
        self._monitors: dict[LogType, LogMonitor] = {}
        self._monitors_lock = threading.Lock()
        self._parsers: dict[LogMonitor, LogParser] = {}

        self._process: Any = None
        self._logs_path: Optional[Path] = None

        self._observer: Optional[Observer] = None
        self._watch = None
        self._handler = _LogsDirectoryHandler(self)

        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._poller: Optional[threading.Thread] = None

    @property
    def monitors(self) -> dict[LogType, LogMonitor]:
        """Active monitors by role (a copy)."""
        with self._monitors_lock:
            return dict(self._monitors)

    @property
    def raid_info(self) -> RaidInfo:
        return self._state.raid_info

    @property
    def attached(self) -> bool:
        return self._process is not None

    def subscribe(self, handler: EventHandler, event_type: Optional[type] = None) -> None:
        """Register a subscriber.

        Args:
            handler: Called with each event, on the worker thread.
            event_type: Only deliver events of this class (or subclasses).
        """
        self._subscribers.append((event_type, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscribers = [(t, h) for t, h in self._subscribers if h != handler]

    # -- Inputs. Safe to call from any thread. --

    def request_poll(self) -> None:
        """Queue a process presence check (also polls active monitors)."""
        self._queue.put(_Poll())

    def on_file_created(self, path: Union[str, Path]) -> None:
        """Queue a file creation notice from the Logs directory."""
        self._queue.put(_FileCreated(str(path)))

    def on_append(self, monitor: LogMonitor, text: str) -> None:
        """Queue text appended to a monitored file."""
        self._queue.put(_Append(monitor, text))

    def poll_path(self, path: Union[str, Path]) -> None:
        """Read new content if path is a monitored file."""
        resolved = Path(path).resolve()
        with self._monitors_lock:
            monitor = next((m for m in self._monitors.values() if m.path == resolved), None)
        if monitor is not None:
            monitor.poll()

    # -- Lifecycle --

    def start(self) -> None:
        """Start the worker, the presence poll, and the filesystem observer."""
        if self._worker is not None:
            logger.warning("Watcher already started")
            return

        self._stop_event.clear()
        self._observer = Observer()
        self._observer.start()

        self._worker = threading.Thread(target=self._run, name="tarkov-watcher", daemon=True)
        self._worker.start()
        self._poller = threading.Thread(target=self._poll_loop, name="tarkov-poll", daemon=True)
        self._poller.start()

        self.request_poll()
        logger.info(f"GameWatcher started (poll every {self.poll_interval:.0f}s)")

    def stop(self) -> None:
        """Stop all threads and monitors."""
        if self._worker is None:
            logger.debug("Watcher not running")
            return

        self._stop_event.set()
        self._queue.put(_STOP)
        self._worker.join(timeout=5.0)
        if self._poller is not None:
            self._poller.join(timeout=5.0)
        self._worker = None
        self._poller = None

        self._detach()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None

        logger.info("GameWatcher stopped")

    def drain(self, flush: bool = True) -> None:
        """Handle every queued item on the calling thread.

        For use when the watcher is not started (tests, replays).

        Args:
            flush: Also release messages held back waiting for a payload.
        """
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is not _STOP:
                self._dispatch(item)
        if flush:
            self._flush_parsers()

    def __enter__(self) -> "GameWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # -- Worker thread --

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self.request_poll()

    def _run(self) -> None:
        while True:
            try:
                item = self._queue.get(timeout=self.flush_interval)
            except queue.Empty:
                self._flush_parsers()
                continue
            if item is _STOP:
                break
            self._dispatch(item)

    def _dispatch(self, item: Any) -> None:
        try:
            if isinstance(item, _Append):
                self._handle_append(item.monitor, item.text)
            elif isinstance(item, _FileCreated):
                self._handle_file_created(item.path)
            elif isinstance(item, _Poll):
                self._update_process()
                for monitor in self.monitors.values():
                    monitor.poll()
        except Exception as e:
            logger.exception(f"Error handling {type(item).__name__}")
            self._publish(ExceptionOccurred(e))

    def _handle_append(self, monitor: LogMonitor, text: str) -> None:
        if self._monitors.get(monitor.log_type) is not monitor:
            logger.debug(f"Dropping {len(text)} chars from superseded monitor: {monitor.path.name}")
            return

        self._publish(NewLogData(log_type=monitor.log_type, data=text))
        parser = self._parsers[monitor]
        for record in parser.feed(text):
            self._handle_record(record)

    def _handle_record(self, record: LogRecord) -> None:
        for event in self._state.process_record(record):
            self._publish(event)

    def _flush_parsers(self) -> None:
        for parser in list(self._parsers.values()):
            for record in parser.flush():
                self._handle_record(record)

    def _handle_file_created(self, path: str) -> None:
        if self._process is None:
            logger.debug(f"Ignoring new log while detached: {path}")
            return
        log_type = log_type_for_path(path)
        if log_type not in self.log_types:
            return
        # A new file for a role supersedes the current one (log rotation)
        self._start_monitor(Path(path), from_beginning=True)

    def _update_process(self) -> None:
        if self._process is not None:
            if self._process.is_running():
                return
            logger.info("Game process exited")
            self._publish(DebugMessage("Game process exited"))
            self._detach()

        self._state.reset()
        try:
            process = self._find_process()
            if process is None:
                logger.debug("Game not running")
                return
            self._attach(process)
        except (OSError, psutil.Error) as e:
            # Retried on the next poll
            logger.warning(f"Could not attach to game: {e}")
            self._publish(ExceptionOccurred(e))
            self._detach()

    def _attach(self, process: Any) -> None:
        logs_path = Path(self._resolve_log_directory(process))
        session_dir = select_latest_session_dir(logs_path)

        self._process = process
        self._watch_logs_directory(logs_path)
        logger.info(f"Attached to game, logs at {logs_path}")
        self._publish(GameStarted())

        if session_dir is None:
            logger.info("No session folder yet, waiting for new logs")
            return

        latest: dict[LogType, Path] = {}
        for path in sorted(session_dir.iterdir()):
            log_type = log_type_for_path(path.name)
            if log_type in self.log_types and path.is_file():
                latest[log_type] = path

        for path in latest.values():
            self._start_monitor(path, from_beginning=self.backfill)

    def _detach(self) -> None:
        with self._monitors_lock:
            monitors = list(self._monitors.values())
            self._monitors.clear()
        for monitor in monitors:
            monitor.stop()
        self._parsers.clear()

        if self._observer is not None and self._watch is not None:
            try:
                self._observer.unschedule(self._watch)
            except KeyError:
                pass
        self._watch = None
        self._logs_path = None
        self._process = None
        self._state.reset()

    def _watch_logs_directory(self, logs_path: Path) -> None:
        if self._observer is None or self._logs_path == logs_path:
            self._logs_path = logs_path
            return
        if self._watch is not None:
            self._observer.unschedule(self._watch)
        self._watch = self._observer.schedule(self._handler, str(logs_path), recursive=True)
        self._logs_path = logs_path
        logger.info(f"Watching for new logs in: {logs_path}")

    def _start_monitor(self, path: Path, from_beginning: bool) -> None:
        log_type = log_type_for_path(path.name)
        if log_type is None:
            return

        resolved = path.resolve()
        old = self._monitors.get(log_type)
        if old is not None:
            if old.path == resolved and old.running:
                logger.debug(f"Already monitoring {resolved}")
                return
            # Stop the old subscription before the new one can deliver
            old.stop()
            self._parsers.pop(old, None)

        monitor = LogMonitor(resolved, log_type, self.on_append)
        with self._monitors_lock:
            self._monitors[log_type] = monitor
        self._parsers[monitor] = LogParser()
        self._publish(DebugMessage(f"Monitoring {log_type.value} log: {resolved}"))
        monitor.start(from_beginning=from_beginning)

    def _publish(self, event: GameEvent) -> None:
        for event_type, handler in list(self._subscribers):
            if event_type is not None and not isinstance(event, event_type):
                continue
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Subscriber error for {event.kind}: {e}")
