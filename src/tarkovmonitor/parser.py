"""Tarkov log parser that splits appended text into log records.

Tarkov writes one timestamped line per message. Some messages are
followed by a JSON document that starts with ``{`` and ends with ``}``,
both at column 0:

    2024-05-05 20:14:11.104|0.14.6.0.29862|Info|push-notifications|Got notification | UserMatchOver
    {
      "type": "userMatchOver",
      "location": "Woods",
      "shortId": "AB12CD"
    }

The parser works line by line and keeps whatever it cannot decide on yet
(an incomplete line, an open JSON block, or a message that may still get
a payload) buffered for the next chunk, so the records it yields do not
depend on where the chunks were cut.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)

# Message lines start with an ISO-like date
MESSAGE_LINE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}')


@dataclass(frozen=True)
class LogRecord:
    """One message line plus its optional JSON payload."""
    message: str
    payload: dict = field(default_factory=dict)


class LogParser:
    """Incremental splitter for one log file.

    Use one parser per file; interleaving chunks of different files in a
    single parser would merge their partial lines.
    """

    def __init__(
        self,
        on_record: Optional[Callable[[LogRecord], None]] = None
    ) -> None:
        """Initialize the parser.

        Args:
            on_record: Callback used by process_chunk() for each record.
        """
        self._on_record = on_record

        # Unconsumed text and read offset into it
        self._text: str = ""
        self._pos: int = 0

        # Message line waiting to learn whether a payload follows
        self._message: Optional[str] = None

        # JSON accumulation state
        self._buffer: list[str] = []
        self._in_json: bool = False

    @property
    def has_pending(self) -> bool:
        """True if text or a held-back message is still buffered."""
        return bool(self._message is not None or self._in_json or self._text[self._pos:])

    def feed(self, text: str) -> Iterator[LogRecord]:
        """Append a chunk and lazily yield every record it completes.

        The chunk is buffered immediately; records are produced as the
        returned iterator is consumed. Anything left unconsumed stays
        buffered and is picked up by the next call.

        Args:
            text: Raw text appended to the log file.
        """
        if text:
            self._text += text
        return self._drain()

    def process_chunk(self, text: str) -> None:
        """Process a chunk of log text, passing records to on_record."""
        for record in self.feed(text):
            self._emit(record)

    def flush(self) -> list[LogRecord]:
        """Release a message that is still waiting for a possible payload.

        Called when the file has gone quiet. Nothing is released while a
        JSON block is open or an incomplete trailing line is buffered,
        since that line may be the start of the message's payload.
        """
        if self._message is None or self._in_json or self._text[self._pos:]:
            return []
        record = LogRecord(self._message)
        self._message = None
        return [record]

    def reset(self) -> None:
        """Drop all buffered state."""
        self._text = ""
        self._pos = 0
        self._message = None
        self._reset_json_state()

    def _drain(self) -> Iterator[LogRecord]:
        while True:
            newline = self._text.find('\n', self._pos)
            if newline == -1:
                # Keep only the incomplete tail
                self._text = self._text[self._pos:]
                self._pos = 0
                return
            line = self._text[self._pos:newline]
            self._pos = newline + 1
            yield from self._process_line(line.rstrip('\r'))

    def _process_line(self, line: str) -> list[LogRecord]:
        """Process a single complete line (without newline)."""
        records: list[LogRecord] = []

        if self._in_json:
            if MESSAGE_LINE_PATTERN.match(line):
                # A new message inside a payload means the block never closed
                logger.warning(f"Unterminated payload after: {self._message[:200]}")
                records.append(LogRecord(self._message))
                self._reset_json_state()
                self._message = line
                return records

            self._buffer.append(line)
            if line.startswith('}'):
                records.append(self._complete_json_block())
            return records

        if MESSAGE_LINE_PATTERN.match(line):
            if self._message is not None:
                records.append(LogRecord(self._message))
            self._message = line
            return records

        if self._message is None:
            if line.startswith('{'):
                logger.debug(f"Skipping payload with no message line: {line[:80]}")
            return records

        if not line.strip():
            # Blank lines may separate a message from its payload
            return records

        if line.startswith('{'):
            self._start_json_block(line)
            if not self._in_json:
                records.append(self._complete_json_block())
            return records

        # Any other line ends the message without a payload
        records.append(LogRecord(self._message))
        self._message = None
        return records

    def _start_json_block(self, line: str) -> None:
        self._in_json = True
        self._buffer = [line]

        # Whole document on one line
        if self._count_brace_delta(line) == 0 and line.rstrip().endswith('}'):
            self._in_json = False

    def _count_brace_delta(self, text: str) -> int:
        """Count net brace depth change in text.

        Note: This does not account for braces inside strings; it is only
        used to spot single-line documents.
        """
        return text.count('{') - text.count('}')

    def _complete_json_block(self) -> LogRecord:
        """Parse the accumulated JSON and pair it with its message."""
        json_text = '\n'.join(self._buffer)
        message = self._message or ""

        try:
            payload = json.loads(json_text)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse payload ({message[:120]}): {e}")
            logger.debug(f"Malformed payload content: {json_text[:500]}...")
            payload = {}

        self._reset_json_state()
        self._message = None
        return LogRecord(message, payload)

    def _reset_json_state(self) -> None:
        """Reset JSON accumulation state."""
        self._buffer = []
        self._in_json = False

    def _emit(self, record: LogRecord) -> None:
        if self._on_record:
            try:
                self._on_record(record)
            except Exception as e:
                logger.error(f"on_record callback error: {e}")
