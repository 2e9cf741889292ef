"""Event-frame stream parser utility."""

import codecs
import json
from typing import Optional, List, Dict, Any

from .logger import get_app_logger


DEFAULT_PREFIX = "data:"
END_OF_STREAM_SENTINEL = "[DONE]"


class EventFrameParser:
    """Parser for newline-delimited ``prefix: {json}`` frames with incremental reading support.

    Chunks may split a frame (or a multi-byte character) anywhere. The
    trailing partial line is buffered until the next chunk completes it.
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        """
        Initialize the frame parser.

        Args:
            prefix: Line prefix that marks a data frame
        """
        self.prefix = prefix
        self.pending = ""
        self.skipped_frames = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.logger = get_app_logger()

    def feed(self, chunk: bytes) -> List[Dict[str, Any]]:
        """
        Feed one raw chunk and return the frames it completed.

        Args:
            chunk: Raw bytes read from the stream

        Returns:
            List of parsed JSON objects, in arrival order
        """
        self.pending += self._decoder.decode(chunk)

        lines = self.pending.split("\n")
        # The last element is either empty or an incomplete line
        self.pending = lines.pop()

        frames = []
        for line in lines:
            data = self.parse_line(line)
            if data is not None:
                frames.append(data)

        return frames

    def parse_line(self, line: str) -> Optional[Dict[str, Any]]:
        """
        Parse a single complete line.

        Args:
            line: One line without its newline

        Returns:
            Parsed JSON object, or None for blank, unprefixed, sentinel or malformed lines
        """
        line = line.strip()
        if not line or not line.startswith(self.prefix):
            return None

        payload = line[len(self.prefix):].strip()
        if not payload or payload == END_OF_STREAM_SENTINEL:
            return None

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            # Log error but continue processing
            self.skipped_frames += 1
            self.logger.warning(f"Failed to parse stream frame: {e}; line={line[:200]!r}")
            return None

        if not isinstance(data, dict):
            self.skipped_frames += 1
            self.logger.warning(f"Ignoring non-object stream frame: {line[:200]!r}")
            return None

        return data

    def discard_pending(self) -> str:
        """Drop the trailing partial line at end of stream and return it."""
        remainder = self.pending + self._decoder.decode(b"", final=True)
        self.pending = ""
        if remainder.strip():
            self.logger.debug(f"Discarding trailing partial frame: {remainder[:200]!r}")
        return remainder

