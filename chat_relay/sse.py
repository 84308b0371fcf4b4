"""Server-Sent-Events framing used between the proxy and its clients."""

from __future__ import annotations

import codecs
import json
from typing import Any, Dict, List, Optional, Union

from .errors import ParseError
from .logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


def encode_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def parse_record(record: str) -> Dict[str, Any]:
    """Decode one blank-line-terminated SSE record into its JSON object.

    Raises ParseError for records without data or with a non-object payload.
    """
    data_lines: List[str] = []
    for line in record.split("\n"):
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if field != "data":
            continue
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)

    if not data_lines:
        raise ParseError(f"record has no data field: {record!r}")
    data = "\n".join(data_lines)
    if data.strip() == DONE_SENTINEL:
        return {"done": True}
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid JSON in SSE frame: {data!r}") from exc
    if not isinstance(payload, dict):
        raise ParseError(f"SSE frame is not an object: {data!r}")
    return payload


class SSEDecoder:
    """Incremental decoder for ``data: <json>`` frames.

    Network reads may split a frame (or a UTF-8 sequence) anywhere; partial
    input stays buffered until a complete record is available.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: Union[bytes, str]) -> List[Dict[str, Any]]:
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

        events: List[Dict[str, Any]] = []
        while "\n\n" in self._buffer:
            record, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse(record)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[Dict[str, Any]]:
        """Decode whatever is left once the stream has ended."""
        tail = self._decoder.decode(b"", final=True)
        remainder = (self._buffer + tail).replace("\r\n", "\n").strip("\n")
        self._buffer = ""
        if not remainder.strip():
            return []
        event = self._parse(remainder)
        return [event] if event is not None else []

    def _parse(self, record: str) -> Optional[Dict[str, Any]]:
        lines = [line for line in record.split("\n") if line.strip()]
        if all(line.startswith(":") for line in lines):
            # blank or keep-alive comment
            return None
        try:
            return parse_record(record)
        except ParseError as exc:
            self.skipped += 1
            logger.warning("Skipping malformed SSE frame: %s", exc)
            return None
