"""
Streaming JSON Page Reader.

Reads a page file one record at a time. The file is tokenized with
ijson; the tokens of each element of the record array are written back
out as a minimal JSON text which is then parsed on its own, so only one
record is held in memory regardless of the size of the page.

A page is either a JSON array of record objects or an object whose
array-valued members hold the records, such as the envelope returned by
the source service:

    {"users": [{"id": "..."}, ...], "totalRecords": 2}
"""

import json
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import ijson

from jsonstage.common.logging_config import get_stage_logger
from jsonstage.ingest.errors import PageFormatError

logger = get_stage_logger(__name__)

_ESCAPES = {
    '"': '\\"',
    '\\': '\\\\',
    '\b': '\\b',
    '\f': '\\f',
    '\n': '\\n',
    '\r': '\\r',
    '\t': '\\t',
}

_SCALAR_EVENTS = frozenset(("null", "boolean", "integer", "double",
                            "number", "string"))


def encode_json_string(value: str) -> str:
    """
    Escape a string for inclusion between JSON quotes.

    Quote, backslash and the named control characters use their short
    escapes; any other non-printable character is written as \\uXXXX
    (a surrogate pair above the Basic Multilingual Plane).
    """
    if value.isprintable() and '"' not in value and '\\' not in value:
        return value
    out = []
    for c in value:
        escaped = _ESCAPES.get(c)
        if escaped is not None:
            out.append(escaped)
        elif c.isprintable():
            out.append(c)
        else:
            code = ord(c)
            if code > 0xFFFF:
                code -= 0x10000
                out.append("\\u%04X\\u%04X" % (0xD800 + (code >> 10),
                                               0xDC00 + (code & 0x3FF)))
            else:
                out.append("\\u%04X" % code)
    return "".join(out)


def encode_json_scalar(event: str, value: Any) -> str:
    if event == "string":
        return '"' + encode_json_string(value) + '"'
    if event == "null":
        return "null"
    if event == "boolean":
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)


class ParserState(str, Enum):
    OUTSIDE_ARRAY = "outside_array"
    IN_ARRAY = "in_array"
    IN_RECORD = "in_record"


class PageEvent(str, Enum):
    ARRAY_START = "array_start"
    RECORD = "record"
    ARRAY_END = "array_end"


class RecordReconstructor:
    """
    Rebuilds record texts from a stream of ijson basic_parse events.

    The reconstructor keeps its parsing state explicitly: the state of
    the record array, the nesting depth, and for the record being
    rebuilt a text buffer and one "first member" flag per open container.
    """

    def __init__(self):
        self.state = ParserState.OUTSIDE_ARRAY
        self.depth = 0
        self._root_is_object = False
        self._array_depth = 0  # depth of the elements of the record array
        self._buffer: List[str] = []
        self._first: List[bool] = []
        self._after_key = False

    def _separate(self) -> None:
        if self._after_key:
            self._after_key = False
        elif self._first[-1]:
            self._first[-1] = False
        else:
            self._buffer.append(",")

    def feed(self, event: str, value: Any) -> Optional[Tuple[PageEvent, Any]]:
        """
        Consume one parser event.

        Returns:
            (ARRAY_START, None) when a record array opens,
            (RECORD, text) when a record closes,
            (ARRAY_END, None) when a record array closes,
            None otherwise
        """
        if self.state == ParserState.IN_RECORD:
            return self._feed_record(event, value)

        if event in ("start_map", "start_array"):
            opens_records = (
                event == "start_array"
                and self.state == ParserState.OUTSIDE_ARRAY
                and (self.depth == 0
                     or (self.depth == 1 and self._root_is_object))
            )
            if event == "start_map" and self.depth == 0:
                self._root_is_object = True

            if opens_records:
                self.depth += 1
                self._array_depth = self.depth
                self.state = ParserState.IN_ARRAY
                return (PageEvent.ARRAY_START, None)

            if (event == "start_map" and self.state == ParserState.IN_ARRAY
                    and self.depth == self._array_depth):
                self.depth += 1
                self.state = ParserState.IN_RECORD
                self._buffer = ["{"]
                self._first = [True]
                self._after_key = False
                return None

            self.depth += 1
            return None

        if event in ("end_map", "end_array"):
            self.depth -= 1
            if (event == "end_array" and self.state == ParserState.IN_ARRAY
                    and self.depth == self._array_depth - 1):
                self.state = ParserState.OUTSIDE_ARRAY
                return (PageEvent.ARRAY_END, None)
            return None

        # Keys and scalars outside a record are ignored.
        return None

    def _feed_record(self, event: str, value: Any):
        if event in ("start_map", "start_array"):
            self._separate()
            self._buffer.append("{" if event == "start_map" else "[")
            self._first.append(True)
            self.depth += 1
            return None

        if event in ("end_map", "end_array"):
            self._buffer.append("}" if event == "end_map" else "]")
            self._first.pop()
            self.depth -= 1
            if self.depth == self._array_depth:
                text = "".join(self._buffer)
                self._buffer = []
                self.state = ParserState.IN_ARRAY
                return (PageEvent.RECORD, text)
            return None

        if event == "map_key":
            self._separate()
            self._buffer.append('"' + encode_json_string(value) + '":')
            self._after_key = True
            return None

        if event in _SCALAR_EVENTS:
            self._separate()
            self._buffer.append(encode_json_scalar(event, value))
            return None

        raise PageFormatError(f"Unexpected parser event: {event}")


def parse_record(text: str) -> Dict[str, Any]:
    """Parse the rebuilt text of one record."""
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise PageFormatError(f"Unable to parse record: {e}: {text[:200]}") from e


def iter_page_events(path: str) -> Iterator[Tuple[PageEvent, Any]]:
    """
    Stream the record arrays and records of one page file.

    Yields:
        (ARRAY_START, None), (RECORD, dict) for each record,
        (ARRAY_END, None)

    Raises:
        PageFormatError: if the file is missing or not well-formed JSON
    """
    reconstructor = RecordReconstructor()
    try:
        with open(path, "rb") as f:
            for event, value in ijson.basic_parse(f, use_float=True):
                item = reconstructor.feed(event, value)
                if item is None:
                    continue
                kind, payload = item
                if kind == PageEvent.RECORD:
                    logger.trace("New record parsed", record=payload)
                    payload = parse_record(payload)
                yield kind, payload
    except OSError as e:
        raise PageFormatError(f"Unable to read page file {path}: {e}") from e
    except ijson.JSONError as e:
        raise PageFormatError(f"Malformed JSON in {path}: {e}") from e


def iter_page_records(path: str) -> Iterator[Dict[str, Any]]:
    """Yield only the records of a page file."""
    for kind, payload in iter_page_events(path):
        if kind == PageEvent.RECORD:
            yield payload
