"""Stable 64-bit quote identifiers.

The top 16 bits hold the Source ordinal and the low 48 bits hold a
source-local key whose layout depends on the source:

    generic   bits 32-47 zero, bits 0-31 row index (0..2^31-1)
    Skyrim    bits 16-47 form id, bits 0-15 signed response number
    Kancolle  bits 32-47 ship number, bits 0-31 line index

Ids are written to storage and embedded in links, so the layout must never
change for an existing source.
"""

import threading
from typing import Dict, NamedTuple

from errors import IdentityCollisionError
from models import Source

SOURCE_SHIFT = 48
KEY_MASK = (1 << SOURCE_SHIFT) - 1
MAX_GENERIC_INDEX = (1 << 31) - 1

LAYOUT_GENERIC = "generic"
LAYOUT_FORM = "form"
LAYOUT_ROSTER = "roster"

SOURCE_LAYOUTS = {
    Source.Kancolle: LAYOUT_ROSTER,
    Source.Skyrim: LAYOUT_FORM,
}


class DecodedQuoteId(NamedTuple):
    source: Source
    fields: Dict[str, int]


def get_layout(source: Source) -> str:
    return SOURCE_LAYOUTS.get(source, LAYOUT_GENERIC)


def _check_range(name: str, value: int, low: int, high: int):
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{name} {value} is outside {low}..{high}")


def _source(value) -> Source:
    try:
        return Source(value)
    except ValueError:
        raise ValueError(f"Unknown source tag {value}") from None


def kancolle_key(ship_number: int, index: int) -> int:
    _check_range("ship_number", ship_number, 0, 0xFFFF)
    _check_range("index", index, 0, 0xFFFFFFFF)
    return (ship_number << 32) | index


def skyrim_key(form_id: int, response_number: int) -> int:
    _check_range("form_id", form_id, 0, 0xFFFFFFFF)
    _check_range("response_number", response_number, -0x8000, 0x7FFF)
    return (form_id << 16) | (response_number & 0xFFFF)


def generic_key(index: int) -> int:
    _check_range("index", index, 0, MAX_GENERIC_INDEX)
    return index


def decode_key(source: Source, key: int) -> Dict[str, int]:
    """Split a source-local key into its named fields, rejecting keys with
    reserved bits set."""
    source = _source(source)
    _check_range("key", key, 0, KEY_MASK)
    layout = get_layout(source)
    if layout == LAYOUT_ROSTER:
        return {"ship_number": key >> 32, "index": key & 0xFFFFFFFF}
    if layout == LAYOUT_FORM:
        response = key & 0xFFFF
        if response >= 0x8000:
            response -= 0x10000
        return {"form_id": key >> 16, "response_number": response}
    if key > MAX_GENERIC_INDEX:
        raise ValueError(f"Reserved bits are set in key {key:#x} for {source.name}")
    return {"index": key}


def encode(source: Source, **fields) -> int:
    source = _source(source)
    layout = get_layout(source)
    expected = {
        LAYOUT_ROSTER: {"ship_number", "index"},
        LAYOUT_FORM: {"form_id", "response_number"},
        LAYOUT_GENERIC: {"index"},
    }[layout]
    if set(fields) != expected:
        raise ValueError(
            f"{source.name} ids need fields {sorted(expected)}, got {sorted(fields)}"
        )
    if layout == LAYOUT_ROSTER:
        key = kancolle_key(fields["ship_number"], fields["index"])
    elif layout == LAYOUT_FORM:
        key = skyrim_key(fields["form_id"], fields["response_number"])
    else:
        key = generic_key(fields["index"])
    return (int(source) << SOURCE_SHIFT) | key


def from_key(source: Source, key: int) -> int:
    source = _source(source)
    decode_key(source, key)
    return (int(source) << SOURCE_SHIFT) | key


def decode(quote_id: int) -> DecodedQuoteId:
    _check_range("id", quote_id, 0, (1 << 64) - 1)
    source = _source(quote_id >> SOURCE_SHIFT)
    return DecodedQuoteId(source, decode_key(source, quote_id & KEY_MASK))


def create_kancolle_id(ship_number: int, index: int) -> int:
    return encode(Source.Kancolle, ship_number=ship_number, index=index)


def create_skyrim_id(form_id: int, response_number: int) -> int:
    return encode(Source.Skyrim, form_id=form_id, response_number=response_number)


def create_generic_id(source: Source, index: int) -> int:
    if get_layout(source) != LAYOUT_GENERIC:
        raise ValueError(f"{Source(source).name} does not use generic ids")
    return encode(source, index=index)


class QuoteIdRegistry:
    """Remembers every id handed out during a run together with a fingerprint
    of its content."""

    def __init__(self):
        self._fingerprints: Dict[int, str] = {}
        self._lock = threading.Lock()

    def register(self, quote_id: int, fingerprint: str) -> bool:
        """Returns False for an identical replay, raises on a collision."""
        with self._lock:
            existing = self._fingerprints.get(quote_id)
            if existing is None:
                self._fingerprints[quote_id] = fingerprint
                return True
            if existing != fingerprint:
                raise IdentityCollisionError(quote_id)
            return False

    def __contains__(self, quote_id: int) -> bool:
        return quote_id in self._fingerprints

    def __len__(self) -> int:
        return len(self._fingerprints)
