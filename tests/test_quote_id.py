import pytest

from errors import IdentityCollisionError
from models import Source
from quote_id import (
    QuoteIdRegistry,
    create_generic_id,
    create_kancolle_id,
    create_skyrim_id,
    decode,
    encode,
    from_key,
    kancolle_key,
)


def test_kancolle_layout():
    quote_id = create_kancolle_id(123, 4)
    assert quote_id == (123 << 32) | 4
    assert decode(quote_id) == (Source.Kancolle, {"ship_number": 123, "index": 4})


def test_skyrim_negative_response_number():
    quote_id = create_skyrim_id(0x000A1B2C, -1)
    assert quote_id == (1 << 48) | (0x000A1B2C << 16) | 0xFFFF
    decoded = decode(quote_id)
    assert decoded.source == Source.Skyrim
    assert decoded.fields == {"form_id": 0x000A1B2C, "response_number": -1}


@pytest.mark.parametrize("response", [-32768, -1, 0, 1, 32767])
def test_skyrim_round_trip(response):
    quote_id = create_skyrim_id(0xFFFFFFFF, response)
    source, fields = decode(quote_id)
    assert encode(source, **fields) == quote_id


def test_generic_layout():
    quote_id = create_generic_id(Source.SteinsGate, 42)
    assert quote_id == (11 << 48) | 42
    assert decode(quote_id) == (Source.SteinsGate, {"index": 42})


def test_same_fields_never_collide_across_sources():
    ids = {create_generic_id(source, 7) for source in Source if source not in (Source.Kancolle, Source.Skyrim)}
    ids.add(create_kancolle_id(0, 7))
    ids.add(create_skyrim_id(0, 7))
    assert len(ids) == len(Source)


def test_from_key_matches_helpers():
    assert from_key(Source.Kancolle, kancolle_key(5, 9)) == create_kancolle_id(5, 9)
    assert from_key(Source.Maitetsu, 3) == create_generic_id(Source.Maitetsu, 3)


@pytest.mark.parametrize(
    "call",
    [
        lambda: create_kancolle_id(0x10000, 0),
        lambda: create_kancolle_id(1, -1),
        lambda: create_skyrim_id(1, 0x8000),
        lambda: create_skyrim_id(-1, 0),
        lambda: create_generic_id(Source.Witcher3, 1 << 31),
        lambda: create_generic_id(Source.Kancolle, 1),
        lambda: encode(Source.Witcher3, ship_number=1, index=1),
        lambda: from_key(Source.Witcher3, 1 << 40),
    ],
)
def test_invalid_fields_are_rejected(call):
    with pytest.raises(ValueError):
        call()


def test_decode_rejects_unknown_source():
    with pytest.raises(ValueError):
        decode(0xFFFF << 48)


def test_decode_rejects_reserved_bits():
    with pytest.raises(ValueError):
        decode((int(Source.Witcher3) << 48) | (1 << 32))


def test_decode_rejects_out_of_range():
    with pytest.raises(ValueError):
        decode(-1)
    with pytest.raises(ValueError):
        decode(1 << 64)


def test_registry_accepts_identical_replay():
    registry = QuoteIdRegistry()
    assert registry.register(1, "abc") is True
    assert registry.register(1, "abc") is False
    assert 1 in registry
    assert len(registry) == 1


def test_registry_rejects_different_content():
    registry = QuoteIdRegistry()
    registry.register(1, "abc")
    with pytest.raises(IdentityCollisionError) as e:
        registry.register(1, "def")
    assert e.value.quote_id == 1
