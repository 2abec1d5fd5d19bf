import struct

from ole2math.extractors import equation_locator
from ole2math.extractors.data_types import (
    BlobStrategy,
    NamedStream,
    StorageContainer,
)
from ole2math.extractors.equation_locator import (
    after_signature,
    extract_candidate,
    locate,
    looks_like_mtef,
    strip_ole_header,
    unwrap_paste_envelope,
)

MTEF = b"\x03\x01\x01\x03\x00\x0a\x01\x02x\x00"


def _container(**streams: bytes) -> StorageContainer:
    return StorageContainer(
        streams=tuple(
            NamedStream(name=name, content=content, path=name)
            for name, content in streams.items()
        )
    )


def _ole_header(payload: bytes) -> bytes:
    # 28-byte equation OLE header: length, version, format, size, reserved
    header = struct.pack("<HIHI", 28, 0x00020000, 0xC1C6, len(payload))
    return header.ljust(28, b"\x00") + payload


def _envelope(payload: bytes) -> bytes:
    return (
        b"Equation\x00C:\\eq.mtef\x00C:\\tmp\\eq.mtef\x00"
        + struct.pack("<I", len(payload))
        + payload
    )


def test_heuristic_bounds() -> None:
    assert looks_like_mtef(b"\x02\x00")
    assert looks_like_mtef(b"\x08\x07")
    assert not looks_like_mtef(b"\x01\x00")
    assert not looks_like_mtef(b"\x09\x00")
    assert not looks_like_mtef(b"\x03\x08")
    assert not looks_like_mtef(b"\x03")
    assert not looks_like_mtef(b"")


def test_strip_ole_header() -> None:
    assert strip_ole_header(_ole_header(MTEF)) == MTEF
    assert strip_ole_header(b"\x1c\x00" + b"\xff" * 40) is None
    assert strip_ole_header(b"\xff\xff\x03\x01") is None


def test_signature_scan_returns_bytes_after_signature() -> None:
    data = b"junk" + b"MTEF" + MTEF
    assert after_signature(data) == MTEF
    # first occurrence does not validate, second one does
    data = b"MTEF\xff\xff" + b"MTEF" + MTEF
    assert after_signature(data) == MTEF
    assert after_signature(b"nothing here") is None


def test_extract_candidate_prefers_direct_then_header_then_signature() -> None:
    assert extract_candidate(MTEF).strategy is BlobStrategy.DIRECT

    stripped = extract_candidate(_ole_header(MTEF))
    assert stripped.strategy is BlobStrategy.HEADER_STRIPPED
    assert stripped.data == MTEF

    scanned = extract_candidate(b"\xff\xff\xffMTEF" + MTEF)
    assert scanned.strategy is BlobStrategy.SIGNATURE_SCAN
    assert scanned.data == MTEF

    assert extract_candidate(b"\xff" * 64) is None
    assert extract_candidate(b"") is None


def test_unwrap_paste_envelope() -> None:
    assert unwrap_paste_envelope(_envelope(MTEF)) == MTEF
    # fewer than three strings
    assert unwrap_paste_envelope(b"a\x00b\x00") is None
    # declared length beyond the data
    truncated = b"a\x00b\x00c\x00" + struct.pack("<I", 100) + MTEF
    assert unwrap_paste_envelope(truncated) is None


def test_named_stream_wins_over_other_streams() -> None:
    other = b"\x05\x00" + b"z" * 10
    container = _container(**{"\x01CompObj": other, "Equation Native": _ole_header(MTEF)})

    blob = locate(container, b"")

    assert blob.data == MTEF
    assert blob.strategy is BlobStrategy.HEADER_STRIPPED
    assert blob.source == "Equation Native"


def test_exact_name_beats_looser_patterns() -> None:
    container = _container(
        **{"MTEF Data": b"\x04\x00first", "Equation Native": MTEF}
    )

    blob = locate(container, b"")

    assert blob.data == MTEF
    assert blob.source == "Equation Native"


def test_unvalidated_named_stream_is_passed_on_raw() -> None:
    content = b"\xff\xfe not an equation"
    container = _container(**{"Equation Native": content})

    blob = locate(container, b"")

    assert blob.strategy is BlobStrategy.RAW_STREAM
    assert blob.data == content
    assert not blob.validated


def test_paste_envelope() -> None:
    container = _container(**{"\x01Ole10Native": _envelope(MTEF)})

    blob = locate(container, b"")

    assert blob.strategy is BlobStrategy.ENVELOPE
    assert blob.data == MTEF
    assert blob.validated


def test_invalid_envelope_payload_is_not_returned() -> None:
    container = _container(**{"\x01Ole10Native": _envelope(b"\xff\xff\xff")})

    assert equation_locator.from_paste_envelope(container, b"") is None
    assert locate(container, b"") is None


def test_any_stream_is_searched_when_names_do_not_match() -> None:
    container = _container(**{"Contents": b"\x00\x00", "Data": b"xxMTEF" + MTEF})

    blob = locate(container, b"")

    assert blob.strategy is BlobStrategy.SIGNATURE_SCAN
    assert blob.source == "Data"
    assert blob.data == MTEF


def test_raw_bytes_fallback_on_empty_container() -> None:
    blob = locate(StorageContainer(), b"\xffMTEF" + MTEF)

    assert blob.data == MTEF
    assert blob.source == ""


def test_nothing_found() -> None:
    container = _container(Contents=b"\xff" * 32)

    assert locate(container, b"\xff" * 32) is None


def test_strategy_order() -> None:
    labels = [label for label, _ in equation_locator.STRATEGIES]
    assert labels == ["named-stream", "paste-envelope", "any-stream", "raw-bytes"]
