"""
Equation Blob Locator
=====================

Finds the legacy equation byte-stream (MTEF, as written by Equation Editor 3.0
and MathType) inside an embedded OLE object.

Producers disagree about where the payload lives, so the locator runs an
ordered list of strategies and keeps the first hit:

    1. named stream   - a stream named like "Equation Native" (most specific
                        pattern first); its content, header-stripped or
                        signature-scanned, or as a last resort handed over raw
    2. paste envelope - the "\\x01Ole10Native" wrapper: three NUL-terminated
                        strings, a little-endian length, then the payload
    3. any stream     - every other stream, validated the same way
    4. raw input      - the whole embedding, for parts that are not compound
                        files at all

MTEF Header Heuristic
---------------------
The first byte of an MTEF stream is the format version and the second the
generating platform. A candidate is accepted when the version lies in 2..8 and
the platform in 0..7. This is an empirical signal gathered from producer
output, not a guarantee from a published format; both ranges are module
constants so they can be tuned against a larger corpus.
"""

import logging
import re
import struct
from typing import Callable, Optional, Tuple

from ole2math.extractors.data_types import (
    BlobStrategy,
    EquationBlob,
    NamedStream,
    StorageContainer,
)

logger = logging.getLogger(__name__)

MTEF_SIGNATURE = b"MTEF"
MTEF_VERSION_RANGE = range(2, 9)
MTEF_PLATFORM_RANGE = range(0, 8)

# Stream names associated with the equation editor, most specific first
EQUATION_STREAM_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"^Equation Native$"),
    re.compile(r"^Equation Native$", re.IGNORECASE),
    re.compile(r"^MathType Equation", re.IGNORECASE),
    re.compile(r"^MTEquation", re.IGNORECASE),
    re.compile(r"MTEF", re.IGNORECASE),
    re.compile(r"Equation", re.IGNORECASE),
)

# Leading control character (\x01) is part of the stored name
PASTE_ENVELOPE_PATTERN = re.compile(r"^[\x00-\x1f]?Ole10Native$", re.IGNORECASE)

Strategy = Callable[[StorageContainer, bytes], Optional[EquationBlob]]


def looks_like_mtef(data: bytes) -> bool:
    """Check the version/platform bytes of a candidate payload."""
    return (
        len(data) >= 2
        and data[0] in MTEF_VERSION_RANGE
        and data[1] in MTEF_PLATFORM_RANGE
    )


def strip_ole_header(data: bytes) -> Optional[bytes]:
    """Return the payload after an equation OLE header, if one is present.

    "Equation Native" streams start with a small header whose first 16-bit
    little-endian word is the header length (28 bytes in practice).
    """
    if len(data) < 2:
        return None
    header_length = struct.unpack_from("<H", data, 0)[0]
    if not 2 <= header_length < len(data):
        return None
    payload = data[header_length:]
    return payload if looks_like_mtef(payload) else None


def after_signature(data: bytes) -> Optional[bytes]:
    """Return the bytes following the first MTEF signature that validate."""
    index = data.find(MTEF_SIGNATURE)
    while index >= 0:
        payload = data[index + len(MTEF_SIGNATURE) :]
        if looks_like_mtef(payload):
            return payload
        index = data.find(MTEF_SIGNATURE, index + 1)
    return None


def extract_candidate(data: bytes, source: str = "") -> Optional[EquationBlob]:
    """Validate ``data`` as-is, after its OLE header, or after the signature."""
    if not data:
        return None
    if looks_like_mtef(data):
        return EquationBlob(data=data, strategy=BlobStrategy.DIRECT, source=source)
    payload = strip_ole_header(data)
    if payload is not None:
        return EquationBlob(
            data=payload, strategy=BlobStrategy.HEADER_STRIPPED, source=source
        )
    payload = after_signature(data)
    if payload is not None:
        return EquationBlob(
            data=payload, strategy=BlobStrategy.SIGNATURE_SCAN, source=source
        )
    return None


def unwrap_paste_envelope(data: bytes) -> Optional[bytes]:
    """Return the payload of a paste envelope, or None if it is malformed.

    Layout: display name, source path and temp path as NUL-terminated strings,
    then a 4-byte little-endian payload length and the payload itself.
    """
    pos = 0
    for _ in range(3):
        end = data.find(b"\x00", pos)
        if end < 0:
            return None
        pos = end + 1
    if pos + 4 > len(data):
        return None
    length = struct.unpack_from("<I", data, pos)[0]
    payload = data[pos + 4 : pos + 4 + length]
    if length == 0 or len(payload) < length:
        return None
    return payload


def _is_equation_stream_name(name: str) -> bool:
    return any(pattern.search(name) for pattern in EQUATION_STREAM_PATTERNS)


#####################
# Search strategies #
#####################


def from_named_stream(container: StorageContainer, raw: bytes) -> Optional[EquationBlob]:
    for pattern in EQUATION_STREAM_PATTERNS:
        for stream in container:
            if not pattern.search(stream.name) or not stream.content:
                continue
            blob = extract_candidate(stream.content, source=stream.path)
            if blob is not None:
                return blob
            logger.debug(
                f"Stream {stream.path!r} matched {pattern.pattern!r} but did not "
                "validate, passing it on unchanged"
            )
            return EquationBlob(
                data=stream.content,
                strategy=BlobStrategy.RAW_STREAM,
                source=stream.path,
            )
    return None


def from_paste_envelope(
    container: StorageContainer, raw: bytes
) -> Optional[EquationBlob]:
    for stream in container:
        if not PASTE_ENVELOPE_PATTERN.match(stream.name):
            continue
        payload = unwrap_paste_envelope(stream.content)
        if payload is None:
            logger.debug(f"Malformed paste envelope in {stream.path!r}")
            continue
        blob = extract_candidate(payload, source=stream.path)
        if blob is not None:
            return EquationBlob(
                data=blob.data, strategy=BlobStrategy.ENVELOPE, source=stream.path
            )
    return None


def from_any_stream(container: StorageContainer, raw: bytes) -> Optional[EquationBlob]:
    for stream in _remaining_streams(container):
        blob = extract_candidate(stream.content, source=stream.path)
        if blob is not None:
            return blob
    return None


def from_raw_bytes(container: StorageContainer, raw: bytes) -> Optional[EquationBlob]:
    return extract_candidate(raw)


def _remaining_streams(container: StorageContainer) -> Tuple[NamedStream, ...]:
    return tuple(
        stream
        for stream in container
        if not _is_equation_stream_name(stream.name)
        and not PASTE_ENVELOPE_PATTERN.match(stream.name)
    )


STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    ("named-stream", from_named_stream),
    ("paste-envelope", from_paste_envelope),
    ("any-stream", from_any_stream),
    ("raw-bytes", from_raw_bytes),
)


def locate(container: StorageContainer, raw: bytes) -> Optional[EquationBlob]:
    """
    Find the equation payload of one embedded object.

    Args:
        container: Parsed streams of the embedding (may be empty when the
            embedding is not a compound file).
        raw: The embedding's raw bytes, used by the last-resort strategy.

    Returns:
        The first EquationBlob produced by STRATEGIES, or None.
    """
    for label, strategy in STRATEGIES:
        blob = strategy(container, raw)
        if blob is not None:
            logger.debug(
                f"Equation blob found by {label} ({blob.strategy.value}, "
                f"{len(blob.data)} bytes, source {blob.source!r})"
            )
            return blob
    logger.debug(f"No equation blob in {len(container)} streams / {len(raw)} bytes")
    return None
