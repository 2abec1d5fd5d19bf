from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass

from ole2math.exceptions import ExtractionZipBombError


@dataclass(frozen=True)
class ZipBombLimits:
    """
    Heuristics for rejecting probable ZIP bombs disguised as documents.

    A word-processing package with embedded equations is small; the defaults
    leave plenty of room for image-heavy documents.
    """

    max_entries: int = 10_000
    max_total_uncompressed_bytes: int = 512 * 1024 * 1024  # 512 MiB
    max_single_uncompressed_bytes: int = 256 * 1024 * 1024  # 256 MiB
    max_total_compression_ratio: float = 200.0
    max_entry_compression_ratio: float = 500.0


DEFAULT_ZIP_BOMB_LIMITS = ZipBombLimits()


def _suffix(source: str | None) -> str:
    return f" [{source}]" if source else ""


def validate_zipfile(
    zf: zipfile.ZipFile,
    *,
    limits: ZipBombLimits = DEFAULT_ZIP_BOMB_LIMITS,
    source: str | None = None,
) -> None:
    """
    Check a ZIP container against the configured limits.

    Only the central directory is inspected; nothing is decompressed.
    """
    infos = zf.infolist()
    if len(infos) > limits.max_entries:
        raise ExtractionZipBombError(
            f"Package has too many entries ({len(infos)} > {limits.max_entries})"
            + _suffix(source)
        )

    total_uncompressed = 0
    total_compressed = 0
    for info in infos:
        if info.is_dir():
            continue

        if info.file_size > limits.max_single_uncompressed_bytes:
            raise ExtractionZipBombError(
                f"Package part {info.filename} too large ({info.file_size} bytes)"
                + _suffix(source)
            )
        if info.file_size > 0:
            if info.compress_size <= 0:
                raise ExtractionZipBombError(
                    f"Package part {info.filename} has zero compressed size"
                    + _suffix(source)
                )
            ratio = info.file_size / info.compress_size
            if ratio > limits.max_entry_compression_ratio:
                raise ExtractionZipBombError(
                    f"Package part {info.filename} compression ratio too high "
                    f"({ratio:.1f} > {limits.max_entry_compression_ratio})"
                    + _suffix(source)
                )

        total_uncompressed += info.file_size
        total_compressed += info.compress_size
        if total_uncompressed > limits.max_total_uncompressed_bytes:
            raise ExtractionZipBombError(
                f"Package uncompressed size too large ({total_uncompressed} bytes)"
                + _suffix(source)
            )

    if total_uncompressed > 0 and total_compressed > 0:
        total_ratio = total_uncompressed / total_compressed
        if total_ratio > limits.max_total_compression_ratio:
            raise ExtractionZipBombError(
                f"Package compression ratio too high "
                f"({total_ratio:.1f} > {limits.max_total_compression_ratio})"
                + _suffix(source)
            )


def open_zipfile(
    file_like: io.BytesIO,
    *,
    limits: ZipBombLimits = DEFAULT_ZIP_BOMB_LIMITS,
    source: str | None = None,
) -> zipfile.ZipFile:
    """
    Open a ZIP file and validate it for ZIP-bomb indicators.

    Caller owns the returned ZipFile and must close it.
    """
    file_like.seek(0)
    zf = zipfile.ZipFile(file_like, "r")
    try:
        validate_zipfile(zf, limits=limits, source=source)
    except Exception:
        zf.close()
        raise
    return zf
