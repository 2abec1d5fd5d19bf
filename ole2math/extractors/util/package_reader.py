"""
Read-only access to the parts of a word-processing package.

The package is a ZIP archive. Parts are addressed by their archive path
(``word/document.xml``, ``word/_rels/document.xml.rels``,
``word/embeddings/oleObject1.bin``). An encrypted package is not a ZIP at all
but an OLE compound file carrying ``EncryptionInfo``/``EncryptedPackage``
streams, which is detected up front so it is reported as such.
"""

from __future__ import annotations

import io
import logging
import zipfile

import olefile

from ole2math.exceptions import ExtractionFileEncryptedError, PackageReadError
from ole2math.extractors.util.zip_bomb import (
    DEFAULT_ZIP_BOMB_LIMITS,
    ZipBombLimits,
    open_zipfile,
)

logger = logging.getLogger(__name__)

DOCUMENT_PART = "word/document.xml"
RELATIONSHIPS_PART = "word/_rels/document.xml.rels"
EMBEDDINGS_PREFIX = "word/embeddings/"

_ENCRYPTION_STREAMS = ("EncryptionInfo", "EncryptedPackage", "DataSpaces")


def is_ooxml_encrypted(data: bytes) -> bool:
    if not olefile.isOleFile(data=data):
        return False
    with olefile.OleFileIO(io.BytesIO(data)) as ole:
        return any(ole.exists(stream) for stream in _ENCRYPTION_STREAMS)


class PackageReader:
    """Reusable ZIP context over the raw bytes of an uploaded document."""

    def __init__(
        self,
        data: bytes,
        *,
        limits: ZipBombLimits = DEFAULT_ZIP_BOMB_LIMITS,
        source: str | None = None,
    ):
        if is_ooxml_encrypted(data):
            raise ExtractionFileEncryptedError(
                "Document is encrypted or password-protected"
            )
        try:
            self._zip = open_zipfile(io.BytesIO(data), limits=limits, source=source)
        except zipfile.BadZipFile as exc:
            raise PackageReadError(
                "Document is not a readable package", cause=exc
            ) from exc
        self._namelist = set(self._zip.namelist())
        logger.debug(f"Opened package with {len(self._namelist)} parts")

    def __enter__(self) -> "PackageReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def namelist(self) -> set[str]:
        return self._namelist

    def exists(self, path: str) -> bool:
        return path in self._namelist

    def read_bytes(self, path: str) -> bytes:
        try:
            return self._zip.read(path)
        except KeyError as exc:
            raise PackageReadError(f"Package part missing: {path}", cause=exc) from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise PackageReadError(
                f"Package part unreadable: {path}", cause=exc
            ) from exc

    def embeddings(self) -> dict[str, bytes]:
        """Return every ``word/embeddings/*.bin`` part keyed by its path."""
        return {
            name: self.read_bytes(name)
            for name in sorted(self._namelist)
            if name.startswith(EMBEDDINGS_PREFIX) and name.lower().endswith(".bin")
        }

    def close(self) -> None:
        self._zip.close()
