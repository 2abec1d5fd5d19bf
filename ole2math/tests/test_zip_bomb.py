import io
import zipfile

import pytest

from ole2math.exceptions import (
    ExtractionFileEncryptedError,
    ExtractionZipBombError,
    PackageReadError,
)
from ole2math.extractors.util.package_reader import PackageReader
from ole2math.extractors.util.zip_bomb import ZipBombLimits, open_zipfile
from ole2math.tests.cfb_builder import build_compound_file


def _make_zip_bytes(files: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def test_zip_bomb_detection_can_use_low_thresholds__compression_ratio() -> None:
    data = _make_zip_bytes({"a.txt": b"A" * 10_000})

    with pytest.raises(ExtractionZipBombError):
        open_zipfile(
            io.BytesIO(data),
            limits=ZipBombLimits(
                max_entry_compression_ratio=10.0,
                max_total_compression_ratio=10.0,
            ),
            source="test",
        )

    zf = open_zipfile(
        io.BytesIO(data),
        limits=ZipBombLimits(
            max_entry_compression_ratio=10_000.0,
            max_total_compression_ratio=10_000.0,
        ),
        source="test",
    )
    zf.close()


def test_zip_bomb_detection_can_use_low_thresholds__entry_count() -> None:
    data = _make_zip_bytes({"a.txt": b"a", "b.txt": b"b", "c.txt": b"c"})

    with pytest.raises(ExtractionZipBombError):
        PackageReader(data, limits=ZipBombLimits(max_entries=2), source="test")


def test_zip_bomb_detection_can_use_low_thresholds__single_entry_size() -> None:
    data = _make_zip_bytes({"word/document.xml": b"x" * 2048})

    with pytest.raises(ExtractionZipBombError):
        PackageReader(data, limits=ZipBombLimits(max_single_uncompressed_bytes=1024))


def test_package_reader_lists_embeddings() -> None:
    data = _make_zip_bytes(
        {
            "word/document.xml": b"<doc/>",
            "word/embeddings/oleObject2.bin": b"two",
            "word/embeddings/oleObject1.bin": b"one",
            "word/embeddings/Microsoft_Excel_Sheet.xlsx": b"sheet",
            "word/media/image1.wmf": b"img",
        }
    )

    with PackageReader(data) as reader:
        assert reader.exists("word/document.xml")
        assert not reader.exists("word/missing.xml")
        assert "word/media/image1.wmf" in reader.namelist
        assert reader.embeddings() == {
            "word/embeddings/oleObject1.bin": b"one",
            "word/embeddings/oleObject2.bin": b"two",
        }
        with pytest.raises(PackageReadError):
            reader.read_bytes("word/missing.xml")


def test_package_reader_rejects_non_zip() -> None:
    with pytest.raises(PackageReadError):
        PackageReader(b"plain text, not a package")


def test_package_reader_rejects_encrypted_package() -> None:
    data = bytes(
        build_compound_file({"EncryptionInfo": b"\x04\x00", "EncryptedPackage": b"x"})
    )

    with pytest.raises(ExtractionFileEncryptedError):
        PackageReader(data)
