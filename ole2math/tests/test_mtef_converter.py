import sys
from pathlib import Path

import pytest

from ole2math.converters.mtef_converter import (
    SCRATCH_PREFIX,
    SubprocessMtefConverter,
    scratch_file,
)
from ole2math.exceptions import ConverterProcessError, ConverterTimeoutError
from ole2math.settings import ConversionSettings

ECHO_SCRIPT = (
    "import sys\n"
    "data = open(sys.argv[1], 'rb').read()\n"
    "print('<math><mn>' + data.hex() + '</mn></math>')\n"
)
FAIL_SCRIPT = "import sys\nsys.stderr.write('bad equation')\nsys.exit(3)\n"
SLEEP_SCRIPT = "import time\ntime.sleep(10)\n"
NO_MARKUP_SCRIPT = "print('conversion failed')\n"


def _converter(script: str, scratch_dir: Path, timeout: float = 10.0):
    return SubprocessMtefConverter(
        (sys.executable, "-c", script), timeout=timeout, scratch_dir=str(scratch_dir)
    )


def test_converter_passes_blob_through_scratch_file(tmp_path) -> None:
    markup = _converter(ECHO_SCRIPT, tmp_path).convert(b"\x03\x01")

    assert markup == "<math><mn>0301</mn></math>"
    assert list(tmp_path.iterdir()) == []


def test_nonzero_exit_is_process_error(tmp_path) -> None:
    with pytest.raises(ConverterProcessError) as excinfo:
        _converter(FAIL_SCRIPT, tmp_path).convert(b"\x03\x01")

    assert "code 3" in str(excinfo.value)
    assert "bad equation" in str(excinfo.value)
    assert list(tmp_path.iterdir()) == []


def test_timeout_is_reported_and_scratch_removed(tmp_path) -> None:
    with pytest.raises(ConverterTimeoutError) as excinfo:
        _converter(SLEEP_SCRIPT, tmp_path, timeout=0.5).convert(b"\x03\x01")

    assert excinfo.value.timeout == 0.5
    assert list(tmp_path.iterdir()) == []


def test_output_without_markup_is_process_error(tmp_path) -> None:
    with pytest.raises(ConverterProcessError):
        _converter(NO_MARKUP_SCRIPT, tmp_path).convert(b"\x03\x01")

    assert list(tmp_path.iterdir()) == []


def test_missing_executable_is_process_error(tmp_path) -> None:
    converter = SubprocessMtefConverter(
        (str(tmp_path / "no-such-converter"),), scratch_dir=str(tmp_path)
    )

    with pytest.raises(ConverterProcessError):
        converter.convert(b"\x03\x01")

    assert list(tmp_path.iterdir()) == []


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        SubprocessMtefConverter(())


def test_from_settings() -> None:
    settings = ConversionSettings(
        converter_command=("mt2mml",), converter_timeout=5.0, scratch_dir="/tmp"
    )

    converter = SubprocessMtefConverter.from_settings(settings)

    assert converter.command == ("mt2mml",)
    assert converter.timeout == 5.0
    assert converter.scratch_dir == "/tmp"


def test_scratch_files_are_unique_and_removed_on_error(tmp_path) -> None:
    with scratch_file(b"a", directory=str(tmp_path)) as first:
        with scratch_file(b"b", directory=str(tmp_path)) as second:
            assert first != second
            assert Path(first).name.startswith(SCRATCH_PREFIX)
            assert Path(first).read_bytes() == b"a"
            assert Path(second).read_bytes() == b"b"

    with pytest.raises(RuntimeError):
        with scratch_file(b"c", directory=str(tmp_path)):
            raise RuntimeError("converter crashed")

    assert list(tmp_path.iterdir()) == []
