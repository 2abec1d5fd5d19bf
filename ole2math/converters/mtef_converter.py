"""
External MTEF converter.

Decoding the legacy equation byte-stream into MathML is delegated to an
external program (by default the ``mt2mml.rb`` script of the mathtype_to_mathml
Ruby gem). The blob is passed through a private scratch file that is removed
on every exit path; each call gets its own uniquely named file.
"""

import logging
import os
import subprocess
import tempfile
import typing
from contextlib import contextmanager

from ole2math.exceptions import ConverterProcessError, ConverterTimeoutError
from ole2math.settings import DEFAULT_SETTINGS, ConversionSettings

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "ole2math-"
SCRATCH_SUFFIX = ".mtef"
MAX_STDERR_CHARS = 500


class MtefConverter(typing.Protocol):
    def convert(self, blob: bytes) -> str:
        """Return math markup for an MTEF blob.

        Raises:
            ConverterProcessError: The conversion failed or produced no markup.
            ConverterTimeoutError: The conversion exceeded its time budget.
        """
        ...


@contextmanager
def scratch_file(
    data: bytes, *, directory: str | None = None
) -> typing.Iterator[str]:
    """Write ``data`` to a unique temporary file and delete it afterwards."""
    handle = tempfile.NamedTemporaryFile(
        prefix=SCRATCH_PREFIX, suffix=SCRATCH_SUFFIX, dir=directory, delete=False
    )
    try:
        with handle:
            handle.write(data)
        yield handle.name
    finally:
        try:
            os.unlink(handle.name)
        except FileNotFoundError:
            pass


class SubprocessMtefConverter:
    """Runs ``command + [scratch_path]`` and reads MathML from stdout."""

    def __init__(
        self,
        command: typing.Sequence[str] = DEFAULT_SETTINGS.converter_command,
        *,
        timeout: float = DEFAULT_SETTINGS.converter_timeout,
        scratch_dir: str | None = None,
    ):
        if not command:
            raise ValueError("Converter command must not be empty")
        self.command = tuple(command)
        self.timeout = timeout
        self.scratch_dir = scratch_dir

    @classmethod
    def from_settings(cls, settings: ConversionSettings) -> "SubprocessMtefConverter":
        return cls(
            settings.converter_command,
            timeout=settings.converter_timeout,
            scratch_dir=settings.scratch_dir,
        )

    def convert(self, blob: bytes) -> str:
        with scratch_file(blob, directory=self.scratch_dir) as path:
            try:
                completed = subprocess.run(
                    [*self.command, path],
                    stdin=subprocess.DEVNULL,
                    capture_output=True,
                    timeout=self.timeout,
                    check=False,
                )
            except subprocess.TimeoutExpired as exc:
                raise ConverterTimeoutError(self.timeout, cause=exc) from exc
            except OSError as exc:
                raise ConverterProcessError(
                    f"Cannot start converter {self.command[0]!r}: {exc}", cause=exc
                ) from exc

        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        if completed.returncode != 0:
            raise ConverterProcessError(
                f"Converter exited with code {completed.returncode}: "
                f"{stderr[:MAX_STDERR_CHARS]}"
            )
        if stderr:
            logger.debug(f"Converter stderr: {stderr[:MAX_STDERR_CHARS]}")

        markup = completed.stdout.decode("utf-8", errors="replace").strip()
        if not markup.startswith("<"):
            raise ConverterProcessError("Converter produced no math markup")
        return markup
