from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from ole2math.extractors.util.zip_bomb import DEFAULT_ZIP_BOMB_LIMITS, ZipBombLimits

logger = logging.getLogger(__name__)

ENV_CONVERTER = "OLE2MATH_CONVERTER"
ENV_TIMEOUT = "OLE2MATH_TIMEOUT"
ENV_MAX_WORKERS = "OLE2MATH_MAX_WORKERS"
ENV_SCRATCH_DIR = "OLE2MATH_SCRATCH_DIR"


@dataclass(frozen=True)
class ConversionSettings:
    """
    Process-wide settings for a conversion run.

    The converter command receives the scratch file path as its last argument
    and must print math markup on stdout.
    """

    converter_command: tuple[str, ...] = ("ruby", "mt2mml.rb")
    converter_timeout: float = 30.0
    # None = one worker per available CPU
    max_workers: int | None = None
    scratch_dir: str | None = None
    max_package_bytes: int = 15 * 1024 * 1024  # 15 MiB
    zip_limits: ZipBombLimits = field(default=DEFAULT_ZIP_BOMB_LIMITS)

    @property
    def worker_count(self) -> int:
        if self.max_workers is not None and self.max_workers > 0:
            return self.max_workers
        return os.cpu_count() or 1

    @classmethod
    def from_env(cls) -> "ConversionSettings":
        """Build settings from OLE2MATH_* environment variables."""
        kwargs: dict = {}

        command = os.getenv(ENV_CONVERTER, "").strip()
        if command:
            kwargs["converter_command"] = tuple(command.split())

        timeout = os.getenv(ENV_TIMEOUT, "").strip()
        if timeout:
            try:
                value = float(timeout)
                if value <= 0:
                    raise ValueError(timeout)
                kwargs["converter_timeout"] = value
            except ValueError:
                logger.warning(
                    "Invalid %s=%r, using default %ss",
                    ENV_TIMEOUT,
                    timeout,
                    cls.converter_timeout,
                )

        workers = os.getenv(ENV_MAX_WORKERS, "").strip()
        if workers:
            try:
                kwargs["max_workers"] = int(workers)
            except ValueError:
                logger.warning(
                    "Invalid %s=%r, using one worker per CPU", ENV_MAX_WORKERS, workers
                )

        scratch_dir = os.getenv(ENV_SCRATCH_DIR, "").strip()
        if scratch_dir:
            kwargs["scratch_dir"] = scratch_dir

        return cls(**kwargs)


DEFAULT_SETTINGS = ConversionSettings()
