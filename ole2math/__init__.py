"""
ole2math: legacy equation extraction for word-processing documents.

Finds the Equation Editor 3.0 / MathType objects embedded in a DOCX package,
converts each one to MathML and LaTeX, and rebuilds the document text as HTML
with every equation inline.
"""

from pathlib import Path

from ole2math.extractors.data_types import (
    ConversionReport,
    EquationRecord,
    ErrorKind,
)
from ole2math.pipeline import EquationPipeline
from ole2math.settings import ConversionSettings

__version__ = "0.1.0"


def convert_docx(
    data: bytes, settings: ConversionSettings | None = None
) -> ConversionReport:
    """Convert the equations of a DOCX package given as bytes."""
    return EquationPipeline(settings=settings).process(data)


def convert_file(
    path: str | Path, settings: ConversionSettings | None = None
) -> ConversionReport:
    """
    Convert the equations of a DOCX file on disk.

    Args:
        path: Path to the .docx file.
        settings: Optional settings; defaults apply when omitted.

    Raises:
        FileNotFoundError: If the file does not exist.
        PackageReadError: If the package cannot be read.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"File not found: {path}")
    return EquationPipeline(settings=settings).process(
        path.read_bytes(), path=str(path)
    )


__all__ = [
    "__version__",
    "ConversionReport",
    "ConversionSettings",
    "EquationPipeline",
    "EquationRecord",
    "ErrorKind",
    "convert_docx",
    "convert_file",
]
