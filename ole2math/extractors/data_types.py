from __future__ import annotations

import typing
from dataclasses import dataclass, field
from enum import Enum


class ErrorKind(str, Enum):
    """Why a single equation could not be fully converted."""

    CORRUPT_CONTAINER = "CorruptContainer"
    NO_EMBEDDING_FOUND = "NoEmbeddingFound"
    NO_MTEF_FOUND = "NoMtefFound"
    CONVERTER_PROCESS_ERROR = "ConverterProcessError"
    CONVERTER_TIMEOUT = "ConverterTimeout"
    LATEX_TRANSCODE_FAILED = "LatexTranscodeFailed"


class BlobStrategy(str, Enum):
    """How the equation payload was isolated from its container."""

    # stream content validated as-is
    DIRECT = "direct"
    # payload after the stream's equation OLE header
    HEADER_STRIPPED = "header-stripped"
    # payload after the literal format signature
    SIGNATURE_SCAN = "signature-scan"
    # payload unwrapped from a paste envelope
    ENVELOPE = "envelope"
    # unvalidated named-stream content handed over unchanged
    RAW_STREAM = "raw-stream"


class AnchorKind(str, Enum):
    OLE_OBJECT = "ole-object"
    IMAGE_DATA = "image-data"


###################
# Compound files #
###################


@dataclass(frozen=True)
class NamedStream:
    # leaf name of the directory entry, e.g. "Equation Native"
    name: str
    content: bytes
    # slash-joined storage path below the root, e.g. "ObjectPool/_1/Equation Native"
    path: str = ""


@dataclass(frozen=True)
class StorageContainer:
    """All streams of one compound file, in directory traversal order."""

    streams: tuple[NamedStream, ...] = ()

    def __iter__(self) -> typing.Iterator[NamedStream]:
        return iter(self.streams)

    def __len__(self) -> int:
        return len(self.streams)

    def find(self, name: str) -> NamedStream | None:
        for stream in self.streams:
            if stream.name == name:
                return stream
        return None


@dataclass(frozen=True)
class EquationBlob:
    data: bytes
    strategy: BlobStrategy
    # name of the stream it came from, empty for the raw input
    source: str = ""

    @property
    def validated(self) -> bool:
        return self.strategy is not BlobStrategy.RAW_STREAM


#################
# Document tree #
#################


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Element:
    # Clark notation, e.g. "{urn:schemas-microsoft-com:office:office}OLEObject"
    tag: str
    attributes: typing.Mapping[str, str] = field(default_factory=dict)
    children: tuple["MarkupNode", ...] = ()

    @property
    def local_name(self) -> str:
        return self.tag.rsplit("}", 1)[-1]

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attributes.get(name, default)

    def elements(self) -> typing.Iterator["Element"]:
        for child in self.children:
            if isinstance(child, Element):
                yield child


MarkupNode = typing.Union[Element, Text]


@dataclass(frozen=True)
class OleAnchor:
    relationship_id: str
    prog_id: str
    document_order_index: int
    kind: AnchorKind = AnchorKind.OLE_OBJECT


###########
# Results #
###########


@dataclass
class ConversionResult:
    relationship_id: str
    math_markup: str = ""
    latex: str = ""
    error_kind: ErrorKind | None = None
    diagnostic: str = ""


@dataclass
class EquationRecord:
    """One equation as reported to the caller."""

    relationship_id: str
    embedding_path: str = ""
    # file name of the embedding part, e.g. "oleObject1.bin"
    name: str = ""
    prog_id: str = ""
    math_markup: str = ""
    latex: str = ""
    error_kind: ErrorKind | None = None
    diagnostic: str = ""
    document_order_index: int = 0
    blob_strategy: BlobStrategy | None = None


@dataclass
class ConversionReport:
    equations: list[EquationRecord] = field(default_factory=list)
    html_fallback: str = ""
    html_inline: str = ""
    paragraphs: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.equations)

    def get_errors(self) -> list[EquationRecord]:
        return [eq for eq in self.equations if eq.error_kind is not None]
