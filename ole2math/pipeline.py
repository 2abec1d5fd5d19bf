"""
Equation Pipeline
=================

Turns the raw bytes of a word-processing package into a ConversionReport:

    package bytes
        -> PackageReader                (ZIP guard, encryption check)
        -> document tree + relationships
        -> anchors (document order)     -> one job per distinct embedding
        -> worker pool                  (container -> blob -> markup -> LaTeX)
        -> records + inline HTML + fallback HTML

Only failures that prevent reading the package raise. Everything that goes
wrong for a single equation is recorded on that equation's record as an
ErrorKind and never affects its siblings.

Concurrency
-----------
Embedding bytes are read from the package up front in the calling thread;
workers receive plain bytes and share no mutable state. Results are gathered
with ``as_completed`` into a dict keyed by relationship id and re-ordered by
document order afterwards, so output order never depends on completion order.
"""

from __future__ import annotations

import logging
import posixpath
import typing
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from ole2math.converters.html_fallback import FallbackRenderer, render_fallback_html
from ole2math.converters.mathml_to_latex import MathMLTranscoder, mathml_to_latex
from ole2math.converters.mtef_converter import MtefConverter, SubprocessMtefConverter
from ole2math.exceptions import (
    ConverterProcessError,
    ConverterTimeoutError,
    CorruptContainerError,
    ExtractionFileTooLargeError,
    LatexTranscodeError,
)
from ole2math.extractors import document_walker, equation_locator, relationships
from ole2math.extractors.compound_file import open_container
from ole2math.extractors.data_types import (
    AnchorKind,
    BlobStrategy,
    ConversionReport,
    ConversionResult,
    EquationBlob,
    EquationRecord,
    ErrorKind,
    OleAnchor,
    StorageContainer,
)
from ole2math.extractors.document_tree import parse_markup
from ole2math.extractors.util.package_reader import (
    DOCUMENT_PART,
    RELATIONSHIPS_PART,
    PackageReader,
)
from ole2math.settings import DEFAULT_SETTINGS, ConversionSettings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Job:
    anchor: OleAnchor
    embedding_path: str
    data: bytes


@dataclass
class _Outcome:
    result: ConversionResult
    blob_strategy: BlobStrategy | None = None


class EquationPipeline:
    """
    Extract and convert every legacy equation of a document.

    The converter, transcoder and fallback renderer are injectable; the
    defaults run the configured external converter, the built-in MathML to
    LaTeX transcoder and the plain-text HTML renderer.
    """

    def __init__(
        self,
        settings: ConversionSettings | None = None,
        converter: MtefConverter | None = None,
        transcoder: MathMLTranscoder | None = None,
        fallback_renderer: FallbackRenderer | None = None,
    ):
        self.settings = settings or DEFAULT_SETTINGS
        self.converter = converter or SubprocessMtefConverter.from_settings(
            self.settings
        )
        self.transcoder = transcoder or mathml_to_latex
        self.fallback_renderer = fallback_renderer or render_fallback_html

    def process(self, data: bytes, path: str | None = None) -> ConversionReport:
        """
        Convert one document.

        Args:
            data: Raw package bytes.
            path: Optional source name, used in error messages only.

        Raises:
            PackageReadError: The package or its main document is unreadable
                (including the encrypted, ZIP bomb and too-large subclasses).
        """
        if len(data) > self.settings.max_package_bytes:
            raise ExtractionFileTooLargeError(len(data), self.settings.max_package_bytes)

        with PackageReader(data, limits=self.settings.zip_limits, source=path) as reader:
            tree = parse_markup(reader.read_bytes(DOCUMENT_PART))
            if reader.exists(RELATIONSHIPS_PART):
                table = relationships.resolve(reader.read_bytes(RELATIONSHIPS_PART))
            else:
                logger.warning(
                    "Package has no %s, no embedding can be resolved", RELATIONSHIPS_PART
                )
                table = {}
            embeddings = reader.embeddings()

        anchors = document_walker.find_anchors(tree)
        jobs, unresolved = self._plan(anchors, table, embeddings)
        outcomes = self._run(jobs)

        records = []
        results_by_id: dict[str, ConversionResult] = {}
        for job in jobs:
            outcome = outcomes[job.anchor.relationship_id]
            results_by_id[job.anchor.relationship_id] = outcome.result
            records.append(self._record(job.anchor, job.embedding_path, outcome))
        for anchor, target in unresolved:
            outcome = _Outcome(
                ConversionResult(
                    relationship_id=anchor.relationship_id,
                    error_kind=ErrorKind.NO_EMBEDDING_FOUND,
                    diagnostic=(
                        f"Embedding {target} not found in package"
                        if target
                        else "Relationship id does not resolve to an embedding"
                    ),
                )
            )
            results_by_id[anchor.relationship_id] = outcome.result
            records.append(self._record(anchor, target, outcome))
        records.sort(key=lambda record: record.document_order_index)

        paragraphs = document_walker.render(tree, results_by_id)
        report = ConversionReport(
            equations=records,
            html_fallback=self._fallback(data),
            html_inline="\n".join(paragraphs),
            paragraphs=paragraphs,
        )
        logger.info(
            "Processed %s: %d equations, %d with errors",
            path or "document",
            report.count,
            len(report.get_errors()),
        )
        return report

    def _plan(
        self,
        anchors: typing.Sequence[OleAnchor],
        table: relationships.RelationshipTable,
        embeddings: typing.Mapping[str, bytes],
    ) -> tuple[list[_Job], list[tuple[OleAnchor, str]]]:
        jobs: list[_Job] = []
        unresolved: list[tuple[OleAnchor, str]] = []
        seen: set[str] = set()
        for anchor in anchors:
            rel_id = anchor.relationship_id
            if rel_id in seen:
                continue
            target = table.get(rel_id, "")
            if target in embeddings:
                seen.add(rel_id)
                jobs.append(_Job(anchor, target, embeddings[target]))
            elif anchor.kind is AnchorKind.OLE_OBJECT:
                seen.add(rel_id)
                unresolved.append((anchor, target))
            else:
                logger.debug(f"Ignoring image anchor {rel_id!r} without embedding")
        logger.debug(
            f"Planned {len(jobs)} conversions, {len(unresolved)} unresolved anchors "
            f"out of {len(anchors)}"
        )
        return jobs, unresolved

    def _run(self, jobs: typing.Sequence[_Job]) -> dict[str, _Outcome]:
        if not jobs:
            return {}
        outcomes: dict[str, _Outcome] = {}
        max_workers = min(self.settings.worker_count, len(jobs))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self._convert, job): job for job in jobs}
            for future in as_completed(futures):
                job = futures[future]
                outcomes[job.anchor.relationship_id] = future.result()
        return outcomes

    def _convert(self, job: _Job) -> _Outcome:
        rel_id = job.anchor.relationship_id
        try:
            container = open_container(job.data)
            corrupt: CorruptContainerError | None = None
        except CorruptContainerError as exc:
            logger.debug(f"{job.embedding_path} is not a usable compound file: {exc}")
            container = StorageContainer(streams=())
            corrupt = exc

        blob = equation_locator.locate(container, job.data)
        if blob is None:
            if corrupt is not None:
                return self._failed(rel_id, ErrorKind.CORRUPT_CONTAINER, str(corrupt))
            return self._failed(
                rel_id, ErrorKind.NO_MTEF_FOUND, "No equation data in embedding"
            )

        try:
            markup = self.converter.convert(blob.data)
        except ConverterTimeoutError as exc:
            return self._failed(rel_id, ErrorKind.CONVERTER_TIMEOUT, str(exc), blob)
        except ConverterProcessError as exc:
            return self._failed(rel_id, ErrorKind.CONVERTER_PROCESS_ERROR, str(exc), blob)
        except Exception as exc:
            # injected converters may raise anything; it stays on this record
            return self._failed(
                rel_id,
                ErrorKind.CONVERTER_PROCESS_ERROR,
                f"{type(exc).__name__}: {exc}",
                blob,
            )

        if not markup or not markup.strip():
            return self._failed(
                rel_id,
                ErrorKind.CONVERTER_PROCESS_ERROR,
                "Converter produced no math markup",
                blob,
            )

        try:
            latex = self.transcoder(markup)
        except Exception as exc:
            # injected transcoders may raise anything; the markup is kept
            if isinstance(exc, LatexTranscodeError):
                diagnostic = str(exc)
            else:
                diagnostic = f"{type(exc).__name__}: {exc}"
            logger.warning("LaTeX transcoding failed for %s: %s", rel_id, diagnostic)
            return _Outcome(
                ConversionResult(
                    relationship_id=rel_id,
                    math_markup=markup,
                    error_kind=ErrorKind.LATEX_TRANSCODE_FAILED,
                    diagnostic=diagnostic,
                ),
                blob.strategy,
            )

        return _Outcome(
            ConversionResult(relationship_id=rel_id, math_markup=markup, latex=latex),
            blob.strategy,
        )

    @staticmethod
    def _failed(
        rel_id: str,
        error_kind: ErrorKind,
        diagnostic: str,
        blob: EquationBlob | None = None,
    ) -> _Outcome:
        logger.warning("Equation %s failed (%s): %s", rel_id, error_kind.value, diagnostic)
        return _Outcome(
            ConversionResult(
                relationship_id=rel_id, error_kind=error_kind, diagnostic=diagnostic
            ),
            blob.strategy if blob is not None else None,
        )

    @staticmethod
    def _record(anchor: OleAnchor, embedding_path: str, outcome: _Outcome) -> EquationRecord:
        result = outcome.result
        return EquationRecord(
            relationship_id=anchor.relationship_id,
            embedding_path=embedding_path,
            name=posixpath.basename(embedding_path),
            prog_id=anchor.prog_id,
            math_markup=result.math_markup,
            latex=result.latex,
            error_kind=result.error_kind,
            diagnostic=result.diagnostic,
            document_order_index=anchor.document_order_index,
            blob_strategy=outcome.blob_strategy,
        )

    def _fallback(self, data: bytes) -> str:
        try:
            return self.fallback_renderer(data)
        except Exception as exc:
            logger.warning("Fallback HTML rendering failed: %s", exc)
            return ""
