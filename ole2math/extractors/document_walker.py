"""
Document Tree Walker
====================

Two passes over the parsed ``word/document.xml`` tree:

Discovery (``find_anchors``)
    Pre-order walk collecting every embedded-object reference:
        - ``o:OLEObject r:id=".." ProgID=".."``  (the embedding itself)
        - ``v:imagedata r:id=".."``              (the VML preview image)
    Anchors are numbered in the order they are met. Running the pass twice on
    the same tree yields the same sequence.

Render (``render``)
    Turns every top-level ``w:p`` into one HTML paragraph. Text from ``w:t`` is
    escaped, ``w:br``/``w:cr`` become ``<br/>``, ``w:tab`` a run of
    non-breaking spaces, and each anchor is replaced by the conversion result
    for its relationship id:

        1. ``<span class="ole-math">\\(latex\\)</span>`` when LaTeX exists
        2. ``<span class="ole-math ole-math-markup">mathml</span>`` otherwise
        3. ``<span class="ole-math ole-math-error" data-error="..">`` on failure

    A paragraph without content renders as ``<p>&nbsp;</p>``.

Both passes follow only the ``mc:Choice`` branch of ``mc:AlternateContent``
and skip ``mc:Fallback``, so content with an alternate representation is
neither counted nor rendered twice. Paragraph and run property blocks
(``w:pPr``, ``w:rPr``) are skipped by the render pass; their tab-stop
definitions are not tabs.
"""

import html
import logging
import typing

from ole2math.extractors.data_types import (
    AnchorKind,
    ConversionResult,
    Element,
    ErrorKind,
    OleAnchor,
)
from ole2math.extractors.document_tree import (
    MC_NS,
    O_NS,
    R_NS,
    V_NS,
    W_NS,
    MarkupVisitor,
    text_of,
)

logger = logging.getLogger(__name__)

OLE_OBJECT_TAG = f"{O_NS}OLEObject"
IMAGE_DATA_TAG = f"{V_NS}imagedata"
REL_ID_ATTRIBUTE = f"{R_NS}id"
PROG_ID_ATTRIBUTE = "ProgID"

PARAGRAPH_TAG = f"{W_NS}p"
TEXT_TAG = f"{W_NS}t"
BREAK_TAGS = (f"{W_NS}br", f"{W_NS}cr")
TAB_TAG = f"{W_NS}tab"
PROPERTY_TAGS = (f"{W_NS}pPr", f"{W_NS}rPr")
ALTERNATE_CONTENT_TAG = f"{MC_NS}AlternateContent"
CHOICE_TAG = f"{MC_NS}Choice"
FALLBACK_TAG = f"{MC_NS}Fallback"

LINE_BREAK_HTML = "<br/>"
TAB_HTML = "&nbsp;" * 4
EMPTY_PARAGRAPH_HTML = "<p>&nbsp;</p>"
EQUATION_PLACEHOLDER = "[equation]"


def escape_text(value: str) -> str:
    return html.escape(value, quote=False)


def escape_attribute(value: str) -> str:
    return html.escape(value, quote=False).replace('"', "&quot;")


def anchor_info(element: Element) -> tuple[AnchorKind, str, str] | None:
    """Return (kind, relationship id, prog id) if the element is an anchor."""
    if element.tag == OLE_OBJECT_TAG:
        rel_id = element.get(REL_ID_ATTRIBUTE)
        if rel_id:
            return AnchorKind.OLE_OBJECT, rel_id, element.get(PROG_ID_ATTRIBUTE, "")
    elif element.tag == IMAGE_DATA_TAG:
        rel_id = element.get(REL_ID_ATTRIBUTE)
        if rel_id:
            return AnchorKind.IMAGE_DATA, rel_id, ""
    return None


class _AlternateContentVisitor(MarkupVisitor):
    """Visits only the first ``mc:Choice`` of alternate content blocks."""

    def visit_element(self, element: Element) -> None:
        if element.tag == ALTERNATE_CONTENT_TAG:
            for child in element.elements():
                if child.tag == CHOICE_TAG:
                    self.visit_children(child)
                    break
            return
        if element.tag == FALLBACK_TAG:
            return
        self.visit_other(element)

    def visit_other(self, element: Element) -> None:
        self.visit_children(element)


#############
# Discovery #
#############


class _AnchorCollector(_AlternateContentVisitor):
    def __init__(self):
        self.anchors: list[OleAnchor] = []

    def visit_other(self, element: Element) -> None:
        info = anchor_info(element)
        if info is not None:
            kind, rel_id, prog_id = info
            self.anchors.append(
                OleAnchor(
                    relationship_id=rel_id,
                    prog_id=prog_id,
                    document_order_index=len(self.anchors),
                    kind=kind,
                )
            )
        self.visit_children(element)


def find_anchors(tree: Element) -> list[OleAnchor]:
    """Collect embedded-object anchors in document order."""
    collector = _AnchorCollector()
    collector.visit(tree)
    logger.debug(f"Found {len(collector.anchors)} embedded-object anchors")
    return collector.anchors


##########
# Render #
##########


class _ParagraphCollector(_AlternateContentVisitor):
    """Collects paragraphs that are not nested inside another paragraph."""

    def __init__(self):
        self.paragraphs: list[Element] = []

    def visit_other(self, element: Element) -> None:
        if element.tag == PARAGRAPH_TAG:
            self.paragraphs.append(element)
            return
        self.visit_children(element)


class _ParagraphRenderer(_AlternateContentVisitor):
    def __init__(self, results_by_id: typing.Mapping[str, ConversionResult]):
        self.results_by_id = results_by_id
        self.parts: list[str] = []
        self.has_content = False

    def render(self, paragraph: Element) -> str:
        self.parts = []
        self.has_content = False
        self.visit_children(paragraph)
        if not self.has_content:
            return EMPTY_PARAGRAPH_HTML
        return "<p>" + "".join(self.parts) + "</p>"

    def visit_other(self, element: Element) -> None:
        tag = element.tag
        if tag in PROPERTY_TAGS:
            return
        if tag == TEXT_TAG:
            value = text_of(element)
            if value:
                self.parts.append(escape_text(value))
                self.has_content = self.has_content or bool(value.strip())
            return
        if tag in BREAK_TAGS:
            self.parts.append(LINE_BREAK_HTML)
            return
        if tag == TAB_TAG:
            self.parts.append(TAB_HTML)
            return

        info = anchor_info(element)
        if info is not None:
            fragment = self.render_anchor(*info)
            if fragment:
                self.parts.append(fragment)
                self.has_content = True
            return
        self.visit_children(element)

    def render_anchor(self, kind: AnchorKind, rel_id: str, prog_id: str) -> str:
        result = self.results_by_id.get(rel_id)
        if result is None:
            if kind is AnchorKind.IMAGE_DATA:
                # preview image of an object, not an equation
                return ""
            return equation_error_span(rel_id, ErrorKind.NO_EMBEDDING_FOUND)
        return equation_span(result)


def equation_span(result: ConversionResult) -> str:
    rel_id = escape_attribute(result.relationship_id)
    if result.latex:
        return (
            f'<span class="ole-math" data-rid="{rel_id}">'
            f"\\({escape_text(result.latex)}\\)</span>"
        )
    if result.math_markup:
        return (
            f'<span class="ole-math ole-math-markup" data-rid="{rel_id}">'
            f"{result.math_markup}</span>"
        )
    return equation_error_span(
        result.relationship_id, result.error_kind or ErrorKind.NO_MTEF_FOUND
    )


def equation_error_span(rel_id: str, error_kind: ErrorKind) -> str:
    return (
        f'<span class="ole-math ole-math-error" data-rid="{escape_attribute(rel_id)}" '
        f'data-error="{escape_attribute(error_kind.value)}">'
        f"{EQUATION_PLACEHOLDER}</span>"
    )


def render(
    tree: Element, results_by_id: typing.Mapping[str, ConversionResult]
) -> list[str]:
    """
    Render the document into HTML paragraphs, substituting equations inline.

    Args:
        tree: Parsed ``word/document.xml``.
        results_by_id: Conversion results keyed by relationship id.

    Returns:
        One HTML fragment per top-level paragraph, in document order.
    """
    collector = _ParagraphCollector()
    collector.visit(tree)

    renderer = _ParagraphRenderer(results_by_id)
    rendered = [renderer.render(paragraph) for paragraph in collector.paragraphs]
    logger.debug(f"Rendered {len(rendered)} paragraphs")
    return rendered
