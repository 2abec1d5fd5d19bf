"""
Immutable markup tree for ``word/document.xml``.

The XML is parsed once with ElementTree and converted into ``Element``/``Text``
nodes (see data_types). Both walker passes run over this tree through
``MarkupVisitor`` subclasses.
"""

import logging
import typing
from types import MappingProxyType
from xml.etree import ElementTree as ET

from ole2math.exceptions import PackageReadError
from ole2math.extractors.data_types import Element, MarkupNode, Text

logger = logging.getLogger(__name__)

# Namespace prefixes for element access
W_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"
R_NS = "{http://schemas.openxmlformats.org/officeDocument/2006/relationships}"
O_NS = "{urn:schemas-microsoft-com:office:office}"
V_NS = "{urn:schemas-microsoft-com:vml}"
MC_NS = "{http://schemas.openxmlformats.org/markup-compatibility/2006}"


def _convert(elem: ET.Element) -> Element:
    children: list[MarkupNode] = []
    if elem.text:
        children.append(Text(elem.text))
    for child in elem:
        children.append(_convert(child))
        if child.tail:
            children.append(Text(child.tail))
    return Element(
        tag=elem.tag,
        attributes=MappingProxyType(dict(elem.attrib)),
        children=tuple(children),
    )


def parse_markup(xml: bytes | str) -> Element:
    """Parse an XML part into an immutable tree.

    Raises:
        PackageReadError: If the XML is not well-formed.
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise PackageReadError("Document body is not valid XML", cause=exc) from exc
    return _convert(root)


def text_of(element: Element) -> str:
    """Concatenate the direct text children of an element."""
    return "".join(child.value for child in element.children if isinstance(child, Text))


class MarkupVisitor:
    """
    Recursive visitor over MarkupNode trees.

    Subclasses override ``visit_element``/``visit_text``; the default element
    handler descends into the children in document order.
    """

    def visit(self, node: MarkupNode) -> typing.Any:
        if isinstance(node, Element):
            return self.visit_element(node)
        return self.visit_text(node)

    def visit_children(self, element: Element) -> None:
        for child in element.children:
            self.visit(child)

    def visit_element(self, element: Element) -> typing.Any:
        self.visit_children(element)

    def visit_text(self, text: Text) -> typing.Any:
        return None
