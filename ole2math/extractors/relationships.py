"""
Relationship manifest parsing.

``word/_rels/document.xml.rels`` maps the ``r:id`` attributes used in the
document body to package parts. Only targets inside ``word/embeddings/`` are
kept; they are normalized to full package paths (``word/embeddings/x.bin``).
"""

import logging
import posixpath
from xml.etree import ElementTree as ET

from ole2math.exceptions import PackageReadError

logger = logging.getLogger(__name__)

REL_NS = "{http://schemas.openxmlformats.org/package/2006/relationships}"

# Relationship targets are relative to the part owning the manifest
SOURCE_PART_DIR = "word"
EMBEDDINGS_DIR = "word/embeddings/"

RelationshipTable = dict[str, str]


def normalize_target(target: str, base_dir: str = SOURCE_PART_DIR) -> str:
    """Turn a relationship target into a package path.

    >>> normalize_target("embeddings/oleObject1.bin")
    'word/embeddings/oleObject1.bin'
    >>> normalize_target("/word/embeddings/oleObject1.bin")
    'word/embeddings/oleObject1.bin'
    """
    target = target.strip().replace("\\", "/")
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    return posixpath.normpath(posixpath.join(base_dir, target))


def resolve(manifest_xml: bytes | str) -> RelationshipTable:
    """
    Parse a relationship manifest into an id -> embedding path table.

    Ids are case-sensitive. A duplicated id keeps the last mapping.

    Raises:
        PackageReadError: If the manifest is not well-formed XML.
    """
    try:
        root = ET.fromstring(manifest_xml)
    except ET.ParseError as exc:
        raise PackageReadError(
            "Relationship manifest is not valid XML", cause=exc
        ) from exc

    table: RelationshipTable = {}
    for rel in root.iter(f"{REL_NS}Relationship"):
        rel_id = rel.get("Id") or ""
        target = rel.get("Target") or ""
        if not rel_id or not target:
            continue
        if (rel.get("TargetMode") or "").lower() == "external":
            continue
        path = normalize_target(target)
        if not path.startswith(EMBEDDINGS_DIR):
            continue
        if rel_id in table:
            logger.debug(
                f"Relationship {rel_id} redefined: {table[rel_id]} -> {path}"
            )
        table[rel_id] = path

    logger.debug(f"Resolved {len(table)} embedding relationships")
    return table
