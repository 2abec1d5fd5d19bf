"""
Best-effort whole-document HTML rendering.

The document body is converted with mammoth, which keeps headings, lists,
tables and inline emphasis; embedded objects are not substituted. The result
is a complete page and is never empty: a document without content renders an
explicit placeholder paragraph.
"""

from __future__ import annotations

import io
import logging
import typing
import zipfile

import mammoth

from ole2math.exceptions import PackageReadError
from ole2math.extractors.util.package_reader import DOCUMENT_PART
from ole2math.extractors.util.zip_bomb import open_zipfile

logger = logging.getLogger(__name__)

FallbackRenderer = typing.Callable[[bytes], str]

EMPTY_DOCUMENT_HTML = "<p>(empty document)</p>"

_PAGE_TEMPLATE = """<!doctype html>
<html>
  <head>
    <meta charset="utf-8"/>
    <meta name="viewport" content="width=device-width, initial-scale=1"/>
    <title>Document Preview</title>
    <style>
      body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Arial, sans-serif; line-height: 1.6; padding: 16px; }}
      p {{ margin: 0 0 10px; }}
      table {{ border-collapse: collapse; }}
      td, th {{ border: 1px solid #ccc; padding: 4px 8px; }}
    </style>
  </head>
  <body>
    {body}
  </body>
</html>
"""


def _check_package(data: bytes) -> None:
    try:
        with open_zipfile(io.BytesIO(data)) as zf:
            if DOCUMENT_PART not in zf.namelist():
                raise PackageReadError(f"Package part missing: {DOCUMENT_PART}")
    except zipfile.BadZipFile as exc:
        raise PackageReadError("Document is not a readable package", cause=exc) from exc


def render_fallback_html(data: bytes) -> str:
    """
    Render a word-processing package as an HTML page.

    Raises:
        PackageReadError: The package or its main document cannot be read.
    """
    _check_package(data)

    try:
        result = mammoth.convert_to_html(io.BytesIO(data))
    except (KeyError, ValueError, zipfile.BadZipFile) as exc:
        raise PackageReadError(
            f"Unable to render {DOCUMENT_PART}: {exc}", cause=exc
        ) from exc

    for message in result.messages:
        logger.debug(f"mammoth {message.type}: {message.message}")

    body = result.value.strip() or EMPTY_DOCUMENT_HTML
    return _PAGE_TEMPLATE.format(body=body)
