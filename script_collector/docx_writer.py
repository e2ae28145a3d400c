"""Minimal DOCX package writer.

Builds a Word document from scratch: a ZIP archive with a content-type part, a
root relationship part and a generated ``word/document.xml`` body. Each entry
becomes one header paragraph followed by one paragraph per line of its text.
"""

from __future__ import annotations

import io
import os
import re
import tempfile
import xml.sax.saxutils as saxutils
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union
from zipfile import ZIP_DEFLATED, ZipFile

CONTENT_TYPES_PART = "[Content_Types].xml"
ROOT_RELS_PART = "_rels/.rels"
DOCUMENT_PART = "word/document.xml"

DOCUMENT_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document.main+xml"

CONTENT_TYPES_XML = f'''<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types"><Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/><Default Extension="xml" ContentType="application/xml"/><Override PartName="/{DOCUMENT_PART}" ContentType="{DOCUMENT_CONTENT_TYPE}"/></Types>'''

ROOT_RELS_XML = f'''<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships"><Relationship Id="rId1" Type="http://schemas.openxmlformats.org/officeDocument/2006/relationships/officeDocument" Target="{DOCUMENT_PART}"/></Relationships>'''

DOCUMENT_HEAD = '''<?xml version="1.0" encoding="UTF-8" standalone="yes"?>
<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"><w:body>'''
DOCUMENT_TAIL = "<w:sectPr/></w:body></w:document>"

# Characters XML 1.0 does not allow anywhere in a document.
XML_ILLEGAL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")

XML_ENTITIES = {'"': "&quot;", "'": "&apos;", "\r": "&#13;"}


class DocxWriteError(Exception):
    """Base class for failures of a single document write."""


class ContentEncodingError(DocxWriteError):
    def __init__(self, identifier: str, reason: str):
        super().__init__(f"Cannot encode entry {identifier!r}: {reason}")
        self.identifier = identifier
        self.reason = reason


class DestinationError(DocxWriteError):
    def __init__(self, destination: Path, cause: OSError):
        super().__init__(f"Cannot write {destination}: {cause}")
        self.destination = destination
        self.cause = cause


@dataclass(frozen=True)
class DocumentEntry:
    identifier: str
    content: str


def split_lines(content: str) -> List[str]:
    """Split text on line feeds after folding CRLF pairs.

    A trailing line terminator closes the last line instead of opening an empty
    one, so ``""`` gives no lines and ``"a\\n"`` gives ``["a"]``.
    """
    lines = content.replace("\r\n", "\n").split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def escape_text(text: str) -> str:
    return saxutils.escape(text, XML_ENTITIES)


def check_text(identifier: str, text: str) -> None:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ContentEncodingError(identifier, f"not valid UTF-8 text ({exc.reason})") from exc

    m = XML_ILLEGAL_CHARS.search(text)
    if m:
        raise ContentEncodingError(identifier, f"character U+{ord(m.group()):04X} at offset {m.start()} is not allowed in XML")


def paragraph_xml(text: str) -> str:
    return f'<w:p><w:r><w:t xml:space="preserve">{escape_text(text)}</w:t></w:r></w:p>'


def build_document_xml(entries: Iterable[DocumentEntry]) -> str:
    body: List[str] = []
    for entry in entries:
        check_text(entry.identifier, entry.identifier)
        check_text(entry.identifier, entry.content)
        body.append(paragraph_xml(entry.identifier))
        body.extend(paragraph_xml(line) for line in split_lines(entry.content))
    return DOCUMENT_HEAD + "".join(body) + DOCUMENT_TAIL


def build_docx_bytes(entries: Iterable[DocumentEntry]) -> bytes:
    document_xml = build_document_xml(entries)

    buf = io.BytesIO()
    with ZipFile(buf, "w", ZIP_DEFLATED) as zf:
        zf.writestr(CONTENT_TYPES_PART, CONTENT_TYPES_XML.encode("utf-8"))
        zf.writestr(ROOT_RELS_PART, ROOT_RELS_XML.encode("utf-8"))
        zf.writestr(DOCUMENT_PART, document_xml.encode("utf-8"))
    return buf.getvalue()


def current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


def write_package(data: bytes, destination: Union[str, Path]) -> Path:
    """Write archive bytes to ``destination`` in one atomic step.

    The bytes go to a temporary file next to the destination, get the mode a
    plain file create would give, and are renamed into place; the temporary
    file is removed on any failure. Raises ``DestinationError`` for any I/O
    failure.
    """
    destination = Path(destination)
    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{destination.name}.", suffix=".tmp", dir=destination.parent)
    except OSError as exc:
        raise DestinationError(destination, exc) from exc

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp creates 0600 files
        os.chmod(tmp_path, 0o666 & ~current_umask())
        os.replace(tmp_path, destination)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise DestinationError(destination, exc) from exc
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    return destination


def write_docx(entries: Iterable[DocumentEntry], destination: Union[str, Path]) -> Path:
    """Write the document for ``entries`` to ``destination``.

    Raises ``ContentEncodingError`` before touching the filesystem, and
    ``DestinationError`` for any I/O failure.
    """
    return write_package(build_docx_bytes(entries), destination)
