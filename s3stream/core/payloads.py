"""XML documents exchanged with the store."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable, Protocol


class ManifestEntry(Protocol):
    number: int
    etag: str


def _local_name(tag: str) -> str:
    # Responses are namespaced, e.g. {http://s3.amazonaws.com/doc/2006-03-01/}UploadId
    return tag.rsplit("}", 1)[-1]


def _find_text(root: ET.Element, name: str) -> str:
    for element in root.iter():
        if _local_name(element.tag) == name:
            return (element.text or "").strip()
    return ""


def parse_document(body: bytes | str) -> ET.Element | None:
    """Parse an XML body, returning ``None`` if it is empty or malformed."""
    if not body:
        return None
    try:
        return ET.fromstring(body)
    except ET.ParseError:
        return None


def parse_upload_id(body: bytes | str) -> str:
    """Extract ``UploadId`` from an InitiateMultipartUploadResult document.

    Raises:
        ValueError: If the body carries no upload id.
    """
    root = parse_document(body)
    upload_id = _find_text(root, "UploadId") if root is not None else ""
    if not upload_id:
        raise ValueError("response did not contain an UploadId")
    return upload_id


def parse_error(body: bytes | str) -> tuple[str, str]:
    """Return (code, message) from an ``<Error>`` document, or empty strings."""
    root = parse_document(body)
    if root is None or _local_name(root.tag) != "Error":
        return "", ""
    return _find_text(root, "Code"), _find_text(root, "Message")


def build_complete_body(parts: Iterable[ManifestEntry]) -> bytes:
    """Serialize the CompleteMultipartUpload manifest.

    Parts are written in the order given; callers sort them first.
    """
    root = ET.Element("CompleteMultipartUpload")
    for part in parts:
        part_element = ET.SubElement(root, "Part")
        ET.SubElement(part_element, "PartNumber").text = str(part.number)
        ET.SubElement(part_element, "ETag").text = part.etag
    return ET.tostring(root, encoding="utf-8", xml_declaration=False)
