"""
Attachment URL handling shared by the extractor contract and ingestion.

The extractor reads ``src`` attributes of attachment thumbnails; the helpers
here turn those into the ordered, duplicate-free URL list that ingestion
stores on a comment.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union


@dataclass(frozen=True)
class ImageNode:
    """Minimal view of an attachment ``<img>`` element."""
    src: Optional[str]


ImageSource = Union[ImageNode, Mapping[str, Any], str, None]


def _source_of(node: ImageSource) -> Optional[str]:
    if node is None:
        return None
    if isinstance(node, str):
        return node
    if isinstance(node, Mapping):
        return node.get("src") or node.get("url")
    return getattr(node, "src", None)


def normalize_attachment_url(src: Optional[str]) -> Optional[str]:
    """
    Normalize a raw image source.

    Returns the URL without its query string, or None when the source is
    empty, whitespace only, or an inline data URI.
    """
    if src is None:
        return None
    url = src.strip()
    if not url or url.lower().startswith("data:"):
        return None
    url = url.split("?", 1)[0]
    return url or None


def extract_attachments(dom_images: Iterable[ImageSource]) -> List[str]:
    """
    Build the attachment list for one comment.

    Each normalized URL appears at most once, in order of first appearance.

    Args:
        dom_images: Attachment image nodes in document order

    Returns:
        Ordered list of unique attachment URLs
    """
    seen = set()
    urls: List[str] = []
    for node in dom_images:
        url = normalize_attachment_url(_source_of(node))
        if url is None or url in seen:
            continue
        seen.add(url)
        urls.append(url)
    return urls


def find_duplicate_attachments(urls: Iterable[str]) -> List[str]:
    """Return URLs listed more than once, in the order their first repeat appears."""
    seen = set()
    duplicates: List[str] = []
    for url in urls:
        if url in seen and url not in duplicates:
            duplicates.append(url)
        seen.add(url)
    return duplicates


def dedupe_attachments(urls: Iterable[str]) -> List[str]:
    """Drop repeated URLs, keeping the first occurrence of each."""
    seen = set()
    unique: List[str] = []
    for url in urls:
        if url in seen:
            continue
        seen.add(url)
        unique.append(url)
    return unique
