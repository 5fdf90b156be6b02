"""
OPML subscription list parsing.

Walks nested ``<outline>`` elements and collects their ``xmlUrl``
attributes in document (pre-order) order.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union
from xml.etree import ElementTree

logger = logging.getLogger(__name__)

OutlineNodes = Union[None, ElementTree.Element, Iterable[ElementTree.Element]]


def as_node_list(nodes: OutlineNodes) -> List[ElementTree.Element]:
    """
    Normalize a single outline node, ``None`` or a sequence of sibling
    nodes into a list of nodes.
    """
    if nodes is None:
        return []
    if ElementTree.iselement(nodes):
        return [nodes]
    return list(nodes)


def _feed_url(node: Any) -> Optional[str]:
    value = node.get("xmlUrl") or node.get("xmlurl")
    if value and value.strip():
        return value.strip()
    return None


def _child_outlines(node: ElementTree.Element) -> List[ElementTree.Element]:
    return node.findall("outline")


def walk_outlines(nodes: OutlineNodes) -> List[str]:
    """
    Collect every non-blank ``xmlUrl`` in pre-order.

    Nodes without the attribute contribute nothing themselves but their
    children are still visited. An explicit stack keeps arbitrarily deep
    outlines from hitting the interpreter recursion limit.

    Args:
        nodes: One outline element or a sequence of sibling outlines

    Returns:
        Feed URLs in visitation order (duplicates kept)

    Example:
        >>> root = ElementTree.fromstring(
        ...     '<outline xmlUrl="https://x.example/rss">'
        ...     '<outline xmlUrl="https://y.example/rss"/></outline>'
        ... )
        >>> walk_outlines(root)
        ['https://x.example/rss', 'https://y.example/rss']
    """
    urls: List[str] = []
    stack = list(reversed(as_node_list(nodes)))

    while stack:
        node = stack.pop()
        url = _feed_url(node)
        if url:
            urls.append(url)
        stack.extend(reversed(_child_outlines(node)))

    return urls


def parse_opml_string(content: str) -> List[str]:
    """
    Extract feed URLs from OPML text.

    Raises:
        ElementTree.ParseError: If the text is not well-formed XML
    """
    root = ElementTree.fromstring(content)
    body = root.find("body")
    if body is None:
        return []
    return walk_outlines(_child_outlines(body))


def parse_opml_file(path: Path) -> List[str]:
    """
    Extract feed URLs from an OPML file.

    A missing, unreadable or malformed file yields an empty list; the
    reason is logged and never raised.

    Args:
        path: OPML file path

    Returns:
        Feed URLs in document order
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8-sig")
        urls = parse_opml_string(content)
    except (OSError, UnicodeDecodeError, ElementTree.ParseError) as exc:
        logger.info("OPML file %s does not exist or cannot be parsed, skipping (%s)", path, exc)
        return []

    for url in urls:
        logger.debug("Found RSS URL from OPML: %s", url)
    return urls
