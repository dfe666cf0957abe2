"""
Output rendering for repo-to-xml.

Serializes a walked tree into either a structured XML document or a delimited
plain-text document, and parses XML documents back into a tree.
"""

from __future__ import annotations

import os
import re
import xml.etree.ElementTree as ET
from typing import Iterable
from xml.sax.saxutils import escape as xml_escape
from xml.sax.saxutils import quoteattr

from .config import DirectoryNode, FileNode, Node, OutputFormat

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
ROOT_TAG = "repository"
DIRECTORY_TAG = "directory"
FILE_TAG = "file"
INDENT = "  "

TXT_HEADER = "--- FILE: {path} ---\n"

# Characters XML 1.0 cannot carry, not even as character references
_XML_ILLEGAL = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")

# Parsers normalize a literal CR to LF; a character reference survives
_TEXT_ENTITIES = {"\r": "&#13;"}
_ATTR_ENTITIES = {"\n": "&#10;", "\r": "&#13;", "\t": "&#9;"}


def _xml_safe(value: str) -> str:
    return _XML_ILLEGAL.sub("\ufffd", value)


def _escape_text(value: str) -> str:
    return xml_escape(_xml_safe(value), _TEXT_ENTITIES)


def _attrs(node: Node) -> str:
    name = quoteattr(_xml_safe(node.name), _ATTR_ENTITIES)
    path = quoteattr(_xml_safe(node.path), _ATTR_ENTITIES)
    return f"name={name} path={path}"


def _render_xml_node(node: Node, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth
    if isinstance(node, DirectoryNode):
        if not node.children:
            lines.append(f"{pad}<{DIRECTORY_TAG} {_attrs(node)}/>")
            return
        lines.append(f"{pad}<{DIRECTORY_TAG} {_attrs(node)}>")
        for child in node.children:
            _render_xml_node(child, depth + 1, lines)
        lines.append(f"{pad}</{DIRECTORY_TAG}>")
    elif node.content:
        lines.append(f"{pad}<{FILE_TAG} {_attrs(node)}>{_escape_text(node.content)}</{FILE_TAG}>")
    else:
        lines.append(f"{pad}<{FILE_TAG} {_attrs(node)}/>")


def render_xml(nodes: Iterable[Node]) -> str:
    """Render a tree as a pretty-printed XML document.

    Directory and file elements carry `name` and `path` attributes; a file's text
    body is its raw content, kept inline so indentation never leaks into it.

    Args:
        nodes: Top-level nodes of the walked tree.

    Returns:
        The XML document (declaration included, no trailing newline).
    """
    nodes = list(nodes)
    if not nodes:
        return f"{XML_DECLARATION}\n<{ROOT_TAG}/>"

    lines = [XML_DECLARATION, f"<{ROOT_TAG}>"]
    for node in nodes:
        _render_xml_node(node, 1, lines)
    lines.append(f"</{ROOT_TAG}>")
    return "\n".join(lines)


def render_text(nodes: Iterable[Node], parent_path: str = "") -> str:
    """Render a tree as delimited plain text.

    Each file becomes a `--- FILE: <path> ---` header line followed by its raw
    content and a blank separator line. Directories only contribute their name
    to the path of their descendants. Content is not escaped, so a file that
    itself contains a header line cannot be told apart from a real header.

    Args:
        nodes: Top-level nodes of the walked tree.
        parent_path: Path prefix joined in front of every name.

    Returns:
        The concatenated text blocks.
    """
    output: list[str] = []
    _render_text_into(nodes, parent_path, output)
    return "".join(output)


def _render_text_into(nodes: Iterable[Node], parent_path: str, output: list[str]) -> None:
    for node in nodes:
        path = os.path.join(parent_path, node.name)
        if isinstance(node, DirectoryNode):
            _render_text_into(node.children, path, output)
        else:
            output.append(TXT_HEADER.format(path=path))
            output.append(node.content + "\n\n")


def render(nodes: Iterable[Node], output_format: OutputFormat | str) -> str:
    """Render a tree in the requested format."""
    if OutputFormat(output_format) is OutputFormat.TXT:
        return render_text(nodes)
    return render_xml(nodes)


def _parse_element(element: ET.Element) -> Node:
    name = element.get("name", "")
    path = element.get("path", "")
    if element.tag == DIRECTORY_TAG:
        return DirectoryNode(
            name=name,
            path=path,
            children=tuple(_parse_element(child) for child in element),
        )
    if element.tag == FILE_TAG:
        return FileNode(name=name, path=path, content=element.text or "")
    raise ValueError(f"Unexpected element <{element.tag}>")


def parse_xml(document: str) -> tuple[Node, ...]:
    """Parse an XML document produced by `render_xml` back into nodes.

    Args:
        document: XML text.

    Returns:
        The top-level nodes under the `repository` root.

    Raises:
        ValueError: If the document is malformed or is not a repository document.
    """
    try:
        root = ET.fromstring(document.encode("utf-8"))
    except ET.ParseError as e:
        raise ValueError(f"Malformed XML document: {e}") from e

    if root.tag != ROOT_TAG:
        raise ValueError(f"Expected <{ROOT_TAG}> root element, got <{root.tag}>")
    return tuple(_parse_element(child) for child in root)
