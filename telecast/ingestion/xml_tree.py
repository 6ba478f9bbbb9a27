"""
Telecast XML Document Model
===========================

Parses feed bytes with lxml and converts the element tree into a uniform
node representation before any field extraction happens. Every element
becomes an ``XmlNode`` with a name, an attribute map, its text payload and
an ordered tuple of child nodes; extractors never branch on lxml shapes.

Namespaced names are rewritten to stable prefixes (``itunes:image``,
``media:thumbnail``, ``yt:channelId`` ...) regardless of the prefix the
publisher declared. Elements in the document root's own namespace keep
their bare local name, so Atom's ``entry`` and RSS 1.0's ``item`` read the
same way RSS 2.0 elements do.
"""

from typing import Dict, Iterator, List, Optional, Tuple, Union

from lxml import etree

from ..utils.exceptions import FeedFormatError, ErrorCode


NAMESPACE_PREFIXES: Dict[str, str] = {
    "http://www.itunes.com/dtds/podcast-1.0.dtd": "itunes",
    "http://www.itunes.com/DTDs/Podcast-1.0.dtd": "itunes",
    "http://search.yahoo.com/mrss/": "media",
    "http://search.yahoo.com/mrss": "media",
    "http://www.youtube.com/xml/schemas/2015": "yt",
    "http://purl.org/rss/1.0/modules/content/": "content",
    "http://purl.org/dc/elements/1.1/": "dc",
    "http://www.w3.org/2005/Atom": "atom",
    "http://www.w3.org/1999/02/22-rdf-syntax-ns#": "rdf",
    "http://www.google.com/schemas/play-podcasts/1.0": "googleplay",
    "https://podcastindex.org/namespace/1.0": "podcast",
    "http://podcastindex.org/namespace/1.0": "podcast",
    "http://www.w3.org/XML/1998/namespace": "xml",
}

# Item-level vocabularies that read as plain RSS
BARE_NAMESPACES = frozenset({
    "http://purl.org/rss/1.0/",
    "http://my.netscape.com/rdf/simple/0.9/",
})

_STRICT_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=False,
    collect_ids=False,
    resolve_entities=False,
)
_RECOVER_XML_PARSER = etree.XMLParser(
    ns_clean=True,
    recover=True,
    collect_ids=False,
    resolve_entities=False,
)

_UTF8_BOM = b"\xef\xbb\xbf"


class XmlNode:
    """One element of a parsed feed document."""

    __slots__ = ("name", "attrs", "text", "content", "children")

    def __init__(
        self,
        name: str,
        attrs: Optional[Dict[str, str]] = None,
        text: str = "",
        children: Tuple["XmlNode", ...] = (),
        content: Optional[str] = None,
    ):
        self.name = name
        self.attrs = attrs or {}
        self.text = text
        self.children = tuple(children)
        # Text of the whole subtree, markup removed
        self.content = text if content is None else content

    def get(self, attr: str, default: Optional[str] = None) -> Optional[str]:
        return self.attrs.get(attr, default)

    def find(self, name: str) -> Optional["XmlNode"]:
        """First direct child called ``name``."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_all(self, name: str) -> List["XmlNode"]:
        return [child for child in self.children if child.name == name]

    def find_path(self, path: str) -> Optional["XmlNode"]:
        """Follow a ``a/b/c`` path through first matches."""
        node: Optional[XmlNode] = self
        for part in path.split("/"):
            if node is None:
                return None
            node = node.find(part)
        return node

    def __iter__(self) -> Iterator["XmlNode"]:
        return iter(self.children)

    def __repr__(self) -> str:
        return f"XmlNode({self.name!r}, attrs={self.attrs!r}, children={len(self.children)})"


def _split_tag(tag: str) -> Tuple[Optional[str], str]:
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return None, tag


class _NodeBuilder:
    """Converts an lxml tree into XmlNodes relative to the root namespace."""

    def __init__(self, root_namespace: Optional[str], nsmap: Dict[Optional[str], str]):
        self.root_namespace = root_namespace
        # Publisher-declared prefixes for namespaces we do not know
        self.declared = {uri: prefix for prefix, uri in nsmap.items() if prefix}

    def qualify(self, tag: str) -> str:
        namespace, local = _split_tag(tag)
        if namespace is None or namespace == self.root_namespace or namespace in BARE_NAMESPACES:
            return local
        prefix = NAMESPACE_PREFIXES.get(namespace) or self.declared.get(namespace)
        return f"{prefix}:{local}" if prefix else local

    def build(self, element) -> XmlNode:
        text_parts = [element.text or ""]
        content_parts = [element.text or ""]
        children = []

        for child in element:
            if child.tag is etree.Entity:
                # Undeclared entity such as &nbsp;, kept for the sanitizer
                text_parts.append(child.text or "")
                content_parts.append(child.text or "")
            elif isinstance(child.tag, str):
                node = self.build(child)
                children.append(node)
                content_parts.append(node.content)
            # comments and processing instructions contribute only their tail
            text_parts.append(child.tail or "")
            content_parts.append(child.tail or "")

        attrs = {self.qualify(key): value for key, value in element.attrib.items()}

        return XmlNode(
            name=self.qualify(element.tag),
            attrs=attrs,
            text="".join(text_parts),
            children=tuple(children),
            content="".join(content_parts),
        )


def _parse_xml_root(data: bytes):
    try:
        return etree.fromstring(data, parser=_STRICT_XML_PARSER)
    except etree.XMLSyntaxError:
        try:
            return etree.fromstring(data, parser=_RECOVER_XML_PARSER)
        except etree.XMLSyntaxError as e:
            raise FeedFormatError(
                f"Failed to parse XML content: {e}",
                error_code=ErrorCode.FEED_PARSE_ERROR
            ) from e


def parse_document(xml: Union[str, bytes]) -> XmlNode:
    """Parse feed text into the uniform node representation.

    Args:
        xml: Raw document, bytes as received or already decoded text

    Returns:
        Root XmlNode

    Raises:
        FeedFormatError: If the input is not well-formed enough to yield a root element
    """
    data = xml.encode("utf-8") if isinstance(xml, str) else bytes(xml)
    data = data.lstrip()
    if data.startswith(_UTF8_BOM):
        data = data[len(_UTF8_BOM):].lstrip()

    if not data:
        raise FeedFormatError("Failed to parse XML: received empty content")

    root = _parse_xml_root(data)
    if root is None or not isinstance(root.tag, str):
        preview = data[:200].decode("utf-8", errors="replace").strip()
        raise FeedFormatError(
            f"Failed to parse XML: content is not an XML document ({preview[:80]!r})"
        )

    root_namespace, _ = _split_tag(root.tag)
    return _NodeBuilder(root_namespace, dict(root.nsmap)).build(root)
