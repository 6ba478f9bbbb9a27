"""
Tests for the uniform XML document model.
"""

import pytest

from telecast.ingestion.xml_tree import XmlNode, parse_document
from telecast.utils.exceptions import FeedFormatError, ErrorCode


class TestParseDocument:
    """Test suite for parse_document."""

    def test_rss_names_are_bare(self, rss_podcast):
        root = parse_document(rss_podcast)

        assert root.name == "rss"
        channel = root.find("channel")
        assert channel is not None
        assert len(channel.find_all("item")) == 2

    def test_namespaced_names_use_stable_prefixes(self, rss_podcast):
        channel = parse_document(rss_podcast).find("channel")

        assert channel.find("itunes:author").text == "Jane Host"
        assert channel.find("itunes:image").get("href") == "http://example.com/cover.jpg"
        assert channel.find("atom:link").get("rel") == "self"

    def test_publisher_prefix_is_ignored(self):
        xml = """<rss xmlns:it="http://www.itunes.com/dtds/podcast-1.0.dtd">
            <channel><it:author>Someone</it:author></channel></rss>"""

        channel = parse_document(xml).find("channel")
        assert channel.find("itunes:author").text == "Someone"

    def test_atom_root_namespace_reads_bare(self, atom_feed):
        root = parse_document(atom_feed)

        assert root.name == "feed"
        assert root.get("xml:lang") == "de"
        assert root.find("entry").find("id").text == "tag:example.com,2024:ep-42"

    def test_rdf_items_read_bare(self, rdf_feed):
        root = parse_document(rdf_feed)

        assert root.name == "RDF"
        assert root.find("item").find("title").text == "RDF item"
        assert root.find("channel").find("dc:language").text == "fr"

    def test_cdata_and_subtree_content(self):
        root = parse_document(
            "<rss><channel><description><![CDATA[<b>bold</b>]]></description>"
            "<summary>outer <i>inner</i> tail</summary></channel></rss>"
        )
        channel = root.find("channel")

        assert channel.find("description").text == "<b>bold</b>"
        summary = channel.find("summary")
        assert summary.text == "outer  tail"
        assert summary.content == "outer inner tail"

    def test_bytes_with_bom_and_leading_whitespace(self):
        root = parse_document(b"\n  \xef\xbb\xbf<rss><channel/></rss>")
        assert root.name == "rss"

    def test_recovers_from_unescaped_ampersand(self):
        root = parse_document("<rss><channel><title>Tom & Jerry</title></channel></rss>")
        assert root.find("channel") is not None

    @pytest.mark.parametrize("content", ["", "   ", b"", b"\xef\xbb\xbf"])
    def test_empty_input_raises(self, content):
        with pytest.raises(FeedFormatError):
            parse_document(content)

    def test_json_is_rejected(self):
        with pytest.raises(FeedFormatError) as exc_info:
            parse_document('{"items": []}')

        assert exc_info.value.error_code == ErrorCode.FEED_PARSE_ERROR


class TestXmlNode:
    """Test suite for XmlNode navigation."""

    @pytest.fixture
    def tree(self):
        leaf = XmlNode("url", text="https://example.com/a.png")
        image = XmlNode("image", children=(leaf,))
        return XmlNode("channel", attrs={"version": "2.0"}, children=(
            XmlNode("item", text="one"),
            image,
            XmlNode("item", text="two"),
        ))

    def test_find_returns_first_match(self, tree):
        assert tree.find("item").text == "one"
        assert tree.find("missing") is None

    def test_find_all_keeps_document_order(self, tree):
        assert [node.text for node in tree.find_all("item")] == ["one", "two"]

    def test_find_path(self, tree):
        assert tree.find_path("image/url").text == "https://example.com/a.png"
        assert tree.find_path("image/missing") is None
        assert tree.find_path("missing/url") is None

    def test_attributes_and_iteration(self, tree):
        assert tree.get("version") == "2.0"
        assert tree.get("missing", "default") == "default"
        assert [child.name for child in tree] == ["item", "image", "item"]

    def test_content_defaults_to_text(self):
        assert XmlNode("title", text="x").content == "x"
