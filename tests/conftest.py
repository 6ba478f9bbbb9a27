"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for Telecast tests.

- Session-scoped database created once, cleared between tests
- Sample documents for every supported feed dialect
"""

import pytest
import tempfile
import os
import sys
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before any imports
_TEST_DIR = Path(tempfile.gettempdir()) / "telecast_tests"
os.environ["TELECAST_DEBUG"] = "true"
os.environ["TELECAST_DATABASE__PATH"] = str(_TEST_DIR / "telecast_settings.db")
os.environ["TELECAST_LOGGING__FILE_PATH"] = ""
os.environ["TELECAST_LOGGING__CONSOLE_LOGGING"] = "false"


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def session_test_db():
    """Session-scoped test database (created once for all tests).

    Safe because tests use the clean_db fixture to clear data between tests.

    Database name: telecast_test.db (easier to inspect/debug)
    """
    from telecast.database.schema import DatabaseSchema

    _TEST_DIR.mkdir(exist_ok=True)
    db_path = _TEST_DIR / "telecast_test.db"

    if db_path.exists():
        db_path.unlink()

    schema = DatabaseSchema(str(db_path))
    schema.create_tables()

    yield str(db_path)

    try:
        db_path.unlink()
    except FileNotFoundError:
        pass


@pytest.fixture
def clean_db(session_test_db):
    """Clean database fixture (clears data between tests).

    Returns:
        str: Path to clean database ready for testing
    """
    from telecast.database.connection import DatabaseConnection

    conn = DatabaseConnection(session_test_db, pool_size=2)

    with conn.get_connection() as db:
        # Episodes first, they reference channels
        db.execute("DELETE FROM episode")
        db.execute("DELETE FROM channel")
        db.commit()

    conn.close_all_connections()

    yield session_test_db


@pytest.fixture
def db_connection(clean_db):
    """Create a database connection manager for testing."""
    from telecast.database.connection import DatabaseConnection

    connection = DatabaseConnection(clean_db, pool_size=2)
    yield connection

    connection.close_all_connections()


@pytest.fixture
def test_settings(clean_db):
    """Settings pointing at the test database, without log files."""
    from telecast.config.settings import (
        TelecastSettings,
        DatabaseSettings,
        LoggingSettings,
        RefreshSettings,
    )

    return TelecastSettings(
        database=DatabaseSettings(path=clean_db, pool_size=2),
        logging=LoggingSettings(file_path=None, console_logging=False),
        refresh=RefreshSettings(batch_size=250, fetch_timeout=15.0),
    )


# ============================================================================
# Sample Feed Documents
# ============================================================================


RSS_PODCAST = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd"
     xmlns:atom="http://www.w3.org/2005/Atom"
     xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>The Example Show</title>
    <link>http://example.com/show</link>
    <atom:link href="https://feeds.example.com/show.xml" rel="self" type="application/rss+xml"/>
    <description><![CDATA[<p>A show about <b>examples</b> &amp; more.</p>]]></description>
    <language>en-us</language>
    <itunes:author>Jane Host</itunes:author>
    <itunes:explicit>yes</itunes:explicit>
    <itunes:image href="http://example.com/cover.jpg"/>
    <itunes:category text="Technology">
      <itunes:category text="Software How-To"/>
    </itunes:category>
    <itunes:category text="Education"/>
    <item>
      <title>Episode 2: Deeper</title>
      <guid isPermaLink="false">ep-2</guid>
      <link>http://example.com/show/2</link>
      <pubDate>Tue, 02 Jan 2024 10:00:00 GMT</pubDate>
      <description>Second &lt;b&gt;episode&lt;/b&gt;</description>
      <enclosure url="http://cdn.example.com/ep2.mp3" length="12345678" type="audio/mpeg"/>
      <itunes:duration>01:02:03</itunes:duration>
      <itunes:season>1</itunes:season>
      <itunes:episode>2</itunes:episode>
      <itunes:explicit>no</itunes:explicit>
    </item>
    <item>
      <title>Episode 1: Start</title>
      <guid>ep-1</guid>
      <pubDate>Mon, 01 Jan 2024 10:00:00 +0000</pubDate>
      <enclosure url="https://cdn.example.com/ep1.mp3" length="1000" type="audio/mpeg"/>
      <itunes:duration>1800</itunes:duration>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xml:lang="de">
  <title type="html">Atom &amp;amp; Friends</title>
  <subtitle>Weekly notes</subtitle>
  <link href="http://atom.example.org/" rel="alternate"/>
  <link href="http://atom.example.org/feed.atom" rel="self"/>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <icon>http://atom.example.org/icon.png</icon>
  <author><name>Atom Author</name></author>
  <updated>2024-03-01T12:00:00Z</updated>
  <entry>
    <title>First entry</title>
    <id>tag:example.com,2024:ep-42</id>
    <link href="http://atom.example.org/entries/42"/>
    <published>2024-03-01T09:30:00+01:00</published>
    <updated>2024-03-02T09:30:00+01:00</updated>
    <summary>Entry summary</summary>
  </entry>
</feed>
"""

RDF_FEED = """<?xml version="1.0"?>
<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
         xmlns="http://purl.org/rss/1.0/"
         xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel rdf:about="http://rdf.example.net/">
    <title>RDF Channel</title>
    <link>http://rdf.example.net/</link>
    <description>Old school</description>
    <dc:language>fr</dc:language>
  </channel>
  <image rdf:about="http://rdf.example.net/logo.png">
    <title>Logo</title>
    <url>http://rdf.example.net/logo.png</url>
    <link>http://rdf.example.net/</link>
  </image>
  <item rdf:about="http://rdf.example.net/a">
    <title>RDF item</title>
    <link>http://rdf.example.net/a</link>
    <dc:date>2024-02-10T08:00:00Z</dc:date>
  </item>
</rdf:RDF>
"""

YOUTUBE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015"
      xmlns:media="http://search.yahoo.com/mrss/"
      xmlns="http://www.w3.org/2005/Atom">
  <link rel="self" href="http://www.youtube.com/feeds/videos.xml?channel_id=UCabc"/>
  <id>yt:channel:UCabc</id>
  <yt:channelId>UCabc</yt:channelId>
  <title>Example Tube</title>
  <link rel="alternate" href="https://www.youtube.com/channel/UCabc"/>
  <author>
    <name>Example Tube</name>
    <uri>https://www.youtube.com/channel/UCabc</uri>
  </author>
  <published>2015-01-01T00:00:00+00:00</published>
  <entry>
    <id>yt:video:vid001</id>
    <yt:videoId>vid001</yt:videoId>
    <yt:channelId>UCabc</yt:channelId>
    <title>First video</title>
    <link rel="alternate" href="https://www.youtube.com/watch?v=vid001"/>
    <published>2024-04-01T15:00:00+00:00</published>
    <media:group>
      <media:title>First video</media:title>
      <media:content url="https://www.youtube.com/v/vid001?version=3" type="application/x-shockwave-flash" width="640" height="390"/>
      <media:thumbnail url="https://i1.ytimg.com/vi/vid001/hqdefault.jpg" width="480" height="360"/>
      <media:description>Video description</media:description>
    </media:group>
  </entry>
</feed>
"""


def build_rss(link: str, item_count: int, prefix: str = "item", media_type: str = "audio/mpeg") -> str:
    """Minimal RSS 2.0 document with ``item_count`` numbered items."""
    items = "".join(
        f"""
    <item>
      <title>{prefix} {i}</title>
      <guid>{prefix}-{i}</guid>
      <enclosure url="https://cdn.example.com/{prefix}-{i}" length="{i}" type="{media_type}"/>
      <itunes:duration>{600 + i}</itunes:duration>
    </item>"""
        for i in range(item_count)
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>{prefix} channel</title>
    <link>{link}</link>
    <language>en</language>{items}
  </channel>
</rss>
"""


@pytest.fixture
def rss_podcast():
    return RSS_PODCAST


@pytest.fixture
def atom_feed():
    return ATOM_FEED


@pytest.fixture
def rdf_feed():
    return RDF_FEED


@pytest.fixture
def youtube_feed():
    return YOUTUBE_FEED


@pytest.fixture
def sample_channels():
    """Generate sample channels for testing."""
    from telecast.database.models import Channel

    return [
        Channel(
            channel_id="example.com/show",
            rss="https://feeds.example.com/show.xml",
            title="The Example Show",
            language="en-us",
            tags=[],
        ),
        Channel(
            channel_id="youtube.com/channel/UCabc",
            rss="https://www.youtube.com/feeds/videos.xml?channel_id=UCabc",
            title="Example Tube",
            tags=["youtube"],
        ),
    ]


@pytest.fixture
def rss_builder():
    """Factory for numbered RSS documents."""
    return build_rss
