"""
Foundation Tests for Telecast
=============================

Test suite for core foundation components including database,
configuration, logging, and validation systems.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone, timedelta
from unittest.mock import MagicMock

import pytest

from telecast.database.schema import DatabaseSchema
from telecast.database.connection import DatabaseConnection
from telecast.database.models import (
    Channel,
    ChannelStats,
    Episode,
    ScheduleEntry,
    format_timestamp,
    parse_timestamp,
)
from telecast.config.settings import TelecastSettings, load_settings
from telecast.config.settings import LoggingSettings
from telecast.utils.logging import (
    PerformanceLogger,
    StructuredFormatter,
    configure_application_logging,
    get_logger_for_component,
)
from telecast.utils.exceptions import (
    TelecastError, ConfigurationError, DatabaseError, ValidationError,
    ErrorCode, handle_exception
)
from telecast.utils.validators import URLValidator


class TestDatabaseSchema:
    """Test database schema creation and validation."""

    def test_create_tables(self, tmp_path):
        db_path = tmp_path / "test.db"
        schema = DatabaseSchema(str(db_path))

        schema.create_tables()

        with sqlite3.connect(db_path) as conn:
            tables = [row[0] for row in conn.execute("""
                SELECT name FROM sqlite_master
                WHERE type='table' AND name NOT LIKE 'sqlite_%'
            """).fetchall()]

        assert set(tables) == {"channel", "episode"}

    def test_verify_schema(self, tmp_path):
        schema = DatabaseSchema(str(tmp_path / "test.db"))

        assert not schema.verify_schema()

        schema.create_tables()
        assert schema.verify_schema()

    def test_create_tables_is_idempotent(self, tmp_path):
        schema = DatabaseSchema(str(tmp_path / "test.db"))

        schema.create_tables()
        schema.create_tables()

        assert schema.verify_schema()

    def test_quality_bounds_enforced(self, tmp_path):
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()

        with sqlite3.connect(db_path) as conn:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute("""
                    INSERT INTO channel (channel_id, rss, created_at, quality)
                    VALUES ('c', 'https://x', '2024-01-01T00:00:00+00:00', 101)
                """)

    def test_episode_cascade_delete(self, tmp_path):
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()
        db = DatabaseConnection(str(db_path), pool_size=1)

        with db.transaction() as conn:
            conn.execute("""
                INSERT INTO channel (channel_id, rss, created_at)
                VALUES ('c', 'https://x', '2024-01-01T00:00:00+00:00')
            """)
            conn.execute("""
                INSERT INTO episode (channel_id, episode_id, created_at, updated_at)
                VALUES ('c', 'e', '2024-01-01T00:00:00+00:00', '2024-01-01T00:00:00+00:00')
            """)

        db.execute_update("DELETE FROM channel WHERE channel_id = 'c'")

        assert db.execute_one("SELECT COUNT(*) FROM episode")[0] == 0
        db.close_all_connections()


class TestDatabaseConnection:
    """Test connection pool behavior."""

    def test_transaction_rolls_back(self, tmp_path):
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()
        db = DatabaseConnection(str(db_path), pool_size=1)

        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute("""
                    INSERT INTO channel (channel_id, rss, created_at)
                    VALUES ('c', 'https://x', '2024-01-01T00:00:00+00:00')
                """)
                raise RuntimeError("abort")

        assert db.execute_one("SELECT COUNT(*) FROM channel")[0] == 0
        db.close_all_connections()

    def test_database_info(self, tmp_path):
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()
        db = DatabaseConnection(str(db_path), pool_size=2)

        info = db.get_database_info()

        assert info["table_counts"] == {"channel": 0, "episode": 0}
        assert info["journal_mode"] == "wal"
        assert info["pool_size"] == 2
        # Opened on demand, one borrow needs one connection
        assert info["open_connections"] == 1
        db.close_all_connections()
        assert db.open_connections == 0

    def test_info_before_schema_exists(self, tmp_path):
        db = DatabaseConnection(str(tmp_path / "fresh.db"), pool_size=1)

        assert db.get_database_info()["table_counts"] == {"channel": 0, "episode": 0}
        db.close_all_connections()

    def test_connections_are_reused(self, tmp_path):
        db = DatabaseConnection(str(tmp_path / "test.db"), pool_size=3)

        with db.get_connection() as first:
            pass
        with db.get_connection() as second:
            pass

        assert first is second
        assert db.open_connections == 1
        db.close_all_connections()

    def test_overflow_connection_closed_on_release(self, tmp_path):
        db = DatabaseConnection(str(tmp_path / "test.db"), pool_size=1, acquire_timeout=0.01)

        with db.get_connection():
            with db.get_connection():
                assert db.open_connections == 2

        assert db.open_connections == 1
        db.close_all_connections()

    def test_failed_block_leaves_no_open_transaction(self, tmp_path):
        db_path = tmp_path / "test.db"
        DatabaseSchema(str(db_path)).create_tables()
        db = DatabaseConnection(str(db_path), pool_size=1)

        with pytest.raises(ValueError):
            with db.get_connection() as conn:
                conn.execute("""
                    INSERT INTO channel (channel_id, rss, created_at)
                    VALUES ('c', 'https://x', '2024-01-01T00:00:00+00:00')
                """)
                raise ValueError("abort")

        with db.get_connection() as conn:
            assert not conn.in_transaction
        assert db.execute_one("SELECT COUNT(*) FROM channel")[0] == 0
        db.close_all_connections()


class TestModels:
    """Test data model behavior."""

    def test_timestamps_sort_as_strings(self):
        early = datetime(2024, 1, 1, 23, 0, tzinfo=timezone(timedelta(hours=-5)))
        late = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)

        assert format_timestamp(early) == "2024-01-02T04:00:00+00:00"
        assert format_timestamp(late) < format_timestamp(early)

    def test_timestamp_round_trip(self):
        value = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)

        assert parse_timestamp(format_timestamp(value)) == value
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_channel_tags_deduplicated(self):
        channel = Channel(channel_id="c", rss="https://x", tags=["audio", "", "audio", "english"])
        assert channel.tags == ["audio", "english"]

    def test_channel_quality_bounds(self):
        with pytest.raises(ValueError):
            Channel(channel_id="c", rss="https://x", quality=101)

    def test_channel_from_db_row(self):
        row = {
            "channel_id": "c",
            "rss": "https://x",
            "categories": '["News"]',
            "tags": '["audio"]',
            "explicit": 1,
            "created_at": "2024-01-01T00:00:00+00:00",
            "updated_at": "2024-01-02T00:00:00+00:00",
        }

        channel = Channel.from_db_row(row)

        assert channel.categories == ["News"]
        assert channel.tags == ["audio"]
        assert channel.explicit is True
        assert channel.updated_at == datetime(2024, 1, 2, tzinfo=timezone.utc)

    def test_episode_title_default(self):
        assert Episode(channel_id="c", episode_id="e", title=None).title == "Untitled"
        assert Episode(channel_id="c", episode_id="e", title="").title == "Untitled"

    def test_episode_media_kind(self):
        assert Episode(channel_id="c", episode_id="e", src_type="video/mp4").is_video
        assert Episode(channel_id="c", episode_id="e", src_type="audio/mpeg").is_audio
        assert not Episode(channel_id="c", episode_id="e").is_audio

    def test_stats_rounding(self):
        assert ChannelStats(avg_duration=10.5).avg_duration_seconds == 11
        assert ChannelStats(avg_duration=10.49).avg_duration_seconds == 10
        assert ChannelStats().avg_duration_seconds is None

    def test_schedule_entry(self):
        entry = ScheduleEntry(channel_id="c", rss="https://" + "a" * 80)

        assert entry.never_attempted
        assert entry.short_url == "a" * 50


class TestConfiguration:
    """Test settings loading."""

    def test_defaults(self):
        settings = TelecastSettings()

        assert settings.refresh.batch_size == 250
        assert settings.refresh.fetch_timeout == 15.0
        assert settings.refresh.max_episodes_per_crawl == 50
        assert settings.refresh.user_agent == "Telecasts/1.0"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("TELECAST_REFRESH__BATCH_SIZE", "10")
        monkeypatch.setenv("TELECAST_REFRESH__FETCH_TIMEOUT", "2.5")

        settings = TelecastSettings()

        assert settings.refresh.batch_size == 10
        assert settings.refresh.fetch_timeout == 2.5

    def test_debug_forces_debug_level(self):
        assert TelecastSettings(debug=True).get_effective_log_level() == "DEBUG"

    def test_user_agent_single_line(self):
        from telecast.config.settings import RefreshSettings

        with pytest.raises(ValueError):
            RefreshSettings(user_agent="bad\r\nX-Injected: 1")

    def test_invalid_value_is_configuration_error(self, monkeypatch):
        monkeypatch.setenv("TELECAST_REFRESH__BATCH_SIZE", "0")

        with pytest.raises(ConfigurationError):
            load_settings()


class TestExceptions:
    """Test exception hierarchy and helpers."""

    def test_error_code_in_message(self):
        error = DatabaseError("Failed", error_code=ErrorCode.DATABASE_ERROR)

        assert str(error) == "[D006] Failed"
        assert error.to_dict()["error_code"] == "D006"

    def test_validation_error_context(self):
        error = ValidationError("bad", field_name="url")

        assert error.context["field_name"] == "url"
        assert error.user_message == "Invalid url: bad"

    def test_handle_exception_passthrough(self):
        logger = MagicMock()
        original = ConfigurationError("missing")

        assert handle_exception(original, logger, "load") is original
        logger.error.assert_called_once()

    def test_handle_exception_wraps_network_errors(self):
        error = handle_exception(ConnectionError("reset"), MagicMock(), "fetch")

        assert isinstance(error, TelecastError)
        assert error.error_code == ErrorCode.FEED_NETWORK_ERROR
        assert error.recoverable


class TestLogging:
    """Test logging helpers."""

    def test_component_logger_context(self):
        adapter = get_logger_for_component("normalizer", channel_id="c")

        assert adapter.logger.name == "telecast.normalizer"
        assert adapter.extra == {"component": "normalizer", "channel_id": "c"}

    def test_structured_formatter_includes_extra(self):
        record = logging.LogRecord("telecast.test", logging.INFO, __file__, 1, "hello", None, None)
        record.component = "pipeline"

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "hello"
        assert data["extra"]["component"] == "pipeline"

    def test_performance_logger(self):
        logger = MagicMock()

        with PerformanceLogger(logger, "refresh batch", channels=3):
            pass

        message = logger.info.call_args[0][0]
        assert message.startswith("Completed refresh batch")
        assert logger.info.call_args[1]["extra"]["channels"] == 3

    def test_performance_logger_reports_failure(self):
        logger = MagicMock()

        with pytest.raises(RuntimeError):
            with PerformanceLogger(logger, "refresh batch"):
                raise RuntimeError("boom")

        logger.error.assert_called_once()
        assert logger.error.call_args[1]["extra"]["success"] is False

    def test_component_logger_drops_empty_context(self):
        adapter = get_logger_for_component("fetcher", channel_id=None, feed_url="https://x")

        assert adapter.extra == {"component": "fetcher", "feed_url": "https://x"}

    def test_call_extra_merges_with_component_context(self):
        adapter = get_logger_for_component("pipeline", channel_id="c")

        _, kwargs = adapter.process("msg", {"extra": {"status": 404}})

        assert kwargs["extra"] == {"component": "pipeline", "channel_id": "c", "status": 404}

    def test_file_log_is_json_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "telecast.log"
        logger = configure_application_logging(
            LoggingSettings(file_path=str(log_file), console_logging=False), level="DEBUG"
        )
        try:
            get_logger_for_component("pipeline", channel_id="c").info("refreshed")
            for handler in logger.handlers:
                handler.flush()

            record = json.loads(log_file.read_text(encoding="utf-8").splitlines()[-1])
            assert record["message"] == "refreshed"
            assert record["level"] == "INFO"
            assert record["extra"] == {"component": "pipeline", "channel_id": "c"}
        finally:
            configure_application_logging(LoggingSettings(file_path=None, console_logging=False))

    def test_reconfiguring_replaces_handlers(self):
        settings = LoggingSettings(file_path=None, console_logging=True)

        configure_application_logging(settings)
        logger = configure_application_logging(settings)
        try:
            assert len(logger.handlers) == 1
            assert logger.level == logging.INFO
        finally:
            configure_application_logging(LoggingSettings(file_path=None, console_logging=False))


class TestURLValidator:
    """Test feed URL validation."""

    def test_normalizes(self):
        assert URLValidator.validate_feed_url("  HTTPS://Example.COM  ") == "https://example.com/"
        assert URLValidator.validate_feed_url("https://example.com/feed#frag") == "https://example.com/feed"

    @pytest.mark.parametrize("url", [
        "", None, "example.com/feed", "ftp://example.com/feed", "javascript:alert(1)",
        "http://127.0.0.1/feed", "http://192.168.1.5/rss",
    ])
    def test_rejects(self, url):
        with pytest.raises(ValidationError):
            URLValidator.validate_feed_url(url)
