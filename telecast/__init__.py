"""
Telecast - Podcast & Video Feed Catalogue
=========================================

Ingests podcast and video feeds (RSS 2.0, Atom, YouTube, RSS 1.0/RDF),
normalizes them into canonical channel/episode records and keeps a large
tracked population fresh with batched, concurrent refreshes.

Main Components:
- Ingestion: XML parsing, field extraction and normalization
- Refresh: channel selection, fetching, upsert and quality scoring
- Database: SQLite with connection pooling and schema management
- Configuration: environment variables with Pydantic validation
"""

__version__ = "1.0.0"
__author__ = "Telecast Development Team"
__description__ = "Podcast and video feed ingestion and refresh engine"

# Core imports for easy access
from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.schema import DatabaseSchema
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import TelecastError

__all__ = [
    "get_settings",
    "get_db_manager",
    "DatabaseSchema",
    "configure_application_logging",
    "get_logger_for_component",
    "TelecastError",
]
