"""Pytest fixtures for Keyforge tests."""

from .database import db_engine, db_connection, file_engine
from .service import generator, service, frozen_clock

__all__ = [
    # Database fixtures
    "db_engine",
    "db_connection",
    "file_engine",
    # Service fixtures
    "generator",
    "service",
    "frozen_clock",
]
