# src/athlinked/db/__init__.py
"""Database configuration and utilities."""

from .session import Base, SessionLocal, build_engine

__all__ = ["Base", "SessionLocal", "build_engine"]
