"""Unit tests for the billing database layer.

Engine helpers, session wiring and repositories, all against in-memory
SQLite so no database service is needed.
"""
