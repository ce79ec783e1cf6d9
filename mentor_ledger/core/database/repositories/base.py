"""
Base repository utilities.

Repositories here are bound to one ``AsyncSession`` and never commit: the
usage ledger opens the transaction, hands the session to the repositories it
needs, and commits or rolls back the unit of work as a whole.
"""

from __future__ import annotations

from typing import Generic, Optional, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

# Generic type for SQLModel entities
EntityType = TypeVar("EntityType", bound=SQLModel)

# Updates issued by repositories never touch objects already loaded in the session.
NO_SYNC = {"synchronize_session": False}


class SessionRepository(Generic[EntityType]):
    """Common data access for one entity inside a caller-owned transaction."""

    def __init__(self, session: AsyncSession, model: Type[EntityType]) -> None:
        """Initialize repository with async database session and SQLModel entity class.

        Args:
            session: Async session whose transaction the caller controls
            model: SQLModel entity class for this repository
        """
        self.session = session
        self.model = model

    async def add(self, entity: EntityType) -> EntityType:
        """Stage a new row and flush it so constraint violations surface here.

        Args:
            entity: SQLModel instance to persist

        Returns:
            The flushed entity
        """
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def get(self, key: str, *, fresh: bool = False) -> Optional[EntityType]:
        """Load an entity by primary key.

        Args:
            key: Primary key value
            fresh: Reload from the database even if the session already holds it

        Returns:
            The entity or None
        """
        return await self.session.get(self.model, key, populate_existing=fresh)


class QueryBuilder:
    """Utility class for building SQLModel-based database queries."""

    @staticmethod
    def apply_pagination(stmt, limit: Optional[int], offset: Optional[int]):
        """Apply pagination to a SQLModel select statement.

        Args:
            stmt: SQLModel select statement
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            Modified select statement with pagination applied
        """
        if limit is not None:
            stmt = stmt.limit(limit)
        if offset is not None:
            stmt = stmt.offset(offset)
        return stmt
