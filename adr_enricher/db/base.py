"""
Base model for SQLAlchemy models.

This module provides a base class for SQLAlchemy models with common
columns and lookup helpers.
"""

from datetime import datetime
from typing import Optional, Type, TypeVar

from sqlalchemy import DateTime, String, func, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

# Type variable for the model class
T = TypeVar("T", bound="Base")


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Identifiers are opaque strings issued by the reporting API.
    """

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @classmethod
    def get_by_id(
            cls: Type[T], db: Session, id: str, *, for_update: bool = False
    ) -> Optional[T]:
        """
        Get a record by ID.

        Args:
            db: Database session
            id: Record ID
            for_update: Lock the row until the transaction ends

        Returns:
            The record if found, None otherwise
        """
        stmt = select(cls).where(cls.id == id)
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalars().first()
