"""
SQLAlchemy models for the persistent queue.
"""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class QueuedMessage(Base):
    """
    A message waiting in the queue.

    `id` is assigned by SQLite on insert and only ever grows (AUTOINCREMENT),
    so it alone defines FIFO order. `body` is the JSON encoding of the message.
    """

    __tablename__ = "messages"
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"QueuedMessage(id={self.id})"
