"""
Generic keyed record table backing the SQL record store.

Each row holds one JSON item of a logical table (users, sessions, ...),
addressed by ``(table_name, record_key)``.
"""

from typing import Any, Dict

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin


class Record(Base, TimestampMixin):
    """One item of a logical table."""

    __tablename__ = "records"

    table_name: Mapped[str] = mapped_column(
        String(100),
        primary_key=True,
    )
    record_key: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
    )
    item: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Record {self.table_name}/{self.record_key}>"
