from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, DateTime, Index

from .directory import Base  # reuse same metadata


class AuditEntry(Base):
    """One immutable record of a state-changing action.

    Rows are inserted by AuditWriter and never updated or deleted by the
    application. ``user_role`` is the actor's role when the action happened;
    ``old_value``/``new_value`` hold JSON-encoded snapshots (see services.snapshots)
    and the matching ``*_kind`` columns the shape they were written with.
    """
    __tablename__ = 'audit_entries'
    __table_args__ = (
        Index('ix_audit_entries_changed_at_id', 'changed_at', 'id'),
        {'sqlite_autoincrement': True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    record_id: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # key_value / field_diff; NULL on legacy rows, whose shape is inferred on read
    old_value_kind: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    new_value_kind: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    user_role: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    affected_user_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f'<AuditEntry {self.id} {self.category}:{self.record_id} {self.action}>'
