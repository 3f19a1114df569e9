from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


class StoredSetting(Base):
    """One persisted value in one storage area (`local` | `sync`)."""

    __tablename__ = "stored_settings"

    area: Mapped[str] = mapped_column(String(16), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)

    # JSON-encoded stored record, e.g. {"value": true}
    value_json: Mapped[str] = mapped_column(Text, default="{}", nullable=False)

    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
