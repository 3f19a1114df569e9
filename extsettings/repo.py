from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Mapping

from sqlalchemy import Engine, LargeBinary, cast, delete, func, select
from sqlalchemy.orm import Session, sessionmaker

from .db import Base
from .models import StoredSetting


def init_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)


@contextmanager
def db_session(factory: sessionmaker) -> Iterator[Session]:
    db = factory()
    try:
        yield db
    finally:
        db.close()


def load_area(db: Session, area: str) -> dict[str, Any]:
    rows = db.scalars(select(StoredSetting).where(StoredSetting.area == area)).all()
    return {r.key: json.loads(r.value_json) for r in rows}


def upsert_records(db: Session, area: str, records: Mapping[str, Any]) -> None:
    now = datetime.utcnow()
    for key, record in records.items():
        row = db.get(StoredSetting, (area, key))
        if row is None:
            row = StoredSetting(area=area, key=key)
            db.add(row)
        row.value_json = json.dumps(record)
        row.updated_at = now
    db.commit()


def clear_area(db: Session, area: str) -> None:
    db.execute(delete(StoredSetting).where(StoredSetting.area == area))
    db.commit()


def area_bytes_in_use(db: Session, area: str) -> int:
    """Same accounting as browser storage: UTF-8 bytes of key + JSON value."""
    # length() of a BLOB counts bytes, of TEXT counts characters
    key_bytes = func.length(cast(StoredSetting.key, LargeBinary))
    value_bytes = func.length(cast(StoredSetting.value_json, LargeBinary))
    total = db.scalar(
        select(func.coalesce(func.sum(key_bytes + value_bytes), 0)).where(StoredSetting.area == area)
    )
    return int(total or 0)
