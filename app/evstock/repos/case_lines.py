from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select, update

from app.evstock.db.models import CaseLine


class CaseLineRepository:
    def __init__(self, db):
        self.db = db

    def get(self, case_line_id, *, lock: bool = False) -> CaseLine | None:
        query = select(CaseLine).where(CaseLine.id == case_line_id)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)
        return self.db.execute(query).scalars().first()

    def list_by_ids(self, case_line_ids: Iterable) -> list[CaseLine]:
        ids = list(case_line_ids)
        if not ids:
            return []
        return self.db.execute(select(CaseLine).where(CaseLine.id.in_(ids))).scalars().all()

    def bulk_update_status_by_ids(self, case_line_ids: Iterable, status: str) -> int:
        ids = [case_line_id for case_line_id in dict.fromkeys(case_line_ids) if case_line_id is not None]
        if not ids:
            return 0
        result = self.db.execute(
            update(CaseLine)
            .where(CaseLine.id.in_(ids))
            .values(status=status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)
