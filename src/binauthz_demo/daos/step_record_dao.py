import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlmodel import select

from binauthz_demo.daos.base import BaseDao
from binauthz_demo.models.step_record import (
    STEP_STATUS_COMPLETED,
    STEP_STATUS_FAILED,
    StepRecord,
)


class StepRecordDao(BaseDao):
    def find(self, workflow: str, scope: str, step: str) -> Optional[StepRecord]:
        statement = select(StepRecord).where(
            (StepRecord.workflow == workflow)
            & (StepRecord.scope == scope)
            & (StepRecord.step == step)
        )
        return self.session.exec(statement).first()

    def get_completed(self, workflow: str, scope: str) -> dict[str, StepRecord]:
        statement = select(StepRecord).where(
            (StepRecord.workflow == workflow)
            & (StepRecord.scope == scope)
            & (StepRecord.status == STEP_STATUS_COMPLETED)
        )
        return {record.step: record for record in self.session.exec(statement).all()}

    def mark_completed(
        self, workflow: str, scope: str, step: str, position: int, outputs: dict[str, Any]
    ) -> StepRecord:
        return self._upsert(
            workflow,
            scope,
            step,
            position=position,
            status=STEP_STATUS_COMPLETED,
            outputs=json.dumps(outputs, default=str),
            error=None,
        )

    def mark_failed(self, workflow: str, scope: str, step: str, position: int, error: str) -> StepRecord:
        return self._upsert(
            workflow,
            scope,
            step,
            position=position,
            status=STEP_STATUS_FAILED,
            outputs="{}",
            error=error,
        )

    def clear(self, workflow: str, scope: str) -> int:
        statement = select(StepRecord).where(
            (StepRecord.workflow == workflow) & (StepRecord.scope == scope)
        )
        with self.transaction() as session:
            records = session.exec(statement).all()
            for record in records:
                session.delete(record)
        return len(records)

    def list_records(self, workflow: Optional[str] = None, scope: Optional[str] = None) -> list[StepRecord]:
        statement = select(StepRecord)
        if workflow:
            statement = statement.where(StepRecord.workflow == workflow)
        if scope:
            statement = statement.where(StepRecord.scope == scope)
        statement = statement.order_by(StepRecord.workflow, StepRecord.scope, StepRecord.position)
        return list(self.session.exec(statement).all())

    def _upsert(self, workflow: str, scope: str, step: str, **fields: Any) -> StepRecord:
        with self.transaction() as session:
            record = self.find(workflow, scope, step)
            if record is None:
                record = StepRecord(workflow=workflow, scope=scope, step=step)
            for name, value in fields.items():
                setattr(record, name, value)
            record.updated_at = datetime.now(timezone.utc)
            session.add(record)
        self.session.refresh(record)
        return record
