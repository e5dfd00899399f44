from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

STEP_STATUS_COMPLETED = "completed"
STEP_STATUS_FAILED = "failed"


class StepRecord(SQLModel, table=True):
    """Completion marker for one step of a workflow run."""

    uuid: UUID = Field(default_factory=uuid4, primary_key=True)
    workflow: str = Field(index=True)
    scope: str = Field(index=True)
    step: str
    position: int = 0
    status: str = STEP_STATUS_COMPLETED
    outputs: str = "{}"
    error: Optional[str] = None
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("idx_step_record_scope_step", "workflow", "scope", "step", unique=True),
    )
