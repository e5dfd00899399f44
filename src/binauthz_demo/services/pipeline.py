import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from binauthz_demo.core.logger import _m
from binauthz_demo.daos.step_record_dao import StepRecordDao
from binauthz_demo.models.step_record import StepRecord

logger = logging.getLogger(__name__)

StepHandler = Callable[[dict[str, Any]], Awaitable[Optional[dict[str, Any]]]]


@dataclass
class Step:
    name: str
    handler: StepHandler
    always_run: bool = False


class Pipeline:
    """Runs named steps in order and records a completion marker after each one.

    Outputs returned by a step are merged into the shared context and stored
    with its marker, so a resumed run can restore them without re-running the
    step.
    """

    def __init__(self, workflow: str, scope: str, steps: list[Step], step_record_dao: StepRecordDao):
        self.workflow = workflow
        self.scope = scope
        self.steps = steps
        self.step_record_dao = step_record_dao

    @staticmethod
    def _reusable(record: StepRecord) -> Optional[dict[str, Any]]:
        outputs = json.loads(record.outputs or "{}")
        for key, value in outputs.items():
            if key.endswith("_file") and not os.path.exists(str(value)):
                return None
        return outputs

    async def run(self, context: dict[str, Any], resume: bool = False) -> list[str]:
        """Execute the pipeline; returns the names of steps skipped on resume."""
        extra = {"workflow": self.workflow, "scope": self.scope}
        if resume:
            completed = self.step_record_dao.get_completed(self.workflow, self.scope)
        else:
            self.step_record_dao.clear(self.workflow, self.scope)
            completed = {}

        skipped = []
        for position, step in enumerate(self.steps):
            record = completed.get(step.name)
            if record is not None and not step.always_run:
                outputs = self._reusable(record)
                if outputs is not None:
                    context.update(outputs)
                    skipped.append(step.name)
                    logger.info(_m(f"Skipping completed step {step.name}", extra))
                    continue

            logger.info(_m(f"Running step {step.name}", extra))
            try:
                outputs = await step.handler(context) or {}
            except Exception as exc:
                self.step_record_dao.mark_failed(self.workflow, self.scope, step.name, position, str(exc))
                raise
            context.update(outputs)
            self.step_record_dao.mark_completed(self.workflow, self.scope, step.name, position, outputs)
        return skipped
