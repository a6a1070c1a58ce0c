import logging
from typing import Any, Dict, List, Optional

from novah.schemas.research import StepStatus, StepType, ThinkingStep

logger = logging.getLogger(__name__)

_STATUS_ORDER = {
    StepStatus.pending: 0,
    StepStatus.processing: 1,
    StepStatus.complete: 2,
}


class ThinkingStepTracker:
    """
    Append-only log of pipeline phases for one research run.
    Ids are assigned 1, 2, 3... and a step's status never moves backwards.
    """

    def __init__(self):
        self._steps: List[ThinkingStep] = []
        self._next_id = 1

    @property
    def steps(self) -> List[ThinkingStep]:
        return [step.model_copy(deep=True) for step in self._steps]

    def add(
        self,
        step_type: StepType,
        title: str,
        content: str,
        status: StepStatus = StepStatus.pending,
        data: Optional[Dict[str, Any]] = None,
    ) -> ThinkingStep:
        step = ThinkingStep(
            id=self._next_id,
            type=step_type,
            title=title,
            content=content,
            status=status,
            data=data,
        )
        self._next_id += 1
        self._steps.append(step)
        logger.debug(f"[STEPS] #{step.id} {step_type.value} → {status.value}")
        return step

    def start(
        self,
        step_type: StepType,
        title: str,
        content: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> ThinkingStep:
        return self.add(step_type, title, content, StepStatus.processing, data)

    def get(self, step_id: int) -> ThinkingStep:
        for step in self._steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def advance(self, step_id: int, status: StepStatus) -> ThinkingStep:
        step = self.get(step_id)
        if _STATUS_ORDER[status] < _STATUS_ORDER[step.status]:
            raise ValueError(
                f"Step #{step_id} cannot move from {step.status.value} back to {status.value}"
            )
        step.status = status
        return step

    def complete(
        self,
        step_id: int,
        content: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ThinkingStep:
        step = self.advance(step_id, StepStatus.complete)
        if content is not None:
            step.content = content
        if data is not None:
            step.data = data
        return step

    def finalize(self) -> List[ThinkingStep]:
        """Mark every remaining step complete and return the log."""
        for step in self._steps:
            step.status = StepStatus.complete
        return self.steps
