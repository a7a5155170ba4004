"""FlowTrace — per-turn record of what each stage decided."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from loguru import logger


@dataclass
class TraceStep:
    step: int
    service: str  # coordinator | logic | toolbox | negotiation | presenter
    action: str
    data: dict[str, Any] = field(default_factory=dict)
    duration_ms: float | None = None


class FlowTrace:
    """Collects the steps of one turn; logged at debug level as they happen."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.steps: list[TraceStep] = []
        self._started = time.perf_counter()
        self._marks: dict[str, float] = {}

    def start(self, name: str) -> None:
        self._marks[name] = time.perf_counter()

    def record(
        self, service: str, action: str, data: dict[str, Any] | None = None, mark: str | None = None,
    ) -> None:
        duration = None
        if mark and mark in self._marks:
            duration = round((time.perf_counter() - self._marks.pop(mark)) * 1000, 1)
        step = TraceStep(len(self.steps) + 1, service, action, data or {}, duration)
        self.steps.append(step)
        took = f" ({duration}ms)" if duration is not None else ""
        logger.debug(f"[{self.session_id[:8]}] #{step.step} {service}.{action}{took}: {step.data}")

    @property
    def total_ms(self) -> float:
        return round((time.perf_counter() - self._started) * 1000, 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "total_ms": self.total_ms,
            "steps": [
                {
                    "step": s.step,
                    "service": s.service,
                    "action": s.action,
                    "data": s.data,
                    "duration_ms": s.duration_ms,
                }
                for s in self.steps
            ],
        }
