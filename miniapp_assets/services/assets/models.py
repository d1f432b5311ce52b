"""
DTO for a generation run: Artifact (saved file), FailureReport (slot that produced nothing), RunResult.
"""
from __future__ import annotations

from pydantic import BaseModel, Field

from miniapp_assets.services.image_generation.base import Slot


class Artifact(BaseModel):
    """Generated and persisted asset. Created once per successful slot, never mutated."""

    slot: Slot
    filename: str = Field(..., description="Unique within the run: <tag>-<slot>-<timestamp>.<ext>")
    path: str
    size_bytes: int
    media_type: str
    provider_tag: str

    model_config = {"frozen": True}


class FailureReport(BaseModel):
    """Final, irrecoverable outcome of a slot."""

    slot: Slot
    reason: str
    attempts: int = 0

    model_config = {"frozen": True}


class RunResult(BaseModel):
    """Terminal value returned to the caller; not persisted."""

    per_slot: dict[Slot, Artifact | FailureReport] = Field(default_factory=dict)
    total_duration_ms: int = 0
    config_updated: bool = False

    @property
    def artifacts(self) -> dict[Slot, Artifact]:
        return {s: o for s, o in self.per_slot.items() if isinstance(o, Artifact)}

    @property
    def failures(self) -> dict[Slot, FailureReport]:
        return {s: o for s, o in self.per_slot.items() if isinstance(o, FailureReport)}

    @property
    def all_succeeded(self) -> bool:
        return bool(self.per_slot) and not self.failures

    def succeeded(self, slot: Slot) -> bool:
        return isinstance(self.per_slot.get(slot), Artifact)

    def summary_lines(self) -> list[str]:
        lines = []
        for slot, outcome in self.per_slot.items():
            if isinstance(outcome, Artifact):
                lines.append(f"{slot.value}: {outcome.filename} ({outcome.size_bytes / 1024:.2f} KB)")
            else:
                lines.append(f"{slot.value}: FAILED after {outcome.attempts} attempt(s): {outcome.reason}")
        lines.append(f"total: {self.total_duration_ms / 1000:.1f}s")
        return lines
