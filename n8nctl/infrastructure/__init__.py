"""Step-based coordinators for host setup and stack updates."""

from .steps import Step, StepOutcome, StepReport, StepRunner

__all__ = ["Step", "StepOutcome", "StepReport", "StepRunner"]
