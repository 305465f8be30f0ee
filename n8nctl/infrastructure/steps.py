"""Ordered step execution with fatal/advisory failure semantics.

Every coordinator describes its work as a list of named steps. A fatal step
that fails stops the run; an advisory step that fails is logged as a warning
and recorded in the report, and the run continues. A step can always degrade
itself to advisory by raising :class:`DegradedStepWarning`. ``UserCancelled``
is never swallowed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from n8nctl.utils.errors import DegradedStepWarning, UserCancelled

logger = logging.getLogger(__name__)


@dataclass
class Step:
    """A named unit of work in a coordinator run."""

    name: str
    action: Callable[[], Any]
    fatal: bool = False
    description: str = ""


@dataclass
class StepOutcome:
    """What happened when a step ran."""

    name: str
    success: bool
    fatal: bool
    result: Any = None
    error: Optional[Exception] = None

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return getattr(self.error, "message", None) or str(self.error)


@dataclass
class StepReport:
    """Outcome of a full run, returned to the caller."""

    outcomes: List[StepOutcome] = field(default_factory=list)
    failed_step: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        """True when no fatal step failed."""
        return self.error is None

    @property
    def advisories(self) -> List[StepOutcome]:
        """Advisory failures collected during the run."""
        return [outcome for outcome in self.outcomes if not outcome.success and not outcome.fatal]

    @property
    def warnings(self) -> List[str]:
        return [f"{outcome.name}: {outcome.message}" for outcome in self.advisories]

    def result_of(self, name: str) -> Any:
        """Return value of the named step, or None."""
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome.result
        return None


class StepRunner:
    """Runs steps in order, stopping on the first fatal failure."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def run(self, steps: List[Step]) -> StepReport:
        """
        Execute ``steps`` in order.

        Args:
            steps: Steps to run

        Returns:
            StepReport: Outcomes of the steps that ran; ``error`` is set when a
                fatal step failed

        Raises:
            UserCancelled: Propagated unchanged from any step
        """
        report = StepReport()

        for step in steps:
            if step.description:
                logger.info(step.description)
            logger.debug("Running step '%s'", step.name)

            try:
                result = step.action()
            except UserCancelled:
                raise
            except DegradedStepWarning as e:
                logger.warning(e.message)
                report.outcomes.append(StepOutcome(step.name, success=False, fatal=False, error=e))
                continue
            except Exception as e:
                message = getattr(e, "message", None) or str(e)
                if step.fatal:
                    logger.error(message)
                    report.outcomes.append(StepOutcome(step.name, success=False, fatal=True, error=e))
                    report.failed_step = step.name
                    report.error = e
                    return report

                logger.warning("%s failed: %s", step.name, message)
                report.outcomes.append(StepOutcome(step.name, success=False, fatal=False, error=e))
                continue

            report.outcomes.append(StepOutcome(step.name, success=True, fatal=step.fatal, result=result))

        return report
