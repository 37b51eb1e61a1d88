"""Convention interface and the outcome each convention reports."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pixell_deploy.deploy.context import RunningDeployment


class ConventionOutcome(str, Enum):
    CONTINUE = "continue"
    SKIP_REMAINING = "skip_remaining"
    ABORT = "abort"


@dataclass(frozen=True)
class ConventionResult:
    """What the pipeline should do after a convention has run."""

    outcome: ConventionOutcome
    error: Optional[BaseException] = None

    @classmethod
    def abort(cls, error: BaseException) -> "ConventionResult":
        return cls(ConventionOutcome.ABORT, error)

    @property
    def is_abort(self) -> bool:
        return self.outcome is ConventionOutcome.ABORT

    @property
    def is_skip_remaining(self) -> bool:
        return self.outcome is ConventionOutcome.SKIP_REMAINING


ConventionResult.CONTINUE = ConventionResult(ConventionOutcome.CONTINUE)
ConventionResult.SKIP_REMAINING = ConventionResult(ConventionOutcome.SKIP_REMAINING)


class Convention:
    """One ordered step of a deployment.

    Install-phase conventions are bypassed once a skip has been requested;
    the others run regardless. ``rollback`` is called on every convention,
    in order, when the pipeline aborts.
    """

    install_phase = True

    @property
    def name(self) -> str:
        return type(self).__name__

    def install(self, deployment: RunningDeployment) -> Optional[ConventionResult]:
        raise NotImplementedError

    def rollback(self, deployment: RunningDeployment) -> None:
        return None
