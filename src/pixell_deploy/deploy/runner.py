"""Runs the ordered conventions of a deployment."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Sequence

import structlog

from pixell_deploy.core.exceptions import ConventionFailureError
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions.base import Convention, ConventionResult
from pixell_deploy.utils.service_messages import AbstractLog

logger = structlog.get_logger()


class PipelineState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"


class ConventionProcessor:
    """Executes conventions strictly in order against one deployment.

    The processor has no knowledge of individual conventions. A skip is
    requested through the skip-remaining flag or a SKIP_REMAINING result, after
    which only non-install conventions still run. An exception or an ABORT
    result stops the run, gives every convention a chance to roll back (the
    journal writer records the failure there) and is re-raised as a
    ConventionFailureError.
    """

    def __init__(self, deployment: RunningDeployment, conventions: Sequence[Convention], log: AbstractLog):
        self.deployment = deployment
        self.conventions: List[Convention] = list(conventions)
        self.log = log
        self.state = PipelineState.PENDING
        self.current_index: Optional[int] = None

    def run(self) -> PipelineState:
        self.state = PipelineState.RUNNING
        current: Optional[Convention] = None
        try:
            for index, convention in enumerate(self.conventions):
                self.current_index = index
                current = convention

                if self.deployment.skip_remaining_conventions:
                    self.state = PipelineState.SKIPPED
                    if convention.install_phase:
                        logger.debug("Skipping convention", convention=convention.name, index=index)
                        continue

                logger.debug("Running convention", convention=convention.name, index=index)
                result = convention.install(self.deployment) or ConventionResult.CONTINUE

                if result.is_abort:
                    raise result.error or ConventionFailureError(
                        f"{convention.name} aborted the deployment", convention.name
                    )
                if result.is_skip_remaining:
                    self.deployment.skip_remaining()
        except Exception as e:
            self.state = PipelineState.ABORTED
            self.deployment.error = e
            name = current.name if current is not None else "pipeline"
            self._rollback()
            if isinstance(e, ConventionFailureError):
                raise
            raise ConventionFailureError(f"{name} failed: {e}", name) from e

        if self.state is PipelineState.RUNNING:
            self.state = PipelineState.COMPLETED
        logger.debug("Pipeline finished", state=self.state.value)
        return self.state

    def _rollback(self) -> None:
        self.log.verbose("Running rollback conventions...")
        for convention in self.conventions:
            convention.rollback(self.deployment)
