"""Deployment pipeline: variables, journal, conventions and the runner."""

from .context import RunningDeployment
from .journal import DeploymentJournal
from .runner import ConventionProcessor, PipelineState
from .variables import SpecialVariables, VariableDictionary

__all__ = [
    "ConventionProcessor",
    "DeploymentJournal",
    "PipelineState",
    "RunningDeployment",
    "SpecialVariables",
    "VariableDictionary",
]
