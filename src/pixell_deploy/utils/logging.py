"""Logging configuration utilities."""

import logging
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars

from pixell_deploy.utils.service_messages import AbstractLog


SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "auth",
    "access_key",
    "accesskey",
    "secret_key",
    "secretkey",
    "feed_password",
}


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Redact sensitive fields in the structured log."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "[REDACTED]"
    return event_dict


class ServiceMessageLogger:
    """structlog sink that hands rendered events to the service-message log.

    stdout belongs to the orchestrator protocol, so diagnostic output has to
    go through the same writer to keep the stdout-<mode> switches consistent.
    """

    def __init__(self, log: AbstractLog):
        self._log = log

    def debug(self, message: str) -> None:
        self._log.verbose(message)

    def info(self, message: str) -> None:
        self._log.info(message)

    def warning(self, message: str) -> None:
        self._log.warn(message)

    def error(self, message: str) -> None:
        self._log.error(message)

    msg = info
    warn = warning
    critical = error
    fatal = error
    exception = error


class ServiceMessageLoggerFactory:
    def __init__(self, log: AbstractLog):
        self._log = log

    def __call__(self, *args) -> ServiceMessageLogger:
        return ServiceMessageLogger(self._log)


def setup_logging(log: AbstractLog, log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structured logging on top of the service-message log."""

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.format_exc_info,
        _redact_sensitive,
    ]

    if log_format == "json":
        processors.insert(1, structlog.processors.add_log_level)
        processors.insert(2, structlog.processors.TimeStamper(fmt="iso"))
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.processors.KeyValueRenderer(key_order=["event"]))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper())),
        context_class=dict,
        logger_factory=ServiceMessageLoggerFactory(log),
        cache_logger_on_first_use=False,
    )


def bind_deployment_context(deployment_id: Optional[str] = None, command: Optional[str] = None) -> None:
    """Bind correlation fields for agent logs using contextvars."""
    if deployment_id:
        bind_contextvars(deploymentId=deployment_id)
    if command:
        bind_contextvars(command=command)
