"""Console log that speaks the orchestrator's service-message protocol.

Everything written to stdout is read line by line by the orchestrator. Plain
lines are log output; lines of the form ``##octopus[verb key="..."]`` are
service messages whose attribute values are base64 encoded UTF-8.
"""

from __future__ import annotations

import base64
import sys
import threading
from typing import TYPE_CHECKING, List, Optional, TextIO

if TYPE_CHECKING:
    from pixell_deploy.deploy.variables import VariableDictionary
    from pixell_deploy.core.versioning import SemanticVersion


def encode_value(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def decode_value(value: str) -> str:
    return base64.b64decode(value.encode("ascii")).decode("utf-8")


def format_service_message(verb: str, **attributes: Optional[str]) -> str:
    """Render a service message, skipping attributes whose value is None."""
    parts = [verb]
    for key, value in attributes.items():
        if value is None:
            continue
        parts.append(f'{key}="{encode_value(str(value))}"')
    return "##octopus[" + " ".join(parts) + "]"


class AbstractLog:
    """Log operations shared by every sink.

    Subclasses only decide where stdout and stderr lines go.
    """

    def __init__(self):
        self._stdout_mode: Optional[str] = None
        self._lock = threading.RLock()

    def _write_stdout(self, line: str) -> None:
        raise NotImplementedError

    def _write_stderr(self, line: str) -> None:
        raise NotImplementedError

    def _set_mode(self, mode: str) -> None:
        if self._stdout_mode == mode:
            return
        self._write_stdout(f"##octopus[stdout-{mode}]")
        self._stdout_mode = mode

    def _emit(self, mode: str, message: str) -> None:
        with self._lock:
            self._set_mode(mode)
            self._write_stdout(message)

    def verbose(self, message: str) -> None:
        self._emit("verbose", message)

    def info(self, message: str) -> None:
        self._emit("default", message)

    def warn(self, message: str) -> None:
        self._emit("warning", message)

    def error(self, message: str) -> None:
        with self._lock:
            self._write_stderr(message)

    def set_output_variable_but_do_not_add_to_variables(
        self, name: str, value: str, sensitive: bool = False
    ) -> None:
        if name is None:
            raise ValueError("name is required")
        if value is None:
            raise ValueError("value is required")
        self.info(
            format_service_message(
                "setVariable",
                name=name,
                value=value,
                sensitive="True" if sensitive else None,
            )
        )

    def set_output_variable(
        self,
        name: str,
        value: str,
        variables: Optional["VariableDictionary"] = None,
        sensitive: bool = False,
    ) -> None:
        self.set_output_variable_but_do_not_add_to_variables(name, value, sensitive)
        if variables is not None:
            variables.set_output_variable(name, value)

    def new_artifact(self, full_path: str, name: str, length: int) -> None:
        self.info(format_service_message("createArtifact", path=full_path, name=name, length=str(length)))

    def package_found(
        self,
        package_id: str,
        version: "SemanticVersion",
        package_hash: str,
        extension: str,
        full_path: str,
    ) -> None:
        self.verbose(
            format_service_message(
                "foundPackage",
                id=package_id,
                version=str(version),
                versionFormat="Semver",
                hash=package_hash,
                remotePath=full_path,
                fileExtension=extension,
            )
        )

    def progress(self, percentage: int, message: str) -> None:
        self.verbose(format_service_message("progress", percentage=str(percentage), message=message))

    def delta_verification(self, remote_path: str, package_hash: str, size: int) -> None:
        self.verbose(
            format_service_message("deltaVerification", remotePath=remote_path, hash=package_hash, size=str(size))
        )

    def delta_verification_error(self, error: str) -> None:
        self.verbose(format_service_message("deltaVerification", error=error))


class ConsoleLog(AbstractLog):
    """Writes to the process's stdout and stderr."""

    def __init__(self, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        super().__init__()
        self._stdout = stdout
        self._stderr = stderr

    def _write_stdout(self, line: str) -> None:
        stream = self._stdout or sys.stdout
        stream.write(line + "\n")
        stream.flush()

    def _write_stderr(self, line: str) -> None:
        stream = self._stderr or sys.stderr
        stream.write(line + "\n")
        stream.flush()


class InMemoryLog(AbstractLog):
    """Keeps every line in memory. Used by tests and dry runs."""

    def __init__(self):
        super().__init__()
        self.stdout_lines: List[str] = []
        self.stderr_lines: List[str] = []

    def _write_stdout(self, line: str) -> None:
        self.stdout_lines.append(line)

    def _write_stderr(self, line: str) -> None:
        self.stderr_lines.append(line)

    @property
    def output(self) -> str:
        return "\n".join(self.stdout_lines)

    def contains(self, text: str) -> bool:
        return any(text in line for line in self.stdout_lines)

    def output_variables(self) -> dict:
        """Decode every setVariable message seen so far, in order."""
        found = {}
        for line in self.stdout_lines:
            if not line.startswith("##octopus[setVariable "):
                continue
            attributes = {}
            for chunk in line[len("##octopus[setVariable "):-1].split(" "):
                key, _, raw = chunk.partition("=")
                attributes[key] = decode_value(raw.strip('"'))
            found[attributes["name"]] = attributes["value"]
        return found
