"""Deployment variables."""

from __future__ import annotations

from collections.abc import MutableMapping
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import yaml
from pydantic import TypeAdapter, ValidationError

from pixell_deploy.core.exceptions import VariablesFileError


class SpecialVariables:
    """Well-known variable names shared with the orchestrator."""

    RETENTION_POLICY_SET = "OctopusRetentionPolicySet"
    ORIGINAL_PACKAGE_DIRECTORY_PATH = "OctopusOriginalPackageDirectoryPath"
    PRINT_VARIABLES = "OctopusPrintVariables"
    FREE_DISK_SPACE_OVERRIDE_MB = "OctopusFreeDiskSpaceOverrideInMegaBytes"
    SKIP_FREE_DISK_SPACE_CHECK = "OctopusSkipFreeDiskSpaceCheck"
    DEPLOYMENT_ID = "Octopus.Deployment.Id"

    class Action:
        SKIP_REMAINING_CONVENTIONS = "Octopus.Action.SkipRemainingConventions"
        SKIP_JOURNAL = "Octopus.Action.SkipJournal"
        FAIL_SCRIPT_ON_ERROR_OUTPUT = "Octopus.Action.FailScriptOnErrorOutput"

    class Package:
        PACKAGE_ID = "Octopus.Action.Package.PackageId"
        PACKAGE_VERSION = "Octopus.Action.Package.PackageVersion"
        FEED_ID = "Octopus.Action.Package.FeedId"
        FEED_URI = "Octopus.Action.Package.FeedUri"
        FEED_TYPE = "Octopus.Action.Package.FeedType"
        FEED_USERNAME = "Octopus.Action.Package.FeedUsername"
        FEED_PASSWORD = "Octopus.Action.Package.FeedPassword"
        FORCE_DOWNLOAD = "Octopus.Action.Package.ForcePackageDownload"
        SKIP_IF_ALREADY_INSTALLED = "Octopus.Action.Package.SkipIfAlreadyInstalled"
        CUSTOM_INSTALLATION_DIRECTORY = "Octopus.Action.Package.CustomInstallationDirectory"

        class Output:
            INSTALLATION_DIRECTORY_PATH = "Octopus.Action.Package.InstallationDirectoryPath"
            DEPRECATED_INSTALLATION_DIRECTORY_PATH = "Package.InstallationDirectoryPath"
            HASH = "Package.Hash"
            SIZE = "Package.Size"


_VARIABLES_SCHEMA = TypeAdapter(Dict[str, Optional[str]])


class _StringScalarLoader(yaml.SafeLoader):
    """Safe loader that keeps plain scalars as written.

    Variables are strings, so `true`, `1.10` or `2024-01-01` must reach the
    dictionary exactly as typed. Only null is still resolved.
    """


_StringScalarLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag == "tag:yaml.org,2002:null"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class VariableDictionary(MutableMapping):
    """Ordered string mapping with case-insensitive keys.

    The first spelling of a key is kept for display; later writes with a
    different case update the same entry.
    """

    def __init__(self, initial: Optional[Dict[str, Optional[str]]] = None):
        self._items: Dict[str, Tuple[str, Optional[str]]] = {}
        self.output_variables: Dict[str, str] = {}
        if initial:
            for key, value in initial.items():
                self.set(key, value)

    @classmethod
    def from_file(cls, path: Path) -> "VariableDictionary":
        """Load a YAML or JSON mapping of variable names to values.

        Unquoted scalars such as `true` or `1.0` are read as their literal text.

        Raises:
            VariablesFileError: If the file is unreadable or not a flat string mapping
        """
        try:
            with open(path, encoding="utf-8") as f:
                raw = yaml.load(f, Loader=_StringScalarLoader)
        except OSError as e:
            raise VariablesFileError(f"Could not read variables file '{path}': {e}") from e
        except yaml.YAMLError as e:
            raise VariablesFileError(f"Variables file '{path}' is not valid YAML or JSON: {e}") from e

        if raw is None:
            return cls()
        try:
            return cls(_VARIABLES_SCHEMA.validate_python(raw))
        except ValidationError as e:
            raise VariablesFileError(f"Variables file '{path}' must map names to strings: {e}") from e

    def __getitem__(self, key: str) -> Optional[str]:
        return self._items[key.casefold()][1]

    def __setitem__(self, key: str, value: Optional[str]) -> None:
        self.set(key, value)

    def __delitem__(self, key: str) -> None:
        del self._items[key.casefold()]

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.casefold() in self._items

    def set(self, key: str, value: Optional[str]) -> None:
        folded = key.casefold()
        name = self._items[folded][0] if folded in self._items else key
        self._items[folded] = (name, value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        entry = self._items.get(key.casefold())
        if entry is None or entry[1] is None:
            return default
        return entry[1]

    def get_flag(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        return value.strip().lower() == "true"

    def set_flag(self, key: str, value: bool) -> None:
        self.set(key, "true" if value else "false")

    def get_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value.strip())
        except ValueError:
            return default

    def set_output_variable(self, name: str, value: str) -> None:
        """Record an output variable and make it visible to later conventions."""
        self.output_variables[name] = value
        self.set(name, value)
