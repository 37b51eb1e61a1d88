"""Tests for the command-line commands and the entry point."""

import argparse
import json
from unittest.mock import patch

import httpx
import pytest

from pixell_deploy import __version__
from pixell_deploy.__main__ import build_parser, describe_error, run
from pixell_deploy.commands import COMMANDS, get_command
from pixell_deploy.commands.deploy_package import DeployPackageCommand
from pixell_deploy.commands.download_package import DownloadPackageCommand
from pixell_deploy.core.exceptions import CommandError, PackageNotFoundError
from pixell_deploy.deploy.journal import DeploymentJournal
from pixell_deploy.packages.resolver import PackageResolver

V2_FEED = "https://www.myget.org/F/octopusdeploy-tests/api/v2"


def download_args(**overrides):
    values = dict(
        package_id="OctoConsole",
        package_version="1.0.0.0",
        feed_id="feeds-myget",
        feed_uri=V2_FEED,
        feed_type=None,
        feed_username=None,
        feed_password=None,
        force_download=False,
        attempts=None,
        attempt_backoff=None,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


def test_registry():
    assert sorted(COMMANDS) == ["deploy-package", "download-package", "version"]
    assert get_command("version").name == "version"
    with pytest.raises(CommandError):
        get_command("explode")


class TestDownloadPackage:

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"package_id": None}, "No package ID was specified"),
            ({"package_version": None}, "No package version was specified"),
            ({"package_version": "one.two"}, "is not a valid semantic version"),
            ({"feed_id": ""}, "No feed ID was specified"),
            ({"feed_uri": None}, "No feed URI was specified"),
            ({"attempts": "0"}, "download attempts"),
            ({"attempts": "many"}, "download attempts"),
            ({"attempt_backoff": "-1"}, "backoff"),
            ({"attempt_backoff": "soon"}, "backoff"),
        ],
    )
    def test_validation(self, settings, log, overrides, message):
        command = DownloadPackageCommand(settings, log)

        with pytest.raises(CommandError, match=message):
            command.execute(download_args(**overrides))

    def test_reports_downloaded_package(self, settings, log, sleeps, zip_bytes):
        content = zip_bytes({"OctoConsole.nuspec": b"<package/>"})
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=content))
        resolver = PackageResolver(settings, log, transport=transport, sleep=sleeps.append)
        command = DownloadPackageCommand(settings, log, resolver=resolver)

        assert command.execute(download_args(attempts="2", attempt_backoff="0")) == 0

        variables = log.output_variables()
        cached = settings.package_cache_dir / "feeds-myget" / "octoconsole@1.0.0.nupkg"
        assert variables["Package.InstallationDirectoryPath"] == str(cached)
        assert variables["Package.Size"] == str(len(content))
        assert len(variables["Package.Hash"]) == 40
        assert log.contains("Found package OctoConsole v1.0.0.0")
        assert log.contains("##octopus[foundPackage ")
        assert log.contains(f"Package OctoConsole 1.0.0.0 successfully downloaded from feed: '{V2_FEED}'")

    def test_failure_is_logged_and_raised(self, settings, log):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        command = DownloadPackageCommand(settings, log, resolver=PackageResolver(settings, log, transport=transport))

        with pytest.raises(PackageNotFoundError):
            command.execute(download_args())

        assert log.stderr_lines == [
            f"Failed to download package OctoConsole 1.0.0.0 from feed: '{V2_FEED}'"
        ]


class TestDeployPackage:

    def test_deploys_local_package_and_journals(self, settings, log, tmp_path, zip_bytes):
        package = tmp_path / "Acme.Web.2.1.0.zip"
        package.write_bytes(zip_bytes({"site/index.html": b"<html/>"}))
        variables = tmp_path / "variables.json"
        variables.write_text(
            json.dumps(
                {
                    "Octopus.Action.Package.PackageId": "Acme.Web",
                    "Octopus.Action.Package.PackageVersion": "2.1.0",
                    "OctopusRetentionPolicySet": "Env-1",
                    "OctopusPrintVariables": "True",
                    "Octopus.Action.Package.FeedPassword": "hunter2",
                }
            )
        )
        command = DeployPackageCommand(settings, log)

        code = command.execute(argparse.Namespace(package=str(package), variables=str(variables)))

        assert code == 0
        target = settings.applications_root / "Acme.Web" / "2.1.0"
        assert (target / "site" / "index.html").read_bytes() == b"<html/>"
        assert log.contains("[OctopusRetentionPolicySet] = 'Env-1'")
        assert not log.contains("hunter2")
        latest = DeploymentJournal(settings.journal_file).get_latest_installation("Env-1", "Acme.Web", "2.1.0")
        assert latest.was_successful is True
        assert latest.extracted_to == str(target)

    def test_skips_already_installed_package(self, settings, log, tmp_path, zip_bytes):
        package = tmp_path / "Acme.Web.2.1.0.zip"
        package.write_bytes(zip_bytes({"site/index.html": b"<html/>"}))
        variables = tmp_path / "variables.yaml"
        variables.write_text(
            "Octopus.Action.Package.PackageId: Acme.Web\n"
            "Octopus.Action.Package.PackageVersion: 2.1.0\n"
            "Octopus.Action.Package.SkipIfAlreadyInstalled: 'True'\n"
        )
        args = argparse.Namespace(package=str(package), variables=str(variables))

        DeployPackageCommand(settings, log).execute(args)
        DeployPackageCommand(settings, log).execute(args)

        assert log.contains("already been installed")
        assert not (settings.applications_root / "Acme.Web" / "2.1.0_1").exists()
        assert len(DeploymentJournal(settings.journal_file).get_all_entries()) == 1


class TestEntryPoint:

    def test_version(self, log):
        assert run(["version"], log=log) == 0
        assert log.contains(__version__)

    def test_agent_errors_exit_with_one(self, log):
        code = run(["download-package", "--packageVersion", "1.0.0"], log=log)

        assert code == 1
        assert log.stderr_lines == ["Error: No package ID was specified. Please pass --packageId YourPackage"]

    def test_unexpected_errors_exit_with_hundred(self, log):
        with patch.object(COMMANDS["version"], "execute", side_effect=RuntimeError("kaboom")):
            code = run(["version"], log=log)

        assert code == 100
        assert log.stderr_lines == ["Error: kaboom"]
        assert log.contains("Traceback")

    def test_unknown_command(self, log):
        assert run(["explode"], log=log) == 1
        assert "Command 'explode' is not supported" in log.stderr_lines[0]

    def test_invalid_configuration(self, log, monkeypatch):
        monkeypatch.setenv("PIXELL_DEPLOY_MAX_DOWNLOAD_ATTEMPTS", "0")

        assert run(["version"], log=log) == 1
        assert "Invalid configuration" in log.stderr_lines[0]

    def test_parser_knows_every_command(self):
        parser = build_parser()
        args = parser.parse_args(["download-package", "--packageId", "Acme", "--forcePackageDownload"])
        assert args.cmd == "download-package"
        assert args.package_id == "Acme"
        assert args.force_download is True

    def test_describe_error_includes_causes(self):
        try:
            try:
                raise OSError("disk full")
            except OSError as e:
                raise CommandError("could not store package") from e
        except CommandError as error:
            assert describe_error(error) == "could not store package --> disk full"
