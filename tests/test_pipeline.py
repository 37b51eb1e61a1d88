"""Tests for the convention pipeline and the concrete conventions."""

import io
import tarfile

import pytest

from pixell_deploy.core.exceptions import ConventionFailureError, PackageError
from pixell_deploy.core.models import JournalEntry
from pixell_deploy.deploy.context import RunningDeployment
from pixell_deploy.deploy.conventions import (
    AlreadyInstalledConvention,
    Convention,
    ConventionResult,
    ExtractPackageConvention,
    JournalWriterConvention,
)
from pixell_deploy.deploy.journal import DeploymentJournal
from pixell_deploy.deploy.runner import ConventionProcessor, PipelineState
from pixell_deploy.deploy.variables import SpecialVariables, VariableDictionary


class Recording(Convention):
    def __init__(self, calls, label, result=None, error=None, install_phase=True):
        self.calls = calls
        self.label = label
        self.result = result
        self.error = error
        self.install_phase = install_phase

    @property
    def name(self):
        return self.label

    def install(self, deployment):
        self.calls.append(("install", self.label))
        if self.error is not None:
            raise self.error
        return self.result

    def rollback(self, deployment):
        self.calls.append(("rollback", self.label))


@pytest.fixture
def journal(tmp_path):
    return DeploymentJournal(tmp_path / "DeploymentJournal.jsonl")


def deployment_for(**values):
    variables = VariableDictionary(
        {
            SpecialVariables.RETENTION_POLICY_SET: "P",
            SpecialVariables.Package.PACKAGE_ID: "Acme",
            SpecialVariables.Package.PACKAGE_VERSION: "1.0.0",
        }
    )
    for key, value in values.items():
        variables.set(key, value)
    return RunningDeployment(variables)


class TestConventionProcessor:

    def test_runs_in_order(self, log):
        calls = []
        conventions = [Recording(calls, "one"), Recording(calls, "two", ConventionResult.CONTINUE)]

        state = ConventionProcessor(deployment_for(), conventions, log).run()

        assert state is PipelineState.COMPLETED
        assert calls == [("install", "one"), ("install", "two")]

    def test_skip_remaining_bypasses_install_conventions_only(self, log):
        calls = []
        deployment = deployment_for()
        conventions = [
            Recording(calls, "check", ConventionResult.SKIP_REMAINING),
            Recording(calls, "extract"),
            Recording(calls, "journal", install_phase=False),
        ]

        processor = ConventionProcessor(deployment, conventions, log)
        state = processor.run()

        assert state is PipelineState.SKIPPED
        assert calls == [("install", "check"), ("install", "journal")]
        assert deployment.variables.get_flag(SpecialVariables.Action.SKIP_REMAINING_CONVENTIONS)
        assert processor.current_index == 2

    def test_exception_rolls_back_and_wraps(self, log):
        calls = []
        deployment = deployment_for()
        conventions = [
            Recording(calls, "acquire"),
            Recording(calls, "extract", error=PackageError("corrupt archive")),
            Recording(calls, "journal", install_phase=False),
        ]

        processor = ConventionProcessor(deployment, conventions, log)
        with pytest.raises(ConventionFailureError) as exc_info:
            processor.run()

        assert processor.state is PipelineState.ABORTED
        assert exc_info.value.convention == "extract"
        assert isinstance(exc_info.value.__cause__, PackageError)
        assert isinstance(deployment.error, PackageError)
        assert calls == [
            ("install", "acquire"),
            ("install", "extract"),
            ("rollback", "acquire"),
            ("rollback", "extract"),
            ("rollback", "journal"),
        ]

    def test_abort_result(self, log):
        calls = []
        conventions = [
            Recording(calls, "gate", ConventionResult.abort(PackageError("not allowed"))),
            Recording(calls, "after"),
        ]

        with pytest.raises(ConventionFailureError, match="not allowed"):
            ConventionProcessor(deployment_for(), conventions, log).run()

        assert ("install", "after") not in calls


class TestAlreadyInstalled:

    def test_successful_previous_install_skips(self, log, journal):
        journal.record(
            JournalEntry(
                retention_policy_set="P", package_id="Acme", version="1.0.0",
                was_successful=True, extracted_to="/var/acme",
            )
        )
        deployment = deployment_for(**{SpecialVariables.Package.SKIP_IF_ALREADY_INSTALLED: "true"})
        calls = []
        conventions = [
            AlreadyInstalledConvention(log, journal),
            Recording(calls, "extract"),
            JournalWriterConvention(log, journal),
        ]

        state = ConventionProcessor(deployment, conventions, log).run()

        assert state is PipelineState.SKIPPED
        assert calls == []
        assert log.output_variables()["Package.InstallationDirectoryPath"] == "/var/acme"
        assert log.output_variables()["Octopus.Action.Package.InstallationDirectoryPath"] == "/var/acme"
        assert log.contains("already been installed")
        assert deployment.variables.get(SpecialVariables.Package.Output.INSTALLATION_DIRECTORY_PATH) is None
        assert len(journal.get_all_entries()) == 1

    def test_failed_previous_install_redeploys(self, log, journal):
        journal.record(
            JournalEntry(retention_policy_set="P", package_id="Acme", version="1.0.0", was_successful=False)
        )
        deployment = deployment_for(**{SpecialVariables.Package.SKIP_IF_ALREADY_INSTALLED: "true"})
        calls = []
        conventions = [
            AlreadyInstalledConvention(log, journal),
            Recording(calls, "extract"),
            JournalWriterConvention(log, journal),
        ]

        state = ConventionProcessor(deployment, conventions, log).run()

        assert state is PipelineState.COMPLETED
        assert calls == [("install", "extract")]
        assert log.contains("re-deploying")
        assert journal.get_latest_installation("P", "Acme", "1.0.0").was_successful is True

    def test_flag_not_set(self, log, journal):
        journal.record(
            JournalEntry(retention_policy_set="P", package_id="Acme", version="1.0.0", was_successful=True)
        )
        result = AlreadyInstalledConvention(log, journal).install(deployment_for())
        assert result is ConventionResult.CONTINUE

    def test_different_policy_set(self, log, journal):
        journal.record(
            JournalEntry(retention_policy_set="Other", package_id="Acme", version="1.0.0", was_successful=True)
        )
        deployment = deployment_for(**{SpecialVariables.Package.SKIP_IF_ALREADY_INSTALLED: "True"})
        assert AlreadyInstalledConvention(log, journal).install(deployment) is ConventionResult.CONTINUE


class TestJournalWriter:

    def test_failure_is_recorded_on_abort(self, log, journal):
        conventions = [
            Recording([], "extract", error=PackageError("boom")),
            JournalWriterConvention(log, journal),
        ]

        with pytest.raises(ConventionFailureError):
            ConventionProcessor(deployment_for(), conventions, log).run()

        entries = journal.get_all_entries()
        assert len(entries) == 1
        assert entries[0].was_successful is False
        assert entries[0].package_id == "Acme"

    def test_skip_journal_flag(self, log, journal):
        deployment = deployment_for(**{SpecialVariables.Action.SKIP_JOURNAL: "true"})
        ConventionProcessor(deployment, [JournalWriterConvention(log, journal)], log).run()
        assert journal.get_all_entries() == []


def _tar_bytes(entries):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
        for name, content in entries.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tf.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


class TestExtractPackage:

    def _acquire(self, deployment, path):
        from pixell_deploy.core.models import PackageIdentity, PackagePhysicalFile
        from pixell_deploy.core.versioning import SemanticVersion

        extension = ".tar.gz" if path.name.endswith(".tar.gz") else path.suffix
        deployment.resolved_package = PackagePhysicalFile.build(
            path, PackageIdentity("Acme", SemanticVersion.parse("1.0.0")), extension
        )

    def test_nupkg_is_extracted_without_metadata(self, log, tmp_path, zip_bytes):
        package = tmp_path / "Acme.1.0.0.nupkg"
        package.write_bytes(
            zip_bytes(
                {
                    "Acme.nuspec": b"<package/>",
                    "_rels/.rels": b"",
                    "[Content_Types].xml": b"",
                    "package/services/metadata/core-properties/x.psmdcp": b"",
                    "content/index.html": b"<html/>",
                }
            )
        )
        deployment = deployment_for()
        self._acquire(deployment, package)
        applications = tmp_path / "Applications"

        ExtractPackageConvention(log, applications).install(deployment)

        target = applications / "Acme" / "1.0.0"
        assert deployment.staging_directory == target
        assert sorted(str(p.relative_to(target)) for p in target.rglob("*") if p.is_file()) == ["content/index.html"]
        assert deployment.variables.get(SpecialVariables.ORIGINAL_PACKAGE_DIRECTORY_PATH) == str(target)
        assert log.output_variables()["Octopus.Action.Package.InstallationDirectoryPath"] == str(target)
        assert deployment.variables.output_variables["Package.InstallationDirectoryPath"] == str(target)

    def test_second_extraction_gets_new_directory(self, log, tmp_path):
        package = tmp_path / "Acme.1.0.0.tar.gz"
        package.write_bytes(_tar_bytes({"app/run.sh": b"echo hi"}))
        applications = tmp_path / "Applications"

        first = deployment_for()
        self._acquire(first, package)
        ExtractPackageConvention(log, applications).install(first)
        second = deployment_for()
        self._acquire(second, package)
        ExtractPackageConvention(log, applications).install(second)

        assert first.staging_directory == applications / "Acme" / "1.0.0"
        assert second.staging_directory == applications / "Acme" / "1.0.0_1"
        assert (second.staging_directory / "app" / "run.sh").read_bytes() == b"echo hi"

    def test_tar_links_are_skipped_and_special_bits_dropped(self, log, tmp_path):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tf:
            info = tarfile.TarInfo("app/run.sh")
            info.size = 7
            info.mode = 0o4755
            tf.addfile(info, io.BytesIO(b"echo hi"))
            link = tarfile.TarInfo("app/passwd")
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc/passwd"
            tf.addfile(link)
        package = tmp_path / "Acme.1.0.0.tar.gz"
        package.write_bytes(buffer.getvalue())
        deployment = deployment_for()
        self._acquire(deployment, package)

        ExtractPackageConvention(log, tmp_path / "Applications").install(deployment)

        script = deployment.staging_directory / "app" / "run.sh"
        assert script.read_bytes() == b"echo hi"
        assert not script.stat().st_mode & 0o4000
        assert not (deployment.staging_directory / "app" / "passwd").exists()
        assert not (deployment.staging_directory / "app" / "passwd").is_symlink()

    def test_entries_escaping_target_are_rejected(self, log, tmp_path, zip_bytes):
        package = tmp_path / "evil.zip"
        package.write_bytes(zip_bytes({"../outside.txt": b"x"}))
        deployment = deployment_for()
        self._acquire(deployment, package)

        with pytest.raises(PackageError):
            ExtractPackageConvention(log, tmp_path / "Applications").install(deployment)
        assert not (tmp_path / "Applications" / "Acme" / "outside.txt").exists()

    def test_custom_installation_directory(self, log, tmp_path, zip_bytes):
        package = tmp_path / "Acme.zip"
        package.write_bytes(zip_bytes({"a.txt": b"a"}))
        custom = tmp_path / "custom"
        deployment = deployment_for(**{SpecialVariables.Package.CUSTOM_INSTALLATION_DIRECTORY: str(custom)})
        self._acquire(deployment, package)

        ExtractPackageConvention(log, tmp_path / "Applications").install(deployment)

        assert (custom / "a.txt").read_bytes() == b"a"


class TestAcquirePackage:

    def test_resolves_from_feed_variables(self, log, settings, tmp_path, zip_bytes):
        from pixell_deploy.deploy.conventions import AcquirePackageConvention
        from pixell_deploy.packages.resolver import PackageResolver

        share = tmp_path / "share"
        share.mkdir()
        (share / "Acme.1.0.0.zip").write_bytes(zip_bytes({"a.txt": b"a"}))
        deployment = deployment_for(
            **{
                SpecialVariables.Package.FEED_ID: "share-feed",
                SpecialVariables.Package.FEED_URI: str(share),
                SpecialVariables.Package.FEED_TYPE: "File-Share",
            }
        )

        AcquirePackageConvention(log, PackageResolver(settings, log)).install(deployment)

        assert deployment.package_file == settings.package_cache_dir / "share-feed" / "acme@1.0.0.zip"
        assert deployment.resolved_package.extension == ".zip"
        assert log.contains("##octopus[foundPackage ")

    def test_missing_coordinates(self, log, settings):
        from pixell_deploy.core.exceptions import ConfigurationError
        from pixell_deploy.deploy.conventions import AcquirePackageConvention
        from pixell_deploy.packages.resolver import PackageResolver

        with pytest.raises(ConfigurationError):
            AcquirePackageConvention(log, PackageResolver(settings, log)).install(deployment_for())
