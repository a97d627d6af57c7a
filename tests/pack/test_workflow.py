"""Tests for shipkit.pack.workflow - PackRunner end to end with a fake packager."""

from __future__ import annotations

import os
from unittest.mock import MagicMock, patch

import pytest

from shipkit.core.errors import (
    ExternalToolError,
    ManifestInvalidError,
    ResourceUnavailableError,
    ShipkitError,
)
from shipkit.core.settings import ShipkitSettings
from shipkit.pack.config import PackConfig
from shipkit.pack.manifest import FileEntry, ManifestDocument
from shipkit.pack.packager import NuGetPackager
from shipkit.pack.results import PackageArtifact, PackStatus
from shipkit.pack.workflow import PackRunner, teamcity_escape


def make_config(project, **overrides) -> PackConfig:
    values = {
        "project_dir": project.path,
        "out_dir": project.join("out"),
        "project_name": "Web.csproj",
        "package_version": "1.0.0",
    }
    values.update(overrides)
    return PackConfig(**values)


def packed_manifest(packager) -> ManifestDocument:
    return ManifestDocument.parse(packager.calls[-1]["manifest_text"])


def nupkgs(directory: str) -> list[str]:
    return sorted(n for n in os.listdir(directory) if n.endswith(".nupkg"))


class TestScenarios:
    """Content shape, binary shape with substitution, packager failure."""

    def test_content_application(self, project, fake_packager, settings):
        project.file("web.config", "<configuration/>")
        index = project.file("index.html")
        app = project.file("out/app.dll")
        config = make_config(project, content_files=["index.html"], written_files=[app])

        result = PackRunner(config, packager=fake_packager, settings=settings).run()

        assert packed_manifest(fake_packager).entries() == [
            FileEntry(index, "index.html"),
            FileEntry(app, os.path.join("bin", "app.dll")),
        ]
        expected = project.join("out/Web.1.0.0.nupkg")
        assert result.packages == [PackageArtifact(path=expected, name="Web.1.0.0.nupkg")]
        assert os.path.isfile(expected)
        assert result.status is PackStatus.PASSED
        assert result.files_added == 2
        assert result.packager_path == fake_packager.path

    def test_binary_application_with_config_substitution(self, project, fake_packager, settings):
        svc = project.file("out/svc.exe")
        project.file("out/svc.exe.config", "<debug/>")
        prod = project.file("prod.config", "<prod/>")
        config = make_config(
            project,
            project_name="svc.csproj",
            written_files=[svc, project.join("out/svc.exe.config")],
            app_config_file="prod.config",
            config_substitution_name="svc.exe.config",
        )

        PackRunner(config, packager=fake_packager, settings=settings).run()

        entries = packed_manifest(fake_packager).entries()
        assert entries == [FileEntry(svc, "svc.exe"), FileEntry(prod, "prod.config")]
        assert all(e.target != "svc.exe.config" for e in entries)

    def test_packager_failure(self, project, failing_packager, settings):
        app = project.file("out/app.dll")
        config = make_config(project, written_files=[app])

        with pytest.raises(ExternalToolError) as exc_info:
            PackRunner(config, packager=failing_packager, settings=settings).run()

        error = exc_info.value
        assert error.code == "SK200"
        assert "disk full" in error.message
        assert "disk full" in error.output
        assert error.context.exit_code == 1
        assert nupkgs(project.join("out")) == []


class TestManifest:
    """Obtaining and merging the manifest."""

    def test_synthesized_manifest(self, project, fake_packager, settings):
        config = make_config(project, package_version="2.1.0")

        result = PackRunner(config, packager=fake_packager, settings=settings).run()

        manifest = packed_manifest(fake_packager)
        assert manifest.package_id == "Web"
        assert manifest.version == "2.1.0"
        assert manifest.metadata_value("description").startswith(
            "The Web.csproj deployment package, built on "
        )
        assert result.manifest_path == os.path.join(project.path, "obj", "shipkit-packing", "Web.nuspec")
        assert not os.path.exists(project.join("Web.nuspec"))

    def test_existing_manifest_copied_and_files_kept(self, project, fake_packager, settings):
        original = (
            "<package><metadata><id>Custom</id><version>0.0.1</version></metadata>"
            '<files><file src="lib\\x.dll" target="lib" /></files></package>'
        )
        project.file("Web.nuspec", original)
        project.file("index.html")
        config = make_config(project, content_files=["index.html"])

        result = PackRunner(config, packager=fake_packager, settings=settings).run()

        manifest = packed_manifest(fake_packager)
        assert manifest.package_id == "Custom"
        assert manifest.entries() == [FileEntry("lib\\x.dll", "lib")]
        assert result.selection_ran is False
        with open(project.join("Web.nuspec"), encoding="utf-8") as fp:
            assert fp.read() == original

    def test_namespaced_manifest_persisted(self, project, fake_packager, settings):
        ns = "http://schemas.microsoft.com/packaging/2010/07/nuspec.xsd"
        project.file(
            "Web.nuspec",
            f'<package xmlns="{ns}"><metadata><id>Web</id><version>1.0.0</version>'
            '<dependencies><dependency id="Serilog" version="3.0.0" /></dependencies>'
            "</metadata></package>",
        )
        project.file("web.config", "<configuration/>")
        index = project.file("index.html")

        PackRunner(make_config(project, content_files=["index.html"]), packager=fake_packager, settings=settings).run()

        text = fake_packager.calls[0]["manifest_text"]
        assert f'<package xmlns="{ns}">' in text
        assert '<dependency id="Serilog" version="3.0.0" />' in text
        assert packed_manifest(fake_packager).entries() == [FileEntry(index, "index.html")]

    def test_enforce_adding_files(self, project, fake_packager, settings):
        project.file("Web.nuspec", '<package><metadata><id>Web</id></metadata><files><file src="a" target="a"/></files></package>')
        app = project.file("out/app.dll")
        config = make_config(project, written_files=[app], enforce_adding_files=True)

        PackRunner(config, packager=fake_packager, settings=settings).run()

        assert [e.target for e in packed_manifest(fake_packager).entries()] == ["a", "app.dll"]

    def test_custom_manifest_file_name(self, project, fake_packager, settings):
        project.file("deploy.nuspec", "<package><metadata><id>Deploy</id></metadata></package>")
        config = make_config(project, manifest_file_name="deploy.nuspec")

        result = PackRunner(config, packager=fake_packager, settings=settings).run()

        assert result.package_id == "Deploy"
        assert result.manifest_path.endswith(os.path.join("shipkit-packing", "deploy.nuspec"))

    def test_append_to_package_id(self, project, fake_packager, settings):
        config = make_config(project, append_to_package_id="Staging")
        result = PackRunner(config, packager=fake_packager, settings=settings).run()
        assert result.package_id == "Web.Staging"
        assert packed_manifest(fake_packager).package_id == "Web.Staging"

    def test_release_notes(self, project, fake_packager, settings):
        project.file("notes.txt", "Fixed the login page")
        config = make_config(project, release_notes_file="notes.txt")

        PackRunner(config, packager=fake_packager, settings=settings).run()

        assert packed_manifest(fake_packager).metadata_value("releaseNotes") == "Fixed the login page"

    def test_missing_release_notes_is_warning(self, project, fake_packager, settings):
        config = make_config(project, release_notes_file="missing.txt")

        result = PackRunner(config, packager=fake_packager, settings=settings).run()

        assert [w["code"] for w in result.warnings] == ["SK901"]
        assert result.status is PackStatus.PASSED

    def test_invalid_manifest(self, project, fake_packager, settings):
        project.file("Web.nuspec", "<package><metadata>")
        config = make_config(project)

        with pytest.raises(ManifestInvalidError):
            PackRunner(config, packager=fake_packager, settings=settings).run()
        assert fake_packager.calls == []

    def test_manifest_without_metadata(self, project, fake_packager, settings):
        project.file("Web.nuspec", "<package><files/></package>")
        config = make_config(project, append_to_package_id="x")

        with pytest.raises(ManifestInvalidError, match="<metadata>"):
            PackRunner(config, packager=fake_packager, settings=settings).run()

    def test_manifest_without_metadata_packs_when_not_merged(self, project, fake_packager, settings):
        project.file("Web.nuspec", "<package><files/></package>")

        result = PackRunner(make_config(project), packager=fake_packager, settings=settings).run()

        assert result.package_id is None
        assert len(fake_packager.calls) == 1


class TestPackagerInvocation:
    def test_arguments_forwarded(self, project, fake_packager, settings):
        config = make_config(
            project,
            package_version="",
            packager_properties="Configuration=Release",
            packager_arguments="-Symbols",
        )

        PackRunner(config, packager=fake_packager, settings=settings).run()

        call = fake_packager.calls[0]
        assert call["version"] is None
        assert call["properties"] == "Configuration=Release"
        assert call["extra_arguments"] == "-Symbols"
        assert call["base_path"] == project.path
        assert call["output_directory"] == os.path.join(project.path, "obj", "shipkit-packed")

    def test_discovers_packager(self, project, settings, tmp_path):
        nuget = tmp_path / "nuget"
        nuget.write_text("")
        runner = PackRunner(make_config(project, packager_path=str(nuget)), settings=settings)

        packager = runner._resolve_packager()

        assert isinstance(packager, NuGetPackager)
        assert packager.path == str(nuget)


class TestScratchDirectories:
    def test_stale_packages_purged(self, project, fake_packager, settings):
        project.file("obj/shipkit-packed/Old.0.9.0.nupkg")
        project.file("obj/shipkit-packing/stale.txt")

        PackRunner(make_config(project), packager=fake_packager, settings=settings).run()

        assert nupkgs(project.join("out")) == ["Web.1.0.0.nupkg"]
        assert not os.path.exists(project.join("obj/shipkit-packing/stale.txt"))

    def test_locked_directory_gives_up_after_retries(self, project, fake_packager, settings):
        project.file("obj/shipkit-packing/locked.dll")

        with patch("shipkit.pack.filesystem.shutil.rmtree", side_effect=PermissionError("locked")) as rmtree:
            with pytest.raises(ResourceUnavailableError) as exc_info:
                PackRunner(make_config(project), packager=fake_packager, settings=settings).run()

        assert rmtree.call_count == settings.purge_retries == 3
        assert exc_info.value.code == "SK300"
        assert "could not be prepared: locked" in exc_info.value.message
        assert exc_info.value.context.path == project.join("obj/shipkit-packing")
        assert fake_packager.calls == []

    def test_insufficient_space(self, project, fake_packager):
        settings = ShipkitSettings(_env_file=None, min_free_space_mb=10**12, purge_retry_delay=0)

        with pytest.raises(ResourceUnavailableError) as exc_info:
            PackRunner(make_config(project), packager=fake_packager, settings=settings).run()

        assert exc_info.value.code == "SK300"
        assert fake_packager.calls == []


class TestBuildServer:
    """TeamCity artifact service messages."""

    @patch.dict(os.environ, {"TEAMCITY_VERSION": "2024.1"})
    def test_publish_messages(self, project, fake_packager, settings):
        messages: list[str] = []
        config = make_config(project, publish_to_build_server=True)

        PackRunner(config, packager=fake_packager, settings=settings, service_message=messages.append).run()

        assert messages == [f"##teamcity[publishArtifacts '{project.join('out/Web.1.0.0.nupkg')}']"]

    @patch.dict(os.environ, {"TEAMCITY_VERSION": "2024.1"})
    def test_publish_message_escapes_path(self, project, fake_packager, settings):
        messages: list[str] = []
        out_dir = project.join("drop [qa]'s")
        config = make_config(project, out_dir=out_dir, publish_to_build_server=True)

        PackRunner(config, packager=fake_packager, settings=settings, service_message=messages.append).run()

        escaped = os.path.join(project.path, "drop |[qa|]|'s", "Web.1.0.0.nupkg")
        assert messages == [f"##teamcity[publishArtifacts '{escaped}']"]

    def test_teamcity_escape(self):
        assert teamcity_escape("a|b'c[d]e\nf") == "a||b|'c|[d|]e|nf"

    @patch.dict(os.environ, {}, clear=True)
    def test_no_messages_outside_teamcity(self, project, fake_packager, settings):
        messages: list[str] = []
        config = make_config(project, publish_to_build_server=True)

        PackRunner(config, packager=fake_packager, settings=settings, service_message=messages.append).run()

        assert messages == []


class TestFailureConversion:
    """Foreign exceptions become a single ShipkitError."""

    def test_os_error(self, project, settings):
        packager = MagicMock()
        packager.path = "/opt/nuget"
        packager.pack.side_effect = PermissionError("denied")

        with pytest.raises(ResourceUnavailableError, match="denied") as exc_info:
            PackRunner(make_config(project), packager=packager, settings=settings).run()
        assert isinstance(exc_info.value.__cause__, PermissionError)

    def test_unexpected_error(self, project, settings):
        packager = MagicMock()
        packager.path = "/opt/nuget"
        packager.pack.side_effect = ValueError("bad state")

        with pytest.raises(ShipkitError) as exc_info:
            PackRunner(make_config(project), packager=packager, settings=settings).run()
        assert exc_info.value.code.startswith("SKX")
        assert exc_info.value.message == "bad state"
