"""Tests for shipkit.cli - ``shipkit pack`` commands via CliRunner.

PackRunner is mocked for ``pack run`` so no packager is needed; ``pack
inspect`` works on real manifest files.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from shipkit import __version__
from shipkit.cli.app import app
from shipkit.core.errors import ExternalToolError
from shipkit.pack.paths import FileReference
from shipkit.pack.results import PackageArtifact, PackResult

runner = CliRunner()

QUIET = {"SHIPKIT_LOG_LEVEL": "ERROR"}


def make_result() -> PackResult:
    result = PackResult(run_id="abc", project="Web.csproj", package_id="Web", files_added=2)
    result.packages = [PackageArtifact(path="/src/Web/bin/Web.1.0.0.nupkg", name="Web.1.0.0.nupkg")]
    result.mark_complete()
    return result


class TestRoot:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"shipkit {__version__}" in result.output

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert "pack" in result.output


class TestPackRun:
    """'pack run' builds a PackConfig from options and list files."""

    @patch("shipkit.pack.workflow.PackRunner")
    def test_run_builds_config(self, mock_runner, project):
        mock_runner.return_value.run.return_value = make_result()
        content = project.file("content.txt", "index.html\n\n# generated\nsite.css|Content\\site.css\n")
        binaries = project.file("written.txt", "out/Web.dll\n")

        result = runner.invoke(
            app,
            [
                "pack", "run", project.path,
                "--out-dir", project.join("out"),
                "--project-name", "Web.csproj",
                "--content-list", content,
                "--binaries-list", binaries,
                "--version", "1.0.0",
                "--append-id", "Staging",
                "--publish",
            ],
            env=QUIET,
        )

        assert result.exit_code == 0, result.output
        config = mock_runner.call_args.args[0]
        assert config.project_dir == str(Path(project.path).resolve())
        assert config.out_dir == str(Path(project.path).resolve() / "out")
        assert config.content_files == [
            FileReference("index.html"),
            FileReference("site.css", link="Content\\site.css"),
        ]
        assert config.written_files == [FileReference("out/Web.dll")]
        assert config.package_version == "1.0.0"
        assert config.append_to_package_id == "Staging"
        assert config.publish_to_build_server is True
        assert "Web.1.0.0.nupkg" in result.output

    @patch("shipkit.pack.workflow.PackRunner")
    def test_relative_paths_resolve_against_cwd(self, mock_runner, tmp_path, monkeypatch):
        mock_runner.return_value.run.return_value = make_result()
        (tmp_path / "src" / "Web" / "bin").mkdir(parents=True)
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(
            app,
            ["pack", "run", "./src/Web", "--out-dir", "./src/Web/bin", "--project-name", "Web.csproj"],
            env=QUIET,
        )

        assert result.exit_code == 0, result.output
        config = mock_runner.call_args.args[0]
        assert config.project_dir == str((tmp_path / "src" / "Web").resolve())
        assert config.out_dir == str((tmp_path / "src" / "Web" / "bin").resolve())

    @patch("shipkit.pack.workflow.PackRunner")
    def test_run_json(self, mock_runner, project):
        mock_runner.return_value.run.return_value = make_result()

        result = runner.invoke(
            app,
            ["pack", "run", project.path, "--out-dir", "out", "--project-name", "Web.csproj", "--json"],
            env=QUIET,
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["packages"][0]["name"] == "Web.1.0.0.nupkg"
        assert payload["status"] == "PASSED"

    @patch("shipkit.pack.workflow.PackRunner")
    def test_run_failure(self, mock_runner, project):
        mock_runner.return_value.run.side_effect = ExternalToolError("There was an error calling the packager: disk full")

        result = runner.invoke(
            app,
            ["pack", "run", project.path, "--out-dir", "out", "--project-name", "Web.csproj"],
            env=QUIET,
        )

        assert result.exit_code == 1
        assert "SK200" in result.output
        assert "disk full" in result.output

    def test_missing_project_dir(self, tmp_path):
        result = runner.invoke(
            app,
            ["pack", "run", str(tmp_path / "nope"), "--out-dir", "out", "--project-name", "Web.csproj"],
        )
        assert result.exit_code != 0


class TestPackInspect:
    """'pack inspect' shows manifest metadata and files."""

    MANIFEST = (
        '<package xmlns="http://schemas.microsoft.com/packaging/2010/07/nuspec.xsd">'
        "<metadata><id>Web</id><version>1.2.3</version></metadata>"
        '<files><file src="bin\\Web.dll" target="bin" /></files>'
        "</package>"
    )

    def test_inspect_json(self, project):
        path = project.file("Web.nuspec", self.MANIFEST)

        result = runner.invoke(app, ["pack", "inspect", path, "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["metadata"] == {"id": "Web", "version": "1.2.3"}
        assert payload["files"] == [{"src": "bin\\Web.dll", "target": "bin"}]

    def test_inspect_table(self, project):
        path = project.file("Web.nuspec", self.MANIFEST)
        result = runner.invoke(app, ["pack", "inspect", path])
        assert result.exit_code == 0
        assert "1.2.3" in result.output
        assert "Web.dll" in result.output

    def test_inspect_invalid(self, project):
        path = project.file("Broken.nuspec", "<package>")
        result = runner.invoke(app, ["pack", "inspect", path])
        assert result.exit_code == 1
        assert "SK100" in result.output

    def test_inspect_without_metadata(self, project):
        path = project.file("Empty.nuspec", "<package/>")
        result = runner.invoke(app, ["pack", "inspect", path])
        assert result.exit_code == 1
        assert "<metadata>" in result.output
