"""Unit tests for the walk command."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from cephfs_exporter.cli.main import app
from typer.testing import CliRunner

from tests.conftest import FakeAttributeSource

runner = CliRunner()

ALICE_ROOTS = '[{"Organisation": "acme", "User": "alice", "Path": "/data/alice"}]'


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the user's settings file and environment out of the tests."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for var in ("CEPHFS_EXPORTER_CONFIG", "PATHS_FILE", "CEPH_CONFIG", "CEPH_USER"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def paths_file(tmp_path: Path) -> Path:
    """Write the acme/alice root set."""
    path = tmp_path / "paths.json"
    path.write_text(ALICE_ROOTS)
    return path


def _walk_args(paths_file: Path, *extra: str) -> list[str]:
    return [
        "walk",
        "--paths-file",
        str(paths_file),
        "--min-size",
        "100",
        "--max-depth",
        "2",
        *extra,
    ]


class TestWalkCommand:
    """Tests for cephfs-exporter walk."""

    def test_json_output(self, alice_tree: FakeAttributeSource, paths_file: Path) -> None:
        """JSON output lists samples and walk counters."""
        with patch("cephfs_exporter.cli.commands.walk.build_source", return_value=alice_tree):
            result = runner.invoke(app, _walk_args(paths_file, "--format", "json"))

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        paths = {s["labels"]["path"] for s in data["samples"]}
        assert paths == {"/data/alice", "/data/alice/big", "/data/alice/big/x"}
        assert data["stats"]["visited"] == 4
        assert data["stats"]["pruned"] == 1
        assert data["stats"]["depth_capped"] == 1
        assert data["stats"]["aborted_roots"] == []
        root_size = next(
            s
            for s in data["samples"]
            if s["metric"] == "cephfs_xattr_ceph_dir_rbytes"
            and s["labels"]["path"] == "/data/alice"
        )
        assert root_size["value"] == 500.0
        assert root_size["labels"]["org"] == "acme"

    def test_json_limit(self, alice_tree: FakeAttributeSource, paths_file: Path) -> None:
        """--limit restricts the displayed samples."""
        with patch("cephfs_exporter.cli.commands.walk.build_source", return_value=alice_tree):
            result = runner.invoke(app, _walk_args(paths_file, "--format", "json", "-n", "2"))

        data = json.loads(result.stdout)
        assert len(data["samples"]) == 2
        assert data["stats"]["samples"] == 9

    def test_discover_option(self, fake_source: FakeAttributeSource, tmp_path: Path) -> None:
        """--discover samples every attribute with the prefix."""
        fake_source.add_dir("/r", 10, extra={"ceph.dir.rsubdirs": b"3"})
        paths = tmp_path / "paths.json"
        paths.write_text('[{"Organisation": "o", "User": "u", "Path": "/r"}]')

        with patch("cephfs_exporter.cli.commands.walk.build_source", return_value=fake_source):
            result = runner.invoke(
                app, _walk_args(paths, "--discover", "ceph.dir.", "--format", "json")
            )

        metrics = {s["metric"] for s in json.loads(result.stdout)["samples"]}
        assert "cephfs_xattr_ceph_dir_rsubdirs" in metrics

    def test_table_output(self, alice_tree: FakeAttributeSource, paths_file: Path) -> None:
        """Table output ends with a summary."""
        with patch("cephfs_exporter.cli.commands.walk.build_source", return_value=alice_tree):
            result = runner.invoke(app, _walk_args(paths_file))

        assert result.exit_code == 0
        assert "4 directories visited" in result.stdout
        assert "Walk complete." in result.stdout

    def test_aborted_root_exit_code(self, fake_source: FakeAttributeSource, tmp_path: Path) -> None:
        """A frontier overflow makes the command fail."""
        fake_source.add_dir("/wide", 1000)
        for i in range(5):
            fake_source.add_dir(f"/wide/d{i}", 1000)
        paths = tmp_path / "paths.json"
        paths.write_text('[{"Organisation": "o", "User": "u", "Path": "/wide"}]')
        settings = tmp_path / "exporter.toml"
        settings.write_text("[walker]\nmax_frontier = 2\n")

        with patch("cephfs_exporter.cli.commands.walk.build_source", return_value=fake_source):
            result = runner.invoke(
                app, _walk_args(paths, "--config", str(settings), "--format", "json")
            )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["stats"]["aborted_roots"] == ["/wide"]

    def test_missing_paths_file(self, tmp_path: Path) -> None:
        """A missing root set is fatal."""
        result = runner.invoke(app, _walk_args(tmp_path / "missing.json"))

        assert result.exit_code == 1
        assert "Error" in result.stderr

    def test_missing_explicit_config(self, paths_file: Path, tmp_path: Path) -> None:
        """An explicitly named settings file must exist."""
        result = runner.invoke(
            app, _walk_args(paths_file, "--config", str(tmp_path / "nope.toml"))
        )

        assert result.exit_code == 1
        assert "not found" in result.stderr

    def test_unavailable_source(self, paths_file: Path, tmp_path: Path) -> None:
        """A source that cannot be opened is fatal."""
        result = runner.invoke(
            app,
            _walk_args(
                paths_file, "--source", "local", "--mount-root", str(tmp_path / "nomount")
            ),
        )

        assert result.exit_code == 1
        assert "Error" in result.stderr

    def test_local_source(self, paths_file: Path, tmp_path: Path) -> None:
        """The local source reads through the mount root."""
        (tmp_path / "mnt" / "data" / "alice").mkdir(parents=True)

        with patch(
            "cephfs_exporter.sources.local.os.getxattr",
            side_effect=lambda path, attr: b"5",
        ):
            result = runner.invoke(
                app,
                _walk_args(
                    paths_file,
                    "--source",
                    "local",
                    "--mount-root",
                    str(tmp_path / "mnt"),
                    "--format",
                    "json",
                ),
            )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert len(data["samples"]) == 3
        assert {s["value"] for s in data["samples"]} == {5.0}
