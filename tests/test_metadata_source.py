"""Tests for build metadata sources and cargo invocation."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from buildmeta import (
    CargoInvocation,
    MetadataError,
    StructuredGraphSource,
    TextualTreeSource,
    run_cargo,
    select_source,
)
from constants import Constants
from versioning.models import PackageId

TREE = """\
app v0.1.0 (/ws/app)
├── serde v1.0.200
└── log v0.4.21
"""


class TestCargoInvocation:
    """Test command construction."""

    def test_metadata_command(self):
        inv = CargoInvocation("ws/Cargo.toml")
        assert inv.metadata_command() == [
            "cargo", "metadata", "--format-version", "1", "--manifest-path", "ws/Cargo.toml",
        ]

    def test_metadata_command_with_options(self):
        inv = CargoInvocation("Cargo.toml", filter_platform="x86_64-unknown-linux-gnu", offline=True, locked=True)
        assert inv.metadata_command() == [
            "cargo", "metadata", "--format-version", "1",
            "--filter-platform", "x86_64-unknown-linux-gnu",
            "--manifest-path", "Cargo.toml", "--offline", "--locked",
        ]

    def test_tree_command(self):
        inv = CargoInvocation("Cargo.toml", include_dev=False)
        assert inv.tree_command() == [
            "cargo", "tree", "--prefix", "indent", "--target", "all", "--edges", "no-dev",
            "--manifest-path", "Cargo.toml",
        ]

    def test_from_constants(self):
        Constants.CARGO_BIN = "/opt/cargo"
        Constants.METADATA_TIMEOUT_SEC = 12
        Constants.INCLUDE_DEV_DEPENDENCIES = False
        inv = CargoInvocation.from_constants()
        assert inv.manifest_path == "Cargo.toml"
        assert inv.cargo_bin == "/opt/cargo"
        assert inv.timeout == 12
        assert inv.include_dev is False


class TestRunCargo:
    """Test subprocess handling."""

    def test_returns_stdout(self):
        completed = MagicMock(returncode=0, stdout="{}", stderr="")
        with patch("buildmeta.source.subprocess.run", return_value=completed) as run:
            assert run_cargo(["cargo", "metadata"], 5) == "{}"
        _, kwargs = run.call_args
        assert kwargs["timeout"] == 5
        assert kwargs["capture_output"] is True
        assert kwargs["check"] is False

    def test_nonzero_exit(self):
        completed = MagicMock(returncode=101, stdout="", stderr="a\nb\nerror: could not find `Cargo.toml`\n")
        with patch("buildmeta.source.subprocess.run", return_value=completed):
            with pytest.raises(MetadataError) as excinfo:
                run_cargo(["cargo", "metadata"], 5)
        assert "exit status 101" in str(excinfo.value)
        assert "could not find `Cargo.toml`" in str(excinfo.value)

    def test_missing_binary(self):
        with patch("buildmeta.source.subprocess.run", side_effect=FileNotFoundError()):
            with pytest.raises(MetadataError, match="not found"):
                run_cargo(["cargo", "metadata"], 5)

    def test_timeout(self):
        with patch(
            "buildmeta.source.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="cargo", timeout=5),
        ):
            with pytest.raises(MetadataError, match="timed out after 5 seconds"):
                run_cargo(["cargo", "metadata"], 5)


class TestStructuredGraphSource:
    """Test the cargo metadata variant."""

    def test_saved_file(self, metadata_file):
        source = StructuredGraphSource(CargoInvocation("Cargo.toml"), metadata_file).load()
        assert source.kind == "metadata"
        assert PackageId("serde", "1.0.200") in source.closure()
        assert set(source.requirements()) == {"serde", "tokio"}

    def test_runs_cargo_once(self, sample_metadata):
        with patch("buildmeta.source.run_cargo", return_value=json.dumps(sample_metadata)) as run:
            source = StructuredGraphSource(CargoInvocation("Cargo.toml"))
            source.closure()
            source.requirements()
        assert run.call_count == 1

    def test_respects_include_dev(self, metadata_file):
        source = StructuredGraphSource(CargoInvocation("Cargo.toml", include_dev=False), metadata_file)
        assert "tokio" not in {p.name for p in source.closure()}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text("not json", encoding="utf-8")
        with pytest.raises(MetadataError, match="Invalid JSON"):
            StructuredGraphSource(CargoInvocation("Cargo.toml"), str(path)).load()

    def test_non_object_document(self, tmp_path):
        path = tmp_path / "metadata.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(MetadataError):
            StructuredGraphSource(CargoInvocation("Cargo.toml"), str(path)).load()

    def test_no_resolve_graph(self, tmp_path, sample_metadata):
        sample_metadata["resolve"] = None
        path = tmp_path / "metadata.json"
        path.write_text(json.dumps(sample_metadata), encoding="utf-8")
        source = StructuredGraphSource(CargoInvocation("Cargo.toml"), str(path))
        with pytest.raises(MetadataError, match="resolve graph"):
            source.closure()

    def test_missing_saved_file(self, tmp_path):
        with pytest.raises(MetadataError, match="Could not read metadata file"):
            StructuredGraphSource(CargoInvocation("Cargo.toml"), str(tmp_path / "nope.json")).load()


class TestTextualTreeSource:
    """Test the cargo tree variant."""

    def test_saved_tree_and_manifest(self, tmp_path):
        manifest = tmp_path / "Cargo.toml"
        manifest.write_text('[dependencies]\nserde = "1.0"\n', encoding="utf-8")
        tree = tmp_path / "tree.txt"
        tree.write_text(TREE, encoding="utf-8")
        source = TextualTreeSource(CargoInvocation(str(manifest)), str(tree)).load()
        assert source.kind == "tree"
        assert source.closure() == {PackageId("serde", "1.0.200"), PackageId("log", "0.4.21")}
        assert set(source.requirements()) == {"serde"}

    def test_unreadable_manifest_gives_no_requirements(self, tmp_path, caplog):
        source = TextualTreeSource(CargoInvocation(str(tmp_path / "missing.toml")))
        assert source.requirements() == {}
        assert "synthesized requirements only" in caplog.text


class TestSelectSource:
    """Test variant selection."""

    def test_saved_files_win(self, metadata_file, tmp_path):
        tree = tmp_path / "tree.txt"
        tree.write_text(TREE, encoding="utf-8")
        inv = CargoInvocation("Cargo.toml")
        assert isinstance(select_source(inv, "tree", metadata_file=metadata_file), StructuredGraphSource)
        assert isinstance(select_source(inv, "metadata", tree_file=str(tree)), TextualTreeSource)

    def test_auto_prefers_structured(self, sample_metadata):
        with patch("buildmeta.source.run_cargo", return_value=json.dumps(sample_metadata)) as run:
            source = select_source(CargoInvocation("Cargo.toml"))
        assert isinstance(source, StructuredGraphSource)
        assert run.call_args[0][0][1] == "metadata"

    def test_auto_falls_back_to_tree(self, caplog):
        def fake_run(cmd, timeout):
            if cmd[1] == "metadata":
                raise MetadataError("boom")
            return TREE

        with patch("buildmeta.source.run_cargo", side_effect=fake_run):
            source = select_source(CargoInvocation("Cargo.toml"))
        assert isinstance(source, TextualTreeSource)
        assert "falling back to cargo tree" in caplog.text

    def test_auto_falls_back_when_graph_has_no_resolve(self, sample_metadata):
        sample_metadata["resolve"] = None

        def fake_run(cmd, timeout):
            if cmd[1] == "metadata":
                return json.dumps(sample_metadata)
            return TREE

        with patch("buildmeta.source.run_cargo", side_effect=fake_run):
            source = select_source(CargoInvocation("Cargo.toml"))
        assert isinstance(source, TextualTreeSource)
        assert source.closure() == {PackageId("serde", "1.0.200"), PackageId("log", "0.4.21")}

    def test_explicit_metadata_mode_does_not_fall_back(self):
        with patch("buildmeta.source.run_cargo", side_effect=MetadataError("boom")):
            with pytest.raises(MetadataError):
                select_source(CargoInvocation("Cargo.toml"), "metadata")

    def test_explicit_tree_mode(self):
        with patch("buildmeta.source.run_cargo", return_value=TREE) as run:
            source = select_source(CargoInvocation("Cargo.toml"), "tree")
        assert isinstance(source, TextualTreeSource)
        assert run.call_args[0][0][1] == "tree"
