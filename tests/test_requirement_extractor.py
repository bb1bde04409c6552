"""Tests for requirement extraction from Cargo.toml and cargo metadata."""

import logging

from analysis.requirements import (
    extract_graph_requirements,
    extract_manifest_requirements,
    merge_requirements,
)
from versioning.parser import parse_requirement

MANIFEST = """
[package]
name = "app"
version = "0.1.0"

[dependencies]
serde = "1.0"
tokio = { version = "1.38", features = ["full"] }
util = { path = "../util" }
forked = { git = "https://github.com/example/forked" }
json = { package = "serde_json", version = "1" }
anyhow = { workspace = true }
broken = "not a version"

[dev-dependencies]
proptest = "1.4"

[build-dependencies]
cc = { version = "1.0.90", optional = true }

[target.'cfg(unix)'.dependencies]
libc = "0.2"

[workspace.dependencies]
anyhow = "1.0.80"
"""


def _raws(requirements, name):
    return [req.raw for req in requirements[name]]


class TestManifestRequirements:
    """Test extraction from manifest text."""

    def test_string_and_table_entries(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert _raws(reqs, "serde") == ["1.0"]
        assert _raws(reqs, "tokio") == ["1.38"]
        assert reqs["serde"][0].origin == "manifest:dependencies"

    def test_path_and_git_entries_skipped(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert "util" not in reqs
        assert "forked" not in reqs

    def test_renamed_dependency_keyed_by_package(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert "json" not in reqs
        assert _raws(reqs, "serde_json") == ["1"]

    def test_workspace_inheritance(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert [(r.raw, r.origin) for r in reqs["anyhow"]] == [
            ("1.0.80", "manifest:dependencies"),
            ("1.0.80", "manifest:workspace.dependencies"),
        ]

    def test_other_sections_and_targets(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert reqs["proptest"][0].origin == "manifest:dev-dependencies"
        assert reqs["cc"][0].origin == "manifest:build-dependencies"
        assert reqs["libc"][0].origin == "manifest:target.cfg(unix).dependencies"

    def test_unparseable_requirement_skipped(self):
        reqs = extract_manifest_requirements(MANIFEST)
        assert "broken" not in reqs

    def test_invalid_toml_yields_empty(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert extract_manifest_requirements("[dependencies\nserde = ") == {}
        assert "invalid TOML" in caplog.text

    def test_missing_workspace_entry_skipped(self):
        text = '[dependencies]\nanyhow = { workspace = true }\n'
        assert extract_manifest_requirements(text) == {}


class TestGraphRequirements:
    """Test extraction from the metadata package list."""

    def test_member_dependencies(self, sample_metadata):
        reqs = extract_graph_requirements(sample_metadata)
        assert set(reqs) == {"serde", "tokio"}
        assert _raws(reqs, "serde") == ["^1.0"]
        assert reqs["serde"][0].origin == "metadata:normal"
        assert reqs["tokio"][0].origin == "metadata:dev"

    def test_non_member_dependencies_ignored(self, sample_metadata):
        # itoa is only declared by the path crate util, which is not a member
        assert "itoa" not in extract_graph_requirements(sample_metadata)

    def test_empty_document(self):
        assert extract_graph_requirements({}) == {}


def test_merge_requirements_dedups_in_order():
    a = {"serde": [parse_requirement("serde", "1.0", "metadata:normal")]}
    b = {
        "serde": [
            parse_requirement("serde", "1.0", "metadata:normal"),
            parse_requirement("serde", "1.0.150", "manifest:dependencies"),
        ],
        "log": [parse_requirement("log", "0.4", "manifest:dependencies")],
    }
    merged = merge_requirements(a, b)
    assert _raws(merged, "serde") == ["1.0", "1.0.150"]
    assert _raws(merged, "log") == ["0.4"]
