"""Shared fixtures: cargo metadata builders and runtime state isolation."""

import json
import logging

import pytest

from constants import Constants

CRATES_IO = "registry+https://github.com/rust-lang/crates.io-index"
GIT_SOURCE = "git+https://github.com/example/forked#0123abcd"


def pkg_id(name, version, source=CRATES_IO):
    if source is None:
        return f"path+file:///ws/{name}#{version}"
    return f"{source}#{name}@{version}"


def make_package(name, version, source=CRATES_IO, dependencies=None):
    return {
        "name": name,
        "version": version,
        "id": pkg_id(name, version, source),
        "source": source,
        "dependencies": dependencies or [],
        "manifest_path": f"/ws/{name}/Cargo.toml",
    }


def make_dep(name, req, source=CRATES_IO, kind=None):
    return {
        "name": name,
        "source": source,
        "req": req,
        "kind": kind,
        "rename": None,
        "optional": False,
        "uses_default_features": True,
        "features": [],
        "target": None,
        "registry": None,
    }


def make_metadata(packages, edges, members):
    """Assemble a ``cargo metadata --format-version 1`` document.

    ``edges`` maps a package id to a list of (target id, dep kind) pairs.
    """
    nodes = []
    for pkg in packages:
        deps = [
            {"name": target, "pkg": target, "dep_kinds": [{"kind": kind, "target": None}]}
            for target, kind in edges.get(pkg["id"], [])
        ]
        nodes.append({
            "id": pkg["id"],
            "dependencies": [d["pkg"] for d in deps],
            "deps": deps,
            "features": [],
        })
    return {
        "packages": packages,
        "workspace_members": list(members),
        "resolve": {"nodes": nodes, "root": members[0] if len(members) == 1 else None},
        "target_directory": "/ws/target",
        "version": 1,
        "workspace_root": "/ws",
    }


@pytest.fixture
def sample_metadata():
    """app (workspace member) -> serde, util (path crate), tokio (dev); util -> itoa.

    ``unused`` is listed in packages but not reachable from the workspace.
    """
    app = make_package(
        "app",
        "0.1.0",
        source=None,
        dependencies=[
            make_dep("serde", "^1.0"),
            make_dep("util", "*", source=None),
            make_dep("tokio", "^1.38", kind="dev"),
            make_dep("forked", "*", source=GIT_SOURCE),
        ],
    )
    util = make_package("util", "0.1.0", source=None, dependencies=[make_dep("itoa", "^1")])
    serde = make_package("serde", "1.0.200")
    serde_derive = make_package("serde_derive", "1.0.200")
    tokio = make_package("tokio", "1.38.0")
    itoa = make_package("itoa", "1.0.11")
    forked = make_package("forked", "0.3.0", source=GIT_SOURCE)
    unused = make_package("unused", "0.1.0")
    edges = {
        app["id"]: [
            (serde["id"], None),
            (util["id"], None),
            (tokio["id"], "dev"),
            (forked["id"], None),
        ],
        util["id"]: [(itoa["id"], None)],
        serde["id"]: [(serde_derive["id"], None)],
    }
    return make_metadata(
        [app, util, serde, serde_derive, tokio, itoa, forked, unused],
        edges,
        [app["id"]],
    )


@pytest.fixture
def metadata_file(tmp_path, sample_metadata):
    path = tmp_path / "metadata.json"
    path.write_text(json.dumps(sample_metadata), encoding="utf-8")
    return str(path)


@pytest.fixture(autouse=True)
def _isolate_runtime_state(monkeypatch):
    """Restore Constants, crategap env vars and crategap log handlers after each test."""
    saved = {
        k: (list(v) if isinstance(v, list) else v)
        for k, v in vars(Constants).items()
        if k.isupper()
    }
    monkeypatch.delenv(Constants.ENV_LOG_LEVEL, raising=False)
    monkeypatch.delenv(Constants.ENV_CONFIG, raising=False)
    root = logging.getLogger()
    root_level = root.level
    yield
    for key, value in saved.items():
        setattr(Constants, key, value)
    for handler in list(root.handlers):
        if getattr(handler, "_crategap_handler", False):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(root_level)
