"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from pcg.checks.base import CheckContext
from pcg.checks.config import DEFAULT_IGNORE_PATTERNS
from pcg.checks.registry import CheckRegistry, default_registry
from pcg.process import CmdResult

GO_TREE = {
    "go.mod": "module example.com/demo\n\ngo 1.21\n",
    "main.go": "package main\n\nfunc main() {\n}\n",
    "lib/lib.go": "package lib\n\nfunc A() int {\n\treturn 1\n}\n",
    "lib/lib_test.go": "package lib\n",
    "lib/sub/sub.go": "package sub\n",
    "api/api.go": "package api\n",
    "api/api.pb.go": "package api\n",
    "_scratch/old.go": "package old\n",
    ".hidden/x.go": "package x\n",
}


@pytest.fixture
def cmd_result() -> Callable[..., CmdResult]:
    """Factory for canned subprocess results."""

    def make(exit_code: int = 0, stdout: str = "", stderr: str = "") -> CmdResult:
        return CmdResult(exit_code=exit_code, stdout=stdout, stderr=stderr, duration_ms=1)

    return make


@pytest.fixture
def go_tree(tmp_path: Path) -> Path:
    """A small Go module on disk, including files the ignore patterns skip."""
    root = tmp_path / "repo"
    for rel, content in GO_TREE.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture
def ctx(go_tree: Path) -> CheckContext:
    return CheckContext(root=go_tree, ignore_patterns=DEFAULT_IGNORE_PATTERNS, go="go")


@pytest.fixture
def registry() -> CheckRegistry:
    return default_registry()
