"""Check abstraction, prerequisites and the source tree walk shared by checks.

Every check variant is a frozen pydantic model: its fields are exactly the
keys accepted in its configuration block, anything else is rejected at decode
time. Runtime state (if any) lives in private attributes.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from pcg.config import settings
from pcg.process import CmdResult, capture

logger = logging.getLogger(__name__)

Capture = Callable[..., CmdResult]


# ── Prerequisites ────────────────────────────────────────────────────────────


class CheckPrerequisite(BaseModel):
    """An external tool a check needs.

    ``help_command`` is executed and its exit code compared with
    ``expected_exit_code``; on mismatch the tool is considered missing and
    ``url`` is handed to ``go get``.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    help_command: list[str]
    expected_exit_code: int = 0
    url: str

    def is_present(self, run: Capture = capture) -> bool:
        result = run(self.help_command)
        return result.exit_code == self.expected_exit_code


# ── Run context ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckContext:
    """What a check needs to know about the tree it runs on."""

    root: Path
    ignore_patterns: tuple[str, ...] = ()
    go: str = field(default_factory=lambda: settings.go_binary)

    def is_ignored(self, rel_path: str) -> bool:
        return is_ignored(rel_path, self.ignore_patterns)

    def go_files(self) -> list[str]:
        """Relative paths of all non-ignored .go files, sorted."""
        return sorted(p for p in self._walk() if p.endswith(".go"))

    def go_packages(self, tests_only: bool = False) -> list[str]:
        """Relative directories holding .go files (or *_test.go files)."""
        suffix = "_test.go" if tests_only else ".go"
        dirs = {os.path.dirname(p) or "." for p in self._walk() if p.endswith(suffix)}
        return sorted(dirs)

    def _walk(self) -> Iterable[str]:
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = os.path.relpath(dirpath, self.root)
            rel_dir = "" if rel_dir == "." else rel_dir
            # Prune in place so ignored directories are never descended into.
            dirnames[:] = sorted(
                d for d in dirnames if not self.is_ignored(os.path.join(rel_dir, d))
            )
            for name in filenames:
                rel = os.path.join(rel_dir, name) if rel_dir else name
                if not self.is_ignored(rel):
                    yield rel.replace(os.sep, "/")


def is_ignored(rel_path: str, patterns: Iterable[str]) -> bool:
    """True if any path segment of ``rel_path`` matches any glob pattern."""
    patterns = list(patterns)
    if not patterns:
        return False
    for segment in rel_path.replace(os.sep, "/").split("/"):
        if segment in ("", "."):
            continue
        if any(fnmatch.fnmatchcase(segment, pat) for pat in patterns):
            return True
    return False


def package_args(packages: Iterable[str]) -> list[str]:
    """Turn relative package directories into go tool arguments."""
    return ["." if p == "." else f"./{p}" for p in packages]


# ── Check ────────────────────────────────────────────────────────────────────


class Check(BaseModel, ABC):
    """Base of every check variant.

    Subclasses set ``check_type`` (the configuration key) and ``help_text``
    and implement :meth:`execute`, which raises :class:`CheckFailure` when the
    check does not pass.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True, strict=True)

    check_type: ClassVar[str] = ""
    help_text: ClassVar[str] = ""

    @property
    def name(self) -> str:
        return self.check_type

    def describe(self) -> str:
        return self.help_text

    def prerequisites(self) -> list[CheckPrerequisite]:
        return []

    @abstractmethod
    def execute(self, ctx: CheckContext) -> None:
        """Run the check against ``ctx.root``; raise CheckFailure on failure."""
