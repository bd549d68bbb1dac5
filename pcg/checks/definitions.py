"""Built-in check variants.

Native checks only depend on the Go toolchain; the others declare the third
party tools they need as prerequisites, which ``pcg prereq`` installs.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import Field

from pcg.checks.base import Check, CheckContext, CheckPrerequisite, package_args
from pcg.errors import CheckFailure
from pcg.process import CmdResult, capture

logger = logging.getLogger(__name__)


def _require_silence(name: str, result: CmdResult) -> None:
    """Tools in this family report problems on stdout/stderr."""
    if result.exit_code != 0 or result.output:
        raise CheckFailure(name, result.output or f"exit code {result.exit_code}")


def _filter_blacklist(output: str, blacklist: list[str]) -> list[str]:
    lines = [line for line in output.splitlines() if line.strip()]
    return [line for line in lines if not any(b in line for b in blacklist)]


# ── Native checks ────────────────────────────────────────────────────────────


class Build(Check):
    """Builds everything via ``go build ./...``.

    Use multiple Build instances to build with different tags.
    """

    check_type: ClassVar[str] = "build"
    help_text: ClassVar[str] = "builds all packages, usually the ones with package 'main'"

    extra_args: list[str] = Field(default_factory=list)

    def execute(self, ctx: CheckContext) -> None:
        result = capture([ctx.go, "build", *self.extra_args, "./..."], cwd=ctx.root)
        _require_silence(self.name, result)


class Gofmt(Check):
    """Runs gofmt in list mode with simplification (-s) always enabled."""

    check_type: ClassVar[str] = "gofmt"
    help_text: ClassVar[str] = "enforces all .go sources are formatted with 'gofmt -s'"

    def execute(self, ctx: CheckContext) -> None:
        files = ctx.go_files()
        if not files:
            return
        result = capture(["gofmt", "-l", "-s", *files], cwd=ctx.root)
        if result.exit_code != 0 and not result.stdout.strip():
            raise CheckFailure(self.name, result.output)
        bad = result.stdout.split()
        if bad:
            raise CheckFailure(
                self.name,
                "these files are improperly formatted, please run: gofmt -w -s "
                + " ".join(bad),
            )


class Test(Check):
    """Runs all tests via ``go test``.

    Use multiple Test instances to test with different flags, e.g. with and
    without the race detector.
    """

    check_type: ClassVar[str] = "test"
    help_text: ClassVar[str] = "runs all tests"

    extra_args: list[str] = Field(default_factory=list)

    def execute(self, ctx: CheckContext) -> None:
        result = capture([ctx.go, "test", *self.extra_args, "./..."], cwd=ctx.root)
        if result.exit_code != 0:
            raise CheckFailure(self.name, result.output or f"exit code {result.exit_code}")


class Govet(Check):
    """Runs ``go vet``; false positives can be dropped with ``blacklist``."""

    check_type: ClassVar[str] = "govet"
    help_text: ClassVar[str] = "enforces all .go sources passes go vet"

    blacklist: list[str] = Field(default_factory=list)

    def execute(self, ctx: CheckContext) -> None:
        result = capture([ctx.go, "vet", "./..."], cwd=ctx.root)
        # go vet prefixes package headers with '#'
        lines = [
            line
            for line in _filter_blacklist(result.output, self.blacklist)
            if not line.startswith("#")
        ]
        if lines:
            raise CheckFailure(self.name, "\n".join(lines))


# ── Checks with prerequisites ────────────────────────────────────────────────


class Errcheck(Check):
    """Runs errcheck on every directory containing .go files."""

    check_type: ClassVar[str] = "errcheck"
    help_text: ClassVar[str] = "enforces all calls returning an error are checked using errcheck"

    ignores: str = ""

    def prerequisites(self) -> list[CheckPrerequisite]:
        return [
            CheckPrerequisite(
                help_command=["errcheck", "-h"],
                expected_exit_code=2,
                url="github.com/kisielk/errcheck",
            )
        ]

    def execute(self, ctx: CheckContext) -> None:
        packages = ctx.go_packages()
        if not packages:
            return
        cmd = ["errcheck"]
        if self.ignores:
            cmd += ["-ignore", self.ignores]
        result = capture(cmd + package_args(packages), cwd=ctx.root)
        _require_silence(self.name, result)


class Goimports(Check):
    """Runs goimports in list mode."""

    check_type: ClassVar[str] = "goimports"
    help_text: ClassVar[str] = "enforces all .go sources are formatted with goimports"

    def prerequisites(self) -> list[CheckPrerequisite]:
        return [
            CheckPrerequisite(
                help_command=["goimports", "-h"],
                expected_exit_code=2,
                url="golang.org/x/tools/cmd/goimports",
            )
        ]

    def execute(self, ctx: CheckContext) -> None:
        files = ctx.go_files()
        if not files:
            return
        result = capture(["goimports", "-l", *files], cwd=ctx.root)
        if result.exit_code != 0 and not result.stdout.strip():
            raise CheckFailure(self.name, result.output)
        bad = result.stdout.split()
        if bad:
            raise CheckFailure(
                self.name,
                "these files are improperly formatted, please run: goimports -w "
                + " ".join(bad),
            )


class Golint(Check):
    """Runs golint.

    golint triggers false positives by design; ``blacklist`` drops messages
    containing any of the listed substrings.
    """

    check_type: ClassVar[str] = "golint"
    help_text: ClassVar[str] = "enforces all .go sources passes golint"

    blacklist: list[str] = Field(default_factory=list)

    def prerequisites(self) -> list[CheckPrerequisite]:
        return [
            CheckPrerequisite(
                help_command=["golint", "-h"],
                expected_exit_code=2,
                url="github.com/golang/lint/golint",
            )
        ]

    def execute(self, ctx: CheckContext) -> None:
        packages = ctx.go_packages()
        if not packages:
            return
        result = capture(["golint", *package_args(packages)], cwd=ctx.root)
        lines = _filter_blacklist(result.output, self.blacklist)
        if lines:
            raise CheckFailure(self.name, "\n".join(lines))


# ── Extensibility ────────────────────────────────────────────────────────────


class Custom(Check):
    """A user configured check that shells out to ``command``."""

    check_type: ClassVar[str] = "custom"
    help_text: ClassVar[str] = "runs a user configured command"

    display_name: str = ""
    description: str = ""
    command: list[str] = Field(default_factory=list)
    check_exit_code: bool = False
    prerequisites_: list[CheckPrerequisite] = Field(default_factory=list, alias="prerequisites")

    @property
    def name(self) -> str:
        return self.display_name or self.check_type

    def describe(self) -> str:
        return self.description or self.help_text

    def prerequisites(self) -> list[CheckPrerequisite]:
        return list(self.prerequisites_)

    def execute(self, ctx: CheckContext) -> None:
        if not self.command:
            raise CheckFailure(self.name, "no command configured")
        result = capture(list(self.command), cwd=ctx.root)
        if self.check_exit_code:
            if result.exit_code != 0:
                raise CheckFailure(
                    self.name, result.output or f"exit code {result.exit_code}"
                )
        elif result.output:
            raise CheckFailure(self.name, result.output)
