"""Tests for the built-in check variants and the source tree walk."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from pcg.checks.base import CheckContext, CheckPrerequisite, is_ignored, package_args
from pcg.checks import definitions
from pcg.checks.config import DEFAULT_IGNORE_PATTERNS
from pcg.checks.definitions import (
    Build,
    Custom,
    Errcheck,
    Gofmt,
    Goimports,
    Golint,
    Govet,
)
from pcg.errors import CheckFailure


# ── Ignore patterns ──────────────────────────────────────────────────────────


class TestIgnorePatterns:
    def test_hidden_directory(self) -> None:
        assert is_ignored(".git/config", DEFAULT_IGNORE_PATTERNS)

    def test_underscore_directory(self) -> None:
        assert is_ignored("_scratch/old.go", DEFAULT_IGNORE_PATTERNS)

    def test_generated_file(self) -> None:
        assert is_ignored("api/api.pb.go", DEFAULT_IGNORE_PATTERNS)
        assert not is_ignored("api/api.go", DEFAULT_IGNORE_PATTERNS)

    def test_applied_per_segment_not_full_path(self) -> None:
        # A pattern containing a separator can never match a single segment.
        assert not is_ignored("foo/bar.go", ["foo/bar.go"])
        assert is_ignored("foo/bar.go", ["foo"])

    def test_nested_segment(self) -> None:
        assert is_ignored("a/b/.cache/c.go", [".*"])

    def test_no_patterns(self) -> None:
        assert not is_ignored(".git/config", [])


class TestTreeWalk:
    def test_go_files(self, ctx: CheckContext) -> None:
        assert ctx.go_files() == [
            "api/api.go",
            "lib/lib.go",
            "lib/lib_test.go",
            "lib/sub/sub.go",
            "main.go",
        ]

    def test_go_packages(self, ctx: CheckContext) -> None:
        assert ctx.go_packages() == [".", "api", "lib", "lib/sub"]

    def test_test_packages(self, ctx: CheckContext) -> None:
        assert ctx.go_packages(tests_only=True) == ["lib"]

    def test_without_patterns_sees_everything(self, go_tree: Path) -> None:
        ctx = CheckContext(root=go_tree, ignore_patterns=(), go="go")
        files = ctx.go_files()
        assert "api/api.pb.go" in files
        assert "_scratch/old.go" in files
        assert ".hidden/x.go" in files

    def test_package_args(self) -> None:
        assert package_args([".", "lib/sub"]) == [".", "./lib/sub"]


# ── Native checks ────────────────────────────────────────────────────────────


class TestBuild:
    def test_silent_build_passes(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result()) as mock_capture:
            Build(extra_args=["-tags", "foo"]).execute(ctx)
        mock_capture.assert_called_once_with(
            ["go", "build", "-tags", "foo", "./..."], cwd=ctx.root,
        )

    def test_output_fails(self, ctx: CheckContext, cmd_result) -> None:
        result = cmd_result(exit_code=1, stderr="main.go:3: undefined: x")
        with patch("pcg.checks.definitions.capture", return_value=result):
            with pytest.raises(CheckFailure, match="undefined: x") as exc:
                Build().execute(ctx)
        assert exc.value.check_name == "build"


class TestGofmt:
    def test_lists_badly_formatted_files(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout="main.go\n")) as mock_capture:
            with pytest.raises(CheckFailure, match="gofmt -w -s main.go"):
                Gofmt().execute(ctx)
        cmd = mock_capture.call_args[0][0]
        assert cmd[:3] == ["gofmt", "-l", "-s"]
        assert "api/api.pb.go" not in cmd

    def test_clean_tree(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result()):
            Gofmt().execute(ctx)

    def test_no_go_files(self, tmp_path: Path) -> None:
        ctx = CheckContext(root=tmp_path, go="go")
        with patch("pcg.checks.definitions.capture") as mock_capture:
            Gofmt().execute(ctx)
        mock_capture.assert_not_called()


class TestTest:
    def test_failure_carries_output(self, ctx: CheckContext, cmd_result) -> None:
        result = cmd_result(exit_code=1, stdout="--- FAIL: TestA")
        with patch("pcg.checks.definitions.capture", return_value=result) as mock_capture:
            with pytest.raises(CheckFailure, match="FAIL: TestA"):
                definitions.Test(extra_args=["-short"]).execute(ctx)
        assert mock_capture.call_args[0][0] == ["go", "test", "-short", "./..."]

    def test_verbose_output_is_fine(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout="ok  lib 0.01s")):
            definitions.Test(extra_args=["-v"]).execute(ctx)


class TestGovet:
    def test_blacklisted_messages_dropped(self, ctx: CheckContext, cmd_result) -> None:
        output = "# example.com/demo/lib\nlib/lib.go:4: composite literal uses unkeyed fields\n"
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(exit_code=1, stderr=output)):
            Govet(blacklist=[" composite literal uses unkeyed fields"]).execute(ctx)

    def test_other_messages_fail(self, ctx: CheckContext, cmd_result) -> None:
        output = "lib/lib.go:4: unreachable code\n"
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(exit_code=1, stderr=output)):
            with pytest.raises(CheckFailure, match="unreachable code"):
                Govet().execute(ctx)


# ── Checks with prerequisites ────────────────────────────────────────────────


class TestErrcheck:
    def test_command_line(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result()) as mock_capture:
            Errcheck(ignores="Close").execute(ctx)
        assert mock_capture.call_args[0][0] == [
            "errcheck", "-ignore", "Close", ".", "./api", "./lib", "./lib/sub",
        ]

    def test_unchecked_error_fails(self, ctx: CheckContext, cmd_result) -> None:
        result = cmd_result(exit_code=1, stdout="lib/lib.go:4:2: f.Close()")
        with patch("pcg.checks.definitions.capture", return_value=result):
            with pytest.raises(CheckFailure, match=r"f\.Close\(\)"):
                Errcheck().execute(ctx)

    def test_prerequisite(self) -> None:
        (prereq,) = Errcheck().prerequisites()
        assert prereq.help_command == ["errcheck", "-h"]
        assert prereq.expected_exit_code == 2
        assert prereq.url == "github.com/kisielk/errcheck"


class TestGoimports:
    def test_lists_files(self, ctx: CheckContext, cmd_result) -> None:
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout="lib/lib.go\n")):
            with pytest.raises(CheckFailure, match="goimports -w lib/lib.go"):
                Goimports().execute(ctx)

    def test_has_prerequisite(self) -> None:
        assert [p.url for p in Goimports().prerequisites()] == ["golang.org/x/tools/cmd/goimports"]


class TestGolint:
    def test_blacklist_filters_lines(self, ctx: CheckContext, cmd_result) -> None:
        output = (
            "lib/lib.go:3:1: exported function A should have comment or be unexported\n"
            "main.go:1:1: don't use an underscore in package name\n"
        )
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout=output)):
            with pytest.raises(CheckFailure) as exc:
                Golint(blacklist=["should have comment"]).execute(ctx)
        assert "underscore" in exc.value.detail
        assert "should have comment" not in exc.value.detail

    def test_everything_blacklisted_passes(self, ctx: CheckContext, cmd_result) -> None:
        output = "lib/lib.go:3:1: exported function A should have comment or be unexported\n"
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout=output)):
            Golint(blacklist=["should have comment"]).execute(ctx)


# ── Custom ───────────────────────────────────────────────────────────────────


class TestCustom:
    def test_identity(self) -> None:
        check = Custom(display_name="sample", description="does things", command=["true"])
        assert check.name == "sample"
        assert check.describe() == "does things"
        assert Custom().name == "custom"

    def test_exit_code_checked(self, ctx: CheckContext, cmd_result) -> None:
        check = Custom(display_name="sample", command=["./check.sh"], check_exit_code=True)
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout="noise")):
            check.execute(ctx)
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(exit_code=3)):
            with pytest.raises(CheckFailure, match="exit code 3"):
                check.execute(ctx)

    def test_output_fails_without_exit_code_check(self, ctx: CheckContext, cmd_result) -> None:
        check = Custom(display_name="sample", command=["./check.sh"])
        with patch("pcg.checks.definitions.capture", return_value=cmd_result(stdout="problem")):
            with pytest.raises(CheckFailure, match="problem"):
                check.execute(ctx)

    def test_declared_prerequisites(self) -> None:
        check = Custom.model_validate_json(json.dumps({
            "display_name": "sample",
            "command": ["sample"],
            "prerequisites": [
                {"help_command": ["sample", "-h"], "expected_exit_code": 2, "url": "example.com/sample"},
            ],
        }))
        assert check.prerequisites() == [
            CheckPrerequisite(help_command=["sample", "-h"], expected_exit_code=2, url="example.com/sample"),
        ]

    def test_missing_command(self, ctx: CheckContext) -> None:
        with pytest.raises(CheckFailure, match="no command"):
            Custom(display_name="empty").execute(ctx)

    def test_checks_are_immutable(self) -> None:
        check = Custom(display_name="sample")
        with pytest.raises(ValidationError):
            check.display_name = "other"  # type: ignore[misc]
