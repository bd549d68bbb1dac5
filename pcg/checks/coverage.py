"""Coverage aggregator.

Each test package is run with ``go test -coverprofile`` and ``-coverpkg=./...``
so package X/Y may produce coverage for package X/Z. All profiles are merged
into one line model before the global and per-directory thresholds are
checked. Optionally the merged model is uploaded to coveralls.io.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import posixpath
import re
import shutil
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from pcg.checks.base import Check, CheckContext, package_args
from pcg.config import settings
from pcg.errors import CheckFailure
from pcg.process import CmdResult, capture

logger = logging.getLogger(__name__)

# file:startLine.startCol,endLine.endCol numStatements count
_PROFILE_LINE = re.compile(r"^(.+):(\d+)\.(\d+),(\d+)\.(\d+) (\d+) (\d+)$")
_MODULE_LINE = re.compile(r"^module\s+(\S+)", re.MULTILINE)


# ── Thresholds ───────────────────────────────────────────────────────────────


class CoverageSettings(BaseModel):
    """A {minimum, maximum} band, in percent.

    ``max_coverage`` of 0 means no upper bound; a 0/0 band is "unset".
    """

    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    min_coverage: float = 0
    max_coverage: float = 0

    @property
    def is_set(self) -> bool:
        return bool(self.min_coverage or self.max_coverage)

    def violation(self, percent: float) -> str | None:
        """Describe why ``percent`` is outside the band, or None."""
        if percent < self.min_coverage:
            return f"{percent:.1f}% is below the minimum of {self.min_coverage:g}%"
        if self.max_coverage and percent > self.max_coverage:
            return f"{percent:.1f}% is above the maximum of {self.max_coverage:g}%"
        return None


# ── Line model ───────────────────────────────────────────────────────────────


@dataclass
class CoverageModel:
    """Executable and covered lines per repository-relative file."""

    executable: dict[str, set[int]] = field(default_factory=dict)
    covered: dict[str, set[int]] = field(default_factory=dict)

    def add_block(self, filename: str, start: int, end: int, count: int) -> None:
        lines = range(start, end + 1)
        self.executable.setdefault(filename, set()).update(lines)
        if count > 0:
            self.covered.setdefault(filename, set()).update(lines)

    def merge(self, other: CoverageModel) -> CoverageModel:
        """Union ``other`` into this model; a line covered by any run is covered."""
        for name, lines in other.executable.items():
            self.executable.setdefault(name, set()).update(lines)
        for name, lines in other.covered.items():
            self.covered.setdefault(name, set()).update(lines)
        return self

    @classmethod
    def parse_profile(cls, text: str, module: str = "") -> CoverageModel:
        """Parse a Go coverprofile, stripping ``module`` from file names."""
        model = cls()
        prefix = module.rstrip("/") + "/" if module else ""
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("mode:"):
                continue
            m = _PROFILE_LINE.match(line)
            if not m:
                logger.debug("Skipping malformed profile line: %r", line)
                continue
            name = m.group(1)
            if prefix and name.startswith(prefix):
                name = name[len(prefix):]
            model.add_block(name, int(m.group(2)), int(m.group(4)), int(m.group(7)))
        return model

    @property
    def files(self) -> list[str]:
        return sorted(self.executable)

    def directories(self) -> list[str]:
        return sorted({os.path.dirname(f) or "." for f in self.executable})

    def counts(self, directory: str | None = None, recursive: bool = True) -> tuple[int, int]:
        """(covered, executable) line counts, optionally restricted to a directory."""
        covered = total = 0
        for name, lines in self.executable.items():
            if directory is not None and not _in_directory(name, directory, recursive):
                continue
            total += len(lines)
            covered += len(self.covered.get(name, set()) & lines)
        return covered, total

    def percent(self, directory: str | None = None, recursive: bool = True) -> float:
        covered, total = self.counts(directory, recursive)
        if not total:
            return 0.0
        return covered * 100.0 / total


def normalize_dir(directory: str) -> str:
    """Repository-relative directory in canonical form; the root is "."."""
    return posixpath.normpath(directory.replace(os.sep, "/")).strip("/") or "."


def _in_directory(name: str, directory: str, recursive: bool) -> bool:
    directory = normalize_dir(directory)
    parent = os.path.dirname(name) or "."
    if directory == ".":
        return recursive or parent == "."
    if recursive:
        return parent == directory or parent.startswith(directory + "/")
    return parent == directory


def module_path(root: Path) -> str:
    """The module path declared in go.mod, or "" when there is none."""
    go_mod = root / "go.mod"
    if not go_mod.is_file():
        return ""
    m = _MODULE_LINE.search(go_mod.read_text(encoding="utf-8", errors="replace"))
    return m.group(1) if m else ""


# ── Check ────────────────────────────────────────────────────────────────────


class Coverage(Check):
    """Runs all tests with coverage and enforces thresholds on the merged data.

    Coverage files are written to a temporary directory; instances serialize
    on the class level ``lock``, which the runner acquires around execute().
    """

    check_type: ClassVar[str] = "coverage"
    help_text: ClassVar[str] = "enforces minimum test coverage on all packages that are not 'main'"
    lock: ClassVar[threading.Lock] = threading.Lock()

    use_coveralls: bool = False
    global_: CoverageSettings = Field(
        default_factory=lambda: CoverageSettings(min_coverage=50, max_coverage=100),
        alias="global",
    )
    per_dir_default: CoverageSettings = Field(default_factory=CoverageSettings)
    per_dir: dict[str, CoverageSettings] = Field(default_factory=dict)

    _model: CoverageModel | None = PrivateAttr(default=None)

    @property
    def model(self) -> CoverageModel | None:
        """Merged coverage of the last execute(), if any."""
        return self._model

    def execute(self, ctx: CheckContext) -> None:
        packages = ctx.go_packages(tests_only=True)
        if not packages:
            logger.info("coverage: no test package found")
            return

        model, problems = self._collect(ctx, packages)
        self._model = model
        problems.extend(self.evaluate(model))

        if self.use_coveralls:
            upload_to_coveralls(model, ctx.root)

        if problems:
            raise CheckFailure(self.name, "\n".join(problems))

    def evaluate(self, model: CoverageModel) -> list[str]:
        """Compare the merged model to the configured bands; one line per problem."""
        problems: list[str] = []
        covered, total = model.counts()
        global_percent = model.percent()
        logger.info("coverage: %d/%d lines, %.1f%%", covered, total, global_percent)
        if msg := self.global_.violation(global_percent):
            problems.append(f"coverage: {msg} ({covered}/{total} lines)")

        for directory, band, recursive in self._directory_bands(model):
            if not model.counts(directory, recursive)[1]:
                if recursive:
                    logger.warning("coverage: per_dir entry %s matches no covered file", directory)
                continue
            percent = model.percent(directory, recursive)
            if msg := band.violation(percent):
                problems.append(f"coverage for {directory}: {msg}")
        return problems

    def _directory_bands(
        self, model: CoverageModel,
    ) -> list[tuple[str, CoverageSettings, bool]]:
        """(directory, band, recursive) to evaluate.

        Explicit overrides apply to the whole subtree; the default band applies
        to each package directory without an override. A 0/0 override is unset
        and leaves the directory to the global band only.
        """
        bands: list[tuple[str, CoverageSettings, bool]] = []
        overrides = {normalize_dir(d): s for d, s in self.per_dir.items()}
        for directory in sorted(overrides):
            if overrides[directory].is_set:
                bands.append((directory, overrides[directory], True))
        if self.per_dir_default.is_set:
            for directory in model.directories():
                if directory not in overrides:
                    bands.append((directory, self.per_dir_default, False))
        return bands

    def _collect(
        self, ctx: CheckContext, packages: list[str],
    ) -> tuple[CoverageModel, list[str]]:
        module = module_path(ctx.root)
        tmp_dir = Path(tempfile.mkdtemp(prefix="pcg-coverage-"))
        try:
            n_workers = max(1, min(settings.coverage_workers, len(packages)))
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                futures = [
                    executor.submit(_run_package, ctx, pkg, tmp_dir / f"{i}.out")
                    for i, pkg in enumerate(packages)
                ]
                wait(futures)

            model = CoverageModel()
            problems: list[str] = []
            for future in futures:
                pkg, result, profile = future.result()
                if result.exit_code != 0:
                    problems.append(f"{pkg}: tests failed\n{result.output}")
                if profile:
                    model.merge(CoverageModel.parse_profile(profile, module))
            return model, problems
        finally:
            shutil.rmtree(tmp_dir, ignore_errors=True)


def _run_package(ctx: CheckContext, pkg: str, profile_path: Path) -> tuple[str, CmdResult, str]:
    cmd = [
        ctx.go, "test",
        "-covermode=count",
        "-coverpkg=./...",
        f"-coverprofile={profile_path}",
        *package_args([pkg]),
    ]
    result = capture(cmd, cwd=ctx.root)
    profile = ""
    if profile_path.is_file():
        profile = profile_path.read_text(encoding="utf-8", errors="replace")
    return pkg, result, profile


# ── Coveralls ────────────────────────────────────────────────────────────────


def coveralls_payload(model: CoverageModel, root: Path, job_id: str, token: str) -> dict[str, Any]:
    """Build the coveralls.io job payload from the merged model."""
    source_files = []
    for name in model.files:
        path = root / name
        if not path.is_file():
            logger.debug("coveralls: skipping missing source %s", name)
            continue
        content = path.read_text(encoding="utf-8", errors="replace")
        executable = model.executable.get(name, set())
        covered = model.covered.get(name, set())
        line_count = len(content.splitlines())
        source_files.append({
            "name": name,
            "source_digest": hashlib.md5(content.encode("utf-8")).hexdigest(),
            "coverage": [
                (1 if n in covered else 0) if n in executable else None
                for n in range(1, line_count + 1)
            ],
        })

    payload: dict[str, Any] = {
        "service_name": settings.ci_service_name,
        "service_job_id": job_id,
        "source_files": source_files,
    }
    if token:
        payload["repo_token"] = token
    return payload


def upload_to_coveralls(model: CoverageModel, root: Path) -> bool:
    """POST the merged model to coveralls; failures are logged, never raised."""
    job_id = settings.ci_job_id or os.environ.get("TRAVIS_JOB_ID", "")
    token = settings.coveralls_repo_token
    if not job_id and not token:
        logger.info("coveralls: no CI job id nor repo token, skipping upload")
        return False

    try:
        payload = coveralls_payload(model, root, job_id, token)
    except OSError as e:
        logger.warning("coveralls upload failed, cannot read sources: %s", e)
        return False
    try:
        resp = httpx.post(
            settings.coveralls_url,
            files={"json_file": ("coverage.json", json.dumps(payload), "application/json")},
            timeout=settings.coveralls_timeout,
        )
    except httpx.HTTPError as e:
        logger.warning("coveralls upload failed: %s", e)
        return False
    if resp.status_code >= 400:
        logger.warning("coveralls upload failed: %d %s", resp.status_code, resp.text[:200])
        return False
    logger.info("coveralls upload done (%d files)", len(payload["source_files"]))
    return True
