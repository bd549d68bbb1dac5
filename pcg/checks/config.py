"""Configuration model: modes, per-mode checks and budgets, ignore patterns.

The persisted form is pre-commit-go.yml:

    min_version: 0.4.0
    modes:
      pre-commit:
        checks:
          build:
          - extra_args: []
        max_duration: 5
    ignore_patterns: [".*", "_*", "*.pb.go"]

Decoding resolves each check-type key through a CheckRegistry first and only
then validates the block against that variant's fields.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from pcg.checks.base import Check, CheckContext
from pcg.checks.coverage import Coverage, CoverageSettings
from pcg.checks.definitions import Build, Errcheck, Gofmt, Goimports, Golint, Govet, Test
from pcg.checks.registry import CheckRegistry
from pcg.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_PATTERNS = (".*", "_*", "*.pb.go")

_CONFIG_HEADER = (
    "# pcg configuration file to run checks automatically on commit, on push and\n"
    "# on continuous integration.\n"
    "#\n"
    "# Run 'pcg help' for the list of supported checks.\n\n"
)


# ── Modes ────────────────────────────────────────────────────────────────────


class Mode(str, Enum):
    """Execution context selecting which checks run together.

    All modes are selected from the context except LINT, which is only ever
    selected explicitly.
    """

    PRE_COMMIT = "pre-commit"
    PRE_PUSH = "pre-push"
    CONTINUOUS_INTEGRATION = "continuous-integration"
    LINT = "lint"

    @classmethod
    def parse(cls, value: Any) -> Mode:
        if isinstance(value, Mode):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ConfigError(f"invalid mode \"{value}\"") from None


ALL_MODES: tuple[Mode, ...] = tuple(Mode)

# Each level selects one mode; the default settings of a higher mode are a
# superset of the lower ones.
RUN_LEVELS: dict[int, tuple[Mode, ...]] = {
    0: (),
    1: (Mode.PRE_COMMIT,),
    2: (Mode.PRE_PUSH,),
    3: (Mode.CONTINUOUS_INTEGRATION,),
}


def modes_for_level(level: int) -> list[Mode]:
    if level not in RUN_LEVELS:
        raise ConfigError(f"-level {level} is invalid, must be between 0 and 3")
    return list(RUN_LEVELS[level])


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class ModeSettings:
    """Checks enabled for one mode and the time budget they share."""

    checks: dict[str, list[Check]] = field(default_factory=dict)
    max_duration: int = 0  # seconds

    def all_checks(self) -> list[Check]:
        return [c for checks in self.checks.values() for c in checks]


@dataclass
class Config:
    """Decoded pre-commit-go.yml."""

    min_version: str = ""
    modes: dict[Mode, ModeSettings] = field(default_factory=dict)
    ignore_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS))

    def enabled_checks(self, modes: Iterable[Mode]) -> tuple[list[Check], int]:
        """All checks of the requested modes and the effective max duration.

        Checks shared by several requested modes are returned once per mode.
        The budget is the largest of the modes' budgets, not their sum.
        """
        requested = {Mode.parse(m) for m in modes}
        out: list[Check] = []
        max_duration = 0
        for mode in ALL_MODES:
            if mode not in requested or mode not in self.modes:
                continue
            mode_settings = self.modes[mode]
            out.extend(mode_settings.all_checks())
            max_duration = max(max_duration, mode_settings.max_duration)
        return out, max_duration

    def context(self, root: Path) -> CheckContext:
        return CheckContext(root=root, ignore_patterns=tuple(self.ignore_patterns))

    @classmethod
    def default(cls, version: str) -> Config:
        """Built-in configuration used when no pre-commit-go.yml exists."""

        def coverage(upload: bool) -> Coverage:
            return Coverage(
                use_coveralls=upload,
                global_=CoverageSettings(min_coverage=50, max_coverage=100),
                per_dir_default=CoverageSettings(min_coverage=0, max_coverage=0),
                per_dir={},
            )

        return cls(
            min_version=version,
            modes={
                Mode.PRE_COMMIT: ModeSettings(
                    max_duration=5,
                    checks={
                        "build": [Build(extra_args=[])],
                        "gofmt": [Gofmt()],
                        "test": [Test(extra_args=["-short"])],
                    },
                ),
                Mode.PRE_PUSH: ModeSettings(
                    max_duration=15,
                    checks={
                        "goimports": [Goimports()],
                        "coverage": [coverage(upload=False)],
                        "test": [Test(extra_args=["-v", "-race"])],
                    },
                ),
                Mode.CONTINUOUS_INTEGRATION: ModeSettings(
                    max_duration=120,
                    checks={
                        "build": [Build(extra_args=[])],
                        "gofmt": [Gofmt()],
                        "goimports": [Goimports()],
                        "coverage": [coverage(upload=True)],
                        "test": [Test(extra_args=["-v", "-race"])],
                    },
                ),
                Mode.LINT: ModeSettings(
                    max_duration=15,
                    checks={
                        # "Close|Write.*|Flush|Seek|Read.*"
                        "errcheck": [Errcheck(ignores="Close")],
                        "golint": [Golint(blacklist=[])],
                        "govet": [Govet(blacklist=[" composite literal uses unkeyed fields"])],
                    },
                ),
            },
            ignore_patterns=list(DEFAULT_IGNORE_PATTERNS),
        )


# ── Decoding ─────────────────────────────────────────────────────────────────


def decode(raw: Any, registry: CheckRegistry) -> Config:
    """Turn a YAML-decoded document into a Config; raises ConfigError."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError("configuration must be a mapping")
    unknown = sorted(set(raw) - {"min_version", "modes", "ignore_patterns"})
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(map(str, unknown))}")

    raw_modes = raw.get("modes") or {}
    if not isinstance(raw_modes, dict):
        raise ConfigError("\"modes\" must be a mapping of mode name to settings")
    modes: dict[Mode, ModeSettings] = {}
    for mode_name, raw_settings in raw_modes.items():
        mode = Mode.parse(mode_name)
        modes[mode] = _decode_mode_settings(mode, raw_settings, registry)

    ignore_patterns = raw.get("ignore_patterns")
    if ignore_patterns is None:
        ignore_patterns = list(DEFAULT_IGNORE_PATTERNS)
    elif not isinstance(ignore_patterns, list) or not all(isinstance(p, str) for p in ignore_patterns):
        raise ConfigError("\"ignore_patterns\" must be a list of glob strings")

    return Config(
        min_version=str(raw.get("min_version") or ""),
        modes=modes,
        ignore_patterns=list(ignore_patterns),
    )


def _decode_mode_settings(mode: Mode, raw: Any, registry: CheckRegistry) -> ModeSettings:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"settings for mode \"{mode.value}\" must be a mapping")
    unknown = sorted(set(raw) - {"checks", "max_duration"})
    if unknown:
        raise ConfigError(
            f"unknown keys in mode \"{mode.value}\": {', '.join(map(str, unknown))}"
        )

    max_duration = raw.get("max_duration", 0) or 0
    if isinstance(max_duration, bool) or not isinstance(max_duration, int) or max_duration < 0:
        raise ConfigError(
            f"max_duration of mode \"{mode.value}\" must be a non-negative integer"
        )

    raw_checks = raw.get("checks") or {}
    if not isinstance(raw_checks, dict):
        raise ConfigError(f"checks of mode \"{mode.value}\" must be a mapping")

    checks: dict[str, list[Check]] = {}
    for type_name, blocks in raw_checks.items():
        prototype = registry.lookup(type_name)
        if prototype is None:
            raise ConfigError(f"unknown check \"{type_name}\" in mode \"{mode.value}\"")
        if blocks is None:
            blocks = []
        if not isinstance(blocks, list):
            raise ConfigError(
                f"check \"{type_name}\" in mode \"{mode.value}\" must be a list of settings"
            )
        checks[type_name] = [_decode_check(mode, type_name, prototype, b) for b in blocks]
    return ModeSettings(checks=checks, max_duration=max_duration)


def _decode_check(mode: Mode, type_name: str, prototype: Check, block: Any) -> Check:
    """Apply ``block`` onto the defaults of the registered variant.

    Validation runs in JSON mode: fields are strictly typed, so a string is
    never coerced into a number or a boolean, while nested settings are still
    accepted as plain mappings.
    """
    if block is None:
        block = {}
    if not isinstance(block, dict):
        raise ConfigError(
            f"invalid settings for check \"{type_name}\" in mode \"{mode.value}\": "
            "expected a mapping"
        )
    data = {**prototype.model_dump(by_alias=True, mode="json"), **block}
    try:
        return type(prototype).model_validate_json(json.dumps(data))
    except (TypeError, ValidationError) as e:
        raise ConfigError(
            f"invalid settings for check \"{type_name}\" in mode \"{mode.value}\": {e}"
        ) from e


# ── Encoding ─────────────────────────────────────────────────────────────────


def encode(config: Config) -> dict[str, Any]:
    """Inverse of decode(); plain data suitable for yaml.dump."""
    modes: dict[str, Any] = {}
    for mode in ALL_MODES:
        if mode not in config.modes:
            continue
        mode_settings = config.modes[mode]
        modes[mode.value] = {
            "checks": {
                type_name: [c.model_dump(by_alias=True, mode="json") for c in checks]
                for type_name, checks in mode_settings.checks.items()
            },
            "max_duration": mode_settings.max_duration,
        }
    return {
        "min_version": config.min_version,
        "modes": modes,
        "ignore_patterns": list(config.ignore_patterns),
    }


# ── Versions ─────────────────────────────────────────────────────────────────


def _version_tuple(version: str) -> tuple[int, ...]:
    parts = []
    for part in version.strip().lstrip("v").split("."):
        m = re.match(r"\d+", part)
        parts.append(int(m.group(0)) if m else 0)
    return tuple(parts)


def check_min_version(config: Config, version: str) -> None:
    """Refuse configs written for a newer version of the tool."""
    if not config.min_version:
        return
    if _version_tuple(config.min_version) > _version_tuple(version):
        raise ConfigError(
            f"configuration requires version {config.min_version} or later, "
            f"this is version {version}"
        )


# ── Persistence ──────────────────────────────────────────────────────────────


def load_config(path: Path, registry: CheckRegistry, version: str) -> Config:
    """Load ``path`` or fall back to the built-in defaults if it doesn't exist."""
    if not path.exists():
        logger.info("No config file at %s, using defaults", path)
        return Config.default(version)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e
    config = decode(raw, registry)
    check_min_version(config, version)
    logger.info("Loaded config from %s", path)
    return config


def write_config(config: Config, path: Path) -> None:
    content = yaml.dump(
        encode(config), allow_unicode=True, sort_keys=False, default_flow_style=False,
    )
    # Replace rather than write through, in case it's a symlink.
    path.unlink(missing_ok=True)
    path.write_text(_CONFIG_HEADER + content, encoding="utf-8")
    logger.info("Wrote config to %s", path)
