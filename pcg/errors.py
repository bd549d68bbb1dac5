"""Error taxonomy shared by the configuration model, resolver and runner."""

from __future__ import annotations


class PcgError(Exception):
    """Base class for every error surfaced to the user."""


class ConfigError(PcgError):
    """Raised when the configuration cannot be decoded or is invalid."""


class RegistryError(PcgError):
    """Raised on duplicate or late check-type registration."""


class PrerequisiteError(PcgError):
    """Raised when missing prerequisites could not be installed."""


class HookError(PcgError):
    """Raised when the git hook cannot be located or written."""


class CheckFailure(PcgError):
    """A single check reported a problem."""

    def __init__(self, check_name: str, detail: str = "", message: str | None = None) -> None:
        self.check_name = check_name
        self.detail = detail
        if message is None:
            message = f"{check_name} failed:\n{detail}" if detail else f"{check_name} failed"
        super().__init__(message)


class BudgetExceeded(CheckFailure):
    """A check took longer than the effective max duration."""

    def __init__(self, check_name: str, elapsed: float, max_duration: float) -> None:
        self.elapsed = elapsed
        self.max_duration = max_duration
        super().__init__(
            check_name,
            detail=f"budget is {max_duration:g}s",
            message=f"check {check_name} took {elapsed:1.2f}s",
        )


class ChecksFailedError(PcgError):
    """Aggregate error raised once every check of a run has completed."""

    def __init__(self, failures: list[CheckFailure], elapsed: float) -> None:
        self.failures = failures
        self.elapsed = elapsed
        super().__init__(f"checks failed in {elapsed:1.2f}s")
