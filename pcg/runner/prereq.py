"""Prerequisite resolver: detects and installs the external tools checks need."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait

from pcg.checks.base import Capture, Check, CheckPrerequisite
from pcg.config import settings
from pcg.errors import PrerequisiteError
from pcg.process import capture

logger = logging.getLogger(__name__)


class PrerequisiteResolver:
    """Probes prerequisites concurrently and installs the missing ones."""

    def __init__(
        self,
        run: Capture = capture,
        go: str | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._run = run
        self._go = go or settings.go_binary
        self._max_workers = max_workers or settings.prereq_probe_workers

    def resolve(self, checks: Sequence[Check]) -> list[str]:
        """Return the sorted, deduplicated install URLs of missing tools."""
        prereqs = [p for check in checks for p in check.prerequisites()]
        if not prereqs:
            return []

        n_workers = max(1, min(self._max_workers, len(prereqs)))
        with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="pcg-probe") as executor:
            futures = [(p, executor.submit(self._is_present, p)) for p in prereqs]
            wait([f for _, f in futures])

        missing = {p.url for p, future in futures if not future.result()}
        if missing:
            logger.info("Missing prerequisites: %s", ", ".join(sorted(missing)))
        return sorted(missing)

    def install(self, urls: Sequence[str]) -> None:
        """Fetch ``urls`` with ``go get``, retrying once with the upgrade flag.

        Upgrading is slower and changes tools behind the user's back, so it is
        only attempted when the plain fetch did not succeed silently.
        """
        if not urls:
            return
        urls = list(urls)
        result = self._run([self._go, "get", *urls])
        if result.output or result.exit_code != 0:
            logger.info("'go get' was not silent, retrying with %s", settings.go_get_upgrade_flag)
            result = self._run([self._go, "get", settings.go_get_upgrade_flag, *urls])
        if result.output:
            raise PrerequisiteError(f"prerequisites installation failed: {result.output}")
        if result.exit_code != 0:
            raise PrerequisiteError(
                f"prerequisites installation failed: exit code {result.exit_code}"
            )
        logger.info("Installed %d prerequisites", len(urls))

    def ensure(self, checks: Sequence[Check]) -> list[str]:
        """resolve() then install(); returns what was installed."""
        missing = self.resolve(checks)
        self.install(missing)
        return missing

    def _is_present(self, prereq: CheckPrerequisite) -> bool:
        try:
            present = prereq.is_present(self._run)
        except OSError as e:
            logger.debug("Probe %s failed to run: %s", prereq.help_command, e)
            return False
        logger.debug("Probe %s: %s", " ".join(prereq.help_command), "ok" if present else "missing")
        return present
