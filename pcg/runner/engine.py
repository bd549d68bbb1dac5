"""Check runner: executes checks concurrently and enforces the time budget.

Every check runs as its own task in a thread pool; there is no ordering
between checks and no cancellation. A check that ran longer than the
effective max duration is a failed check, even if it passed. The budget is
verified after the fact: a slow check's process is never killed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any

from pcg.checks.base import Check, CheckContext
from pcg.errors import BudgetExceeded, CheckFailure, ChecksFailedError

logger = logging.getLogger(__name__)


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class CheckOutcome:
    """Result of one check within a run."""

    check: Check
    duration: float
    failures: list[CheckFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class RunReport:
    """All outcomes of a run, in the order the checks were given."""

    outcomes: list[CheckOutcome]
    elapsed: float
    max_duration: float

    @property
    def failures(self) -> list[CheckFailure]:
        return [f for o in self.outcomes for f in o.failures]

    @property
    def ok(self) -> bool:
        return not self.failures


# ── Runner ───────────────────────────────────────────────────────────────────


class CheckRunner:
    """Runs checks concurrently and aggregates their failures.

    ``on_failure`` is invoked from the worker thread as soon as a failure is
    observed, so the user sees problems before the slowest check finishes.
    """

    def __init__(
        self,
        on_failure: Callable[[CheckFailure], Any] | None = None,
        max_workers: int | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.on_failure = on_failure
        self.max_workers = max_workers
        self._clock = clock

    def run(self, checks: Sequence[Check], max_duration: float, ctx: CheckContext) -> RunReport:
        """Run every check to completion.

        Returns the report on success; raises ChecksFailedError carrying every
        collected failure and the total elapsed time otherwise. A
        ``max_duration`` of 0 disables the budget.
        """
        start = self._clock()
        outcomes: list[CheckOutcome] = []
        if checks:
            n_workers = self.max_workers or len(checks)
            with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="pcg-check") as executor:
                futures = [
                    executor.submit(self._run_one, check, max_duration, ctx) for check in checks
                ]
                # Barrier: every outcome exists before the verdict is computed.
                wait(futures)
            outcomes = [f.result() for f in futures]

        report = RunReport(
            outcomes=outcomes,
            elapsed=self._clock() - start,
            max_duration=max_duration,
        )
        if not report.ok:
            raise ChecksFailedError(report.failures, report.elapsed)
        return report

    def _run_one(self, check: Check, max_duration: float, ctx: CheckContext) -> CheckOutcome:
        logger.info("%s...", check.name)
        failures: list[CheckFailure] = []

        # Opt-in mutual exclusion, e.g. checks sharing a temporary location.
        lock = getattr(check, "lock", None)
        with lock if lock is not None else nullcontext():
            t0 = self._clock()
            try:
                check.execute(ctx)
            except CheckFailure as e:
                failures.append(e)
            except Exception as e:
                logger.exception("Check %s raised", check.name)
                failures.append(CheckFailure(check.name, f"{type(e).__name__}: {e}"))
            duration = self._clock() - t0

        logger.info("... %s in %1.2fs", check.name, duration)
        if max_duration and duration > max_duration:
            failures.append(BudgetExceeded(check.name, duration, max_duration))

        for failure in failures:
            self._report(failure)
        return CheckOutcome(check=check, duration=duration, failures=failures)

    def _report(self, failure: CheckFailure) -> None:
        if self.on_failure is None:
            return
        try:
            self.on_failure(failure)
        except Exception:
            logger.exception("on_failure callback error")
