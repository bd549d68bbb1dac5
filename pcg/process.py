"""Subprocess helper: runs one external command without a shell."""

from __future__ import annotations

import logging
import subprocess
import time
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class CmdResult(BaseModel):
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def output(self) -> str:
        """Combined stdout + stderr, stripped."""
        return (self.stdout + self.stderr).strip()


def capture(
    cmd: list[str],
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout_sec: float | None = None,
) -> CmdResult:
    """Run ``cmd`` and return its exit code and output.

    A command that cannot be started or times out is reported with exit code
    -1 and a diagnostic in stderr, so callers only ever deal with exit codes.
    """
    t0 = time.perf_counter()
    logger.debug("exec %s (cwd=%s)", " ".join(cmd), cwd or ".")
    exit_code, stdout, stderr = -1, "", ""
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout_sec,
            env=env,
            encoding="utf-8",
            errors="replace",
        )
        exit_code, stdout, stderr = proc.returncode, proc.stdout, proc.stderr
    except subprocess.TimeoutExpired:
        stderr = f"{cmd[0]} timed out after {timeout_sec}s"
    except FileNotFoundError:
        stderr = f"{cmd[0]}: command not found"
    except OSError as e:
        stderr = f"{cmd[0]}: {type(e).__name__}: {e}"

    return CmdResult(
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_ms=int((time.perf_counter() - t0) * 1000),
    )
