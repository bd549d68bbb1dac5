"""Application settings loaded from the environment / .env file."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    # Check configuration file, relative to the current directory
    pcg_config_path: str = "pre-commit-go.yml"
    pcg_run_level: int = 1  # 0..3, see checks.config.modes_for_level

    # Go toolchain
    go_binary: str = "go"
    go_get_upgrade_flag: str = "-u"

    # Concurrency for prerequisite probes and per-package coverage runs
    prereq_probe_workers: int = 8
    coverage_workers: int = 4

    # Coveralls upload (only used when a coverage check has use_coveralls)
    coveralls_url: str = "https://coveralls.io/api/v1/jobs"
    coveralls_repo_token: str = ""
    ci_service_name: str = "travis-ci"
    ci_job_id: str = ""  # falls back to TRAVIS_JOB_ID
    coveralls_timeout: float = 30.0

    # Logging; --verbose forces DEBUG
    log_level: str = "WARNING"


settings = Settings()
