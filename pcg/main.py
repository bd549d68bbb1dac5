"""Entry point for pcg: runs pre-commit checks on Go projects, fast."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from pcg import __version__
from pcg.checks.config import Config, Mode, load_config, modes_for_level, write_config
from pcg.checks.registry import CheckRegistry, default_registry
from pcg.config import settings
from pcg.errors import CheckFailure, PcgError
from pcg.hook import git_dir, install_hook
from pcg.process import capture
from pcg.runner.engine import CheckRunner, RunReport
from pcg.runner.prereq import PrerequisiteResolver

logger = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

COMMANDS = {
    "help": "this page",
    "install": "runs 'prereq' then installs the git commit hook as .git/hooks/pre-commit",
    "prereq": "installs prerequisites, e.g.: errcheck, golint, goimports, etc as "
              "applicable for the enabled checks",
    "installrun": "runs 'prereq', 'install' then 'run'",
    "run": "runs all enabled checks",
    "writeconfig": "writes (or rewrite) a pre-commit-go.yml",
}

ALIASES = {
    "i": "install", "p": "prereq", "r": "run", "w": "writeconfig",
}


# ── Commands ─────────────────────────────────────────────────────────────────


def show_help(registry: CheckRegistry, usage: str) -> None:
    """Print the commands, flags and known checks."""
    width = max((len(n) for n in registry.names()), default=0)
    native, other = [], []
    for name in registry.names():
        check = registry.lookup(name)
        if check is None:
            continue
        line = f"    - {name:<{width}} : {check.describe()}"
        (other if check.prerequisites() else native).append(line)

    console.print(Panel.fit(f"[bold]pcg {__version__}[/bold]\nruns pre-commit checks on Go projects, fast."))
    console.print("Supported commands are:")
    for cmd, text in COMMANDS.items():
        console.print(f"  {cmd:<11} - {text}", markup=False)
    console.print("\nWhen executed without command, it does the equivalent of 'installrun'.")
    console.print(usage, markup=False, highlight=False)
    console.print("Supported checks:")
    console.print("  Native checks that only depend on the Go toolchain:")
    for line in native:
        console.print(line, markup=False)
    console.print("\n  Checks that have prerequisites (which will be automatically installed):")
    for line in other:
        console.print(line, markup=False)
    console.print("\nNo check ever modify any file.")


def install_prereq(config: Config, modes: list[Mode], resolver: PrerequisiteResolver) -> list[str]:
    """Install all the packages needed to run the enabled checks."""
    checks, _ = config.enabled_checks(modes)
    missing = resolver.resolve(checks)
    if missing:
        console.print("Installing:")
        for url in missing:
            console.print(f"  {url}", markup=False)
        resolver.install(missing)
    return missing


def install(config: Config, modes: list[Mode], resolver: PrerequisiteResolver, root: Path) -> Path:
    """install_prereq() then install the .git/hooks/pre-commit hook."""
    install_prereq(config, modes, resolver)
    return install_hook(git_dir(root))


def run(config: Config, modes: list[Mode], root: Path, runner: CheckRunner | None = None) -> RunReport:
    """Run all the enabled checks; raises ChecksFailedError on any failure."""
    checks, max_duration = config.enabled_checks(modes)
    logger.info(
        "Running %d checks for %s (budget %ds)",
        len(checks), ", ".join(m.value for m in modes) or "no mode", max_duration,
    )
    runner = runner or CheckRunner(on_failure=_print_failure)
    report = runner.run(checks, max_duration, config.context(root))
    logger.info("%d checks passed in %1.2fs", len(report.outcomes), report.elapsed)
    return report


def _print_failure(failure: CheckFailure) -> None:
    console.print(str(failure), markup=False, highlight=False)


# ── CLI plumbing ─────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pcg", add_help=False)
    parser.add_argument("command", nargs="?", default="installrun")
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enables verbose logging output",
    )
    parser.add_argument(
        "-c", "--config", default=settings.pcg_config_path,
        help="file name of the config to load",
    )
    parser.add_argument(
        "-l", "--level", type=int, default=settings.pcg_run_level,
        help="runlevel, between 0 and 3; the higher, the more tests are run",
    )
    parser.add_argument(
        "-m", "--mode", action="append", default=[],
        help="mode to run (repeatable); overrides -level, required for 'lint'",
    )
    parser.add_argument("-h", "--help", action="store_true", help="shows this page")
    return parser


def find_git_root(cwd: Path) -> Path:
    result = capture(["git", "rev-parse", "--show-cdup"], cwd=cwd)
    if result.exit_code != 0:
        raise PcgError("failed to find git checkout root")
    return (cwd / result.stdout.strip()).resolve()


def main_impl(argv: list[str] | None = None, registry: CheckRegistry | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    command = "help" if args.help else ALIASES.get(args.command, args.command)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    registry = registry or default_registry()
    if command == "help":
        show_help(registry, parser.format_help())
        return 0
    if command not in COMMANDS:
        raise PcgError("unknown command, try 'help'")

    modes = [Mode.parse(m) for m in args.mode] if args.mode else modes_for_level(args.level)

    # The config path is relative to the current directory, not the git root.
    config_path = Path(args.config).resolve()
    root = find_git_root(Path.cwd())
    config = load_config(config_path, registry, __version__)
    resolver = PrerequisiteResolver()

    if command == "install":
        install(config, modes, resolver, root)
    elif command == "installrun":
        install(config, modes, resolver, root)
        run(config, modes, root)
    elif command == "prereq":
        install_prereq(config, modes, resolver)
    elif command == "run":
        run(config, modes, root)
    elif command == "writeconfig":
        write_config(config, config_path)
    return 0


def main() -> None:
    try:
        sys.exit(main_impl())
    except (PcgError, OSError) as e:
        err_console.print(f"pcg: {e}", markup=False, highlight=False)
        sys.exit(1)


if __name__ == "__main__":
    main()
