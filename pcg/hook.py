"""Git pre-commit hook: a static template written to .git/hooks/pre-commit."""

from __future__ import annotations

import logging
from pathlib import Path

from pcg.errors import HookError
from pcg.process import capture

logger = logging.getLogger(__name__)

PRE_COMMIT_HOOK = """\
#!/bin/sh
# pre-commit git hook running 'pcg run' on the tree with unstaged changes
# removed.
#
# WARNING: This file was generated by tool "pcg"


# Redirect output to stderr.
exec 1>&2


run_checks() {
  # Ensure everything is either tracked or ignored. This is because git stash
  # doesn't stash untracked files.
  untracked="$(git ls-files --others --exclude-standard)"
  if [ "$untracked" != "" ]; then
    echo "This check refuses to run if there is an untracked file. Either track"
    echo "it or put it in the .gitignore or your global exclusion list:"
    echo "$untracked"
    return 1
  fi

  # Run the presubmit check.
  pcg run
  result=$?
  if [ $result != 0 ]; then
    return $result
  fi
}


if git rev-parse --verify HEAD >/dev/null 2>&1
then
  against=HEAD
else
  # Initial commit: diff against an empty tree object
  against=4b825dc642cb6eb9a060e54bf8d69288fbee4904
fi


# Stash index and work dir, keeping only the to-be-committed changes in the
# working directory.
old_stash=$(git rev-parse -q --verify refs/stash)
git stash save -q --keep-index
new_stash=$(git rev-parse -q --verify refs/stash)

# If there were no changes (e.g., '--amend' or '--allow-empty') then nothing was
# stashed, and we should skip everything, including the tests themselves.
if [ "$old_stash" = "$new_stash" ]; then
  exit 0
fi

run_checks
result=$?

# Restore changes.
git reset --hard -q && git stash apply --index -q && git stash drop -q
exit $result
"""


def git_dir(cwd: Path) -> Path:
    """Absolute path of the .git directory of the checkout containing ``cwd``."""
    result = capture(["git", "rev-parse", "--git-dir"], cwd=cwd)
    if result.exit_code != 0:
        raise HookError(f"failed to find .git dir: {result.output}")
    path = Path(result.stdout.strip())
    return path if path.is_absolute() else (cwd / path).resolve()


def install_hook(dot_git: Path) -> Path:
    """Write the pre-commit hook, replacing whatever was there."""
    hooks = dot_git / "hooks"
    path = hooks / "pre-commit"
    try:
        hooks.mkdir(parents=True, exist_ok=True)
        # Always remove first, in case it's a symlink.
        path.unlink(missing_ok=True)
        path.write_text(PRE_COMMIT_HOOK, encoding="utf-8")
        path.chmod(0o755)
    except OSError as e:
        raise HookError(f"failed to write {path}: {e}") from e
    logger.info("installation done: %s", path)
    return path
