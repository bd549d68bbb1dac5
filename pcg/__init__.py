"""pcg: runs pre-commit checks on Go projects, fast."""

__version__ = "0.4.0"
