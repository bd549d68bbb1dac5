"""Runner subsystem: concurrent check execution and prerequisite resolution."""

from .engine import CheckOutcome, CheckRunner, RunReport
from .prereq import PrerequisiteResolver
