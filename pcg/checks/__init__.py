"""Checks subsystem: check variants, registry and configuration model."""

from .base import Check, CheckContext, CheckPrerequisite, is_ignored
from .config import Config, Mode, ModeSettings, decode, encode, load_config, write_config
from .coverage import Coverage, CoverageModel, CoverageSettings
from .registry import CheckRegistry, default_registry
