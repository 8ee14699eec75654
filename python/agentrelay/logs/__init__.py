from .logs import (
  set_log_level,
  set_log_levels,
  get_log_levels,
  apply_log_levels,
  get_logger,
  get_logging_config,
  InfoContext,
  DebugContext,
  LEVELS,
)
from .formatter import Formatter
from logging import Logger

__all__ = [
  "Formatter",
  "Logger",
  "LEVELS",
  "get_logger",
  "get_logging_config",
  "set_log_level",
  "set_log_levels",
  "get_log_levels",
  "apply_log_levels",
  "InfoContext",
  "DebugContext",
]
