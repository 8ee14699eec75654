from .agents import RunOrchestrator, HttpServer
from .config import RelayConfig, resolve_config
from .errors import (
  RelayError,
  RunFailedError,
  StatePatchError,
  PendingToolCallResolvedError,
  ToolCallAbandonedError,
  SessionNotFoundError,
)
from .logs import set_log_level, set_log_levels, get_logger, InfoContext, DebugContext
from .runs import ActiveStreamRegistry, PendingToolCallRegistry, RunStream
from .sessions import LiteLLMSessionClient, SessionRegistry
from .state import StateReconciler
from .tools import Tool
