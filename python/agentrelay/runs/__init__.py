from .pending import PendingToolCall, PendingToolCallRegistry
from .streams import ActiveStreamBinding, ActiveStreamRegistry, RunStream

__all__ = [
  "PendingToolCall",
  "PendingToolCallRegistry",
  "ActiveStreamBinding",
  "ActiveStreamRegistry",
  "RunStream",
]
