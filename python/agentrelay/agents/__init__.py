from .orchestrator import RunOrchestrator
from .http import HttpServer
from .messages import RunCause, RunClassification, classify_run

__all__ = [
  "RunOrchestrator",
  "HttpServer",
  "RunCause",
  "RunClassification",
  "classify_run",
]
