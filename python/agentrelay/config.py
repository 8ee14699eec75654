"""
Configuration for the relay.

Defaults come from environment variables so a deployment can be tuned
without code changes; a RelayConfig dict passed to the orchestrator or the
HTTP server overrides them key by key.
"""

import os
from typing import Callable, List, TypedDict, NotRequired


DEFAULT_HOST = os.environ.get("DEFAULT_HOST_HTTP", "0.0.0.0")
DEFAULT_PORT = int(os.environ.get("DEFAULT_PORT_HTTP", "8000"))

DEFAULT_MODEL = os.environ.get("AGENTRELAY_MODEL", "gpt-5-mini")
DEFAULT_SYSTEM_MESSAGE = os.environ.get("AGENTRELAY_SYSTEM_MESSAGE", "You are a helpful assistant")
DEFAULT_REASONING_EFFORT = os.environ.get("AGENTRELAY_REASONING_EFFORT", "medium")
DEFAULT_MAX_ITERATIONS = int(os.environ.get("AGENTRELAY_MAX_ITERATIONS", "100"))
DEFAULT_ENABLE_SHARED_STATE = os.environ.get("AGENTRELAY_SHARED_STATE", "true").lower() in ["1", "true", "yes", "on"]
DEFAULT_STATE_PATCH_MODE = os.environ.get("AGENTRELAY_STATE_PATCH_MODE", "json-patch")
DEFAULT_SESSION_LIFETIME = os.environ.get("AGENTRELAY_SESSION_LIFETIME", "resumable")

STATE_PATCH_MODES = ("json-patch", "merge")
SESSION_LIFETIMES = ("resumable", "run")


class RelayConfig(TypedDict):
  """Configuration for a relay instance. Every key is optional.

  Example:
    config = {
      "model": "gpt-4o",
      "state_patch_mode": "merge",
      "session_lifetime": "resumable",
      "server_tools": [Tool(lookup_order)],
    }
    orchestrator = RunOrchestrator(client, config=config)
  """

  model: NotRequired[str]
  system_message: NotRequired[str]
  reasoning_effort: NotRequired[str | None]
  max_iterations: NotRequired[int]
  enable_shared_state: NotRequired[bool]
  state_patch_mode: NotRequired[str]
  session_lifetime: NotRequired[str]
  server_tools: NotRequired[List[Callable]]


def resolve_config(config: RelayConfig | None = None) -> RelayConfig:
  config = dict(config or {})

  resolved: RelayConfig = {
    "model": config.pop("model", DEFAULT_MODEL),
    "system_message": config.pop("system_message", DEFAULT_SYSTEM_MESSAGE),
    "reasoning_effort": config.pop("reasoning_effort", DEFAULT_REASONING_EFFORT or None),
    "max_iterations": config.pop("max_iterations", DEFAULT_MAX_ITERATIONS),
    "enable_shared_state": config.pop("enable_shared_state", DEFAULT_ENABLE_SHARED_STATE),
    "state_patch_mode": config.pop("state_patch_mode", DEFAULT_STATE_PATCH_MODE),
    "session_lifetime": config.pop("session_lifetime", DEFAULT_SESSION_LIFETIME),
    "server_tools": list(config.pop("server_tools", [])),
  }

  if config:
    raise ValueError(f"Unknown configuration keys: {', '.join(sorted(config))}")

  if resolved["state_patch_mode"] not in STATE_PATCH_MODES:
    raise ValueError(
      f"Invalid state_patch_mode '{resolved['state_patch_mode']}'. Must be one of: {list(STATE_PATCH_MODES)}"
    )

  if resolved["session_lifetime"] not in SESSION_LIFETIMES:
    raise ValueError(
      f"Invalid session_lifetime '{resolved['session_lifetime']}'. Must be one of: {list(SESSION_LIFETIMES)}"
    )

  if resolved["max_iterations"] < 1:
    raise ValueError("max_iterations must be at least 1")

  return resolved
