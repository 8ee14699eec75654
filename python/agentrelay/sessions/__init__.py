from .protocol import (
  MESSAGE_DELTA,
  SESSION_ERROR,
  SESSION_IDLE,
  ModelSession,
  PreToolUseDecision,
  PreToolUseInput,
  SessionClient,
  SessionConfig,
  SessionEvent,
  SessionHooks,
  SessionMetadata,
  UserPromptDecision,
  UserPromptInput,
)
from .builder import SessionConfigBuilder
from .registry import SessionRegistry
from .litellm_session import LiteLLMSession, LiteLLMSessionClient

__all__ = [
  "MESSAGE_DELTA",
  "SESSION_ERROR",
  "SESSION_IDLE",
  "ModelSession",
  "PreToolUseDecision",
  "PreToolUseInput",
  "SessionClient",
  "SessionConfig",
  "SessionEvent",
  "SessionHooks",
  "SessionMetadata",
  "UserPromptDecision",
  "UserPromptInput",
  "SessionConfigBuilder",
  "SessionRegistry",
  "LiteLLMSession",
  "LiteLLMSessionClient",
]
