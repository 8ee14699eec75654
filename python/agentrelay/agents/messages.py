from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

DEFAULT_PROMPT = "user prompt missing. using default"


class RunCause(Enum):
  USER_MESSAGE = "user-message"
  TOOL_RESULT = "tool-result"


@dataclass
class RunClassification:
  cause: RunCause
  prompt: str = ""
  tool_call_id: Optional[str] = None
  tool_result: Optional[str] = None

  @property
  def is_resumption(self) -> bool:
    return self.cause == RunCause.TOOL_RESULT


def classify_run(messages: Sequence[Any]) -> RunClassification:
  """
  Decide whether a Run resumes a suspended tool call or starts a fresh turn.

  The last message whose role is `user` or `tool` decides: a tool message
  makes the Run a resumption carrying that result, anything else is a fresh
  turn prompted with the text of the last user message.
  """
  for message in reversed(messages):
    role = getattr(message, "role", None)
    if role == "tool":
      return RunClassification(
        cause=RunCause.TOOL_RESULT,
        tool_call_id=message.tool_call_id,
        tool_result=text_content(message.content),
      )
    if role == "user":
      return RunClassification(cause=RunCause.USER_MESSAGE, prompt=text_content(message.content) or DEFAULT_PROMPT)

  return RunClassification(cause=RunCause.USER_MESSAGE, prompt=DEFAULT_PROMPT)


def text_content(content: Any) -> str:
  """Text of a message, joining the text parts of multimodal content."""
  if content is None:
    return ""
  if isinstance(content, str):
    return content

  parts = []
  for part in content:
    if isinstance(part, dict):
      kind, text = part.get("type"), part.get("text")
    else:
      kind, text = getattr(part, "type", None), getattr(part, "text", None)
    if kind == "text" and text:
      parts.append(text)
  return "".join(parts)


def system_message(messages: Sequence[Any]) -> Optional[str]:
  for message in messages:
    if getattr(message, "role", None) == "system":
      return text_content(message.content) or None
  return None


def fallback_prompt(tool_call_id: str, result: str) -> str:
  return f"Tool results with toolCallId {tool_call_id} with result: {result}"
