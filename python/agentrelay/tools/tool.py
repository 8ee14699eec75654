import json
import inspect
import re

from typing import Any, Optional, Union, get_args, get_origin, get_type_hints
from functools import wraps
from docstring_parser import parse

from .protocol import InvokableTool, ToolInvocation
from ..logs import get_logger, InfoContext

MAX_JSON_SIZE = 1024 * 1024


class Tool(InvokableTool, InfoContext):
  """
  Server side tool backed by a Python function.

  The function runs in the relay process when the model calls it; the run is
  neither suspended nor finished. The function spec sent to the model is
  derived from the signature and the docstring.

  Example:
    def lookup_order(order_id: str) -> str:
      \"\"\"Return the status of an order.\"\"\"
      return orders[order_id].status

    orchestrator = RunOrchestrator(client, config={"server_tools": [Tool(lookup_order)]})
  """

  def __init__(self, func):
    self.logger = get_logger("tool")
    name, spec = function_spec(func)
    if re.match(r"^[a-z0-9_-]+$", name) is None:
      raise ValueError("Tool name may only contain [a-z0-9_-] characters")
    self.func = wrap(func)
    self.signature = inspect.signature(func)
    self.name = name
    self._spec = spec

  async def spec(self) -> dict:
    return self._spec

  async def invoke(self, json_argument: Optional[str], invocation: Optional[ToolInvocation] = None) -> str:
    with self.info(f"Invoke tool: '{self.name}'", f"Invoked tool: '{self.name}'"):
      self.logger.debug(f"The tool arguments are: {json_argument}")
      try:
        args = self._parse_arguments(json_argument)
        tool_response = str(await self.func(**args))
        self.logger.debug(f"The tool call succeeded: {tool_response}")
      except Exception as e:
        self.logger.error(f"Tool '{self.name}' execution failed: {type(e).__name__}: {e}")
        tool_response = f"Tool execution failed: {type(e).__name__}: {e}"
      return tool_response

  def _parse_arguments(self, json_argument: Optional[str]) -> dict:
    if json_argument is None or json_argument.strip() == "":
      return {}

    if len(json_argument) > MAX_JSON_SIZE:
      raise ValueError(f"JSON argument too large: {len(json_argument):,} bytes (max: {MAX_JSON_SIZE:,})")

    try:
      args = json.loads(json_argument)
    except json.JSONDecodeError as e:
      raise ValueError(f"Invalid JSON format: {e}")

    if not isinstance(args, dict):
      raise ValueError(f"JSON argument must be an object, got {type(args).__name__}")

    param_names = set(self.signature.parameters.keys())
    extra_args = set(args.keys()) - param_names
    if extra_args:
      raise ValueError(f"Unexpected arguments: {', '.join(sorted(extra_args))}")

    missing = [
      name for name, p in self.signature.parameters.items() if p.default == inspect.Parameter.empty and name not in args
    ]
    if missing:
      raise ValueError(f"Missing required arguments: {', '.join(sorted(missing))}")

    return self._coerce_arguments(args)

  def _coerce_arguments(self, args: dict) -> dict:
    """Models often send numbers and booleans as strings, coerce them to the annotated type."""
    try:
      type_hints = get_type_hints(self.func)
    except Exception:
      return args

    coerced = {}
    for name, value in args.items():
      expected = type_hints.get(name)
      if expected is None:
        coerced[name] = value
        continue

      if get_origin(expected) is Union or type(expected).__name__ == "UnionType":
        expected = next((t for t in get_args(expected) if t is not type(None)), expected)

      try:
        coerced[name] = coerce_value(value, expected)
      except (ValueError, TypeError):
        raise ValueError(
          f"Argument '{name}' has invalid type: expected {getattr(expected, '__name__', expected)}, "
          f"got {type(value).__name__} (value: {value!r})"
        )
    return coerced


def coerce_value(value: Any, expected: Any) -> Any:
  if value is None or not isinstance(expected, type):
    return value

  if isinstance(value, expected) and not (expected is int and isinstance(value, bool)):
    return value

  if expected is bool:
    if isinstance(value, str):
      lowered = value.lower()
      if lowered in ("true", "1", "yes", "on"):
        return True
      if lowered in ("false", "0", "no", "off"):
        return False
      raise ValueError(f"Cannot coerce string '{value}' to bool")
    if isinstance(value, (int, float)):
      return bool(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to bool")

  if expected is int:
    if isinstance(value, (str, float, bool)):
      return int(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to int")

  if expected is float:
    if isinstance(value, (str, int)):
      return float(value)
    raise TypeError(f"Cannot coerce {type(value).__name__} to float")

  if expected is str:
    return str(value)

  return value


def wrap(f) -> callable:
  @wraps(f)
  async def wrapper(**kwargs):
    r = f(**kwargs)
    if inspect.iscoroutine(r):
      return await r
    return r

  return wrapper


def function_spec(f) -> tuple[str, dict]:
  f_name = f.__name__
  docstring = parse(f.__doc__) if f.__doc__ else None
  if docstring and docstring.short_description:
    f_description = docstring.short_description
    if docstring.long_description:
      f_description += "\n\n" + docstring.long_description
  else:
    f_description = f"Function {f_name}"
  return f_name, {
    "type": "function",
    "function": {"name": f_name, "description": f_description, "parameters": parameters_spec(f, docstring)},
  }


def parameters_spec(f, docstring=None) -> dict:
  f_parameters = {"type": "object", "properties": {}, "required": []}

  type_hints = get_type_hints(f)
  docstring_params = {p.arg_name: p for p in docstring.params} if docstring else {}

  for p_name, p in inspect.signature(f).parameters.items():
    # Prefer the type written in the docstring when there is one
    hint = type_hints.get(p_name)
    p_type = getattr(hint, "__name__", None) or "str"
    doc_param = docstring_params.get(p_name)
    if doc_param is not None and doc_param.type_name:
      p_type = doc_param.type_name

    description = doc_param.description if doc_param is not None and doc_param.description else f"parameter {p_name}"
    f_parameters["properties"][p_name] = {"type": to_json_schema_type(p_type), "description": description}

    if p.default == inspect.Parameter.empty:
      f_parameters["required"].append(p_name)

  return f_parameters


def to_json_schema_type(p_type: str) -> str:
  return {
    "bool": "boolean",
    "int": "integer",
    "float": "number",
    "str": "string",
    "list": "array",
    "dict": "object",
  }.get(p_type, "string")
