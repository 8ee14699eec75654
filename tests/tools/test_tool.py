import json
import pytest

from agentrelay.tools.tool import MAX_JSON_SIZE, Tool, function_spec


def lookup_order(order_id: str, include_items: bool = False) -> str:
  """
  Look up an order.

  Returns the order status as the support desk sees it.

  Args:
    order_id: The order identifier
    include_items: Whether to list the line items
  """
  return f"order={order_id} items={include_items}"


async def scale(count: int, ratio: float) -> str:
  """Scale a count."""
  return f"{count * ratio}:{type(count).__name__}:{type(ratio).__name__}"


def no_docs(x):
  return x


def explode() -> str:
  """Always fails."""
  raise RuntimeError("kaboom")


def test_function_spec():
  name, spec = function_spec(lookup_order)

  assert name == "lookup_order"
  assert spec["type"] == "function"
  function = spec["function"]
  assert function["description"] == "Look up an order.\n\nReturns the order status as the support desk sees it."
  assert function["parameters"] == {
    "type": "object",
    "properties": {
      "order_id": {"type": "string", "description": "The order identifier"},
      "include_items": {"type": "boolean", "description": "Whether to list the line items"},
    },
    "required": ["order_id"],
  }


def test_function_spec_no_docstring_no_type_hints():
  name, spec = function_spec(no_docs)

  assert spec["function"]["description"] == "Function no_docs"
  assert spec["function"]["parameters"]["properties"]["x"] == {"type": "string", "description": "parameter x"}
  assert spec["function"]["parameters"]["required"] == ["x"]


def test_tool_name_must_be_valid():
  def BadName():
    pass

  with pytest.raises(ValueError):
    Tool(BadName)


@pytest.mark.asyncio
async def test_invoke_sync_function():
  tool = Tool(lookup_order)

  assert await tool.invoke('{"order_id": "A-1"}') == "order=A-1 items=False"
  assert await tool.spec() == function_spec(lookup_order)[1]


@pytest.mark.asyncio
async def test_invoke_coerces_arguments():
  tool = Tool(scale)

  result = await tool.invoke('{"count": "3", "ratio": 2}')

  assert result == "6.0:int:float"


@pytest.mark.asyncio
async def test_invoke_bool_coercion():
  tool = Tool(lookup_order)

  assert await tool.invoke('{"order_id": "A-1", "include_items": "yes"}') == "order=A-1 items=True"


@pytest.mark.asyncio
async def test_invoke_reports_errors_as_results():
  tool = Tool(explode)

  assert await tool.invoke("") == "Tool execution failed: RuntimeError: kaboom"


@pytest.mark.asyncio
async def test_invoke_rejects_unexpected_and_missing_arguments():
  tool = Tool(lookup_order)

  unexpected = await tool.invoke('{"order_id": "A-1", "priority": 1}')
  missing = await tool.invoke("{}")

  assert unexpected == "Tool execution failed: ValueError: Unexpected arguments: priority"
  assert missing == "Tool execution failed: ValueError: Missing required arguments: order_id"


@pytest.mark.asyncio
async def test_invoke_rejects_bad_json():
  tool = Tool(lookup_order)

  assert (await tool.invoke("{oops")).startswith("Tool execution failed: ValueError: Invalid JSON format")
  assert (await tool.invoke("[1, 2]")).startswith(
    "Tool execution failed: ValueError: JSON argument must be an object"
  )


@pytest.mark.asyncio
async def test_invoke_rejects_large_payloads():
  tool = Tool(lookup_order)

  payload = json.dumps({"order_id": "x" * (MAX_JSON_SIZE + 1)})

  assert "JSON argument too large" in await tool.invoke(payload)


@pytest.mark.asyncio
async def test_invalid_coercion():
  tool = Tool(scale)

  result = await tool.invoke('{"count": "many", "ratio": 1}')

  assert result.startswith("Tool execution failed: ValueError: Argument 'count' has invalid type")
