"""
Server side mirror of the shared application state.

The client owns the state and sends a snapshot with each Run. The first
snapshot seen for a thread seeds the mirror; after that the mirror only
changes through merge() or apply_patch(), and every change that produces a
non-empty delta is forwarded to the client as a StateDeltaEvent. Applying
the forwarded deltas in order to the client's copy reproduces the mirror.
"""

import copy
from typing import Any, Dict, List, Optional, Protocol

import jsonpatch
import jsonpointer
from ag_ui.core import BaseEvent, StateDeltaEvent

from ..errors import StatePatchError
from ..logs import get_logger

logger = get_logger("state")

ALLOWED_OPERATIONS = ("add", "remove", "replace")
VALUE_OPERATIONS = ("add", "replace")


class EventSink(Protocol):
  def emit(self, event: BaseEvent) -> bool: ...


class StateReconciler:
  def __init__(self):
    self._documents: Dict[str, Any] = {}

  def seed(self, thread_id: str, snapshot: Optional[Any]) -> bool:
    """Install the first snapshot for a thread. Later snapshots are ignored."""
    if thread_id in self._documents:
      return False
    self._documents[thread_id] = copy.deepcopy(snapshot) if snapshot is not None else {}
    logger.debug(f"Seeded state for thread '{thread_id}'")
    return True

  def snapshot(self, thread_id: str) -> Any:
    return copy.deepcopy(self._documents.get(thread_id, {}))

  def discard(self, thread_id: str) -> bool:
    return self._documents.pop(thread_id, None) is not None

  def __contains__(self, thread_id: str) -> bool:
    return thread_id in self._documents

  def merge(self, thread_id: str, updates: Dict[str, Any], sink: EventSink) -> List[dict]:
    """
    Shallow merge the given top-level keys into the mirror.

    Returns the minimal RFC 6902 delta between the old and new document, which
    is also what the client receives.
    """
    if not isinstance(updates, dict):
      raise StatePatchError(
        f"Updates must be an object of top-level keys, got {type(updates).__name__}", thread_id=thread_id
      )

    current = self._documents.get(thread_id, {})
    if not isinstance(current, dict):
      raise StatePatchError("Partial merge requires the state to be an object", thread_id=thread_id)

    updated = {**current, **copy.deepcopy(updates)}
    delta = jsonpatch.make_patch(current, updated).patch
    self._commit(thread_id, updated, delta, sink)
    return delta

  def apply_patch(self, thread_id: str, operations: List[dict], sink: EventSink) -> List[dict]:
    """
    Apply explicit add/remove/replace operations and forward them verbatim.

    The whole batch is validated and applied to a copy first; on any error the
    mirror is left as it was.
    """
    validate_operations(operations, thread_id)

    current = self._documents.get(thread_id, {})
    delta = copy.deepcopy(operations)
    try:
      updated = jsonpatch.apply_patch(current, copy.deepcopy(delta), in_place=False)
    except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException) as e:
      raise StatePatchError(f"Failed to apply state patch: {e}", thread_id=thread_id) from e

    self._commit(thread_id, updated, delta, sink)
    return delta

  def _commit(self, thread_id: str, updated: Any, delta: List[dict], sink: EventSink):
    if not delta:
      logger.debug(f"No state change for thread '{thread_id}'")
      return
    sink.emit(StateDeltaEvent(delta=delta))
    self._documents[thread_id] = updated
    logger.debug(f"Applied {len(delta)} state operation(s) on thread '{thread_id}'")


def validate_operations(operations: Any, thread_id: Optional[str] = None):
  if not isinstance(operations, list) or len(operations) == 0:
    raise StatePatchError(
      "No valid operations provided. Expected an array of JSON Patch operations.", thread_id=thread_id
    )

  for index, operation in enumerate(operations):
    if not isinstance(operation, dict):
      raise StatePatchError(
        f"Invalid operation at index {index}: expected an object", thread_id=thread_id, operation_index=index
      )
    if not operation.get("op") or not isinstance(operation.get("path"), str):
      raise StatePatchError(
        "Invalid operation: each operation must have 'op' and 'path' fields",
        thread_id=thread_id,
        operation_index=index,
      )
    if operation["op"] not in ALLOWED_OPERATIONS:
      raise StatePatchError(
        f"Unsupported operation '{operation['op']}'. Must be one of: {list(ALLOWED_OPERATIONS)}",
        thread_id=thread_id,
        operation_index=index,
      )
    if operation["op"] in VALUE_OPERATIONS and "value" not in operation:
      raise StatePatchError(
        f"Operation '{operation['op']}' requires a 'value' field",
        thread_id=thread_id,
        operation_index=index,
      )
