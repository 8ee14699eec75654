import copy
import jsonpatch
import pytest

from agentrelay.errors import StatePatchError
from agentrelay.state import StateReconciler, validate_operations


class RecordingSink:
  def __init__(self):
    self.events = []

  def emit(self, event):
    self.events.append(event)
    return True


RECIPE = {
  "recipe": {
    "title": "Soup",
    "ingredients": [{"name": "Carrot"}, {"name": "Leek"}],
    "servings": 2,
  },
  "notes": "",
}


class TestConvergence:
  def test_explicit_patch_deltas_reproduce_the_mirror(self):
    reconciler = StateReconciler()
    sink = RecordingSink()
    reconciler.seed("thread-1", RECIPE)
    client_copy = copy.deepcopy(RECIPE)

    reconciler.apply_patch(
      "thread-1", [{"op": "replace", "path": "/recipe/title", "value": "Leek soup"}], sink
    )
    reconciler.apply_patch(
      "thread-1",
      [
        {"op": "add", "path": "/recipe/ingredients/-", "value": {"name": "Salt"}},
        {"op": "remove", "path": "/recipe/ingredients/0"},
      ],
      sink,
    )

    for event in sink.events:
      client_copy = jsonpatch.apply_patch(client_copy, event.delta)

    assert client_copy == reconciler.snapshot("thread-1")
    assert reconciler.snapshot("thread-1")["recipe"]["ingredients"] == [{"name": "Leek"}, {"name": "Salt"}]

  def test_merge_deltas_reproduce_the_mirror(self):
    reconciler = StateReconciler()
    sink = RecordingSink()
    reconciler.seed("thread-1", RECIPE)
    client_copy = copy.deepcopy(RECIPE)

    reconciler.merge("thread-1", {"notes": "Serve hot"}, sink)
    reconciler.merge("thread-1", {"recipe": {**RECIPE["recipe"], "servings": 4}, "author": "Ana"}, sink)

    for event in sink.events:
      client_copy = jsonpatch.apply_patch(client_copy, event.delta)

    assert client_copy == reconciler.snapshot("thread-1")
    assert client_copy["recipe"]["servings"] == 4
    assert client_copy["author"] == "Ana"

  def test_merge_without_change_emits_nothing(self):
    reconciler = StateReconciler()
    sink = RecordingSink()
    reconciler.seed("thread-1", {"notes": "x"})

    assert reconciler.merge("thread-1", {"notes": "x"}, sink) == []
    assert sink.events == []


class TestValidation:
  def test_replace_without_value_is_rejected_and_mirror_unchanged(self):
    reconciler = StateReconciler()
    sink = RecordingSink()
    reconciler.seed("thread-1", RECIPE)

    with pytest.raises(StatePatchError) as e:
      reconciler.apply_patch(
        "thread-1",
        [
          {"op": "replace", "path": "/notes", "value": "fine"},
          {"op": "replace", "path": "/recipe/title"},
        ],
        sink,
      )

    assert e.value.operation_index == 1
    assert "value" in str(e.value)
    assert reconciler.snapshot("thread-1") == RECIPE
    assert sink.events == []

  def test_bad_pointer_is_rejected_wholesale(self):
    reconciler = StateReconciler()
    sink = RecordingSink()
    reconciler.seed("thread-1", RECIPE)

    with pytest.raises(StatePatchError):
      reconciler.apply_patch(
        "thread-1",
        [
          {"op": "replace", "path": "/notes", "value": "changed"},
          {"op": "replace", "path": "/missing/field", "value": 1},
        ],
        sink,
      )

    assert reconciler.snapshot("thread-1") == RECIPE
    assert sink.events == []

  @pytest.mark.parametrize(
    "operations",
    [
      [],
      None,
      "replace",
      [{"path": "/notes", "value": 1}],
      [{"op": "replace", "value": 1}],
      [{"op": "move", "path": "/notes", "from": "/recipe"}],
      [{"op": "add", "path": "/x"}],
    ],
  )
  def test_malformed_batches(self, operations):
    with pytest.raises(StatePatchError):
      validate_operations(operations)

  def test_merge_rejects_non_objects(self):
    reconciler = StateReconciler()
    reconciler.seed("thread-1", {})

    with pytest.raises(StatePatchError):
      reconciler.merge("thread-1", ["not", "an", "object"], RecordingSink())


class TestMirror:
  def test_seed_only_once(self):
    reconciler = StateReconciler()

    assert reconciler.seed("thread-1", {"v": 1})
    assert not reconciler.seed("thread-1", {"v": 2})
    assert reconciler.snapshot("thread-1") == {"v": 1}

  def test_snapshot_is_a_copy(self):
    reconciler = StateReconciler()
    reconciler.seed("thread-1", {"items": [1]})

    reconciler.snapshot("thread-1")["items"].append(2)

    assert reconciler.snapshot("thread-1") == {"items": [1]}

  def test_patch_values_are_not_shared_with_the_caller(self):
    reconciler = StateReconciler()
    reconciler.seed("thread-1", {})
    operations = [{"op": "add", "path": "/items", "value": [1]}]

    reconciler.apply_patch("thread-1", operations, RecordingSink())
    operations[0]["value"].append(2)

    assert reconciler.snapshot("thread-1") == {"items": [1]}

  def test_discard(self):
    reconciler = StateReconciler()
    reconciler.seed("thread-1", {"v": 1})

    assert reconciler.discard("thread-1")
    assert "thread-1" not in reconciler
    assert reconciler.snapshot("thread-1") == {}
