import pytest

from .config import DEFAULT_MODEL, SESSION_LIFETIMES, STATE_PATCH_MODES, resolve_config


class TestResolveConfig:
  def test_defaults(self):
    config = resolve_config()

    assert config["model"] == DEFAULT_MODEL
    assert config["state_patch_mode"] in STATE_PATCH_MODES
    assert config["session_lifetime"] in SESSION_LIFETIMES
    assert config["server_tools"] == []
    assert config["max_iterations"] >= 1

  def test_overrides(self):
    config = resolve_config({"model": "gpt-4o", "state_patch_mode": "merge", "session_lifetime": "run"})

    assert config["model"] == "gpt-4o"
    assert config["state_patch_mode"] == "merge"
    assert config["session_lifetime"] == "run"

  def test_input_is_not_modified(self):
    given = {"model": "gpt-4o"}

    resolve_config(given)

    assert given == {"model": "gpt-4o"}

  @pytest.mark.parametrize(
    "config, message",
    [
      ({"state_patch_mode": "diff"}, "Invalid state_patch_mode"),
      ({"session_lifetime": "forever"}, "Invalid session_lifetime"),
      ({"max_iterations": 0}, "max_iterations"),
      ({"temperature": 0.2}, "Unknown configuration keys: temperature"),
    ],
  )
  def test_invalid_values(self, config, message):
    with pytest.raises(ValueError, match=message):
      resolve_config(config)
