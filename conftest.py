import os

# Use litellm's bundled model cost map instead of fetching it over the network at
# import time; a failed fetch can deadlock litellm's import in offline test runs.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")
