import argparse
import asyncio

from .agents import HttpServer, RunOrchestrator
from .config import DEFAULT_HOST, DEFAULT_MODEL, DEFAULT_PORT, SESSION_LIFETIMES, STATE_PATCH_MODES
from .logs import apply_log_levels, set_log_levels
from .sessions import LiteLLMSessionClient


def main():
  parser = argparse.ArgumentParser(description="Relay AG-UI runs to long lived model sessions")

  parser.add_argument(
    "--listen",
    default=f"{DEFAULT_HOST}:{DEFAULT_PORT}",
    help="Address the HTTP server listens on, as host:port",
  )

  parser.add_argument(
    "--model",
    default=DEFAULT_MODEL,
    help="Model used by new sessions",
  )

  parser.add_argument(
    "--state-patch-mode",
    choices=STATE_PATCH_MODES,
    default=None,
    help="How the model changes the shared state",
  )

  parser.add_argument(
    "--session-lifetime",
    choices=SESSION_LIFETIMES,
    default=None,
    help="Keep sessions across runs (resumable) or release them when a run ends (run)",
  )

  parser.add_argument(
    "--log-levels",
    default=None,
    help='Log levels, for example "DEBUG,session=info"',
  )

  args = parser.parse_args()

  if args.log_levels:
    set_log_levels(args.log_levels)
    apply_log_levels()

  config = {"model": args.model}
  if args.state_patch_mode:
    config["state_patch_mode"] = args.state_patch_mode
  if args.session_lifetime:
    config["session_lifetime"] = args.session_lifetime

  orchestrator = RunOrchestrator(LiteLLMSessionClient(), config=config)
  server = HttpServer(orchestrator, listen_address=args.listen)
  asyncio.run(server.serve())


if __name__ == "__main__":
  main()
