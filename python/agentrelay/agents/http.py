from contextlib import aclosing
from typing import Optional

import uvicorn
from ag_ui.core import RunAgentInput
from ag_ui.encoder import EventEncoder
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .orchestrator import RunOrchestrator
from ..config import DEFAULT_HOST, DEFAULT_PORT
from ..errors import RunFailedError, SessionNotFoundError
from ..helpers.socket_address import parse_socket_address
from ..logs import InfoContext, get_logger, get_logging_config, get_log_levels, set_log_level, set_log_levels, LEVELS

"""
    This class starts an HTTP server streaming AG-UI runs of a RunOrchestrator.
"""

EVENT_STREAM = "text/event-stream"


class HttpServer(InfoContext):
  def __init__(
    self,
    orchestrator: RunOrchestrator,
    listen_address=f"{DEFAULT_HOST}:{DEFAULT_PORT}",
    app: Optional[FastAPI] = None,
  ):
    self.logger = get_logger("http")
    self.orchestrator = orchestrator
    self.host = DEFAULT_HOST
    self.port = DEFAULT_PORT
    self.set_host_and_port(listen_address)
    self.app = app if app else FastAPI()
    self._setup_routes()

  def _setup_routes(self):
    @self.app.post("/agent")
    async def run_agent(request: Request):
      accept = request.headers.get("accept")
      if not accepts_event_stream(accept):
        raise HTTPException(status_code=406, detail="Not Acceptable")

      try:
        input = RunAgentInput.model_validate(await request.json())
      except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid run input: {e}")

      self.logger.info(f"Received run '{input.run_id}' for thread '{input.thread_id}'")
      encoder = EventEncoder(accept=accept or EVENT_STREAM)

      async def stream_events():
        try:
          async with aclosing(self.orchestrator.run(input)) as events:
            async for event in events:
              yield encoder.encode(event)
        except RunFailedError as e:
          # The RunErrorEvent is already on the wire
          self.logger.warning(str(e))

      return StreamingResponse(
        stream_events(),
        media_type=encoder.get_content_type(),
        headers={"Cache-Control": "no-cache"},
      )

    @self.app.delete("/agent/{thread_id}")
    async def delete_thread(thread_id: str):
      with self.info(f"Deleting session of thread '{thread_id}'", f"Deleted session of thread '{thread_id}'"):
        try:
          await self.orchestrator.delete_thread(thread_id)
        except SessionNotFoundError:
          raise HTTPException(status_code=404, detail=f"Thread '{thread_id}' not found")
        except Exception as e:
          self.logger.error(f"Failed to delete thread '{thread_id}': {type(e).__name__}: {e}")
          raise HTTPException(status_code=500, detail=f"Failed to delete thread '{thread_id}'")
        return {"status": "ok", "thread_id": thread_id}

    @self.app.get("/logs/levels")
    async def get_logging_levels():
      """
      Get current log levels for all modules.

      Returns a dictionary of module names to their log levels.
      """
      return {
        "levels": get_log_levels(),
        "available_levels": list(LEVELS.keys()),
      }

    @self.app.post("/logs/levels")
    async def set_logging_levels(request: Request):
      """
      Dynamically change log levels at runtime.

      Request body:
        - level: The log level to set (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        - module: Optional module name. If not provided, sets the default level.

      Examples:
        {"level": "DEBUG"} - Set default level to DEBUG
        {"level": "DEBUG", "module": "orchestrator"} - Set the orchestrator logger to DEBUG
      """
      data = await request.json()
      level = data.get("level")
      module = data.get("module")

      if not level:
        raise HTTPException(status_code=400, detail="'level' is required")

      level_upper = level.upper()
      if level_upper not in [l.upper() for l in LEVELS.keys()]:
        raise HTTPException(
          status_code=400,
          detail=f"Invalid level '{level}'. Must be one of: {list(LEVELS.keys())}",
        )

      if module:
        set_log_level(module, level_upper)
        self.logger.info(f"Log level for '{module}' set to {level_upper}")
      else:
        set_log_levels(level_upper)
        self.logger.info(f"Default log level set to {level_upper}")

      return {
        "status": "ok",
        "module": module or "default",
        "level": level_upper,
        "levels": get_log_levels(),
      }

  async def serve(self):
    self.logger.info(f"Starting http server at {self.host}:{self.port}")
    config = uvicorn.Config(self.app, host=self.host, port=self.port, log_config=get_logging_config(), access_log=True)
    server = uvicorn.Server(config)
    self.logger.info(f"Started http server at {self.host}:{self.port}")
    try:
      await server.serve()
    finally:
      await self.orchestrator.close()

  def set_host_and_port(self, listen_address):
    try:
      host, port = parse_socket_address(listen_address, default_host=DEFAULT_HOST)
      self.host = host
      self.port = port
    except ValueError:
      raise ValueError(f"Invalid listen_address: {listen_address}")


def accepts_event_stream(accept: Optional[str]) -> bool:
  """True when an Accept header admits text/event-stream. A missing header accepts anything."""
  if not accept:
    return True
  for media_range in accept.split(","):
    media_type = media_range.split(";")[0].strip().lower()
    if media_type in (EVENT_STREAM, "text/*", "*/*"):
      return True
  return False
