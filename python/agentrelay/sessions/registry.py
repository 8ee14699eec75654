import asyncio
from typing import Callable, Dict, List, Optional

from .protocol import ModelSession, SessionClient, SessionConfig
from ..errors import SessionNotFoundError
from ..logs import get_logger, InfoContext

logger = get_logger("session")


class SessionRegistry(InfoContext):
  """
  Thread id to ModelSession map that outlives individual Runs.

  At most one session exists per thread: creation is serialized with a
  per-thread lock, so concurrent Runs on a new thread share one session.
  """

  def __init__(self, client: SessionClient):
    self.logger = logger
    self.client = client
    self._sessions: Dict[str, ModelSession] = {}
    self._locks: Dict[str, asyncio.Lock] = {}

  def get(self, thread_id: str) -> Optional[ModelSession]:
    return self._sessions.get(thread_id)

  def threads(self) -> List[str]:
    return list(self._sessions.keys())

  def __contains__(self, thread_id: str) -> bool:
    return thread_id in self._sessions

  def __len__(self) -> int:
    return len(self._sessions)

  async def get_or_create(self, thread_id: str, build_config: Callable[[], SessionConfig]) -> ModelSession:
    """
    Return the thread's session, resuming or creating it on first use.

    build_config is only called when a session has to be created or resumed,
    so tools and hooks are bound once per session.
    """
    session = self._sessions.get(thread_id)
    if session is not None:
      return session

    lock = self._locks.setdefault(thread_id, asyncio.Lock())
    async with lock:
      session = self._sessions.get(thread_id)
      if session is not None:
        return session

      if self.client.state == "disconnected":
        with self.info("Starting session client", "Started session client"):
          await self.client.start()

      config = build_config()
      existing = await self.client.list_sessions()
      if any(s.session_id == thread_id for s in existing):
        with self.info(f"Resuming session for thread '{thread_id}'", f"Resumed session for thread '{thread_id}'"):
          session = await self.client.resume_session(thread_id, config)
      else:
        with self.info(f"Creating session for thread '{thread_id}'", f"Created session for thread '{thread_id}'"):
          session = await self.client.create_session(config)

      self._sessions[thread_id] = session
      return session

  async def release(self, thread_id: str) -> bool:
    """Abort and drop the live handle. The client keeps the history for a later resume."""
    session = self._sessions.pop(thread_id, None)
    self._locks.pop(thread_id, None)
    if session is None:
      return False
    await session.abort()
    await session.destroy()
    logger.info(f"Released session for thread '{thread_id}'")
    return True

  async def known(self, thread_id: str) -> bool:
    """True when the thread has a live handle or the client keeps a released session for it."""
    if thread_id in self._sessions:
      return True
    return any(s.session_id == thread_id for s in await self.client.list_sessions())

  async def delete(self, thread_id: str):
    if not await self.known(thread_id):
      raise SessionNotFoundError(thread_id)
    await self.release(thread_id)
    await self.client.delete_session(thread_id)
    logger.info(f"Deleted session for thread '{thread_id}'")

  async def close(self):
    for thread_id in self.threads():
      await self.release(thread_id)
