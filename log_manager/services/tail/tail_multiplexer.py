import asyncio
import logging
import os
from typing import Dict, List, Optional, Set
from uuid import uuid4

import aiofiles.os

from log_manager.core.exceptions import MissingFileError
from log_manager.models import TailFollowOptions, TailOptions
from .callbacks import dispatch
from .tail_session import TailListener, TailSession

logger = logging.getLogger(__name__)

# Shell convention for "command not found"; reported through on_close
SPAWN_FAILURE_EXIT_CODE = 127


class TailMultiplexer:
    """
    One-shot ``tail``/``head`` reads plus shared ``tail -f`` sessions.

    At most one follow process runs per file. Every ``follow`` call gets its
    own listener id; the process is killed when the last listener for the
    file is removed, or unconditionally by ``close_all``.
    """

    def __init__(self, read_chunk_size: int = 4096):
        self.read_chunk_size = read_chunk_size
        self._sessions: Dict[str, TailSession] = {}
        self._reader_tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        # Bumped by close_all so follows suspended across it can tell
        self._generation = 0

    @staticmethod
    def _session_key(file_path: str) -> str:
        return os.path.abspath(file_path)

    def session_count(self) -> int:
        return len(self._sessions)

    def listener_count(self, file_path: str) -> int:
        session = self._sessions.get(self._session_key(file_path))
        return len(session.listeners) if session else 0

    def get_session(self, file_path: str) -> Optional[TailSession]:
        return self._sessions.get(self._session_key(file_path))

    # ------------------------------------------------------------------
    # One-shot reads
    # ------------------------------------------------------------------

    async def tail(self, options: TailOptions) -> Optional[int]:
        return await self._run_once(["tail", "-n", str(options.lines), "--", options.file], options)

    async def head(self, options: TailOptions) -> Optional[int]:
        return await self._run_once(["head", "-n", str(options.lines), "--", options.file], options)

    async def _run_once(self, command: List[str], options: TailOptions) -> Optional[int]:
        if not await aiofiles.os.path.exists(options.file):
            logger.warning(f"Cannot {command[0]} - file does not exist: {options.file}")
            return None

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to spawn {command[0]} for {options.file}: {e}")
            await dispatch(options.on_close, SPAWN_FAILURE_EXIT_CODE)
            return SPAWN_FAILURE_EXIT_CODE

        while True:
            chunk = await process.stdout.read(self.read_chunk_size)
            if not chunk:
                break
            await dispatch(options.on_data, chunk)

        code = await process.wait()
        logger.debug(f"{command[0]} {options.file} exited with code {code}")
        await dispatch(options.on_close, code)
        return code

    # ------------------------------------------------------------------
    # Shared follow sessions
    # ------------------------------------------------------------------

    async def follow(self, options: TailFollowOptions) -> Optional[str]:
        """Register a follower; returns its listener id, or None if the file is missing."""
        file_path = options.file
        generation = self._generation

        if not await aiofiles.os.path.exists(file_path):
            logger.warning(f"Cannot tail -f - file does not exist: {file_path}")
            await dispatch(options.on_registration, MissingFileError(file_path), file_path, None)
            return None

        listener_id = str(uuid4())
        listener = TailListener(on_data=options.on_data, on_close=options.on_close)
        key = self._session_key(file_path)
        spawn_error: Optional[OSError] = None

        async with self._lock:
            session = self._sessions.get(key)
            if generation != self._generation:
                logger.info(f"Tail sessions were closed while registering {key} - not following")
            elif session is not None:
                session.add_listener(listener_id, listener)
                logger.debug(
                    f"Joined tail session for {key} ({len(session.listeners)} listeners)"
                )
            else:
                try:
                    session = await self._open_session(key, options.lines)
                except OSError as e:
                    spawn_error = e
                else:
                    if generation != self._generation:
                        logger.info(
                            f"Tail sessions were closed while spawning tail -f for {key} - killing it"
                        )
                        session.kill()
                        await session.process.wait()
                        session = None

                if session is not None:
                    self._sessions[key] = session
                    logger.info(f"Started tail session for {key} (pid {session.process.pid})")
                    session.add_listener(listener_id, listener)
                    session.reader_task = asyncio.create_task(self._pump(session))
                    self._reader_tasks.add(session.reader_task)
                    session.reader_task.add_done_callback(self._reader_tasks.discard)

        await dispatch(options.on_registration, None, file_path, listener_id)

        if spawn_error is not None:
            logger.error(f"Failed to spawn tail -f for {key}: {spawn_error}")
            await dispatch(options.on_close, SPAWN_FAILURE_EXIT_CODE)

        return listener_id

    async def _open_session(self, key: str, lines: int) -> TailSession:
        process = await asyncio.create_subprocess_exec(
            "tail", "-n", str(lines), "-f", "--", key,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        return TailSession(key, process)

    async def _pump(self, session: TailSession) -> None:
        process = session.process
        code: Optional[int] = None
        try:
            while True:
                chunk = await process.stdout.read(self.read_chunk_size)
                if not chunk:
                    break
                await session.fan_out_data(chunk)
            code = await process.wait()
        except Exception as e:
            logger.error(f"Error reading tail output for {session.file_path}: {e}", exc_info=True)
            session.kill()
        finally:
            self._discard_session(session)

        logger.debug(f"tail -f {session.file_path} exited with code {code}")
        await session.fan_out_close(code)

    def _discard_session(self, session: TailSession) -> None:
        if self._sessions.get(session.file_path) is session:
            del self._sessions[session.file_path]
            logger.info(f"Ended tail session for {session.file_path}")

    def stop_following(self, file_path: str, listener_id: str) -> bool:
        session = self._sessions.get(self._session_key(file_path))
        if session is None or not session.remove_listener(listener_id):
            logger.debug(f"No tail listener {listener_id} for {file_path}")
            return False

        if session.is_empty:
            session.kill()
            self._discard_session(session)
        return True

    def close_all(self) -> int:
        """Kill every follow process and drop all listeners, regardless of reference counts."""
        self._generation += 1
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.clear_listeners()
            session.kill()
        if sessions:
            logger.info(f"Killed {len(sessions)} tail session(s)")
        return len(sessions)
