"""In-memory registry of active chunked-upload sessions."""

from __future__ import annotations

import asyncio
import hashlib
import re
import time
from pathlib import Path
from typing import Callable

from fastapi.concurrency import run_in_threadpool

from docnote.metrics.observability import PipelineMetrics, get_logger
from docnote.models import ChunkPart, ChunkSession
from docnote.uploads.staging import discard_tree

_SAFE_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class SessionRegistry:
    """Owns the ``session_id -> ChunkSession`` mapping and the per-session locks.

    Sessions live only for the current process. Each session stages its parts
    under ``staging_root/<session dir>``; :meth:`staging_dir_for` maps arbitrary
    client ids onto a safe directory name.
    """

    def __init__(
        self,
        staging_root: Path,
        *,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._staging_root = Path(staging_root)
        self._ttl = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, ChunkSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._logger = get_logger("sessions")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    @property
    def incoming_dir(self) -> Path:
        """Scratch area for chunk bytes that are still being received."""

        return self._staging_root / ".incoming"

    def get(self, session_id: str) -> ChunkSession | None:
        return self._sessions.get(session_id)

    def lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    def staging_dir_for(self, session_id: str) -> Path:
        if _SAFE_SESSION_ID.match(session_id):
            name = session_id
        else:
            name = "s-" + hashlib.sha256(session_id.encode("utf-8")).hexdigest()[:32]
        return self._staging_root / name

    def register_part(
        self,
        session_id: str,
        part: ChunkPart,
        *,
        total_chunks: int,
        original_filename: str = "",
        mime_type: str = "",
    ) -> ChunkSession:
        """Create the session if needed and insert or replace the part at its index.

        Callers hold :meth:`lock` for ``session_id``.
        """

        session = self._sessions.get(session_id)
        if session is None:
            now = self._clock()
            session = ChunkSession(
                session_id=session_id,
                total_chunks=total_chunks,
                staging_dir=self.staging_dir_for(session_id),
                created_at=now,
                updated_at=now,
            )
            self._sessions[session_id] = session
            PipelineMetrics.active_sessions.set(len(self._sessions))
            self._logger.info("session.created", session_id=session_id, total_chunks=total_chunks)
        # Chunk 1 is authoritative for the file identity.
        if part.chunk_index == 1 or not session.original_filename:
            if original_filename:
                session.original_filename = original_filename
            if mime_type:
                session.mime_type = mime_type
        session.chunks[part.chunk_index] = part
        session.updated_at = self._clock()
        return session

    def remove(self, session_id: str) -> ChunkSession | None:
        session = self._sessions.pop(session_id, None)
        PipelineMetrics.active_sessions.set(len(self._sessions))
        return session

    def prune_locks(self) -> int:
        """Drop idle locks of sessions that no longer exist."""

        idle = [
            key
            for key, lock in self._locks.items()
            if key not in self._sessions and not lock.locked()
        ]
        for key in idle:
            del self._locks[key]
        return len(idle)

    def stale_sessions(self, now: float | None = None) -> list[ChunkSession]:
        now = self._clock() if now is None else now
        return [s for s in self._sessions.values() if now - s.updated_at > self._ttl]

    async def reap_stale(self, now: float | None = None) -> list[str]:
        """Evict sessions idle beyond the TTL and delete their staging files."""

        reaped: list[str] = []
        for session in self.stale_sessions(now):
            async with self.lock(session.session_id):
                current = self._sessions.get(session.session_id)
                if current is not session:
                    continue
                self.remove(session.session_id)
                await run_in_threadpool(discard_tree, session.staging_dir)
                reaped.append(session.session_id)
                PipelineMetrics.sessions_reaped.inc()
                self._logger.info(
                    "session.reaped",
                    session_id=session.session_id,
                    received=session.received_indices,
                    total_chunks=session.total_chunks,
                )
        self.prune_locks()
        return reaped

    def purge_orphaned_staging(self) -> int:
        """Delete staging directories that belong to no registered session."""

        if not self._staging_root.exists():
            return 0
        live = {session.staging_dir.name for session in self._sessions.values()}
        removed = 0
        for entry in self._staging_root.iterdir():
            if entry.is_dir() and entry.name not in live:
                discard_tree(entry)
                removed += 1
        if removed:
            self._logger.info("staging.orphans_removed", count=removed)
        return removed


__all__ = ["SessionRegistry"]
