import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List

from concierge.agent.structs import Message
from concierge.exceptions import ConversationStoreError

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


class ConversationStore(ABC):
    """
    Persists full message lists across runs, keyed by session id.
    """

    @abstractmethod
    async def save(self, session_id: str, messages: List[Message]) -> None:
        ...

    @abstractmethod
    async def load(self, session_id: str) -> List[Message]:
        """Raises ConversationStoreError when the session does not exist."""

    @abstractmethod
    async def list_sessions(self) -> List[str]:
        ...

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        ...


class InMemoryConversationStore(ConversationStore):
    """Process-local store, mostly for tests."""

    def __init__(self):
        self._sessions: Dict[str, List[dict]] = {}

    async def save(self, session_id: str, messages: List[Message]) -> None:
        self._sessions[session_id] = [m.to_dict() for m in messages]

    async def load(self, session_id: str) -> List[Message]:
        if session_id not in self._sessions:
            raise ConversationStoreError(
                f"Unknown session: {session_id}", session_id=session_id
            )
        return [Message.from_dict(d) for d in self._sessions[session_id]]

    async def list_sessions(self) -> List[str]:
        return sorted(self._sessions)

    async def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)


class JsonFileConversationStore(ConversationStore):
    """One JSON file per session under `directory`."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.logger = logging.getLogger("ConversationStore")

    def _path(self, session_id: str) -> Path:
        if not _SAFE_ID.match(session_id):
            raise ConversationStoreError(
                f"Invalid session id: {session_id!r}", session_id=session_id
            )
        return self.directory / f"{session_id}.json"

    async def save(self, session_id: str, messages: List[Message]) -> None:
        path = self._path(session_id)
        payload = {
            "session_id": session_id,
            "messages": [m.to_dict() for m in messages],
        }
        try:
            await asyncio.to_thread(self._write, path, payload)
        except OSError as e:
            raise ConversationStoreError(
                f"Failed to save session {session_id}: {e}",
                session_id=session_id,
                original_error=e,
            ) from e
        self.logger.debug("Saved %d messages to %s", len(messages), path)

    def _write(self, path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        tmp.replace(path)

    async def load(self, session_id: str) -> List[Message]:
        path = self._path(session_id)
        if not path.exists():
            raise ConversationStoreError(
                f"Unknown session: {session_id}", session_id=session_id
            )
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
            data = json.loads(raw)
            return [Message.from_dict(d) for d in data.get("messages", [])]
        except (OSError, ValueError, KeyError) as e:
            raise ConversationStoreError(
                f"Failed to load session {session_id}: {e}",
                session_id=session_id,
                original_error=e,
            ) from e

    async def list_sessions(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("*.json"))

    async def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        if path.exists():
            path.unlink()
