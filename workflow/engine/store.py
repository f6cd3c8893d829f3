"""Execution state persistence contract and two local implementations.

The engine only ever talks to a ``StateStore``. Stores hand out independent
copies, so mutating a loaded state never changes what is persisted until the
engine saves it at the next node boundary.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Protocol, runtime_checkable

from .state import ExecutionState

logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    async def get_state(self, execution_id: str) -> Optional[ExecutionState]:
        ...

    async def save_state(self, execution_id: str, state: ExecutionState) -> None:
        ...


class InMemoryStateStore:
    """Dict-backed store; states round-trip through JSON like a real store."""

    def __init__(self):
        self._states: Dict[str, dict] = {}

    async def get_state(self, execution_id: str) -> Optional[ExecutionState]:
        data = self._states.get(execution_id)
        if data is None:
            return None
        return ExecutionState.from_json(json.loads(data))

    async def save_state(self, execution_id: str, state: ExecutionState) -> None:
        self._states[execution_id] = json.dumps(state.to_json())

    async def delete_state(self, execution_id: str) -> bool:
        return self._states.pop(execution_id, None) is not None

    def execution_ids(self) -> List[str]:
        return list(self._states)


def _atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class FileStateStore:
    """One JSON checkpoint per execution under ``root``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, execution_id: str) -> Path:
        safe_id = execution_id.replace("/", "__")
        return self.root / f"{safe_id}.json"

    async def get_state(self, execution_id: str) -> Optional[ExecutionState]:
        path = self._path(execution_id)
        if not path.exists():
            return None
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        try:
            return ExecutionState.from_json(json.loads(text))
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Corrupt checkpoint for {execution_id} at {path}: {e}")
            raise

    async def save_state(self, execution_id: str, state: ExecutionState) -> None:
        content = json.dumps(state.to_json(), ensure_ascii=False, indent=2)
        await asyncio.to_thread(_atomic_write_text, self._path(execution_id), content)

    async def delete_state(self, execution_id: str) -> bool:
        path = self._path(execution_id)
        if not path.exists():
            return False
        path.unlink()
        return True
