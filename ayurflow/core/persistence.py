"""
Task persistence for ayurflow

Stores coordinated tasks once they reach a terminal state. The in-memory
store is the default; the SQLite store keeps history across restarts.
"""

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import aiosqlite

from .models import CoordinatedTask, TaskStatus

logger = logging.getLogger(__name__)


class TaskStore(ABC):
    """Abstract task store"""

    @abstractmethod
    async def initialize(self) -> None:
        """Open connections and create schema"""

    @abstractmethod
    async def shutdown(self) -> None:
        """Release resources"""

    @abstractmethod
    async def save_task(self, task: CoordinatedTask) -> None:
        """Insert or replace a task"""

    @abstractmethod
    async def load_task(self, task_id: str) -> Optional[CoordinatedTask]:
        """Load a task by id"""

    @abstractmethod
    async def list_tasks(self, status: Optional[TaskStatus] = None) -> List[CoordinatedTask]:
        """List stored tasks, oldest submission first"""


class InMemoryTaskStore(TaskStore):
    """Dictionary-backed store, used when persistence is disabled"""

    def __init__(self):
        self._tasks: Dict[str, Dict] = {}

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def save_task(self, task: CoordinatedTask) -> None:
        self._tasks[task.id] = task.to_dict()

    async def load_task(self, task_id: str) -> Optional[CoordinatedTask]:
        data = self._tasks.get(task_id)
        return CoordinatedTask.from_dict(data) if data else None

    async def list_tasks(self, status: Optional[TaskStatus] = None) -> List[CoordinatedTask]:
        tasks = [CoordinatedTask.from_dict(data) for data in self._tasks.values()]
        if status is not None:
            tasks = [task for task in tasks if task.status == status]
        return sorted(tasks, key=lambda t: t.submitted_at)


class SQLiteTaskStore(TaskStore):
    """SQLite-based task store"""

    def __init__(self, db_path: str = "ayurflow.db"):
        """
        Initialize SQLite store

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Open the database and create tables"""
        if self._initialized:
            return

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            self.db = await aiosqlite.connect(self.db_path)
            self.db.row_factory = aiosqlite.Row

            # WAL mode for concurrent readers
            await self.db.execute("PRAGMA journal_mode=WAL")

            await self.db.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    category TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    status TEXT NOT NULL,
                    data TEXT NOT NULL,     -- JSON
                    submitted_at TEXT NOT NULL,
                    completed_at TEXT,
                    updated_at TEXT NOT NULL
                )
            """)
            await self.db.execute("""
                CREATE INDEX IF NOT EXISTS idx_task_status ON tasks(status)
            """)
            await self.db.commit()

            self._initialized = True
            logger.info(f"SQLite task store initialized: {self.db_path}")

        except Exception as e:
            logger.error(f"Failed to initialize SQLite task store: {e}")
            raise

    async def shutdown(self) -> None:
        """Close the database connection"""
        if self.db:
            await self.db.close()
            self.db = None
            self._initialized = False
            logger.info("SQLite task store shut down")

    def _require_db(self) -> aiosqlite.Connection:
        if not self.db:
            raise RuntimeError("SQLite task store not initialized")
        return self.db

    async def save_task(self, task: CoordinatedTask) -> None:
        db = self._require_db()
        await db.execute("""
            INSERT OR REPLACE INTO tasks
            (id, category, priority, status, data, submitted_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            task.id,
            task.category.value,
            task.priority.value,
            task.status.value,
            json.dumps(task.to_dict()),
            task.submitted_at.isoformat(),
            task.completed_at.isoformat() if task.completed_at else None,
            datetime.utcnow().isoformat()
        ))
        await db.commit()

    async def load_task(self, task_id: str) -> Optional[CoordinatedTask]:
        db = self._require_db()
        async with db.execute("SELECT data FROM tasks WHERE id = ?", (task_id,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return CoordinatedTask.from_dict(json.loads(row['data']))

    async def list_tasks(self, status: Optional[TaskStatus] = None) -> List[CoordinatedTask]:
        db = self._require_db()
        if status is None:
            query, params = "SELECT data FROM tasks ORDER BY submitted_at", ()
        else:
            query, params = "SELECT data FROM tasks WHERE status = ? ORDER BY submitted_at", (status.value,)
        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
        return [CoordinatedTask.from_dict(json.loads(row['data'])) for row in rows]


def create_task_store(backend: str, db_path: Optional[str] = None) -> TaskStore:
    """Create a task store by backend name ('memory' or 'sqlite')"""
    if backend == "memory":
        return InMemoryTaskStore()
    if backend == "sqlite":
        return SQLiteTaskStore(db_path or "ayurflow.db")
    raise ValueError(f"Unknown persistence backend: {backend}")
