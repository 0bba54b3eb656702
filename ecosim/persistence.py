"""
PersistenceStrategy interface for pluggable storage backends.

This module provides the abstract PersistenceStrategy interface and three concrete
implementations for storing simulation snapshots. Persistence is OPTIONAL - the
controller defaults to in-memory storage with no database or file system
dependencies.

Three included implementations:
1. InMemoryPersistence - Dict-based storage, data lost on exit (testing, prototyping)
2. JsonPersistence - One human-readable JSON file per simulation (small deployments)
3. PostgresPersistence - Database storage, shared by many API workers (production)

Concurrency model:
- Every record carries an integer version that starts at 1.
- save(state, expected_version=None) creates a record and fails if the id exists.
- save(state, expected_version=n) replaces the record only if it is still at
  version n, bumping it to n + 1. A False return means another call won the
  race; the controller reports CONFLICT and never retries on its own.

Usage pattern:
    persistence = InMemoryPersistence()  # or JsonPersistence(), PostgresPersistence()
    await persistence.initialize()

    stored = await persistence.load(simulation_id)
    ok = await persistence.save(new_state, expected_version=stored.version)

    await persistence.close()
"""

import asyncio
import hashlib
import json
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .config import Config
from .logging_utils import log_info
from .schemas import EcosystemState, StoredSimulation

try:  # Optional dependency (only needed for PostgresPersistence)
    import asyncpg
except ImportError:  # pragma: no cover - asyncpg may not be installed for json/memory usage
    asyncpg = None

# Ids made only of these characters are used verbatim as file names
SAFE_ID = re.compile(r"[A-Za-z0-9_-]+")


class PersistenceStrategy(ABC):
    """Abstract base class for versioned simulation storage.

    The controller depends only on this narrow capability interface, so the
    storage technology can be swapped without touching simulation code.

    Method categories:
    1. Lifecycle: initialize(), close()
    2. Versioned snapshots: load(), save()
    3. Lookup: list_for_owner()
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the persistence backend.

        Called once before the controller serves requests. Used to set up
        connection pools, create tables, create directories, etc.

        Raises:
            Exception: If initialization fails
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Close the persistence backend.

        Raises:
            Exception: If cleanup fails
        """
        pass

    @abstractmethod
    async def load(self, simulation_id: str) -> Optional[StoredSimulation]:
        """
        Load the latest snapshot and its version.

        Args:
            simulation_id: Simulation identifier

        Returns:
            StoredSimulation if found, None otherwise

        Raises:
            Exception: If retrieval fails
        """
        pass

    @abstractmethod
    async def save(self, state: EcosystemState, expected_version: Optional[int]) -> bool:
        """
        Write a snapshot with a compare-and-set on the version.

        Args:
            state: Snapshot to store (keyed by state.id)
            expected_version: None to create a new record, otherwise the
                version the caller loaded

        Returns:
            True if written, False on a version (or create) conflict

        Raises:
            Exception: If the write fails for any other reason
        """
        pass

    @abstractmethod
    async def list_for_owner(self, user_id: str) -> List[str]:
        """Return the ids of every simulation owned by `user_id`, sorted."""
        pass


class InMemoryPersistence(PersistenceStrategy):
    """In-memory persistence using Python dicts (no database, no files).

    Snapshots are stored as JSON strings rather than model instances, so a
    caller holding a returned state can never mutate what is stored and
    every load() yields an independent, byte-identical copy.

    Perfect for:
    - Unit testing (fast, isolated, no cleanup needed)
    - Single-process prototypes

    NOT suitable for:
    - Multiple API workers (no shared memory)
    - Persistence across restarts (data lost on exit)
    """

    def __init__(self):
        """Initialize in-memory storage."""
        self.records: Dict[str, tuple[int, str]] = {}

    async def initialize(self) -> None:
        pass

    async def close(self) -> None:
        """
        No-op: data is kept after close so callers can still read results.
        """
        pass

    async def load(self, simulation_id: str) -> Optional[StoredSimulation]:
        record = self.records.get(simulation_id)
        if record is None:
            return None
        version, payload = record
        return StoredSimulation(state=EcosystemState.model_validate_json(payload), version=version)

    async def save(self, state: EcosystemState, expected_version: Optional[int]) -> bool:
        # No await between the check and the write, so this is atomic on the event loop.
        current = self.records.get(state.id)
        if expected_version is None:
            if current is not None:
                return False
            self.records[state.id] = (1, state.model_dump_json())
            return True

        if current is None or current[0] != expected_version:
            return False
        self.records[state.id] = (expected_version + 1, state.model_dump_json())
        return True

    async def list_for_owner(self, user_id: str) -> List[str]:
        return sorted(
            simulation_id
            for simulation_id, (_, payload) in self.records.items()
            if EcosystemState.model_validate_json(payload).owner_user_id == user_id
        )


class JsonPersistence(PersistenceStrategy):
    """File-based persistence using JSON for human-readable storage.

    Directory structure:
    ```
    {base_path}/
      {simulation_id}.json            # {"version": n, "state": {...}}
      {sanitised_id}.{digest}.json    # ids outside [A-Za-z0-9_-]
    ```

    Ids that are not plain ASCII letters, digits, '-' or '_' get a name built
    from a sanitised copy plus the first 16 hex digits of the id's SHA-256, so
    "a.b" and "a_b" never share a file. Records also carry their id, and a
    file holding another id is treated as absent on load and as taken on save.

    Writes go to a temporary file that is then renamed over the target, so a
    crash never leaves a half-written snapshot. Compare-and-set is guarded by
    an asyncio.Lock, which serialises writers inside one process only; use
    PostgresPersistence when several processes share storage.

    Async operations:
    - All file I/O runs in the thread pool (asyncio.to_thread)
    - initialize() creates the base directory
    - close() is a no-op
    """

    def __init__(self, base_path: Path | str | None = None):
        self.base_path = Path(base_path) if base_path is not None else Config.DATA_DIR
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        await asyncio.to_thread(self.base_path.mkdir, parents=True, exist_ok=True)

    async def close(self) -> None:
        # Nothing to clean up for JSON persistence
        return None

    async def load(self, simulation_id: str) -> Optional[StoredSimulation]:
        payload = await asyncio.to_thread(self._read, self._path(simulation_id))
        if payload is None or payload["state"]["id"] != simulation_id:
            return None
        return StoredSimulation.model_validate(payload)

    async def save(self, state: EcosystemState, expected_version: Optional[int]) -> bool:
        path = self._path(state.id)
        async with self._lock:
            current = await asyncio.to_thread(self._read, path)
            if current is not None and current["state"]["id"] != state.id:
                return False
            if expected_version is None:
                if current is not None:
                    return False
                version = 1
            else:
                if current is None or current.get("version") != expected_version:
                    return False
                version = expected_version + 1

            record = StoredSimulation(state=state, version=version)
            await asyncio.to_thread(self._write, path, record.model_dump(mode="json"))
        return True

    async def list_for_owner(self, user_id: str) -> List[str]:
        def _scan() -> List[str]:
            found = []
            for path in self.base_path.glob("*.json"):
                payload = json.loads(path.read_text("utf-8"))
                if payload["state"]["owner_user_id"] == user_id:
                    found.append(payload["state"]["id"])
            return sorted(found)

        return await asyncio.to_thread(_scan)

    def _path(self, simulation_id: str) -> Path:
        # Ids are generated by the controller, but never trust them as paths.
        if SAFE_ID.fullmatch(simulation_id):
            return self.base_path / f"{simulation_id}.json"
        safe = re.sub(r"[^A-Za-z0-9_-]", "_", simulation_id)
        digest = hashlib.sha256(simulation_id.encode("utf-8")).hexdigest()[:16]
        return self.base_path / f"{safe}.{digest}.json"

    @staticmethod
    def _read(path: Path) -> Optional[dict]:
        if not path.exists():
            return None
        return json.loads(path.read_text("utf-8"))

    @staticmethod
    def _write(path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2), "utf-8")
        os.replace(tmp, path)


class PostgresPersistence(PersistenceStrategy):
    """PostgreSQL-backed persistence for multi-worker deployments.

    Database schema (created by initialize()):
    - simulations: id TEXT PRIMARY KEY, owner_user_id TEXT, status TEXT,
      version INTEGER, state JSONB, updated_at TIMESTAMPTZ

    The version check happens inside the UPDATE's WHERE clause, so two
    workers racing on one simulation can never both win.

    Connection management:
    - initialize() creates the connection pool and the table
    - close() releases the pool
    """

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS simulations (
            id TEXT PRIMARY KEY,
            owner_user_id TEXT NOT NULL,
            status TEXT NOT NULL,
            version INTEGER NOT NULL,
            state JSONB NOT NULL,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        );
        CREATE INDEX IF NOT EXISTS simulations_owner_idx ON simulations (owner_user_id);
    """

    def __init__(self, database_url: Optional[str] = None):
        if asyncpg is None:  # pragma: no cover - handled during runtime when dependency missing
            raise ImportError(
                "asyncpg is required for PostgresPersistence. Install with `pip install asyncpg`."
            )

        self.database_url = database_url or Config.DATABASE_URL
        self.pool: Optional[asyncpg.Pool] = None

    async def initialize(self) -> None:
        if self.pool is None:
            self.pool = await asyncpg.create_pool(self.database_url)
            async with self.pool.acquire() as conn:
                await conn.execute(self.SCHEMA)
            log_info("Postgres persistence ready")

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def load(self, simulation_id: str) -> Optional[StoredSimulation]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT state, version
            FROM simulations
            WHERE id = $1
        """

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(query, simulation_id)

        if not row:
            return None

        return StoredSimulation(
            state=EcosystemState.model_validate_json(row["state"]),
            version=row["version"],
        )

    async def save(self, state: EcosystemState, expected_version: Optional[int]) -> bool:
        assert self.pool is not None, "Persistence not initialized"

        state_json = state.model_dump_json()

        if expected_version is None:
            query = """
                INSERT INTO simulations (id, owner_user_id, status, version, state)
                VALUES ($1, $2, $3, 1, $4::jsonb)
                ON CONFLICT (id) DO NOTHING
            """
            args = (state.id, state.owner_user_id, state.status.value, state_json)
        else:
            query = """
                UPDATE simulations
                SET status = $2, version = version + 1, state = $3::jsonb, updated_at = NOW()
                WHERE id = $1 AND version = $4
            """
            args = (state.id, state.status.value, state_json, expected_version)

        async with self.pool.acquire() as conn:
            status = await conn.execute(query, *args)

        # asyncpg returns the command tag, e.g. "INSERT 0 1" or "UPDATE 0"
        return status.split()[-1] == "1"

    async def list_for_owner(self, user_id: str) -> List[str]:
        assert self.pool is not None, "Persistence not initialized"

        query = """
            SELECT id
            FROM simulations
            WHERE owner_user_id = $1
            ORDER BY id
        """

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, user_id)

        return [row["id"] for row in rows]


def build_persistence(backend: Optional[str] = None) -> PersistenceStrategy:
    """Construct the backend named by `backend` or Config.PERSISTENCE_BACKEND."""
    backend = (backend or Config.PERSISTENCE_BACKEND).lower()
    if backend == "memory":
        return InMemoryPersistence()
    if backend == "json":
        return JsonPersistence(Config.DATA_DIR)
    if backend == "postgres":
        return PostgresPersistence(Config.DATABASE_URL)
    raise ValueError(f"Unknown persistence backend '{backend}'. Use one of: memory, json, postgres.")
