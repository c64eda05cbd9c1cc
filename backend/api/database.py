"""
Record store for profiles, medicines and schedules.

Two interchangeable backends: MemoryStore keeps records in-process,
SupabaseStore keeps one table per entity. The application builds one store
at startup and hands it to everything that needs it.
"""
import time
import random
import logging
from datetime import datetime
from typing import Callable, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel
from supabase import create_client, Client

from .logging_config import DatabaseError, StorageUnavailable
from .schemas import Medicine, Profile, Schedule

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

def retry(f, tries=3, base=0.15):
    """Retry with exponential backoff + jitter"""
    for i in range(tries):
        try:
            return f()
        except Exception:
            if i == tries-1:
                raise
            time.sleep(base*(2**i)+random.random()*0.05)

# In-process backend

class MemoryCollection(Generic[T]):
    def __init__(self):
        self._items: Dict[str, T] = {}

    def add(self, item: T) -> str:
        if item.id in self._items:
            raise DatabaseError("insert", f"record {item.id} already exists")
        self._items[item.id] = item.model_copy(deep=True)
        return item.id

    def get(self, record_id: str) -> Optional[T]:
        item = self._items.get(record_id)
        return item.model_copy(deep=True) if item is not None else None

    def get_all(self) -> List[T]:
        return [item.model_copy(deep=True) for item in self._items.values()]

    def update(self, item: T) -> str:
        self._items[item.id] = item.model_copy(deep=True)
        return item.id

    def delete(self, record_id: str) -> None:
        self._items.pop(record_id, None)

    def _where(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item.model_copy(deep=True) for item in self._items.values() if predicate(item)]

class MemoryMedicines(MemoryCollection[Medicine]):
    def get_by_profile_id(self, profile_id: str) -> List[Medicine]:
        return self._where(lambda m: m.profile_id == profile_id)

class MemorySchedules(MemoryCollection[Schedule]):
    def add_many(self, items: Iterable[Schedule]) -> int:
        items = list(items)
        ids = [item.id for item in items]
        # All-or-nothing: check every id before writing any
        if len(set(ids)) != len(ids) or any(i in self._items for i in ids):
            raise DatabaseError("insert", "batch contains an existing or repeated id")
        for item in items:
            self._items[item.id] = item.model_copy(deep=True)
        return len(items)

    def get_by_profile_id(self, profile_id: str) -> List[Schedule]:
        return self._sorted(self._where(lambda s: s.profile_id == profile_id))

    def get_by_medicine_id(self, medicine_id: str) -> List[Schedule]:
        return self._sorted(self._where(lambda s: s.medicine_id == medicine_id))

    def get_by_date_range(self, profile_id: str, start: datetime, end: datetime) -> List[Schedule]:
        return self._sorted(self._where(
            lambda s: s.profile_id == profile_id and start <= s.scheduled_time <= end
        ))

    def get_due(self, now: datetime, profile_id: Optional[str] = None) -> List[Schedule]:
        return self._sorted(self._where(
            lambda s: s.status == "pending" and s.scheduled_time <= now
            and (profile_id is None or s.profile_id == profile_id)
        ))

    @staticmethod
    def _sorted(items: List[Schedule]) -> List[Schedule]:
        return sorted(items, key=lambda s: s.scheduled_time)

class MemoryStore:
    """Local single-writer store"""

    def __init__(self):
        self.profiles = MemoryCollection[Profile]()
        self.medicines = MemoryMedicines()
        self.schedules = MemorySchedules()

    def ping(self) -> bool:
        return True

    def dispose(self):
        logger.info("Memory store disposed")

# Supabase backend

class SupabaseTable(Generic[T]):
    def __init__(self, client: Client, table: str, model: Type[T]):
        self.client = client
        self.table = table
        self.model = model

    def _read(self, operation: str, query: Callable):
        try:
            return retry(query).data or []
        except Exception as e:
            raise StorageUnavailable(f"{self.table}.{operation}", str(e))

    def _write(self, operation: str, query: Callable):
        # Writes are not retried: a failure fails the calling operation
        try:
            return query()
        except Exception as e:
            raise StorageUnavailable(f"{self.table}.{operation}", str(e))

    def _row(self, item: T) -> dict:
        return item.model_dump(mode="json")

    def _models(self, rows: List[dict]) -> List[T]:
        return [self.model(**row) for row in rows]

    def add(self, item: T) -> str:
        self._write("add", lambda: self.client.table(self.table).insert(self._row(item)).execute())
        return item.id

    def get(self, record_id: str) -> Optional[T]:
        rows = self._read("get", lambda: self.client.table(self.table).select("*").eq("id", record_id).limit(1).execute())
        return self.model(**rows[0]) if rows else None

    def get_all(self) -> List[T]:
        return self._models(self._read("get_all", lambda: self.client.table(self.table).select("*").execute()))

    def update(self, item: T) -> str:
        self._write("update", lambda: self.client.table(self.table).upsert(self._row(item), on_conflict="id").execute())
        return item.id

    def delete(self, record_id: str) -> None:
        self._write("delete", lambda: self.client.table(self.table).delete().eq("id", record_id).execute())

class SupabaseMedicines(SupabaseTable[Medicine]):
    def get_by_profile_id(self, profile_id: str) -> List[Medicine]:
        return self._models(self._read(
            "get_by_profile_id",
            lambda: self.client.table(self.table).select("*").eq("profile_id", profile_id).execute()
        ))

class SupabaseSchedules(SupabaseTable[Schedule]):
    def add_many(self, items: Iterable[Schedule]) -> int:
        rows = [self._row(item) for item in items]
        if not rows:
            return 0
        # One insert statement, so the batch lands completely or not at all
        self._write("add_many", lambda: self.client.table(self.table).insert(rows).execute())
        return len(rows)

    def get_by_profile_id(self, profile_id: str) -> List[Schedule]:
        return self._models(self._read(
            "get_by_profile_id",
            lambda: self.client.table(self.table).select("*").eq("profile_id", profile_id)
                .order("scheduled_time").execute()
        ))

    def get_by_medicine_id(self, medicine_id: str) -> List[Schedule]:
        return self._models(self._read(
            "get_by_medicine_id",
            lambda: self.client.table(self.table).select("*").eq("medicine_id", medicine_id)
                .order("scheduled_time").execute()
        ))

    def get_by_date_range(self, profile_id: str, start: datetime, end: datetime) -> List[Schedule]:
        return self._models(self._read(
            "get_by_date_range",
            lambda: self.client.table(self.table).select("*").eq("profile_id", profile_id)
                .gte("scheduled_time", start.isoformat()).lte("scheduled_time", end.isoformat())
                .order("scheduled_time").execute()
        ))

    def get_due(self, now: datetime, profile_id: Optional[str] = None) -> List[Schedule]:
        """Pending doses at or before now, filtered server-side"""
        def query():
            q = self.client.table(self.table).select("*").eq("status", "pending") \
                .lte("scheduled_time", now.isoformat())
            if profile_id is not None:
                q = q.eq("profile_id", profile_id)
            return q.order("scheduled_time").execute()

        return self._models(self._read("get_due", query))

class SupabaseStore:
    """Supabase-backed store; one table per entity type"""

    def __init__(self, client: Client):
        self.client = client
        self.profiles = SupabaseTable(client, "profiles", Profile)
        self.medicines = SupabaseMedicines(client, "medicines", Medicine)
        self.schedules = SupabaseSchedules(client, "schedules", Schedule)

    @classmethod
    def from_settings(cls, settings) -> "SupabaseStore":
        url = settings.supabase_url

        # Warn if pooling not configured
        if url and "pgbouncer=true" not in url and "pooler" not in url:
            logger.warning("SUPABASE_URL missing pooling params (pgbouncer=true)")

        client = create_client(url, settings.supabase_key)
        logger.info("Supabase client initialized")
        return cls(client)

    def ping(self) -> bool:
        """Lightweight health probe"""
        try:
            r = self.client.table("profiles").select("id").limit(1).execute()
            return r.data is not None
        except Exception as e:
            logger.error(f"Health probe failed: {e}")
            return False

    def dispose(self):
        logger.info("Supabase store disposed")

def build_store(settings):
    """Construct the store selected by STORE_BACKEND"""
    if settings.store_backend == "supabase":
        return SupabaseStore.from_settings(settings)
    if settings.store_backend != "memory":
        logger.warning(f"Unknown STORE_BACKEND '{settings.store_backend}', using memory store")
    return MemoryStore()
