from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from typing import Any

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from fuelwatch.core.config import get_settings
from fuelwatch.core.slugs import normalize_station_text
from fuelwatch.services.merge import FUEL_TYPES, PRICE_TABLES, plan_price_inserts

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(slots=True)
class MachineCredentialRecord:
    module_db_id: str
    module_id: str
    scopes: list[str]
    key_hash: str


SUBMISSION_TABLES = {
    "web": "submissions",
    "form": "pending_submissions",
}
SUBMISSION_STATUSES = {"pending", "approved", "rejected"}
SUBMISSION_TRANSITIONS = {
    "pending": {"approved", "rejected"},
}

_PRICE_COLUMNS = """
  id,
  station_id::text as station_id,
  station_name,
  station_location,
  price,
  tags,
  last_updated,
  effective_date
"""

_SUBMISSION_COLUMNS = """
  id::text as id,
  station_name,
  station_location,
  petrol_price,
  diesel_price,
  kerosene_price,
  submitted_by,
  status,
  submitted_at,
  reviewed_at,
  reviewed_by,
  review_reason
"""


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_machine_credentials(self, module_id: str) -> list[MachineCredentialRecord]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select
              m.id::text as module_db_id,
              m.module_id,
              m.scopes,
              mc.key_hash
            from modules m
            join module_credentials mc on mc.module_id = m.id
            where m.module_id = $1
              and m.enabled = true
              and mc.is_active = true
              and mc.revoked_at is null
              and (mc.expires_at is null or mc.expires_at > now())
            """,
            module_id,
        )
        return [
            MachineCredentialRecord(
                module_db_id=row["module_db_id"],
                module_id=row["module_id"],
                scopes=list(row["scopes"] or []),
                key_hash=row["key_hash"],
            )
            for row in rows
        ]

    async def list_price_records(self, fuel_type: str) -> list[dict[str, Any]]:
        table = self._price_table(fuel_type)
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_PRICE_COLUMNS}
            from {table}
            order by id
            """
        )
        return [self._price_row_to_dict(row) for row in rows]

    async def fetch_price_tables(self) -> dict[str, list[dict[str, Any]]]:
        """Read the three fuel tables concurrently."""
        results = await asyncio.gather(*(self.list_price_records(fuel_type) for fuel_type in FUEL_TYPES))
        return dict(zip(FUEL_TYPES, results))

    async def create_price_entry(
        self,
        *,
        fuel_type: str,
        station_name: str,
        station_location: str,
        price: float | None,
        effective_date: date,
        tags: list[str],
    ) -> dict[str, Any]:
        table = self._price_table(fuel_type)
        normalized_name, normalized_location = self._require_station_text(station_name, station_location)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                station_id = await self._ensure_station(
                    conn=conn,
                    station_name=normalized_name,
                    station_location=normalized_location,
                )
                row = await conn.fetchrow(
                    f"""
                    insert into {table} (
                      station_id,
                      station_name,
                      station_location,
                      price,
                      tags,
                      last_updated,
                      effective_date
                    )
                    values ($1::uuid, $2, $3, $4, $5::text[], now(), $6)
                    returning {_PRICE_COLUMNS}
                    """,
                    station_id,
                    normalized_name,
                    normalized_location,
                    price,
                    self._coerce_text_list(tags),
                    effective_date,
                )
        if not row:
            raise RepositoryUnavailableError("price entry insert returned no row")
        return self._price_row_to_dict(row)

    async def update_station_prices(
        self,
        *,
        station_id: str,
        prices: dict[str, float | None],
    ) -> dict[str, Any]:
        changes = {fuel_type: price for fuel_type, price in prices.items() if price is not None}
        if not changes:
            raise RepositoryValidationError("provide at least one fuel price")
        for fuel_type in changes:
            self._price_table(fuel_type)

        pool = await self._get_pool()
        updated: dict[str, int] = {}
        inserted: dict[str, int] = {}
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    station = await self._lock_station(conn=conn, station_id=station_id)
                    for fuel_type, price in changes.items():
                        table = PRICE_TABLES[fuel_type]
                        status = await conn.execute(
                            f"""
                            update {table}
                            set price = $2, last_updated = now()
                            where station_id = $1::uuid
                            """,
                            station_id,
                            price,
                        )
                        count = self._affected_rows(status)
                        if count:
                            updated[fuel_type] = count
                            continue
                        await conn.execute(
                            f"""
                            insert into {table} (
                              station_id,
                              station_name,
                              station_location,
                              price,
                              last_updated,
                              effective_date
                            )
                            values ($1::uuid, $2, $3, $4, now(), current_date)
                            """,
                            station_id,
                            station["station_name"],
                            station["station_location"],
                            price,
                        )
                        inserted[fuel_type] = 1
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("station not found") from exc

        return {"station_id": station_id, "updated": updated, "inserted": inserted}

    async def delete_station(self, *, station_id: str) -> dict[str, Any]:
        pool = await self._get_pool()
        deleted: dict[str, int] = {}
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    await self._lock_station(conn=conn, station_id=station_id)
                    for fuel_type in FUEL_TYPES:
                        status = await conn.execute(
                            f"delete from {PRICE_TABLES[fuel_type]} where station_id = $1::uuid",
                            station_id,
                        )
                        deleted[fuel_type] = self._affected_rows(status)
                    await conn.execute("delete from stations where id = $1::uuid", station_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("station not found") from exc

        return {"station_id": station_id, "deleted": deleted}

    async def create_submission(
        self,
        *,
        queue: str,
        station_name: str,
        station_location: str,
        petrol_price: float | None,
        diesel_price: float | None,
        kerosene_price: float | None,
        submitted_by: str | None,
    ) -> dict[str, Any]:
        table = self._submission_table(queue)
        normalized_name, normalized_location = self._require_station_text(station_name, station_location)
        if petrol_price is None and diesel_price is None and kerosene_price is None:
            raise RepositoryValidationError("provide at least one fuel price")

        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            insert into {table} (
              station_name,
              station_location,
              petrol_price,
              diesel_price,
              kerosene_price,
              submitted_by,
              status
            )
            values ($1, $2, $3, $4, $5, $6, 'pending')
            returning {_SUBMISSION_COLUMNS}
            """,
            normalized_name,
            normalized_location,
            petrol_price,
            diesel_price,
            kerosene_price,
            self._coerce_text(submitted_by) or "anonymous",
        )
        if not row:
            raise RepositoryUnavailableError("submission insert returned no row")
        return self._submission_row_to_dict(row, queue=queue)

    async def list_submissions(
        self,
        *,
        queue: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        table = self._submission_table(queue)
        if status is not None and status not in SUBMISSION_STATUSES:
            raise RepositoryValidationError("status must be one of: pending, approved, rejected")
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {_SUBMISSION_COLUMNS}
            from {table}
            where ($3::text is null or status = $3::text)
            order by submitted_at desc
            limit $1
            offset $2
            """,
            limit,
            offset,
            status,
        )
        return [self._submission_row_to_dict(row, queue=queue) for row in rows]

    async def approve_submission(
        self,
        *,
        queue: str,
        submission_id: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        return await self._review_submission(
            queue=queue,
            submission_id=submission_id,
            to_status="approved",
            actor_user_id=actor_user_id,
            reason=reason,
        )

    async def reject_submission(
        self,
        *,
        queue: str,
        submission_id: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        return await self._review_submission(
            queue=queue,
            submission_id=submission_id,
            to_status="rejected",
            actor_user_id=actor_user_id,
            reason=reason,
        )

    async def _review_submission(
        self,
        *,
        queue: str,
        submission_id: str,
        to_status: str,
        actor_user_id: str,
        reason: str | None,
    ) -> dict[str, Any]:
        # Price inserts and the status change commit together or not at all.
        table = self._submission_table(queue)
        pool = await self._get_pool()
        station_id: str | None = None
        inserted_price_ids: dict[str, int] = {}

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    existing = await conn.fetchrow(
                        f"""
                        select {_SUBMISSION_COLUMNS}
                        from {table}
                        where id = $1::uuid
                        for update
                        """,
                        submission_id,
                    )
                    if not existing:
                        raise RepositoryNotFoundError("submission not found")

                    self._validate_submission_transition(from_status=str(existing["status"]), to_status=to_status)

                    if to_status == "approved":
                        planned = plan_price_inserts(self._submission_row_to_dict(existing, queue=queue))
                        if not planned:
                            raise RepositoryConflictError("submission has no fuel prices to approve")
                        station_name, station_location = self._require_station_text(
                            existing["station_name"],
                            existing["station_location"],
                        )
                        station_id = await self._ensure_station(
                            conn=conn,
                            station_name=station_name,
                            station_location=station_location,
                        )
                        for fuel_type, price in planned:
                            inserted_price_ids[fuel_type] = await conn.fetchval(
                                f"""
                                insert into {PRICE_TABLES[fuel_type]} (
                                  station_id,
                                  station_name,
                                  station_location,
                                  price,
                                  last_updated,
                                  effective_date
                                )
                                values ($1::uuid, $2, $3, $4, now(), current_date)
                                returning id
                                """,
                                station_id,
                                station_name,
                                station_location,
                                price,
                            )

                    row = await conn.fetchrow(
                        f"""
                        update {table}
                        set
                          status = $2,
                          reviewed_at = now(),
                          reviewed_by = $3,
                          review_reason = $4
                        where id = $1::uuid
                        returning {_SUBMISSION_COLUMNS}
                        """,
                        submission_id,
                        to_status,
                        actor_user_id,
                        self._coerce_text(reason),
                    )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("submission not found") from exc

        if not row:
            raise RepositoryNotFoundError("submission not found")
        logger.info(
            "submission reviewed queue=%s id=%s status=%s price_rows=%s",
            queue,
            submission_id,
            to_status,
            len(inserted_price_ids),
        )
        return {
            "submission": self._submission_row_to_dict(row, queue=queue),
            "station_id": station_id,
            "inserted_price_ids": inserted_price_ids,
        }

    async def get_form_high_water_mark(self) -> datetime | None:
        pool = await self._get_pool()
        return await pool.fetchval("select max(submitted_at) from pending_submissions")

    async def insert_form_submissions(self, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0
        pool = await self._get_pool()
        inserted = 0
        async with pool.acquire() as conn:
            async with conn.transaction():
                for item in rows:
                    station_name = normalize_station_text(self._coerce_text(item.get("station_name")))
                    station_location = normalize_station_text(self._coerce_text(item.get("station_location")))
                    if not station_name or not station_location:
                        raise RepositoryValidationError("station_name and station_location are required")
                    row_id = await conn.fetchval(
                        """
                        insert into pending_submissions (
                          station_name,
                          station_location,
                          petrol_price,
                          diesel_price,
                          kerosene_price,
                          submitted_by,
                          status,
                          submitted_at
                        )
                        values ($1, $2, $3, $4, $5, $6, 'pending', $7)
                        on conflict (station_name, station_location, submitted_at) do nothing
                        returning id
                        """,
                        station_name,
                        station_location,
                        self._coerce_float(item.get("petrol_price")),
                        self._coerce_float(item.get("diesel_price")),
                        self._coerce_float(item.get("kerosene_price")),
                        self._coerce_text(item.get("submitted_by")) or "anonymous",
                        item.get("submitted_at"),
                    )
                    if row_id is not None:
                        inserted += 1
        return inserted

    async def create_profile(
        self,
        *,
        user_id: str,
        first_name: str | None,
        last_name: str | None,
        email: str | None,
    ) -> dict[str, Any]:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                insert into profiles (id, first_name, last_name, email)
                values ($1::uuid, $2, $3, $4)
                on conflict (id) do update
                set
                  first_name = excluded.first_name,
                  last_name = excluded.last_name,
                  email = excluded.email
                returning id::text as id, first_name, last_name, email, created_at
                """,
                user_id,
                self._coerce_text(first_name),
                self._coerce_text(last_name),
                self._coerce_text(email),
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryValidationError("invalid user id") from exc
        if not row:
            raise RepositoryUnavailableError("profile insert returned no row")
        return dict(row)

    async def get_profile(self, *, user_id: str) -> dict[str, Any] | None:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                """
                select id::text as id, first_name, last_name, email, created_at
                from profiles
                where id = $1::uuid
                """,
                user_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError):
            return None
        return dict(row) if row else None

    async def _ensure_station(self, *, conn: asyncpg.Connection, station_name: str, station_location: str) -> str:
        return await conn.fetchval(
            """
            insert into stations (station_name, station_location)
            values ($1, $2)
            on conflict (station_name, station_location)
            do update set station_name = excluded.station_name
            returning id::text
            """,
            station_name,
            station_location,
        )

    async def _lock_station(self, *, conn: asyncpg.Connection, station_id: str) -> asyncpg.Record:
        station = await conn.fetchrow(
            """
            select id::text as id, station_name, station_location
            from stations
            where id = $1::uuid
            for update
            """,
            station_id,
        )
        if not station:
            raise RepositoryNotFoundError("station not found")
        return station

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("FW_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        # Concurrent first callers (e.g. the three fuel-table reads) share one pool.
        async with self._pool_lock:
            if self._pool is None:
                try:
                    self._pool = await asyncpg.create_pool(
                        dsn=self.database_url,
                        min_size=self.min_pool_size,
                        max_size=self.max_pool_size,
                        command_timeout=15,
                    )
                except Exception as exc:  # pragma: no cover - depends on environment
                    raise RepositoryUnavailableError("database unavailable") from exc
            return self._pool

    @staticmethod
    def _price_table(fuel_type: str) -> str:
        table = PRICE_TABLES.get(fuel_type)
        if table is None:
            raise RepositoryValidationError("fuel_type must be one of: petrol, diesel, kerosene")
        return table

    @staticmethod
    def _submission_table(queue: str) -> str:
        table = SUBMISSION_TABLES.get(queue)
        if table is None:
            raise RepositoryValidationError("queue must be one of: web, form")
        return table

    @staticmethod
    def _validate_submission_transition(*, from_status: str, to_status: str) -> None:
        allowed = SUBMISSION_TRANSITIONS.get(from_status)
        if not allowed or to_status not in allowed:
            raise RepositoryConflictError(f"invalid submission transition: {from_status} -> {to_status}")

    def _require_station_text(self, station_name: Any, station_location: Any) -> tuple[str, str]:
        normalized_name = normalize_station_text(self._coerce_text(station_name))
        normalized_location = normalize_station_text(self._coerce_text(station_location))
        if not normalized_name or not normalized_location:
            raise RepositoryValidationError("station_name and station_location must be non-empty strings")
        return normalized_name, normalized_location

    @staticmethod
    def _affected_rows(status: str) -> int:
        # asyncpg returns command tags such as "UPDATE 3" or "DELETE 0".
        try:
            return int(status.rsplit(" ", maxsplit=1)[-1])
        except (AttributeError, ValueError):
            return 0

    def _price_row_to_dict(self, row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "station_id": row["station_id"],
            "station_name": row["station_name"],
            "station_location": row["station_location"],
            "price": self._coerce_float(row["price"]),
            "tags": self._coerce_text_list(row["tags"]),
            "last_updated": row["last_updated"],
            "effective_date": row["effective_date"],
        }

    def _submission_row_to_dict(self, row: asyncpg.Record, *, queue: str) -> dict[str, Any]:
        return {
            "id": row["id"],
            "queue": queue,
            "station_name": row["station_name"],
            "station_location": row["station_location"],
            "petrol_price": self._coerce_float(row["petrol_price"]),
            "diesel_price": self._coerce_float(row["diesel_price"]),
            "kerosene_price": self._coerce_float(row["kerosene_price"]),
            "submitted_by": row["submitted_by"] or "anonymous",
            "status": row["status"],
            "submitted_at": row["submitted_at"],
            "reviewed_at": row["reviewed_at"],
            "reviewed_by": row["reviewed_by"],
            "review_reason": row["review_reason"],
        }

    @staticmethod
    def _coerce_text(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return str(value)

    @staticmethod
    def _coerce_text_list(value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        items: list[str] = []
        for item in value:
            if not isinstance(item, str):
                continue
            stripped = item.strip()
            if stripped:
                items.append(stripped)
        return items

    @staticmethod
    def _coerce_float(value: Any) -> float | None:
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


@lru_cache
def get_repository() -> PostgresRepository:
    settings = get_settings()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
