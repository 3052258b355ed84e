"""SQLite document store implementation."""

import json
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import (
    DIAGNOSTIC_LABEL,
    DIAGNOSTIC_METHOD,
    DatabaseQuery,
    GeneralLog,
    HubbleStatistics,
    LogFilter,
    OperationType,
    PruneStatistics,
    SystemConfiguration,
    SystemInfo,
)
from ..models.filters import LOG_TYPE_HTTP


class IStorage(Protocol):
    """Persistence gateway: the only component that talks to the document store."""

    async def init(self) -> None:
        """Initialize database and create collections."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Envelopes
    async def create_log(self, log: GeneralLog) -> str:
        """Insert a new record; assigns and returns its id."""
        ...

    async def update_log(self, log: GeneralLog) -> None:
        """Replace an existing root record in place."""
        ...

    async def get_log(self, log_id: str) -> GeneralLog | None:
        """Point lookup by id."""
        ...

    async def get_related_logs(self, log_id: str) -> list[GeneralLog]:
        """Children of a root, oldest first."""
        ...

    async def find_logs(self, log_filter: LogFilter) -> list[GeneralLog]:
        """Filtered page of records, newest first."""
        ...

    async def count_logs(self, log_filter: LogFilter) -> int:
        """Number of records matching the filter, ignoring pagination."""
        ...

    async def delete_all_logs(self) -> int:
        """Delete every record."""
        ...

    async def delete_logs_older_than(self, cutoff: datetime) -> int:
        """Delete records with timestamp strictly before cutoff."""
        ...

    async def aggregate_log_counts(self) -> dict[str, int]:
        """Counts per classification bucket."""
        ...

    # Statistics
    async def save_statistics(self, stats: HubbleStatistics) -> None:
        """Upsert a statistics snapshot."""
        ...

    async def get_latest_statistics(self) -> HubbleStatistics | None:
        """Most recent statistics snapshot."""
        ...

    # Configuration
    async def get_configuration(self) -> SystemConfiguration | None:
        """The configuration record, if one exists."""
        ...

    async def save_configuration(self, config: SystemConfiguration) -> None:
        """Replace the configuration record."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


def format_timestamp(value: datetime) -> str:
    """UTC ISO string with fixed precision, so stored values sort lexically."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _query_to_dict(query: DatabaseQuery) -> dict[str, Any]:
    data = asdict(query)
    data["operation_type"] = query.operation_type.value
    data["timestamp"] = format_timestamp(query.timestamp)
    return data


def _query_from_dict(data: dict[str, Any]) -> DatabaseQuery:
    data = dict(data)
    data["operation_type"] = OperationType(data.get("operation_type", "UNKNOWN"))
    data["timestamp"] = parse_timestamp(data["timestamp"])
    return DatabaseQuery(**data)


def _log_to_document(log: GeneralLog) -> str:
    data = asdict(log)
    data.pop("id")
    data["timestamp"] = format_timestamp(log.timestamp)
    data["database_queries"] = [_query_to_dict(q) for q in log.database_queries]
    return json.dumps(data)


def _log_from_row(log_id: str, document: str) -> GeneralLog:
    data = json.loads(document)
    data["id"] = log_id
    data["timestamp"] = parse_timestamp(data["timestamp"])
    data["database_queries"] = [
        _query_from_dict(q) for q in data.get("database_queries", [])
    ]
    return GeneralLog(**data)


def _stats_to_document(stats: HubbleStatistics) -> str:
    data = asdict(stats)
    data.pop("id")
    data["timestamp"] = format_timestamp(stats.timestamp)
    last = stats.last_prune.last_prune_date
    data["last_prune"]["last_prune_date"] = format_timestamp(last) if last else None
    return json.dumps(data)


def _stats_from_row(stats_id: str, document: str) -> HubbleStatistics:
    data = json.loads(document)
    prune = data.pop("last_prune", None) or {}
    last = prune.get("last_prune_date")
    return HubbleStatistics(
        id=stats_id,
        timestamp=parse_timestamp(data["timestamp"]),
        total_logs=data.get("total_logs", 0),
        successful_logs=data.get("successful_logs", 0),
        failed_logs=data.get("failed_logs", 0),
        logger_logs=data.get("logger_logs", 0),
        last_prune=PruneStatistics(
            last_prune_date=parse_timestamp(last) if last else None,
            logs_deleted=prune.get("logs_deleted", 0),
        ),
    )


def _config_to_document(config: SystemConfiguration) -> str:
    data = asdict(config)
    data.pop("id")
    data["timestamp"] = format_timestamp(config.timestamp)
    data["system_info"]["start_time"] = format_timestamp(
        config.system_info.start_time
    )
    return json.dumps(data)


def _config_from_row(config_id: str, document: str) -> SystemConfiguration:
    data = json.loads(document)
    info = data.pop("system_info", None) or {}
    if "start_time" in info:
        info["start_time"] = parse_timestamp(info["start_time"])
    data["timestamp"] = parse_timestamp(data["timestamp"])
    return SystemConfiguration(id=config_id, system_info=SystemInfo(**info), **data)


def _casefold(value: str | None) -> str | None:
    # SQLite LIKE folds ASCII only
    return value.casefold() if value is not None else None


def _escape_like(word: str) -> str:
    return word.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_log_filter(log_filter: LogFilter) -> tuple[str, list[Any]]:
    """Translate a LogFilter into a WHERE clause and its parameters."""
    conditions: list[str] = []
    params: list[Any] = []

    if log_filter.method:
        conditions.append("method = ?")
        params.append(log_filter.method)

    # Every word must appear in the path or in the query string
    for word in log_filter.url_words:
        pattern = f"%{_escape_like(word.casefold())}%"
        conditions.append(
            "(casefold(http_url) LIKE ? ESCAPE '\\'"
            " OR casefold(query_params) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern])

    if log_filter.status_group is not None:
        conditions.append("status_code >= ? AND status_code < ?")
        params.extend([log_filter.status_group, log_filter.status_group + 100])

    if log_filter.log_type == DIAGNOSTIC_LABEL:
        conditions.append("controller_name = ?")
        params.append(DIAGNOSTIC_LABEL)
    elif log_filter.log_type == LOG_TYPE_HTTP:
        conditions.append("controller_name != ?")
        params.append(DIAGNOSTIC_LABEL)

    if log_filter.exclude_related:
        # Standalone diagnostic records have no owner and stay visible
        conditions.append(
            "NOT (controller_name = ? AND related_request_id IS NOT NULL)"
        )
        params.append(DIAGNOSTIC_LABEL)

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where_clause, params


class Storage:
    """SQLite-backed document store."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def database_name(self) -> str:
        return Path(str(self._db_path)).name

    async def init(self) -> None:
        """Initialize database and create collections."""
        self._conn = await aiosqlite.connect(self._db_path)
        await self._conn.create_function("casefold", 1, _casefold)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Envelopes
    async def create_log(self, log: GeneralLog) -> str:
        """Insert a new record; assigns and returns its id."""
        conn = self._require_conn()

        if not log.id:
            log.id = uuid.uuid4().hex

        await conn.execute(
            """
            INSERT INTO logs
            (id, timestamp, method, http_url, query_params, controller_name,
             status_code, related_request_id, document)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log.id,
                format_timestamp(log.timestamp),
                log.method,
                log.http_url,
                log.query_params,
                log.controller_name,
                log.status_code,
                log.related_request_id,
                _log_to_document(log),
            ),
        )
        await conn.commit()
        return log.id

    async def update_log(self, log: GeneralLog) -> None:
        """Replace an existing root record in place."""
        conn = self._require_conn()

        if not log.id:
            raise ValueError("Cannot update a record that has no id")
        if log.is_child:
            raise ValueError(f"Correlated record {log.id} is write-once")

        cursor = await conn.execute(
            """
            UPDATE logs
            SET timestamp = ?, method = ?, http_url = ?, query_params = ?,
                controller_name = ?, status_code = ?, document = ?
            WHERE id = ? AND related_request_id IS NULL
            """,
            (
                format_timestamp(log.timestamp),
                log.method,
                log.http_url,
                log.query_params,
                log.controller_name,
                log.status_code,
                _log_to_document(log),
                log.id,
            ),
        )
        await conn.commit()

        if cursor.rowcount == 0:
            raise LookupError(f"No root record with id {log.id}")

    async def get_log(self, log_id: str) -> GeneralLog | None:
        """Point lookup by id."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT id, document FROM logs WHERE id = ?",
            (log_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return _log_from_row(row[0], row[1])

    async def get_related_logs(self, log_id: str) -> list[GeneralLog]:
        """Children of a root, oldest first."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT id, document
            FROM logs
            WHERE related_request_id = ?
            ORDER BY timestamp ASC, id ASC
            """,
            (log_id,),
        )
        rows = await cursor.fetchall()

        return [_log_from_row(row[0], row[1]) for row in rows]

    async def find_logs(self, log_filter: LogFilter) -> list[GeneralLog]:
        """Filtered page of records, newest first."""
        conn = self._require_conn()

        where_clause, params = build_log_filter(log_filter)

        # id breaks timestamp ties so pages never overlap
        query = f"""
            SELECT id, document
            FROM logs
            {where_clause}
            ORDER BY timestamp DESC, id DESC
            LIMIT ? OFFSET ?
        """
        params.extend([log_filter.page_size, log_filter.offset])

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [_log_from_row(row[0], row[1]) for row in rows]

    async def count_logs(self, log_filter: LogFilter) -> int:
        """Number of records matching the filter, ignoring pagination."""
        conn = self._require_conn()

        where_clause, params = build_log_filter(log_filter)
        cursor = await conn.execute(f"SELECT COUNT(*) FROM logs {where_clause}", params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def delete_all_logs(self) -> int:
        """Delete every record."""
        conn = self._require_conn()

        cursor = await conn.execute("DELETE FROM logs")
        await conn.commit()
        return cursor.rowcount

    async def delete_logs_older_than(self, cutoff: datetime) -> int:
        """Delete records with timestamp strictly before cutoff."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "DELETE FROM logs WHERE timestamp < ?",
            (format_timestamp(cutoff),),
        )
        await conn.commit()
        return cursor.rowcount

    async def aggregate_log_counts(self) -> dict[str, int]:
        """Counts per classification bucket."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT
                COUNT(*),
                COALESCE(SUM(CASE WHEN status_code >= 200 AND status_code < 300
                             THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN status_code >= 400 THEN 1 ELSE 0 END), 0),
                COALESCE(SUM(CASE WHEN method = ? THEN 1 ELSE 0 END), 0)
            FROM logs
            """,
            (DIAGNOSTIC_METHOD,),
        )
        row = await cursor.fetchone()

        total, successful, failed, logger_logs = row if row else (0, 0, 0, 0)
        return {
            "total_logs": int(total),
            "successful_logs": int(successful),
            "failed_logs": int(failed),
            "logger_logs": int(logger_logs),
        }

    # Statistics
    async def save_statistics(self, stats: HubbleStatistics) -> None:
        """Upsert a statistics snapshot."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT OR REPLACE INTO stats (id, timestamp, document)
            VALUES (?, ?, ?)
            """,
            (stats.id, format_timestamp(stats.timestamp), _stats_to_document(stats)),
        )
        await conn.commit()

    async def get_latest_statistics(self) -> HubbleStatistics | None:
        """Most recent statistics snapshot."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT id, document
            FROM stats
            ORDER BY timestamp DESC
            LIMIT 1
            """
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return _stats_from_row(row[0], row[1])

    # Configuration
    async def get_configuration(self) -> SystemConfiguration | None:
        """The configuration record, if one exists."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT id, document FROM config ORDER BY timestamp DESC LIMIT 1"
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return _config_from_row(row[0], row[1])

    async def save_configuration(self, config: SystemConfiguration) -> None:
        """Replace the configuration record."""
        conn = self._require_conn()

        # Singleton collection: drop any record with a different id
        await conn.execute("DELETE FROM config WHERE id != ?", (config.id,))
        await conn.execute(
            """
            INSERT OR REPLACE INTO config (id, timestamp, document)
            VALUES (?, ?, ?)
            """,
            (
                config.id,
                format_timestamp(config.timestamp),
                _config_to_document(config),
            ),
        )
        await conn.commit()

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        for table in ["logs", "stats", "config"]:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
