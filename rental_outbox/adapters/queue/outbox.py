from datetime import datetime
from typing import List

from psycopg2.extras import Json, RealDictCursor

from rental_outbox.adapters.postgres.db import PostgresPool, execute, fetch_one
from rental_outbox.domain.models.events import OutboxCounts, OutboxItem, OutboxStatus

OUTBOX_COLUMNS = (
    "id, aggregate_type, aggregate_id, event_kind, payload, status, retry_count, max_retries, "
    "next_retry_at, last_error, created_at, updated_at, processed_at"
)


def claim_batch(conn, batch_size: int, now: datetime) -> List[OutboxItem]:
    """Lock up to ``batch_size`` due PENDING rows, skipping rows other workers hold, and mark them PROCESSING."""
    sql = f"""
    UPDATE outbox_events
    SET status = 'PROCESSING', updated_at = %s
    WHERE id IN (
        SELECT id
        FROM outbox_events
        WHERE status = 'PENDING'
          AND (next_retry_at IS NULL OR next_retry_at <= %s)
        ORDER BY created_at ASC
        LIMIT %s
        FOR UPDATE SKIP LOCKED
    )
    RETURNING {OUTBOX_COLUMNS};
    """
    with conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(sql, (now, now, batch_size))
        rows = cur.fetchall()
    conn.commit()
    # RETURNING does not preserve the subquery ORDER BY.
    items = [OutboxItem.from_row(row) for row in rows]
    items.sort(key=lambda item: item.created_at)
    return items


def recover_stuck(conn, cutoff: datetime, now: datetime) -> int:
    sql = """
    UPDATE outbox_events
    SET status = 'PENDING', updated_at = %s
    WHERE status = 'PROCESSING'
      AND updated_at < %s;
    """
    return execute(conn, sql, (now, cutoff))


def mark_delivered(conn, item_id: str, now: datetime) -> None:
    sql = """
    UPDATE outbox_events
    SET status = 'DELIVERED', processed_at = %s, updated_at = %s, last_error = NULL
    WHERE id = %s;
    """
    execute(conn, sql, (now, now, item_id))


def mark_for_retry(
    conn, item_id: str, retry_count: int, next_retry_at: datetime, last_error: str, now: datetime
) -> None:
    sql = """
    UPDATE outbox_events
    SET status = 'PENDING',
        retry_count = %s,
        next_retry_at = %s,
        last_error = %s,
        updated_at = %s
    WHERE id = %s;
    """
    execute(conn, sql, (retry_count, next_retry_at, last_error[:500], now, item_id))


def mark_dead_letter(conn, item_id: str, retry_count: int, last_error: str, now: datetime) -> None:
    sql = """
    UPDATE outbox_events
    SET status = 'DEAD_LETTER',
        retry_count = %s,
        last_error = %s,
        updated_at = %s
    WHERE id = %s;
    """
    execute(conn, sql, (retry_count, last_error[:500], now, item_id))


def delete_delivered_before(conn, cutoff: datetime) -> int:
    sql = """
    DELETE FROM outbox_events
    WHERE status = 'DELIVERED'
      AND processed_at < %s;
    """
    return execute(conn, sql, (cutoff,))


def count_by_status(conn, day_start: datetime) -> OutboxCounts:
    sql = """
    SELECT
        COUNT(*) FILTER (WHERE status = 'PENDING') AS pending,
        COUNT(*) FILTER (WHERE status = 'PROCESSING') AS processing,
        COUNT(*) FILTER (WHERE status = 'DEAD_LETTER') AS dead_letter,
        COUNT(*) FILTER (WHERE status = 'DELIVERED' AND processed_at >= %s) AS delivered_today
    FROM outbox_events;
    """
    row = fetch_one(conn, sql, (day_start,)) or {}
    return OutboxCounts(
        pending=row.get("pending", 0),
        processing=row.get("processing", 0),
        dead_letter=row.get("dead_letter", 0),
        delivered_today=row.get("delivered_today", 0),
    )


def get_item(conn, item_id: str):
    row = fetch_one(conn, f"SELECT {OUTBOX_COLUMNS} FROM outbox_events WHERE id = %s;", (item_id,))
    return OutboxItem.from_row(row) if row else None


def insert_outbox_item(conn, item: OutboxItem) -> OutboxItem:
    """Producer contract: call inside the business transaction. Does not commit."""
    if item.status is not OutboxStatus.PENDING:
        raise ValueError("outbox items must be written as PENDING")
    sql = """
    INSERT INTO outbox_events (
        id, aggregate_type, aggregate_id, event_kind, payload, status,
        retry_count, max_retries, next_retry_at, created_at, updated_at
    )
    VALUES (%s, %s, %s, %s, %s, 'PENDING', 0, %s, %s, %s, %s);
    """
    params = (
        item.id,
        item.aggregate_type,
        item.aggregate_id,
        item.event_kind,
        Json(item.payload),
        item.max_retries,
        item.next_retry_at,
        item.created_at,
        item.updated_at,
    )
    with conn.cursor() as cur:
        cur.execute(sql, params)
    return item


class PostgresOutboxStore:
    """Outbox store over the ``outbox_events`` table; one pooled connection per call."""

    def __init__(self, pg_pool: PostgresPool):
        self.pg_pool = pg_pool

    def add(self, item: OutboxItem) -> OutboxItem:
        with self.pg_pool.connection() as conn:
            insert_outbox_item(conn, item)
            conn.commit()
        return item

    def get(self, item_id: str):
        with self.pg_pool.connection() as conn:
            return get_item(conn, item_id)

    def claim_batch(self, batch_size: int, now: datetime) -> List[OutboxItem]:
        with self.pg_pool.connection() as conn:
            return claim_batch(conn, batch_size, now)

    def recover_stuck(self, cutoff: datetime, now: datetime) -> int:
        with self.pg_pool.connection() as conn:
            return recover_stuck(conn, cutoff, now)

    def mark_delivered(self, item_id: str, now: datetime) -> None:
        with self.pg_pool.connection() as conn:
            mark_delivered(conn, item_id, now)

    def mark_for_retry(
        self, item_id: str, retry_count: int, next_retry_at: datetime, last_error: str, now: datetime
    ) -> None:
        with self.pg_pool.connection() as conn:
            mark_for_retry(conn, item_id, retry_count, next_retry_at, last_error, now)

    def mark_dead_letter(self, item_id: str, retry_count: int, last_error: str, now: datetime) -> None:
        with self.pg_pool.connection() as conn:
            mark_dead_letter(conn, item_id, retry_count, last_error, now)

    def delete_delivered_before(self, cutoff: datetime) -> int:
        with self.pg_pool.connection() as conn:
            return delete_delivered_before(conn, cutoff)

    def count_by_status(self, day_start: datetime) -> OutboxCounts:
        with self.pg_pool.connection() as conn:
            return count_by_status(conn, day_start)
