from datetime import datetime
from typing import List, Optional, Tuple

from psycopg2.extras import Json

from rental_outbox.adapters.postgres.db import PostgresPool, execute, fetch_all, fetch_one
from rental_outbox.domain.models.notifications import Notification

NOTIFICATION_COLUMNS = (
    "id, recipient_id, kind, title, message, payload, reference_id, is_read, read_at, created_at"
)


def insert_or_get(conn, notification: Notification) -> Tuple[Notification, bool]:
    """Insert unless (recipient_id, kind, reference_id) exists; return the stored row and whether it is new."""
    sql = f"""
    INSERT INTO notifications (
        id, recipient_id, kind, title, message, payload, reference_id, is_read, created_at
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, FALSE, %s)
    ON CONFLICT (recipient_id, kind, reference_id) DO NOTHING
    RETURNING {NOTIFICATION_COLUMNS};
    """
    params = (
        notification.id,
        notification.recipient_id,
        notification.kind.value,
        notification.title,
        notification.message,
        Json(notification.payload) if notification.payload is not None else None,
        notification.reference_id,
        notification.created_at,
    )
    with conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
    conn.commit()
    if row is not None:
        return Notification.from_row(row), True

    existing = get_by_key(conn, *notification.unique_key)
    if existing is None:
        raise RuntimeError("notification conflict reported but existing row not found")
    return existing, False


def get_by_key(conn, recipient_id: str, kind: str, reference_id: str) -> Optional[Notification]:
    sql = f"""
    SELECT {NOTIFICATION_COLUMNS}
    FROM notifications
    WHERE recipient_id = %s AND kind = %s AND reference_id = %s;
    """
    row = fetch_one(conn, sql, (recipient_id, kind, reference_id))
    return Notification.from_row(row) if row else None


def list_for_recipient(
    conn, recipient_id: str, include_read: bool = True, page: int = 1, page_size: int = 20
) -> List[Notification]:
    """Newest first; ``page`` is 1-based."""
    unread_clause = "" if include_read else " AND is_read = FALSE"
    sql = f"""
    SELECT {NOTIFICATION_COLUMNS}
    FROM notifications
    WHERE recipient_id = %s{unread_clause}
    ORDER BY created_at DESC, id DESC
    LIMIT %s OFFSET %s;
    """
    rows = fetch_all(conn, sql, (recipient_id, page_size, (page - 1) * page_size))
    return [Notification.from_row(row) for row in rows]


def mark_as_read(conn, notification_id: str, recipient_id: str, now: datetime) -> Optional[Notification]:
    sql = f"""
    UPDATE notifications
    SET is_read = TRUE, read_at = COALESCE(read_at, %s)
    WHERE id = %s AND recipient_id = %s
    RETURNING {NOTIFICATION_COLUMNS};
    """
    with conn.cursor() as cur:
        cur.execute(sql, (now, notification_id, recipient_id))
        row = cur.fetchone()
    conn.commit()
    return Notification.from_row(row) if row else None


def mark_all_as_read(conn, recipient_id: str, now: datetime) -> int:
    sql = """
    UPDATE notifications
    SET is_read = TRUE, read_at = %s
    WHERE recipient_id = %s AND is_read = FALSE;
    """
    return execute(conn, sql, (now, recipient_id))


def count_unread(conn, recipient_id: str) -> int:
    row = fetch_one(
        conn,
        "SELECT COUNT(*) AS unread FROM notifications WHERE recipient_id = %s AND is_read = FALSE;",
        (recipient_id,),
    )
    return int(row["unread"]) if row else 0


class PostgresNotificationStore:
    def __init__(self, pg_pool: PostgresPool):
        self.pg_pool = pg_pool

    def insert_or_get(self, notification: Notification) -> Tuple[Notification, bool]:
        with self.pg_pool.connection() as conn:
            return insert_or_get(conn, notification)

    def get_by_key(self, recipient_id: str, kind: str, reference_id: str) -> Optional[Notification]:
        with self.pg_pool.connection() as conn:
            return get_by_key(conn, recipient_id, kind, reference_id)

    def list_for_recipient(
        self, recipient_id: str, include_read: bool = True, page: int = 1, page_size: int = 20
    ) -> List[Notification]:
        with self.pg_pool.connection() as conn:
            return list_for_recipient(conn, recipient_id, include_read, page, page_size)

    def mark_as_read(self, notification_id: str, recipient_id: str, now: datetime) -> Optional[Notification]:
        with self.pg_pool.connection() as conn:
            return mark_as_read(conn, notification_id, recipient_id, now)

    def mark_all_as_read(self, recipient_id: str, now: datetime) -> int:
        with self.pg_pool.connection() as conn:
            return mark_all_as_read(conn, recipient_id, now)

    def count_unread(self, recipient_id: str) -> int:
        with self.pg_pool.connection() as conn:
            return count_unread(conn, recipient_id)
