import json
from contextlib import closing, contextmanager
from datetime import datetime
from importlib.util import find_spec
from typing import Iterator, Optional

from src.core.negotiation.errors import ProposalPersistenceError
from src.core.negotiation.models import (
    MessageAttachment,
    NotificationRecord,
    NotificationType,
    PartyRole,
    ProposalMessageRecord,
    ProposalRecord,
    ProposalSort,
    ProposalStatus,
)
from src.infrastructure.postgres_migrations import apply_postgres_migrations

_PROPOSAL_COLUMNS = """
    proposal_id,
    sponsor_id,
    creator_id,
    content_id,
    subject,
    message,
    budget_range,
    timeline,
    status,
    responded_at,
    response_message,
    created_at,
    updated_at,
    removed_at,
    version
"""

_MESSAGE_COLUMNS = """
    message_id,
    proposal_id,
    sender_id,
    content,
    attachment_json,
    is_read,
    created_at
"""

_NOTIFICATION_COLUMNS = """
    notification_id,
    user_id,
    notification_type,
    title,
    content,
    proposal_id,
    content_id,
    is_read,
    read_at,
    created_at
"""

_SORT_SQL: dict[str, str] = {
    "newest": "ORDER BY created_at DESC, proposal_id DESC",
    "oldest": "ORDER BY created_at ASC, proposal_id ASC",
    "updated": "ORDER BY updated_at DESC, proposal_id DESC",
}


class PostgresNegotiationRepository:
    def __init__(self, *, dsn: str) -> None:
        if not dsn:
            raise RuntimeError("NEGOTIATION_POSTGRES_DSN_REQUIRED")
        if find_spec("psycopg") is None:
            raise RuntimeError("NEGOTIATION_POSTGRES_DRIVER_MISSING")
        self._dsn = dsn
        self._init_db()

    def create_proposal(self, proposal: ProposalRecord) -> None:
        query = f"""
            INSERT INTO proposal_records ({_PROPOSAL_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        """
        with self._connection() as connection:
            connection.execute(query, _proposal_args(proposal))
            connection.commit()

    def get_proposal(self, *, proposal_id: str) -> Optional[ProposalRecord]:
        query = f"""
            SELECT {_PROPOSAL_COLUMNS}
            FROM proposal_records
            WHERE proposal_id = %s
        """
        with self._connection() as connection:
            row = connection.execute(query, (proposal_id,)).fetchone()
        return _to_proposal(row)

    def compare_and_set_proposal(
        self, *, proposal: ProposalRecord, expected_version: int
    ) -> bool:
        query = """
            UPDATE proposal_records SET
                subject = %s,
                message = %s,
                budget_range = %s,
                timeline = %s,
                status = %s,
                responded_at = %s,
                response_message = %s,
                updated_at = %s,
                removed_at = %s,
                version = %s
            WHERE proposal_id = %s AND version = %s AND removed_at IS NULL
        """
        with self._connection() as connection:
            cursor = connection.execute(
                query,
                (
                    proposal.subject,
                    proposal.message,
                    proposal.budget_range,
                    proposal.timeline,
                    proposal.status,
                    _optional_iso(proposal.responded_at),
                    proposal.response_message,
                    proposal.updated_at.isoformat(),
                    _optional_iso(proposal.removed_at),
                    proposal.version,
                    proposal.proposal_id,
                    expected_version,
                ),
            )
            connection.commit()
        return cursor.rowcount == 1

    def list_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
        sort: ProposalSort,
        limit: Optional[int],
        offset: int,
    ) -> list[ProposalRecord]:
        where_sql, args = _proposal_filters(
            user_id=user_id, role=role, status=status, search=search
        )
        page_sql = "OFFSET %s" if limit is None else "LIMIT %s OFFSET %s"
        page_args: list[object] = [offset] if limit is None else [limit, offset]
        query = f"""
            SELECT {_PROPOSAL_COLUMNS}
            FROM proposal_records
            {where_sql}
            {_SORT_SQL.get(sort, _SORT_SQL["newest"])}
            {page_sql}
        """
        with self._connection() as connection:
            rows = connection.execute(query, tuple(args + page_args)).fetchall()
        return [proposal for proposal in (_to_proposal(row) for row in rows) if proposal]

    def count_proposals(
        self,
        *,
        user_id: str,
        role: PartyRole,
        status: Optional[ProposalStatus],
        search: Optional[str],
    ) -> int:
        where_sql, args = _proposal_filters(
            user_id=user_id, role=role, status=status, search=search
        )
        query = f"SELECT COUNT(*) AS total FROM proposal_records {where_sql}"
        with self._connection() as connection:
            row = connection.execute(query, tuple(args)).fetchone()
        return int(row["total"]) if row is not None else 0

    def create_message(self, message: ProposalMessageRecord) -> None:
        query = f"""
            INSERT INTO proposal_messages ({_MESSAGE_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s)
        """
        attachment_json = (
            _json_dump(message.attachment.model_dump(mode="json"))
            if message.attachment is not None
            else None
        )
        with self._connection() as connection:
            connection.execute(
                query,
                (
                    message.message_id,
                    message.proposal_id,
                    message.sender_id,
                    message.content,
                    attachment_json,
                    message.is_read,
                    message.created_at.isoformat(),
                ),
            )
            connection.commit()

    def list_messages(
        self, *, proposal_id: str, limit: int, offset: int
    ) -> list[ProposalMessageRecord]:
        query = f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM proposal_messages
            WHERE proposal_id = %s
            ORDER BY created_at DESC, message_id DESC
            LIMIT %s OFFSET %s
        """
        with self._connection() as connection:
            rows = connection.execute(query, (proposal_id, limit, offset)).fetchall()
        return [_to_message(row) for row in rows]

    def count_messages(self, *, proposal_id: str) -> int:
        query = "SELECT COUNT(*) AS total FROM proposal_messages WHERE proposal_id = %s"
        with self._connection() as connection:
            row = connection.execute(query, (proposal_id,)).fetchone()
        return int(row["total"]) if row is not None else 0

    def count_unread_messages(self, *, proposal_id: str, viewer_id: str) -> int:
        query = """
            SELECT COUNT(*) AS total
            FROM proposal_messages
            WHERE proposal_id = %s AND sender_id <> %s AND is_read = FALSE
        """
        with self._connection() as connection:
            row = connection.execute(query, (proposal_id, viewer_id)).fetchone()
        return int(row["total"]) if row is not None else 0

    def count_unread_messages_by_proposal(
        self, *, proposal_ids: list[str], viewer_id: str
    ) -> dict[str, int]:
        if not proposal_ids:
            return {}
        query = """
            SELECT proposal_id, COUNT(*) AS total
            FROM proposal_messages
            WHERE proposal_id = ANY(%s) AND sender_id <> %s AND is_read = FALSE
            GROUP BY proposal_id
        """
        with self._connection() as connection:
            rows = connection.execute(query, (list(proposal_ids), viewer_id)).fetchall()
        return {str(row["proposal_id"]): int(row["total"]) for row in rows}

    def mark_messages_read(self, *, proposal_id: str, viewer_id: str) -> int:
        query = """
            UPDATE proposal_messages SET is_read = TRUE
            WHERE proposal_id = %s AND sender_id <> %s AND is_read = FALSE
        """
        with self._connection() as connection:
            cursor = connection.execute(query, (proposal_id, viewer_id))
            connection.commit()
        return max(cursor.rowcount, 0)

    def create_notification(self, notification: NotificationRecord) -> None:
        query = f"""
            INSERT INTO proposal_notifications ({_NOTIFICATION_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (notification_id) DO NOTHING
        """
        with self._connection() as connection:
            connection.execute(
                query,
                (
                    notification.notification_id,
                    notification.user_id,
                    notification.type,
                    notification.title,
                    notification.content,
                    notification.proposal_id,
                    notification.content_id,
                    notification.is_read,
                    _optional_iso(notification.read_at),
                    notification.created_at.isoformat(),
                ),
            )
            connection.commit()

    def get_notification(self, *, notification_id: str) -> Optional[NotificationRecord]:
        query = f"""
            SELECT {_NOTIFICATION_COLUMNS}
            FROM proposal_notifications
            WHERE notification_id = %s
        """
        with self._connection() as connection:
            row = connection.execute(query, (notification_id,)).fetchone()
        return _to_notification(row)

    def mark_notification_read(
        self, *, notification_id: str, read_at: datetime
    ) -> Optional[NotificationRecord]:
        query = """
            UPDATE proposal_notifications SET is_read = TRUE, read_at = %s
            WHERE notification_id = %s AND is_read = FALSE
        """
        with self._connection() as connection:
            connection.execute(query, (read_at.isoformat(), notification_id))
            connection.commit()
        return self.get_notification(notification_id=notification_id)

    def list_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
        limit: int,
        offset: int,
    ) -> list[NotificationRecord]:
        where_sql, args = _notification_filters(
            user_id=user_id, notification_type=notification_type, is_read=is_read
        )
        query = f"""
            SELECT {_NOTIFICATION_COLUMNS}
            FROM proposal_notifications
            {where_sql}
            ORDER BY created_at DESC, notification_id DESC
            LIMIT %s OFFSET %s
        """
        with self._connection() as connection:
            rows = connection.execute(query, tuple(args + [limit, offset])).fetchall()
        return [notification for notification in map(_to_notification, rows) if notification]

    def count_notifications(
        self,
        *,
        user_id: str,
        notification_type: Optional[NotificationType],
        is_read: Optional[bool],
    ) -> int:
        where_sql, args = _notification_filters(
            user_id=user_id, notification_type=notification_type, is_read=is_read
        )
        query = f"SELECT COUNT(*) AS total FROM proposal_notifications {where_sql}"
        with self._connection() as connection:
            row = connection.execute(query, tuple(args)).fetchone()
        return int(row["total"]) if row is not None else 0

    @contextmanager
    def _connection(self) -> Iterator:
        try:
            with closing(self._connect()) as connection:
                yield connection
        except _driver_error_types() as exc:
            raise ProposalPersistenceError(str(exc) or type(exc).__name__) from exc

    def _connect(self):
        psycopg, dict_row = _import_psycopg()
        return psycopg.connect(self._dsn, row_factory=dict_row)

    def _init_db(self) -> None:
        with closing(self._connect()) as connection:
            apply_postgres_migrations(connection=connection, namespace="negotiation")


def _import_psycopg():
    import psycopg
    from psycopg.rows import dict_row

    return psycopg, dict_row


def _driver_error_types() -> tuple[type[BaseException], ...]:
    try:
        import psycopg
    except ImportError:
        return (ConnectionError,)
    return (psycopg.Error, ConnectionError)


def _proposal_filters(
    *,
    user_id: str,
    role: PartyRole,
    status: Optional[ProposalStatus],
    search: Optional[str],
) -> tuple[str, list[object]]:
    party_column = "sponsor_id" if role == "SPONSOR" else "creator_id"
    where_clauses = [f"{party_column} = %s", "removed_at IS NULL"]
    args: list[object] = [user_id]
    if status is not None:
        where_clauses.append("status = %s")
        args.append(status)
    if search:
        pattern = f"%{_escape_like(search.lower())}%"
        where_clauses.append("(LOWER(subject) LIKE %s OR LOWER(message) LIKE %s)")
        args.extend([pattern, pattern])
    return f"WHERE {' AND '.join(where_clauses)}", args


def _notification_filters(
    *,
    user_id: str,
    notification_type: Optional[NotificationType],
    is_read: Optional[bool],
) -> tuple[str, list[object]]:
    where_clauses = ["user_id = %s"]
    args: list[object] = [user_id]
    if notification_type is not None:
        where_clauses.append("notification_type = %s")
        args.append(notification_type)
    if is_read is not None:
        where_clauses.append("is_read = %s")
        args.append(is_read)
    return f"WHERE {' AND '.join(where_clauses)}", args


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _proposal_args(proposal: ProposalRecord) -> tuple:
    return (
        proposal.proposal_id,
        proposal.sponsor_id,
        proposal.creator_id,
        proposal.content_id,
        proposal.subject,
        proposal.message,
        proposal.budget_range,
        proposal.timeline,
        proposal.status,
        _optional_iso(proposal.responded_at),
        proposal.response_message,
        proposal.created_at.isoformat(),
        proposal.updated_at.isoformat(),
        _optional_iso(proposal.removed_at),
        proposal.version,
    )


def _optional_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _json_dump(value: dict) -> str:
    return json.dumps(value, separators=(",", ":"), sort_keys=True)


def _to_proposal(row) -> Optional[ProposalRecord]:
    if row is None:
        return None
    return ProposalRecord(
        proposal_id=row["proposal_id"],
        sponsor_id=row["sponsor_id"],
        creator_id=row["creator_id"],
        content_id=row["content_id"],
        subject=row["subject"],
        message=row["message"],
        budget_range=row["budget_range"],
        timeline=row["timeline"],
        status=row["status"],
        responded_at=_optional_datetime(row["responded_at"]),
        response_message=row["response_message"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        removed_at=_optional_datetime(row["removed_at"]),
        version=int(row["version"]),
    )


def _to_message(row) -> ProposalMessageRecord:
    attachment_json = row["attachment_json"]
    return ProposalMessageRecord(
        message_id=row["message_id"],
        proposal_id=row["proposal_id"],
        sender_id=row["sender_id"],
        content=row["content"],
        attachment=(
            MessageAttachment(**json.loads(attachment_json)) if attachment_json else None
        ),
        is_read=bool(row["is_read"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _to_notification(row) -> Optional[NotificationRecord]:
    if row is None:
        return None
    return NotificationRecord(
        notification_id=row["notification_id"],
        user_id=row["user_id"],
        type=row["notification_type"],
        title=row["title"],
        content=row["content"],
        proposal_id=row["proposal_id"],
        content_id=row["content_id"],
        is_read=bool(row["is_read"]),
        read_at=_optional_datetime(row["read_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
