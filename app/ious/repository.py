# app/ious/repository.py
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterator, Optional

import psycopg2
from psycopg2 import errors as pg_errors

from app.ious.errors import DuplicateIOUError, IOUError, StorageError, ValidationError
from app.ious.model import IOU, STATUSES, SYNCED
from app.ious.state_machine import assert_settled_invariant, assert_transition
from app.ious.store import check_update_fields, prepare_new_iou
from db import dict_cursor, get_conn

_COLUMNS = """
  id, beneficiary, merchant, amount, signature, nonce, client_timestamp,
  status, created_at, synced_at, settled_at, tx_hash, attempt_count, last_error,
  settling_until
"""


def _row_to_iou(row: dict[str, Any]) -> IOU:
    return IOU(
        id=int(row["id"]),
        beneficiary=row["beneficiary"],
        merchant=row["merchant"],
        amount=Decimal(row["amount"]),
        signature=row["signature"],
        nonce=int(row["nonce"]) if row["nonce"] is not None else None,
        timestamp=row["client_timestamp"],
        status=row["status"],
        created_at=row["created_at"],
        synced_at=row["synced_at"],
        settled_at=row["settled_at"],
        tx_hash=row["tx_hash"],
        attempt_count=int(row["attempt_count"] or 0),
        last_error=row["last_error"],
        settling_until=row["settling_until"],
    )


@contextmanager
def _cursor() -> Iterator[Any]:
    """
    Transactional RealDictCursor; psycopg2 faults surface as StorageError.
    """
    try:
        with get_conn() as conn:
            with dict_cursor(conn) as cur:
                yield cur
    except IOUError:
        raise
    except pg_errors.UniqueViolation as exc:
        raise DuplicateIOUError("nonce already used by this beneficiary") from exc
    except psycopg2.Error as exc:
        raise StorageError(f"IOU storage failure: {exc.__class__.__name__}") from exc


class PostgresIOUStore:
    """
    IOU store backed by offline.ious (see alembic/versions/0001_create_offline_ious.py).

    Status writes are conditional UPDATEs on (id, status), so two concurrent
    transitions of the same IOU serialize on the row lock and the loser
    matches zero rows.
    """

    def create(
        self,
        *,
        beneficiary: Any,
        merchant: Any,
        amount: Any,
        signature: Any,
        timestamp: Optional[datetime] = None,
        nonce: Any = None,
    ) -> IOU:
        values = prepare_new_iou(
            beneficiary=beneficiary,
            merchant=merchant,
            amount=amount,
            signature=signature,
            timestamp=timestamp,
            nonce=nonce,
        )
        with _cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO offline.ious (
                  beneficiary, merchant, amount, signature, nonce,
                  client_timestamp, status, created_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
                """,
                (
                    values["beneficiary"],
                    values["merchant"],
                    values["amount"],
                    values["signature"],
                    values["nonce"],
                    values["timestamp"],
                    values["status"],
                    values["created_at"],
                ),
            )
            return _row_to_iou(cur.fetchone())

    def get(self, iou_id: int) -> Optional[IOU]:
        with _cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM offline.ious WHERE id = %s", (iou_id,))
            row = cur.fetchone()
        return _row_to_iou(row) if row else None

    def list_by_merchant(self, merchant: str) -> list[IOU]:
        with _cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM offline.ious WHERE lower(merchant) = lower(%s) ORDER BY id",
                ((merchant or "").strip(),),
            )
            rows = cur.fetchall()
        return [_row_to_iou(r) for r in rows]

    def list_all(self) -> list[IOU]:
        with _cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM offline.ious ORDER BY id")
            rows = cur.fetchall()
        return [_row_to_iou(r) for r in rows]

    def list_by_status(self, status: str, *, limit: Optional[int] = None) -> list[IOU]:
        if status not in STATUSES:
            raise ValidationError(f"Unknown IOU status: {status}")
        with _cursor() as cur:
            cur.execute(
                f"SELECT {_COLUMNS} FROM offline.ious WHERE status = %s ORDER BY id LIMIT %s",
                (status, limit),
            )
            rows = cur.fetchall()
        return [_row_to_iou(r) for r in rows]

    def update_status(
        self,
        iou_id: int,
        *,
        from_status: str,
        new_status: str,
        allow_release: bool = False,
        **fields: Any,
    ) -> Optional[IOU]:
        assert_transition(from_status, new_status, allow_release=allow_release)
        assert_settled_invariant(new_status, fields.get("tx_hash"))
        check_update_fields(fields)

        # column names come from UPDATABLE_FIELDS only
        assignments = ["status = %s"] + [f"{name} = %s" for name in fields]
        params = [new_status, *fields.values(), iou_id, from_status]

        with _cursor() as cur:
            cur.execute(
                f"""
                UPDATE offline.ious
                SET {", ".join(assignments)}
                WHERE id = %s
                  AND status = %s
                RETURNING {_COLUMNS}
                """,
                tuple(params),
            )
            row = cur.fetchone()
        return _row_to_iou(row) if row else None

    def claim(self, iou_id: int, *, until: datetime, now: Optional[datetime] = None) -> Optional[IOU]:
        with _cursor() as cur:
            cur.execute(
                f"""
                UPDATE offline.ious
                SET settling_until = %s
                WHERE id = %s
                  AND status = %s
                  AND (settling_until IS NULL OR settling_until <= COALESCE(%s, now()))
                RETURNING {_COLUMNS}
                """,
                (until, iou_id, SYNCED, now),
            )
            row = cur.fetchone()
        return _row_to_iou(row) if row else None

    def record_attempt(self, iou_id: int, *, error: Optional[str]) -> Optional[IOU]:
        with _cursor() as cur:
            cur.execute(
                f"""
                UPDATE offline.ious
                SET attempt_count = attempt_count + 1,
                    last_error = %s,
                    settling_until = NULL
                WHERE id = %s
                RETURNING {_COLUMNS}
                """,
                (error, iou_id),
            )
            row = cur.fetchone()
        return _row_to_iou(row) if row else None

    def delete(self, iou_id: int) -> bool:
        with _cursor() as cur:
            cur.execute("DELETE FROM offline.ious WHERE id = %s", (iou_id,))
            return cur.rowcount == 1

    def purge(self) -> int:
        with _cursor() as cur:
            cur.execute("DELETE FROM offline.ious")
            return cur.rowcount
