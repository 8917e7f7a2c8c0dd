import psycopg2
import structlog
from typing import List, Dict, Optional, Sequence, Tuple
from psycopg2 import extras
from psycopg2.pool import SimpleConnectionPool
from contextlib import contextmanager

from copyright_registry import config
from copyright_registry.models.track import CORPUS_STATUSES, PaymentStatus, TrackStatus

logger = structlog.get_logger()

# Connection pool configuration
MIN_CONNECTIONS = 1
MAX_CONNECTIONS = 20

TRACK_COLUMNS = """
    id, title, artist_id, filename, genre, release_year, description, lyrics,
    collaborators, is_available_for_licensing, license_fee, license_terms,
    duration, fingerprint, status, blockchain_tx, rejection_reason,
    created_at, updated_at
"""

PAYMENT_COLUMNS = """
    id, track_id, artist_id, amount, payment_type, status, control_number,
    amount_paid, paid_at, created_at, updated_at
"""

# Global connection pool
_connection_pool = None

def initialize_connection_pool():
    """Initialize the database connection pool."""
    global _connection_pool
    if _connection_pool is None:
        try:
            _connection_pool = SimpleConnectionPool(
                MIN_CONNECTIONS,
                MAX_CONNECTIONS,
                config.DB_DSN
            )
            logger.info("Database connection pool initialized",
                       min_connections=MIN_CONNECTIONS,
                       max_connections=MAX_CONNECTIONS)
        except Exception as e:
            logger.error("Failed to initialize database connection pool", error=str(e))
            raise

def close_connection_pool():
    """Close all pooled connections."""
    global _connection_pool
    if _connection_pool is not None:
        _connection_pool.closeall()
        _connection_pool = None
        logger.info("Database connection pool closed")

@contextmanager
def get_db_connection():
    """Context manager for pooled database connections with automatic cleanup."""
    if _connection_pool is None:
        initialize_connection_pool()

    conn = None
    try:
        conn = _connection_pool.getconn()
        yield conn
    except Exception as e:
        if conn:
            conn.rollback()
        logger.error("Database operation failed", error=str(e))
        raise
    finally:
        if conn:
            _connection_pool.putconn(conn)

def _fetch_all(sql: str, params: tuple = ()) -> List[Dict]:
    with get_db_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        # End the read transaction before the connection goes back to the pool
        conn.rollback()
    return [dict(row) for row in rows]

def _fetch_one(sql: str, params: tuple = (), commit: bool = False) -> Optional[Dict]:
    with get_db_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(sql, params)
            row = cur.fetchone()
        if commit:
            conn.commit()
        else:
            conn.rollback()
    return dict(row) if row else None

# Track management
def insert_track_with_payment(track: Dict, payment_id: str, amount: int) -> Tuple[Dict, Dict]:
    """
    Insert a new pending track and its initial registration payment.

    Both rows are written in one transaction, so a failed payment insert
    leaves no track behind.

    Returns:
        Tuple of (track row, payment row)
    """
    track_sql = f"""
    INSERT INTO tracks (
        id, title, artist_id, filename, genre, release_year, description, lyrics,
        collaborators, is_available_for_licensing, license_fee, license_terms, status
    )
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING {TRACK_COLUMNS}
    """
    payment_sql = f"""
    INSERT INTO payments (id, track_id, artist_id, amount, payment_type, status)
    VALUES (%s, %s, %s, %s, 'registration', %s)
    RETURNING {PAYMENT_COLUMNS}
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                cur.execute(track_sql, (
                    track["id"], track["title"], track["artist_id"], track["filename"],
                    track["genre"], track["release_year"], track.get("description"),
                    track["lyrics"], track.get("collaborators"),
                    track.get("is_available_for_licensing", False), track.get("license_fee", 0),
                    track.get("license_terms"), TrackStatus.PENDING.value
                ))
                track_row = dict(cur.fetchone())

                cur.execute(payment_sql, (
                    payment_id, track["id"], track["artist_id"], amount, PaymentStatus.INITIAL.value
                ))
                payment_row = dict(cur.fetchone())
            conn.commit()

        logger.info("Track record inserted", track_id=track["id"], title=track["title"],
                   payment_id=payment_id, amount=amount)
        return track_row, payment_row

    except Exception as e:
        logger.error("Failed to insert track", track_id=track.get("id"), error=str(e))
        raise

def get_track(track_id: str) -> Optional[Dict]:
    """Get a track by ID."""
    sql = f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = %s"
    try:
        return _fetch_one(sql, (track_id,))
    except Exception as e:
        logger.error("Failed to get track", track_id=track_id, error=str(e))
        raise

def list_pending_tracks_with_approved_payment() -> List[Dict]:
    """Pending tracks whose registration payment has been approved."""
    sql = f"""
    SELECT {TRACK_COLUMNS}
    FROM tracks t
    WHERE t.status = %s
      AND EXISTS (
          SELECT 1 FROM payments p WHERE p.track_id = t.id AND p.status = %s
      )
    ORDER BY t.created_at
    """
    try:
        return _fetch_all(sql, (TrackStatus.PENDING.value, PaymentStatus.APPROVED.value))
    except Exception as e:
        logger.error("Failed to list pending tracks", error=str(e))
        raise

def list_corpus_tracks() -> List[Dict]:
    """Snapshot of all approved and copyrighted tracks in catalog order."""
    sql = """
    SELECT id, title, fingerprint, lyrics
    FROM tracks
    WHERE status = ANY(%s)
    ORDER BY created_at, id
    """
    try:
        rows = _fetch_all(sql, (list(CORPUS_STATUSES),))
        logger.debug("Corpus loaded", corpus_size=len(rows))
        return rows
    except Exception as e:
        logger.error("Failed to load corpus", error=str(e))
        raise

def update_track_review(track_id: str,
                        status: str,
                        fingerprint: Optional[str] = None,
                        duration: Optional[float] = None,
                        rejection_reason: Optional[str] = None) -> Optional[Dict]:
    """
    Record the review outcome of a pending track.

    The update only applies while the track is still pending, so concurrent
    reviews of the same track persist at most one outcome.

    Returns:
        Updated row, or None if the track was not pending
    """
    sql = f"""
    UPDATE tracks
    SET status = %s, fingerprint = %s, duration = %s, rejection_reason = %s,
        updated_at = NOW()
    WHERE id = %s AND status = %s
    RETURNING {TRACK_COLUMNS}
    """
    try:
        row = _fetch_one(sql, (
            status, fingerprint, duration, rejection_reason,
            track_id, TrackStatus.PENDING.value
        ), commit=True)

        logger.info("Track review recorded", track_id=track_id, status=status, applied=row is not None)
        return row

    except Exception as e:
        logger.error("Failed to record track review", track_id=track_id, status=status, error=str(e))
        raise

def mark_track_copyrighted(track_id: str, blockchain_tx: str) -> Optional[Dict]:
    """Move an approved track to copyrighted. Returns None if it was not approved."""
    sql = f"""
    UPDATE tracks
    SET status = %s, blockchain_tx = %s, updated_at = NOW()
    WHERE id = %s AND status = %s
    RETURNING {TRACK_COLUMNS}
    """
    try:
        row = _fetch_one(sql, (
            TrackStatus.COPYRIGHTED.value, blockchain_tx, track_id, TrackStatus.APPROVED.value
        ), commit=True)

        logger.info("Track copyright recorded", track_id=track_id, blockchain_tx=blockchain_tx,
                   applied=row is not None)
        return row

    except Exception as e:
        logger.error("Failed to record track copyright", track_id=track_id, error=str(e))
        raise

# Payments
def get_payment(payment_id: str) -> Optional[Dict]:
    """Get a payment by ID."""
    sql = f"SELECT {PAYMENT_COLUMNS} FROM payments WHERE id = %s"
    try:
        return _fetch_one(sql, (payment_id,))
    except Exception as e:
        logger.error("Failed to get payment", payment_id=payment_id, error=str(e))
        raise

def update_payment_status(payment_id: str,
                          status: str,
                          from_statuses: Sequence[str],
                          control_number: Optional[str] = None,
                          amount_paid: Optional[int] = None) -> Optional[Dict]:
    """
    Move a payment to a new status if it is currently in one of from_statuses.

    Control number and amount paid are only overwritten when given; paid_at
    is stamped when an amount paid is recorded.

    Returns:
        Updated row, or None if the payment was not in an allowed status
    """
    sql = f"""
    UPDATE payments
    SET status = %s,
        control_number = COALESCE(%s, control_number),
        amount_paid = COALESCE(%s, amount_paid),
        paid_at = CASE WHEN %s IS NULL THEN paid_at ELSE NOW() END,
        updated_at = NOW()
    WHERE id = %s AND status = ANY(%s)
    RETURNING {PAYMENT_COLUMNS}
    """
    try:
        row = _fetch_one(sql, (
            status, control_number, amount_paid, amount_paid, payment_id, list(from_statuses)
        ), commit=True)

        logger.info("Payment status recorded", payment_id=payment_id, status=status, applied=row is not None)
        return row

    except Exception as e:
        logger.error("Failed to update payment status", payment_id=payment_id, status=status, error=str(e))
        raise

def has_approved_payment(track_id: str) -> bool:
    """Check whether a track has an approved payment."""
    sql = "SELECT 1 FROM payments WHERE track_id = %s AND status = %s LIMIT 1"
    try:
        return _fetch_one(sql, (track_id, PaymentStatus.APPROVED.value)) is not None
    except Exception as e:
        logger.error("Failed to check payment", track_id=track_id, error=str(e))
        raise

# System settings
def get_all_settings() -> List[Dict]:
    sql = "SELECT key, value, description, type FROM system_settings ORDER BY key"
    try:
        return _fetch_all(sql)
    except Exception as e:
        logger.error("Failed to list system settings", error=str(e))
        raise

def get_setting(key: str) -> Optional[Dict]:
    sql = "SELECT key, value, description, type FROM system_settings WHERE key = %s"
    try:
        return _fetch_one(sql, (key,))
    except Exception as e:
        logger.error("Failed to get system setting", key=key, error=str(e))
        raise

def update_setting(key: str, value: str) -> Optional[Dict]:
    sql = """
    UPDATE system_settings SET value = %s
    WHERE key = %s
    RETURNING key, value, description, type
    """
    try:
        row = _fetch_one(sql, (value, key), commit=True)
        logger.info("System setting updated", key=key, applied=row is not None)
        return row
    except Exception as e:
        logger.error("Failed to update system setting", key=key, error=str(e))
        raise

def upsert_default_setting(key: str, value: str, description: str, setting_type: str) -> None:
    """Insert a default setting, or fill in its value if the stored one is empty."""
    sql = """
    INSERT INTO system_settings (key, value, description, type)
    VALUES (%s, %s, %s, %s)
    ON CONFLICT (key) DO UPDATE
        SET value = EXCLUDED.value
        WHERE system_settings.value = '' AND EXCLUDED.value <> ''
    """
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql, (key, value, description, setting_type))
            conn.commit()
    except Exception as e:
        logger.error("Failed to seed system setting", key=key, error=str(e))
        raise

def check_database_connection() -> bool:
    """Check if database connection is working."""
    try:
        with get_db_connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                healthy = cur.fetchone() is not None
            conn.rollback()
            return healthy
    except psycopg2.Error as e:
        logger.error("Database connection check failed", error=str(e))
        return False
