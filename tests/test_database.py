import pytest

from copyright_registry.core import database


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.conn.executed.append(sql)
        if self.conn.fail_on and self.conn.fail_on in sql:
            raise RuntimeError("insert failed")

    def fetchone(self):
        return self.conn.rows.pop(0) if self.conn.rows else None

    def fetchall(self):
        rows, self.conn.rows = self.conn.rows, []
        return rows


class FakeConnection:
    def __init__(self, rows=None, fail_on=None):
        self.rows = list(rows or [])
        self.fail_on = fail_on
        self.executed = []
        self.calls = []

    def cursor(self, cursor_factory=None):
        return FakeCursor(self)

    def commit(self):
        self.calls.append("commit")

    def rollback(self):
        self.calls.append("rollback")


class FakePool:
    def __init__(self, conn):
        self.conn = conn
        self.returned = []

    def getconn(self):
        return self.conn

    def putconn(self, conn):
        # Record how the connection's transaction was left when it came back
        self.returned.append(list(conn.calls))


@pytest.fixture
def use_connection(monkeypatch):
    def _use(conn):
        pool = FakePool(conn)
        monkeypatch.setattr(database, "_connection_pool", pool)
        return pool
    return _use


def test_read_queries_end_their_transaction(use_connection):
    conn = FakeConnection(rows=[{"key": "A", "value": "1", "description": None, "type": "number"}])
    pool = use_connection(conn)

    assert database.get_setting("A")["value"] == "1"
    assert pool.returned == [["rollback"]]


def test_list_queries_end_their_transaction(use_connection):
    conn = FakeConnection(rows=[{"id": "t1", "title": "T", "fingerprint": "ab", "lyrics": "x"}])
    pool = use_connection(conn)

    assert len(database.list_corpus_tracks()) == 1
    assert pool.returned == [["rollback"]]


def test_writes_commit(use_connection):
    conn = FakeConnection(rows=[{"key": "A", "value": "2", "description": None, "type": "number"}])
    pool = use_connection(conn)

    database.update_setting("A", "2")

    assert pool.returned == [["commit"]]


def test_connection_check_ends_its_transaction(use_connection):
    conn = FakeConnection(rows=[(1,)])
    pool = use_connection(conn)

    assert database.check_database_connection() is True
    assert pool.returned == [["rollback"]]


TRACK = {
    "id": "t1", "title": "Moyo", "artist_id": "artist-9", "filename": "f.mp3",
    "genre": "Taarab", "release_year": "2023", "lyrics": "moyo wangu",
}


def test_track_and_payment_are_inserted_in_one_transaction(use_connection):
    conn = FakeConnection(rows=[{"id": "t1"}, {"id": "p1", "track_id": "t1"}])
    pool = use_connection(conn)

    track_row, payment_row = database.insert_track_with_payment(TRACK, "p1", 50000)

    assert track_row["id"] == "t1"
    assert payment_row["track_id"] == "t1"
    assert len(conn.executed) == 2
    assert pool.returned == [["commit"]]


def test_failed_payment_insert_rolls_back_track(use_connection):
    conn = FakeConnection(rows=[{"id": "t1"}], fail_on="INSERT INTO payments")
    pool = use_connection(conn)

    with pytest.raises(RuntimeError):
        database.insert_track_with_payment(TRACK, "p1", 50000)

    assert pool.returned == [["rollback"]]
