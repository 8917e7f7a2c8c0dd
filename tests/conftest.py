import copy
from datetime import datetime, timedelta

import pytest

from copyright_registry.core.settings import DEFAULT_SETTINGS, SettingsStore
from copyright_registry.models.track import FingerprintResult
from copyright_registry.services.duplicate_detection import DuplicateDetectionEngine
from copyright_registry.services.fingerprint import Fingerprinter
from copyright_registry.services.review import TrackReviewWorkflow


class StubFingerprinter(Fingerprinter):
    """Returns a fixed result and records the paths it was asked about."""

    def __init__(self, result):
        self.result = result
        self.calls = []

    def fingerprint(self, audio_path):
        self.calls.append(audio_path)
        return self.result


class FakeStore:
    """In-memory stand-in for copyright_registry.core.database."""

    def __init__(self):
        self.tracks = {}
        self.payments = []
        self.settings = {}
        self.payment_insert_error = None
        self._clock = datetime(2024, 1, 1)

    def _tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock

    def add_track(self, track_id, status="pending", fingerprint=None, lyrics="some lyrics",
                  title=None, filename=None, payment_status="approved"):
        now = self._tick()
        self.tracks[track_id] = {
            "id": track_id,
            "title": title or f"Track {track_id}",
            "artist_id": "artist-1",
            "filename": filename or f"{track_id}.mp3",
            "genre": "Bongo Flava",
            "release_year": "2024",
            "description": None,
            "lyrics": lyrics,
            "collaborators": None,
            "is_available_for_licensing": False,
            "license_fee": 0,
            "license_terms": None,
            "duration": 180.0 if fingerprint else None,
            "fingerprint": fingerprint,
            "status": status,
            "blockchain_tx": None,
            "rejection_reason": None,
            "created_at": now,
            "updated_at": now,
        }
        if payment_status:
            self.payments.append(self._payment_row(f"pay-{track_id}", track_id, status=payment_status))
        return self.tracks[track_id]

    def _payment_row(self, payment_id, track_id, artist_id="artist-1", amount=50000, status="initial"):
        now = self._tick()
        return {"id": payment_id, "track_id": track_id, "artist_id": artist_id, "amount": amount,
                "payment_type": "registration", "status": status, "control_number": None,
                "amount_paid": None, "paid_at": None, "created_at": now, "updated_at": now}

    def insert_track_with_payment(self, track, payment_id, amount):
        if self.payment_insert_error:
            # Nothing is written, as with a rolled back transaction
            raise self.payment_insert_error
        now = self._tick()
        row = {
            "duration": None, "fingerprint": None, "status": "pending", "blockchain_tx": None,
            "rejection_reason": None, "created_at": now, "updated_at": now,
        }
        row.update(track)
        payment = self._payment_row(payment_id, row["id"], row["artist_id"], amount)
        self.tracks[row["id"]] = row
        self.payments.append(payment)
        return copy.deepcopy(row), dict(payment)

    def get_track(self, track_id):
        row = self.tracks.get(track_id)
        return copy.deepcopy(row) if row else None

    def list_pending_tracks_with_approved_payment(self):
        approved = {p["track_id"] for p in self.payments if p["status"] == "approved"}
        return [copy.deepcopy(t) for t in self.tracks.values()
                if t["status"] == "pending" and t["id"] in approved]

    def list_corpus_tracks(self):
        rows = [t for t in self.tracks.values() if t["status"] in ("approved", "copyrighted")]
        rows.sort(key=lambda t: t["created_at"])
        return [{"id": t["id"], "title": t["title"], "fingerprint": t["fingerprint"], "lyrics": t["lyrics"]}
                for t in rows]

    def update_track_review(self, track_id, status, fingerprint=None, duration=None, rejection_reason=None):
        row = self.tracks.get(track_id)
        if row is None or row["status"] != "pending":
            return None
        row.update(status=status, fingerprint=fingerprint, duration=duration,
                   rejection_reason=rejection_reason, updated_at=self._tick())
        return copy.deepcopy(row)

    def mark_track_copyrighted(self, track_id, blockchain_tx):
        row = self.tracks.get(track_id)
        if row is None or row["status"] != "approved":
            return None
        row.update(status="copyrighted", blockchain_tx=blockchain_tx, updated_at=self._tick())
        return copy.deepcopy(row)

    def has_approved_payment(self, track_id):
        return any(p["track_id"] == track_id and p["status"] == "approved" for p in self.payments)

    def get_payment(self, payment_id):
        for payment in self.payments:
            if payment["id"] == payment_id:
                return dict(payment)
        return None

    def update_payment_status(self, payment_id, status, from_statuses, control_number=None, amount_paid=None):
        for payment in self.payments:
            if payment["id"] == payment_id and payment["status"] in from_statuses:
                payment["status"] = status
                if control_number is not None:
                    payment["control_number"] = control_number
                if amount_paid is not None:
                    payment["amount_paid"] = amount_paid
                    payment["paid_at"] = self._tick()
                payment["updated_at"] = self._tick()
                return dict(payment)
        return None

    def get_all_settings(self):
        return [dict(self.settings[key]) for key in sorted(self.settings)]

    def get_setting(self, key):
        row = self.settings.get(key)
        return dict(row) if row else None

    def update_setting(self, key, value):
        if key not in self.settings:
            return None
        self.settings[key]["value"] = value
        return dict(self.settings[key])

    def upsert_default_setting(self, key, value, description, setting_type):
        existing = self.settings.get(key)
        if existing is None:
            self.settings[key] = {"key": key, "value": value, "description": description, "type": setting_type}
        elif existing["value"] == "" and value:
            existing["value"] = value

    def check_database_connection(self):
        return True


@pytest.fixture
def store():
    store = FakeStore()
    for default in DEFAULT_SETTINGS:
        store.upsert_default_setting(default.key, default.value, default.description, default.type.value)
    return store


@pytest.fixture
def settings_store(store):
    return SettingsStore(store)


@pytest.fixture
def make_fingerprinter():
    def _make(digest="a" * 40, duration=215.5, success=True, message="ok"):
        return StubFingerprinter(FingerprintResult(
            digest=digest, duration=duration, success=success, message=message
        ))
    return _make


@pytest.fixture
def make_workflow(store, settings_store, make_fingerprinter, tmp_path):
    def _make(fingerprinter=None):
        fingerprinter = fingerprinter or make_fingerprinter()
        engine = DuplicateDetectionEngine(fingerprinter)
        return TrackReviewWorkflow(store, engine, settings_store, tracks_dir=str(tmp_path))
    return _make
