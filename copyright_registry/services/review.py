import structlog
from typing import Any, BinaryIO, Dict, List, NamedTuple, Optional

from copyright_registry.core.settings import COPYRIGHT_PAYMENT_AMOUNT, SettingsStore
from copyright_registry.core.utils import new_id, remove_file, resolve_track_path, store_track_file
from copyright_registry.models.similarity import (
    ProgressStep, RejectedAudioTooSimilar, RejectedFingerprintingFailed,
    RejectedLyricsTooSimilar, StepStatus, Verdict
)
from copyright_registry.models.track import Candidate, CorpusEntry, Payment, Track, TrackStatus, TrackSubmission
from copyright_registry.services.duplicate_detection import DuplicateDetectionEngine

logger = structlog.get_logger()

class ReviewError(Exception):
    """Base exception for review workflow operations."""

    def __init__(self, message: str, progress: Optional[List[ProgressStep]] = None):
        super().__init__(message)
        self.message = message
        self.progress = progress or []

class TrackNotFoundError(ReviewError):
    pass

class InvalidTrackStateError(ReviewError):
    pass

class PaymentNotApprovedError(ReviewError):
    pass

class ApprovalOutcome(NamedTuple):
    track: Track
    verdict: Verdict
    progress: List[ProgressStep]

class _Progress:
    """Collects the steps of one review run."""

    def __init__(self):
        self.steps: List[ProgressStep] = []

    def success(self, step: str, message: str, data: Any = None):
        self.steps.append(ProgressStep(step=step, status=StepStatus.SUCCESS, message=message, data=data))

    def error(self, step: str, message: str, data: Any = None):
        self.steps.append(ProgressStep(step=step, status=StepStatus.ERROR, message=message, data=data))

class TrackReviewWorkflow:
    """
    Drives a track through submission, review and copyright registration.

    The store is anything exposing the track/payment functions of
    copyright_registry.core.database; the workflow keeps no state of its own
    between calls.
    """

    def __init__(self, store, engine: DuplicateDetectionEngine, settings: SettingsStore,
                 tracks_dir: Optional[str] = None):
        self.store = store
        self.engine = engine
        self.settings = settings
        self.tracks_dir = tracks_dir

    def submit(self, submission: TrackSubmission, fileobj: BinaryIO, original_filename: str) -> Dict:
        """
        Store a new pending track and open its registration payment.

        The track and payment rows are written together; if that fails the
        stored audio file is removed again.
        """
        amount = int(self.settings.get_value(COPYRIGHT_PAYMENT_AMOUNT))

        filename = store_track_file(fileobj, original_filename, self.tracks_dir)
        try:
            track_row, payment_row = self.store.insert_track_with_payment(
                {"id": new_id(), "filename": filename, **submission.model_dump()},
                new_id(),
                amount,
            )
        except Exception:
            remove_file(resolve_track_path(filename, self.tracks_dir))
            raise

        logger.info("Track submitted", track_id=track_row["id"], artist_id=submission.artist_id)
        return {"track": Track(**track_row), "payment": Payment(**payment_row)}

    def get_track(self, track_id: str) -> Track:
        row = self.store.get_track(track_id)
        if row is None:
            raise TrackNotFoundError(f"Track not found: {track_id}")
        return Track(**row)

    def list_pending(self) -> List[Track]:
        return [Track(**row) for row in self.store.list_pending_tracks_with_approved_payment()]

    def approve(self, track_id: str) -> ApprovalOutcome:
        """
        Run the duplicate check for a pending track and approve it if it passes.

        Rejection verdicts are returned, not raised, and leave the track
        pending so a reviewer can inspect the matches and decide.

        Raises:
            PaymentNotApprovedError, TrackNotFoundError, InvalidTrackStateError
        """
        progress = _Progress()
        log = logger.bind(track_id=track_id)

        track = self._load_reviewable_track(track_id, progress)

        candidate = Candidate(lyrics=track.lyrics or "", audio_path=resolve_track_path(track.filename, self.tracks_dir))
        corpus = [CorpusEntry(**row) for row in self.store.list_corpus_tracks()]
        thresholds = self.settings.get_thresholds()
        log.info("Running duplicate check", corpus_size=len(corpus),
                 audio_threshold=thresholds.audio, lyrics_threshold=thresholds.lyrics)

        verdict = self.engine.evaluate(candidate, corpus, thresholds.audio, thresholds.lyrics)

        if isinstance(verdict, RejectedFingerprintingFailed):
            progress.error("fingerprint", "Fingerprinting failed: " + verdict.message)
            return ApprovalOutcome(track, verdict, progress.steps)
        progress.success("fingerprint", "Audio fingerprint generated.")

        if isinstance(verdict, RejectedAudioTooSimilar):
            progress.error("audio_similarity", "Audio fingerprint too similar",
                           data=[m.model_dump() for m in verdict.top_matches])
            return ApprovalOutcome(track, verdict, progress.steps)
        progress.success("audio_similarity", "No similar audio found.")

        if isinstance(verdict, RejectedLyricsTooSimilar):
            progress.error("lyrics_similarity", "Lyrics too similar",
                           data=[m.model_dump() for m in verdict.top_matches])
            return ApprovalOutcome(track, verdict, progress.steps)
        progress.success("lyrics_similarity", "No similar lyrics found.")

        row = self.store.update_track_review(
            track_id,
            TrackStatus.APPROVED.value,
            fingerprint=verdict.fingerprint_digest,
            duration=verdict.duration_seconds,
        )
        if row is None:
            progress.error("approve", "Track was reviewed concurrently and is no longer pending.")
            raise InvalidTrackStateError("Track is no longer pending", progress.steps)

        progress.success("done", "Track approved successfully.")
        log.info("Track approved", fingerprint=verdict.fingerprint_digest)
        return ApprovalOutcome(Track(**row), verdict, progress.steps)

    def reject(self, track_id: str, reason: Optional[str] = None) -> Track:
        """Reject a pending track whose payment has been approved."""
        progress = _Progress()
        self._load_reviewable_track(track_id, progress)

        row = self.store.update_track_review(track_id, TrackStatus.REJECTED.value, rejection_reason=reason)
        if row is None:
            raise InvalidTrackStateError("Track is no longer pending", progress.steps)

        logger.info("Track rejected", track_id=track_id, reason=reason)
        return Track(**row)

    def mark_copyrighted(self, track_id: str, blockchain_tx: str) -> Track:
        """Record the blockchain registration of an approved track."""
        track = self.get_track(track_id)
        if track.status == TrackStatus.COPYRIGHTED:
            raise InvalidTrackStateError("Track is already marked as copyrighted")
        if track.status != TrackStatus.APPROVED:
            raise InvalidTrackStateError(f"Only approved tracks can be copyrighted, track is {track.status}")

        row = self.store.mark_track_copyrighted(track_id, blockchain_tx)
        if row is None:
            raise InvalidTrackStateError("Track is no longer approved")

        logger.info("Track copyrighted", track_id=track_id, blockchain_tx=blockchain_tx)
        return Track(**row)

    def _load_reviewable_track(self, track_id: str, progress: _Progress) -> Track:
        if not self.store.has_approved_payment(track_id):
            progress.error("payment_check", "Payment for this track has not been approved.")
            raise PaymentNotApprovedError("Payment not approved for this track", progress.steps)
        progress.success("payment_check", "Payment verified.")

        row = self.store.get_track(track_id)
        if row is None:
            progress.error("track_check", "Track not found.")
            raise TrackNotFoundError(f"Track not found: {track_id}", progress.steps)

        track = Track(**row)
        if track.status != TrackStatus.PENDING:
            progress.error("track_check", f"Track is not in pending status ({track.status}).")
            raise InvalidTrackStateError("Track is not pending", progress.steps)

        progress.success("track_check", "Track is ready for approval.")
        return track
