import structlog
from typing import Callable, List, Optional, Sequence

from copyright_registry.models.similarity import (
    Accepted, RejectedAudioTooSimilar, RejectedFingerprintingFailed,
    RejectedLyricsTooSimilar, SimilarityMatch, Verdict
)
from copyright_registry.models.track import Candidate, CorpusEntry
from copyright_registry.services.fingerprint import Fingerprinter
from copyright_registry.services.fingerprint_similarity import fingerprint_similarity
from copyright_registry.services.text_similarity import lyrics_similarity

logger = structlog.get_logger()

# Number of nearest tracks reported with a rejection
MAX_REPORTED_MATCHES = 3

def rank_matches(candidate_value: str,
                 corpus: Sequence[CorpusEntry],
                 field: str,
                 scorer: Callable[[str, str], float]) -> List[SimilarityMatch]:
    """
    Score every corpus entry that has a non-empty value for field.

    Results are sorted by descending score; equal scores keep corpus order.
    """
    matches = [
        SimilarityMatch(track_id=entry.id, title=entry.title, score=scorer(candidate_value, getattr(entry, field)))
        for entry in corpus
        if getattr(entry, field)
    ]
    # sorted() is stable with reverse=True as well
    return sorted(matches, key=lambda m: m.score, reverse=True)

def _validate_threshold(name: str, value: float) -> float:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")
    return value

class DuplicateDetectionEngine:
    """Decides whether a candidate track duplicates the existing catalog."""

    def __init__(self, fingerprinter: Fingerprinter):
        self.fingerprinter = fingerprinter

    def evaluate(self,
                 candidate: Candidate,
                 corpus: Sequence[CorpusEntry],
                 audio_threshold: float,
                 lyrics_threshold: float) -> Verdict:
        """
        Screen a candidate against the corpus of approved/copyrighted tracks.

        Checks run in a fixed order and stop at the first rejection:
        fingerprinting, audio similarity, lyrics similarity. A candidate is
        rejected when its best score is greater than or equal to the threshold.

        Args:
            candidate: Lyrics and audio path of the track under review
            corpus: Snapshot of previously approved tracks, in catalog order
            audio_threshold: Fingerprint similarity threshold in [0, 1]
            lyrics_threshold: Lyrics similarity threshold in [0, 1]

        Returns:
            One of Accepted, RejectedFingerprintingFailed,
            RejectedAudioTooSimilar or RejectedLyricsTooSimilar
        """
        _validate_threshold("audio_threshold", audio_threshold)
        _validate_threshold("lyrics_threshold", lyrics_threshold)

        result = self.fingerprinter.fingerprint(candidate.audio_path)
        if not result.success or not result.digest:
            message = result.message or "Fingerprinting failed"
            logger.info("Candidate rejected: fingerprinting failed",
                       audio_path=candidate.audio_path, reason=message)
            return RejectedFingerprintingFailed(message=message)

        audio_matches = rank_matches(result.digest, corpus, "fingerprint", fingerprint_similarity)
        rejection = self._check_threshold(audio_matches, audio_threshold)
        if rejection is not None:
            top_matches, best_score = rejection
            logger.info("Candidate rejected: audio too similar",
                       best_score=best_score, best_match=top_matches[0].track_id,
                       threshold=audio_threshold, compared=len(audio_matches))
            return RejectedAudioTooSimilar(top_matches=top_matches, best_score=best_score)

        if candidate.lyrics:
            lyrics_matches = rank_matches(candidate.lyrics, corpus, "lyrics", lyrics_similarity)
            rejection = self._check_threshold(lyrics_matches, lyrics_threshold)
            if rejection is not None:
                top_matches, best_score = rejection
                logger.info("Candidate rejected: lyrics too similar",
                           best_score=best_score, best_match=top_matches[0].track_id,
                           threshold=lyrics_threshold, compared=len(lyrics_matches))
                return RejectedLyricsTooSimilar(top_matches=top_matches, best_score=best_score)

        logger.info("Candidate accepted", corpus_size=len(corpus), duration=result.duration)
        return Accepted(fingerprint_digest=result.digest, duration_seconds=result.duration or 0.0)

    @staticmethod
    def _check_threshold(matches: List[SimilarityMatch], threshold: float) -> Optional[tuple]:
        if matches and matches[0].score >= threshold:
            return matches[:MAX_REPORTED_MATCHES], matches[0].score
        return None
