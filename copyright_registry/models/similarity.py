"""
Pydantic models for duplicate-detection verdicts and API response structures.
"""

from typing import List, Optional, Dict, Any, Union, Literal
from pydantic import BaseModel, Field
from enum import Enum

from .track import Track

class VerdictKind(str, Enum):
    """Outcomes of a duplicate check."""
    ACCEPTED = "accepted"
    FINGERPRINTING_FAILED = "fingerprinting_failed"
    AUDIO_TOO_SIMILAR = "audio_too_similar"
    LYRICS_TOO_SIMILAR = "lyrics_too_similar"

class SimilarityMatch(BaseModel):
    """A corpus track scored against the candidate."""
    track_id: str = Field(..., description="ID of the matched track")
    title: str = Field(..., description="Title of the matched track")
    score: float = Field(..., ge=0.0, le=1.0, description="Similarity score (0.0 to 1.0)")

class Accepted(BaseModel):
    kind: Literal[VerdictKind.ACCEPTED] = VerdictKind.ACCEPTED
    fingerprint_digest: str = Field(..., description="Digest to store on the track")
    duration_seconds: float = Field(default=0.0, description="Duration to store on the track")

class RejectedFingerprintingFailed(BaseModel):
    kind: Literal[VerdictKind.FINGERPRINTING_FAILED] = VerdictKind.FINGERPRINTING_FAILED
    message: str = Field(..., description="Reason reported by the fingerprinting service")

class RejectedAudioTooSimilar(BaseModel):
    kind: Literal[VerdictKind.AUDIO_TOO_SIMILAR] = VerdictKind.AUDIO_TOO_SIMILAR
    top_matches: List[SimilarityMatch] = Field(..., max_length=3)
    best_score: float = Field(..., ge=0.0, le=1.0)

class RejectedLyricsTooSimilar(BaseModel):
    kind: Literal[VerdictKind.LYRICS_TOO_SIMILAR] = VerdictKind.LYRICS_TOO_SIMILAR
    top_matches: List[SimilarityMatch] = Field(..., max_length=3)
    best_score: float = Field(..., ge=0.0, le=1.0)

Verdict = Union[Accepted, RejectedFingerprintingFailed, RejectedAudioTooSimilar, RejectedLyricsTooSimilar]

class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"

class ProgressStep(BaseModel):
    """One step of a review run, reported back to the reviewer."""
    step: str = Field(..., description="Step name")
    status: StepStatus = Field(..., description="Step outcome")
    message: str = Field(..., description="Human-readable message")
    data: Optional[Any] = Field(default=None, description="Evidence attached to the step")

    class Config:
        use_enum_values = True

class ApprovalResponse(BaseModel):
    """Response model for a track approval run."""
    track: Track = Field(..., description="Track after the review run")
    verdict: Verdict = Field(..., discriminator="kind")
    progress: List[ProgressStep] = Field(default_factory=list)
    message: str = Field(..., description="Human-readable message")

class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")

class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Overall service status")
    version: str = Field(..., description="API version")
    components: Dict[str, Any] = Field(..., description="Component health status")
