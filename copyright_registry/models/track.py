"""
Pydantic models for tracks, fingerprints and system settings.
"""

from datetime import datetime
from typing import Optional, Dict, Any, Union
from pydantic import BaseModel, Field
from enum import Enum

class TrackStatus(str, Enum):
    """Lifecycle states of a submitted track."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COPYRIGHTED = "copyrighted"

# Tracks in these states carry a fingerprint and form the comparison corpus
CORPUS_STATUSES = (TrackStatus.APPROVED.value, TrackStatus.COPYRIGHTED.value)

class PaymentStatus(str, Enum):
    """Payment states as written by the payment system."""
    INITIAL = "initial"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class SettingType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"

class Track(BaseModel):
    """Track record as stored in the registry."""
    id: str = Field(..., description="Unique track identifier")
    title: str = Field(..., description="Track title")
    artist_id: str = Field(..., description="ID of the submitting artist")
    filename: str = Field(..., description="Stored audio filename")
    genre: str = Field(..., description="Genre")
    release_year: str = Field(..., description="Release year")
    description: Optional[str] = Field(None)
    lyrics: str = Field(..., description="Full lyrics text")
    collaborators: Optional[str] = Field(None)
    is_available_for_licensing: bool = Field(default=False)
    license_fee: int = Field(default=0, ge=0)
    license_terms: Optional[str] = Field(None)
    duration: Optional[float] = Field(None, description="Duration in seconds, set on approval")
    fingerprint: Optional[str] = Field(None, description="Audio fingerprint digest, set on approval")
    status: TrackStatus = Field(default=TrackStatus.PENDING)
    blockchain_tx: Optional[str] = Field(None, description="Copyright registration transaction hash")
    rejection_reason: Optional[str] = Field(None)
    created_at: Optional[datetime] = Field(None)
    updated_at: Optional[datetime] = Field(None)

    class Config:
        use_enum_values = True

class Payment(BaseModel):
    """Registration payment opened for a submitted track."""
    id: str = Field(..., description="Unique payment identifier")
    track_id: Optional[str] = Field(None, description="Track the payment is for")
    artist_id: str = Field(..., description="Paying artist")
    amount: int = Field(..., ge=0, description="Amount due")
    payment_type: str = Field(default="registration")
    status: PaymentStatus = Field(default=PaymentStatus.INITIAL)
    control_number: Optional[str] = Field(None, description="Invoice control number")
    amount_paid: Optional[int] = Field(None, ge=0)
    paid_at: Optional[datetime] = Field(None)
    created_at: Optional[datetime] = Field(None)
    updated_at: Optional[datetime] = Field(None)

    class Config:
        use_enum_values = True

class TrackSubmission(BaseModel):
    """Fields supplied by an artist when uploading a track."""
    title: str = Field(..., min_length=1)
    artist_id: str = Field(..., min_length=1)
    genre: str = Field(..., min_length=1)
    release_year: str = Field(..., min_length=1)
    lyrics: str = Field(..., min_length=1)
    description: Optional[str] = None
    collaborators: Optional[str] = None
    is_available_for_licensing: bool = False
    license_fee: int = Field(default=0, ge=0)
    license_terms: Optional[str] = None

class CorpusEntry(BaseModel):
    """A previously approved or copyrighted track, as seen by the duplicate check."""
    id: str
    title: str
    fingerprint: Optional[str] = None
    lyrics: Optional[str] = None

class Candidate(BaseModel):
    """A track under review."""
    lyrics: str = ""
    audio_path: str

class FingerprintResult(BaseModel):
    """Response of the external fingerprinting service."""
    digest: Optional[str] = Field(None, alias="fingerprint_hash", description="Fingerprint digest")
    duration: Optional[float] = Field(None, description="Duration in seconds")
    sample_rate: Optional[float] = Field(None)
    model_version: Optional[str] = Field(None)
    total_hashes: Optional[int] = Field(None)
    hash_map: Optional[Dict[str, Any]] = Field(None)
    success: bool = Field(default=False)
    message: Optional[str] = Field(None)

    class Config:
        populate_by_name = True

    @classmethod
    def failure(cls, message: str) -> "FingerprintResult":
        return cls(success=False, message=message)

class SimilarityThresholds(BaseModel):
    """Rejection thresholds for the duplicate check."""
    audio: float = Field(..., ge=0.0, le=1.0)
    lyrics: float = Field(..., ge=0.0, le=1.0)

class SystemSetting(BaseModel):
    key: str
    value: str
    description: Optional[str] = None
    type: SettingType = SettingType.STRING

    class Config:
        use_enum_values = True

class SettingUpdate(BaseModel):
    value: Union[bool, int, float, str] = Field(..., description="New value, coerced according to the setting type")
