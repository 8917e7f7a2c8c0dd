import logging
import structlog
from typing import List, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, UploadFile, File, Form, HTTPException, Depends, status, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from copyright_registry import __version__, config
from copyright_registry.core import database
from copyright_registry.core.settings import (
    MAINTENANCE_MODE, SettingNotFoundError, SettingValueError, SettingsStore
)
from copyright_registry.core.utils import ensure_dir_exists, file_extension, format_file_size
from copyright_registry.models.similarity import (
    ApprovalResponse, ErrorResponse, HealthResponse, VerdictKind
)
from copyright_registry.models.track import Payment, SettingUpdate, SystemSetting, Track, TrackSubmission
from copyright_registry.services.duplicate_detection import DuplicateDetectionEngine
from copyright_registry.services.fingerprint import AudioFingerprintClient, Fingerprinter
from copyright_registry.services.payments import (
    InvalidPaymentStateError, PaymentError, PaymentNotFoundError, PaymentService
)
from copyright_registry.services.review import (
    InvalidTrackStateError, PaymentNotApprovedError, ReviewError, TrackNotFoundError,
    TrackReviewWorkflow
)

# Configure structured logging
logging.basicConfig(format="%(message)s", level=config.LOG_LEVEL)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Shared fingerprinting client; holds only an HTTP session
fingerprint_client: Optional[Fingerprinter] = None

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global fingerprint_client

    # Startup
    logger.info("Starting Copyright Registry API")
    try:
        ensure_dir_exists(config.TRACKS_DIR)
        fingerprint_client = AudioFingerprintClient()

        if database.check_database_connection():
            logger.info("Database connection verified")
            SettingsStore(database).seed_defaults()
        else:
            logger.warning("Database connection check failed")

    except Exception as e:
        logger.error("Failed to initialize application", error=str(e))
        raise

    yield

    # Shutdown
    logger.info("Shutting down Copyright Registry API")
    database.close_connection_pool()

# Create FastAPI application
app = FastAPI(
    title="Copyright Registry API",
    description="Track registration back office with audio and lyrics duplicate detection",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Validation Error"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    }
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# HTTP status for each review verdict
VERDICT_STATUS_CODES = {
    VerdictKind.ACCEPTED: status.HTTP_200_OK,
    VerdictKind.FINGERPRINTING_FAILED: status.HTTP_502_BAD_GATEWAY,
    VerdictKind.AUDIO_TOO_SIMILAR: status.HTTP_409_CONFLICT,
    VerdictKind.LYRICS_TOO_SIMILAR: status.HTTP_409_CONFLICT,
}

VERDICT_MESSAGES = {
    VerdictKind.ACCEPTED: "Track approved successfully",
    VerdictKind.FINGERPRINTING_FAILED: "Fingerprinting service failed",
    VerdictKind.AUDIO_TOO_SIMILAR: "Audio fingerprint too similar to existing track(s)",
    VerdictKind.LYRICS_TOO_SIMILAR: "Lyrics too similar to existing track(s)",
}

REVIEW_ERROR_STATUS_CODES = {
    PaymentNotApprovedError: status.HTTP_400_BAD_REQUEST,
    TrackNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTrackStateError: status.HTTP_409_CONFLICT,
}

PAYMENT_ERROR_STATUS_CODES = {
    PaymentNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidPaymentStateError: status.HTTP_409_CONFLICT,
}

def get_store():
    return database

def get_fingerprinter() -> Fingerprinter:
    global fingerprint_client
    if fingerprint_client is None:
        fingerprint_client = AudioFingerprintClient()
    return fingerprint_client

def get_settings_store(store=Depends(get_store)) -> SettingsStore:
    return SettingsStore(store)

def get_payment_service(store=Depends(get_store)) -> PaymentService:
    return PaymentService(store)

def get_workflow(store=Depends(get_store),
                 fingerprinter: Fingerprinter = Depends(get_fingerprinter),
                 settings: SettingsStore = Depends(get_settings_store)) -> TrackReviewWorkflow:
    return TrackReviewWorkflow(store, DuplicateDetectionEngine(fingerprinter), settings)

def review_error_response(error: ReviewError) -> JSONResponse:
    status_code = REVIEW_ERROR_STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(error).__name__,
            "message": error.message,
            "progress": [step.model_dump(mode="json") for step in error.progress],
        }
    )

@app.get("/", response_model=dict)
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Copyright Registry API",
        "version": __version__,
        "description": "Track registration back office with duplicate detection",
        "docs_url": "/docs",
        "health_url": "/health",
    }

@app.get("/health", response_model=HealthResponse)
def health_check(store=Depends(get_store)):
    """Health check endpoint with component status."""
    try:
        db_healthy = store.check_database_connection()

        components = {
            "database": "healthy" if db_healthy else "unhealthy",
            "fingerprint_service": "configured" if config.FINGERPRINT_API_URL else "not_configured",
        }

        overall_status = "healthy" if db_healthy and config.FINGERPRINT_API_URL else "degraded"

        return HealthResponse(
            status=overall_status,
            version=__version__,
            components={**components, "fingerprint_endpoint": config.FINGERPRINT_API_URL}
        )
    except Exception as e:
        logger.error("Health check failed", error=str(e))
        return HealthResponse(
            status="unhealthy",
            version=__version__,
            components={"error": str(e)}
        )

@app.post("/tracks", status_code=status.HTTP_201_CREATED)
def upload_track(
    title: str = Form(...),
    artist_id: str = Form(...),
    genre: str = Form(...),
    release_year: str = Form(...),
    lyrics: str = Form(...),
    description: Optional[str] = Form(None),
    collaborators: Optional[str] = Form(None),
    is_available_for_licensing: bool = Form(False),
    license_fee: int = Form(0),
    license_terms: Optional[str] = Form(None),
    file: UploadFile = File(..., description="Audio file of the track"),
    workflow: TrackReviewWorkflow = Depends(get_workflow),
    settings: SettingsStore = Depends(get_settings_store),
):
    """
    Submit a new track for registration.

    The track is stored as pending and a registration payment is opened for it.
    """
    if settings.get_value(MAINTENANCE_MODE):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="System is in maintenance mode"
        )

    if not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Filename is required"
        )

    allowed_types = settings.allowed_file_types()
    extension = file_extension(file.filename)
    if extension not in allowed_types:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"Unsupported file type: {extension or 'none'}. Supported types: {', '.join(allowed_types)}"
        )

    max_size = settings.max_file_size_bytes()
    file.file.seek(0, 2)
    file_size = file.file.tell()
    file.file.seek(0)
    if file_size > max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File size exceeds maximum allowed size of {format_file_size(max_size)}"
        )

    submission = TrackSubmission(
        title=title,
        artist_id=artist_id,
        genre=genre,
        release_year=release_year,
        lyrics=lyrics,
        description=description,
        collaborators=collaborators,
        is_available_for_licensing=is_available_for_licensing,
        license_fee=license_fee,
        license_terms=license_terms,
    )

    logger.info("Processing track upload", title=title, artist_id=artist_id, filename=file.filename)
    result = workflow.submit(submission, file.file, file.filename)
    return {
        "track": result["track"].model_dump(mode="json"),
        "payment": result["payment"].model_dump(mode="json"),
    }

@app.get("/tracks/pending", response_model=List[Track])
def list_pending_tracks(workflow: TrackReviewWorkflow = Depends(get_workflow)):
    """Pending tracks with an approved payment, ready for review."""
    return workflow.list_pending()

@app.get("/tracks/{track_id}", response_model=Track)
def get_track(track_id: str, workflow: TrackReviewWorkflow = Depends(get_workflow)):
    """Get a single track."""
    try:
        return workflow.get_track(track_id)
    except TrackNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

@app.post("/tracks/{track_id}/approve", response_model=ApprovalResponse,
          responses={409: {"model": ApprovalResponse}, 502: {"model": ApprovalResponse}})
def approve_track(track_id: str, workflow: TrackReviewWorkflow = Depends(get_workflow)):
    """
    Approve a pending track after screening it for duplicates.

    The audio is fingerprinted and compared with all approved and copyrighted
    tracks, then the lyrics are compared. A rejection returns the closest
    matches and the best score so the decision can be audited.
    """
    try:
        outcome = workflow.approve(track_id)
    except ReviewError as e:
        logger.info("Track approval refused", track_id=track_id, reason=e.message)
        return review_error_response(e)

    kind = VerdictKind(outcome.verdict.kind)
    response = ApprovalResponse(
        track=outcome.track,
        verdict=outcome.verdict,
        progress=outcome.progress,
        message=VERDICT_MESSAGES[kind],
    )
    return JSONResponse(status_code=VERDICT_STATUS_CODES[kind], content=response.model_dump(mode="json"))

@app.post("/tracks/{track_id}/reject", response_model=Track)
def reject_track(track_id: str,
                 reason: Optional[str] = Body(None, embed=True),
                 workflow: TrackReviewWorkflow = Depends(get_workflow)):
    """Reject a pending track."""
    try:
        return workflow.reject(track_id, reason)
    except ReviewError as e:
        return review_error_response(e)

@app.post("/tracks/{track_id}/copyright", response_model=Track)
def register_copyright(track_id: str,
                       blockchain_tx: str = Body(..., embed=True, min_length=1),
                       workflow: TrackReviewWorkflow = Depends(get_workflow)):
    """Record the blockchain transaction that registered an approved track."""
    try:
        return workflow.mark_copyrighted(track_id, blockchain_tx)
    except ReviewError as e:
        return review_error_response(e)

def payment_error_response(error: PaymentError) -> HTTPException:
    status_code = PAYMENT_ERROR_STATUS_CODES.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=error.message)

@app.get("/payments/{payment_id}", response_model=Payment)
def get_payment(payment_id: str, payments: PaymentService = Depends(get_payment_service)):
    try:
        return payments.get(payment_id)
    except PaymentError as e:
        raise payment_error_response(e)

@app.put("/payments/{payment_id}/invoice", response_model=Payment)
def generate_invoice(payment_id: str, payments: PaymentService = Depends(get_payment_service)):
    """Issue a control number for an initial payment and mark it pending."""
    try:
        return payments.generate_invoice(payment_id)
    except PaymentError as e:
        raise payment_error_response(e)

@app.put("/payments/{payment_id}/approve", response_model=Payment)
def approve_payment(payment_id: str,
                    amount_paid: Optional[int] = Body(None, embed=True, ge=0),
                    payments: PaymentService = Depends(get_payment_service)):
    """
    Approve a registration payment, which makes its track reviewable.

    Pass amount_paid to record payment of an invoiced (pending) payment.
    """
    try:
        return payments.approve(payment_id, amount_paid)
    except PaymentError as e:
        raise payment_error_response(e)

@app.put("/payments/{payment_id}/reject", response_model=Payment)
def reject_payment(payment_id: str, payments: PaymentService = Depends(get_payment_service)):
    try:
        return payments.reject(payment_id)
    except PaymentError as e:
        raise payment_error_response(e)

@app.get("/settings", response_model=List[SystemSetting])
def list_settings(settings: SettingsStore = Depends(get_settings_store)):
    return settings.list()

@app.get("/settings/{key}", response_model=SystemSetting)
def get_setting(key: str, settings: SettingsStore = Depends(get_settings_store)):
    try:
        return settings.get(key)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

@app.put("/settings/{key}", response_model=SystemSetting)
def update_setting(key: str, update: SettingUpdate, settings: SettingsStore = Depends(get_settings_store)):
    """Change a system setting. Threshold values must lie between 0 and 1."""
    try:
        return settings.update(key, update.value)
    except SettingNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SettingValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error("Unhandled exception",
                url=str(request.url), method=request.method, error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_server_error", "message": "An unexpected error occurred"}
    )

if __name__ == "__main__":
    uvicorn.run(
        "copyright_registry.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.DEBUG,
        log_config=None,  # We handle logging with structlog
    )
