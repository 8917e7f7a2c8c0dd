import os
from abc import ABC, abstractmethod
import structlog
from typing import Optional

import requests
from pydantic import ValidationError
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from copyright_registry import config
from copyright_registry.models.track import FingerprintResult

logger = structlog.get_logger()

class Fingerprinter(ABC):
    """Produces a fingerprint digest for an audio file."""

    @abstractmethod
    def fingerprint(self, audio_path: str) -> FingerprintResult:
        """Fingerprint the file; failures are reported in the result, not raised."""

class AudioFingerprintClient(Fingerprinter):
    """HTTP client for the external audio fingerprinting service."""

    def __init__(self,
                 endpoint: str = config.FINGERPRINT_API_URL,
                 timeout: Optional[float] = config.FINGERPRINT_TIMEOUT_SECONDS,
                 connect_retries: int = config.FINGERPRINT_CONNECT_RETRIES,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or self._create_session(connect_retries)

        logger.info("AudioFingerprintClient initialized",
                   endpoint=endpoint, timeout=timeout, connect_retries=connect_retries)

    @staticmethod
    def _create_session(connect_retries: int) -> requests.Session:
        """Create HTTP session that retries only failed connections."""
        session = requests.Session()

        # The upload is not idempotent from the service's point of view,
        # so only retry when the connection was never established
        retry_strategy = Retry(
            total=connect_retries,
            connect=connect_retries,
            read=0,
            status=0,
            backoff_factor=1,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def fingerprint(self, audio_path: str) -> FingerprintResult:
        """
        Upload an audio file to the fingerprinting service.

        Every failure is returned as an unsuccessful result carrying the most
        precise message available, never raised.

        Args:
            audio_path: Path to a local audio file

        Returns:
            FingerprintResult with digest and duration on success
        """
        logger.info("Requesting audio fingerprint", audio_path=audio_path, endpoint=self.endpoint)

        try:
            with open(audio_path, "rb") as audio_file:
                response = self.session.post(
                    self.endpoint,
                    files={"audio_file": (os.path.basename(audio_path), audio_file)},
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            return self._fail("Fingerprinting service unreachable: " + str(e), audio_path)
        except OSError as e:
            return self._fail("Could not read audio file: " + str(e), audio_path)

        if not response.ok:
            return self._fail(
                f"Fingerprinting service returned HTTP {response.status_code}: {self._error_detail(response)}",
                audio_path,
            )

        try:
            payload = response.json()
        except ValueError:
            return self._fail("Fingerprinting service returned a non-JSON response", audio_path)

        if not isinstance(payload, dict):
            return self._fail("Fingerprinting service returned an unexpected payload", audio_path)

        try:
            result = FingerprintResult.model_validate(payload)
        except ValidationError as e:
            return self._fail(f"Fingerprinting service returned a malformed payload: {e.error_count()} invalid field(s)", audio_path)

        if not result.success:
            return self._fail(result.message or "Fingerprinting service could not process the audio", audio_path)

        if not result.digest:
            return self._fail("Fingerprinting service returned no fingerprint", audio_path)

        logger.info("Audio fingerprint received",
                   audio_path=audio_path,
                   duration=result.duration,
                   model_version=result.model_version,
                   total_hashes=result.total_hashes)
        return result

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Extract the service's own message from an error response."""
        try:
            payload = response.json()
        except ValueError:
            return response.text.strip() or response.reason or "no details"
        if isinstance(payload, dict):
            for key in ("message", "detail", "error"):
                if payload.get(key):
                    return str(payload[key])
        return str(payload)

    @staticmethod
    def _fail(message: str, audio_path: str) -> FingerprintResult:
        logger.warning("Audio fingerprinting failed", audio_path=audio_path, reason=message)
        return FingerprintResult.failure(message)
