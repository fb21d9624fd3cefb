"""
UniFi Protect helpers for exporting archived footage as still frames.
"""

from __future__ import annotations

import logging
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

import cv2
import requests

from lawn_lapse.config import ArchiveSettings

from .errors import ArchiveError, FatalArchiveError, NoDataError, NotFoundError

LOGGER = logging.getLogger(__name__)

LOGIN_PATH = "/api/auth/login"
EXPORT_PATH = "/proxy/protect/api/video/export"
CLIP_DURATION_MS = 1000
JPEG_QUALITY = 95


def _build_session(verify_ssl: bool) -> requests.Session:
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": "lawn-lapse",
            "Accept": "application/json",
        }
    )
    session.verify = verify_ssl
    return session


def _error_for_status(response: requests.Response, context: str) -> ArchiveError:
    status = response.status_code
    detail = f"{context} failed with HTTP {status}"
    if status in (401, 403):
        return FatalArchiveError(f"{detail}: unauthorized")
    if status == 404:
        return NotFoundError(f"{detail}: not found")
    if status == 429:
        return NoDataError(f"{detail}: throttling api calls")
    if status >= 500:
        return NoDataError(f"{detail}: no recording available")
    return ArchiveError(detail)


def extract_first_frame(video_bytes: bytes) -> bytes:
    """Decode the first frame of an MP4 clip and return it as JPEG bytes."""
    with tempfile.TemporaryDirectory(prefix="lawn-lapse-") as tmp_dir:
        clip_path = Path(tmp_dir) / "clip.mp4"
        clip_path.write_bytes(video_bytes)
        capture = cv2.VideoCapture(str(clip_path))
        try:
            ok, frame = capture.read() if capture.isOpened() else (False, None)
        finally:
            capture.release()

    if not ok or frame is None:
        raise NoDataError("No video data received: clip could not be decoded")

    success, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
    if not success:
        raise ArchiveError("Failed to encode extracted frame as JPEG")
    return buffer.tobytes()


class ProtectArchiveClient:
    """Export one-second clips from a Protect console and turn them into frames."""

    def __init__(
        self,
        settings: ArchiveSettings,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings = settings
        self.session = session or _build_session(settings.verify_ssl)
        self.logger = logger or LOGGER
        self.is_connected = False

    @property
    def base_url(self) -> str:
        return f"https://{self.settings.host}"

    def connect(self) -> None:
        """Log in once; later calls reuse the session cookie."""
        if self.is_connected:
            return

        self.logger.info("Connecting to %s", self.settings.host)
        try:
            response = self.session.post(
                f"{self.base_url}{LOGIN_PATH}",
                json={
                    "username": self.settings.username,
                    "password": self.settings.password,
                    "rememberMe": True,
                },
                timeout=self.settings.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise FatalArchiveError(f"Failed to login to UniFi Protect: {exc}") from exc

        if not response.ok:
            raise FatalArchiveError(
                f"Failed to login to UniFi Protect (HTTP {response.status_code})"
            )

        csrf_token = response.headers.get("X-CSRF-Token")
        if csrf_token:
            self.session.headers["X-CSRF-Token"] = csrf_token
        self.is_connected = True
        self.logger.debug("Connected to UniFi Protect at %s", self.settings.host)

    def export_clip(self, camera_id: str, instant: datetime, duration_ms: int = CLIP_DURATION_MS) -> bytes:
        self.connect()

        start_ms = int(instant.timestamp() * 1000)
        try:
            response = self.session.get(
                f"{self.base_url}{EXPORT_PATH}",
                params={
                    "camera": camera_id,
                    "start": start_ms,
                    "end": start_ms + duration_ms,
                },
                headers={"Accept": "video/mp4"},
                timeout=self.settings.timeout_seconds,
            )
        except requests.Timeout as exc:
            raise NoDataError(f"Export request timed out: {exc}") from exc
        except requests.ConnectionError as exc:
            raise FatalArchiveError(f"Network unreachable: {exc}") from exc
        except requests.RequestException as exc:
            raise ArchiveError(str(exc)) from exc

        if not response.ok:
            raise _error_for_status(response, "Video export")
        if not response.content:
            raise NoDataError("No video data received")
        return response.content

    def export_frame(self, camera_id: str, instant: datetime) -> bytes:
        """Return a JPEG still of ``camera_id`` at ``instant``."""
        return extract_first_frame(self.export_clip(camera_id, instant))

    def close(self) -> None:
        self.session.close()
