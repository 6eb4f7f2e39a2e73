# -*- coding: utf-8 -*-
"""Client — camera capture with permission checks and a hang watchdog."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Literal, Optional, Protocol
from uuid import uuid4

from .logger import describe, log

CaptureSource = Literal["camera", "debug-remote"]

DEFAULT_WATCHDOG_SECONDS = 3.0


@dataclass(frozen=True)
class PhotoCaptureState:
    uri: str
    capture_id: str
    source: CaptureSource = "camera"
    width: Optional[int] = None
    height: Optional[int] = None


class PhotoCaptureStore:
    """In-memory holder for the latest capture; nothing is persisted."""

    def __init__(self) -> None:
        self.photo: Optional[PhotoCaptureState] = None

    def set(self, photo: PhotoCaptureState) -> None:
        self.photo = photo

    def clear(self) -> None:
        self.photo = None


@dataclass(frozen=True)
class CapturedPicture:
    uri: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class PermissionStatus:
    granted: bool
    status: str = "undetermined"


class Camera(Protocol):
    def is_ready(self) -> bool:
        ...

    async def take_picture(self, quality: float) -> CapturedPicture:
        ...


class CameraPermissions(Protocol):
    def current(self) -> PermissionStatus:
        ...

    async def request(self) -> PermissionStatus:
        ...


class Notifier(Protocol):
    def alert(self, title: str, message: Optional[str] = None) -> None:
        ...


async def capture_photo(
    *,
    camera: Optional[Camera],
    permissions: CameraPermissions,
    store: PhotoCaptureStore,
    notifier: Notifier,
    watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS,
    quality: float = 0.8,
) -> Optional[PhotoCaptureState]:
    """Take one picture and store it; returns ``None`` when capture is blocked or fails.

    Blocked captures (permission denied, camera missing or not ready) and camera
    failures are reported to the user through ``notifier`` and logged. The
    watchdog only observes: when the camera has not answered after
    ``watchdog_seconds`` it logs ``capture:hang`` and alerts, but the capture
    keeps waiting.
    """
    capture_id = str(uuid4())
    log("camera", "capture:press", {"captureId": capture_id})

    permission = permissions.current()
    log(
        "photo_capture",
        "permission_status",
        {"capture_id": capture_id, "phase": "before_request", "status": permission.status, "granted": permission.granted},
    )
    if not permission.granted:
        permission = await permissions.request()
        log(
            "photo_capture",
            "permission_status",
            {"capture_id": capture_id, "phase": "after_request", "status": permission.status, "granted": permission.granted},
        )
    if not permission.granted:
        notifier.alert("Camera permission missing")
        log("camera", "capture:blocked", {"captureId": capture_id, "reason": "permission_missing"})
        return None

    if camera is None:
        notifier.alert("Camera not mounted")
        log("camera", "capture:blocked", {"captureId": capture_id, "reason": "camera_ref_missing"})
        return None
    if not camera.is_ready():
        notifier.alert("Camera not ready yet")
        log("camera", "capture:blocked", {"captureId": capture_id, "reason": "camera_not_ready"})
        return None

    def on_hang() -> None:
        log("camera", "capture:hang", {"captureId": capture_id})
        notifier.alert("Capture appears hung")

    watchdog = asyncio.get_running_loop().call_later(watchdog_seconds, on_hang)
    log("camera", "capture:start", {"captureId": capture_id})
    try:
        picture = await camera.take_picture(quality)
    except Exception as exc:
        message = describe(exc)
        log("camera", "capture:error", {"captureId": capture_id, "message": message})
        notifier.alert("Capture failed", message)
        return None
    finally:
        watchdog.cancel()

    log(
        "camera",
        "capture:success",
        {"captureId": capture_id, "uri": picture.uri, "width": picture.width, "height": picture.height},
    )
    photo = PhotoCaptureState(
        uri=picture.uri,
        capture_id=capture_id,
        source="camera",
        width=picture.width,
        height=picture.height,
    )
    store.set(photo)
    log("photo_capture", "state_store", {"capture_id": capture_id, "uri": photo.uri, "source": photo.source})
    return photo
