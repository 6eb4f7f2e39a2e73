# -*- coding: utf-8 -*-
"""Client — capture-to-result submission flow.

Sequence per attempt: photo present → ``GET /api/status`` → read photo as
base64 → ``POST /api/estimateCalcium`` with a fresh request id → show result.
A retry re-runs the whole sequence. The flow never writes device state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Protocol
from uuid import uuid4

from ..estimate.models import EstimateAnswers, EstimateCalciumRequest, EstimateCalciumResponse, PortionSize, YesNoNotSure
from .api_client import ApiClient, ApiClientError, CancelToken
from .capture import PhotoCaptureState, PhotoCaptureStore
from .logger import describe, error, log

SERVER_UNREACHABLE_MESSAGE = "Can’t reach server. Make sure the backend is running and connected to the same Wi-Fi."
ERROR_TITLE = "Unable to continue"
UNKNOWN_ERROR_MESSAGE = "Something went wrong. Please try again."

PORTION_BY_OPTION: Dict[str, PortionSize] = {
    "portion_small": "small",
    "portion_medium": "medium",
    "portion_large": "large",
}
YES_NO_BY_OPTION: Dict[str, YesNoNotSure] = {"yes": "yes", "no": "no", "not_sure": "not_sure"}

SubmitOutcome = Literal["success", "busy", "no_photo", "server_unreachable", "cancelled", "failed"]


@dataclass(frozen=True)
class AnswerSelection:
    """Option ids picked on the questions screen; ``None`` means unanswered."""

    portion_size: Optional[str] = None
    contains_dairy: Optional[str] = None
    contains_tofu_or_small_fish_bones: Optional[str] = None


def answers_from_selection(selection: AnswerSelection) -> EstimateAnswers:
    # Unanswered or unknown options fall back to medium / not_sure.
    return EstimateAnswers(
        portion_size=PORTION_BY_OPTION.get(selection.portion_size or "", "medium"),
        contains_dairy=YES_NO_BY_OPTION.get(selection.contains_dairy or "", "not_sure"),
        contains_tofu_or_small_fish_bones=YES_NO_BY_OPTION.get(
            selection.contains_tofu_or_small_fish_bones or "", "not_sure"
        ),
    )


class Navigator(Protocol):
    def go_back(self) -> None:
        ...

    def show_result(self, response: EstimateCalciumResponse) -> None:
        ...


class Prompter(Protocol):
    def alert(self, title: str, message: Optional[str] = None) -> None:
        ...

    async def ask_retry(self, title: str, message: str, details: Optional[str] = None) -> bool:
        """Return True for "Try Again", False for "Cancel"."""
        ...


class PhotoReader(Protocol):
    async def read_base64(self, uri: str) -> str:
        ...


class SubmissionFlow:
    def __init__(
        self,
        *,
        api: ApiClient,
        store: PhotoCaptureStore,
        reader: PhotoReader,
        navigator: Navigator,
        prompter: Prompter,
        device_install_id: str,
        locale: str,
        ui_version: str,
        show_details: bool = False,
    ) -> None:
        self.api = api
        self.store = store
        self.reader = reader
        self.navigator = navigator
        self.prompter = prompter
        self.device_install_id = device_install_id
        self.locale = locale
        self.ui_version = ui_version
        self.show_details = show_details
        self.submitting = False
        self._cancel_token: Optional[CancelToken] = None

    def cancel(self) -> None:
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    async def submit(self, selection: AnswerSelection) -> SubmitOutcome:
        if self.submitting:
            log("photo_flow", "submit_blocked", {"reason": "submitting"})
            return "busy"

        photo = self.store.photo
        if photo is None:
            self.prompter.alert("Photo missing", "Please retake the photo before continuing.")
            self.navigator.go_back()
            return "no_photo"

        self.submitting = True
        try:
            while True:
                token = CancelToken()
                self._cancel_token = token
                outcome = await self._attempt(selection, photo, token)
                if outcome is not None:
                    return outcome
        finally:
            self._cancel_token = None
            self.submitting = False

    async def _attempt(
        self, selection: AnswerSelection, photo: PhotoCaptureState, token: CancelToken
    ) -> Optional[SubmitOutcome]:
        """One pass through the sequence; ``None`` means the user asked to retry."""
        log("photo_flow", "status_check_start", {"capture_id": photo.capture_id, "source": photo.source})
        try:
            await self.api.get_status(cancel=token)
        except ApiClientError as exc:
            error(
                "photo_flow",
                "status_check_error",
                {"kind": exc.kind, "url": exc.url, "status": exc.status, "message": exc.message_dev, "trace_id": exc.trace_id},
            )
            self.prompter.alert(SERVER_UNREACHABLE_MESSAGE)
            return "server_unreachable"
        except Exception as exc:
            error("photo_flow", "status_check_error_unknown", {"message": describe(exc)})
            self.prompter.alert(SERVER_UNREACHABLE_MESSAGE)
            return "server_unreachable"
        log("photo_flow", "status_check_ok", {"capture_id": photo.capture_id})

        try:
            image_base64 = await self.reader.read_base64(photo.uri)
            request = EstimateCalciumRequest(
                image_base64=image_base64,
                image_mime="image/jpeg",
                answers=answers_from_selection(selection),
                locale=self.locale,
                ui_version=self.ui_version,
            )
            log("photo_flow", "estimate_start", {"capture_id": photo.capture_id, "endpoint": "/api/estimateCalcium"})
            response = await self.api.estimate_calcium(
                self.device_install_id,
                request,
                request_id=str(uuid4()),
                cancel=token,
            )
        except ApiClientError as exc:
            return await self._handle_client_error(exc)
        except Exception as exc:
            error("photo_flow", "estimate_error_unknown", {"message": describe(exc)})
            retry = await self.prompter.ask_retry(ERROR_TITLE, f"{UNKNOWN_ERROR_MESSAGE}\n\nError code: unknown")
            return None if retry else self._cancelled()

        log("photo_flow", "estimate_success", {"capture_id": photo.capture_id, "calcium_mg": response.calcium_mg})
        self.navigator.show_result(response)
        return "success"

    async def _handle_client_error(self, exc: ApiClientError) -> Optional[SubmitOutcome]:
        error(
            "photo_flow",
            "estimate_error",
            {"kind": exc.kind, "url": exc.url, "status": exc.status, "message": exc.message_dev, "trace_id": exc.trace_id},
        )
        if exc.kind == "cancel":
            return self._cancelled()

        message = f"{exc.message_user}\n\nError code: {exc.trace_id}"
        if not exc.retryable:
            self.prompter.alert(ERROR_TITLE, message)
            return "failed"

        details = None
        if self.show_details:
            details = "\n".join([f"URL: {exc.url}", f"Status: {exc.status or 'n/a'}", f"Method: {exc.method}"])
        retry = await self.prompter.ask_retry(ERROR_TITLE, message, details)
        return None if retry else self._cancelled()

    def _cancelled(self) -> SubmitOutcome:
        self.navigator.go_back()
        return "cancelled"
