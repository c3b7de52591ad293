"""
Upload pairing and polling protocol.

Desktop: create a pairing token, show its URL as a QR code, poll the
job status until it is terminal, then fetch the parsed invoice lines
once. Mobile: validate the token, upload exactly one image.

Status only moves forward:
    PENDING → UPLOADING → PROCESSING → {COMPLETED | FAILED | EXPIRED}
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, Union
import structlog

from integrations.api_client import ApiClient, parse_response
from models.upload import (
    ParsedItemsResponse,
    ParsedLineItem,
    UploadPairing,
    UploadStatus,
    UploadStatusReport,
    UploadTokenValidation,
    is_terminal_upload_status,
    is_valid_upload_status_transition,
)
from exceptions import (
    AppError,
    ExpiredError,
    InvalidUploadImageError,
    NetworkError,
    ExternalServiceError,
    NotFoundError,
    UploadExpiredError,
    UploadFailedError,
    UploadTokenNotFoundError,
    UploadTokenUnavailableError,
)

logger = structlog.get_logger(__name__)


CREATE_PATH = "/upload-session/create"
STATUS_PATH = "/upload-session/status"
ITEMS_PATH = "/upload-session/items"
VALIDATE_PATH = "/upload-session/validate"
UPLOAD_PATH = "/upload-session/upload"

DEFAULT_POLL_INTERVAL_SECONDS = 2.5
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

CompletedCallback = Callable[[list[ParsedLineItem]], Union[None, Awaitable[None]]]


class UploadPairingClient:
    """Desktop-side (authenticated) upload session endpoints."""

    def __init__(self, api: ApiClient, poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS):
        self.api = api
        self.poll_interval_seconds = poll_interval_seconds

    async def create_pairing(self) -> UploadPairing:
        """Obtain a fresh single-use token and the URL the phone should open."""
        data = await self.api.post(CREATE_PATH)
        pairing = parse_response(UploadPairing, data, CREATE_PATH)
        logger.info(
            "upload_pairing_created",
            token=pairing.token,
            expires_in_seconds=pairing.expires_in_seconds
        )
        return pairing

    async def get_status(self, token: str) -> UploadStatusReport:
        """
        Raises:
            UploadTokenNotFoundError: If the server does not know the token
            UploadExpiredError: If the server answers 410 Gone
        """
        try:
            data = await self.api.get(STATUS_PATH, params={"token": token})
        except NotFoundError:
            raise UploadTokenNotFoundError(token)
        except ExpiredError as e:
            raise UploadExpiredError(token, e.message)
        return parse_response(UploadStatusReport, data, STATUS_PATH)

    async def get_parsed_items(self, token: str) -> list[ParsedLineItem]:
        try:
            data = await self.api.get(ITEMS_PATH, params={"token": token})
        except NotFoundError:
            raise UploadTokenNotFoundError(token)
        response = parse_response(ParsedItemsResponse, data or {}, ITEMS_PATH)
        logger.info("upload_parsed_items_fetched", token=token, count=len(response.items))
        return response.items

    def poll(
        self,
        token: str,
        on_completed: Optional[CompletedCallback] = None,
        interval_seconds: Optional[float] = None
    ) -> "UploadStatusPoller":
        """Build a poller for a token. Start it with start() or `async with`."""
        return UploadStatusPoller(
            self,
            token,
            interval_seconds=self.poll_interval_seconds if interval_seconds is None else interval_seconds,
            on_completed=on_completed
        )


class UploadStatusPoller:
    """
    Cancellable polling loop for one pairing token.

    The loop ends on the first terminal status: COMPLETED returns the
    parsed items (fetched once), FAILED/EXPIRED raise. stop() cancels it
    at any tick boundary; no tick fires after stop() or after a terminal
    status. Using the poller as an async context manager guarantees stop()
    on every exit path.

    Usage:
        async with client.poll(pairing.token) as poller:
            items = await poller.wait()
    """

    def __init__(
        self,
        client: UploadPairingClient,
        token: str,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        on_completed: Optional[CompletedCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.client = client
        self.token = token
        self.interval_seconds = interval_seconds
        self.on_completed = on_completed
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self.last_status: Optional[UploadStatus] = None
        self.error_message: Optional[str] = None
        self.error: Optional[AppError] = None
        self.poll_count = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_terminal(self) -> bool:
        return self.last_status is not None and is_terminal_upload_status(self.last_status)

    def start(self) -> asyncio.Task:
        """Start polling (idempotent while running)."""
        if self._task is None:
            logger.info("upload_polling_started", token=self.token, interval=self.interval_seconds)
            self._task = asyncio.create_task(self._run())
        return self._task

    async def wait(self) -> list[ParsedLineItem]:
        """
        Wait for the terminal outcome.

        Returns:
            Parsed line items when the job COMPLETED

        Raises:
            UploadFailedError: Job FAILED
            UploadExpiredError: Token EXPIRED (or vanished)
            asyncio.CancelledError: Polling was stopped first
        """
        return await self.start()

    async def stop(self) -> None:
        """
        Cancel the loop; returns once no further tick can fire.

        A FAILED/EXPIRED outcome that ended the loop first is kept on
        self.error rather than raised.
        """
        task = self._task
        if task is None:
            return
        if not task.done():
            task.cancel()
            await asyncio.wait([task])

        if task.cancelled():
            logger.info("upload_polling_cancelled", token=self.token, polls=self.poll_count)
            return
        error = task.exception()
        if error is not None and not isinstance(error, AppError):
            raise error

    async def __aenter__(self) -> "UploadStatusPoller":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def _run(self) -> list[ParsedLineItem]:
        try:
            while True:
                await self._sleep(self.interval_seconds)
                report = await self._tick()
                if report is None or not is_terminal_upload_status(report.status):
                    continue
                return await self._finish(report)
        except AppError as e:
            self.error = e
            raise
        finally:
            logger.debug("upload_polling_loop_exited", token=self.token, status=self.last_status)

    async def _tick(self) -> Optional[UploadStatusReport]:
        self.poll_count += 1
        try:
            report = await self.client.get_status(self.token)
        except UploadTokenNotFoundError:
            self.last_status = UploadStatus.EXPIRED
            raise UploadExpiredError(self.token, "Upload session no longer exists")
        except UploadExpiredError:
            self.last_status = UploadStatus.EXPIRED
            raise
        except (NetworkError, ExternalServiceError) as e:
            logger.warning("upload_poll_tick_failed", token=self.token, error=e.message)
            return None

        if self.last_status is not None and report.status != self.last_status:
            if not is_valid_upload_status_transition(self.last_status, report.status):
                logger.warning(
                    "upload_status_regression_ignored",
                    token=self.token,
                    current=self.last_status.value,
                    reported=report.status.value
                )
                return None

        if report.status != self.last_status:
            logger.info("upload_status_changed", token=self.token, status=report.status.value)
        self.last_status = report.status
        return report

    async def _finish(self, report: UploadStatusReport) -> list[ParsedLineItem]:
        self.error_message = report.error_message

        if report.status == UploadStatus.FAILED:
            logger.warning("upload_failed", token=self.token, error=report.error_message)
            raise UploadFailedError(self.token, report.error_message)

        if report.status == UploadStatus.EXPIRED:
            logger.warning("upload_expired", token=self.token, error=report.error_message)
            raise UploadExpiredError(self.token, report.error_message)

        items = await self.client.get_parsed_items(self.token)
        if self.on_completed is not None:
            result = self.on_completed(items)
            if inspect.isawaitable(result):
                await result
        logger.info("upload_completed", token=self.token, items=len(items), polls=self.poll_count)
        return items


class MobileUploadClient:
    """
    Phone-side (public) endpoints.

    A token accepts exactly one image and only while PENDING.
    """

    def __init__(self, api: ApiClient, max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES):
        self.api = api
        self.max_upload_bytes = max_upload_bytes

    async def validate_token(self, token: str) -> UploadTokenValidation:
        try:
            data = await self.api.get(VALIDATE_PATH, params={"token": token})
        except NotFoundError:
            raise UploadTokenNotFoundError(token)
        return parse_response(UploadTokenValidation, data, VALIDATE_PATH)

    async def upload_image(
        self,
        token: str,
        content: bytes,
        filename: str = "invoice.jpg",
        content_type: str = "image/jpeg"
    ) -> Any:
        """
        Upload the invoice photo for a token.

        Raises:
            InvalidUploadImageError: Not an image, empty, or too large
            UploadExpiredError: Token expired
            UploadTokenUnavailableError: Token already used or in use
        """
        if not content_type or not content_type.startswith("image/"):
            raise InvalidUploadImageError("Please select an image file")
        if not content:
            raise InvalidUploadImageError("Image file is empty")
        if len(content) > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise InvalidUploadImageError(f"File size must be less than {limit_mb}MB")

        validation = await self.validate_token(token)
        if validation.status == UploadStatus.EXPIRED:
            raise UploadExpiredError(token, validation.error_message)
        if not validation.accepts_upload:
            raise UploadTokenUnavailableError(token, validation.status.value)

        logger.info("upload_image_sending", token=token, size=len(content), content_type=content_type)
        try:
            result = await self.api.post(
                UPLOAD_PATH,
                params={"token": token},
                files={"image": (filename, content, content_type)}
            )
        except ExpiredError as e:
            raise UploadExpiredError(token, e.message)
        logger.info("upload_image_accepted", token=token)
        return result
