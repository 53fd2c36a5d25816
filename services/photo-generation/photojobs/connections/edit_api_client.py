from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from photojobs.core.config import Settings
from photojobs.core.exceptions import PollError, SubmissionError
from photojobs.domain.interfaces import JobSubmitter, StatusSource
from photojobs.domain.models import GenerationRequest, JobHandle, StatusSnapshot

logger = structlog.get_logger()


def _read_json(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_field(data: dict[str, Any]) -> Optional[str]:
    error = data.get("error")
    if isinstance(error, str) and error.strip():
        return error.strip()
    return None


class EditApiClient(JobSubmitter, StatusSource):
    """
    Talks to the queue-backed edit endpoint.
    POST submits a job and returns {requestId, model}; GET with requestId/model returns its status.
    """

    def __init__(
        self,
        base_url: str,
        path: str = "/api/fal/nano-banana/edit",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.path = path
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "EditApiClient":
        return cls(base_url=settings.EDIT_API_BASE_URL, path=settings.EDIT_API_PATH, timeout=settings.REQUEST_TIMEOUT)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport)

    @staticmethod
    def build_payload(request: GenerationRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "prompt": request.prompt,
            "num_images": request.num_variants,
            "output_format": request.output_format.value,
            "sync_mode": False,
        }
        if len(request.input_images) == 1:
            payload["image_url"] = request.input_images[0]
        else:
            payload["image_urls"] = list(request.input_images)
        return payload

    async def submit(self, request: GenerationRequest) -> JobHandle:
        async with self._client() as client:
            try:
                resp = await client.post(self.path, json=self.build_payload(request))
            except httpx.HTTPError as e:
                raise SubmissionError(f"Failed to submit generation: {e}", original_error=e) from e

        data = _read_json(resp)
        if not resp.is_success:
            raise SubmissionError(_error_field(data) or f"Failed to submit generation (HTTP {resp.status_code}).")

        # A 200 without a handle is still a failure
        request_id = data.get("requestId")
        if not isinstance(request_id, str) or not request_id.strip():
            raise SubmissionError("No requestId returned.")

        model = data.get("model")
        if not isinstance(model, str) or not model.strip():
            model = request.model

        handle = JobHandle(request_id=request_id.strip(), model=model.strip())
        logger.info("generation_submitted", request_id=handle.request_id, model=handle.model)
        return handle

    async def poll_once(self, handle: JobHandle) -> StatusSnapshot:
        params = {"requestId": handle.request_id, "model": handle.model}
        async with self._client() as client:
            try:
                resp = await client.get(self.path, params=params)
            except httpx.HTTPError as e:
                raise PollError(f"Failed to fetch generation status: {e}", original_error=e) from e

        data = _read_json(resp)
        if not resp.is_success:
            raise PollError(_error_field(data) or "Failed to fetch generation status.")

        try:
            return StatusSnapshot.model_validate(data)
        except ValidationError as e:
            raise PollError("Malformed generation status response.", original_error=e) from e
