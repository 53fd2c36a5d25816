from typing import Any, Optional

import httpx
import structlog
from pydantic import ValidationError

from photojobs.core.exceptions import UpstreamError
from photojobs.domain.interfaces import QueueProvider
from photojobs.domain.models import GeneratedImage, QueueStatus, StatusSnapshot

logger = structlog.get_logger()


def app_id(model: str) -> str:
    """
    fal addresses queue requests by "owner/app", without the endpoint sub-path.
    e.g. fal-ai/bytedance/seedream/v4.5/edit -> fal-ai/bytedance
    """
    parts = [p for p in model.split("/") if p]
    if len(parts) < 2:
        raise ValueError(f"Invalid fal model id: {model}")
    return "/".join(parts[:2])


def _detail(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
            if value:
                return str(value)
    return resp.text or f"HTTP {resp.status_code}"


def _read_object(resp: httpx.Response) -> dict[str, Any]:
    try:
        data = resp.json()
    except ValueError as e:
        raise UpstreamError(f"Provider returned invalid JSON: {resp.text[:200]}", original_error=e) from e
    if not isinstance(data, dict):
        raise UpstreamError(f"Provider returned unexpected payload: {resp.text[:200]}")
    return data


class FalQueueAPIProvider(QueueProvider):
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://queue.fal.run",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Authorization": f"Key {self.api_key}"},
            transport=self._transport,
        )

    async def submit(self, model: str, payload: dict[str, Any]) -> str:
        async with self._client() as client:
            logger.info("fal_queue_submit", model=model)
            try:
                resp = await client.post(f"/{model}", json=payload)
            except httpx.HTTPError as e:
                raise UpstreamError(f"fal queue unreachable: {e}", original_error=e) from e

            if not resp.is_success:
                raise UpstreamError(f"Provider rejected task: {_detail(resp)}", status_code=resp.status_code)

            request_id = _read_object(resp).get("request_id")
            if not isinstance(request_id, str) or not request_id:
                raise UpstreamError("Provider returned no request_id")
            return request_id

    async def status(self, model: str, request_id: str) -> StatusSnapshot:
        base = f"/{app_id(model)}/requests/{request_id}"
        async with self._client() as client:
            try:
                resp = await client.get(f"{base}/status", params={"logs": 0})
                if not resp.is_success:
                    raise UpstreamError(f"Status lookup failed: {_detail(resp)}", status_code=resp.status_code)

                data = _read_object(resp)
                try:
                    state = QueueStatus(data.get("status"))
                except ValueError as e:
                    raise UpstreamError(f"Unknown queue status: {data.get('status')}", original_error=e) from e

                if state is not QueueStatus.COMPLETED:
                    return StatusSnapshot(
                        status=state, queue_position=data.get("queue_position"), error=data.get("error")
                    )

                # Completed: fetch the result payload
                result = await client.get(base)
                if not result.is_success:
                    raise UpstreamError(f"Result lookup failed: {_detail(result)}", status_code=result.status_code)
            except httpx.HTTPError as e:
                raise UpstreamError(f"fal queue unreachable: {e}", original_error=e) from e

        output = _read_object(result)
        raw_images = output.get("images") or ([output["image"]] if output.get("image") else [])
        try:
            images = [GeneratedImage.model_validate(img) for img in raw_images]
        except ValidationError as e:
            raise UpstreamError("Provider returned malformed images", original_error=e) from e

        logger.info("fal_queue_completed", model=model, request_id=request_id, images=len(images))
        return StatusSnapshot(status=state, images=images)
