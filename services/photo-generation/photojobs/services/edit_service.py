from typing import Any, Optional

import structlog

from photojobs.core.exceptions import ValidationException
from photojobs.domain.interfaces import QueueProvider
from photojobs.domain.models import EditSubmitBody, QueueStatus
from photojobs.services.model_catalog import clamp_num_variants, collect_image_urls, resolve_model

logger = structlog.get_logger()


class EditService:
    """
    Server side of the edit endpoint: validates caller input and relays it to the inference queue.
    Jobs are always queued (sync_mode off); clients poll status() with the returned requestId.
    """

    def __init__(self, provider: QueueProvider, default_model: str):
        self.provider = provider
        self.default_model = default_model

    async def submit(self, body: Optional[EditSubmitBody]) -> dict[str, Any]:
        body = body or EditSubmitBody()
        model = resolve_model(body.model, self.default_model)

        prompt = (body.prompt or "").strip()
        image_urls = collect_image_urls(body.image_url, body.image_urls)

        if not prompt:
            raise ValidationException("prompt is required")
        if not image_urls:
            raise ValidationException("image_url (or image_urls) is required")

        payload = {
            "prompt": prompt,
            "image_urls": image_urls,
            "num_images": clamp_num_variants(body.num_images),
            "output_format": body.output_format.value,
            "sync_mode": False,
        }
        request_id = await self.provider.submit(model, payload)

        logger.info("edit_job_queued", model=model, request_id=request_id, images=len(image_urls))
        return {"requestId": request_id, "model": model}

    async def status(self, request_id: Optional[str], model: Optional[str]) -> dict[str, Any]:
        request_id = (request_id or "").strip()
        if not request_id:
            raise ValidationException("requestId is required")

        resolved = resolve_model(model, self.default_model)
        snapshot = await self.provider.status(resolved, request_id)

        if snapshot.status is not QueueStatus.COMPLETED:
            response: dict[str, Any] = {
                "requestId": request_id,
                "model": resolved,
                "status": snapshot.status.value,
                "queue_position": snapshot.queue_position,
            }
            if snapshot.error:
                response["error"] = snapshot.error
            return response

        return {
            "requestId": request_id,
            "model": resolved,
            "status": snapshot.status.value,
            "images": [img.model_dump(exclude_none=True) for img in snapshot.images],
        }
