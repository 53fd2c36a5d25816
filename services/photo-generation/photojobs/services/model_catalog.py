import math
from typing import Any, Optional

from photojobs.core.exceptions import ValidationException

# Allowlist so the edit endpoint can't be used to call arbitrary fal models.
SUPPORTED_MODELS = [
    "fal-ai/gemini-25-flash-image/edit",
    "fal-ai/nano-banana-pro/edit",
    "fal-ai/bytedance/seedream/v4.5/edit",
]

MIN_VARIANTS = 1
MAX_VARIANTS = 4


def resolve_model(value: Any, default_model: str) -> str:
    model = value.strip() if isinstance(value, str) and value.strip() else default_model
    if model not in SUPPORTED_MODELS:
        raise ValidationException(f"Unsupported model. Allowed: {', '.join(SUPPORTED_MODELS)}")
    return model


def clamp_num_variants(value: Any) -> int:
    """Floors to an int in [1, 4]; anything non-numeric counts as 1."""
    try:
        raw = float(value)
    except (TypeError, ValueError):
        raw = 1.0
    if not math.isfinite(raw):
        raw = 1.0
    return min(max(math.floor(raw), MIN_VARIANTS), MAX_VARIANTS)


def collect_image_urls(image_url: Optional[str], image_urls: Optional[list[str]]) -> list[str]:
    """image_urls wins when it has entries, otherwise the single image_url."""
    if image_urls:
        return [u for u in image_urls if u]
    if image_url:
        return [image_url]
    return []
