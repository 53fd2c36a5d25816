import pytest

from photojobs.core.exceptions import ValidationException
from photojobs.services.model_catalog import (
    SUPPORTED_MODELS,
    clamp_num_variants,
    collect_image_urls,
    resolve_model,
)

DEFAULT = "fal-ai/gemini-25-flash-image/edit"


@pytest.mark.parametrize("value", [None, "", "   ", 42])
def test_resolve_model_falls_back_to_default(value):
    assert resolve_model(value, DEFAULT) == DEFAULT


def test_resolve_model_strips_whitespace():
    assert resolve_model("  fal-ai/nano-banana-pro/edit ", DEFAULT) == "fal-ai/nano-banana-pro/edit"


def test_resolve_model_rejects_unknown_model():
    with pytest.raises(ValidationException) as exc:
        resolve_model("fal-ai/flux/dev", DEFAULT)

    assert "Unsupported model" in str(exc.value)
    for model in SUPPORTED_MODELS:
        assert model in str(exc.value)


def test_resolve_model_rejects_unsupported_default():
    with pytest.raises(ValidationException):
        resolve_model(None, "fal-ai/something/else")


@pytest.mark.parametrize(
    "value,expected",
    [
        (1, 1),
        (4, 4),
        (0, 1),
        (-3, 1),
        (9, 4),
        (2.9, 2),
        ("3", 3),
        ("abc", 1),
        (None, 1),
        (float("nan"), 1),
        (float("inf"), 1),
    ],
)
def test_clamp_num_variants(value, expected):
    assert clamp_num_variants(value) == expected


def test_collect_image_urls_prefers_list():
    assert collect_image_urls("https://single", ["https://a", "https://b"]) == ["https://a", "https://b"]


def test_collect_image_urls_falls_back_to_single():
    assert collect_image_urls("https://single", []) == ["https://single"]
    assert collect_image_urls("https://single", None) == ["https://single"]


def test_collect_image_urls_empty():
    assert collect_image_urls(None, None) == []
