"""
Suggest a name and category for an item photo.

Uses Gemini when an API key is configured. Without a key, or when the call
fails, a neutral placeholder comes back instead so adding an item never
fails because of classification.
"""

import base64
import json
from typing import Optional

import google.generativeai as genai
from pydantic import ValidationError

from westock.config import get_settings
from westock.logging_config import get_child_logger, tracer
from westock.models.inventory_item import AnalyzeImageResponse

logger = get_child_logger("classifier")

PLACEHOLDER_NAME = "未命名商品"
UNSORTED_CATEGORY = "待分类"
MISC_CATEGORY = "杂项"

PROMPT = "Analyze this product. Return JSON with 'name' (short, Chinese) and 'category'."

_model: Optional[genai.GenerativeModel] = None


def _api_key() -> Optional[str]:
    key = get_settings().gemini_api_key
    # Short values are template placeholders, not real keys
    if not key or len(key) < 10:
        return None
    return key


def _get_model(api_key: str) -> genai.GenerativeModel:
    global _model
    if _model is None:
        genai.configure(api_key=api_key)
        _model = genai.GenerativeModel(
            model_name=get_settings().gemini_model,
            generation_config={
                "temperature": 0.1,
                "response_mime_type": "application/json",
            },
        )
    return _model


async def analyze_item_image(image_b64: str, mime_type: str) -> AnalyzeImageResponse:
    """
    Args:
        image_b64: Base64 image data, without the data-URL prefix
        mime_type: Image type, e.g. "image/jpeg"
    """
    api_key = _api_key()
    if api_key is None:
        return AnalyzeImageResponse(name=PLACEHOLDER_NAME, category=UNSORTED_CATEGORY)

    with tracer.start_as_current_span("analyze_item_image") as span:
        span.set_attribute("image.mime_type", mime_type)
        try:
            response = await _get_model(api_key).generate_content_async(
                [{"mime_type": mime_type, "data": base64.b64decode(image_b64)}, PROMPT]
            )
            text = response.text
            if not text:
                raise ValueError("No response from model")
            return AnalyzeImageResponse.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            span.set_attribute("error", True)
            logger.warning(f"Unusable classification response: {e}")
        except Exception as e:
            span.set_attribute("error", True)
            span.set_attribute("error.type", type(e).__name__)
            logger.error(f"Image classification failed: {e}", exc_info=True)

    return AnalyzeImageResponse(name=PLACEHOLDER_NAME, category=MISC_CATEGORY)
