"""Request signing and model-name resolution for the chat.z.ai upstream."""

from __future__ import annotations

import base64
import hashlib
import hmac

SIGNING_SECRET = "key-@@@@)))()((9))-xxxx&&&%%%%%"
SIGNATURE_PERIOD_MS = 5 * 60 * 1000

THINKING_SUFFIX = "-thinking"
SEARCH_SUFFIX = "-search"

BASE_MODEL_MAPPING = {
    "GLM-5": "glm-5",
    "GLM-4.7": "glm-4.7",
}


def _hmac_sha256_hex(key: bytes, data: str) -> str:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).hexdigest()


def generate_signature(user_id: str, request_id: str, content: str, timestamp_ms: int) -> str:
    """Sign a completion request.

    The inner key rotates every five minutes; the outer HMAC covers the
    request id, timestamp, user id and the latest user message.
    """
    request_info = f"requestId,{request_id},timestamp,{timestamp_ms},user_id,{user_id}"
    content_b64 = base64.b64encode(content.encode("utf-8")).decode("ascii")
    sign_data = f"{request_info}|{content_b64}|{timestamp_ms}"

    period = timestamp_ms // SIGNATURE_PERIOD_MS
    period_key = _hmac_sha256_hex(SIGNING_SECRET.encode("utf-8"), str(period))
    return _hmac_sha256_hex(period_key.encode("utf-8"), sign_data)


def parse_model_name(model: str) -> tuple[str, bool, bool]:
    """Split ``-thinking`` / ``-search`` suffixes (any order, repeated) off a model id.

    Returns ``(base, thinking, search)``.
    """
    base = model
    thinking = search = False
    while True:
        if base.endswith(THINKING_SUFFIX):
            thinking = True
            base = base[: -len(THINKING_SUFFIX)]
        elif base.endswith(SEARCH_SUFFIX):
            search = True
            base = base[: -len(SEARCH_SUFFIX)]
        else:
            return base, thinking, search


def is_thinking_model(model: str) -> bool:
    return parse_model_name(model)[1]


def is_search_model(model: str) -> bool:
    return parse_model_name(model)[2]


def get_target_model(model: str) -> str:
    """Upstream model id for *model*; unmapped names pass through unchanged."""
    base, _, _ = parse_model_name(model)
    return BASE_MODEL_MAPPING.get(base, model)
