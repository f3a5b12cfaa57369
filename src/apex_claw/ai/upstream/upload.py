"""Image upload to the upstream file store."""

from __future__ import annotations

import uuid

import httpx

from apex_claw.ai.models import FileRef
from apex_claw.errors import UpstreamError, UpstreamTransientError, upstream_error_for_status
from apex_claw.log import get_logger

logger = get_logger(__name__)

UPLOAD_PATH = "/api/v1/files/"


async def upload_file(
    http: httpx.AsyncClient,
    token: str,
    data: bytes,
    filename: str,
    origin: str = "https://chat.z.ai",
) -> FileRef:
    """Upload *data* as a multipart ``file`` field and describe the stored blob."""
    headers = {
        "Authorization": f"Bearer {token}",
        "Origin": origin,
        "Referer": f"{origin}/",
    }
    try:
        response = await http.post(UPLOAD_PATH, headers=headers, files={"file": (filename, data)})
    except httpx.TransportError as e:
        raise UpstreamTransientError(f"upload request failed: {e}") from e

    if response.status_code not in (200, 201):
        raise upstream_error_for_status(response.status_code, response.text[:500])

    try:
        body = response.json()
    except ValueError as e:
        raise UpstreamError(f"upload response is not JSON: {e}") from e

    file_id = str(body.get("id", ""))
    meta = body.get("meta") or {}
    ref = FileRef(
        id=file_id,
        url=f"/api/v1/files/{file_id}",
        name=body.get("filename") or filename,
        size=int(meta.get("size") or len(data)),
        item_id=str(uuid.uuid4()),
        raw=body,
    )
    logger.info("upstream_file_uploaded", file_id=file_id, size=ref.size)
    return ref
