"""Conversation data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from apex_claw.core.types import Role


@dataclass(frozen=True, slots=True)
class FileRef:
    """Reference to a blob already uploaded to the upstream."""

    id: str
    url: str
    name: str
    size: int
    media: str = "image"  # mime category
    type: str = "image"
    status: str = "uploaded"
    item_id: str = ""
    raw: Optional[dict[str, Any]] = None  # upload response body, echoed back in requests

    def to_request_dict(self, ref_user_msg_id: str) -> dict[str, Any]:
        """Serialize for the ``files`` array of a completion request."""
        if self.raw is not None:
            data = dict(self.raw)
        else:
            data = {
                "id": self.id,
                "url": self.url,
                "name": self.name,
                "status": self.status,
                "size": self.size,
                "error": "",
            }
        data.update(
            {
                "type": self.type,
                "itemId": self.item_id,
                "media": self.media,
                "ref_user_msg_id": ref_user_msg_id,
            }
        )
        return data


@dataclass
class Message:
    role: Role
    content: str
    name: Optional[str] = None  # tool name, for role == tool
    attachments: list[FileRef] = field(default_factory=list)

    def is_error_observation(self) -> bool:
        return self.role == Role.TOOL and self.content.lstrip().lower().startswith("error:")
