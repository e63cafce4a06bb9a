from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class FilePreview:
    token: str
    data: bytes
    mime_type: str
    filename: str

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @property
    def url(self) -> str:
        return f"/preview/{self.token}"


class PreviewStore:
    """In-memory, revocable references to uploaded files.

    A token stays resolvable until it is revoked. Callers own the lifecycle and
    must revoke a preview once it is superseded or the workflow resets.
    """

    def __init__(self) -> None:
        self._items: dict[str, FilePreview] = {}

    def create(self, data: bytes, mime_type: str, filename: str) -> FilePreview:
        preview = FilePreview(token=uuid4().hex, data=data, mime_type=mime_type, filename=filename)
        self._items[preview.token] = preview
        return preview

    def get(self, token: str) -> FilePreview | None:
        return self._items.get(token)

    def revoke(self, token: str) -> bool:
        return self._items.pop(token, None) is not None

    def __len__(self) -> int:
        return len(self._items)
