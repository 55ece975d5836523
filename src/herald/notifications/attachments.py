"""Attachment resolution: references on a notification to transmittable files.

Storage of the blobs themselves (upload, checksum dedup, cleanup) lives
outside Herald; the engine only needs ``resolve``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from herald.channels.models import ResolvedAttachment
from herald.notifications.errors import AttachmentError
from herald.notifications.models import AttachmentRef


@runtime_checkable
class AttachmentResolver(Protocol):
    async def resolve(self, refs: list[AttachmentRef]) -> list[ResolvedAttachment]: ...


class InMemoryAttachmentResolver:
    """Resolves references against files held in memory, keyed by file id."""

    def __init__(self, files: Iterable[ResolvedAttachment] = ()) -> None:
        self._files: dict[str, ResolvedAttachment] = {}
        for f in files:
            self.add(f)

    def add(self, attachment: ResolvedAttachment) -> None:
        self._files[attachment.file_id] = attachment

    async def resolve(self, refs: list[AttachmentRef]) -> list[ResolvedAttachment]:
        missing = [ref.file_id for ref in refs if ref.file_id not in self._files]
        if missing:
            raise AttachmentError(f"Unknown attachment file(s): {', '.join(missing)}")
        resolved = []
        for ref in refs:
            stored = self._files[ref.file_id]
            description = ref.description or stored.description
            resolved.append(stored.model_copy(update={"description": description}))
        return resolved
