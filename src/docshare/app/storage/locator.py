"""Storage locator resolution.

A document's ``file_path`` is either a path inside the platform bucket or a
``gdrive://<file id>`` reference to the owner's Google Drive. The prefix is
inspected once here; everything downstream dispatches on the returned
variant type.
"""

from __future__ import annotations

from dataclasses import dataclass

DRIVE_SCHEME = 'gdrive://'


@dataclass(frozen=True, slots=True)
class InternalLocator:
    """Object in the platform storage bucket."""

    raw_path: str


@dataclass(frozen=True, slots=True)
class ExternalLocator:
    """File in the owner's Google Drive."""

    file_id: str


StorageLocator = InternalLocator | ExternalLocator


def resolve_locator(path: str | None) -> StorageLocator:
    """Classify a stored file path.

    Raises:
        ValueError: The path is empty or names no Drive file.
    """
    if not path or not path.strip():
        raise ValueError('document has no storage path')
    if path.startswith(DRIVE_SCHEME):
        file_id = path[len(DRIVE_SCHEME):].strip()
        if not file_id:
            raise ValueError('drive locator has no file id')
        return ExternalLocator(file_id=file_id)
    return InternalLocator(raw_path=path)

