"""Note domain models."""

from pathlib import PurePosixPath

from pydantic import BaseModel, field_validator


class NoteRecord(BaseModel):
    """Read-through projection of a note owned by the external note service.

    Attributes:
        id: Stable note identity (MD5 hash of relative file path or a generated id)
        title: Note title extracted from the first header or the filename
        path: Canonical path of the note, relative to the workspace
        content: Raw markdown content
        created: Creation timestamp (seconds since epoch)
        modified: Modification timestamp (seconds since epoch)
        tags: Tags without the leading '#', de-duplicated in order of appearance
        folder_path: Relative folder path
    """

    id: str
    title: str
    path: str = ""
    content: str = ""
    created: float = 0.0
    modified: float = 0.0
    tags: list[str] = []
    folder_path: str = ""

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, tags: list[str]) -> list[str]:
        normalized: list[str] = []
        for tag in tags:
            cleaned = tag.strip().lstrip("#").strip()
            if cleaned and cleaned not in normalized:
                normalized.append(cleaned)
        return normalized

    @property
    def stem(self) -> str:
        """File name of the note without its extension."""
        if not self.path:
            return ""
        return PurePosixPath(self.path.replace("\\", "/")).stem

    @property
    def word_count(self) -> int:
        return len(self.content.split())
