"""Note source backed by a folder of markdown files."""

import re
from hashlib import md5
from pathlib import Path
from typing import Iterator

from loguru import logger

from notegraph.domain.note import NoteRecord
from notegraph.note_sources.base import NoteSource

_TITLE_HEADER = re.compile(r"^#[ \t]+(?P<title>[^\n]+?)(?:[ \t]+#+)?[ \t]*$", re.MULTILINE)
_INLINE_TAG = re.compile(r"(?<![\w#&/\[])#(?P<tag>[A-Za-z][\w\-/]*)")
_FRONT_MATTER = re.compile(r"\A---\s*\n(?P<body>.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
_TAGS_LINE = re.compile(r"^tags:\s*(?P<tags>.*)$", re.MULTILINE)
_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)


def extract_title(content: str, fallback: str) -> str:
    """Title from the first level-one header, or the fallback (usually the file stem)."""
    match = _TITLE_HEADER.search(_CODE_BLOCK.sub("", content))
    if match:
        return match.group("title")
    return fallback


def extract_tags(content: str) -> list[str]:
    """Tags from a ``tags:`` front-matter line followed by inline ``#tag`` tokens."""
    tags: list[str] = []

    front_matter = _FRONT_MATTER.match(content)
    if front_matter:
        line = _TAGS_LINE.search(front_matter.group("body"))
        if line:
            raw = line.group("tags").strip().strip("[]")
            tags.extend(tag.strip().strip("'\"") for tag in re.split(r"[,\s]+", raw) if tag.strip())
        content = content[front_matter.end() :]

    tags.extend(match.group("tag") for match in _INLINE_TAG.finditer(_CODE_BLOCK.sub("", content)))
    return tags


class LocalNoteSource(NoteSource):
    """Reads notes from a folder of markdown files.

    Note ids are the MD5 hash of the file path relative to the folder, so
    they stay stable across runs. Excalidraw drawings are skipped.
    """

    def __init__(self, folder: str | Path):
        """Initialize the source.

        Args:
            folder: Root folder of the notes
        """
        self.folder = Path(folder)

    def get_note(self, note_id: str) -> NoteRecord | None:
        for file in self._get_markdown_files():
            if self.generate_note_id(file, self.folder) == note_id:
                return self._read_note(file)
        return None

    def list_note_ids(self) -> set[str]:
        return {self.generate_note_id(file, self.folder) for file in self._get_markdown_files()}

    def iter_notes(self) -> Iterator[NoteRecord]:
        for file in self._get_markdown_files():
            yield self._read_note(file)

    def _get_markdown_files(self) -> list[Path]:
        """Get all markdown files, excluding excalidraw files."""
        if not self.folder.exists():
            logger.warning(f"Notes folder {self.folder} does not exist")
            return []
        all_files = sorted(self.folder.rglob("*.md"))
        return [f for f in all_files if not f.name.endswith(".excalidraw.md")]

    def _read_note(self, file: Path) -> NoteRecord:
        logger.debug(f"Reading {file}")

        with open(file, "r", encoding="utf-8") as f:
            content = f.read()

        relative_path = file.relative_to(self.folder)
        folder_path = relative_path.parent.as_posix() if relative_path.parent != Path(".") else ""
        stat = file.stat()

        return NoteRecord(
            id=self.generate_note_id(file, self.folder),
            title=extract_title(content, file.stem),
            path=relative_path.as_posix(),
            content=content,
            created=stat.st_ctime,
            modified=stat.st_mtime,
            tags=extract_tags(content),
            folder_path=folder_path,
        )

    @staticmethod
    def generate_note_id(file: Path, base_folder: Path) -> str:
        """Generate a unique note ID from file path."""
        return md5(file.relative_to(base_folder).as_posix().encode()).hexdigest()
