"""Title/slug/path lookup index used for reference resolution.

The index is immutable: ``with_note`` and ``without_note`` return a new index
that shares unchanged buckets with the old one, so the graph store can swap it
together with the rest of a snapshot.
"""

import re
from pathlib import PurePosixPath
from typing import NamedTuple

from notegraph.domain.note import NoteRecord

_SLUG_SEPARATORS = re.compile(r"[\W_]+", re.UNICODE)


def slugify(value: str) -> str:
    """Lowercase a title and collapse punctuation, whitespace and underscores to '-'."""
    return _SLUG_SEPARATORS.sub("-", value.casefold()).strip("-")


def normalize_path(path: str) -> str:
    normalized = path.strip().replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized.strip("/")


def path_keys(path: str) -> set[str]:
    """All lookup keys for a canonical path: as stored and without '.md'."""
    normalized = normalize_path(path)
    if not normalized:
        return set()
    keys = {normalized}
    if normalized.lower().endswith(".md"):
        keys.add(normalized[:-3])
    return keys


class IndexEntry(NamedTuple):
    title: str
    paths: frozenset[str]
    stem: str
    modified: float


class CorpusIndex:
    """Lookup structures for every note known to the corpus."""

    def __init__(self) -> None:
        self._entries: dict[str, IndexEntry] = {}
        self._paths: dict[str, frozenset[str]] = {}
        self._titles: dict[str, frozenset[str]] = {}
        self._folded_titles: dict[str, frozenset[str]] = {}
        self._slugs: dict[str, frozenset[str]] = {}
        self._stems: dict[str, frozenset[str]] = {}

    def __contains__(self, note_id: object) -> bool:
        return note_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @classmethod
    def from_notes(cls, notes: list[NoteRecord]) -> "CorpusIndex":
        index = cls()
        for note in notes:
            index = index.with_note(note)
        return index

    def modified(self, note_id: str) -> float:
        entry = self._entries.get(note_id)
        return entry.modified if entry else 0.0

    def note_ids(self) -> set[str]:
        return set(self._entries)

    def by_path(self, path: str) -> frozenset[str]:
        return self._paths.get(normalize_path(path), frozenset())

    def by_title(self, title: str) -> frozenset[str]:
        return self._titles.get(title, frozenset())

    def by_folded_title(self, title: str) -> frozenset[str]:
        return self._folded_titles.get(title.casefold(), frozenset())

    def by_slug(self, title: str) -> frozenset[str]:
        slug = slugify(title)
        if not slug:
            return frozenset()
        return self._slugs.get(slug, frozenset())

    def by_stem(self, stem: str) -> frozenset[str]:
        return self._stems.get(stem.casefold(), frozenset())

    def titles(self) -> dict[str, str]:
        """Map of note id to title."""
        return {note_id: entry.title for note_id, entry in self._entries.items()}

    def stems(self) -> dict[str, str]:
        return {note_id: entry.stem for note_id, entry in self._entries.items() if entry.stem}

    def with_note(self, note: NoteRecord) -> "CorpusIndex":
        """Return a new index containing (or refreshing) the given note."""
        index = self._copy()
        if note.id in index._entries:
            index._drop(note.id)

        entry = IndexEntry(
            title=note.title,
            paths=frozenset(path_keys(note.path)),
            stem=note.stem,
            modified=note.modified,
        )
        index._entries[note.id] = entry
        for path in entry.paths:
            _add(index._paths, path, note.id)
        _add(index._titles, entry.title, note.id)
        _add(index._folded_titles, entry.title.casefold(), note.id)
        slug = slugify(entry.title)
        if slug:
            _add(index._slugs, slug, note.id)
        if entry.stem:
            _add(index._stems, entry.stem.casefold(), note.id)
        return index

    def without_note(self, note_id: str) -> "CorpusIndex":
        if note_id not in self._entries:
            return self
        index = self._copy()
        index._drop(note_id)
        return index

    def lookup_keys(self, note_id: str) -> set[str]:
        """Every normalized key a reference could use to reach the note."""
        entry = self._entries.get(note_id)
        if entry is None:
            return {note_id}
        keys = {note_id, entry.title.casefold(), slugify(entry.title)}
        keys.update(path.casefold() for path in entry.paths)
        if entry.stem:
            keys.add(entry.stem.casefold())
        keys.discard("")
        return keys

    def _drop(self, note_id: str) -> None:
        entry = self._entries.pop(note_id)
        for path in entry.paths:
            _discard(self._paths, path, note_id)
        _discard(self._titles, entry.title, note_id)
        _discard(self._folded_titles, entry.title.casefold(), note_id)
        _discard(self._slugs, slugify(entry.title), note_id)
        if entry.stem:
            _discard(self._stems, entry.stem.casefold(), note_id)

    def _copy(self) -> "CorpusIndex":
        index = CorpusIndex()
        index._entries = dict(self._entries)
        index._paths = dict(self._paths)
        index._titles = dict(self._titles)
        index._folded_titles = dict(self._folded_titles)
        index._slugs = dict(self._slugs)
        index._stems = dict(self._stems)
        return index


def _add(bucket: dict[str, frozenset[str]], key: str, note_id: str) -> None:
    bucket[key] = bucket.get(key, frozenset()) | {note_id}


def _discard(bucket: dict[str, frozenset[str]], key: str, note_id: str) -> None:
    remaining = bucket.get(key, frozenset()) - {note_id}
    if remaining:
        bucket[key] = remaining
    else:
        bucket.pop(key, None)


def target_stem(target: str) -> str:
    """File-name part of a reference target, without a '.md' suffix."""
    name = PurePosixPath(normalize_path(target)).name
    if name.lower().endswith(".md"):
        return name[:-3]
    return name


def reference_keys(target: str) -> set[str]:
    """Normalized keys a reference target could match, see ``CorpusIndex.lookup_keys``."""
    keys = {target, target.casefold(), slugify(target), target_stem(target).casefold()}
    keys.update(key.casefold() for key in path_keys(target))
    keys.discard("")
    return keys
