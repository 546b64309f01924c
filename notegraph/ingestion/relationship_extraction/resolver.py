"""Reference resolution for converting link targets to note IDs."""

from difflib import SequenceMatcher
from typing import Callable

from loguru import logger

from notegraph.config import TieBreakPolicy
from notegraph.domain.references import Reference

from .corpus_index import CorpusIndex, target_stem

SUGGESTION_CUTOFF = 0.6
MAX_SUGGESTIONS = 5


class ReferenceResolver:
    """Resolves reference targets against a corpus index snapshot.

    Resolution tries each strategy in order and stops at the first one that
    yields candidates:

    1. Exact note id or canonical path (with or without the '.md' suffix)
    2. Exact title, then case-insensitive title
    3. Slug-normalized title (punctuation and case insensitive)
    4. File name stem

    When several notes match at the same level the tie-break policy decides.
    The default, "most_recent", picks the most recently modified note and
    falls back to the lowest id for equal timestamps, so the outcome never
    depends on insertion order.
    """

    def __init__(self, tie_break_policy: TieBreakPolicy = "most_recent"):
        """Initialize resolver.

        Args:
            tie_break_policy: How to pick among equally good candidates
        """
        self.tie_break_policy = tie_break_policy

    def resolve(self, reference: Reference | str, index: CorpusIndex) -> str | None:
        """Resolve a reference (or bare target string) to a note ID.

        Args:
            reference: Parsed reference or target string
            index: Corpus index snapshot to resolve against

        Returns:
            Resolved note ID or None if the target is unresolved
        """
        _, candidates = self.candidates(reference, index)
        if not candidates:
            target = reference.target if isinstance(reference, Reference) else reference
            logger.debug(f"Could not resolve reference: {target}")
            return None
        return candidates[0]

    def candidates(self, reference: Reference | str, index: CorpusIndex) -> tuple[str, list[str]]:
        """Return the matching strategy and its candidates, best first.

        Exposed so callers can observe ambiguous references and how they
        were broken.

        Args:
            reference: Parsed reference or target string
            index: Corpus index snapshot

        Returns:
            Tuple of (strategy name, ordered candidate ids); ("", []) when unresolved
        """
        target = reference.target if isinstance(reference, Reference) else reference
        target = target.strip()
        if not target:
            return "", []

        strategies: list[tuple[str, Callable[[str, CorpusIndex], frozenset[str]]]] = [
            ("id_or_path", self._match_id_or_path),
            ("title", lambda t, idx: idx.by_title(t)),
            ("title_case_insensitive", lambda t, idx: idx.by_folded_title(t)),
            ("slug", lambda t, idx: idx.by_slug(t)),
            ("stem", lambda t, idx: idx.by_stem(target_stem(t))),
        ]

        for strategy_name, strategy in strategies:
            matches = strategy(target, index)
            if matches:
                ordered = self._order(matches, index)
                if len(ordered) > 1:
                    logger.debug(
                        f"Ambiguous reference '{target}' ({strategy_name}): "
                        f"{len(ordered)} candidates, picked {ordered[0]}"
                    )
                return strategy_name, ordered

        return "", []

    def resolve_references(
        self, references: list[Reference], index: CorpusIndex
    ) -> list[tuple[Reference, str | None]]:
        """Resolve a batch of references, keeping their order."""
        return [(reference, self.resolve(reference, index)) for reference in references]

    def suggest(self, target: str, index: CorpusIndex, limit: int = MAX_SUGGESTIONS) -> list[str]:
        """Suggest titles or file stems close to an unresolved target."""
        wanted = target.strip().casefold()
        if not wanted:
            return []

        names = set(index.titles().values()) | set(index.stems().values())
        scored = []
        for name in names:
            ratio = SequenceMatcher(None, wanted, name.casefold()).ratio()
            if ratio >= SUGGESTION_CUTOFF:
                scored.append((ratio, name))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [name for _, name in scored[:limit]]

    @staticmethod
    def _match_id_or_path(target: str, index: CorpusIndex) -> frozenset[str]:
        if target in index:
            return frozenset({target})
        return index.by_path(target)

    def _order(self, candidates: frozenset[str], index: CorpusIndex) -> list[str]:
        if self.tie_break_policy == "most_recent":
            return sorted(candidates, key=lambda note_id: (-index.modified(note_id), note_id))
        if self.tie_break_policy == "oldest":
            return sorted(candidates, key=lambda note_id: (index.modified(note_id), note_id))
        return sorted(candidates)
