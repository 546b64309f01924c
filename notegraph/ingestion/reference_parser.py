"""Reference extraction for wiki-style and local Markdown note links."""

import re
from bisect import bisect_right
from urllib.parse import unquote

from notegraph.domain.references import Reference, RelationType

# Matches [[target]], [[target|alias]], [[target#anchor|alias]] and ![[target]].
# Brackets and newlines are not allowed inside a link, so unterminated or
# nested sequences never match across each other.
WIKILINK_PATTERN = re.compile(r"(?P<embed>!)?\[\[(?P<body>[^\[\]\n]+)\]\]")

# Matches [text](path.md). Images (![alt](file.png)) are not references.
MARKDOWN_LINK_PATTERN = re.compile(r"(?<![!\[])\[(?P<text>[^\[\]\n]+)\]\((?P<url>[^()\s]+)\)")

# http:, https:, mailto: and other URL schemes point outside the vault
EXTERNAL_URL_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")

# Inline field right before a link on the same line, e.g. "continues:: [[Next]]"
RELATION_FIELD_PATTERN = re.compile(r"(?P<field>[A-Za-z][A-Za-z0-9_\-]*)::\s*$")

RELATION_FIELD_NAMES: dict[str, RelationType] = {
    "continues": RelationType.CONTINUATION,
    "continuation": RelationType.CONTINUATION,
    "next": RelationType.CONTINUATION,
    "contradicts": RelationType.CONTRADICTION,
    "contradiction": RelationType.CONTRADICTION,
    "branch": RelationType.BRANCH,
    "branches": RelationType.BRANCH,
    "branch_of": RelationType.BRANCH,
    "structure": RelationType.STRUCTURAL,
    "structural": RelationType.STRUCTURAL,
    "parent": RelationType.STRUCTURAL,
    "part_of": RelationType.STRUCTURAL,
}


def normalize_relation_field(field: str) -> str:
    return re.sub(r"[\s\-]+", "_", field.strip().lower())


class ReferenceParser:
    """Best-effort scanner that extracts references from arbitrary note text.

    Parsing is pure: the same text always yields the same references, and
    malformed syntax is skipped rather than reported.
    """

    def parse(self, text: str) -> list[Reference]:
        """Extract all well-formed references, ordered by position.

        Args:
            text: Raw note content

        Returns:
            List of references in order of appearance
        """
        if not text:
            return []

        line_starts = self._line_starts(text)
        references = []

        for match in WIKILINK_PATTERN.finditer(text):
            reference = self._build_reference(text, match, line_starts)
            if reference is not None:
                references.append(reference)

        wiki_spans = [reference.span for reference in references]
        for match in MARKDOWN_LINK_PATTERN.finditer(text):
            if any(start < match.end() and match.start() < end for start, end in wiki_spans):
                continue
            reference = self._build_markdown_reference(text, match, line_starts)
            if reference is not None:
                references.append(reference)

        references.sort(key=lambda reference: reference.start)
        return references

    def _build_reference(
        self, text: str, match: re.Match[str], line_starts: list[int]
    ) -> Reference | None:
        body = match.group("body")

        target_part, alias = body, None
        if "|" in body:
            target_part, alias = body.split("|", 1)
            alias = alias.strip() or None

        target, anchor = self._split_anchor(target_part)
        if not target:
            return None

        return self._reference(
            text,
            match,
            line_starts,
            target=target,
            alias=alias,
            anchor=anchor,
            is_embed=match.group("embed") is not None,
        )

    def _build_markdown_reference(
        self, text: str, match: re.Match[str], line_starts: list[int]
    ) -> Reference | None:
        url = match.group("url")
        if EXTERNAL_URL_PATTERN.match(url):
            return None

        target, anchor = self._split_anchor(unquote(url))
        if not target:
            return None

        return self._reference(
            text,
            match,
            line_starts,
            target=target,
            alias=match.group("text").strip() or None,
            anchor=anchor,
            is_markdown=True,
        )

    def _reference(
        self, text: str, match: re.Match[str], line_starts: list[int], **fields
    ) -> Reference:
        line_index = bisect_right(line_starts, match.start()) - 1
        return Reference(
            raw_text=match.group(0),
            start=match.start(),
            end=match.end(),
            line_number=line_index + 1,
            relation=self._relation_before(text, line_starts[line_index], match.start()),
            **fields,
        )

    @staticmethod
    def _split_anchor(target_part: str) -> tuple[str, str | None]:
        target, anchor = target_part, None
        if "#" in target_part:
            target, anchor = target_part.split("#", 1)
            anchor = anchor.strip() or None
        return target.strip(), anchor

    @staticmethod
    def _relation_before(text: str, line_start: int, position: int) -> RelationType | None:
        """Detect a ``relation::`` inline field directly in front of a link."""
        prefix = text[line_start:position]
        if "::" not in prefix:
            return None
        match = RELATION_FIELD_PATTERN.search(prefix)
        if not match:
            return None
        return RELATION_FIELD_NAMES.get(normalize_relation_field(match.group("field")))

    @staticmethod
    def _line_starts(text: str) -> list[int]:
        starts = [0]
        for match in re.finditer("\n", text):
            starts.append(match.end())
        return starts

    @staticmethod
    def extract_link_context(text: str, reference: Reference, context_lines: int = 2) -> str:
        """Return the lines around a reference.

        Args:
            text: Text the reference was parsed from
            reference: Reference to look up
            context_lines: Number of lines to include before and after

        Returns:
            The reference's line plus surrounding lines, or "" if out of range
        """
        lines = text.splitlines()
        line_index = reference.line_number - 1
        if line_index < 0 or line_index >= len(lines):
            return ""

        start = max(0, line_index - context_lines)
        end = min(len(lines), line_index + context_lines + 1)
        return "\n".join(lines[start:end])

    @staticmethod
    def format_reference(reference: Reference, new_target: str) -> str:
        """Render a reference with a new target, keeping its syntax, anchor and alias."""
        body = new_target
        if reference.anchor is not None:
            body += f"#{reference.anchor}"
        if reference.is_markdown:
            return f"[{reference.display_text}]({body})"
        if reference.alias is not None:
            body += f"|{reference.alias}"
        prefix = "!" if reference.is_embed else ""
        return f"{prefix}[[{body}]]"

    def replace_reference(self, text: str, reference: Reference, new_target: str) -> str:
        """Replace a single reference's target in the text."""
        return self.replace_references(text, [(reference, new_target)])

    def replace_references(self, text: str, replacements: list[tuple[Reference, str]]) -> str:
        """Replace several references at once.

        Replacements are applied from the end of the text backwards so that
        the character ranges of earlier references stay valid.

        Args:
            text: Text the references were parsed from
            replacements: Pairs of (reference, new target)

        Returns:
            Text with every reference rewritten
        """
        result = text
        for reference, new_target in sorted(
            replacements, key=lambda item: item[0].start, reverse=True
        ):
            if result[reference.start : reference.end] != reference.raw_text:
                # Stale reference from another version of the text
                continue
            new_link = self.format_reference(reference, new_target)
            result = result[: reference.start] + new_link + result[reference.end :]
        return result


_default_parser = ReferenceParser()


def parse(text: str) -> list[Reference]:
    """Parse references with a shared parser instance."""
    return _default_parser.parse(text)
