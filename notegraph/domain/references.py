"""Reference domain models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class ReferenceKind(str, Enum):
    """Syntactic form of a reference."""

    PLAIN = "plain"
    ALIASED = "aliased"
    ANCHORED = "anchored"
    ANCHORED_ALIASED = "anchored_aliased"
    EMBED = "embed"


class RelationType(str, Enum):
    """Typed relations declared with the ``relation:: [[target]]`` convention."""

    CONTINUATION = "continuation"
    CONTRADICTION = "contradiction"
    BRANCH = "branch"
    STRUCTURAL = "structural"


class Reference(BaseModel):
    """A single cross-note reference found in note text.

    Attributes:
        raw_text: Exact matched text, e.g. "![[target#anchor|alias]]" or "[alias](target.md)"
        target: Target note title, path or id
        alias: Display text after '|', or the text of a Markdown link
        anchor: Section after '#', if any
        is_embed: Whether the reference starts with the embed sigil '!'
        is_markdown: Whether the reference uses Markdown link syntax instead of [[...]]
        start: Character offset of the match in the source text
        end: Character offset one past the end of the match
        line_number: 1-based line of the match
        relation: Typed relation declared in front of the reference, if any
    """

    model_config = ConfigDict(frozen=True)

    raw_text: str
    target: str
    alias: str | None = None
    anchor: str | None = None
    is_embed: bool = False
    is_markdown: bool = False
    start: int
    end: int
    line_number: int = 1
    relation: RelationType | None = None

    @property
    def kind(self) -> ReferenceKind:
        if self.is_embed:
            return ReferenceKind.EMBED
        if self.anchor is not None and self.alias is not None:
            return ReferenceKind.ANCHORED_ALIASED
        if self.anchor is not None:
            return ReferenceKind.ANCHORED
        if self.alias is not None:
            return ReferenceKind.ALIASED
        return ReferenceKind.PLAIN

    @property
    def display_text(self) -> str:
        return self.alias if self.alias is not None else self.target

    @property
    def full_target(self) -> str:
        if self.anchor is not None:
            return f"{self.target}#{self.anchor}"
        return self.target

    @property
    def span(self) -> tuple[int, int]:
        """Character range of the match, for editor-side navigation."""
        return (self.start, self.end)
