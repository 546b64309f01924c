"""Context extraction for references found in note content."""

import re

from notegraph.domain.references import Reference


def extract_reference_context(content: str, reference: Reference, context_chars: int = 80) -> str:
    """Extract surrounding context for a reference.

    Args:
        content: Full content of the note
        reference: Reference parsed from that content
        context_chars: Number of characters before/after to include

    Returns:
        Whitespace-collapsed context string around the reference
    """
    start = max(0, reference.start - context_chars)
    end = min(len(content), reference.end + context_chars)

    context = content[start:end].strip()

    # Clean up context - remove newlines, extra spaces
    context = re.sub(r"\s+", " ", context)

    return context
