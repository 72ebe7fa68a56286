"""
Directive extraction for assistant messages.

The assistant can embed two kinds of interactive affordances in its replies:

- ``{{choice:Label}}`` renders a quick-reply button that sends ``Label``
- ``{{link:https://url|Label}}`` renders a button that opens ``url``

The tags are stripped from the text before it is rendered as markdown.
"""

import re

from services.chat_service.models import Choice, DirectiveExtraction, Link


CHOICE_PATTERN = re.compile(r"\{\{choice:([^}]+)\}\}")
LINK_PATTERN = re.compile(r"\{\{link:([^|]+)\|([^}]+)\}\}")

# Three or more line breaks, possibly with whitespace between them
_EXCESS_BLANK_LINES = re.compile(r"\n\s*\n\s*\n")


def extract_directives(text: str) -> DirectiveExtraction:
    """
    Extract choice and link directives from assistant text

    Args:
        text: Raw assistant message text

    Returns:
        DirectiveExtraction with the cleaned markdown, choices and links in
        the order they appear
    """
    choices = [Choice(label=match.group(1).strip()) for match in CHOICE_PATTERN.finditer(text)]
    links = [
        Link(url=match.group(1).strip(), label=match.group(2).strip())
        for match in LINK_PATTERN.finditer(text)
    ]

    cleaned = CHOICE_PATTERN.sub("", text)
    cleaned = LINK_PATTERN.sub("", cleaned)
    cleaned = _EXCESS_BLANK_LINES.sub("\n\n", cleaned)

    return DirectiveExtraction(cleaned_text=cleaned.strip(), choices=choices, links=links)
