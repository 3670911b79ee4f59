"""Input sanitization for text sent to a language model.

User text is placed into a role-based conversation, so anything that looks
like a role marker or markup is neutralized before submission.
"""

import re

FILTERED_MARKER = "[filtered]"

_HTML_TAG = re.compile(r"<[^>]*>")
_ROLE_TOKEN = re.compile(r"(?:system|assistant|user|role):", re.IGNORECASE)
_CODE_FENCE = "```"


def sanitize_input(text: str) -> str:
    """Strip HTML tags and code fences, then neutralize role tokens.

    Role tokens are replaced last so that removing tags or fences cannot
    splice a new one together.

    Args:
        text: Raw user text

    Returns:
        Text safe to place in the user turn
    """
    previous = None
    sanitized = text
    # Each removal can expose a new tag or fence; repeat until stable.
    while sanitized != previous:
        previous = sanitized
        sanitized = _HTML_TAG.sub("", sanitized).replace(_CODE_FENCE, "")
    return _ROLE_TOKEN.sub(FILTERED_MARKER, sanitized)
