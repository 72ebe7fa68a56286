"""
Keyword content filtering for incoming chat messages.
"""

import re
from typing import List, Pattern

from config.app_config import ContentFilteringConfig


DEFAULT_PATTERNS = (r"\b(spam|scam|phishing)\b",)
STRICT_PATTERNS = (r"\b(hack|exploit|malware)\b",)


class ContentFilter:
    """Flags messages matching the configured inappropriate-content patterns"""

    def __init__(self, config: ContentFilteringConfig):
        self.config = config
        self.patterns: List[Pattern] = self._compile()

    def _compile(self) -> List[Pattern]:
        sources = list(DEFAULT_PATTERNS)
        if self.config.strict_mode:
            sources.extend(STRICT_PATTERNS)
        # Custom filters are plain words or phrases, possibly with punctuation
        sources.extend(
            rf"(?<!\w){re.escape(word.strip())}(?!\w)" for word in self.config.custom_filters if word.strip()
        )
        return [re.compile(source, re.IGNORECASE) for source in sources]

    def contains_inappropriate_content(self, content: str) -> bool:
        if not self.config.enabled:
            return False
        return any(pattern.search(content) for pattern in self.patterns)
