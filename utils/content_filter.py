"""
Content filtering utilities for relayed chat messages.
Censors banned words and blocks links before a message reaches the room.
"""
import re
import json
import os
import logging
from typing import List, Optional

from config.settings import settings

logger = logging.getLogger(__name__)

# Optional override of the banned word list
BANNED_WORDS_FILE = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'data', 'banned_words.json')

# Default list used when the file is absent
DEFAULT_BANNED_WORDS = [
    "badword1",
    "badword2",
]

CENSORED = "****"
LINK_REMOVED = "[link removed]"

LINK_PATTERN = re.compile(r'\bhttps?://\S+', re.IGNORECASE)


def load_banned_words(path: str = BANNED_WORDS_FILE) -> List[str]:
    """
    Load banned words from JSON file, or use default list if file doesn't exist.

    Returns:
        List of banned words
    """
    try:
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                words = json.load(f)
                logger.info(f"Loaded {len(words)} banned words from {path}")
                return words
        return DEFAULT_BANNED_WORDS
    except Exception as e:
        logger.error(f"Error loading banned words file: {e}", exc_info=True)
        logger.warning("Using default banned words list")
        return DEFAULT_BANNED_WORDS


BANNED_WORDS = load_banned_words()


def _banned_pattern(words: List[str]) -> Optional[re.Pattern]:
    words = [w for w in words if w]
    if not words:
        return None
    alternatives = "|".join(re.escape(w) for w in words)
    return re.compile(rf'\b(?:{alternatives})\b', re.IGNORECASE)


_BANNED_PATTERN = _banned_pattern(BANNED_WORDS)


def censor_banned_words(text: str, words: Optional[List[str]] = None) -> str:
    """Replace each whole-word occurrence of a banned word with ****."""
    pattern = _BANNED_PATTERN if words is None else _banned_pattern(words)
    if pattern is None:
        return text
    return pattern.sub(CENSORED, text)


def contains_link(text: str) -> bool:
    return bool(LINK_PATTERN.search(text))


def sanitize_message(text: str, max_length: Optional[int] = None) -> str:
    """
    Prepare a chat message for broadcast.

    Args:
        text: Raw message text
        max_length: Longest text kept; MAX_MESSAGE_LENGTH when omitted

    Returns:
        Trimmed text with banned words censored, or "[link removed]"
        when the message carries a link
    """
    limit = max_length or settings.MAX_MESSAGE_LENGTH
    clean = censor_banned_words(text.strip()[:limit])
    if contains_link(clean):
        return LINK_REMOVED
    return clean
