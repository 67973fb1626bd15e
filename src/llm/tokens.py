"""Token counting shared by analysis, pruning and providers."""

import logging
from functools import lru_cache
from typing import Dict, List, Optional

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"

# Each chat message carries a few tokens of formatting overhead
MESSAGE_OVERHEAD_TOKENS = 4


@lru_cache(maxsize=8)
def _get_encoding(name: str) -> Optional["tiktoken.Encoding"]:
    try:
        return tiktoken.get_encoding(name)
    except Exception as e:
        logger.warning(f"Tokenizer {name} unavailable, using estimates: {e}")
        return None


def estimate_tokens(text: str) -> int:
    """Word-based estimate (~1.3 tokens per word)."""
    return int(len(text.split()) * 1.3)


def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """
    Count tokens in text.

    GOTCHA: Falls back to a word-based estimate when tiktoken cannot load
    its encoding (e.g. offline without a cached BPE file)

    Args:
        text: Text to count
        encoding_name: tiktoken encoding name

    Returns:
        Token count
    """
    if not text:
        return 0

    encoding = _get_encoding(encoding_name)
    if encoding is None:
        return estimate_tokens(text)

    try:
        return len(encoding.encode(text))
    except Exception as e:
        logger.warning(f"Token counting failed, using estimate: {e}")
        return estimate_tokens(text)


def count_message_tokens(
    messages: List[Dict[str, str]],
    encoding_name: str = DEFAULT_ENCODING,
) -> int:
    """Count tokens for chat messages including formatting overhead."""
    total = 0
    for message in messages:
        total += MESSAGE_OVERHEAD_TOKENS
        total += count_tokens(message.get("content", ""), encoding_name)
    return total


def truncate_to_tokens(
    text: str,
    max_tokens: int,
    encoding_name: str = DEFAULT_ENCODING,
) -> str:
    """
    Truncate text to at most max_tokens tokens.

    GOTCHA: The word-based fallback cuts at word boundaries instead

    Args:
        text: Text to truncate
        max_tokens: Token limit

    Returns:
        Truncated text (empty if max_tokens <= 0)
    """
    if max_tokens <= 0:
        return ""

    encoding = _get_encoding(encoding_name)
    if encoding is None:
        words = text.split()
        return " ".join(words[: int(max_tokens / 1.3)])

    tokens = encoding.encode(text)
    if len(tokens) <= max_tokens:
        return text
    return encoding.decode(tokens[:max_tokens])
