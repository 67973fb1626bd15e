"""Context pruning: fit chat messages into a model's context window."""

import logging
from typing import Dict, List, Optional, Sequence

from ..models.prompt_models import ContextItem
from .tokens import MESSAGE_OVERHEAD_TOKENS, count_message_tokens, count_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "\n[...]"

# Below this many tokens a truncated message is not worth keeping
MIN_VIABLE_TOKENS = 50


class ContextPruner:
    """
    Fits prompts into a context window.

    PATTERN: Drop oldest middle messages first, then truncate
    CRITICAL: The leading system message and the final message are never dropped
    GOTCHA: If the protected messages alone overflow, the final message is
        truncated and the provider's own validation decides what happens next
    """

    def __init__(self, min_viable_tokens: int = MIN_VIABLE_TOKENS):
        """
        Initialize context pruner.

        Args:
            min_viable_tokens: Smallest truncated message worth keeping
        """
        self.min_viable_tokens = min_viable_tokens
        self.logger = logging.getLogger(__name__)

    def select_items(
        self,
        items: Sequence[ContextItem],
        max_tokens: int,
    ) -> List[ContextItem]:
        """
        Pick the most relevant context items within a token budget.

        Args:
            items: Candidate items
            max_tokens: Token budget for all items together

        Returns:
            Selected items, most relevant first
        """
        selected: List[ContextItem] = []
        used = 0

        for item in sorted(items, key=lambda i: i.relevance, reverse=True):
            tokens = count_tokens(item.content)
            if used + tokens <= max_tokens:
                selected.append(item)
                used += tokens

        return selected

    def fit_messages(
        self,
        messages: List[Dict[str, str]],
        context_window: int,
        reserve_tokens: int = 0,
    ) -> List[Dict[str, str]]:
        """
        Prune messages so they fit a context window.

        Args:
            messages: Chat messages
            context_window: Model context window in tokens
            reserve_tokens: Tokens kept free for the response

        Returns:
            New message list; the input list is never modified
        """
        available = context_window - reserve_tokens
        fitted = [dict(m) for m in messages]
        total = count_message_tokens(fitted)

        if total <= available or not fitted:
            return fitted

        protected = {len(fitted) - 1}
        if fitted[0].get("role") == "system":
            protected.add(0)

        # Oldest prunable message first
        for index in [i for i in range(len(fitted)) if i not in protected]:
            if total <= available:
                break
            total = self._shrink(fitted, index, total - available, total)

        if total > available:
            total = self._shrink(fitted, len(fitted) - 1, total - available, total, drop=False)

        fitted = [m for m in fitted if m is not None]

        self.logger.info(
            f"Pruned prompt: {count_message_tokens(messages)} -> {total} tokens "
            f"(window {context_window}, reserved {reserve_tokens})"
        )
        return fitted

    def _shrink(
        self,
        messages: List[Optional[Dict[str, str]]],
        index: int,
        excess: int,
        total: int,
        drop: bool = True,
    ) -> int:
        """Truncate or drop one message; returns the new total."""
        content = messages[index]["content"]
        tokens = count_tokens(content)
        keep = tokens - excess - count_tokens(TRUNCATION_MARKER)

        if keep >= self.min_viable_tokens or (not drop and keep > 0):
            truncated = truncate_to_tokens(content, keep) + TRUNCATION_MARKER
            messages[index] = {**messages[index], "content": truncated}
            return total - tokens + count_tokens(truncated)

        if drop:
            messages[index] = None
            return total - tokens - MESSAGE_OVERHEAD_TOKENS

        return total
