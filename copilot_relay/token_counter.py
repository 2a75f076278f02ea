"""Prompt token estimates for request logging, using tiktoken."""

import json
import logging
from typing import Optional

import tiktoken

from .openai_models import ChatCompletionsRequest, ChatMessage

logger = logging.getLogger(__name__)

# <|im_start|>role\ncontent<|im_end|>
MESSAGE_OVERHEAD = 4


class TokenCounter:
    """Count tokens in text using tiktoken (GPT-3.5/GPT-4 encoding)."""

    def __init__(self, encoding_name: str = "cl100k_base"):
        """
        Initialize token counter.

        Args:
            encoding_name: Tiktoken encoding name. Default is cl100k_base (GPT-3.5/GPT-4).
        """
        self.encoding_name = encoding_name
        self._encoder = None

        try:
            self._encoder = tiktoken.get_encoding(encoding_name)
        except Exception as e:
            # Encodings are downloaded on first use; offline hosts fall back to approximation
            logger.warning("Failed to initialize tiktoken encoder: %s", e)
            self._encoder = None

    def count_tokens(self, text: str) -> int:
        """
        Count tokens in the given text.

        Args:
            text: Text to count tokens for

        Returns:
            Number of tokens (approximate if the encoding could not be loaded)
        """
        if not text:
            return 0

        if self._encoder:
            try:
                return len(self._encoder.encode(text, disallowed_special=()))
            except Exception as e:
                logger.warning("Token encoding error: %s, falling back to approximation", e)

        # Fallback: approximate token count (1 token ~= 4 characters for English/code)
        return max(1, len(text) // 4)

    def count_message_tokens(self, message: ChatMessage) -> int:
        if isinstance(message.content, str):
            text = message.content
        elif message.content:
            text = "\n".join(part.text for part in message.content if part.text)
        else:
            text = ""
        total = self.count_tokens(text) + MESSAGE_OVERHEAD
        if message.tool_calls:
            total += self.count_tokens(json.dumps([c.model_dump() for c in message.tool_calls]))
        return total

    def count_request_tokens(self, body: ChatCompletionsRequest) -> int:
        """Estimate prompt tokens: messages plus tool definitions."""
        total = sum(self.count_message_tokens(m) for m in body.messages)
        if body.tools:
            total += self.count_tokens(json.dumps([t.model_dump() for t in body.tools]))
        return total


# Global singleton instance
_counter: Optional[TokenCounter] = None


def get_token_counter() -> TokenCounter:
    """Get global TokenCounter instance."""
    global _counter
    if _counter is None:
        _counter = TokenCounter()
    return _counter
