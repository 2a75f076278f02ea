"""Tests for prompt token estimates."""

from copilot_relay import token_counter
from copilot_relay.openai_models import ChatCompletionsRequest
from copilot_relay.token_counter import MESSAGE_OVERHEAD, TokenCounter


class WordEncoder:
    def encode(self, text, disallowed_special=()):
        return text.split()


def test_falls_back_to_character_approximation():
    counter = TokenCounter()
    assert counter._encoder is None
    assert counter.count_tokens("") == 0
    assert counter.count_tokens("abcdefgh") == 2
    assert counter.count_tokens("a") == 1


def test_counts_messages_tools_and_text_parts(monkeypatch):
    monkeypatch.setattr(token_counter.tiktoken, "get_encoding", lambda name: WordEncoder())
    counter = TokenCounter()
    body = ChatCompletionsRequest(
        model="gpt-4o",
        messages=[
            {"role": "system", "content": "be brief"},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "what is"},
                    {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                    {"type": "text", "text": "this"},
                ],
            },
        ],
    )

    assert counter.count_request_tokens(body) == 2 + 3 + 2 * MESSAGE_OVERHEAD


def test_global_counter_is_cached():
    assert token_counter.get_token_counter() is token_counter.get_token_counter()
