"""Fold a chat.completion.chunk event stream into one chat.completion response."""

import json
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

from .errors import MalformedStreamChunk
from .openai_models import (
    ChatChoice,
    ChatCompletion,
    ChatMessageResponse,
    FunctionCall,
    ToolCall,
)
from .streaming import ServerSentEvent

logger = logging.getLogger(__name__)


@dataclass
class ToolCallState:
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class StreamAccumulator:
    """
    Running state for one non-streaming request.

    id/model/created/system_fingerprint keep the first non-empty value seen;
    finish_reason and usage keep the last one.
    """

    id: str = ""
    model: str = ""
    created: int = 0
    system_fingerprint: Optional[str] = None
    finish_reason: str = "stop"
    content: str = ""
    tool_calls: Dict[int, ToolCallState] = field(default_factory=dict)
    usage: Optional[Dict[str, Any]] = None

    def feed(self, event: ServerSentEvent) -> bool:
        """Apply one event. Returns False once the end-of-stream sentinel arrives."""
        if not event.data:
            return True
        if event.is_done:
            return False
        try:
            chunk = parse_chunk(event.data)
        except MalformedStreamChunk as e:
            # One bad chunk must not cost the whole response
            logger.debug("Skipping SSE chunk: %s dataPreview=%r", e.message, e.data[:500])
            return True
        self.apply_chunk(chunk)
        return True

    def apply_chunk(self, chunk: Dict[str, Any]) -> None:
        if not self.id:
            self.id = _text(chunk.get("id"))
        if not self.model:
            self.model = _text(chunk.get("model"))
        created = chunk.get("created")
        if not self.created and isinstance(created, int) and not isinstance(created, bool):
            self.created = created
        if not self.system_fingerprint:
            self.system_fingerprint = _text(chunk.get("system_fingerprint")) or None
        if isinstance(chunk.get("usage"), dict):
            self.usage = chunk["usage"]

        choices = chunk.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return
        choice = choices[0]

        finish_reason = _text(choice.get("finish_reason"))
        if finish_reason:
            self.finish_reason = finish_reason

        delta = choice.get("delta")
        if not isinstance(delta, dict):
            return
        if isinstance(delta.get("content"), str):
            self.content += delta["content"]
        if isinstance(delta.get("tool_calls"), list):
            self._merge_tool_calls(delta["tool_calls"])

    def _merge_tool_calls(self, fragments: List[Any]) -> None:
        for position, fragment in enumerate(fragments):
            if not isinstance(fragment, dict):
                continue
            index = fragment.get("index")
            if not isinstance(index, int) or isinstance(index, bool):
                index = position
            function = fragment.get("function")
            if not isinstance(function, dict):
                function = {}
            call_id = _text(fragment.get("id"))
            name = _text(function.get("name"))
            arguments = _text(function.get("arguments"))

            existing = self.tool_calls.get(index)
            if existing is None:
                self.tool_calls[index] = ToolCallState(id=call_id, name=name, arguments=arguments)
                continue

            if not existing.id:
                existing.id = call_id
            if not existing.name:
                existing.name = name
            existing.arguments += arguments

    def build(self, fallback_model: str = "") -> ChatCompletion:
        tool_calls = None
        if self.tool_calls:
            tool_calls = [
                ToolCall(id=state.id, function=FunctionCall(name=state.name, arguments=state.arguments))
                for _, state in sorted(self.tool_calls.items())
            ]

        return ChatCompletion(
            id=self.id,
            created=self.created,
            model=self.model or fallback_model,
            choices=[
                ChatChoice(
                    index=0,
                    message=ChatMessageResponse(content=self.content or None, tool_calls=tool_calls),
                    finish_reason=self.finish_reason,
                )
            ],
            system_fingerprint=self.system_fingerprint,
            usage=self.usage,
        )


def parse_chunk(data: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(data)
    except ValueError as e:
        raise MalformedStreamChunk(f"Failed to parse SSE chunk data: {e}", data)
    if not isinstance(parsed, dict):
        raise MalformedStreamChunk("SSE chunk data is not a JSON object", data)
    return parsed


async def collect_stream(events: AsyncGenerator[ServerSentEvent, None], fallback_model: str = "") -> ChatCompletion:
    """Consume the stream up to [DONE] and return the equivalent non-streaming response."""
    accumulator = StreamAccumulator()
    async with aclosing(events):
        async for event in events:
            if not accumulator.feed(event):
                break
    return accumulator.build(fallback_model)


def _text(value: Any) -> str:
    # Chunk fields of the wrong type count as absent
    return value if isinstance(value, str) else ""
