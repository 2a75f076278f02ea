# OpenAI-compatible schema models for the chat completions and models APIs

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_serializer


class ImageURL(BaseModel):
    url: str
    detail: Optional[Literal["low", "high", "auto"]] = None


class ContentPart(BaseModel):
    # OpenAI content part: text or image_url; allow extras for forward-compat
    type: str
    text: Optional[str] = None
    image_url: Optional[ImageURL] = None
    model_config = ConfigDict(extra="allow")


class FunctionCall(BaseModel):
    name: str
    arguments: str


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall
    model_config = ConfigDict(extra="allow")


class ChatMessage(BaseModel):
    role: Literal["system", "developer", "user", "assistant", "tool"]
    # Accept both string and array-of-parts per OpenAI SDKs
    content: Union[str, List[ContentPart], None] = None
    name: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    tool_call_id: Optional[str] = None
    model_config = ConfigDict(extra="allow")

    def has_image(self) -> bool:
        if not isinstance(self.content, list):
            return False
        return any(part.type == "image_url" for part in self.content)


class ToolFunction(BaseModel):
    name: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = {}


class Tool(BaseModel):
    type: Literal["function"] = "function"
    function: ToolFunction


class ChatCompletionsRequest(BaseModel):
    model: str
    messages: List[ChatMessage]
    stream: Optional[bool] = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    max_tokens: Optional[int] = None
    stop: Optional[Union[str, List[str]]] = None
    n: Optional[int] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[Dict[str, float]] = None
    logprobs: Optional[bool] = None
    response_format: Optional[Dict[str, Any]] = None
    seed: Optional[int] = None
    tools: Optional[List[Tool]] = None
    tool_choice: Optional[Union[str, Dict[str, Any]]] = None
    user: Optional[str] = None
    # Unknown generation parameters are forwarded untouched
    model_config = ConfigDict(extra="allow")

    def has_image(self) -> bool:
        return any(m.has_image() for m in self.messages)

    def is_agent_call(self) -> bool:
        return any(m.role in ("assistant", "tool") for m in self.messages)


class ChatMessageResponse(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None

    @model_serializer(mode="wrap")
    def _omit_absent_tool_calls(self, handler):
        data = handler(self)
        if data.get("tool_calls") is None:
            data.pop("tool_calls", None)
        return data


class ChatChoice(BaseModel):
    index: int = 0
    message: ChatMessageResponse
    logprobs: Optional[Dict[str, Any]] = None
    finish_reason: str = "stop"


class ChatCompletion(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[ChatChoice]
    system_fingerprint: Optional[str] = None
    # Usage is passed through as the upstream reported it, details included
    usage: Optional[Dict[str, Any]] = None

    @model_serializer(mode="wrap")
    def _omit_unobserved(self, handler):
        data = handler(self)
        for key in ("system_fingerprint", "usage"):
            if data.get(key) is None:
                data.pop(key, None)
        return data


class ModelData(BaseModel):
    id: str
    object: Literal["model"] = "model"
    type: Literal["model"] = "model"
    created: int = 0
    created_at: str = "1970-01-01T00:00:00Z"
    owned_by: str
    display_name: str


class ModelList(BaseModel):
    object: Literal["list"] = "list"
    data: List[ModelData]
    has_more: bool = False
