"""Server-sent events: parsing the upstream stream and re-encoding it for clients."""

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterable, List, Optional

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


@dataclass
class ServerSentEvent:
    data: str = ""
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL

    def encode(self) -> bytes:
        lines: List[str] = []
        if self.event:
            lines.append(f"event: {self.event}")
        if self.id is not None:
            lines.append(f"id: {self.id}")
        if self.retry is not None:
            lines.append(f"retry: {self.retry}")
        for line in self.data.split("\n"):
            lines.append(f"data: {line}")
        return ("\n".join(lines) + "\n\n").encode("utf-8")


def sse_done() -> bytes:
    return f"data: {DONE_SENTINEL}\n\n".encode("utf-8")


async def iter_sse_events(lines: AsyncIterable[str]) -> AsyncGenerator[ServerSentEvent, None]:
    """
    Group decoded lines into events. A blank line dispatches the pending event;
    comment lines (":") and unknown fields are ignored.
    """
    data_lines: List[str] = []
    event: Optional[str] = None
    event_id: Optional[str] = None
    retry: Optional[int] = None
    pending = False

    async for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            if pending:
                yield ServerSentEvent(data="\n".join(data_lines), event=event, id=event_id, retry=retry)
            data_lines, event, event_id, retry, pending = [], None, None, None, False
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event = value
        elif field == "id":
            event_id = value
        elif field == "retry":
            try:
                retry = int(value)
            except ValueError:
                logger.debug("Ignoring non-numeric SSE retry field: %r", value)
                continue
        else:
            continue
        pending = True

    # Upstream closed without a trailing blank line
    if pending:
        yield ServerSentEvent(data="\n".join(data_lines), event=event, id=event_id, retry=retry)
