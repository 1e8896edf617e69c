from __future__ import annotations
import abc
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

@dataclass
class InboundEnvelope:
    channel_id: str
    chat_id: str
    message_id: str
    sender_id: str
    sender_name: str
    text: str
    is_group: bool = False
    metadata: dict[str, Any] | None = None

@dataclass
class InlineQueryEnvelope:
    channel_id: str
    query_id: str
    sender_id: str
    text: str

Envelope = Union[InboundEnvelope, InlineQueryEnvelope]
IngestCallback = Callable[[Envelope], Awaitable[None]]

class ChannelAdapter(abc.ABC):
    """Channel adapter interface.

    Adapters are pure async. Inbound traffic is handed to the callback given
    to ``start``; everything else is an outbound call.
    """
    channel_id: str

    @abc.abstractmethod
    async def start(self, ingest_cb: IngestCallback) -> None:
        ...

    @abc.abstractmethod
    async def stop(self) -> None:
        ...

    @abc.abstractmethod
    async def send_message(self, chat_id: str, text: str, parse_mode: Optional[str] = None) -> None:
        ...

    @abc.abstractmethod
    async def send_album(self, chat_id: str, photo_paths: list[str], caption: Optional[str] = None, parse_mode: Optional[str] = None) -> None:
        ...

    @abc.abstractmethod
    async def delete_message(self, chat_id: str, message_id: str) -> None:
        ...

    @abc.abstractmethod
    async def answer_inline(self, query_id: str, title: str, text: str) -> None:
        ...
