"""Request-scoped state threaded through the translation pipeline."""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional


def new_completion_id() -> str:
    return f"chatcmpl-{uuid.uuid4().hex}"


@dataclass
class RequestContext:
    """Everything one chat-completion request needs.

    Built fresh by the route for each request and passed explicitly down the
    call chain; nothing here is shared between requests.
    """

    model: str
    messages: list[Mapping[str, Any]]
    credential: str
    stream: bool = False
    payload: Mapping[str, Any] = field(default_factory=dict)
    response_model: str = ""
    completion_id: str = field(default_factory=new_completion_id)
    created: int = field(default_factory=lambda: int(time.time()))
    disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None

    def __post_init__(self) -> None:
        if not self.response_model:
            self.response_model = self.model

    async def client_disconnected(self) -> bool:
        if self.disconnect_checker is None:
            return False
        return await self.disconnect_checker()
