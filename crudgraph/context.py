"""
Caller context and authorization capability.

The caller context is an opaque bag handed down from the transport layer. The
core only looks at `response`: when present, paginated reads report their
total match count through it.
"""
import inspect
from typing import Any, Awaitable, Dict, List, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

Conditions = Dict[str, Any]


@runtime_checkable
class HeaderSink(Protocol):
    """Minimal response surface used for the total-count side channel."""
    def set_header(self, name: str, value: str) -> None: ...
    def get_header(self, name: str) -> Optional[str]: ...


class ResponseHeaders:
    """Dict-backed HeaderSink, for transports without a response object of their own."""

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def get_header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def __repr__(self) -> str:
        return f"ResponseHeaders({self.headers})"


class CallerContext(BaseModel):
    """The original request, the caller identity and an optional response side channel."""
    request: Any = None
    user: Any = None
    response: Optional[Any] = Field(default=None, description="HeaderSink receiving the total-count header")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def reports_total_count(self) -> bool:
        return self.response is not None


@runtime_checkable
class Authorizer(Protocol):
    """
    Per-entity authorization capability.

    Returns the conditions appended with AND to every read of the entity,
    whether it is queried directly or reached through a relation. May be sync
    or async, and may raise ForbiddenError to reject the request.
    """
    def authorize(
        self, context: Optional[CallerContext]
    ) -> Union[List[Conditions], Awaitable[List[Conditions]]]: ...


class AllowAll:
    """Default authorizer: no additional conditions."""

    def authorize(self, context: Optional[CallerContext]) -> List[Conditions]:
        return []


async def run_authorizer(authorizer: Authorizer, context: Optional[CallerContext]) -> List[Conditions]:
    """Invoke `authorizer`, awaiting the result when it is a coroutine."""
    result = authorizer.authorize(context)
    if inspect.isawaitable(result):
        result = await result
    return list(result or [])
