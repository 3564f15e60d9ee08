"""Logical NDC messages.

The client only needs two things from a message: the protocol method it
invokes (used to resolve the target URL and headers) and its serialized
payload. Anything with a ``method`` attribute and a ``prepare()`` method
returning bytes can be sent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

# Methods the client accepts by default. Injected into NDCClient so callers
# can narrow or extend the set without touching module state.
DEFAULT_SUPPORTED_METHODS: frozenset[str] = frozenset(
    {
        "AirShoppingRQ",
        "FlightPriceRQ",
        "SeatAvailabilityRQ",
        "ServiceListRQ",
        "ServicePriceRQ",
        "OrderCreateRQ",
        "OrderRetrieveRQ",
        "OrderListRQ",
        "OrderCancelRQ",
        "ItinReshopRQ",
    }
)


@runtime_checkable
class Message(Protocol):
    """Anything the client can send."""

    method: str

    def prepare(self) -> bytes: ...


@dataclass(frozen=True)
class NDCMessage:
    """A message whose body is already serialized (XML document, usually).

    Attributes:
        method: Protocol method name, e.g. ``"AirShoppingRQ"``.
        body: Serialized payload; text is encoded with ``encoding``.
        encoding: Encoding for text bodies.
    """

    method: str
    body: str | bytes = b""
    encoding: str = "utf-8"

    def prepare(self) -> bytes:
        if isinstance(self.body, bytes):
            return self.body
        return self.body.encode(self.encoding)
