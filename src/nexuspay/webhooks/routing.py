"""
Inbound callback kinds and the internal backend paths they are relayed to.
"""

from dataclasses import dataclass, replace
from enum import Enum


class CallbackKind(str, Enum):
    """Provider callback kinds accepted by the relay."""

    GENERIC = "webhook"
    STK_CALLBACK = "stk-callback"
    B2B_CALLBACK = "b2b-callback"
    QUEUE_TIMEOUT = "queue-timeout"
    KPLC_TOKEN = "kplc-token"


@dataclass(frozen=True)
class CallbackRoute:
    """
    How one kind of provider callback is relayed.

    ``ack_first`` routes answer the provider before forwarding and retry in
    the background; the others forward once and relay the backend's answer.
    """

    kind: CallbackKind
    internal_path: str
    ack_first: bool
    timeout: float
    user_agent: str
    required_fields: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.kind.value

    def endpoint(self, base_url: str) -> str:
        return f"{base_url.rstrip('/')}{self.internal_path}"

    def with_internal_path(self, internal_path: str) -> "CallbackRoute":
        return replace(self, internal_path=internal_path)

    def with_timeout(self, timeout: float) -> "CallbackRoute":
        return replace(self, timeout=timeout)


GENERIC_ROUTE = CallbackRoute(
    kind=CallbackKind.GENERIC,
    internal_path="/api/mpesa/webhook",
    ack_first=True,
    timeout=30.0,
    user_agent="NexusPay-MPesa-Webhook/2.0",
)

STK_CALLBACK_ROUTE = CallbackRoute(
    kind=CallbackKind.STK_CALLBACK,
    internal_path="/api/mpesa/stk-callback",
    ack_first=True,
    timeout=30.0,
    user_agent="NexusPay-STK-Callback/2.0",
)

B2B_CALLBACK_ROUTE = CallbackRoute(
    kind=CallbackKind.B2B_CALLBACK,
    internal_path="/api/mpesa/b2b-callback",
    ack_first=False,
    timeout=25.0,
    user_agent="NexusPay-B2B-Callback/1.0",
)

QUEUE_TIMEOUT_ROUTE = CallbackRoute(
    kind=CallbackKind.QUEUE_TIMEOUT,
    internal_path="/api/mpesa/queue-timeout",
    ack_first=False,
    timeout=25.0,
    user_agent="NexusPay-Queue-Timeout/1.0",
)

KPLC_TOKEN_ROUTE = CallbackRoute(
    kind=CallbackKind.KPLC_TOKEN,
    internal_path="/api/kplc/webhook/token",
    ack_first=False,
    timeout=25.0,
    user_agent="NexusPay-KPLC-Token/1.0",
    required_fields=("accountNumber", "tokenMessage", "amount"),
)

# Checked in order against the inbound URL of the generic entry point.
GENERIC_PATH_RULES: tuple[tuple[str, str], ...] = (
    ("stk-callback", "/api/mpesa/stk-callback"),
    ("b2c-callback", "/api/mpesa/b2c-callback"),
    ("b2b-callback", "/api/mpesa/b2b-callback"),
    ("queue-timeout", "/api/mpesa/queue-timeout"),
)


def resolve_generic_path(url: str) -> str:
    """Internal path for a callback that arrived on the generic entry point."""
    for marker, internal_path in GENERIC_PATH_RULES:
        if marker in url:
            return internal_path
    return GENERIC_ROUTE.internal_path


def resolve_generic_route(url: str) -> CallbackRoute:
    return GENERIC_ROUTE.with_internal_path(resolve_generic_path(url))


def apply_timeouts(route: CallbackRoute, ack_timeout: float, relay_timeout: float) -> CallbackRoute:
    """Use the configured per-attempt timeout for the route's variant."""
    return route.with_timeout(ack_timeout if route.ack_first else relay_timeout)


def missing_required_fields(route: CallbackRoute, payload: dict) -> list[str]:
    """Required fields that are absent or empty (``0``, ``""`` and ``None`` count as missing)."""
    return [name for name in route.required_fields if not payload.get(name)]
