"""
Payment-provider callback relay for NexusPay.
Acknowledges M-Pesa and KPLC callbacks and forwards them to the internal backend.
"""

from .config import WebhookConfig
from .forwarder import WebhookForwarder
from .models import ForwardAttempt, ForwardReport, ForwardSuccess, TransportFailure, UpstreamStatusFailure

__all__ = [
    "WebhookConfig",
    "WebhookForwarder",
    "ForwardAttempt",
    "ForwardReport",
    "ForwardSuccess",
    "TransportFailure",
    "UpstreamStatusFailure",
]
