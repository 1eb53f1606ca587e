"""
Result types for webhook forwarding.

Every forwarding attempt ends in exactly one outcome: the backend accepted
it (2xx), the backend answered with another status, or no HTTP response
came back at all.
"""

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ForwardSuccess(BaseModel):
    """Backend answered with a 2xx status."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["success"] = "success"
    status_code: int
    body: bytes = b""
    content_type: str | None = None

    @property
    def succeeded(self) -> bool:
        return True

    def describe(self) -> str:
        return f"HTTP {self.status_code}"


class UpstreamStatusFailure(BaseModel):
    """Backend answered, but not with a 2xx status."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["upstream_status"] = "upstream_status"
    status_code: int
    body: bytes = b""
    content_type: str | None = None

    @property
    def succeeded(self) -> bool:
        return False

    def describe(self) -> str:
        return f"Backend returned HTTP {self.status_code}"


class TransportFailure(BaseModel):
    """No HTTP response: connection error, timeout or protocol error."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["transport"] = "transport"
    error: str
    error_type: str

    @property
    def succeeded(self) -> bool:
        return False

    def describe(self) -> str:
        return f"{self.error_type}: {self.error}"


ForwardOutcome = Annotated[
    Union[ForwardSuccess, UpstreamStatusFailure, TransportFailure],
    Field(discriminator="kind"),
]


class ForwardAttempt(BaseModel):
    """One POST to the backend and what came of it."""

    model_config = ConfigDict(frozen=True)

    number: int
    backoff_before: float = 0.0
    outcome: ForwardOutcome
    duration_seconds: float = 0.0


class ForwardReport(BaseModel):
    """All attempts made for one inbound callback."""

    route: str
    endpoint: str
    request_id: str
    started_at: datetime
    attempts: list[ForwardAttempt] = Field(default_factory=list)

    @property
    def final_outcome(self) -> ForwardOutcome | None:
        return self.attempts[-1].outcome if self.attempts else None

    @property
    def succeeded(self) -> bool:
        outcome = self.final_outcome
        return outcome is not None and outcome.succeeded

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)
