"""
Relays provider callbacks to the internal backend.

Two delivery modes share one HTTP attempt primitive:

- ``dispatch`` schedules ``forward_with_retry`` on the event loop and returns
  immediately, so the caller can acknowledge the provider first.
- ``relay`` makes a single attempt and hands the backend's answer back.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx
from tenacity import RetryCallState, retry_if_result

from nexuspay.core.observability import increment_counter, observe_histogram, set_gauge
from nexuspay.utils.ids import generate_request_id
from nexuspay.utils.logging import get_logger
from nexuspay.utils.retry import RetryPolicy, build_async_retrying

from .models import (
    ForwardAttempt,
    ForwardOutcome,
    ForwardReport,
    ForwardSuccess,
    TransportFailure,
    UpstreamStatusFailure,
)
from .routing import CallbackRoute

logger = get_logger("webhook_forwarder")

ClientFactory = Callable[[], httpx.AsyncClient]
Sleep = Callable[[float], Awaitable[Any]]

DEFAULT_FORWARDED_FROM = "vercel-webhook-service"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WebhookForwarder:
    """
    Forwards callback payloads to the internal backend with retries.

    Args:
        client_factory: Builds the ``httpx.AsyncClient`` used for attempts
        retry_policy: Attempt budget and backoff for ``forward_with_retry``
        request_id_factory: Produces the ``X-Request-ID`` of each callback
        sleep: Coroutine used for backoff waits
        clock: Returns the current aware datetime
        forwarded_from: Value of the ``X-Forwarded-From`` header
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        retry_policy: RetryPolicy | None = None,
        request_id_factory: Callable[[], str] | None = None,
        sleep: Sleep | None = None,
        clock: Callable[[], datetime] | None = None,
        forwarded_from: str = DEFAULT_FORWARDED_FROM,
    ):
        self.client_factory = client_factory or httpx.AsyncClient
        self.retry_policy = retry_policy or RetryPolicy()
        self.request_id_factory = request_id_factory or generate_request_id
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or _utcnow
        self.forwarded_from = forwarded_from
        self._tasks: set[asyncio.Task] = set()

    def build_headers(self, route: CallbackRoute, request_id: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "User-Agent": route.user_agent,
            "X-Forwarded-From": self.forwarded_from,
            "X-Request-ID": request_id,
            "X-Webhook-Timestamp": _isoformat(self.clock()),
        }

    async def forward_once(
        self,
        route: CallbackRoute,
        base_url: str,
        payload: Any,
        request_id: str,
        client: httpx.AsyncClient | None = None,
    ) -> ForwardOutcome:
        """
        POST ``payload`` to the route's internal endpoint once.

        HTTP error statuses and transport errors are returned as outcomes,
        never raised.
        """
        endpoint = route.endpoint(base_url)
        headers = self.build_headers(route, request_id)

        if client is None:
            async with self.client_factory() as own_client:
                return await self.forward_once(route, base_url, payload, request_id, own_client)

        try:
            response = await client.post(endpoint, json=payload, headers=headers, timeout=route.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            return TransportFailure(error=str(e) or type(e).__name__, error_type=type(e).__name__)

        outcome_cls = ForwardSuccess if response.is_success else UpstreamStatusFailure
        return outcome_cls(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
        )

    async def forward_with_retry(
        self,
        route: CallbackRoute,
        base_url: str,
        payload: Any,
        request_id: str | None = None,
    ) -> ForwardReport:
        """
        Forward until the backend answers 2xx or the retry budget runs out.

        Attempts are strictly sequential and the backoff is only slept
        between attempts. Exhaustion produces exactly one error log record
        carrying the payload and the last error.
        """
        request_id = request_id or self.request_id_factory()
        report = ForwardReport(
            route=route.name,
            endpoint=route.internal_path,
            request_id=request_id,
            started_at=self.clock(),
        )
        log = logger.bind(request_id=request_id, route=route.name)
        next_backoff = 0.0

        def before_sleep(retry_state: RetryCallState) -> None:
            nonlocal next_backoff
            next_backoff = retry_state.next_action.sleep if retry_state.next_action else 0.0
            log.info(f"Retrying in {next_backoff:.1f}s (attempt {retry_state.attempt_number + 1})")

        def last_outcome(retry_state: RetryCallState) -> ForwardOutcome:
            return retry_state.outcome.result()

        async def attempt(client: httpx.AsyncClient) -> ForwardOutcome:
            nonlocal next_backoff
            number = report.attempt_count + 1
            started = time.perf_counter()
            outcome = await self.forward_once(route, base_url, payload, request_id, client)
            duration = time.perf_counter() - started

            report.attempts.append(
                ForwardAttempt(
                    number=number,
                    backoff_before=next_backoff,
                    outcome=outcome,
                    duration_seconds=duration,
                )
            )
            next_backoff = 0.0
            self._record_attempt(route, outcome, duration)

            if outcome.succeeded:
                log.info(f"Backend accepted {route.name} callback on attempt {number}: {outcome.describe()}")
            else:
                log.warning(
                    f"Webhook forwarding attempt failed ({number}/{self.retry_policy.max_attempts}): "
                    f"{outcome.describe()}"
                )
            return outcome

        retrying = build_async_retrying(
            self.retry_policy,
            retry=retry_if_result(lambda outcome: not outcome.succeeded),
            sleep=self.sleep,
            before_sleep=before_sleep,
            retry_error_callback=last_outcome,
        )

        log.info(f"Forwarding {route.name} callback to {route.internal_path}")
        async with self.client_factory() as client:
            await retrying(attempt, client)

        if not report.succeeded:
            self._log_exhausted(route, payload, report)
        return report

    async def relay(self, route: CallbackRoute, base_url: str, payload: Any) -> ForwardOutcome:
        """Forward once and return the outcome for the caller to reflect back."""
        request_id = self.request_id_factory()
        log = logger.bind(request_id=request_id, route=route.name)

        started = time.perf_counter()
        outcome = await self.forward_once(route, base_url, payload, request_id)
        self._record_attempt(route, outcome, time.perf_counter() - started)

        if outcome.succeeded:
            log.info(f"{route.name} callback forwarded successfully: {outcome.describe()}")
        else:
            log.error(f"{route.name} callback forwarding failed: {outcome.describe()}")
        return outcome

    def dispatch(self, route: CallbackRoute, base_url: str, payload: Any) -> asyncio.Task:
        """Start ``forward_with_retry`` in the background and return its task."""
        task = asyncio.create_task(
            self.forward_with_retry(route, base_url, payload),
            name=f"forward-{route.name}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        set_gauge("webhook_forwards_pending", len(self._tasks))
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every dispatched forward to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        set_gauge("webhook_forwards_pending", len(self._tasks))
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error(
                f"Unexpected error in background forward {task.get_name()}"
            )

    def _record_attempt(self, route: CallbackRoute, outcome: ForwardOutcome, duration: float) -> None:
        increment_counter("webhook_forward_attempts_total", {"route": route.name, "result": outcome.kind})
        observe_histogram("webhook_forward_duration", duration, {"route": route.name})

    def _log_exhausted(self, route: CallbackRoute, payload: Any, report: ForwardReport) -> None:
        increment_counter("webhook_forward_exhausted_total", {"route": route.name})
        last = report.final_outcome
        failed_webhook = {
            "type": "webhook-forwarding",
            "route": route.name,
            "endpoint": route.internal_path,
            "payload": payload,
            "error": last.describe() if last else None,
            "attempts": report.attempt_count,
            "request_id": report.request_id,
            "timestamp": _isoformat(self.clock()),
        }
        logger.bind(request_id=report.request_id, failed_webhook=failed_webhook).error(
            f"Webhook forwarding failed after {report.attempt_count} attempts: "
            f"{failed_webhook['error']}"
        )
