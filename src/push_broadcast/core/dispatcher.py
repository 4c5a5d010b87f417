"""Batch dispatcher coordinating concurrent multicast calls.

This module implements the BatchDispatcher class responsible for sending
each batch of device tokens to the push gateway, running batches
concurrently under a bounded semaphore with a per-call timeout, and
translating gateway responses into per-token dispatch outcomes.

A batch whose gateway call fails as a whole is never retried: every token
in it is recorded as failed with reason ``gateway-error`` and sibling
batches carry on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Final

from push_broadcast.core.errors import GatewayBatchError
from push_broadcast.types.models import (
    Batch,
    BatchReport,
    DeliveryStatus,
    DispatchOutcome,
    GatewayResponse,
    Notification,
)
from push_broadcast.types.protocols import PushGateway
from push_broadcast.utils.logging import get_logger, log_with_context
from push_broadcast.utils.sanitization import sanitize_exception

__all__ = [
    "GATEWAY_ERROR_REASON",
    "UNKNOWN_ERROR_REASON",
    "BatchDispatcher",
    "BatchTimeoutError",
    "DispatchRun",
]

GATEWAY_ERROR_REASON: Final[str] = "gateway-error"
UNKNOWN_ERROR_REASON: Final[str] = "unknown"


class BatchTimeoutError(GatewayBatchError):
    """Raised when a multicast call exceeds its timeout."""

    timeout_seconds: float

    def __init__(
        self,
        message: str,
        *,
        batch_index: int,
        batch_size: int,
        timeout_seconds: float,
    ) -> None:
        super().__init__(message, batch_index=batch_index, batch_size=batch_size)
        self.timeout_seconds = timeout_seconds


@dataclass(slots=True, frozen=True)
class DispatchRun:
    """Reports collected by one call to BatchDispatcher.dispatch.

    ``reports`` are in completion order. ``complete`` is False when the
    dispatcher stopped waiting before every batch finished.
    """

    reports: tuple[BatchReport, ...]
    batch_count: int
    complete: bool = True

    @property
    def unfinished_batches(self) -> int:
        return self.batch_count - len(self.reports)


class BatchDispatcher:
    """Dispatch batches to the push gateway with bounded concurrency."""

    def __init__(
        self,
        gateway: PushGateway,
        *,
        max_concurrency: int = 4,
        batch_timeout_seconds: float = 30.0,
        logger_obj: logging.Logger | None = None,
    ) -> None:
        if max_concurrency < 1:
            msg = "max_concurrency must be >= 1"
            raise ValueError(msg)
        if batch_timeout_seconds <= 0:
            msg = "batch_timeout_seconds must be greater than zero"
            raise ValueError(msg)

        self._gateway: PushGateway = gateway
        self._max_concurrency: int = max_concurrency
        self._batch_timeout_seconds: float = batch_timeout_seconds
        self._logger: logging.Logger = logger_obj or get_logger(__name__)
        # Strong references to batch tasks that outlive an abandoned dispatch
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def inflight_count(self) -> int:
        """Number of batch tasks still running, including abandoned ones."""
        return len(self._inflight)

    async def dispatch(
        self,
        batches: Sequence[Batch],
        notification: Notification,
        *,
        timeout: float | None = None,
    ) -> DispatchRun:
        """Send every batch and collect the per-batch reports.

        Args:
            batches: Batches produced by the batcher
            notification: Payload to deliver
            timeout: Optional overall deadline in seconds. When it passes,
                the dispatcher stops waiting and returns what has finished.

        Returns:
            Reports of the finished batches and whether all of them finished

        Raises:
            asyncio.CancelledError: If the caller is cancelled. Batches already
                handed to the gateway keep running; the rest are skipped.
        """
        if not batches:
            return DispatchRun(reports=(), batch_count=0)

        semaphore = asyncio.Semaphore(self._max_concurrency)
        abandoned = asyncio.Event()
        completed: list[BatchReport] = []
        batch_errors: list[GatewayBatchError] = []

        log_with_context(
            self._logger,
            logging.INFO,
            "Dispatching batches",
            extra={
                "batch_count": len(batches),
                "max_concurrency": self._max_concurrency,
                "title": notification.title,
            },
        )

        tasks: list[asyncio.Task[None]] = []
        for index, batch in enumerate(batches):
            task = asyncio.create_task(
                self._run_batch(
                    index,
                    batch,
                    notification,
                    semaphore=semaphore,
                    abandoned=abandoned,
                    completed=completed,
                    batch_errors=batch_errors,
                ),
                name=f"push-batch-{index}",
            )
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            tasks.append(task)

        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            abandoned.set()
            log_with_context(
                self._logger,
                logging.WARNING,
                "Dispatch cancelled by caller; in-flight batches left to finish",
                extra={"batch_count": len(batches), "finished_batches": len(completed)},
            )
            raise

        reports = tuple(completed)
        if pending:
            abandoned.set()
            log_with_context(
                self._logger,
                logging.WARNING,
                "Dispatch deadline reached before all batches finished",
                extra={
                    "batch_count": len(batches),
                    "finished_batches": len(reports),
                    "timeout_seconds": timeout,
                },
            )

        if batch_errors:
            self._handle_batch_errors(list(batch_errors))

        return DispatchRun(reports=reports, batch_count=len(batches), complete=not pending)

    async def _run_batch(
        self,
        index: int,
        batch: Batch,
        notification: Notification,
        *,
        semaphore: asyncio.Semaphore,
        abandoned: asyncio.Event,
        completed: list[BatchReport],
        batch_errors: list[GatewayBatchError],
    ) -> None:
        async with semaphore:
            if abandoned.is_set():
                self._logger.debug("Skipping batch %d: dispatch abandoned", index)
                return

            start = time.perf_counter()
            try:
                async with asyncio.timeout(self._batch_timeout_seconds):
                    responses = await self._gateway.multicast_send(batch, notification)
                outcomes = self._translate(index, batch, responses)
            except asyncio.CancelledError:
                raise
            except TimeoutError as exc:
                error: GatewayBatchError = BatchTimeoutError(
                    f"Multicast call timed out after {self._batch_timeout_seconds:.2f}s",
                    batch_index=index,
                    batch_size=len(batch),
                    timeout_seconds=self._batch_timeout_seconds,
                )
                error.__cause__ = exc
            except GatewayBatchError as exc:
                error = exc
            except Exception as exc:
                error = GatewayBatchError(
                    f"Multicast call failed: {sanitize_exception(exc)}",
                    batch_index=index,
                    batch_size=len(batch),
                    cause=exc,
                )
            else:
                report = BatchReport(
                    index=index,
                    outcomes=outcomes,
                    elapsed_ms=(time.perf_counter() - start) * 1000.0,
                )
                completed.append(report)
                self._log_batch_success(report)
                return

            batch_errors.append(error)
            completed.append(
                BatchReport(
                    index=index,
                    outcomes=tuple(
                        DispatchOutcome(token=token, status=DeliveryStatus.FAILED, reason=GATEWAY_ERROR_REASON)
                        for token in batch
                    ),
                    wholesale_failure=True,
                    elapsed_ms=(time.perf_counter() - start) * 1000.0,
                )
            )

    def _translate(
        self,
        index: int,
        batch: Batch,
        responses: Sequence[GatewayResponse],
    ) -> tuple[DispatchOutcome, ...]:
        """Map positional gateway responses onto the batch tokens."""
        if len(responses) != len(batch):
            msg = f"Gateway returned {len(responses)} results for a batch of {len(batch)}"
            raise GatewayBatchError(msg, batch_index=index, batch_size=len(batch))

        outcomes: list[DispatchOutcome] = []
        for token, response in zip(batch, responses, strict=True):
            if response.success:
                outcomes.append(DispatchOutcome(token=token, status=DeliveryStatus.DELIVERED))
            else:
                outcomes.append(
                    DispatchOutcome(
                        token=token,
                        status=DeliveryStatus.FAILED,
                        reason=response.error_code or UNKNOWN_ERROR_REASON,
                    )
                )
        return tuple(outcomes)

    def _log_batch_success(self, report: BatchReport) -> None:
        delivered = sum(1 for outcome in report.outcomes if outcome.delivered)
        log_with_context(
            self._logger,
            logging.INFO,
            "Batch dispatched",
            extra={
                "batch_index": report.index,
                "batch_size": report.size,
                "delivered": delivered,
                "failed": report.size - delivered,
                "elapsed_ms": round(report.elapsed_ms, 2),
            },
        )

    def _handle_batch_errors(self, errors: list[GatewayBatchError]) -> None:
        """Log wholesale batch failures grouped by kind."""
        try:
            raise ExceptionGroup("batch dispatch failures", errors)
        except* BatchTimeoutError as group:
            for error in self._flatten_exceptions(group.exceptions, BatchTimeoutError):
                log_with_context(
                    self._logger,
                    logging.WARNING,
                    "Batch timed out at gateway",
                    extra={
                        "batch_index": error.batch_index,
                        "batch_size": error.batch_size,
                        "timeout_seconds": error.timeout_seconds,
                    },
                )
        except* GatewayBatchError as group:
            for error in self._flatten_exceptions(group.exceptions, GatewayBatchError):
                log_with_context(
                    self._logger,
                    logging.ERROR,
                    "Batch failed at gateway",
                    extra={
                        "batch_index": error.batch_index,
                        "batch_size": error.batch_size,
                        "error_message": str(error),
                        "exception_type": type(error.__cause__ or error).__name__,
                    },
                )

    def _flatten_exceptions[T: BaseException](
        self,
        exceptions: Iterable[BaseException],
        target_type: type[T],
    ) -> Iterator[T]:
        """Yield exceptions of a specific type from an exception hierarchy."""
        for exc in exceptions:
            if isinstance(exc, ExceptionGroup):
                yield from self._flatten_exceptions(exc.exceptions, target_type)
            elif isinstance(exc, target_type):
                yield exc
