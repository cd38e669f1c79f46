"""Stage runner: settlement, timeout and retry wrapper for generation stages.

Provides :func:`settle` to run one stage and turn whatever happens into a
:class:`StageOutcome` (never raising), :func:`run_with_retry` for the
caller-side retry policy, and :func:`join` to await several settled stages
concurrently.

Usage::

    from studygen.services.stage_runner import join, settle

    flowchart, quiz = await join(
        settle("flowchart", lambda: generate_flowchart(topic, info), ""),
        settle("quiz", lambda: generate_quiz(topic, info), []),
    )
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from studygen.core.config import settings
from studygen.services.llm_service.errors import GenerationError, ServiceUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StageStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"  # provider declined: "not applicable" / insufficient material
    FAILED = "failed"


@dataclass(frozen=True)
class StageOutcome(Generic[T]):
    """Settled result of one stage.

    ``value`` always holds something usable: the stage's output on success,
    otherwise the stage's empty sentinel (``""`` or ``[]``).
    """

    stage: str
    status: StageStatus
    value: T
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.status is StageStatus.SUCCESS


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if hasattr(value, "is_empty"):
        return value.is_empty()
    try:
        return len(value) == 0
    except TypeError:
        return False


# ── Core primitives ──────────────────────────────────────────


async def run_with_timeout(
    fn: Callable[[], Awaitable[T]],
    timeout: float,
    *,
    stage: str = "stage",
) -> T:
    """Await ``fn()`` with an optional wall-clock limit.

    A timeout is reported as :class:`ServiceUnavailable`.  ``timeout <= 0``
    disables the limit.
    """
    if not timeout or timeout <= 0:
        return await fn()
    try:
        return await asyncio.wait_for(fn(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.error("%s timed out after %.1f seconds", stage, timeout)
        raise ServiceUnavailable(f"stage timed out after {timeout} seconds", task=stage) from exc


async def run_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    stage: str = "stage",
    timeout: Optional[float] = None,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """Run ``fn`` with per-attempt timeout, retrying on ServiceUnavailable.

    ``max_retries`` counts re-issues after the first attempt, so the total
    number of attempts is ``1 + max_retries``.  Schema violations and any
    other error are raised immediately.
    """
    timeout = settings.STAGE_TIMEOUT if timeout is None else timeout
    max_retries = settings.STAGE_MAX_RETRIES if max_retries is None else max_retries
    backoff_base = settings.STAGE_RETRY_BACKOFF if backoff_base is None else backoff_base

    attempt = 0
    while True:
        try:
            return await run_with_timeout(fn, timeout, stage=stage)
        except ServiceUnavailable as exc:
            if attempt >= max_retries:
                raise
            sleep_secs = backoff_base * (2 ** attempt)
            attempt += 1
            logger.warning(
                "%s unavailable (%s), retry %d/%d in %.1fs",
                stage, exc, attempt, max_retries, sleep_secs,
            )
            await asyncio.sleep(sleep_secs)


async def settle(
    stage: str,
    fn: Callable[[], Awaitable[T]],
    empty_value: T,
    **retry_kwargs: Any,
) -> StageOutcome[T]:
    """Run one stage to completion and classify the result.

    Never raises for stage errors: ``GenerationError`` and unexpected
    exceptions both become ``StageStatus.FAILED`` with ``empty_value``.
    """
    try:
        value = await run_with_retry(fn, stage=stage, **retry_kwargs)
    except GenerationError as exc:
        logger.error("%s failed: %s", stage, exc)
        return StageOutcome(stage, StageStatus.FAILED, empty_value, exc)
    except Exception as exc:
        logger.error("%s failed unexpectedly: %s", stage, exc, exc_info=True)
        return StageOutcome(stage, StageStatus.FAILED, empty_value, exc)

    if _is_empty(value):
        logger.warning("%s produced no content", stage)
        return StageOutcome(stage, StageStatus.EMPTY, empty_value)
    return StageOutcome(stage, StageStatus.SUCCESS, value)


async def join(*branches: Awaitable[StageOutcome[Any]]) -> List[StageOutcome[Any]]:
    """Await all settled branches concurrently; outcomes keep argument order.

    Branches are expected to come from :func:`settle` and therefore never
    raise, so one branch can never cancel or short-circuit another.
    """
    return list(await asyncio.gather(*branches))
