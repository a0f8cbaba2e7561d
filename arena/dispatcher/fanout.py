"""
Fan-Out Orchestrator - one logical request, many targets.

Each target is dispatched concurrently on the running event loop. A
failure in one target becomes that target's error entry and never affects
its siblings, so the caller always gets exactly one DispatchResult per
distinct target.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Iterable, Mapping, Sequence

from arena.dispatcher.coordinator import dispatch
from arena.dispatcher.errors import DispatchError
from arena.dispatcher.types import (
    ConversationTurn,
    CredentialSet,
    DispatchResult,
    RequestEnvelope,
    SamplingParams,
)

logger = logging.getLogger(__name__)


def _unique_targets(targets: Iterable[str]) -> list[str]:
    """De-duplicate while keeping the caller's order."""
    unique = list(dict.fromkeys(targets))
    if not unique:
        raise ValueError("at least one target is required")
    return unique


async def _dispatch_one(
    target: str,
    turns: Sequence[ConversationTurn],
    credentials: CredentialSet,
    sampling: SamplingParams,
) -> DispatchResult:
    """Dispatch a single target, turning anything unexpected into an error entry."""
    request = RequestEnvelope(target=target, turns=tuple(turns), sampling=sampling)
    try:
        return await dispatch(request, credentials)
    except Exception as e:
        logger.exception(f"Unexpected failure while dispatching {target}")
        return DispatchResult(
            target=target,
            error=DispatchError(f"Unexpected dispatch failure: {e}", target=target),
        )


async def compare(
    targets: Iterable[str],
    turns_by_target: Mapping[str, Sequence[ConversationTurn]],
    credentials: CredentialSet,
    sampling: SamplingParams | None = None,
) -> dict[str, DispatchResult]:
    """
    Send the same logical request to every target concurrently.

    Args:
        targets: Target identifiers (duplicates are collapsed)
        turns_by_target: Conversation history per target; targets without
            an entry get an empty history
        credentials: Per-call provider secrets shared by all targets
        sampling: Sampling parameters shared by all targets

    Returns:
        Dict of target -> DispatchResult, in the order targets were given

    Raises:
        ValueError: If no target was given
    """
    unique = _unique_targets(targets)
    sampling = sampling or SamplingParams()

    logger.info(f"Fan-out to {len(unique)} target(s): {', '.join(unique)}")
    start_time = time.perf_counter()

    results = await asyncio.gather(
        *(
            _dispatch_one(target, turns_by_target.get(target, ()), credentials, sampling)
            for target in unique
        )
    )

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    succeeded = sum(1 for r in results if r.success)
    logger.info(
        f"Fan-out complete: {succeeded}/{len(unique)} succeeded, elapsed={elapsed_ms:.0f}ms"
    )

    return dict(zip(unique, results))


async def iter_compare(
    targets: Iterable[str],
    turns_by_target: Mapping[str, Sequence[ConversationTurn]],
    credentials: CredentialSet,
    sampling: SamplingParams | None = None,
) -> AsyncIterator[tuple[str, DispatchResult]]:
    """
    Like compare(), but yield (target, result) pairs as each one completes.

    Raises:
        ValueError: If no target was given
    """
    unique = _unique_targets(targets)
    sampling = sampling or SamplingParams()

    tasks = [
        asyncio.ensure_future(
            _dispatch_one(target, turns_by_target.get(target, ()), credentials, sampling)
        )
        for target in unique
    ]
    try:
        for next_done in asyncio.as_completed(tasks):
            result = await next_done
            yield result.target, result
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
