"""
Dispatch Coordinator - one target, with a one-hop fallback.

For a single RequestEnvelope the coordinator:
1. Resolves the primary family and the fallback target (if any)
2. Calls the primary adapter when its credential is present
3. On primary failure, calls the fallback adapter when the fallback target
   exists and its credential is present
4. Skips the primary entirely when only the fallback has a credential
5. Annotates successful envelopes with a trust score

The result is always a DispatchResult value; errors are never raised to
the caller.
"""

import logging
import time

from arena.config import get_settings
from arena.dispatcher.errors import (
    CompositeFallbackFailure,
    DispatchError,
    NoCredentialsAvailable,
)
from arena.dispatcher.handlers import PROVIDER_NAMES, invoke
from arena.dispatcher.types import (
    AdapterOutcome,
    Attempt,
    CredentialSet,
    DispatchResult,
    RequestEnvelope,
    ResponseEnvelope,
)
from arena.metrics.store import DispatchMetric, get_metrics_store
from arena.router.resolver import plan_route
from arena.scoring.trust import TrustAnnotator, get_trust_annotator

logger = logging.getLogger(__name__)


def _attempt_from(outcome: AdapterOutcome) -> Attempt:
    return Attempt(
        target=outcome.target,
        family=outcome.family,
        success=outcome.success,
        error_code=outcome.error.code if outcome.error else None,
    )


def _record(result: DispatchResult, family: str) -> None:
    if not get_settings().track_metrics:
        return
    envelope = result.envelope
    get_metrics_store().record(
        DispatchMetric(
            timestamp=time.time(),
            target=result.target,
            family=family,
            served_by=envelope.model if envelope else None,
            success=result.success,
            error_code=result.error.code if result.error else None,
            fallback_used=result.fallback_used,
            latency_ms=result.latency_ms,
            input_tokens=envelope.usage.input_tokens if envelope else 0,
            output_tokens=envelope.usage.output_tokens if envelope else 0,
        )
    )


async def dispatch(
    request: RequestEnvelope,
    credentials: CredentialSet,
    annotator: TrustAnnotator | None = None,
) -> DispatchResult:
    """
    Serve one request, trying the fallback target when the primary fails.

    Args:
        request: Target, conversation turns, and sampling parameters
        credentials: Per-call provider secrets
        annotator: Trust annotator (defaults to the process-wide one)

    Returns:
        DispatchResult with an envelope on success or a typed error.
        A fallback-served envelope has fallback_used=True and
        fallback_from set to the requested target.
    """
    start_time = time.perf_counter()
    plan = plan_route(request.target)
    attempts: list[Attempt] = []

    primary_credential = credentials.for_family(plan.family)
    fallback_credential = (
        credentials.for_family(plan.fallback_family) if plan.fallback_family is not None else None
    )

    envelope: ResponseEnvelope | None = None
    error: DispatchError | None = None

    if primary_credential is not None:
        primary = await invoke(
            plan.family, request.target, request.turns, request.sampling, primary_credential
        )
        attempts.append(_attempt_from(primary))

        if primary.success:
            envelope = primary.envelope
        elif plan.has_fallback and fallback_credential is not None:
            logger.warning(
                f"Primary {PROVIDER_NAMES[plan.family]} failed for {request.target} "
                f"({primary.error.code}), trying fallback {plan.fallback_target}"
            )
            fallback = await invoke(
                plan.fallback_family,
                plan.fallback_target,
                request.turns,
                request.sampling,
                fallback_credential,
            )
            attempts.append(_attempt_from(fallback))

            if fallback.success:
                envelope = fallback.envelope.as_fallback(request.target)
            else:
                error = CompositeFallbackFailure(primary.error, fallback.error, target=request.target)
        else:
            error = primary.error

    elif plan.has_fallback and fallback_credential is not None:
        logger.info(
            f"No {PROVIDER_NAMES[plan.family]} credential for {request.target}, "
            f"using fallback {plan.fallback_target} directly"
        )
        fallback = await invoke(
            plan.fallback_family,
            plan.fallback_target,
            request.turns,
            request.sampling,
            fallback_credential,
        )
        attempts.append(_attempt_from(fallback))

        if fallback.success:
            envelope = fallback.envelope.as_fallback(request.target)
        else:
            error = fallback.error

    else:
        families = [PROVIDER_NAMES[plan.family]]
        if plan.fallback_family is not None:
            families.append(PROVIDER_NAMES[plan.fallback_family])
        error = NoCredentialsAvailable(
            f"No API key available for {request.target}. Please provide a {' or '.join(families)} API key.",
            target=request.target,
            provider=plan.family.value,
        )

    if envelope is not None:
        annotator = annotator or get_trust_annotator()
        envelope = envelope.with_trust_score(annotator.annotate(envelope.content))

    latency_ms = (time.perf_counter() - start_time) * 1000
    result = DispatchResult(
        target=request.target,
        envelope=envelope,
        error=error,
        attempts=tuple(attempts),
        latency_ms=latency_ms,
    )

    if result.success:
        logger.info(
            f"Dispatch succeeded: target={request.target}, served_by={envelope.model}, "
            f"fallback={envelope.fallback_used}, latency={latency_ms:.0f}ms"
        )
    else:
        logger.error(f"Dispatch failed: target={request.target}, [{error.code}] {error.message}")

    _record(result, plan.family.value)
    return result
