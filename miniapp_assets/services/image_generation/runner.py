"""
Generation runner: one adapter call wrapped in a bounded retry loop.
Failures are classified into Stop / RetryAfter; retries wait the exact delay the
provider asked for (or the default), without jitter or multipliers.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from miniapp_assets.services.image_generation.base import (
    GenerationFailure,
    GenerationRequest,
    GenerationResult,
    GenerationSuccess,
    ImageGenerationProvider,
)
from miniapp_assets.services.image_generation.failure_types import (
    DEFAULT_RETRY_DELAY_SECONDS,
    RetryVerdict,
    Stop,
    classify_failure,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 4  # first try + 3 retries
COUNTDOWN_TICK_SECONDS = 10

Classifier = Callable[[GenerationFailure], RetryVerdict]
Sleeper = Callable[[float], None]


def wait(seconds: float, tick: float = COUNTDOWN_TICK_SECONDS) -> None:
    """
    Block for exactly `seconds`, logging a countdown every `tick` seconds on long waits.
    The countdown only splits the sleep; the summed duration is unchanged.
    """
    if seconds <= 0:
        return
    logger.info("Waiting %ss", seconds, extra={"delay_seconds": seconds})
    if seconds <= tick:
        time.sleep(seconds)
        return
    remaining = float(seconds)
    while remaining > 0:
        step = min(tick, remaining)
        time.sleep(step)
        remaining -= step
        if remaining > 0:
            logger.info("%ss remaining", round(remaining, 1), extra={"remaining_seconds": round(remaining, 1)})


@dataclass
class RetryOutcome:
    """Terminal result of execute_with_retry plus the accounting behind it."""
    result: GenerationResult
    attempts: int = 0
    verdicts: list[RetryVerdict] = field(default_factory=list)
    retry_delays: list[int] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, GenerationSuccess)

    @property
    def total_delay_seconds(self) -> int:
        return sum(self.retry_delays)

    @property
    def failure_reason(self) -> str | None:
        """Stop reason when the loop was stopped, else the last failure message."""
        if isinstance(self.result, GenerationSuccess):
            return None
        if self.verdicts and isinstance(self.verdicts[-1], Stop):
            return self.verdicts[-1].reason
        return self.result.message


def execute_with_retry(
    request: GenerationRequest,
    adapter: ImageGenerationProvider,
    classifier: Classifier | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    default_delay: int = DEFAULT_RETRY_DELAY_SECONDS,
    sleep: Sleeper = wait,
) -> RetryOutcome:
    """
    Attempting(n) for n in [0, max_attempts): success ends the loop, Stop ends it with the
    failure, RetryAfter(d) sleeps d seconds and tries again while attempts remain.
    The adapter is invoked at most max_attempts times.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if classifier is None:
        def classifier(failure: GenerationFailure) -> RetryVerdict:
            return classify_failure(failure, default_delay)

    slot = request.slot.value
    provider = adapter.provider_tag
    # replaced by the first adapter result; the loop runs at least once
    outcome = RetryOutcome(result=GenerationFailure(message="not attempted"))
    attempt = 0

    while attempt < max_attempts:
        attempt += 1
        logger.info(
            "Generating %s with %s (attempt %d/%d)", slot, provider, attempt, max_attempts,
            extra={"slot": slot, "provider": provider, "attempt": attempt, "max_attempts": max_attempts},
        )
        result = adapter.invoke(request)
        outcome.result = result
        outcome.attempts = attempt

        if isinstance(result, GenerationSuccess):
            if attempt > 1:
                logger.info(
                    "Generated %s after %d attempts", slot, attempt,
                    extra={"slot": slot, "provider": provider, "attempt": attempt},
                )
            return outcome

        verdict = classifier(result)
        outcome.verdicts.append(verdict)
        verdict_name = "stop" if isinstance(verdict, Stop) else "retry_after"
        logger.warning(
            "Attempt %d/%d for %s failed: %s", attempt, max_attempts, slot, result.message,
            extra={
                "slot": slot,
                "provider": provider,
                "attempt": attempt,
                "max_attempts": max_attempts,
                "verdict": verdict_name,
                "transport_error": result.is_transport_error,
                "http_status": result.http_status,
                "error": result.message,
            },
        )

        if isinstance(verdict, Stop):
            logger.error(
                "Not retrying %s: %s", slot, verdict.reason,
                extra={"slot": slot, "provider": provider, "verdict": "stop", "reason": verdict.reason},
            )
            return outcome

        if attempt >= max_attempts:
            logger.error(
                "Max attempts (%d) exhausted for %s", max_attempts, slot,
                extra={"slot": slot, "provider": provider, "max_attempts": max_attempts},
            )
            return outcome

        logger.info(
            "Retrying %s in %ss", slot, verdict.seconds,
            extra={
                "slot": slot,
                "provider": provider,
                "attempt": attempt,
                "max_attempts": max_attempts,
                "delay_seconds": verdict.seconds,
            },
        )
        outcome.retry_delays.append(verdict.seconds)
        sleep(verdict.seconds)

    return outcome
