"""
Asset pipeline: drives each slot through its backend with retries and stores the result.
Slots are independent - a slot that fails is reported and the run moves on.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Mapping

from miniapp_assets.services.assets.models import Artifact, FailureReport, RunResult
from miniapp_assets.services.image_generation.base import (
    BackendKind,
    GenerationRequest,
    GenerationSuccess,
    ImageGenerationProvider,
    Slot,
)
from miniapp_assets.services.image_generation.failure_types import (
    DEFAULT_RETRY_DELAY_SECONDS,
    ErrorClassifier,
)
from miniapp_assets.services.image_generation.runner import (
    DEFAULT_MAX_ATTEMPTS,
    Classifier,
    Sleeper,
    execute_with_retry,
    wait,
)
from miniapp_assets.storage.base import Storage, UnsupportedMediaTypeError

logger = logging.getLogger(__name__)

SlotOutcome = Artifact | FailureReport


class AssetPipeline:
    """
    Runs a small, fixed set of generation requests for one operator-triggered run.

    Sequential by default: provider rate limits are usually per API key, so slots wait
    inter_call_delay between each other. parallel=True is only safe when the slots'
    backends do not share a rate-limit budget.
    """

    def __init__(
        self,
        adapters: Mapping[BackendKind, ImageGenerationProvider],
        store: Storage,
        classifier: Classifier | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        default_delay: int = DEFAULT_RETRY_DELAY_SECONDS,
        parallel: bool = False,
        max_workers: int = 2,
        clear_scope: str = "all",
        sleep: Sleeper = wait,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.adapters = dict(adapters)
        self.store = store
        self.classifier = classifier or ErrorClassifier(default_delay)
        self.max_attempts = max_attempts
        self.default_delay = default_delay
        self.parallel = parallel
        self.max_workers = max(1, max_workers)
        self.clear_scope = clear_scope
        self.sleep = sleep
        self.clock = clock

    def run(self, requests: Iterable[GenerationRequest], inter_call_delay: float) -> RunResult:
        requests = list(requests)
        seen: set[Slot] = set()
        for request in requests:
            if request.slot in seen:
                raise ValueError(f"Duplicate slot in run: {request.slot.value}")
            seen.add(request.slot)
        if inter_call_delay < 0:
            raise ValueError("inter_call_delay must be >= 0")

        started = self.clock()
        # every clear finishes before the first save
        self._clear(requests)

        if self.parallel and len(requests) > 1:
            outcomes = self._run_parallel(requests, inter_call_delay)
        else:
            outcomes = self._run_sequential(requests, inter_call_delay)

        result = RunResult(
            per_slot={r.slot: outcomes[r.slot] for r in requests},
            total_duration_ms=int((self.clock() - started) * 1000),
        )
        logger.info(
            "Run finished: %d succeeded, %d failed in %.1fs",
            len(result.artifacts), len(result.failures), result.total_duration_ms / 1000,
            extra={"duration_ms": result.total_duration_ms},
        )
        return result

    def _clear(self, requests: list[GenerationRequest]) -> None:
        if self.clear_scope == "none":
            return
        if self.clear_scope == "all":
            self.store.clear()
            return
        for request in requests:
            adapter = self.adapters.get(request.backend_kind)
            if adapter is not None:
                self.store.clear(prefix=f"{adapter.provider_tag}-{request.slot.value}-")

    def _run_sequential(
        self, requests: list[GenerationRequest], inter_call_delay: float
    ) -> dict[Slot, SlotOutcome]:
        outcomes: dict[Slot, SlotOutcome] = {}
        for index, request in enumerate(requests):
            if index > 0 and inter_call_delay > 0:
                logger.info(
                    "Waiting %ss before %s to respect rate limits", inter_call_delay, request.slot.value,
                    extra={"slot": request.slot.value, "delay_seconds": inter_call_delay},
                )
                self.sleep(inter_call_delay)
            outcomes[request.slot] = self.run_slot(request)
        return outcomes

    def _run_parallel(
        self, requests: list[GenerationRequest], inter_call_delay: float
    ) -> dict[Slot, SlotOutcome]:
        futures = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="slot") as pool:
            for index, request in enumerate(requests):
                # staggered starts keep the floor between calls
                if index > 0 and inter_call_delay > 0:
                    self.sleep(inter_call_delay)
                futures[request.slot] = pool.submit(self.run_slot, request)
            return {slot: future.result() for slot, future in futures.items()}

    def run_slot(self, request: GenerationRequest) -> SlotOutcome:
        slot = request.slot
        adapter = self.adapters.get(request.backend_kind)
        if adapter is None:
            reason = f"No backend configured for {request.backend_kind.value}"
            logger.error("%s", reason, extra={"slot": slot.value, "reason": reason})
            return FailureReport(slot=slot, reason=reason, attempts=0)

        started = self.clock()
        outcome = execute_with_retry(
            request,
            adapter,
            classifier=self.classifier,
            max_attempts=self.max_attempts,
            default_delay=self.default_delay,
            sleep=self.sleep,
        )
        duration_ms = int((self.clock() - started) * 1000)

        if not isinstance(outcome.result, GenerationSuccess):
            reason = outcome.failure_reason or "unknown failure"
            logger.error(
                "Failed to generate %s: %s", slot.value, reason,
                extra={
                    "slot": slot.value,
                    "provider": adapter.provider_tag,
                    "attempt": outcome.attempts,
                    "reason": reason,
                    "duration_ms": duration_ms,
                },
            )
            return FailureReport(slot=slot, reason=reason, attempts=outcome.attempts)

        try:
            artifact = self.store.save(
                slot,
                outcome.result.payload,
                outcome.result.media_type,
                adapter.provider_tag,
            )
        except (UnsupportedMediaTypeError, OSError) as e:
            reason = f"Could not save {slot.value}: {e}"
            logger.error("%s", reason, extra={"slot": slot.value, "provider": adapter.provider_tag, "error": str(e)})
            return FailureReport(slot=slot, reason=reason, attempts=outcome.attempts)

        logger.info(
            "Generated %s in %.1fs: %s", slot.value, duration_ms / 1000, artifact.filename,
            extra={
                "slot": slot.value,
                "provider": adapter.provider_tag,
                "artifact_name": artifact.filename,
                "attempt": outcome.attempts,
                "duration_ms": duration_ms,
            },
        )
        return artifact
