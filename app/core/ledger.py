import datetime as dt
import threading
import uuid
from collections import deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Deque, Dict, List, Optional

from app.config.logger import get_logger
from app.core.pricing import DEFAULT_PRICING, DEFAULT_PRICING_MODEL, PricingConfig, calculate_cost_usd
from app.core.usage_parser import UsageFrameParser
from app.db.usage_sink import UsageSink
from app.schemas.usage import UNKNOWN, UsageContext, UsageRecord, UsageSummary

LOGGER = get_logger("ledger")


class UsageTracker:
    """Per-call view of the ledger: parses forwarded chunks, records on finish."""

    def __init__(self, ledger: "UsageLedger", model: str, context: UsageContext):
        self._ledger = ledger
        self._model = model
        self._context = context
        self._parser = UsageFrameParser()
        self._finished = False

    @property
    def input_tokens(self) -> int:
        return self._parser.input_tokens

    @property
    def output_tokens(self) -> int:
        return self._parser.output_tokens

    def feed(self, chunk: bytes) -> None:
        self._parser.feed(chunk)

    def finish(self) -> Optional[UsageRecord]:
        if self._finished:
            return None
        self._finished = True
        self._parser.close()
        return self._ledger.record(
            model=self._model,
            input_tokens=self._parser.input_tokens,
            output_tokens=self._parser.output_tokens,
            context=self._context,
        )


class UsageLedger:
    """Bounded in-memory ring of usage records with a best-effort durable mirror.

    Records are kept newest first. Appends and evictions happen under one
    lock so concurrent completions never observe more than ``capacity``
    entries. Sink writes are submitted to ``executor`` and never awaited.
    """

    def __init__(
        self,
        capacity: int = 100,
        sink: Optional[UsageSink] = None,
        pricing: Optional[Dict[str, PricingConfig]] = None,
        default_pricing_model: str = DEFAULT_PRICING_MODEL,
        executor: Optional[Executor] = None,
        debug_logs: bool = False,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self._sink = sink
        self._pricing = pricing or DEFAULT_PRICING
        if default_pricing_model not in self._pricing:
            raise ValueError(f"default pricing model {default_pricing_model!r} is not in the pricing table")
        self._default_pricing_model = default_pricing_model
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="usage-sink")
        self._debug_logs = debug_logs
        self._records: Deque[UsageRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def start_call(self, model: str, context: Optional[UsageContext] = None) -> UsageTracker:
        return UsageTracker(self, model, context or UsageContext())

    def record(
        self,
        *,
        model: str,
        input_tokens: int,
        output_tokens: int,
        context: Optional[UsageContext] = None,
    ) -> Optional[UsageRecord]:
        """Turn final counters into a record; ``None`` when no usage was seen."""

        if input_tokens <= 0 and output_tokens <= 0:
            LOGGER.info(
                "Usage discarded; no token counts observed",
                extra={"model": model},
            )
            return None

        context = context or UsageContext()
        input_cost, output_cost, total_cost = calculate_cost_usd(
            model, input_tokens, output_tokens, self._pricing, self._default_pricing_model
        )
        record = UsageRecord(
            id=str(uuid.uuid4()),
            createdAt=dt.datetime.now(dt.timezone.utc).isoformat(),
            model=model,
            storyId=context.storyId or UNKNOWN,
            storyName=context.storyName or UNKNOWN,
            speakerName=context.speakerName or UNKNOWN,
            inputTokens=input_tokens,
            outputTokens=output_tokens,
            inputCost=input_cost,
            outputCost=output_cost,
            totalCost=total_cost,
        )
        self.push(record)
        self._dispatch_to_sink(record)
        return record

    def push(self, record: UsageRecord) -> None:
        with self._lock:
            # deque(maxlen) drops from the right, i.e. the oldest entry.
            self._records.appendleft(record)
        LOGGER.info(
            "Usage recorded",
            extra={
                "recordId": record.id,
                "storyId": record.storyId,
                "inputTokens": record.inputTokens,
                "outputTokens": record.outputTokens,
                "totalCost": record.totalCost,
            },
        )

    def records(self) -> List[UsageRecord]:
        with self._lock:
            return list(self._records)

    def summary(self) -> UsageSummary:
        records = self.records()
        source = "memory"
        if not records:
            records = self._load_from_sink()
            source = "sink" if records else "none"
        return UsageSummary(
            records=records,
            total_cost=sum(r.totalCost for r in records),
            total_input=sum(r.inputTokens for r in records),
            total_output=sum(r.outputTokens for r in records),
            count=len(records),
            source=source,
        )

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _load_from_sink(self) -> List[UsageRecord]:
        if self._sink is None:
            return []
        try:
            return list(self._sink.recent(self.capacity))[: self.capacity]
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Usage sink read failed; reporting empty usage",
                extra={"error": str(exc)},
                exc_info=self._debug_logs,
            )
            return []

    def _dispatch_to_sink(self, record: UsageRecord) -> None:
        if self._sink is None:
            return
        sink = self._sink

        def _work() -> None:
            sink.append(record)

        try:
            future = self._executor.submit(_work)
        except RuntimeError as exc:
            # Executor already shut down during application teardown.
            LOGGER.warning(
                "Usage sink dispatch skipped",
                extra={"recordId": record.id, "error": str(exc)},
            )
            return
        future.add_done_callback(lambda f: self._log_sink_result(record, f))

    def _log_sink_result(self, record: UsageRecord, future: Future) -> None:
        exc = future.exception()
        if exc is None:
            if self._debug_logs:
                LOGGER.info("Usage sink write done", extra={"recordId": record.id})
            return
        LOGGER.warning(
            "Usage sink write failed",
            extra={"recordId": record.id, "error": str(exc)},
            exc_info=(type(exc), exc, exc.__traceback__) if self._debug_logs else False,
        )
