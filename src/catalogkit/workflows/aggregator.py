"""Federated catalog aggregation across every storefront.

One fetch task per storefront, a bounded number in flight, results merged by
item id as tasks complete. The merge runs on the single coordinating coroutine,
so the aggregate dict has exactly one writer.

When two storefronts return the same id with different fields (localized
names, for instance), the entry that completes first is kept. Completion order
is not deterministic, so neither is the choice of entry; only the id set is.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import structlog

from ..api.catalog_client import CatalogClient, resolve_item_kind
from ..common.concurrency_limiter import ConcurrencyLimiter
from ..common.config import AggregationConfig, FailurePolicy
from ..common.logging_config import bind_context, unbind_context
from ..core.exceptions import (
    AggregationTimeoutError,
    CatalogError,
    ConfigError,
    DecodeError,
    StorefrontError,
    TransportError,
)
from ..parsers.catalog_models import CatalogItem, ItemKind

logger = structlog.get_logger(__name__)

FetchFn = Callable[[str], Awaitable[Sequence[CatalogItem]]]

# asyncio.TimeoutError is distinct from the builtin before Python 3.11
FETCH_TIMEOUT_ERRORS = (TimeoutError, asyncio.TimeoutError)


def _drop_tracebacks(error: Optional[BaseException]) -> None:
    """Clear tracebacks along the cause/context chain of ``error``.

    A kept traceback pins the fetch frames (client, limiter, fetch callable)
    for as long as the failure is referenced.
    """
    seen = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        error.__traceback__ = None
        error = error.__cause__ or error.__context__


class AggregationState(str, Enum):
    """Lifecycle of one aggregation call."""

    IDLE = "idle"
    COLLECTING = "collecting"
    DONE = "done"
    DONE_WITH_PARTIAL_FAILURES = "done_with_partial_failures"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Classification of a per-storefront failure."""

    CONFIG = "config"
    TRANSPORT = "transport"
    DECODE = "decode"
    TIMEOUT = "timeout"
    OTHER = "other"

    @classmethod
    def of(cls, error: BaseException) -> "ErrorKind":
        if isinstance(error, ConfigError):
            return cls.CONFIG
        if isinstance(error, DecodeError):
            return cls.DECODE
        if isinstance(error, TransportError):
            return cls.TRANSPORT
        if isinstance(error, FETCH_TIMEOUT_ERRORS):
            return cls.TIMEOUT
        return cls.OTHER


@dataclass(frozen=True)
class StorefrontFailure:
    """A storefront whose fetch failed (the error half of a fetch outcome)."""

    storefront: str
    error_kind: ErrorKind
    message: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_exception(cls, storefront: str, error: BaseException) -> "StorefrontFailure":
        return cls(
            storefront=storefront,
            error_kind=ErrorKind.of(error),
            message=str(error) or type(error).__name__,
            error=error,
        )


@dataclass(frozen=True)
class StorefrontOutcome:
    """Result of one storefront fetch: items on success, a failure otherwise."""

    storefront: str
    items: Tuple[CatalogItem, ...] = ()
    failure: Optional[StorefrontFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class AggregateResult:
    """Immutable snapshot of a finished aggregation.

    ``items`` maps item id to item; ids are unique by construction.
    """

    items: Mapping[str, CatalogItem] = field(default_factory=lambda: MappingProxyType({}))
    failures: Tuple[StorefrontFailure, ...] = ()
    state: AggregationState = AggregationState.DONE
    storefront_count: int = 0
    duration_seconds: float = 0.0

    @property
    def ids(self) -> FrozenSet[str]:
        return frozenset(self.items)

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)

    @property
    def failed_storefronts(self) -> Tuple[str, ...]:
        return tuple(f.storefront for f in self.failures)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[CatalogItem]:
        return iter(self.items.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.items


class FederatedAggregator:
    """
    Fan out one fetch per storefront and merge the results by item id.

    Failure policies:
    - ``BEST_EFFORT``: transport and decode failures are recorded in
      ``AggregateResult.failures``; the result holds whatever succeeded.
    - ``FAIL_FAST``: the first failure stops the call. Outstanding tasks are
      cancelled, fetches waiting for a slot never start, and
      ``StorefrontError`` is raised with the original error as ``__cause__``.

    ``ConfigError`` is fatal under both policies. Exceptions outside the
    catalog error taxonomy cancel the siblings and propagate unchanged.

    Example:
        >>> aggregator = FederatedAggregator(concurrency_limit=10)
        >>> result = await aggregator.aggregate(["us", "gb"], fetch_genres)
        >>> sorted(result.ids)
        ['1', '2', '3']
    """

    def __init__(
        self,
        concurrency_limit: Optional[int] = 20,
        failure_policy: Union[FailurePolicy, str] = FailurePolicy.BEST_EFFORT,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            concurrency_limit: Maximum fetches in flight; None or 0 for unbounded
            failure_policy: BEST_EFFORT (default) or FAIL_FAST
            timeout: Per-call time bound in seconds, None for no bound

        Raises:
            ValueError: On a negative limit or non-positive timeout
        """
        if concurrency_limit is not None and concurrency_limit < 0:
            raise ValueError("concurrency_limit must be >= 0")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")

        self.concurrency_limit = concurrency_limit or None
        self.failure_policy = FailurePolicy(failure_policy)
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: AggregationConfig) -> "FederatedAggregator":
        return cls(
            concurrency_limit=config.concurrency_limit,
            failure_policy=config.failure_policy,
            timeout=config.timeout,
        )

    def _is_fatal(self, failure: StorefrontFailure) -> bool:
        return (
            self.failure_policy is FailurePolicy.FAIL_FAST
            or failure.error_kind is ErrorKind.CONFIG
        )

    async def aggregate(self, storefronts: Iterable[str], fetch: FetchFn) -> AggregateResult:
        """
        Fetch from every storefront and merge the items by id.

        Args:
            storefronts: Storefront identifiers; read once, duplicates ignored
            fetch: Async callable returning the items of one storefront

        Returns:
            AggregateResult in state DONE or DONE_WITH_PARTIAL_FAILURES

        Raises:
            StorefrontError: On a fatal per-storefront failure
            AggregationTimeoutError: If the time bound is exceeded
        """
        storefront_list = list(dict.fromkeys(storefronts))
        start = time.monotonic()
        log = logger.bind(
            storefronts=len(storefront_list),
            policy=self.failure_policy.value,
            concurrency_limit=self.concurrency_limit,
        )

        if not storefront_list:
            log.info("aggregation_skipped_no_storefronts")
            return AggregateResult(state=AggregationState.DONE)

        limiter = ConcurrencyLimiter(self.concurrency_limit)
        stop = asyncio.Event()

        async def run(storefront: str) -> Optional[StorefrontOutcome]:
            async with limiter:
                if stop.is_set():
                    return None
                try:
                    items = await fetch(storefront)
                except (CatalogError,) + FETCH_TIMEOUT_ERRORS as e:
                    failure = StorefrontFailure.from_exception(storefront, e)
                    if self._is_fatal(failure):
                        # set before the slot is released so no waiter starts a fetch
                        stop.set()
                    return StorefrontOutcome(storefront, failure=failure)
                except Exception:
                    stop.set()
                    raise
            return StorefrontOutcome(storefront, items=tuple(items))

        merged: Dict[str, CatalogItem] = {}
        failures: List[StorefrontFailure] = []
        duplicates = 0
        state = AggregationState.COLLECTING
        log.info("aggregation_started", state=state.value)

        tasks = {
            asyncio.create_task(run(sf), name=f"catalog-fetch-{sf}"): sf
            for sf in storefront_list
        }
        pending = set(tasks)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout if self.timeout is not None else None

        try:
            while pending:
                remaining = None if deadline is None else max(0.0, deadline - loop.time())
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
                )
                if not done:
                    waiting = sorted(tasks[t] for t in pending)
                    raise AggregationTimeoutError(
                        f"Aggregation exceeded {self.timeout}s with "
                        f"{len(waiting)} storefront(s) outstanding",
                        timeout=self.timeout,
                        pending_storefronts=waiting,
                    )

                for task in done:
                    outcome = task.result()
                    if outcome is None:
                        continue

                    if outcome.failure is not None:
                        failure = outcome.failure
                        log.warning(
                            "storefront_fetch_failed",
                            storefront=failure.storefront,
                            error_kind=failure.error_kind.value,
                            error=failure.message,
                        )
                        if self._is_fatal(failure):
                            raise StorefrontError(
                                f"Storefront {failure.storefront!r} failed: {failure.message}",
                                storefront=failure.storefront,
                                error_kind=failure.error_kind.value,
                            ) from failure.error
                        _drop_tracebacks(failure.error)
                        failures.append(failure)
                        continue

                    for item in outcome.items:
                        if item.id in merged:
                            duplicates += 1
                        else:
                            merged[item.id] = item
                    log.debug(
                        "storefront_merged",
                        storefront=outcome.storefront,
                        items=len(outcome.items),
                        total=len(merged),
                    )
        except BaseException as e:
            state = AggregationState.FAILED
            log.error(
                "aggregation_failed",
                state=state.value,
                error=type(e).__name__,
                outstanding=len(pending),
            )
            raise
        finally:
            if pending:
                for task in pending:
                    task.cancel()
                discarded = await asyncio.gather(*pending, return_exceptions=True)
                log.debug("aggregation_tasks_discarded", count=len(discarded))

        state = (
            AggregationState.DONE_WITH_PARTIAL_FAILURES
            if failures
            else AggregationState.DONE
        )
        duration = time.monotonic() - start
        log.info(
            "aggregation_complete",
            state=state.value,
            items=len(merged),
            duplicates=duplicates,
            failures=len(failures),
            peak_in_flight=limiter.peak_active,
            duration_seconds=round(duration, 3),
        )

        return AggregateResult(
            items=MappingProxyType(dict(merged)),
            failures=tuple(failures),
            state=state,
            storefront_count=len(storefront_list),
            duration_seconds=duration,
        )


class CatalogAggregator:
    """
    Aggregate one catalog collection across every storefront of a CatalogClient.

    Per-call arguments override the ``AggregationConfig`` defaults. Nothing is
    read from process-wide state.

    Example:
        >>> async with CatalogClient.from_config(config.catalog) as client:
        ...     aggregator = CatalogAggregator(client, config.aggregation)
        ...     result = await aggregator.all_genres()
        ...     print(len(result), result.failed_storefronts)
    """

    def __init__(self, client: CatalogClient, config: Optional[AggregationConfig] = None):
        self.client = client
        self.config = config or AggregationConfig()

    async def aggregate_catalog(
        self,
        kind: Union[ItemKind, str],
        concurrency_limit: Optional[int] = None,
        failure_policy: Optional[Union[FailurePolicy, str]] = None,
        timeout: Optional[float] = None,
    ) -> AggregateResult:
        """
        Aggregate ``kind`` across all storefronts, deduplicated by item id.

        Storefronts are listed once per call; changes during the call are not
        observed.

        Args:
            kind: Item kind to aggregate, e.g. ``ItemKind.GENRES``
            concurrency_limit: Fetches in flight; None uses the config, 0 is unbounded
            failure_policy: Overrides the configured policy
            timeout: Bound in seconds for the whole call, storefront listing included

        Returns:
            AggregateResult (possibly partial under best-effort)

        Raises:
            ValueError: On invalid per-call arguments
            ConfigError: If ``kind`` is not a known item kind
            TransportError: If the storefront listing cannot be retrieved
            DecodeError: If the storefront listing is malformed
            StorefrontError: On a fatal per-storefront failure
            AggregationTimeoutError: If ``timeout`` is exceeded
        """
        item_kind = resolve_item_kind(kind)
        limit = self.config.concurrency_limit if concurrency_limit is None else concurrency_limit
        policy = failure_policy if failure_policy is not None else self.config.failure_policy
        bound = timeout if timeout is not None else self.config.timeout
        # rejects bad arguments before any request is made
        aggregator = FederatedAggregator(
            concurrency_limit=limit,
            failure_policy=policy,
            timeout=bound,
        )

        bind_context(aggregation_id=uuid.uuid4().hex[:12], kind=item_kind.value)
        try:
            loop = asyncio.get_running_loop()
            started = loop.time()

            try:
                storefronts = await asyncio.wait_for(self.client.list_storefronts(), timeout=bound)
            except asyncio.TimeoutError:
                raise AggregationTimeoutError(
                    f"Storefront listing exceeded {bound}s", timeout=bound
                ) from None

            if bound is not None:
                remaining = bound - (loop.time() - started)
                if remaining <= 0:
                    raise AggregationTimeoutError(
                        f"Aggregation exceeded {bound}s", timeout=bound, pending_storefronts=storefronts
                    )
                aggregator.timeout = remaining

            async def fetch(storefront: str) -> Sequence[CatalogItem]:
                return await self.client.fetch_items(storefront, item_kind)

            return await aggregator.aggregate(storefronts, fetch)
        finally:
            unbind_context("aggregation_id", "kind")

    async def all_genres(self, **kwargs) -> AggregateResult:
        """Unique genres from every storefront."""
        return await self.aggregate_catalog(ItemKind.GENRES, **kwargs)

    async def all_station_genres(self, **kwargs) -> AggregateResult:
        """Unique station genres from every storefront."""
        return await self.aggregate_catalog(ItemKind.STATION_GENRES, **kwargs)
