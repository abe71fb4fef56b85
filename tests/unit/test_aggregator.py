"""Unit tests for FederatedAggregator."""

import asyncio
import gc
import weakref
from typing import Dict, List, Sequence

import pytest

from catalogkit.common.config import AggregationConfig, FailurePolicy
from catalogkit.core.exceptions import (
    AggregationTimeoutError,
    ConfigError,
    DecodeError,
    StorefrontError,
    TransportError,
)
from catalogkit.parsers.catalog_models import CatalogItem
from catalogkit.workflows.aggregator import (
    AggregateResult,
    AggregationState,
    ErrorKind,
    FederatedAggregator,
)


def item(item_id: str, name: str) -> CatalogItem:
    return CatalogItem(id=item_id, name=name)


class FakeCatalog:
    """Per-storefront canned responses with call tracking."""

    def __init__(self, responses: Dict[str, object], delays: Dict[str, float] = None):
        self.responses = responses
        self.delays = delays or {}
        self.started: List[str] = []
        self.completed: List[str] = []
        self.active = 0
        self.peak = 0

    async def fetch(self, storefront: str) -> Sequence[CatalogItem]:
        self.started.append(storefront)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delays.get(storefront, 0.01))
            response = self.responses[storefront]
            if isinstance(response, BaseException):
                raise response
            self.completed.append(storefront)
            return response
        finally:
            self.active -= 1


class TestFederatedAggregator:
    """Test suite for FederatedAggregator."""

    @pytest.mark.asyncio
    async def test_us_gb_example(self):
        """Overlapping ids collapse to one entry; the kept name depends on completion order."""
        catalog = FakeCatalog(
            {
                "us": [item("1", "Pop"), item("2", "Rock")],
                "gb": [item("2", "Rock (UK)"), item("3", "Grime")],
            }
        )

        result = await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)

        assert result.state is AggregationState.DONE
        assert len(result) == 3
        assert result.ids == {"1", "2", "3"}
        assert result.items["2"].name in {"Rock", "Rock (UK)"}
        assert result.failures == ()
        assert result.storefront_count == 2

    @pytest.mark.asyncio
    async def test_first_completed_storefront_wins_duplicate(self):
        """The storefront that completes first supplies the entry for a shared id."""
        catalog = FakeCatalog(
            {"slow": [item("2", "Rock")], "fast": [item("2", "Rock (UK)")]},
            delays={"slow": 0.1, "fast": 0.0},
        )

        result = await FederatedAggregator().aggregate(["slow", "fast"], catalog.fetch)

        assert result.items["2"].name == "Rock (UK)"

    @pytest.mark.asyncio
    async def test_dedup_invariant_many_storefronts(self):
        """Every storefront returns the same ids; each id appears once."""
        storefronts = [f"s{i}" for i in range(30)]
        catalog = FakeCatalog(
            {sf: [item(str(n), f"Genre {n} ({sf})") for n in range(10)] for sf in storefronts}
        )

        result = await FederatedAggregator(concurrency_limit=7).aggregate(
            storefronts, catalog.fetch
        )

        assert len(result) == 10
        assert result.ids == {str(n) for n in range(10)}
        assert len(list(result)) == len(result.items)

    @pytest.mark.asyncio
    async def test_completeness_under_all_success(self):
        """Result size equals the number of distinct ids across storefronts."""
        responses = {
            "us": [item("1", "a"), item("2", "b")],
            "gb": [item("2", "b"), item("3", "c")],
            "jp": [item("4", "d"), item("1", "a"), item("5", "e")],
            "fr": [],
        }
        catalog = FakeCatalog(responses)

        result = await FederatedAggregator().aggregate(responses.keys(), catalog.fetch)

        expected = {i.id for items in responses.values() for i in items}
        assert result.ids == expected
        assert len(result) == len(expected)

    @pytest.mark.asyncio
    async def test_duplicates_within_one_storefront(self):
        catalog = FakeCatalog({"us": [item("1", "Pop"), item("1", "Pop again")]})

        result = await FederatedAggregator().aggregate(["us"], catalog.fetch)

        assert len(result) == 1
        assert result.items["1"].name == "Pop"

    @pytest.mark.asyncio
    async def test_best_effort_partial_failure(self):
        """One failing storefront yields a partial result plus a failure naming it."""
        catalog = FakeCatalog(
            {
                "us": [item("1", "Pop")],
                "gb": TransportError("HTTP 503", status_code=503),
                "jp": [item("7", "J-Pop")],
            }
        )

        result = await FederatedAggregator().aggregate(["us", "gb", "jp"], catalog.fetch)

        assert result.state is AggregationState.DONE_WITH_PARTIAL_FAILURES
        assert result.is_partial
        assert result.ids == {"1", "7"}
        assert result.failed_storefronts == ("gb",)
        failure = result.failures[0]
        assert failure.error_kind is ErrorKind.TRANSPORT
        assert isinstance(failure.error, TransportError)
        assert "503" in failure.message

    @pytest.mark.asyncio
    async def test_best_effort_decode_failure_is_local(self):
        catalog = FakeCatalog(
            {"us": DecodeError("Malformed catalog response"), "gb": [item("3", "Grime")]}
        )

        result = await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)

        assert result.ids == {"3"}
        assert result.failures[0].storefront == "us"
        assert result.failures[0].error_kind is ErrorKind.DECODE

    @pytest.mark.asyncio
    async def test_failures_do_not_retain_fetch_state(self):
        """Recorded failures hold no tracebacks, so the fetcher can be collected."""
        try:
            raise ConnectionError("socket closed")
        except ConnectionError as cause:
            try:
                raise TransportError("ConnectError: socket closed") from cause
            except TransportError as e:
                error = e
        catalog = FakeCatalog({"us": [item("1", "Pop")], "gb": error})
        catalog_ref = weakref.ref(catalog)

        result = await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)
        del catalog, error
        gc.collect()

        failure = result.failures[0]
        assert failure.error.__traceback__ is None
        assert failure.error.__cause__.__traceback__ is None
        assert catalog_ref() is None

    @pytest.mark.asyncio
    async def test_fetch_timeout_recorded_under_best_effort(self):
        catalog = FakeCatalog(
            {"us": [item("1", "Pop")], "gb": asyncio.TimeoutError()}
        )

        result = await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)

        assert result.ids == {"1"}
        assert result.failures[0].storefront == "gb"
        assert result.failures[0].error_kind is ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_fetch_timeout_tagged_under_fail_fast(self):
        catalog = FakeCatalog({"us": TimeoutError("read timed out")})

        with pytest.raises(StorefrontError) as exc_info:
            await FederatedAggregator(failure_policy="fail_fast").aggregate(["us"], catalog.fetch)

        assert exc_info.value.error_kind == "timeout"

    @pytest.mark.asyncio
    async def test_best_effort_total_failure_is_not_silent(self):
        """All storefronts failing still reports every failure."""
        catalog = FakeCatalog(
            {"us": TransportError("down"), "gb": TransportError("down")}
        )

        result = await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)

        assert len(result) == 0
        assert result.state is AggregationState.DONE_WITH_PARTIAL_FAILURES
        assert set(result.failed_storefronts) == {"us", "gb"}

    @pytest.mark.asyncio
    async def test_fail_fast_raises_tagged_error(self):
        catalog = FakeCatalog(
            {
                "us": [item("1", "Pop")],
                "gb": TransportError("HTTP 500", status_code=500),
            },
            delays={"us": 0.05, "gb": 0.0},
        )
        aggregator = FederatedAggregator(failure_policy=FailurePolicy.FAIL_FAST)

        with pytest.raises(StorefrontError) as exc_info:
            await aggregator.aggregate(["us", "gb"], catalog.fetch)

        assert exc_info.value.storefront == "gb"
        assert exc_info.value.error_kind == "transport"
        assert isinstance(exc_info.value.__cause__, TransportError)

    @pytest.mark.asyncio
    async def test_fail_fast_starts_no_new_fetches(self):
        """With one slot, fetches queued behind the failing one never start."""
        responses = {"a": TransportError("boom")}
        responses.update({sf: [item(sf, sf)] for sf in ("b", "c", "d", "e")})
        catalog = FakeCatalog(responses)
        aggregator = FederatedAggregator(concurrency_limit=1, failure_policy="fail_fast")

        with pytest.raises(StorefrontError) as exc_info:
            await aggregator.aggregate(["a", "b", "c", "d", "e"], catalog.fetch)

        assert exc_info.value.storefront == "a"
        assert catalog.started == ["a"]

    @pytest.mark.asyncio
    async def test_fail_fast_cancels_in_flight_fetches(self):
        catalog = FakeCatalog(
            {"bad": DecodeError("bad payload"), "slow": [item("1", "Pop")]},
            delays={"bad": 0.0, "slow": 5.0},
        )
        aggregator = FederatedAggregator(failure_policy=FailurePolicy.FAIL_FAST)

        with pytest.raises(StorefrontError):
            await aggregator.aggregate(["bad", "slow"], catalog.fetch)

        assert "slow" in catalog.started
        assert "slow" not in catalog.completed
        assert catalog.active == 0

    @pytest.mark.asyncio
    async def test_config_error_is_fatal_under_best_effort(self):
        catalog = FakeCatalog(
            {"us": [item("1", "Pop")], "??": ConfigError("Invalid storefront identifier")}
        )

        with pytest.raises(StorefrontError) as exc_info:
            await FederatedAggregator().aggregate(["us", "??"], catalog.fetch)

        assert exc_info.value.storefront == "??"
        assert exc_info.value.error_kind == "config"
        assert isinstance(exc_info.value.__cause__, ConfigError)

    @pytest.mark.asyncio
    async def test_unexpected_exception_propagates(self):
        catalog = FakeCatalog({"us": KeyError("surprise"), "gb": [item("1", "Pop")]})

        with pytest.raises(KeyError):
            await FederatedAggregator().aggregate(["us", "gb"], catalog.fetch)

    @pytest.mark.asyncio
    async def test_empty_storefronts_spawn_nothing(self):
        calls = []

        async def fetch(storefront: str):
            calls.append(storefront)
            return []

        result = await FederatedAggregator().aggregate([], fetch)

        assert isinstance(result, AggregateResult)
        assert len(result) == 0
        assert result.failures == ()
        assert result.state is AggregationState.DONE
        assert calls == []

    @pytest.mark.asyncio
    async def test_concurrency_limit_respected(self):
        storefronts = [f"s{i}" for i in range(12)]
        catalog = FakeCatalog(
            {sf: [item(sf, sf)] for sf in storefronts},
            delays={sf: 0.02 for sf in storefronts},
        )

        result = await FederatedAggregator(concurrency_limit=3).aggregate(
            storefronts, catalog.fetch
        )

        assert len(result) == 12
        assert catalog.peak <= 3

    @pytest.mark.asyncio
    async def test_unbounded_when_limit_is_zero(self):
        storefronts = [f"s{i}" for i in range(25)]
        catalog = FakeCatalog(
            {sf: [item(sf, sf)] for sf in storefronts},
            delays={sf: 0.05 for sf in storefronts},
        )

        await FederatedAggregator(concurrency_limit=0).aggregate(storefronts, catalog.fetch)

        assert catalog.peak == 25

    @pytest.mark.asyncio
    async def test_timeout_raises_and_cancels(self):
        catalog = FakeCatalog(
            {"us": [item("1", "Pop")], "gb": [item("2", "Rock")]},
            delays={"us": 0.0, "gb": 5.0},
        )
        aggregator = FederatedAggregator(timeout=0.1)

        with pytest.raises(AggregationTimeoutError) as exc_info:
            await aggregator.aggregate(["us", "gb"], catalog.fetch)

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.pending_storefronts == ("gb",)
        assert catalog.active == 0

    @pytest.mark.asyncio
    async def test_result_is_read_only_snapshot(self):
        catalog = FakeCatalog({"us": [item("1", "Pop")]})

        result = await FederatedAggregator().aggregate(["us"], catalog.fetch)

        with pytest.raises(TypeError):
            result.items["2"] = item("2", "Rock")
        assert "1" in result

    @pytest.mark.asyncio
    async def test_duplicate_storefront_ids_fetched_once(self):
        catalog = FakeCatalog({"us": [item("1", "Pop")]})

        result = await FederatedAggregator().aggregate(["us", "us"], catalog.fetch)

        assert catalog.started == ["us"]
        assert result.storefront_count == 1

    def test_from_config(self):
        aggregator = FederatedAggregator.from_config(
            AggregationConfig(concurrency_limit=5, failure_policy="fail_fast", timeout=2.5)
        )

        assert aggregator.concurrency_limit == 5
        assert aggregator.failure_policy is FailurePolicy.FAIL_FAST
        assert aggregator.timeout == 2.5

    def test_invalid_arguments(self):
        with pytest.raises(ValueError):
            FederatedAggregator(concurrency_limit=-1)
        with pytest.raises(ValueError):
            FederatedAggregator(timeout=0)
        with pytest.raises(ValueError):
            FederatedAggregator(failure_policy="sometimes")
