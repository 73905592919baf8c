"""Tests for block range pagination and chunked log fetching."""

from unittest.mock import MagicMock

import pytest

from tests.conftest import DEPOSIT_CONTRACT, EventFactory, FakeLogSource
from vaultscan.events import DEPOSIT_PROCESSED
from vaultscan.exceptions import ProviderConnectionError
from vaultscan.fetcher import BlockRange, BlockRangePaginator, connect, fetch_logs_chunked

ASSET = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
USER = "0x7FA5195595EFE0dFbc79f03303448af3FbE4ea91"


class TestBlockRangePaginator:
    def test_ranges_cover_interval_without_overlap(self) -> None:
        paginator = BlockRangePaginator(100, 350, 100)

        assert list(paginator) == [
            BlockRange(100, 199),
            BlockRange(200, 299),
            BlockRange(300, 350),
        ]
        assert len(paginator) == 3
        assert paginator.total_blocks == 251

    def test_iteration_is_restartable(self) -> None:
        paginator = BlockRangePaginator(0, 9, 4)

        assert list(paginator) == list(paginator)

    def test_single_block(self) -> None:
        paginator = BlockRangePaginator(5, 5, 1_000)

        assert list(paginator) == [BlockRange(5, 5)]
        assert BlockRange(5, 5).size == 1

    def test_empty_when_from_after_to(self) -> None:
        paginator = BlockRangePaginator(10, 9, 1_000)

        assert list(paginator) == []
        assert len(paginator) == 0

    def test_default_deployment_range(self) -> None:
        paginator = BlockRangePaginator(22_547_938, 22_770_577, 1_000)

        ranges = list(paginator)
        assert len(ranges) == len(paginator) == 223
        assert ranges[0] == BlockRange(22_547_938, 22_548_937)
        assert ranges[-1].to_block == 22_770_577
        assert sum(block_range.size for block_range in ranges) == paginator.total_blocks

    @pytest.mark.parametrize(
        ("from_block", "chunk_size"),
        [(-1, 10), (0, 0), (0, -5)],
    )
    def test_invalid_arguments(self, from_block: int, chunk_size: int) -> None:
        with pytest.raises(ValueError):
            BlockRangePaginator(from_block, 100, chunk_size)


def _deposit_logs() -> list[dict]:
    return [
        EventFactory.deposit_processed(ASSET, USER, 1, block_number=1_050),
        EventFactory.deposit_processed(ASSET, USER, 2, block_number=1_150, log_index=3),
        EventFactory.deposit_processed(ASSET, USER, 3, block_number=1_250),
    ]


class TestFetchLogsChunked:
    def test_concatenates_chunks_in_block_order(self) -> None:
        source = FakeLogSource(_deposit_logs())

        result = fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=1_000,
            to_block=1_299,
            chunk_size=100,
        )

        assert [log["blockNumber"] for log in result.logs] == [1_050, 1_150, 1_250]
        assert result.attempted_chunks == 3
        assert result.complete
        assert [(r["fromBlock"], r["toBlock"]) for r in source.requests] == [
            (1_000, 1_099),
            (1_100, 1_199),
            (1_200, 1_299),
        ]

    def test_request_filter(self) -> None:
        source = FakeLogSource()

        fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=7,
            to_block=7,
            chunk_size=10,
        )

        assert source.requests == [
            {
                "address": DEPOSIT_CONTRACT,
                "fromBlock": 7,
                "toBlock": 7,
                "topics": [DEPOSIT_PROCESSED.topic],
            }
        ]

    def test_failed_chunk_contributes_nothing_and_is_recorded(self) -> None:
        source = FakeLogSource(_deposit_logs(), failing_ranges={(1_100, 1_199)})

        result = fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=1_000,
            to_block=1_299,
            chunk_size=100,
        )

        assert [log["blockNumber"] for log in result.logs] == [1_050, 1_250]
        assert result.attempted_chunks == 3
        assert not result.complete
        assert result.missing_blocks == 100
        [(block_range, reason)] = result.failed_ranges
        assert block_range == BlockRange(1_100, 1_199)
        assert "more than 10000 results" in reason

    def test_retries_recover_transient_failures(self) -> None:
        source = FakeLogSource(_deposit_logs(), failures_before_success=2)
        sleep = MagicMock()

        result = fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=1_000,
            to_block=1_099,
            chunk_size=100,
            chunk_delay=0.5,
            retries=2,
            sleep=sleep,
        )

        assert result.complete
        assert len(result.logs) == 1
        assert len(source.requests) == 3
        assert sleep.call_count == 2

    def test_retries_exhausted(self) -> None:
        source = FakeLogSource(_deposit_logs(), failures_before_success=5)

        result = fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=1_000,
            to_block=1_099,
            chunk_size=100,
            retries=1,
        )

        assert result.logs == []
        assert len(source.requests) == 2
        assert result.failed_ranges == [(BlockRange(1_000, 1_099), "503 Server Error")]

    def test_delay_only_between_chunks(self) -> None:
        sleep = MagicMock()

        fetch_logs_chunked(
            FakeLogSource(),
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=0,
            to_block=399,
            chunk_size=100,
            chunk_delay=0.1,
            sleep=sleep,
        )

        assert sleep.call_count == 3
        sleep.assert_called_with(0.1)

    def test_zero_delay_never_sleeps(self) -> None:
        sleep = MagicMock()

        fetch_logs_chunked(
            FakeLogSource(),
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=0,
            to_block=399,
            chunk_size=100,
            sleep=sleep,
        )

        sleep.assert_not_called()

    def test_empty_range_makes_no_requests(self) -> None:
        source = FakeLogSource()

        result = fetch_logs_chunked(
            source,
            address=DEPOSIT_CONTRACT,
            topics=[DEPOSIT_PROCESSED.topic],
            from_block=10,
            to_block=9,
            chunk_size=100,
        )

        assert result.logs == []
        assert result.attempted_chunks == 0
        assert source.requests == []


class TestConnect:
    def test_all_endpoints_failing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        class _Unreachable:
            def __init__(self, provider):
                self.eth = self

            @property
            def block_number(self) -> int:
                msg = "connection refused"
                raise ConnectionError(msg)

        monkeypatch.setattr("vaultscan.fetcher.Web3", _make_web3(_Unreachable))

        with pytest.raises(ProviderConnectionError) as exc_info:
            connect(["http://a.invalid", "http://b.invalid"])

        assert exc_info.value.endpoints == ["http://a.invalid", "http://b.invalid"]
        assert set(exc_info.value.errors) == {"http://a.invalid", "http://b.invalid"}

    def test_falls_back_to_next_endpoint(self, monkeypatch: pytest.MonkeyPatch) -> None:
        class _Flaky:
            def __init__(self, provider):
                self.provider = provider
                self.eth = self

            @property
            def block_number(self) -> int:
                if self.provider == "http://down.invalid":
                    msg = "connection refused"
                    raise ConnectionError(msg)
                return 22_770_577

        monkeypatch.setattr("vaultscan.fetcher.Web3", _make_web3(_Flaky))

        source = connect(["http://down.invalid", "http://up.invalid"])

        assert source.endpoint == "http://up.invalid"
        assert source.get_block_number() == 22_770_577


def _make_web3(instance_cls: type) -> MagicMock:
    """A stand-in for the Web3 class whose HTTPProvider returns the endpoint URL."""
    web3_cls = MagicMock(side_effect=instance_cls)
    web3_cls.HTTPProvider = lambda endpoint, **_: endpoint
    return web3_cls
