"""Sequential, chunked retrieval of event logs from a JSON-RPC provider.

Chunks are requested one at a time in ascending block order and their results
are concatenated in that order. A chunk that still fails after its retries
contributes no logs; its block range is recorded in `FetchResult.failed_ranges`
so the gap is visible in the run summary.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import tqdm
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.types import FilterParams

from vaultscan.debug_logger import scan_debug_logger
from vaultscan.exceptions import ProviderConnectionError
from vaultscan.logging import logger

DEFAULT_RPC_TIMEOUT = 30.0

TopicFilter = Sequence[HexBytes | Sequence[HexBytes] | None]


class LogSource(Protocol):
    """The provider capability consumed by the fetcher."""

    def get_block_number(self) -> int: ...

    def get_logs(self, filter_params: FilterParams) -> list[Any]: ...


class Web3LogSource:
    """LogSource backed by a web3 HTTP provider."""

    def __init__(self, w3: Web3, endpoint: str | None = None):
        self.w3 = w3
        self.endpoint = endpoint

    def get_block_number(self) -> int:
        return self.w3.eth.block_number

    def get_logs(self, filter_params: FilterParams) -> list[Any]:
        return list(self.w3.eth.get_logs(filter_params))


def connect(endpoints: Sequence[str], timeout: float = DEFAULT_RPC_TIMEOUT) -> Web3LogSource:
    """Return a LogSource for the first endpoint that answers eth_blockNumber.

    Raises ProviderConnectionError if every endpoint fails.
    """
    errors: dict[str, str] = {}
    for endpoint in endpoints:
        w3 = Web3(Web3.HTTPProvider(endpoint, request_kwargs={"timeout": timeout}))
        try:
            w3.eth.block_number  # noqa: B018
        except Exception as e:  # noqa: BLE001
            logger.warning(f"Failed to connect to {endpoint}: {e}")
            errors[endpoint] = str(e)
            continue
        logger.info(f"Connected to Ethereum mainnet via {endpoint}")
        return Web3LogSource(w3, endpoint)

    raise ProviderConnectionError(list(endpoints), errors)


@dataclass(frozen=True)
class BlockRange:
    """Inclusive block range."""

    from_block: int
    to_block: int

    @property
    def size(self) -> int:
        return self.to_block - self.from_block + 1


class BlockRangePaginator:
    """Splits [from_block, to_block] into consecutive inclusive chunks.

    Iteration is lazy and can be restarted; every iteration yields the same
    ranges.
    """

    def __init__(self, from_block: int, to_block: int, chunk_size: int):
        if from_block < 0:
            msg = f"from_block must be >= 0, got {from_block}"
            raise ValueError(msg)
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}"
            raise ValueError(msg)
        self.from_block = from_block
        self.to_block = to_block
        self.chunk_size = chunk_size

    @property
    def total_blocks(self) -> int:
        return max(0, self.to_block - self.from_block + 1)

    def __len__(self) -> int:
        return -(-self.total_blocks // self.chunk_size)

    def __iter__(self) -> Iterator[BlockRange]:
        cursor = self.from_block
        while cursor <= self.to_block:
            chunk_end = min(cursor + self.chunk_size - 1, self.to_block)
            yield BlockRange(cursor, chunk_end)
            cursor = chunk_end + 1


@dataclass
class FetchResult:
    logs: list[Any] = field(default_factory=list)
    attempted_chunks: int = 0
    failed_ranges: list[tuple[BlockRange, str]] = field(default_factory=list)

    @property
    def missing_blocks(self) -> int:
        return sum(block_range.size for block_range, _ in self.failed_ranges)

    @property
    def complete(self) -> bool:
        return not self.failed_ranges


def fetch_logs_chunked(
    source: LogSource,
    *,
    address: ChecksumAddress,
    topics: TopicFilter,
    from_block: int,
    to_block: int,
    chunk_size: int,
    chunk_delay: float = 0.0,
    retries: int = 0,
    sleep: Callable[[float], None] = time.sleep,
    show_progress: bool = False,
) -> FetchResult:
    """Fetch logs for `address` over [from_block, to_block], one chunk at a time.

    Args:
        source: The provider to query.
        address: Contract address to filter on.
        topics: eth_getLogs topic filter, e.g. `[topic0]` or `[[topic_a, topic_b]]`.
        from_block: First block, inclusive.
        to_block: Last block, inclusive.
        chunk_size: Maximum number of blocks per request.
        chunk_delay: Seconds to pause between consecutive requests.
        retries: Extra attempts for a chunk before it is given up.
        sleep: Pause function, replaceable for tests.
        show_progress: Show a progress bar.
    """
    paginator = BlockRangePaginator(from_block, to_block, chunk_size)
    total_chunks = len(paginator)
    result = FetchResult()

    logger.info(f"Total blocks to scan: {paginator.total_blocks}")
    logger.info(f"Will make {total_chunks} requests with chunk size of {chunk_size} blocks")

    progress = tqdm.tqdm(
        total=total_chunks,
        desc="Fetching logs",
        leave=False,
        disable=not show_progress,
    )
    try:
        for i, block_range in enumerate(paginator):
            progress.set_description(
                f"Fetching blocks {block_range.from_block:,} -> {block_range.to_block:,}"
            )
            chunk_logs = _fetch_chunk(
                source,
                address=address,
                topics=topics,
                block_range=block_range,
                retries=retries,
                sleep=sleep,
                chunk_delay=chunk_delay,
                result=result,
            )
            result.attempted_chunks += 1
            result.logs.extend(chunk_logs)
            logger.debug(
                f"Chunk {i + 1}/{total_chunks}: found {len(chunk_logs)} events "
                f"(total so far: {len(result.logs)})"
            )
            progress.update(1)

            if chunk_delay > 0 and i < total_chunks - 1:
                sleep(chunk_delay)
    finally:
        progress.close()

    if result.failed_ranges:
        logger.warning(
            f"{len(result.failed_ranges)} of {total_chunks} chunks failed; "
            f"{result.missing_blocks} blocks are missing from the results"
        )
    logger.info(f"Found {len(result.logs)} total events")
    return result


def _fetch_chunk(
    source: LogSource,
    *,
    address: ChecksumAddress,
    topics: TopicFilter,
    block_range: BlockRange,
    retries: int,
    sleep: Callable[[float], None],
    chunk_delay: float,
    result: FetchResult,
) -> list[Any]:
    filter_params: FilterParams = {
        "address": address,
        "fromBlock": block_range.from_block,
        "toBlock": block_range.to_block,
        "topics": list(topics),
    }

    last_error = ""
    for attempt in range(retries + 1):
        try:
            logs = source.get_logs(filter_params)
        except Exception as e:  # noqa: BLE001
            last_error = str(e) or type(e).__name__
            logger.error(
                f"Error fetching events for blocks "
                f"{block_range.from_block}-{block_range.to_block}: {last_error}"
            )
            if attempt < retries and chunk_delay > 0:
                sleep(chunk_delay)
            continue

        scan_debug_logger.log_chunk(
            from_block=block_range.from_block,
            to_block=block_range.to_block,
            log_count=len(logs),
        )
        return logs

    scan_debug_logger.log_chunk(
        from_block=block_range.from_block,
        to_block=block_range.to_block,
        log_count=0,
        error=last_error,
    )
    result.failed_ranges.append((block_range, last_error))
    return []
