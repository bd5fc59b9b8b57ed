"""RPC pool — round-robin over independent read endpoints."""
from __future__ import annotations

import asyncio
import logging
import ssl
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

import aiohttp
import certifi
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.providers.rpc.utils import ExceptionRetryConfiguration

from ..config import ChainConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Endpoint:
    url: str
    client: AsyncWeb3
    request_count: int = 0


def build_client(url: str, timeout: int, retries: int) -> AsyncWeb3:
    """Create an AsyncWeb3 client with a bounded per-call timeout."""
    ssl_context = ssl.create_default_context(cafile=certifi.where())
    provider = AsyncHTTPProvider(
        url,
        request_kwargs={
            "timeout": aiohttp.ClientTimeout(total=timeout),
            "ssl": ssl_context,
        },
        exception_retry_configuration=ExceptionRetryConfiguration(retries=retries),
    )
    return AsyncWeb3(provider)


class RpcPool:
    """Pool of read clients; callers pick one per request.

    The pool never retries across endpoints on its own. A caller that sees a
    failure may simply ask for the next client and re-issue the call.
    """

    def __init__(
        self,
        config: ChainConfig,
        client_factory: Callable[[str, int, int], AsyncWeb3] = build_client,
    ) -> None:
        if not config.rpc_endpoints:
            raise ValueError("RpcPool requires at least one endpoint")
        self._endpoints = [
            Endpoint(url=url, client=client_factory(url, config.rpc_timeout, config.rpc_retries))
            for url in config.rpc_endpoints
        ]
        self._index = 0
        logger.info("RPC pool initialized with %d endpoints", len(self._endpoints))

    def __len__(self) -> int:
        return len(self._endpoints)

    def get_client(self) -> AsyncWeb3:
        """Return the next client round-robin and count the request."""
        endpoint = self._endpoints[self._index]
        endpoint.request_count += 1
        self._index = (self._index + 1) % len(self._endpoints)
        return endpoint.client

    def get_all_clients(self) -> list[AsyncWeb3]:
        return [e.client for e in self._endpoints]

    def stats(self) -> dict[str, Any]:
        counts = [e.request_count for e in self._endpoints]
        return {
            "total_endpoints": len(self._endpoints),
            "request_counts": counts,
            "total_requests": sum(counts),
        }

    async def parallel_fetch(
        self, tasks: Iterable[Callable[[], Awaitable[T]]], concurrency: int = 6
    ) -> list[T]:
        return await parallel_fetch(tasks, concurrency)


async def parallel_fetch(
    tasks: Iterable[Callable[[], Awaitable[T]]], concurrency: int = 6
) -> list[T]:
    """Run task factories with at most ``concurrency`` in flight.

    Results come back in completion order. The first failure is re-raised
    after the still-running tasks are cancelled.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")

    results: list[T] = []
    pending: set[asyncio.Future[T]] = set()

    async def _collect() -> None:
        nonlocal pending
        done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        error: BaseException | None = None
        for fut in done:
            exc = fut.exception()
            if exc is not None:
                error = error or exc
            else:
                results.append(fut.result())
        if error is not None:
            raise error

    try:
        for factory in tasks:
            pending.add(asyncio.ensure_future(factory()))
            if len(pending) >= concurrency:
                await _collect()
        while pending:
            await _collect()
    except BaseException:
        for fut in pending:
            fut.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        raise

    return results
