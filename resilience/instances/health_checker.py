"""Readiness checks and the cluster shutdown request."""

import asyncio
import time
from typing import List, Optional, Protocol, Sequence

import aiohttp
import requests

from ..core.errors import ClusterError
from ..core.log import get_logger
from ..core.types import HealthStatus, TimeoutConfig
from .instance import Instance

logger = get_logger(__name__)

VERSION_PATH = "/_api/version"
SHUTDOWN_PATH = "/_admin/shutdown"


class HealthChecker(Protocol):
    """Protocol for health checkers to enable dependency injection."""

    def check(self, url: str) -> HealthStatus:
        """Check one server."""

    def failing(self, instances: Sequence[Instance]) -> List[Instance]:
        """Check all instances once and return those that are not ready."""

    def request_cluster_shutdown(self, url: str) -> None:
        """Ask the cluster behind ``url`` to shut itself down."""


class InstanceHealthChecker:
    """Polls ``/_api/version``; any response below 400 means ready."""

    def __init__(self, timeout_config: Optional[TimeoutConfig] = None) -> None:
        self._timeout_config = timeout_config or TimeoutConfig()

    def check(self, url: str) -> HealthStatus:
        """Check a single server."""
        return asyncio.run(self._check_single(url))

    def failing(self, instances: Sequence[Instance]) -> List[Instance]:
        """Check all instances concurrently and return the ones not ready yet."""
        if not instances:
            return []
        results = asyncio.run(self._check_all([i.url for i in instances]))
        not_ready = []
        for instance, status in zip(instances, results):
            if not status.is_healthy:
                logger.debug(
                    "Instance %s (%s) not ready: %s",
                    instance.name,
                    instance.endpoint,
                    status.error_message,
                )
                not_ready.append(instance)
        return not_ready

    def request_cluster_shutdown(self, url: str) -> None:
        """Send the graceful whole-cluster shutdown request.

        Raises:
            ClusterError: If the request fails or is rejected
        """
        logger.info("Requesting cluster shutdown via %s", url)
        try:
            response = requests.delete(
                f"{url}{SHUTDOWN_PATH}",
                params={"shutdown_cluster": "1"},
                timeout=self._timeout_config.shutdown_request,
            )
        except requests.RequestException as e:
            raise ClusterError(
                f"Cluster shutdown request to {url} failed: {e}",
                details={"url": url},
            ) from e
        if response.status_code >= 400:
            raise ClusterError(
                f"Cluster shutdown request to {url} rejected: "
                f"HTTP {response.status_code} {response.text[:200]}",
                details={"url": url, "status_code": response.status_code},
            )

    async def _check_single(self, url: str) -> HealthStatus:
        timeout = aiohttp.ClientTimeout(total=self._timeout_config.health_check_request)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._fetch_status(session, url)

    async def _check_all(self, urls: List[str]) -> List[HealthStatus]:
        timeout = aiohttp.ClientTimeout(total=self._timeout_config.health_check_request)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return list(
                await asyncio.gather(*(self._fetch_status(session, url) for url in urls))
            )

    async def _fetch_status(self, session: aiohttp.ClientSession, url: str) -> HealthStatus:
        start_time = time.time()
        try:
            async with session.get(f"{url}{VERSION_PATH}") as response:
                response_time = time.time() - start_time
                if response.status < 400:
                    return HealthStatus(
                        is_healthy=True,
                        response_time=response_time,
                        status_code=response.status,
                    )
                return HealthStatus(
                    is_healthy=False,
                    response_time=response_time,
                    status_code=response.status,
                    error_message=f"HTTP {response.status}: {response.reason}",
                )
        except asyncio.TimeoutError:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message="Connection timeout",
            )
        except (aiohttp.ClientError, OSError) as e:
            return HealthStatus(
                is_healthy=False,
                response_time=time.time() - start_time,
                error_message=f"Connection error: {e}",
            )
