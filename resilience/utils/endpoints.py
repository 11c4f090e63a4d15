"""Endpoint allocation and endpoint string helpers."""

import socket
import threading
from typing import Optional, Protocol, Set
from urllib.parse import urlsplit

import psutil

from ..core.errors import PortAllocationError
from ..core.log import get_logger

logger = get_logger(__name__)

MAX_PORT = 65535


class PortAllocator(Protocol):
    """Protocol for endpoint allocation to enable dependency injection."""

    def allocate_endpoint(self) -> str:
        """Allocate an endpoint with a currently free port."""

    def release_endpoint(self, endpoint: str) -> None:
        """Return an endpoint's port to the pool."""


def primary_ip_address() -> str:
    """First non-loopback IPv4 address of an interface that is up."""
    try:
        stats = psutil.net_if_stats()
        for interface, addresses in psutil.net_if_addrs().items():
            if interface in stats and not stats[interface].isup:
                continue
            for address in addresses:
                if address.family != socket.AF_INET:
                    continue
                if address.address.startswith("127."):
                    continue
                return address.address
    except (OSError, RuntimeError) as e:
        logger.debug("Could not enumerate network interfaces: %s", e)
    return "127.0.0.1"


def port_from_endpoint(endpoint: str) -> int:
    """Extract the port of an endpoint like ``tcp://10.0.0.5:40000``."""
    try:
        port = urlsplit(endpoint).port
    except ValueError as e:
        raise ValueError(f"Invalid endpoint {endpoint!r}: {e}") from e
    if port is None:
        raise ValueError(f"Endpoint {endpoint!r} has no port")
    return port


def endpoint_to_url(endpoint: str) -> str:
    """Map a server endpoint to the HTTP(S) URL clients use.

    ``ssl://`` becomes ``https://``; any other scheme becomes ``http://``.
    """
    if endpoint.startswith("ssl://"):
        return "https://" + endpoint[len("ssl://") :]
    scheme_end = endpoint.find("://")
    if scheme_end == -1:
        return "http://" + endpoint
    return "http://" + endpoint[scheme_end + 3 :]


class EndpointAllocator:
    """Thread-safe allocator of ``<scheme>://<host>:<port>`` endpoints.

    Each call scans a window of ``scan_width`` ports starting at an internal
    cursor and returns the first port that can be bound and was not handed out
    before. The cursor then advances by ``stride`` so that successive calls
    land in disjoint ranges; it wraps back to the start once it would pass
    ``ceiling``.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        base_port: int = 40000,
        port_offset: int = 0,
        stride: int = 100,
        ceiling: int = 60000,
        scan_width: int = 1000,
        scheme: str = "tcp",
    ) -> None:
        """Initialize the allocator.

        Args:
            host: Address to bind-check and put into endpoints (default: primary IP)
            base_port: First port of the first scan window
            port_offset: Added to base_port to separate concurrent runs
            stride: Distance the cursor moves after each allocation
            ceiling: Cursor value at which scanning restarts from the first window
            scan_width: Number of ports examined per allocation
            scheme: Endpoint scheme
        """
        self.host = host or primary_ip_address()
        self.start_port = base_port + port_offset
        self.stride = stride
        self.ceiling = ceiling
        self.scan_width = scan_width
        self.scheme = scheme
        self._cursor = self.start_port
        self._allocated: Set[int] = set()
        self._lock = threading.Lock()

    def allocate_endpoint(self) -> str:
        """Allocate an endpoint.

        Returns:
            Endpoint string, e.g. ``tcp://10.0.0.5:40000``

        Raises:
            PortAllocationError: If no port in the scan window is free
        """
        return f"{self.scheme}://{self.host}:{self.allocate_port()}"

    def allocate_port(self) -> int:
        """Allocate a bare port number."""
        with self._lock:
            window_start = self._cursor
            window_end = min(window_start + self.scan_width, MAX_PORT + 1)

            self._cursor += self.stride
            if self._cursor >= self.ceiling:
                self._cursor = self.start_port

            for port in range(window_start, window_end):
                if port in self._allocated:
                    continue
                if self._is_bindable(port):
                    self._allocated.add(port)
                    logger.debug("Allocated port %s on %s", port, self.host)
                    return port

            raise PortAllocationError(
                f"No free port on {self.host} in range {window_start}-{window_end - 1}",
                host=self.host,
                start_port=window_start,
                end_port=window_end - 1,
            )

    def release_endpoint(self, endpoint: str) -> None:
        """Forget a previously allocated endpoint so its port may be reused."""
        self.release_port(port_from_endpoint(endpoint))

    def release_port(self, port: int) -> None:
        with self._lock:
            self._allocated.discard(port)
            logger.debug("Released port %s", port)

    def allocated_ports(self) -> Set[int]:
        with self._lock:
            return set(self._allocated)

    def _is_bindable(self, port: int) -> bool:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind((self.host, port))
                return True
        except OSError:
            return False
