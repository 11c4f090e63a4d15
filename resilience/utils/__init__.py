"""Utility modules for the resilience framework."""

from .endpoints import (
    EndpointAllocator,
    endpoint_to_url,
    port_from_endpoint,
    primary_ip_address,
)
from .filesystem import atomic_write, ensure_dir, safe_remove

__all__ = [
    "EndpointAllocator",
    "endpoint_to_url",
    "port_from_endpoint",
    "primary_ip_address",
    "atomic_write",
    "ensure_dir",
    "safe_remove",
]
