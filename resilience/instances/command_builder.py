"""arangod command line arguments for the cluster roles."""

from typing import List

from ..core.enums import InstanceRole

SUPERVISION_FREQUENCY = 0.5
SUPERVISION_GRACE_PERIOD = 2.5


def _flag(value: bool) -> str:
    return "true" if value else "false"


def common_args(storage_engine: str = "rocksdb") -> List[str]:
    """Arguments every server gets regardless of role."""
    return [
        "--server.authentication=false",
        f"--server.storage-engine={storage_engine}",
        "--log.force-direct=false",
    ]


def agent_args(
    endpoint: str,
    agency_size: int,
    wait_for_sync: bool,
    bootstrap_endpoint: str,
) -> List[str]:
    """Arguments of one agency member.

    Args:
        endpoint: The agent's own endpoint
        agency_size: Number of agents in the agency
        wait_for_sync: Whether the agency syncs its log to disk
        bootstrap_endpoint: Endpoint of the first agent, advertised to all agents
    """
    return [
        "--agency.activate=true",
        f"--agency.size={agency_size}",
        f"--agency.pool-size={agency_size}",
        f"--agency.wait-for-sync={_flag(wait_for_sync)}",
        "--agency.supervision=true",
        f"--agency.supervision-frequency={SUPERVISION_FREQUENCY}",
        f"--agency.supervision-grace-period={SUPERVISION_GRACE_PERIOD}",
        f"--agency.my-address={endpoint}",
        f"--agency.endpoint={bootstrap_endpoint}",
    ]


def cluster_member_args(
    role: InstanceRole, endpoint: str, agency_endpoint: str
) -> List[str]:
    """Arguments of a coordinator or dbserver joining the agency at ``agency_endpoint``."""
    cluster_role = role.cluster_role
    if cluster_role is None:
        raise ValueError(f"{role.value} is not a cluster member role")
    return [
        f"--cluster.agency-endpoint={agency_endpoint}",
        f"--cluster.my-role={cluster_role}",
        f"--cluster.my-address={endpoint}",
    ]
