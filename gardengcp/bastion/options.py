"""Options needed to reconcile a bastion host on GCP, and the names derived from them."""

from __future__ import annotations

import hashlib
import ipaddress
import json
from dataclasses import dataclass, field
from typing import Any

# Every GCP resource name must fit in 63 characters; the base name is used
# as a prefix for other resources, so it is kept shorter.
MAX_LENGTH_FOR_BASE_NAME = 33
MAX_LENGTH_FOR_RESOURCE = 63


@dataclass
class Bastion:
    """A bastion request: its name, allowed ingress CIDRs and status."""

    name: str
    namespace: str = ""
    ingress: list[str] = field(default_factory=list)
    user_data: bytes = b""
    provider_status: bytes | None = None
    status_ingress: Any = None


@dataclass
class Cluster:
    """The parts of a shoot cluster and its cloud profile a bastion needs."""

    name: str = ""
    region: str = ""
    infrastructure_config: bytes | None = None
    regions: dict[str, list[str]] = field(default_factory=dict)


@dataclass(kw_only=True)
class Options:
    """Precomputed names and pre-existing resource identifiers for a bastion."""

    bastion_instance_name: str = ""
    cidrs: list[str] = field(default_factory=list)
    disk_name: str = ""
    zone: str = ""
    subnetwork: str = ""
    project_id: str = ""
    network: str = ""
    workers_cidr: str = ""


@dataclass
class ProviderStatus:
    """Provider state persisted on the bastion status."""

    zone: str = ""


def _lookup(obj: Any, key: str) -> Any:
    """Return a JSON object member, matching the key case-insensitively."""
    if not isinstance(obj, dict):
        return None
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for name, value in obj.items():
        if name.lower() == lowered:
            return value
    return None


def _networks(cluster: Cluster) -> dict:
    raw = cluster.infrastructure_config
    if raw is None:
        raise ValueError("infrastructure config is missing")
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ValueError(f"invalid infrastructure config: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("infrastructure config must be a JSON object")
    networks = _lookup(data, "networks")
    if networks is None:
        return {}
    if not isinstance(networks, dict):
        raise ValueError("infrastructure config networks must be a JSON object")
    return networks


def _string(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string")
    return value


def get_workers_cidr(cluster: Cluster) -> str:
    """Return the workers CIDR from the cluster's infrastructure config."""
    return _string(_lookup(_networks(cluster), "workers"), "networks.workers")


def get_network_name(cluster: Cluster, project_id: str, cluster_name: str) -> str:
    """Return the VPC network path, falling back to the cluster's own network."""
    vpc = _lookup(_networks(cluster), "vpc")
    if vpc is not None:
        name = _string(_lookup(vpc, "name"), "networks.vpc.name")
    else:
        name = cluster_name
    return f"projects/{project_id}/global/networks/{name}"


def get_zone(cluster: Cluster, region: str, provider_status: ProviderStatus | None) -> str:
    """Return the stored zone, else the first zone of the region, else ''."""
    if provider_status is not None:
        return provider_status.zone
    zones = cluster.regions.get(region)
    return zones[0] if zones else ""


def ingress_permissions(bastion: Bastion) -> list[str]:
    """Return the bastion's ingress CIDRs normalised; only IPv4 is accepted."""
    cidrs = []
    for cidr in bastion.ingress:
        if "/" not in cidr:
            raise ValueError(f"invalid ingress CIDR {cidr!r}: missing prefix length")
        try:
            network = ipaddress.ip_network(cidr, strict=False)
        except ValueError as exc:
            raise ValueError(f"invalid ingress CIDR {cidr!r}: {exc}") from exc
        if network.version != 4:
            raise ValueError("IPv6 is currently not fully supported")
        cidrs.append(str(network))
    return cidrs


def generate_bastion_base_resource_name(cluster_name: str, bastion_name: str) -> str:
    """Return a stable, length-limited base name for the bastion's resources."""
    if not cluster_name:
        raise ValueError("clusterName can't be empty")
    if not bastion_name:
        raise ValueError("bastionName can't be empty")

    static_name = f"{cluster_name}-{bastion_name}"
    digest = hashlib.sha256(static_name.encode("utf-8")).hexdigest()
    if len(static_name) > MAX_LENGTH_FOR_BASE_NAME:
        static_name = static_name.encode("utf-8")[:MAX_LENGTH_FOR_BASE_NAME].decode(
            "utf-8", errors="ignore"
        )
    return f"{static_name}-bastion-{digest[:5]}"


def marshal_provider_status(zone: str) -> bytes:
    """Encode the provider status as compact JSON."""
    return json.dumps({"zone": zone}, separators=(",", ":")).encode("utf-8")


def unmarshal_provider_status(data: bytes) -> ProviderStatus:
    """Decode a provider status written by marshal_provider_status."""
    try:
        decoded = json.loads(data)
    except ValueError as exc:
        raise ValueError("failed to parse json for status.ProviderStatus") from exc
    if decoded is None:
        return ProviderStatus()
    if not isinstance(decoded, dict):
        raise ValueError("failed to parse json for status.ProviderStatus")
    zone = _lookup(decoded, "zone")
    if zone is not None and not isinstance(zone, str):
        raise ValueError("failed to parse json for status.ProviderStatus")
    return ProviderStatus(zone=zone or "")


def get_provider_status(bastion: Bastion) -> ProviderStatus | None:
    """Return the provider status stored on the bastion, if any."""
    if bastion.provider_status is None:
        return None
    return unmarshal_provider_status(bastion.provider_status)


def disk_resource_name(base_name: str) -> str:
    return f"{base_name}-disk"


def nodes_resource_name(base_name: str) -> str:
    return f"{base_name}-nodes"


def firewall_ingress_allow_ssh_resource_name(base_name: str) -> str:
    return f"{base_name}-allow-ssh"


def firewall_egress_allow_only_resource_name(base_name: str) -> str:
    return f"{base_name}-egress-worker"


def firewall_egress_deny_all_resource_name(base_name: str) -> str:
    return f"{base_name}-deny-all"


def determine_options(bastion: Bastion, cluster: Cluster, project_id: str) -> Options:
    """Work out everything needed to reconcile a bastion; creates nothing."""
    provider_status = get_provider_status(bastion)
    cidrs = ingress_permissions(bastion)

    cluster_name = cluster.name
    base_name = generate_bastion_base_resource_name(cluster_name, bastion.name)
    workers_cidr = get_workers_cidr(cluster)
    network = get_network_name(cluster, project_id, cluster_name)

    region = cluster.region
    return Options(
        bastion_instance_name=base_name,
        zone=get_zone(cluster, region, provider_status),
        disk_name=disk_resource_name(base_name),
        cidrs=cidrs,
        subnetwork=f"regions/{region}/subnetworks/{nodes_resource_name(cluster_name)}",
        project_id=project_id,
        network=network,
        workers_cidr=workers_cidr,
    )