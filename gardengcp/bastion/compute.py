"""Compute resources of a bastion host and the calls that manage them."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from gardengcp.bastion.firewall import Firewall, patch_cidrs
from gardengcp.bastion.options import Options
from gardengcp.errors import GoogleAPIError

logger = logging.getLogger(__name__)

MACHINE_TYPE = "n1-standard-1"
DISK_SIZE_GB = 10
SOURCE_IMAGE = "projects/debian-cloud/global/images/family/debian-10"


@dataclass
class AccessConfig:
    """External access of a network interface."""

    name: str = ""
    type: str = ""
    nat_ip: str = ""


@dataclass
class NetworkInterface:
    """A network interface of a compute instance."""

    network: str = ""
    subnetwork: str = ""
    network_ip: str = ""
    access_configs: list[AccessConfig] = field(default_factory=list)


@dataclass
class AttachedDisk:
    """A disk attached to a compute instance."""

    source: str = ""
    auto_delete: bool = False
    boot: bool = False
    disk_size_gb: int = 0
    mode: str = ""


@dataclass
class MetadataItem:
    """One key/value pair of instance metadata."""

    key: str
    value: str | None = None


@dataclass(kw_only=True)
class Instance:
    """A GCP compute instance."""

    name: str = ""
    zone: str = ""
    status: str = ""
    description: str = ""
    machine_type: str = ""
    deletion_protection: bool = False
    disks: list[AttachedDisk] = field(default_factory=list)
    network_interfaces: list[NetworkInterface] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    metadata: list[MetadataItem] = field(default_factory=list)


@dataclass(kw_only=True)
class Disk:
    """A GCP persistent disk."""

    name: str = ""
    zone: str = ""
    description: str = ""
    size_gb: int = 0
    source_image: str = ""


@dataclass
class LoadBalancerIngress:
    """An endpoint reachable by IP, hostname or both."""

    ip: str = ""
    hostname: str = ""


@dataclass
class BastionEndpoints:
    """Private endpoint (for worker firewall rules) and public endpoint (for users)."""

    private: LoadBalancerIngress | None = None
    public: LoadBalancerIngress | None = None

    def ready(self) -> bool:
        """True if both endpoints carry an IP or a hostname."""
        return ingress_ready(self.private) and ingress_ready(self.public)


class ComputeClient(ABC):
    """Access to the GCP compute API; failures raise GoogleAPIError."""

    @abstractmethod
    def get_instance(self, project_id: str, zone: str, name: str) -> Instance: ...

    @abstractmethod
    def insert_instance(self, project_id: str, zone: str, instance: Instance) -> None: ...

    @abstractmethod
    def delete_instance(self, project_id: str, zone: str, name: str) -> None: ...

    @abstractmethod
    def get_firewall(self, project_id: str, name: str) -> Firewall: ...

    @abstractmethod
    def insert_firewall(self, project_id: str, firewall: Firewall) -> None: ...

    @abstractmethod
    def delete_firewall(self, project_id: str, name: str) -> None: ...

    @abstractmethod
    def patch_firewall(self, project_id: str, name: str, firewall: Firewall) -> None: ...

    @abstractmethod
    def get_disk(self, project_id: str, zone: str, name: str) -> Disk: ...

    @abstractmethod
    def insert_disk(self, project_id: str, zone: str, disk: Disk) -> None: ...

    @abstractmethod
    def delete_disk(self, project_id: str, zone: str, name: str) -> None: ...

    @abstractmethod
    def get_region_zones(self, project_id: str, region: str) -> list[str]:
        """Return the zone URLs of a region."""


def _is_not_found(exc: Exception) -> bool:
    return isinstance(exc, GoogleAPIError) and exc.is_not_found


def get_bastion_instance(client: ComputeClient, opt: Options) -> Instance | None:
    """Return the bastion instance, or None if it does not exist."""
    try:
        return client.get_instance(opt.project_id, opt.zone, opt.bastion_instance_name)
    except GoogleAPIError as exc:
        if exc.is_not_found:
            return None
        raise


def get_firewall_rule(client: ComputeClient, opt: Options, name: str) -> Firewall | None:
    """Return the named firewall rule, or None if it does not exist."""
    try:
        return client.get_firewall(opt.project_id, name)
    except GoogleAPIError as exc:
        if exc.is_not_found:
            return None
        raise


def create_firewall_rule_if_not_exist(client: ComputeClient, opt: Options, rule: Firewall) -> None:
    """Create the firewall rule; an existing rule of that name is left alone."""
    try:
        client.insert_firewall(opt.project_id, rule)
    except Exception as exc:
        if isinstance(exc, GoogleAPIError) and exc.is_conflict:
            return
        raise RuntimeError(f"could not create firewall rule {rule.name}: {exc}") from exc
    logger.info("Firewall created: %s", rule.name)


def delete_firewall_rule(client: ComputeClient, opt: Options, name: str) -> None:
    """Delete the named firewall rule; a missing rule is not an error."""
    try:
        client.delete_firewall(opt.project_id, name)
    except Exception as exc:
        if _is_not_found(exc):
            return
        raise RuntimeError(f"failed to delete firewall rule {name}: {exc}") from exc
    logger.info("Firewall rule removed: %s", name)


def patch_firewall_rule(client: ComputeClient, opt: Options, name: str) -> None:
    """Replace the source ranges of the named rule with the wanted CIDRs."""
    client.patch_firewall(opt.project_id, name, patch_cidrs(opt))


def get_disk(client: ComputeClient, opt: Options) -> Disk | None:
    """Return the bastion disk, or None if it does not exist."""
    try:
        return client.get_disk(opt.project_id, opt.zone, opt.disk_name)
    except GoogleAPIError as exc:
        if exc.is_not_found:
            return None
        raise


def get_default_gcp_zone(client: ComputeClient, opt: Options, region: str) -> str:
    """Return the name of the first zone of the region."""
    zones = client.get_region_zones(opt.project_id, region)
    if not zones:
        raise ValueError(f"no available zones in GCP region: {region}")
    return zones[0].rsplit("/", 1)[-1]


def ingress_ready(ingress: LoadBalancerIngress | None) -> bool:
    """True if the ingress has an IP, a hostname or both."""
    return ingress is not None and bool(ingress.hostname or ingress.ip)


def address_to_ingress(dns_name: str | None, ip_address: str | None) -> LoadBalancerIngress | None:
    """Build an ingress from a hostname and an IP; None if both are None."""
    if dns_name is None and ip_address is None:
        return None
    return LoadBalancerIngress(ip=ip_address or "", hostname=dns_name or "")


def get_instance_endpoints(instance: Instance | None) -> BastionEndpoints:
    """Return the private and public endpoints of a running instance."""
    if instance is None:
        raise ValueError("compute instance can't be nil")
    if instance.status != "RUNNING":
        raise ValueError(f"instance not running, status: {instance.status}")
    if not instance.network_interfaces:
        raise ValueError(f"no network interfaces found: {instance.name}")
    interface = instance.network_interfaces[0]
    if not interface.access_configs:
        raise ValueError(f"no access config found for network interface: {instance.name}")

    # GCP assigns no public DNS name, so the public endpoint is the NAT IP only.
    return BastionEndpoints(
        private=address_to_ingress(instance.name, interface.network_ip),
        public=address_to_ingress(None, interface.access_configs[0].nat_ip),
    )


def _machine_type(opt: Options) -> str:
    return f"zones/{opt.zone}/machineTypes/{MACHINE_TYPE}"


def _metadata_items(user_data: bytes | None) -> list[MetadataItem]:
    script = (user_data or b"").decode("utf-8", errors="replace")
    return [
        MetadataItem("startup-script", script),
        MetadataItem("block-project-ssh-keys", "TRUE"),
    ]


def _network_interfaces(opt: Options) -> list[NetworkInterface]:
    return [
        NetworkInterface(
            network=opt.network,
            subnetwork=opt.subnetwork,
            access_configs=[AccessConfig(name="External NAT", type="ONE_TO_ONE_NAT")],
        )
    ]


def _attached_disks(opt: Options) -> list[AttachedDisk]:
    return [
        AttachedDisk(
            auto_delete=True,
            boot=True,
            disk_size_gb=DISK_SIZE_GB,
            source=f"projects/{opt.project_id}/zones/{opt.zone}/disks/{opt.disk_name}",
            mode="READ_WRITE",
        )
    ]


def compute_instance_define(opt: Options, user_data: bytes | None) -> Instance:
    """Describe the bastion compute instance to create."""
    return Instance(
        disks=_attached_disks(opt),
        deletion_protection=False,
        description="Bastion Instance",
        name=opt.bastion_instance_name,
        zone=opt.zone,
        machine_type=_machine_type(opt),
        network_interfaces=_network_interfaces(opt),
        tags=[opt.bastion_instance_name],
        metadata=_metadata_items(user_data),
    )


def disk_define(zone: str, disk_name: str) -> Disk:
    """Describe the bastion boot disk to create."""
    return Disk(
        description="Gardenctl Bastion disk",
        name=disk_name,
        size_gb=DISK_SIZE_GB,
        source_image=SOURCE_IMAGE,
        zone=zone,
    )