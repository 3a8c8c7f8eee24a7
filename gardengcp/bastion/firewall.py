"""Firewall rules that isolate a bastion host."""

from __future__ import annotations

from dataclasses import dataclass, field

from gardengcp.bastion.options import (
    Options,
    firewall_egress_allow_only_resource_name,
    firewall_egress_deny_all_resource_name,
    firewall_ingress_allow_ssh_resource_name,
)

SSH_PORT = 22


@dataclass
class FirewallAllowed:
    ip_protocol: str
    ports: list[str] = field(default_factory=list)


@dataclass
class FirewallDenied:
    ip_protocol: str
    ports: list[str] = field(default_factory=list)


@dataclass(kw_only=True)
class Firewall:
    """A GCP firewall rule; unset fields are left out of patches."""

    name: str = ""
    description: str = ""
    direction: str = ""
    network: str = ""
    priority: int = 0
    target_tags: list[str] = field(default_factory=list)
    source_ranges: list[str] = field(default_factory=list)
    destination_ranges: list[str] = field(default_factory=list)
    allowed: list[FirewallAllowed] = field(default_factory=list)
    denied: list[FirewallDenied] = field(default_factory=list)


def ingress_allow_ssh(opt: Options) -> Firewall:
    """Rule allowing SSH into the bastion from the requested CIDRs."""
    return Firewall(
        allowed=[FirewallAllowed("tcp", [str(SSH_PORT)])],
        description="SSH access for Bastion",
        direction="INGRESS",
        target_tags=[opt.bastion_instance_name],
        name=firewall_ingress_allow_ssh_resource_name(opt.bastion_instance_name),
        network=opt.network,
        source_ranges=list(opt.cidrs),
        priority=50,
    )


def egress_deny_all(opt: Options) -> Firewall:
    """Rule denying all egress from the bastion."""
    return Firewall(
        denied=[FirewallDenied("all")],
        description="Bastion egress deny",
        direction="EGRESS",
        target_tags=[opt.bastion_instance_name],
        name=firewall_egress_deny_all_resource_name(opt.bastion_instance_name),
        network=opt.network,
        destination_ranges=["0.0.0.0/0"],
        priority=1000,
    )


def egress_allow_only(opt: Options) -> Firewall:
    """Rule allowing SSH egress from the bastion to the workers CIDR only."""
    return Firewall(
        allowed=[FirewallAllowed("tcp", [str(SSH_PORT)])],
        description="Allow Bastion egress to Shoot workers",
        direction="EGRESS",
        target_tags=[opt.bastion_instance_name],
        name=firewall_egress_allow_only_resource_name(opt.bastion_instance_name),
        network=opt.network,
        destination_ranges=[opt.workers_cidr],
        priority=60,
    )


def patch_cidrs(opt: Options) -> Firewall:
    """Patch body that replaces the source ranges of the SSH ingress rule."""
    return Firewall(source_ranges=list(opt.cidrs))