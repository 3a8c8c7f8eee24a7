"""Reconciles and deletes bastion hosts on GCP."""

from __future__ import annotations

import logging
from typing import Callable

from gardengcp.bastion.compute import (
    ComputeClient,
    Instance,
    compute_instance_define,
    create_firewall_rule_if_not_exist,
    delete_firewall_rule,
    disk_define,
    get_bastion_instance,
    get_default_gcp_zone,
    get_disk,
    get_firewall_rule,
    get_instance_endpoints,
    patch_firewall_rule,
)
from gardengcp.bastion.firewall import egress_allow_only, egress_deny_all, ingress_allow_ssh
from gardengcp.bastion.options import (
    Bastion,
    Cluster,
    Options,
    determine_options,
    firewall_egress_allow_only_resource_name,
    firewall_egress_deny_all_resource_name,
    firewall_ingress_allow_ssh_resource_name,
    marshal_provider_status,
)
from gardengcp.errors import RequeueAfterError

logger = logging.getLogger(__name__)

# Requeue soon so that users do not wait long for the public endpoint.
REQUEUE_ENDPOINTS_PENDING = 5.0
REQUEUE_INSTANCE_DELETING = 10.0

ClientFactory = Callable[[str], "tuple[ComputeClient, str]"]


def ensure_firewall_rules(client: ComputeClient, opt: Options) -> None:
    """Create the bastion firewall rules and keep the SSH source ranges current."""
    for rule in (ingress_allow_ssh(opt), egress_deny_all(opt), egress_allow_only(opt)):
        create_firewall_rule_if_not_exist(client, opt, rule)

    name = ingress_allow_ssh(opt).name
    try:
        firewall = get_firewall_rule(client, opt, name)
    except Exception as exc:
        raise RuntimeError(f"could not get firewall rule: {exc}") from exc
    if firewall is None:
        raise RuntimeError("could not get firewall rule")

    if list(firewall.source_ranges) != list(opt.cidrs):
        patch_firewall_rule(client, opt, name)


def ensure_disk(client: ComputeClient, opt: Options) -> None:
    """Create the bastion boot disk unless it already exists."""
    if get_disk(client, opt) is not None:
        return

    logger.info("Creating new bastion compute instance disk")
    try:
        client.insert_disk(opt.project_id, opt.zone, disk_define(opt.zone, opt.disk_name))
    except Exception as exc:
        raise RuntimeError(f"failed to create compute instance disk: {exc}") from exc

    if get_disk(client, opt) is None:
        raise RuntimeError("failed to get (create) compute instance disk")


def ensure_compute_instance(client: ComputeClient, bastion: Bastion, opt: Options) -> Instance:
    """Return the bastion instance, creating it first if needed."""
    instance = get_bastion_instance(client, opt)
    if instance is not None:
        return instance

    logger.info("Creating new bastion compute instance")
    try:
        client.insert_instance(
            opt.project_id, opt.zone, compute_instance_define(opt, bastion.user_data)
        )
    except Exception as exc:
        raise RuntimeError(f"failed to create bastion compute instance: {exc}") from exc

    instance = get_bastion_instance(client, opt)
    if instance is None:
        raise RuntimeError("failed to get (create) bastion compute instance")
    return instance


def remove_firewall_rules(client: ComputeClient, opt: Options) -> None:
    """Delete the three bastion firewall rules; missing ones are skipped."""
    base = opt.bastion_instance_name
    for name in (
        firewall_ingress_allow_ssh_resource_name(base),
        firewall_egress_deny_all_resource_name(base),
        firewall_egress_allow_only_resource_name(base),
    ):
        delete_firewall_rule(client, opt, name)


def remove_bastion_instance(client: ComputeClient, opt: Options) -> None:
    """Start deleting the bastion instance if it exists."""
    if get_bastion_instance(client, opt) is None:
        return
    try:
        client.delete_instance(opt.project_id, opt.zone, opt.bastion_instance_name)
    except Exception as exc:
        raise RuntimeError(f"failed to terminate bastion instance: {exc}") from exc
    logger.info("Instance removed: %s", opt.bastion_instance_name)


def is_instance_deleted(client: ComputeClient, opt: Options) -> bool:
    """True once the bastion instance no longer exists."""
    return get_bastion_instance(client, opt) is None


def remove_disk(client: ComputeClient, opt: Options) -> None:
    """Delete the bastion disk if it exists."""
    if get_disk(client, opt) is None:
        return
    try:
        client.delete_disk(opt.project_id, opt.zone, opt.disk_name)
    except Exception as exc:
        raise RuntimeError(f"failed to delete disk: {exc}") from exc
    logger.info("Disk removed: %s", opt.disk_name)


class Actuator:
    """Brings a bastion host on GCP to its desired state, or removes it.

    ``client_factory`` takes the bastion's namespace and returns a compute
    client together with the project ID of that namespace's service account.
    """

    def __init__(self, client_factory: ClientFactory) -> None:
        self._client_factory = client_factory

    def _prepare(self, bastion: Bastion, cluster: Cluster) -> tuple[ComputeClient, Options]:
        try:
            client, project_id = self._client_factory(bastion.namespace)
        except Exception as exc:
            raise RuntimeError(f"failed to create GCP client: {exc}") from exc

        try:
            opt = determine_options(bastion, cluster, project_id)
        except Exception as exc:
            raise RuntimeError(f"failed to determine Options: {exc}") from exc

        if not opt.zone:
            opt.zone = get_default_gcp_zone(client, opt, cluster.region)
        return client, opt

    def reconcile(self, bastion: Bastion, cluster: Cluster) -> None:
        """Create the bastion resources and publish its public endpoint."""
        client, opt = self._prepare(bastion, cluster)
        bastion.provider_status = marshal_provider_status(opt.zone)

        try:
            ensure_firewall_rules(client, opt)
        except Exception as exc:
            raise RuntimeError(f"failed to ensure firewall rule: {exc}") from exc

        ensure_disk(client, opt)
        instance = ensure_compute_instance(client, bastion, opt)

        endpoints = get_instance_endpoints(instance)
        if not endpoints.ready():
            raise RequeueAfterError(
                REQUEUE_ENDPOINTS_PENDING,
                "bastion instance has no public/private endpoints yet",
            )
        bastion.status_ingress = endpoints.public

    def delete(self, bastion: Bastion, cluster: Cluster) -> None:
        """Remove the bastion instance, then its disk and firewall rules."""
        client, opt = self._prepare(bastion, cluster)

        try:
            remove_bastion_instance(client, opt)
        except Exception as exc:
            raise RuntimeError(f"failed to remove bastion instance: {exc}") from exc

        try:
            deleted = is_instance_deleted(client, opt)
        except Exception as exc:
            raise RuntimeError(f"failed to check for bastion instance: {exc}") from exc

        if not deleted:
            raise RequeueAfterError(
                REQUEUE_INSTANCE_DELETING, "bastion instance is still deleting"
            )

        try:
            remove_disk(client, opt)
        except Exception as exc:
            raise RuntimeError(f"failed to remove disk: {exc}") from exc

        try:
            remove_firewall_rules(client, opt)
        except Exception as exc:
            raise RuntimeError(f"failed to remove firewall rule: {exc}") from exc