"""Creates, updates and deletes DNS record sets in Google Cloud DNS."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from gardengcp.errors import RequeueAfterError

logger = logging.getLogger(__name__)

# Provider errors are retried slowly so that a misconfiguration does not
# exhaust the account's rate limits.
REQUEUE_AFTER_ON_PROVIDER_ERROR = 30.0

DEFAULT_TTL = 120
META_RECORD_TYPE = "TXT"
LAST_OPERATION_CREATE = "Create"


@dataclass
class DNSRecord:
    """A DNS record request together with the zone recorded in its status."""

    name: str
    namespace: str = ""
    secret_ref: str = ""
    domain_name: str = ""
    record_type: str = "A"
    values: list[str] = field(default_factory=list)
    ttl: int | None = None
    zone: str | None = None
    status_zone: str | None = None
    last_operation: str | None = None

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


class DNSClient(ABC):
    """Access to the Cloud DNS API."""

    @abstractmethod
    def get_managed_zones(self) -> dict[str, str]:
        """Return the managed zones, mapping each zone's DNS name to its ID."""

    @abstractmethod
    def create_or_update_record_set(
        self, managed_zone: str, name: str, record_type: str, rrdatas: list[str], ttl: int
    ) -> None:
        """Create the record set, or replace its data if it exists."""

    @abstractmethod
    def delete_record_set(self, managed_zone: str, name: str, record_type: str) -> None:
        """Delete the record set; a missing record set is not an error."""


class DNSClientFactory(ABC):
    """Creates DNS clients from the credentials of a secret."""

    @abstractmethod
    def new_dns_client(self, secret_ref: str) -> DNSClient:
        """Return a DNS client authenticated by the referenced secret."""


def get_meta_record_name(name: str) -> str:
    """Return the name of the TXT record that carries metadata for ``name``."""
    if name.startswith("*."):
        return "*.comment-" + name[2:]
    return "comment-" + name


def find_zone_for_name(zones: dict[str, str], name: str) -> str:
    """Return the ID of the longest zone whose DNS name is a suffix of ``name``, or ''."""
    best_name, best_id = "", ""
    for zone_name, zone_id in zones.items():
        if name.endswith("." + zone_name) and len(zone_name) > len(best_name):
            best_name, best_id = zone_name, zone_id
    return best_id


def _format_values(values: list[str]) -> str:
    return "[" + " ".join(values) + "]"


class DNSRecordActuator:
    """Brings DNS record sets to the state a DNSRecord asks for."""

    def __init__(self, client_factory: DNSClientFactory) -> None:
        self._client_factory = client_factory

    def reconcile(self, dns: DNSRecord, cluster: Any = None) -> None:
        """Create or update the record set and remember its managed zone."""
        client = self._client_factory.new_dns_client(dns.secret_ref)
        managed_zone = self._managed_zone(dns, client)

        ttl = DEFAULT_TTL if dns.ttl is None else dns.ttl
        logger.info(
            "Creating or updating DNS recordset in %s: %s %s %s (%s)",
            managed_zone, dns.domain_name, dns.record_type, dns.values, dns.key,
        )
        try:
            client.create_or_update_record_set(
                managed_zone, dns.domain_name, dns.record_type, list(dns.values), ttl
            )
        except Exception as exc:
            raise RequeueAfterError(
                REQUEUE_AFTER_ON_PROVIDER_ERROR,
                f"could not create or update DNS recordset in managed zone {managed_zone} "
                f"with name {dns.domain_name}, type {dns.record_type}, "
                f"and rrdatas {_format_values(dns.values)}: {exc}",
            ) from exc

        if dns.last_operation is None or dns.last_operation == LAST_OPERATION_CREATE:
            meta_name = get_meta_record_name(dns.domain_name)
            logger.info(
                "Deleting meta DNS recordset in %s: %s %s (%s)",
                managed_zone, meta_name, META_RECORD_TYPE, dns.key,
            )
            try:
                client.delete_record_set(managed_zone, meta_name, META_RECORD_TYPE)
            except Exception as exc:
                raise RequeueAfterError(
                    REQUEUE_AFTER_ON_PROVIDER_ERROR,
                    f"could not delete meta DNS recordset in managed zone {managed_zone} "
                    f"with name {meta_name} and type {META_RECORD_TYPE}: {exc}",
                ) from exc

        dns.status_zone = managed_zone

    def delete(self, dns: DNSRecord, cluster: Any = None) -> None:
        """Delete the record set."""
        client = self._client_factory.new_dns_client(dns.secret_ref)
        managed_zone = self._managed_zone(dns, client)

        logger.info(
            "Deleting DNS recordset in %s: %s %s (%s)",
            managed_zone, dns.domain_name, dns.record_type, dns.key,
        )
        try:
            client.delete_record_set(managed_zone, dns.domain_name, dns.record_type)
        except Exception as exc:
            raise RequeueAfterError(
                REQUEUE_AFTER_ON_PROVIDER_ERROR,
                f"could not delete DNS recordset in managed zone {managed_zone} "
                f"with name {dns.domain_name} and type {dns.record_type}: {exc}",
            ) from exc

    def restore(self, dns: DNSRecord, cluster: Any = None) -> None:
        """Restore the record set; the same as reconciling it."""
        self.reconcile(dns, cluster)

    def migrate(self, dns: DNSRecord, cluster: Any = None) -> None:
        """Nothing needs to happen on migration."""

    def _managed_zone(self, dns: DNSRecord, client: DNSClient) -> str:
        if dns.zone:
            return dns.zone
        if dns.status_zone:
            return dns.status_zone

        try:
            zones = client.get_managed_zones()
        except Exception as exc:
            raise RequeueAfterError(
                REQUEUE_AFTER_ON_PROVIDER_ERROR, f"could not get DNS managed zones: {exc}"
            ) from exc
        logger.info("Got DNS managed zones %s (%s)", zones, dns.key)

        zone = find_zone_for_name(zones, dns.domain_name)
        if not zone:
            raise LookupError(f"could not find DNS managed zone for name {dns.domain_name}")
        return zone