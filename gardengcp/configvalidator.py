"""Checks an infrastructure configuration against the cloud provider."""

from __future__ import annotations

import enum
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ErrorType(str, enum.Enum):
    NOT_FOUND = "FieldValueNotFound"
    INVALID = "FieldValueInvalid"
    INTERNAL = "InternalError"


@dataclass(frozen=True)
class FieldError:
    """A problem with one field of a configuration."""

    type: ErrorType
    field: str
    bad_value: Any = None
    detail: str = ""

    def __str__(self) -> str:
        if self.type is ErrorType.INTERNAL:
            return f"{self.field}: Internal error: {self.detail}"
        text = f"{self.field}: {self.type.value}: {self.bad_value!r}"
        return f"{text}: {self.detail}" if self.detail else text


@dataclass
class Infrastructure:
    """An infrastructure request with its raw provider configuration."""

    name: str
    namespace: str = ""
    region: str = ""
    secret_ref: str = ""
    provider_config: bytes | None = None


class _ExternalAddressLister(Protocol):
    def get_external_addresses(self, region: str) -> dict[str, list[str] | None]:
        """Map each external IP address name to the names of its users."""


class ComputeClientFactory(ABC):
    """Creates compute clients from the credentials of a secret."""

    @abstractmethod
    def new_compute_client(self, secret_ref: str) -> _ExternalAddressLister:
        """Return a compute client authenticated by the referenced secret."""


def _child(path: str, *names: str) -> str:
    parts = [path] if path else []
    parts.extend(names)
    return ".".join(parts)


def _as_dict(value: Any, what: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{what} must be a JSON object")
    return value


def _networks_from(infra: Infrastructure) -> dict:
    if infra.provider_config is None:
        raise ValueError("provider config is not set on the infrastructure resource")
    try:
        config = json.loads(infra.provider_config)
    except ValueError as exc:
        raise ValueError(f"could not decode provider config: {exc}") from exc
    config = _as_dict(config, "provider config")
    return _as_dict(config.get("networks"), "networks")


def validate_networks(
    compute_client: _ExternalAddressLister,
    cluster_name: str,
    region: str,
    networks: dict,
    path: str,
) -> list[FieldError]:
    """Check that every configured NAT IP exists and is free or used by the cloud router."""
    cloud_nat = networks.get("cloudNAT") or {}
    nat_ip_names = cloud_nat.get("natIPNames") or []
    if not nat_ip_names:
        return []

    try:
        external_addresses = compute_client.get_external_addresses(region)
    except Exception as exc:
        return [
            FieldError(
                ErrorType.INTERNAL,
                path,
                detail=f"could not get external IP addresses: {exc}",
            )
        ]

    cloud_router_name = f"{cluster_name}-cloud-router"
    vpc = networks.get("vpc") or {}
    configured_router = (vpc.get("cloudRouter") or {}).get("name")
    if configured_router:
        cloud_router_name = configured_router

    errors = []
    for index, nat_ip in enumerate(nat_ip_names):
        name = (nat_ip or {}).get("name", "")
        name_path = _child(path, "cloudNAT", f"natIPNames[{index}]", "name")
        if name not in external_addresses:
            errors.append(FieldError(ErrorType.NOT_FOUND, name_path, bad_value=name))
            continue
        users = external_addresses[name] or []
        if len(users) > 1 or (len(users) == 1 and users[0] != cloud_router_name):
            errors.append(
                FieldError(
                    ErrorType.INVALID,
                    name_path,
                    bad_value=name,
                    detail=f"external IP address is already in use by {','.join(users)}",
                )
            )
    return errors


class ConfigValidator:
    """Validates infrastructure provider configurations with GCP."""

    def __init__(self, client_factory: ComputeClientFactory) -> None:
        self._client_factory = client_factory

    def validate(self, infra: Infrastructure) -> list[FieldError]:
        """Return every problem found with the infrastructure's configuration."""
        try:
            networks = _networks_from(infra)
        except ValueError as exc:
            return [FieldError(ErrorType.INTERNAL, "", detail=str(exc))]

        try:
            compute_client = self._client_factory.new_compute_client(infra.secret_ref)
        except Exception as exc:
            return [FieldError(ErrorType.INTERNAL, "", detail=str(exc))]

        logger.info("Validating infrastructure networks configuration of %s", infra.name)
        return validate_networks(
            compute_client, infra.namespace, infra.region, networks, "networks"
        )