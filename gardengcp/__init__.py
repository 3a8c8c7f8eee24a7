"""Bastion host, DNS record and infrastructure validation logic for a GCP cluster provider."""

__version__ = "0.1.0"