"""Bastion host options, firewall rules, compute helpers and actuator."""