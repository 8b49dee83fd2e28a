"""Credential lifecycle and resource provisioning for project scaffolding."""

__version__ = "0.1.0"
