"""Logging configuration for kube_relay."""

from kube_relay.logging.config import configure_logging

__all__ = ["configure_logging"]
