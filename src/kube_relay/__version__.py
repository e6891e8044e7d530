"""Version information for kube_relay."""

__version__ = "0.1.0"
