"""Core configuration for kube_relay."""
