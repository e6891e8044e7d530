"""Service layer for kube_relay."""
