"""Command-line interface for kube-relay."""
