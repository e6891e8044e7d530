"""kube-relay: reach a TCP endpoint inside a Kubernetes cluster through a short-lived relay pod."""

from kube_relay.__version__ import __version__

__all__ = ["__version__"]
