"""Kubernetes cluster access for crdctl."""

from .client import CRDClient, CustomResourceClient, load_kube_config

__all__ = ["CRDClient", "CustomResourceClient", "load_kube_config"]
