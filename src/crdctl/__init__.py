"""crdctl: apply, delete and watch Kubernetes CustomResourceDefinitions."""

__version__ = "0.1.0"
