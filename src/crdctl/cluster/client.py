"""Thin wrappers over the kubernetes API used by the reconciler and waiters.

Both clients return plain dictionaries (the camelCase wire representation)
and translate ``ApiException`` into the ``crdctl.errors`` cluster errors so
callers never depend on kubernetes client model classes.
"""

import logging

import kubernetes
from kubernetes.client.exceptions import ApiException
from kubernetes.config import ConfigException

from crdctl.errors import (
    AlreadyExistsError,
    ClusterError,
    ConflictError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


def load_kube_config(context=None):
    """Load in-cluster config, falling back to the local kubeconfig.

    Returns:
        str: "in-cluster" or "kubeconfig", whichever was loaded
    """
    try:
        kubernetes.config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
        return "in-cluster"
    except ConfigException:
        kubernetes.config.load_kube_config(context=context)
        logger.info(
            f"Loaded local Kubernetes config (context: {context or 'current'})"
        )
        return "kubeconfig"


def translate_api_exception(e, action, what, on_conflict=ConflictError):
    """Map an ApiException onto the matching crdctl ClusterError."""
    message = f"{action} {what}: {e.status} {e.reason}"
    if e.status == 404:
        return NotFoundError(message, status=e.status, reason=e.reason)
    if e.status == 409:
        return on_conflict(message, status=e.status, reason=e.reason)
    return ClusterError(message, status=e.status, reason=e.reason)


class CRDClient:
    """Get/Create/Update/Delete/List for CustomResourceDefinitions."""

    def __init__(self, api=None):
        self.api = api or kubernetes.client.ApiextensionsV1Api()

    def _to_dict(self, obj):
        if obj is None or isinstance(obj, dict):
            return obj
        return self.api.api_client.sanitize_for_serialization(obj)

    def get(self, name):
        try:
            return self._to_dict(self.api.read_custom_resource_definition(name))
        except ApiException as e:
            raise translate_api_exception(e, "get", f"CRD {name}") from e

    def create(self, body):
        name = body["metadata"]["name"]
        try:
            return self._to_dict(self.api.create_custom_resource_definition(body=body))
        except ApiException as e:
            raise translate_api_exception(
                e, "create", f"CRD {name}", on_conflict=AlreadyExistsError
            ) from e

    def update(self, body):
        name = body["metadata"]["name"]
        try:
            return self._to_dict(
                self.api.replace_custom_resource_definition(name=name, body=body)
            )
        except ApiException as e:
            raise translate_api_exception(e, "update", f"CRD {name}") from e

    def delete(self, name):
        try:
            self.api.delete_custom_resource_definition(name)
        except ApiException as e:
            raise translate_api_exception(e, "delete", f"CRD {name}") from e

    def list(self):
        try:
            result = self._to_dict(self.api.list_custom_resource_definition())
        except ApiException as e:
            raise translate_api_exception(e, "list", "CRDs") from e
        return result.get("items", [])


class CustomResourceClient:
    """Typed access to one kind of custom resource.

    Args:
        group: API group (e.g. 'nvidia.com')
        version: API version (e.g. 'v1alpha1')
        plural: Plural resource name (e.g. 'nvidiadrivers')
        namespace: Namespace for namespaced kinds, None for cluster scoped
        api: Optional CustomObjectsApi instance
    """

    def __init__(self, group, version, plural, namespace=None, api=None):
        self.group = group
        self.version = version
        self.plural = plural
        self.namespace = namespace
        self.api = api or kubernetes.client.CustomObjectsApi()

    @property
    def kind_ref(self):
        return f"{self.plural}.{self.group}/{self.version}"

    def _describe(self, name=None):
        ref = f"{self.kind_ref} {name}" if name else self.kind_ref
        return f"{ref} in {self.namespace}" if self.namespace else ref

    def get(self, name):
        try:
            if self.namespace:
                return self.api.get_namespaced_custom_object(
                    self.group, self.version, self.namespace, self.plural, name
                )
            return self.api.get_cluster_custom_object(
                self.group, self.version, self.plural, name
            )
        except ApiException as e:
            raise translate_api_exception(e, "get", self._describe(name)) from e

    def create(self, body):
        name = body.get("metadata", {}).get("name")
        try:
            if self.namespace:
                return self.api.create_namespaced_custom_object(
                    self.group, self.version, self.namespace, self.plural, body
                )
            return self.api.create_cluster_custom_object(
                self.group, self.version, self.plural, body
            )
        except ApiException as e:
            raise translate_api_exception(
                e, "create", self._describe(name), on_conflict=AlreadyExistsError
            ) from e

    def update(self, body):
        name = body["metadata"]["name"]
        try:
            if self.namespace:
                return self.api.replace_namespaced_custom_object(
                    self.group, self.version, self.namespace, self.plural, name, body
                )
            return self.api.replace_cluster_custom_object(
                self.group, self.version, self.plural, name, body
            )
        except ApiException as e:
            raise translate_api_exception(e, "update", self._describe(name)) from e

    def delete(self, name):
        try:
            if self.namespace:
                self.api.delete_namespaced_custom_object(
                    self.group, self.version, self.namespace, self.plural, name
                )
            else:
                self.api.delete_cluster_custom_object(
                    self.group, self.version, self.plural, name
                )
        except ApiException as e:
            raise translate_api_exception(e, "delete", self._describe(name)) from e

    def list(self):
        try:
            if self.namespace:
                result = self.api.list_namespaced_custom_object(
                    self.group, self.version, self.namespace, self.plural
                )
            else:
                result = self.api.list_cluster_custom_object(
                    self.group, self.version, self.plural
                )
        except ApiException as e:
            raise translate_api_exception(e, "list", self._describe()) from e
        return result.get("items", [])

    def update_spec_field(self, name, field, value):
        """Set ``spec.<field>`` on an existing resource and replace it."""
        resource = self.get(name)
        resource.setdefault("spec", {})[field] = value
        updated = self.update(resource)
        logger.info(f"Updated {self._describe(name)}: spec.{field}={value}")
        return updated
