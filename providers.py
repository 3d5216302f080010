import logging

import pydantic
import urllib3
from kubernetes import config, client
from kubernetes.client.rest import ApiException
from kubernetes.dynamic.exceptions import DynamicApiError
from openshift.dynamic import DynamicClient
from typing_extensions import Protocol

from exc import DirectoryUnavailable, ProviderError
from models import Service

LOG = logging.getLogger(__name__)


class Provider(Protocol):
    def list_services(self, timeout: float | None = None) -> list[Service]: ...


class KubernetesProvider(Provider):
    def __init__(self):
        """Allocate a Kubernetes dynamic client and Service API client"""

        super().__init__()

        try:
            config.load_config()
        except config.ConfigException as err:
            LOG.warning("unable to configure Kubernetes client: %s", err)
            raise ProviderError("unable to configure Kubernetes client")

        k8s_client = client.ApiClient()

        try:
            dyn_client = DynamicClient(k8s_client)
            service_resource = dyn_client.resources.get(api_version="v1", kind="Service")
        except (DynamicApiError, ApiException, urllib3.exceptions.HTTPError) as err:
            LOG.warning("unable to discover the Service API: %s", err)
            raise ProviderError("unable to discover the Service API")

        self._client = dyn_client
        self._service_resource = service_resource

    def list_services(self, timeout=None):
        # Without a namespace the dynamic client lists across all namespaces.
        try:
            services = self._service_resource.get(_request_timeout=timeout)
        except (DynamicApiError, ApiException, urllib3.exceptions.HTTPError) as err:
            LOG.warning("failed to list services: %s", err)
            raise DirectoryUnavailable(f"failed to list services: {err}") from err

        result = []
        for svc in services.items:
            try:
                result.append(service_from_resource(svc))
            except pydantic.ValidationError as err:
                LOG.warning(
                    "skipping service %s/%s: %s",
                    svc.metadata.namespace,
                    svc.metadata.name,
                    err,
                )

        return result


def service_from_resource(svc) -> Service:
    spec = svc.spec
    return Service(
        name=svc.metadata.name,
        namespace=svc.metadata.namespace,
        type=spec.type or "ClusterIP",
        clusterIP=spec.clusterIP or None,
    )
