import json
import logging
import sys
from enum import StrEnum

import pydantic

from flask import Flask, request, jsonify, current_app

from models import (
    BaseModel,
    AdmissionRequest,
    AdmissionResponse,
    AdmissionReview,
    HostAlias,
    Pod,
    Service,
    ServiceType,
)

import responses
from exc import ApplicationError, BadRequestError, DirectoryUnavailable, EncodingError
from patches import create_patch
from providers import KubernetesProvider, Provider

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class FailurePolicy(StrEnum):
    OPEN = "open"
    CLOSED = "closed"


class DEFAULTS:
    LABEL_NAME = "k8s-app"
    CLUSTER_DOMAIN = "cluster.local"
    FAILURE_POLICY = FailurePolicy.OPEN
    DEDUPLICATE = False
    DIRECTORY_TIMEOUT = 10
    PROVIDER = KubernetesProvider


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


def is_watching(pod: Pod, label_name: str) -> bool:
    """A pod opts in by carrying `label_name`; the label value is ignored."""
    labels = pod.metadata.labels or {}
    return label_name in labels


def service_hostnames(service: Service, cluster_domain: str) -> list[str]:
    return [
        f"{service.name}.{service.namespace}.svc.{cluster_domain}",
        f"{service.name}.{service.namespace}.svc",
        f"{service.name}.{service.namespace}",
    ]


def host_aliases_from_services(
    provider: Provider, cluster_domain: str = "cluster.local", timeout=None
) -> list[HostAlias]:
    try:
        services = provider.list_services(timeout=timeout)
    except DirectoryUnavailable:
        raise
    except Exception as err:
        LOG.error("failed to list services: %s", err)
        raise DirectoryUnavailable(f"failed to list services: {err}") from err

    host_aliases = []
    for service in services:
        if service.type != ServiceType.CLUSTER_IP:
            continue
        # Headless services have no address to alias.
        if service.is_headless:
            continue

        host_aliases.append(
            HostAlias(
                ip=service.clusterIP,
                hostnames=service_hostnames(service, cluster_domain),
            )
        )

    return host_aliases


def missing_host_aliases(pod: Pod, host_aliases: list[HostAlias]) -> list[HostAlias]:
    existing = (pod.spec.hostAliases if pod.spec else None) or []
    return [
        alias
        for alias in host_aliases
        if not any(alias.same_as(have) for have in existing)
    ]


class PodMutator:
    """Decides whether a pod gets service host aliases and builds the
    admission response.

    The provider is the only collaborator that does I/O; it is called at most
    once per request.
    """

    def __init__(
        self,
        provider: Provider,
        label_name: str = DEFAULTS.LABEL_NAME,
        cluster_domain: str = DEFAULTS.CLUSTER_DOMAIN,
        failure_policy: FailurePolicy | str = DEFAULTS.FAILURE_POLICY,
        deduplicate: bool = DEFAULTS.DEDUPLICATE,
        timeout: float | None = DEFAULTS.DIRECTORY_TIMEOUT,
    ):
        self.provider = provider
        self.label_name = label_name
        self.cluster_domain = cluster_domain
        self.failure_policy = FailurePolicy(failure_policy)
        self.deduplicate = deduplicate
        self.timeout = timeout

    def mutate(self, req: AdmissionRequest) -> AdmissionResponse:
        uid = req.uid

        if req.kind is not None and req.kind.kind != "Pod":
            return responses.denied(uid, 400, f"expected a Pod, got {req.kind.kind}")

        if req.object is None:
            return responses.denied(uid, 400, "request contains no object")

        if not isinstance(req.object, dict):
            return responses.denied(uid, 400, "request object is not a Pod")

        try:
            pod = Pod.model_validate(req.object)
        except pydantic.ValidationError as err:
            LOG.warning("unable to decode pod in request %s: %s", uid, err)
            return responses.denied(uid, 400, f"unable to decode pod: {err}")

        if not is_watching(pod, self.label_name):
            return responses.allowed_unchanged(uid, "Pod is not watching")

        try:
            host_aliases = host_aliases_from_services(
                self.provider, self.cluster_domain, self.timeout
            )
        except DirectoryUnavailable as err:
            return self.directory_failure(uid, err)

        if not host_aliases:
            return responses.allowed_unchanged(uid, "No host aliases found")

        if self.deduplicate:
            host_aliases = missing_host_aliases(pod, host_aliases)
            if not host_aliases:
                return responses.allowed_unchanged(uid, "Host aliases already present")

        mutated = pod.with_host_aliases(host_aliases)

        try:
            patch = create_patch(json.dumps(req.object), mutated.to_json())
        except EncodingError as err:
            LOG.error("failed to create patch for request %s: %s", uid, err)
            return responses.denied(uid, 500, str(err))

        LOG.info(f"Adding {len(host_aliases)} host aliases to pod in request {uid}")
        return responses.allowed_with_patch(uid, patch)

    def directory_failure(self, uid: str, err: Exception) -> AdmissionResponse:
        message = f"failed to get host aliases: {err}"
        if self.failure_policy == FailurePolicy.CLOSED:
            LOG.error("denying request %s: %s", uid, message)
            return responses.denied(uid, 500, message)

        LOG.warning("admitting request %s without host aliases: %s", uid, message)
        return responses.allowed_with_warning(uid, [message])

    def admit(self, review: AdmissionReview) -> AdmissionReview:
        if review.request is None:
            raise BadRequestError("admission review contains no request")

        return AdmissionReview(
            apiVersion=review.apiVersion,
            response=self.mutate(review.request),
        )

    def handle(self, data: bytes) -> bytes:
        """Answer a serialized AdmissionReview with a serialized
        AdmissionReview."""
        review = AdmissionReview.model_validate_json(data)
        return self.admit(review).model_dump_json(exclude_none=True).encode()


@jsonresponse()
def mutate_pod():
    body = AdmissionReview.model_validate(request.get_json())
    return current_app.mutator.admit(body)


def handle_validationerror(err):
    return str(err), 400, {"content-type": "text/plain"}


def handle_applicationerror(err):
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    This makes it much easier to write tests for the application, since we can
    set up the test environment before instantiating the app. This is difficult
    to do if the app is created at `import` time.

    A provider that cannot be constructed (for example because there is no
    usable Kubernetes configuration) raises ProviderError here, so the process
    fails at startup rather than on the first request.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("HOSTALIASES")
    if config:
        app.config.update(config)

    try:
        failure_policy = FailurePolicy(app.config["FAILURE_POLICY"])
    except ValueError:
        LOG.error("Invalid failure policy: %s", app.config["FAILURE_POLICY"])
        sys.exit(1)

    app.mutator = PodMutator(
        app.config["PROVIDER"](),
        label_name=app.config["LABEL_NAME"],
        cluster_domain=app.config["CLUSTER_DOMAIN"],
        failure_policy=failure_policy,
        deduplicate=bool(app.config["DEDUPLICATE"]),
        timeout=app.config["DIRECTORY_TIMEOUT"],
    )

    app.errorhandler(pydantic.ValidationError)(handle_validationerror)
    app.errorhandler(BadRequestError)(handle_validationerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/mutate", view_func=mutate_pod, methods=["POST"])

    return app
