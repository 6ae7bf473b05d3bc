"""Cluster pod client used by the warm pool.

The controller talks to the cluster only through the :class:`PodClient`
protocol. :class:`KubernetesPodClient` implements it on top of the official
``kubernetes`` client, translating its models into the small views the
controller needs.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client import CoreV1Api
from kubernetes.config.config_exception import ConfigException

from k8s_warm_pool.const import K8S_KUBECONFIG_ENV
from k8s_warm_pool.exceptions import KubeconfigInvalidError, KubeconfigNotFoundError
from k8s_warm_pool.k8s_utils import call_k8s_api, is_not_found

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerStatusView:
    """Readiness and waiting state of one container."""

    name: str
    ready: bool
    waiting_reason: str | None = None
    waiting_message: str | None = None


@dataclass(frozen=True)
class PodStatusView:
    """Subset of a pod's status used by the readiness wait."""

    phase: str | None
    container_statuses: list[ContainerStatusView] = field(default_factory=list)
    creation_timestamp: datetime | None = None


@dataclass(frozen=True)
class PodSummary:
    """Subset of a listed pod used by discovery."""

    name: str
    uid: str | None
    labels: dict[str, str] = field(default_factory=dict)
    image: str | None = None
    creation_timestamp: datetime | None = None
    deletion_timestamp: datetime | None = None


class PodClient(Protocol):
    """Operations the controller needs from the cluster.

    ``read_pod`` and ``patch_pod_labels`` raise an
    :class:`~kubernetes.client.exceptions.ApiException` with status 404 when
    the pod does not exist. ``delete_pod`` treats a missing pod as success.
    """

    async def create_pod(self, namespace: str, body: dict[str, Any]) -> str:
        """Submit a pod manifest and return the new pod's UID."""
        ...

    async def read_pod(self, namespace: str, name: str) -> PodStatusView:
        """Read a pod's phase and container statuses."""
        ...

    async def patch_pod_labels(self, namespace: str, name: str, labels: dict[str, str]) -> None:
        """Merge ``labels`` into a pod's metadata labels."""
        ...

    async def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> None:
        """Delete a pod, ignoring pods that are already gone."""
        ...

    async def list_pods(self, namespace: str, label_selector: str) -> list[PodSummary]:
        """List pods matching a label selector."""
        ...


def load_core_v1_api(kubeconfig_path: str | None = None, context: str | None = None) -> CoreV1Api:
    """Load cluster credentials and build a CoreV1Api client.

    Resolution order:
    1. ``kubeconfig_path`` argument
    2. ``K8S_KUBECONFIG`` environment variable
    3. The kubernetes library defaults (``KUBECONFIG``, ``~/.kube/config``)
    4. In-cluster service account config

    Args:
        kubeconfig_path: Explicit kubeconfig file
        context: Kubeconfig context to use (defaults to current-context)

    Returns:
        A configured CoreV1Api client

    Raises:
        KubeconfigNotFoundError: If no configuration can be found
        KubeconfigInvalidError: If an explicit kubeconfig cannot be loaded

    """
    explicit_path = kubeconfig_path or os.environ.get(K8S_KUBECONFIG_ENV)
    if explicit_path:
        if not Path(explicit_path).exists():
            raise KubeconfigNotFoundError(explicit_path)
        try:
            k8s_config.load_kube_config(config_file=explicit_path, context=context)
        except ConfigException as e:
            raise KubeconfigInvalidError(str(e)) from e
        return CoreV1Api()

    try:
        k8s_config.load_kube_config(context=context)
    except ConfigException:
        logger.debug("No usable kubeconfig, falling back to in-cluster config")
        try:
            k8s_config.load_incluster_config()
        except ConfigException as e:
            raise KubeconfigNotFoundError from e

    return CoreV1Api()


class KubernetesPodClient:
    """PodClient backed by the official Kubernetes CoreV1Api."""

    def __init__(self, core_v1: CoreV1Api | None = None) -> None:
        """Initialize the client.

        Args:
            core_v1: Kubernetes CoreV1Api client (loaded from kubeconfig if None)

        """
        self.core_v1 = core_v1 if core_v1 is not None else load_core_v1_api()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def create_pod(self, namespace: str, body: dict[str, Any]) -> str:
        pod = await call_k8s_api(
            self.core_v1.create_namespaced_pod,
            namespace=namespace,
            body=body,
            logger=self.logger,
        )
        uid = pod.metadata.uid if pod.metadata else None
        return uid or body["metadata"]["name"]

    async def read_pod(self, namespace: str, name: str) -> PodStatusView:
        pod = await call_k8s_api(
            self.core_v1.read_namespaced_pod,
            name=name,
            namespace=namespace,
            logger=self.logger,
        )
        status = pod.status
        statuses = []
        for cs in (status.container_statuses if status else None) or []:
            waiting = cs.state.waiting if cs.state else None
            statuses.append(
                ContainerStatusView(
                    name=cs.name,
                    ready=bool(cs.ready),
                    waiting_reason=waiting.reason if waiting else None,
                    waiting_message=waiting.message if waiting else None,
                )
            )
        return PodStatusView(
            phase=status.phase if status else None,
            container_statuses=statuses,
            creation_timestamp=pod.metadata.creation_timestamp if pod.metadata else None,
        )

    async def patch_pod_labels(self, namespace: str, name: str, labels: dict[str, str]) -> None:
        await call_k8s_api(
            self.core_v1.patch_namespaced_pod,
            name=name,
            namespace=namespace,
            body={"metadata": {"labels": labels}},
            logger=self.logger,
        )

    async def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> None:
        try:
            await call_k8s_api(
                self.core_v1.delete_namespaced_pod,
                name=name,
                namespace=namespace,
                body=k8s_client.V1DeleteOptions(grace_period_seconds=grace_period_seconds),
                logger=self.logger,
            )
        except Exception as e:
            if is_not_found(e):
                self.logger.debug("Pod %s already deleted", name)
                return
            raise

    async def list_pods(self, namespace: str, label_selector: str) -> list[PodSummary]:
        pod_list = await call_k8s_api(
            self.core_v1.list_namespaced_pod,
            namespace=namespace,
            label_selector=label_selector,
            logger=self.logger,
        )
        summaries = []
        for pod in pod_list.items or []:
            metadata = pod.metadata
            if metadata is None or not metadata.name:
                continue
            containers = pod.spec.containers if pod.spec and pod.spec.containers else []
            summaries.append(
                PodSummary(
                    name=metadata.name,
                    uid=metadata.uid,
                    labels=dict(metadata.labels or {}),
                    image=containers[0].image if containers else None,
                    creation_timestamp=metadata.creation_timestamp,
                    deletion_timestamp=metadata.deletion_timestamp,
                )
            )
        return summaries
