"""Creation, readiness tracking and deletion of individual pool pods."""

import asyncio
import logging
import math
from typing import Any

from k8s_warm_pool.client import PodClient
from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import (
    IMAGE_PULL_FAILURE_REASONS,
    POD_STATUS_POLL_INTERVAL,
    SANDBOX_CONTAINER_NAME,
    SANDBOX_IDLE_COMMAND,
    SANDBOX_USER_ID,
    SANDBOX_WORKDIR,
    TERMINAL_POD_PHASES,
    PodPhase,
    PodState,
    PoolLabel,
)
from k8s_warm_pool.exceptions import (
    ImagePullBackoffError,
    PodCreationFailedError,
    PodNotFoundError,
    PodNotRunningError,
    PodStartupTimeoutError,
)
from k8s_warm_pool.k8s_utils import is_not_found


def format_cpu(cores: float) -> str:
    """Format a CPU quantity, using millicores for fractional values."""
    if float(cores).is_integer():
        return str(int(cores))
    return f"{math.floor(cores * 1000)}m"


class PodLifecycleManager:
    """Builds, submits, waits on and deletes warm pool pods.

    The pod shape is fixed: one idle ``sandbox`` container with hardened
    security defaults meant to satisfy the restricted pod security standard.
    Startup failures are classified into distinct error types because
    callers react differently to each:

    - :class:`ImagePullBackoffError`: the image is misconfigured
    - :class:`PodNotRunningError`: the container exited
    - :class:`PodNotFoundError`: a concurrent deletion raced the wait
    - :class:`PodStartupTimeoutError`: possibly transient slowness
    """

    def __init__(
        self,
        client: PodClient,
        namespace: str,
        config: PoolConfig,
        poll_interval: float = POD_STATUS_POLL_INTERVAL,
    ) -> None:
        """Initialize the lifecycle manager.

        Args:
            client: Cluster pod client
            namespace: Namespace pods are created in
            config: Pool configuration providing image, resources and labels
            poll_interval: Seconds between readiness polls

        """
        self.client = client
        self.namespace = namespace
        self.config = config
        self.poll_interval = poll_interval
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def pool_labels(self) -> dict[str, str]:
        """Labels identifying a warm pod of this pool."""
        return {
            PoolLabel.SANDBOX.value: "true",
            PoolLabel.WARM_POOL.value: "true",
            PoolLabel.STATE.value: PodState.WARM.value,
            PoolLabel.POOL_ID.value: self.config.pool_id,
        }

    def build_pod_spec(self, name: str) -> dict[str, Any]:
        """Build the manifest for a warm pod.

        Limits come from the configuration; requests are half the limits.

        Args:
            name: Pod name

        Returns:
            Pod manifest dictionary

        """
        memory_mb = self.config.default_memory_mb
        cpu_cores = self.config.default_cpu_cores

        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": name,
                "namespace": self.namespace,
                "labels": self.pool_labels(),
            },
            "spec": {
                "restartPolicy": "Never",
                "securityContext": {
                    "runAsNonRoot": True,
                    "runAsUser": SANDBOX_USER_ID,
                    "runAsGroup": SANDBOX_USER_ID,
                    "fsGroup": SANDBOX_USER_ID,
                    "seccompProfile": {"type": "RuntimeDefault"},
                },
                "containers": [
                    {
                        "name": SANDBOX_CONTAINER_NAME,
                        "image": self.config.default_image,
                        "imagePullPolicy": self.config.image_pull_policy,
                        "workingDir": SANDBOX_WORKDIR,
                        "command": list(SANDBOX_IDLE_COMMAND),
                        "resources": {
                            "limits": {
                                "memory": f"{memory_mb}Mi",
                                "cpu": format_cpu(cpu_cores),
                            },
                            "requests": {
                                "memory": f"{memory_mb // 2}Mi",
                                "cpu": format_cpu(cpu_cores / 2),
                            },
                        },
                        "securityContext": {
                            "allowPrivilegeEscalation": False,
                            "runAsNonRoot": True,
                            "capabilities": {"drop": ["ALL"]},
                            "seccompProfile": {"type": "RuntimeDefault"},
                        },
                    }
                ],
            },
        }

    async def create_pod(self, name: str) -> str:
        """Submit a new warm pod.

        Args:
            name: Pod name

        Returns:
            UID of the created pod

        Raises:
            PodCreationFailedError: If the cluster rejects the submission

        """
        body = self.build_pod_spec(name)
        try:
            uid = await self.client.create_pod(self.namespace, body)
        except Exception as e:
            raise PodCreationFailedError(name, str(e)) from e

        self.logger.debug("Submitted pod %s (uid=%s)", name, uid)
        return uid

    async def wait_for_running(self, name: str, timeout_seconds: float | None = None) -> None:
        """Wait until the pod is running and every container is ready.

        The timeout is a hard cutoff covering both the polls and the sleeps
        between them.

        Args:
            name: Pod name
            timeout_seconds: Deadline (defaults to ``config.pod_startup_timeout``)

        Raises:
            PodNotRunningError: If the pod reached Failed or Succeeded
            ImagePullBackoffError: If the image cannot be pulled
            PodNotFoundError: If the pod was deleted during the wait
            PodStartupTimeoutError: If the deadline elapsed first

        """
        timeout = self.config.pod_startup_timeout if timeout_seconds is None else timeout_seconds
        try:
            await asyncio.wait_for(self._poll_until_ready(name), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PodStartupTimeoutError(name, timeout) from e

    async def _poll_until_ready(self, name: str) -> None:
        while True:
            try:
                status = await self.client.read_pod(self.namespace, name)
            except Exception as e:
                if is_not_found(e):
                    raise PodNotFoundError(name, self.namespace) from e
                raise

            if status.phase == PodPhase.RUNNING.value and status.container_statuses:
                if all(cs.ready for cs in status.container_statuses):
                    self.logger.debug("Pod %s is running and ready", name)
                    return

            if status.phase in TERMINAL_POD_PHASES:
                raise PodNotRunningError(name, status.phase)

            for cs in status.container_statuses:
                if cs.waiting_reason in IMAGE_PULL_FAILURE_REASONS:
                    raise ImagePullBackoffError(
                        self.config.default_image,
                        cs.waiting_message or cs.waiting_reason,
                        pod_name=name,
                    )

            await asyncio.sleep(self.poll_interval)

    async def delete_pod(self, name: str) -> None:
        """Delete a pod; a pod that no longer exists counts as deleted.

        Args:
            name: Pod name

        """
        try:
            await self.client.delete_pod(self.namespace, name, self.config.delete_grace_period_seconds)
        except Exception as e:
            if is_not_found(e):
                self.logger.debug("Pod %s already deleted", name)
                return
            raise
        self.logger.debug("Deleted pod %s", name)
