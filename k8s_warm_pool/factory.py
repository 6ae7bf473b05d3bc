"""Factory for creating warm pool controllers."""

from typing import Any

from kubernetes.client import CoreV1Api

from k8s_warm_pool.audit import AuditLogger
from k8s_warm_pool.client import KubernetesPodClient, PodClient, load_core_v1_api
from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import DEFAULT_NAMESPACE
from k8s_warm_pool.controller import WarmPoolController


def create_warm_pool_controller(
    client: PodClient | CoreV1Api | None = None,
    namespace: str = DEFAULT_NAMESPACE,
    config: PoolConfig | None = None,
    audit_logger: AuditLogger | None = None,
    kubeconfig_path: str | None = None,
    context: str | None = None,
    **config_overrides: Any,
) -> WarmPoolController:
    """Create a warm pool controller.

    Args:
        client: A PodClient, a raw CoreV1Api, or None to load one from kubeconfig
        namespace: Namespace holding the pool's pods
        config: Pool configuration (uses defaults if None)
        audit_logger: Audit sink for lifecycle events
        kubeconfig_path: Kubeconfig file used when no client is given
        context: Kubeconfig context used when no client is given
        **config_overrides: PoolConfig fields overriding ``config``

    Returns:
        A controller that has not been started yet

    Raises:
        InvalidConfigError: If the resulting configuration is invalid
        KubeconfigNotFoundError: If no client is given and no config is found

    Examples:
        Create a controller from the local kubeconfig:
        ```python
        from k8s_warm_pool import create_warm_pool_controller

        controller = create_warm_pool_controller(namespace="sandboxes", min_size=3, max_size=20)
        await controller.start()
        ```

        Reuse an existing Kubernetes client:
        ```python
        from kubernetes import client, config as k8s_config

        k8s_config.load_kube_config()
        controller = create_warm_pool_controller(client=client.CoreV1Api())
        ```

    """
    if config is None:
        config = PoolConfig(**config_overrides)
    elif config_overrides:
        config = PoolConfig(**{**config.model_dump(), **config_overrides})

    pod_client: PodClient
    if client is None:
        pod_client = KubernetesPodClient(load_core_v1_api(kubeconfig_path, context))
    elif isinstance(client, CoreV1Api):
        pod_client = KubernetesPodClient(client)
    else:
        pod_client = client

    return WarmPoolController(
        client=pod_client,
        namespace=namespace,
        config=config,
        audit_logger=audit_logger,
    )
