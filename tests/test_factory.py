"""Tests for the controller factory."""

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import CoreV1Api

from k8s_warm_pool.client import KubernetesPodClient
from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.exceptions import InvalidConfigError
from k8s_warm_pool.factory import create_warm_pool_controller


class TestCreateWarmPoolController:
    """Test controller construction."""

    def test_uses_given_pod_client(self, fake_client) -> None:
        """A PodClient is used as-is."""
        controller = create_warm_pool_controller(client=fake_client, namespace="ns")

        assert controller.client is fake_client
        assert controller.namespace == "ns"
        assert controller.config == PoolConfig()

    def test_wraps_core_v1_api(self) -> None:
        """A raw CoreV1Api is wrapped in a KubernetesPodClient."""
        core_v1 = MagicMock(spec=CoreV1Api)

        controller = create_warm_pool_controller(client=core_v1)

        assert isinstance(controller.client, KubernetesPodClient)
        assert controller.client.core_v1 is core_v1

    @patch("k8s_warm_pool.factory.load_core_v1_api")
    def test_loads_client_from_kubeconfig(self, mock_load) -> None:
        """Without a client the kubeconfig is loaded."""
        controller = create_warm_pool_controller(kubeconfig_path="/tmp/kube", context="dev")

        mock_load.assert_called_once_with("/tmp/kube", "dev")
        assert isinstance(controller.client, KubernetesPodClient)
        assert controller.client.core_v1 is mock_load.return_value

    def test_config_overrides(self, fake_client) -> None:
        """Keyword overrides are applied on top of the given config."""
        base = PoolConfig(min_size=1, max_size=5, pool_id="blue")

        controller = create_warm_pool_controller(client=fake_client, config=base, max_size=8)

        assert controller.config.max_size == 8
        assert controller.config.min_size == 1
        assert controller.config.pool_id == "blue"
        assert controller.pool_id == "blue"

    def test_overrides_without_config(self, fake_client) -> None:
        """Overrides alone build a fresh config."""
        controller = create_warm_pool_controller(client=fake_client, min_size=0)

        assert controller.config.min_size == 0

    def test_invalid_overrides_rejected(self, fake_client) -> None:
        """Overrides go through the same validation."""
        with pytest.raises(InvalidConfigError):
            create_warm_pool_controller(client=fake_client, min_size=20, max_size=10)
