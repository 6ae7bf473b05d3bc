"""Tests for the exception hierarchy."""

from k8s_warm_pool.exceptions import (
    ImagePullBackoffError,
    InvalidConfigError,
    KubeconfigInvalidError,
    KubeconfigNotFoundError,
    PodCreationFailedError,
    PodLifecycleError,
    PodNotFoundError,
    PodNotRunningError,
    PodStartupTimeoutError,
    WarmPoolDiscoveryError,
    WarmPoolError,
)


class TestExceptions:
    """Test exception messages and attributes."""

    def test_lifecycle_errors_share_base(self) -> None:
        """Every startup failure is a PodLifecycleError carrying the pod name."""
        errors = [
            PodCreationFailedError("pod-a", "forbidden"),
            PodNotRunningError("pod-a", "Failed"),
            ImagePullBackoffError("node:22-slim", "ErrImagePull", pod_name="pod-a"),
            PodNotFoundError("pod-a", "ns"),
            PodStartupTimeoutError("pod-a", 120),
        ]

        for error in errors:
            assert isinstance(error, PodLifecycleError)
            assert isinstance(error, WarmPoolError)
            assert error.pod_name == "pod-a"

    def test_messages(self) -> None:
        """Messages identify the pod and the failure."""
        assert str(PodCreationFailedError("p", "quota")) == "Failed to create pod p: quota"
        assert str(PodNotRunningError("p", "Succeeded")) == "Pod p is not running (current phase: Succeeded)"
        assert str(ImagePullBackoffError("img", "not found")) == "Image pull backoff for img: not found"
        assert str(PodNotFoundError("p", "ns")) == "Pod not found: p in namespace ns"
        assert str(PodStartupTimeoutError("p", 5)) == "Pod p failed to start within 5s"

    def test_attributes(self) -> None:
        """Structured details are available on the exception."""
        assert PodCreationFailedError("p", "quota").cause == "quota"
        assert PodNotRunningError("p", "Failed").phase == "Failed"
        assert ImagePullBackoffError("img", "r").image == "img"
        assert PodNotFoundError("p", "ns").namespace == "ns"
        assert PodStartupTimeoutError("p", 5).timeout_seconds == 5
        assert InvalidConfigError("max_size", "bad").field == "max_size"

    def test_discovery_error(self) -> None:
        """Discovery failures wrap the underlying message."""
        error = WarmPoolDiscoveryError("connection refused")

        assert isinstance(error, WarmPoolError)
        assert "connection refused" in str(error)

    def test_kubeconfig_errors(self) -> None:
        """Kubeconfig errors report the path when known."""
        assert str(KubeconfigNotFoundError("/tmp/kube")) == "Kubeconfig not found at: /tmp/kube"
        assert str(KubeconfigNotFoundError()) == "Kubeconfig not found"
        assert str(KubeconfigInvalidError("bad yaml")) == "Invalid kubeconfig: bad yaml"
