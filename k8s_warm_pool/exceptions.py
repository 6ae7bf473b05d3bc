"""Custom exceptions for the warm pool controller."""


class WarmPoolError(Exception):
    """Base exception for all warm pool related errors."""

    def __init__(self, message: str) -> None:
        """Initialize the WarmPoolError."""
        super().__init__(message)


class InvalidConfigError(WarmPoolError):
    """Raised when a pool configuration violates one of its invariants."""

    def __init__(self, field: str, message: str) -> None:
        """Initialize the InvalidConfigError.

        Args:
            field: Name of the first configuration field found invalid
            message: Description of the violated constraint

        """
        super().__init__(f"Invalid warm pool config: {message}")
        self.field = field


class PodLifecycleError(WarmPoolError):
    """Base exception for failures while creating or starting a pool pod."""

    def __init__(self, message: str, pod_name: str | None = None) -> None:
        """Initialize the PodLifecycleError."""
        super().__init__(message)
        self.pod_name = pod_name


class PodCreationFailedError(PodLifecycleError):
    """Raised when the cluster rejects a pod submission."""

    def __init__(self, pod_name: str, cause: str) -> None:
        """Initialize the PodCreationFailedError."""
        super().__init__(f"Failed to create pod {pod_name}: {cause}", pod_name)
        self.cause = cause


class PodNotRunningError(PodLifecycleError):
    """Raised when a pod reaches a terminal phase before becoming ready."""

    def __init__(self, pod_name: str, phase: str) -> None:
        """Initialize the PodNotRunningError."""
        super().__init__(f"Pod {pod_name} is not running (current phase: {phase})", pod_name)
        self.phase = phase


class ImagePullBackoffError(PodLifecycleError):
    """Raised when the sandbox image cannot be pulled."""

    def __init__(self, image: str, reason: str, pod_name: str | None = None) -> None:
        """Initialize the ImagePullBackoffError."""
        super().__init__(f"Image pull backoff for {image}: {reason}", pod_name)
        self.image = image
        self.reason = reason


class PodNotFoundError(PodLifecycleError):
    """Raised when a pod disappears while it is being waited on."""

    def __init__(self, pod_name: str, namespace: str) -> None:
        """Initialize the PodNotFoundError."""
        super().__init__(f"Pod not found: {pod_name} in namespace {namespace}", pod_name)
        self.namespace = namespace


class PodStartupTimeoutError(PodLifecycleError):
    """Raised when a pod does not become ready before its deadline."""

    def __init__(self, pod_name: str, timeout_seconds: float) -> None:
        """Initialize the PodStartupTimeoutError."""
        super().__init__(f"Pod {pod_name} failed to start within {timeout_seconds}s", pod_name)
        self.timeout_seconds = timeout_seconds


class WarmPoolDiscoveryError(WarmPoolError):
    """Raised when existing pool pods cannot be listed from the cluster."""

    def __init__(self, message: str) -> None:
        """Initialize the WarmPoolDiscoveryError."""
        super().__init__(f"Failed to discover existing warm pool pods: {message}")


class KubeconfigNotFoundError(WarmPoolError):
    """Raised when no usable kubeconfig or in-cluster config can be found."""

    def __init__(self, path: str | None = None) -> None:
        """Initialize the KubeconfigNotFoundError."""
        super().__init__(f"Kubeconfig not found at: {path}" if path else "Kubeconfig not found")
        self.path = path


class KubeconfigInvalidError(WarmPoolError):
    """Raised when a kubeconfig file exists but cannot be loaded."""

    def __init__(self, message: str) -> None:
        """Initialize the KubeconfigInvalidError."""
        super().__init__(f"Invalid kubeconfig: {message}")
