"""Shared test fixtures for the warm pool tests."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import pytest
from kubernetes.client.exceptions import ApiException

from k8s_warm_pool.audit import AuditEvent, AuditLogger
from k8s_warm_pool.client import ContainerStatusView, PodStatusView, PodSummary
from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import PodState, PoolLabel
from k8s_warm_pool.controller import WarmPoolController
from k8s_warm_pool.lifecycle import PodLifecycleManager
from k8s_warm_pool.records import utcnow


@dataclass
class FakePod:
    """A pod living in the fake cluster."""

    name: str
    uid: str
    labels: dict[str, str]
    image: str = "node:22-slim"
    phase: str = "Running"
    ready: bool = True
    waiting_reason: str | None = None
    waiting_message: str | None = None
    deletion_timestamp: datetime | None = None


@dataclass
class FakePodClient:
    """In-memory cluster implementing the PodClient protocol."""

    pods: dict[str, FakePod] = field(default_factory=dict)
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    patched: list[tuple[str, dict[str, str]]] = field(default_factory=list)
    selectors: list[str] = field(default_factory=list)

    startup_phase: str = "Running"
    create_failures: int = 0
    create_gate: asyncio.Event | None = None
    patch_error: Exception | None = None
    patch_delay: float = 0.0
    delete_errors: dict[str, Exception] = field(default_factory=dict)
    list_error: Exception | None = None
    keep_terminating_pods: bool = False

    patches_in_flight: int = 0
    max_patches_in_flight: int = 0

    def add_pod(
        self,
        name: str,
        state: str | None = PodState.WARM.value,
        owner_id: str | None = None,
        pool_id: str = "default",
    ) -> FakePod:
        """Seed the cluster with a pool pod, as a previous controller would have left it."""
        labels = {
            PoolLabel.SANDBOX.value: "true",
            PoolLabel.WARM_POOL.value: "true",
            PoolLabel.POOL_ID.value: pool_id,
        }
        if state is not None:
            labels[PoolLabel.STATE.value] = state
        if owner_id is not None:
            labels[PoolLabel.OWNER_ID.value] = owner_id
        pod = FakePod(name=name, uid=f"uid-{name}", labels=labels)
        self.pods[name] = pod
        return pod

    async def create_pod(self, namespace: str, body: dict[str, Any]) -> str:
        if self.create_gate is not None:
            await self.create_gate.wait()
        await asyncio.sleep(0)
        name = body["metadata"]["name"]
        if self.create_failures > 0:
            self.create_failures -= 1
            raise ApiException(status=500, reason="Internal Server Error")

        ready = self.startup_phase == "Running"
        pod = FakePod(
            name=name,
            uid=f"uid-{name}",
            labels=dict(body["metadata"]["labels"]),
            image=body["spec"]["containers"][0]["image"],
            phase=self.startup_phase,
            ready=ready,
        )
        self.pods[name] = pod
        self.created.append(name)
        return pod.uid

    async def read_pod(self, namespace: str, name: str) -> PodStatusView:
        await asyncio.sleep(0)
        pod = self.pods.get(name)
        if pod is None:
            raise ApiException(status=404, reason="Not Found")
        return PodStatusView(
            phase=pod.phase,
            container_statuses=[
                ContainerStatusView(
                    name="sandbox",
                    ready=pod.ready,
                    waiting_reason=pod.waiting_reason,
                    waiting_message=pod.waiting_message,
                )
            ],
        )

    async def patch_pod_labels(self, namespace: str, name: str, labels: dict[str, str]) -> None:
        self.patches_in_flight += 1
        self.max_patches_in_flight = max(self.max_patches_in_flight, self.patches_in_flight)
        try:
            await asyncio.sleep(self.patch_delay)
            if self.patch_error is not None:
                raise self.patch_error
            pod = self.pods.get(name)
            if pod is None:
                raise ApiException(status=404, reason="Not Found")
            pod.labels.update(labels)
            self.patched.append((name, dict(labels)))
        finally:
            self.patches_in_flight -= 1

    async def delete_pod(self, namespace: str, name: str, grace_period_seconds: int) -> None:
        await asyncio.sleep(0)
        if name in self.delete_errors:
            raise self.delete_errors[name]
        self.deleted.append(name)
        pod = self.pods.get(name)
        if pod is not None and self.keep_terminating_pods:
            # Real clusters keep listing a deleted pod during its grace period
            pod.deletion_timestamp = utcnow()
        else:
            self.pods.pop(name, None)

    async def list_pods(self, namespace: str, label_selector: str) -> list[PodSummary]:
        await asyncio.sleep(0)
        self.selectors.append(label_selector)
        if self.list_error is not None:
            raise self.list_error

        wanted = dict(part.split("=", 1) for part in label_selector.split(","))
        return [
            PodSummary(
                name=pod.name,
                uid=pod.uid,
                labels=dict(pod.labels),
                image=pod.image,
                deletion_timestamp=pod.deletion_timestamp,
            )
            for pod in self.pods.values()
            if all(pod.labels.get(key) == value for key, value in wanted.items())
        ]


@pytest.fixture
def fake_client() -> FakePodClient:
    """Empty fake cluster."""
    return FakePodClient()


@pytest.fixture
def audit_events() -> list[AuditEvent]:
    """Collects audit events emitted during a test."""
    return []


@pytest.fixture
def make_controller(fake_client: FakePodClient, audit_events: list[AuditEvent]):
    """Build controllers against the fake cluster with fast polling."""

    def _make(**overrides: Any) -> WarmPoolController:
        settings: dict[str, Any] = {
            "min_size": 2,
            "max_size": 10,
            "replenish_interval": 3600.0,
            "enable_auto_scaling": False,
        }
        settings.update(overrides)
        config = PoolConfig(**settings)
        lifecycle = PodLifecycleManager(fake_client, "test-ns", config, poll_interval=0.001)
        return WarmPoolController(
            client=fake_client,
            namespace="test-ns",
            config=config,
            audit_logger=AuditLogger(sink=audit_events.append),
            lifecycle=lifecycle,
        )

    return _make
