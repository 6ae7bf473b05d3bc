"""Warm pool controller for pre-created Kubernetes sandbox pods."""

import asyncio
import logging
import time
import uuid
from collections.abc import Coroutine
from contextlib import suppress
from types import TracebackType
from typing import Any

from k8s_warm_pool.audit import AuditLogger
from k8s_warm_pool.autoscaler import calculate_target_size
from k8s_warm_pool.client import PodClient, PodSummary
from k8s_warm_pool.config import PoolConfig
from k8s_warm_pool.const import DEFAULT_NAMESPACE, PodState, PoolLabel, PoolState
from k8s_warm_pool.exceptions import WarmPoolDiscoveryError
from k8s_warm_pool.k8s_utils import is_not_found
from k8s_warm_pool.lifecycle import PodLifecycleManager
from k8s_warm_pool.locks import AllocationLock
from k8s_warm_pool.metrics import AllocationLatencyTracker, PoolMetrics
from k8s_warm_pool.records import AllocatedPod, PodRecord, WarmPod, utcnow
from k8s_warm_pool.sampler import UsageSampler


class WarmPoolController:
    """Maintains a pool of pre-created sandbox pods for near-instant allocation.

    Lifecycle of a pool pod:
    1. Prewarm: the pod is created with the generic sandbox image and waits
       in the warm state.
    2. Allocation: a warm pod is assigned to an owner and relabelled as
       allocated.
    3. Release: the pod is deleted. Pods are never handed to a second owner.

    The cluster is the source of truth for which pods exist. In-memory state
    is rebuilt from pod labels on :meth:`start` and :meth:`resync`.

    Concurrency:
        Everything runs on one event loop. :meth:`get_warm` calls are
        serialized end-to-end by an :class:`AllocationLock` because the
        remove-then-patch sequence spans an API round trip. While the patch
        is in flight the pod sits in a reserving map, so it is tracked in
        exactly one of warm, reserving or allocated at all times. Replenish
        passes are guarded by a re-entrancy flag; overlapping triggers
        collapse into a single pass.

    Example:
        ```python
        from k8s_warm_pool import PoolConfig, create_warm_pool_controller

        controller = create_warm_pool_controller(
            namespace="sandboxes",
            config=PoolConfig(min_size=2, max_size=10),
        )

        async with controller:
            pod = await controller.get_warm("project-1")
            if pod is None:
                ...  # cold start
            else:
                try:
                    ...  # use pod.pod_name
                finally:
                    await controller.release(pod.pod_name)
        ```
    """

    def __init__(
        self,
        client: PodClient,
        namespace: str = DEFAULT_NAMESPACE,
        config: PoolConfig | None = None,
        audit_logger: AuditLogger | None = None,
        lifecycle: PodLifecycleManager | None = None,
    ) -> None:
        """Initialize the warm pool controller.

        Args:
            client: Cluster pod client
            namespace: Namespace holding the pool's pods
            config: Pool configuration (uses defaults if None)
            audit_logger: Audit sink for lifecycle events
            lifecycle: Pod lifecycle manager (built from client and config if None)

        """
        self.client = client
        self.namespace = namespace
        self.config = config or PoolConfig()
        self.pool_id = self.config.pool_id
        self.audit = audit_logger or AuditLogger()
        self.lifecycle = lifecycle or PodLifecycleManager(client, namespace, self.config)

        # Pool state
        self._warm: dict[str, WarmPod] = {}
        self._reserving: dict[str, WarmPod] = {}
        self._allocated: dict[str, AllocatedPod] = {}
        self._pending_creations = 0

        # Metrics
        self._total_allocations = 0
        self._warm_pool_hits = 0
        self._warm_pool_misses = 0
        self._latency = AllocationLatencyTracker()
        self._sampler = UsageSampler(self.config.usage_window)

        # Coordination
        self._state = PoolState.STOPPED
        self._generation = 0
        self._allocation_lock = AllocationLock()
        self._is_replenishing = False
        self._replenish_task: asyncio.Task[None] | None = None
        self._background_tasks: set[asyncio.Task[None]] = set()

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def state(self) -> PoolState:
        """Current lifecycle state of the controller."""
        return self._state

    async def start(self) -> None:
        """Start the controller.

        Discovers pods left by a previous run, replenishes to the target
        size, then arms the periodic replenish task. Call once.

        Raises:
            WarmPoolDiscoveryError: If existing pods cannot be listed. The
                controller stays stopped rather than run with a partial view
                that would orphan live pods.

        """
        if self._state is not PoolState.STOPPED:
            self.logger.warning("Warm pool %s is %s, ignoring start()", self.pool_id, self._state)
            return

        self.logger.info(
            "Starting warm pool %s in namespace %s (min_size=%d, max_size=%d)",
            self.pool_id,
            self.namespace,
            self.config.min_size,
            self.config.max_size,
        )
        self._state = PoolState.STARTING

        try:
            self._warm, self._allocated = await self._discover()
            await self._replenish()
        except BaseException:
            self._state = PoolState.STOPPED
            raise

        if self._state is not PoolState.STARTING:
            self.logger.info("Warm pool %s was stopped during startup", self.pool_id)
            return

        self._replenish_task = asyncio.create_task(
            self._replenish_loop(),
            name=f"warm-pool-{self.pool_id}-replenish",
        )
        self._state = PoolState.RUNNING
        self.logger.info("Warm pool %s started with %d warm pods", self.pool_id, len(self._warm))

    async def stop(self) -> None:
        """Stop the controller and delete every warm pod.

        Allocated pods are left untouched; they belong to their owners and
        outlive the controller. Only the wait between replenish passes is
        cancelled. In-flight pod creations are neither cancelled nor awaited;
        any that complete afterwards delete their pod.
        """
        if self._state in (PoolState.STOPPED, PoolState.STOPPING):
            return

        self.logger.info("Stopping warm pool %s", self.pool_id)
        self._state = PoolState.STOPPING
        self._generation += 1

        if self._replenish_task is not None:
            self._replenish_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._replenish_task
            self._replenish_task = None

        warm_names = list(self._warm)
        self._warm.clear()

        results = await asyncio.gather(
            *(self._delete_pod(name) for name in warm_names),
            return_exceptions=True,
        )
        for name, result in zip(warm_names, results):
            if isinstance(result, Exception):
                self.logger.error("Failed to delete warm pod %s: %s", name, result)

        self._state = PoolState.STOPPED
        self.logger.info(
            "Warm pool %s stopped (%d allocated pods left running)",
            self.pool_id,
            len(self._allocated),
        )

    async def prewarm(self, count: int) -> int:
        """Create up to ``count`` new warm pods concurrently.

        Creation is capped so warm, allocated and in-flight pods never exceed
        ``max_size``. A failed creation does not cancel its siblings.

        Args:
            count: Number of pods requested

        Returns:
            Number of pods actually added to the warm pool

        """
        to_create = min(count, self.config.max_size - self._tracked_total())
        created = 0

        if to_create > 0:
            generation = self._generation
            self._pending_creations += to_create
            try:
                results = await asyncio.gather(
                    *(self._create_warm_pod(generation) for _ in range(to_create)),
                    return_exceptions=True,
                )
            finally:
                self._pending_creations -= to_create

            created = sum(1 for result in results if isinstance(result, WarmPod))
            failed = sum(1 for result in results if isinstance(result, BaseException))
            if failed:
                self.logger.warning("Prewarm created %d of %d pods (%d failed)", created, to_create, failed)

        self.audit.log_prewarm(
            pool_id=self.pool_id,
            namespace=self.namespace,
            requested=count,
            created=created,
            pool_size=len(self._warm) + len(self._allocated),
        )
        return created

    async def get_warm(self, owner_id: str) -> AllocatedPod | None:
        """Allocate a warm pod to ``owner_id``.

        Concurrent calls are strictly serialized, so two callers never
        receive the same pod.

        Args:
            owner_id: Project or task taking the pod

        Returns:
            The allocated pod record, or None when no warm pod is available
            and the caller must cold-start

        """
        if not owner_id:
            msg = "owner_id must not be empty"
            raise ValueError(msg)

        if self._allocation_lock.locked:
            self.logger.debug(
                "Allocation for %s queued behind %d other callers",
                owner_id,
                self._allocation_lock.waiting,
            )

        async with self._allocation_lock.hold():
            return await self._allocate(owner_id)

    async def release(self, pod_name: str) -> None:
        """Release an allocated pod by deleting it.

        Releasing a pod that is not currently allocated is a no-op. Deletion
        failures are logged and do not propagate.

        Args:
            pod_name: Name of the allocated pod

        """
        pod = self._allocated.pop(pod_name, None)
        if pod is None:
            self.logger.debug("Ignoring release of untracked pod %s", pod_name)
            return

        try:
            await self._delete_pod(pod_name)
        except Exception:
            self.logger.exception("Failed to delete released pod %s", pod_name)

        self._record_sample()
        self.audit.log_release(pod_name=pod_name, namespace=self.namespace, owner_id=pod.owner_id)
        self.logger.info("Released pod %s from owner %s", pod_name, pod.owner_id)

    async def resync(self) -> None:
        """Rebuild in-memory pod state from the cluster.

        Runs under the allocation lock. On failure the previous state is
        kept and the error is raised.

        Raises:
            WarmPoolDiscoveryError: If the pods cannot be listed

        """
        async with self._allocation_lock.hold():
            warm, allocated = await self._discover()
            drift = (set(warm) ^ set(self._warm)) | (set(allocated) ^ set(self._allocated))
            if drift:
                self.logger.warning("Resync corrected drift for pods: %s", ", ".join(sorted(drift)))
            self._warm, self._allocated = warm, allocated

    def get_metrics(self) -> PoolMetrics:
        """Get a snapshot of pool occupancy and allocation statistics."""
        warm_pods = len(self._warm) + len(self._reserving)
        allocated_pods = len(self._allocated)
        total_pods = warm_pods + allocated_pods

        utilization = (allocated_pods / total_pods) * 100 if total_pods > 0 else 0.0
        hit_rate = (
            (self._warm_pool_hits / self._total_allocations) * 100 if self._total_allocations > 0 else 0.0
        )

        return PoolMetrics(
            total_pods=total_pods,
            warm_pods=warm_pods,
            allocated_pods=allocated_pods,
            utilization_percent=utilization,
            total_allocations=self._total_allocations,
            warm_pool_hits=self._warm_pool_hits,
            warm_pool_misses=self._warm_pool_misses,
            hit_rate_percent=hit_rate,
            avg_warm_allocation_ms=self._latency.average_ms,
            target_size=self._target_size(),
            config=self.config,
        )

    def is_pool_member(self, pod_name: str) -> bool:
        """Check whether a pod is tracked by this pool."""
        return pod_name in self._warm or pod_name in self._reserving or pod_name in self._allocated

    def get_pod_info(self, pod_name: str) -> PodRecord | None:
        """Get the record for a tracked pod, or None."""
        return self._warm.get(pod_name) or self._reserving.get(pod_name) or self._allocated.get(pod_name)

    def list_pods(self) -> list[PodRecord]:
        """List records for every tracked pod, warm first."""
        return [*self._warm.values(), *self._reserving.values(), *self._allocated.values()]

    async def _allocate(self, owner_id: str) -> AllocatedPod | None:
        """Allocate a warm pod (internal, must hold the allocation lock)."""
        started = time.perf_counter()
        self._total_allocations += 1

        if not self._warm:
            self._warm_pool_misses += 1
            self._record_sample()
            self.logger.debug("No warm pod available for %s", owner_id)
            return None

        # Take the pod out of the warm map before the API call so no other
        # path can observe it as available
        pod_name = next(iter(self._warm))
        warm_pod = self._warm.pop(pod_name)
        self._reserving[pod_name] = warm_pod

        try:
            await self.client.patch_pod_labels(
                self.namespace,
                pod_name,
                {PoolLabel.STATE.value: PodState.ALLOCATED.value, PoolLabel.OWNER_ID.value: owner_id},
            )
            allocated = warm_pod.allocate(owner_id)
            self._allocated[pod_name] = allocated
        except asyncio.CancelledError:
            # The patch may still land after cancellation, so the pod cannot
            # safely go back to warm; it was never handed out, so delete it
            self.logger.warning("Allocation of pod %s was cancelled, deleting it", pod_name)
            self._spawn(self._discard_pod(pod_name), f"discard-{pod_name}")
            raise
        except Exception as e:
            if is_not_found(e):
                self.logger.warning("Warm pod %s no longer exists in the cluster, dropping it", pod_name)
            else:
                self.logger.warning("Failed to allocate pod %s, returning it to the pool: %s", pod_name, e)
                self._warm[pod_name] = warm_pod
            self._warm_pool_misses += 1
            return None
        finally:
            self._reserving.pop(pod_name, None)

        allocation_ms = (time.perf_counter() - started) * 1000
        self._warm_pool_hits += 1
        self._latency.record(allocation_ms)
        self._record_sample()

        self.audit.log_allocation(
            pod_name=pod_name,
            namespace=self.namespace,
            owner_id=owner_id,
            allocation_ms=allocation_ms,
            remaining_warm=len(self._warm),
        )
        self.logger.info("Allocated warm pod %s to %s in %.1fms", pod_name, owner_id, allocation_ms)

        if self.config.enable_auto_scaling:
            self._spawn(self._replenish(), f"warm-pool-{self.pool_id}-replenish-after-allocation")

        return allocated

    async def _replenish(self) -> None:
        """Move the warm pod count toward the target size.

        Overlapping calls collapse: if a pass is already running, this
        returns immediately.
        """
        if self._is_replenishing or self._state not in (PoolState.STARTING, PoolState.RUNNING):
            return

        self._is_replenishing = True
        try:
            target = self._target_size()
            current_warm = len(self._warm)

            if current_warm < target:
                if await self.prewarm(target - current_warm):
                    self._record_sample()
            elif current_warm > target and self.config.enable_auto_scaling:
                await self._scale_down(current_warm - target, target)
        finally:
            self._is_replenishing = False

    async def _scale_down(self, count: int, target: int) -> None:
        """Delete up to ``count`` excess warm pods one at a time."""
        deleted = 0
        for pod_name in list(self._warm):
            if deleted >= count:
                break

            pod = self._warm.pop(pod_name, None)
            if pod is None:
                continue

            try:
                await self._delete_pod(pod_name)
            except Exception:
                self.logger.exception("Failed to scale down pod %s", pod_name)
                self._warm[pod_name] = pod
                continue
            deleted += 1

        if deleted:
            self._record_sample()
        self.audit.log_scale_down(
            pool_id=self.pool_id,
            namespace=self.namespace,
            requested=count,
            deleted=deleted,
            target=target,
        )
        self.logger.info("Scaled down warm pool %s by %d pods (target=%d)", self.pool_id, deleted, target)

    async def _replenish_loop(self) -> None:
        """Background task that periodically replenishes the pool.

        Each pass runs as its own tracked task. Cancelling the loop on stop
        only interrupts the wait, so pod creations inside a pass are never
        cancelled midway.
        """
        self.logger.info("Starting replenish loop (interval=%.1fs)", self.config.replenish_interval)
        try:
            while True:
                await asyncio.sleep(self.config.replenish_interval)
                replenish = self._spawn(self._replenish(), f"warm-pool-{self.pool_id}-replenish-pass")
                await asyncio.wait({replenish})
        finally:
            self.logger.info("Replenish loop stopped")

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> "asyncio.Task[None]":
        """Start a tracked fire-and-forget task whose failure is logged."""
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: "asyncio.Task[None]") -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error("Background task %s failed", task.get_name(), exc_info=error)

    async def _discover(self) -> tuple[dict[str, WarmPod], dict[str, AllocatedPod]]:
        """Rebuild warm and allocated maps from cluster-side labels.

        Raises:
            WarmPoolDiscoveryError: If the pods cannot be listed

        """
        selector = f"{PoolLabel.WARM_POOL.value}=true,{PoolLabel.POOL_ID.value}={self.pool_id}"
        try:
            pods = await self.client.list_pods(self.namespace, selector)
        except Exception as e:
            self.logger.exception("Failed to discover existing warm pool pods")
            raise WarmPoolDiscoveryError(str(e)) from e

        warm: dict[str, WarmPod] = {}
        allocated: dict[str, AllocatedPod] = {}
        unusable: list[str] = []
        for summary in pods:
            # Deleted pods stay listed until their grace period ends
            if summary.deletion_timestamp is not None:
                self.logger.debug("Skipping terminating pod %s", summary.name)
                continue

            record = self._record_from_summary(summary)
            if isinstance(record, AllocatedPod):
                allocated[record.pod_name] = record
            elif isinstance(record, WarmPod):
                warm[record.pod_name] = record
            elif summary.uid:
                unusable.append(summary.name)

        if unusable:
            await self._delete_unusable(unusable)

        self.audit.log_discovery(
            pool_id=self.pool_id,
            namespace=self.namespace,
            warm=len(warm),
            allocated=len(allocated),
        )
        self.logger.info("Discovered %d warm and %d allocated pods", len(warm), len(allocated))
        return warm, allocated

    def _record_from_summary(self, summary: PodSummary) -> PodRecord | None:
        if not summary.uid:
            self.logger.debug("Skipping pod %s without a UID", summary.name)
            return None

        created_at = summary.creation_timestamp or utcnow()
        image = summary.image or self.config.default_image
        state = summary.labels.get(PoolLabel.STATE.value)
        owner_id = summary.labels.get(PoolLabel.OWNER_ID.value)

        if state == PodState.WARM.value:
            return WarmPod(
                pod_name=summary.name,
                pod_uid=summary.uid,
                image=image,
                created_at=created_at,
                warm_at=created_at,
            )
        if state == PodState.ALLOCATED.value and owner_id:
            return AllocatedPod(
                pod_name=summary.name,
                pod_uid=summary.uid,
                image=image,
                created_at=created_at,
                warm_at=created_at,
                owner_id=owner_id,
                # Allocation time is not recorded on the pod
                allocated_at=utcnow(),
            )

        # A pod marked allocated without an owner may have been used, so it
        # must never be handed out as warm
        self.logger.warning("Pod %s has state=%r owner=%r and cannot be pooled", summary.name, state, owner_id)
        return None

    async def _delete_unusable(self, pod_names: list[str]) -> None:
        """Best-effort deletion of pool-labelled pods that can never be handed out."""
        results = await asyncio.gather(
            *(self._delete_pod(name) for name in pod_names),
            return_exceptions=True,
        )
        for name, result in zip(pod_names, results):
            if isinstance(result, Exception):
                self.logger.error("Failed to delete unusable pod %s: %s", name, result)
            else:
                self.logger.info("Deleted unusable pod %s", name)

    async def _create_warm_pod(self, generation: int) -> WarmPod | None:
        """Create one warm pod and add it to the pool.

        Args:
            generation: Stop counter at the time the creation was requested

        Returns:
            The new warm pod, or None if the pool stopped meanwhile

        """
        pod_name = f"{self.config.name_prefix}-warm-{self.pool_id}-{uuid.uuid4().hex[:8]}".lower()
        created_at = utcnow()
        started = time.perf_counter()
        submitted = False

        try:
            pod_uid = await self.lifecycle.create_pod(pod_name)
            submitted = True
            await self.lifecycle.wait_for_running(pod_name)
        except asyncio.CancelledError:
            self.logger.warning("Creation of warm pod %s was cancelled", pod_name)
            if submitted:
                await self._discard_pod(pod_name)
            raise
        except Exception as e:
            self.logger.warning("Warm pod %s failed to start: %s", pod_name, e)
            self.audit.log_pod_failed(pod_name=pod_name, namespace=self.namespace, error=e)
            if submitted:
                await self._discard_pod(pod_name)
            raise

        if generation != self._generation:
            self.logger.info("Pool stopped while %s was starting, deleting it", pod_name)
            await self._discard_pod(pod_name)
            return None

        pod = WarmPod(
            pod_name=pod_name,
            pod_uid=pod_uid,
            image=self.config.default_image,
            created_at=created_at,
            warm_at=utcnow(),
        )
        self._warm[pod_name] = pod

        duration_ms = (time.perf_counter() - started) * 1000
        self.audit.log_pod_created(
            pod_name=pod_name,
            namespace=self.namespace,
            image=pod.image,
            duration_ms=duration_ms,
        )
        self.logger.info("Created warm pod %s in %.0fms", pod_name, duration_ms)
        return pod

    async def _discard_pod(self, pod_name: str) -> None:
        """Delete a pod that never joined the pool, logging failures."""
        try:
            await self._delete_pod(pod_name)
        except Exception:
            self.logger.exception("Failed to delete pod %s", pod_name)

    async def _delete_pod(self, pod_name: str) -> None:
        await self.lifecycle.delete_pod(pod_name)
        self.audit.log_pod_deleted(pod_name=pod_name, namespace=self.namespace)

    def _tracked_total(self) -> int:
        return len(self._warm) + len(self._reserving) + len(self._allocated) + self._pending_creations

    def _target_size(self) -> int:
        return calculate_target_size(self._sampler.samples(), self.config)

    def _record_sample(self) -> None:
        self._sampler.record(
            warm_count=len(self._warm) + len(self._reserving),
            allocated_count=len(self._allocated),
        )

    async def __aenter__(self) -> "WarmPoolController":
        """Start the controller on entering the context."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Stop the controller on exit."""
        await self.stop()
