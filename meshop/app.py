"""Application bootstrap for meshop.

Wires the components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → K8s client → metrics endpoint → reconcile loop

The reconcile loop polls the configured Istio CR every interval and runs one
reconcile cycle for it; only one cycle is ever in flight. On shutdown the
cancellation signal is set first, so a running cycle stops at its next
cluster-API boundary, then components are stopped in reverse order.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from meshop.config import load_config
from meshop.context import ReconcileContext
from meshop.models.config import MeshopConfig
from meshop.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from meshop.cluster.client import KubernetesClusterClient
    from meshop.controller import IstioController

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


async def create_api_client() -> Any:
    """Load in-cluster config, falling back to kubeconfig, and return an ApiClient."""
    import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
    from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config()
    return k8s_client.ApiClient()


class OperatorApp:
    """Application root. Owns the API client, the controller and the loop task.

    ``stop()`` is safe to call on an app that was never started or has
    already stopped.
    """

    def __init__(self, config: MeshopConfig | None = None) -> None:
        self.config = config
        self._api_client: Any | None = None
        self._cluster: KubernetesClusterClient | None = None
        self._controller: IstioController | None = None
        self._ctx = ReconcileContext()
        self._loop_task: asyncio.Task[None] | None = None
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        if self.config is None:
            self.config = load_config()

        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("meshop starting", version=_meshop_version())

        await self._start_k8s_client()
        self._start_metrics()
        self._start_reconcile_loop()

        self._running = True
        self._log.info(
            "meshop started",
            cr=f"{self.config.custom_resource.namespace}/{self.config.custom_resource.name}",
            interval=self.config.reconcile.interval_seconds,
        )

    async def _start_k8s_client(self) -> None:
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting k8s client")
        try:
            from meshop.cluster.client import KubernetesClusterClient
            from meshop.controller import IstioController

            self._api_client = await create_api_client()
            self._cluster = KubernetesClusterClient(self._api_client, self.config.custom_resource)
            self._controller = IstioController(self._cluster, self.config)
            self._log.info("k8s client configured")
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        if not self.config.metrics.enabled:
            self._log.info("metrics endpoint disabled")
            return
        try:
            from prometheus_client import start_http_server

            start_http_server(self.config.metrics.port)
            self._log.info("metrics endpoint started", port=self.config.metrics.port)
        except OSError as exc:
            # Metrics are optional; reconciliation keeps running without them
            self._log.warning("metrics endpoint failed to start", error=str(exc))

    def _start_reconcile_loop(self) -> None:
        self._loop_task = asyncio.create_task(self._reconcile_loop(), name="reconcile-loop")

    async def _reconcile_loop(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._cluster is not None
        assert self._controller is not None
        interval = self.config.reconcile.interval_seconds

        while not self._ctx.is_cancelled:
            try:
                cr = await self._cluster.get_custom_resource()
                if cr is None:
                    self._log.info("istio cr not found, nothing to reconcile")
                else:
                    error = await self._controller.reconcile(self._ctx, cr)
                    if error is not None:
                        self._log.warning("reconcile finished with error", error=error.message)
            except Exception as exc:
                self._log.error("reconcile loop iteration failed", error=str(exc))

            try:
                await asyncio.wait_for(self._ctx.cancelled.wait(), timeout=interval)
            except TimeoutError:
                continue

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Cancel the running cycle, wait for the loop, close the API client."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("meshop shutting down")
        self._running = False
        self._ctx.cancel()

        if self._loop_task is not None and not self._loop_task.done():
            try:
                await asyncio.wait_for(self._loop_task, timeout=_SHUTDOWN_GRACE_SECONDS)
            except TimeoutError:
                log.warning("reconcile loop did not stop in time", timeout=_SHUTDOWN_GRACE_SECONDS)
        self._loop_task = None

        if self._api_client is not None:
            try:
                await self._api_client.close()
            except Exception as exc:
                log.debug("k8s client close raised (non-fatal)", error=str(exc))
            self._api_client = None

        log.info("meshop stopped")


def _meshop_version() -> str:
    from meshop import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(config: MeshopConfig | None = None) -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = OperatorApp(config)
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical("fatal startup error", component=exc.component, error=str(exc.cause))
        raise SystemExit(1) from exc
    finally:
        await app.stop()
