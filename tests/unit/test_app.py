"""Tests for the OperatorApp reconcile loop and shutdown."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

from meshop.app import OperatorApp
from meshop.errors import DescribedError
from meshop.models.config import MeshopConfig
from meshop.observability.logging import get_logger


def _make_app(cr: dict | None, error: DescribedError | None = None) -> OperatorApp:
    app = OperatorApp(MeshopConfig())
    app._log = get_logger("app")

    async def get_custom_resource() -> dict | None:
        app._ctx.cancel()
        return cr

    app._cluster = MagicMock()
    app._cluster.get_custom_resource = AsyncMock(side_effect=get_custom_resource)
    app._controller = MagicMock()
    app._controller.reconcile = AsyncMock(return_value=error)
    return app


class TestReconcileLoop:
    async def test_reconciles_existing_cr(self) -> None:
        cr = {"metadata": {"name": "default", "namespace": "kyma-system"}}
        app = _make_app(cr)

        await app._reconcile_loop()

        app._controller.reconcile.assert_awaited_once_with(app._ctx, cr)

    async def test_missing_cr_is_skipped(self) -> None:
        app = _make_app(None)

        await app._reconcile_loop()

        app._controller.reconcile.assert_not_awaited()

    async def test_iteration_failure_does_not_end_loop_early(self) -> None:
        app = _make_app({"metadata": {}})
        app._controller.reconcile = AsyncMock(side_effect=RuntimeError("boom"))

        await app._reconcile_loop()

        app._cluster.get_custom_resource.assert_awaited_once()


class TestShutdown:
    async def test_stop_without_start_is_noop(self) -> None:
        app = OperatorApp(MeshopConfig())
        await app.stop()
        assert app.running is False

    async def test_stop_closes_api_client_and_cancels(self) -> None:
        app = _make_app(None)
        app._running = True
        api_client = MagicMock()
        api_client.close = AsyncMock()
        app._api_client = api_client

        await app.stop()

        api_client.close.assert_awaited_once()
        assert app._ctx.is_cancelled
        assert app.running is False
