"""
Main application entry point for the order execution engine.

Wires configuration, logging, storage, routing, notification, orchestration
and dispatch together in dependency order, exposes the order submission entry
point and a health snapshot, and runs the engine until a shutdown signal.
"""

import asyncio
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from order_engine import __version__
from order_engine.core.config_manager import (
    ConfigManager,
    ConfigurationError,
    create_config_manager,
)
from order_engine.core.logger import create_engine_logger
from order_engine.execution.dispatch_scheduler import (
    DispatchScheduler,
    create_dispatch_scheduler,
)
from order_engine.execution.order_orchestrator import (
    OrderOrchestrator,
    create_order_orchestrator,
    get_order_priority,
)
from order_engine.notification.order_channel import OrderNotificationChannel
from order_engine.notification.subscribers import ISubscriber
from order_engine.notification.websocket_server import OrderUpdateServer
from order_engine.orders.models import Order, OrderSubmission, OrderType, utc_now
from order_engine.routing.dex_router import DexRouter, create_simulated_router
from order_engine.storage.order_store import IOrderStore, create_order_store


class ComponentInitializationError(Exception):
    """Custom exception for component initialization failures."""


class OrderEngineApplication:
    """
    Main order engine application class.

    Manages the initialization and lifecycle of engine components in
    dependency order.
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        router: Optional[DexRouter] = None,
        enable_websocket_server: bool = True,
    ) -> None:
        """
        Initialize order engine application.

        Components are initialized in the correct dependency order:
        1. ConfigManager - provides configuration for all other components
        2. Logger - configured from the loaded settings
        3. Engine components - store, router, channel, orchestrator, scheduler

        Args:
            config_manager: Pre-built configuration manager, env-based otherwise
            router: Liquidity router, the simulated venues otherwise
            enable_websocket_server: Whether to serve the WebSocket endpoint
        """
        self._config_manager = config_manager
        self._router = router
        self._enable_websocket_server = enable_websocket_server
        self._logger: Optional[logging.Logger] = None
        self._is_initialized = False

        self._store: Optional[IOrderStore] = None
        self._channel: Optional[OrderNotificationChannel] = None
        self._orchestrator: Optional[OrderOrchestrator] = None
        self._scheduler: Optional[DispatchScheduler] = None
        self._websocket_server: Optional[OrderUpdateServer] = None
        self._engine_initialized = False

        self._running = False
        self._shutdown_complete = False
        self._shutdown_event = asyncio.Event()
        self._market_task: Optional[asyncio.Task] = None
        self._market_update_interval = 30.0

    def initialize_core_components(self) -> None:
        """
        Initialize configuration and logging.

        Raises:
            ComponentInitializationError: If any component fails to initialize
        """
        try:
            self._initialize_config_manager()
            self._initialize_logger()
            self._is_initialized = True
            self._logger.info("Core components initialized: ConfigManager, Logger")

        except Exception as e:
            error_msg = f"Failed to initialize core components: {e}"
            if self._logger:
                self._logger.error(error_msg)
            else:
                print(f"FATAL ERROR: {error_msg}", file=sys.stderr)
            raise ComponentInitializationError(error_msg) from e

    def _initialize_config_manager(self) -> None:
        try:
            if self._config_manager is None:
                self._config_manager = create_config_manager(config_source="env")
            self._config_manager.load_configuration()
        except ConfigurationError as e:
            raise ComponentInitializationError(
                f"ConfigManager initialization failed: {e}"
            ) from e

    def _initialize_logger(self) -> None:
        log_level = self._config_manager.get_config_value("log_level", "INFO")
        log_dir = self._config_manager.get_config_value("log_dir", "logs")
        self._logger = create_engine_logger(log_level=log_level, log_dir=log_dir or None)

    def initialize_engine_components(self) -> None:
        """
        Initialize store, router, channel, orchestrator and scheduler.

        Raises:
            RuntimeError: If core components are not initialized
            ComponentInitializationError: If any component fails to initialize
        """
        if not self._is_initialized:
            raise RuntimeError(
                "Core components must be initialized first. "
                "Call initialize_core_components() before this method."
            )

        try:
            storage_config = self._config_manager.get_storage_config()
            queue_config = self._config_manager.get_queue_config()
            execution_config = self._config_manager.get_execution_config()
            notification_config = self._config_manager.get_notification_config()

            self._store = create_order_store(
                storage_config["backend"], storage_config["database_path"]
            )
            if self._router is None:
                self._router = create_simulated_router(
                    failure_rate=execution_config["swap_failure_rate"]
                )
            self._channel = OrderNotificationChannel(
                send_timeout=notification_config["send_timeout"]
            )
            self._orchestrator = create_order_orchestrator(
                self._store,
                self._channel,
                self._router,
                default_slippage=execution_config["slippage_tolerance"],
            )
            self._scheduler = create_dispatch_scheduler(
                self._orchestrator,
                max_concurrent=queue_config["max_concurrent_orders"],
                orders_per_minute=queue_config["orders_per_minute"],
                max_attempts=queue_config["max_retry_attempts"],
                base_delay=queue_config["retry_base_delay"],
                strategy=queue_config["retry_strategy"],
            )
            self._market_update_interval = execution_config["market_update_interval"]

            if self._enable_websocket_server:
                server_config = self._config_manager.get_server_config()
                self._websocket_server = OrderUpdateServer(
                    self._channel, server_config["host"], server_config["port"]
                )

            self._engine_initialized = True
            self._logger.info(
                f"Engine components initialized: storage={storage_config['backend']}, "
                f"sources={', '.join(self._router.source_names)}, "
                f"concurrency={queue_config['max_concurrent_orders']}, "
                f"rate={queue_config['orders_per_minute']}/min, "
                f"attempts={queue_config['max_retry_attempts']}"
            )

        except (ConfigurationError, ValueError) as e:
            error_msg = f"Failed to initialize engine components: {e}"
            self._logger.error(error_msg)
            raise ComponentInitializationError(error_msg) from e

    def is_initialized(self) -> bool:
        return self._is_initialized and self._engine_initialized

    def get_orchestrator(self) -> OrderOrchestrator:
        if not self._orchestrator:
            raise RuntimeError("Engine components not initialized")
        return self._orchestrator

    def get_scheduler(self) -> DispatchScheduler:
        if not self._scheduler:
            raise RuntimeError("Engine components not initialized")
        return self._scheduler

    def get_channel(self) -> OrderNotificationChannel:
        if not self._channel:
            raise RuntimeError("Engine components not initialized")
        return self._channel

    async def start(self) -> None:
        """Start dispatching, the WebSocket endpoint and market simulation."""
        if not self.is_initialized():
            raise RuntimeError(
                "All components must be initialized before starting. "
                "Call initialize_core_components() and "
                "initialize_engine_components() first."
            )
        if self._running:
            return

        self._running = True
        self._scheduler.start()
        if self._websocket_server:
            await self._websocket_server.start()
        if self._market_update_interval > 0:
            self._market_task = asyncio.create_task(self._market_update_loop())

        self._logger.info(f"=== Order Engine {__version__} Started ===")

    async def submit_order(
        self, submission: Union[OrderSubmission, Dict[str, Any]]
    ) -> str:
        """
        Accept an order and schedule it for processing.

        Sniper orders whose launch time lies ahead are held by the scheduler
        until launch; every other order is eligible immediately.

        Returns:
            str: Identifier of the new order

        Raises:
            OrderValidationError: If the submission is malformed
        """
        order_id = await self._orchestrator.submit(submission)
        order = self._orchestrator.get_order(order_id)
        self._schedule(order)
        return order_id

    def _schedule(self, order: Order) -> None:
        priority = get_order_priority(order.type)

        if order.type == OrderType.SNIPER and order.launch_time is not None:
            delay_ms = (order.launch_time - utc_now()).total_seconds() * 1000
            if delay_ms > 0:
                self._scheduler.enqueue_delayed(order.id, delay_ms, priority)
                self._logger.info(
                    f"Order {order.id} scheduled for launch in {delay_ms / 1000:.1f}s"
                )
                return

        self._scheduler.enqueue(order.id, priority)

    def subscribe(self, order_id: str, subscriber: ISubscriber) -> None:
        """Register a subscriber for one order's updates."""
        self._channel.register(order_id, subscriber)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._orchestrator.get_order(order_id)

    def get_health(self) -> Dict[str, Any]:
        """Health snapshot combining queue and subscriber counts."""
        return {
            "status": "healthy" if self._running else "stopped",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "queue": self._scheduler.stats() if self._scheduler else {},
            "websocket_connections": (
                self._channel.get_subscriber_count() if self._channel else 0
            ),
            "orders": (
                self._orchestrator.get_execution_statistics()
                if self._orchestrator
                else {}
            ),
        }

    async def _market_update_loop(self) -> None:
        """Drift simulated market prices until shutdown."""
        while self._running and not self._shutdown_event.is_set():
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(), timeout=self._market_update_interval
                )
                break
            except asyncio.TimeoutError:
                self._router.update_market_conditions()
            except Exception as e:
                self._logger.error(f"Error in market update loop: {e}")
                await asyncio.sleep(self._market_update_interval)

    async def run_async(self) -> None:
        """
        Run the engine until SIGINT or SIGTERM.

        Raises:
            RuntimeError: If components not initialized
        """
        await self.start()
        self._setup_signal_handlers()

        try:
            self._logger.info("Order engine running... Press Ctrl+C to stop")
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            self._logger.info("Async operation cancelled - initiating shutdown")
        finally:
            await self.async_shutdown()

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        def signal_handler(signum: int) -> None:
            signal_name = signal.Signals(signum).name
            self._logger.info(
                f"Received {signal_name} signal - initiating graceful shutdown"
            )
            self._shutdown_event.set()

        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, signal_handler, signum)

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def async_shutdown(self) -> None:
        """
        Gracefully shut the engine down.

        Stops admitting orders, lets in-flight dispatches finish, then
        releases the endpoint, subscribers and storage. Safe to call twice.
        """
        if self._shutdown_complete:
            return
        self._shutdown_complete = True
        self._running = False
        self._shutdown_event.set()

        if self._logger:
            self._logger.info("=== Order Engine Shutdown Initiated ===")

        if self._market_task and not self._market_task.done():
            self._market_task.cancel()
            try:
                await self._market_task
            except asyncio.CancelledError:
                pass

        if self._scheduler:
            await self._scheduler.shutdown()
        if self._websocket_server:
            await self._websocket_server.stop()
        if self._channel:
            await self._channel.close_all()
        if self._store:
            self._store.close()

        if self._logger:
            self._logger.info("=== Order Engine Shutdown Complete ===")


def main() -> None:
    """Main entry point for the order engine."""
    app = OrderEngineApplication()
    try:
        app.initialize_core_components()
        app.initialize_engine_components()
        asyncio.run(app.run_async())
    except ComponentInitializationError as e:
        print(f"Failed to start order engine: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
