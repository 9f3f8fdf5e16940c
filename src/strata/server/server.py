import asyncio
import signal
import logging
from typing import Optional
from hypercorn.asyncio import serve
from hypercorn.config import Config as HyperConfig

from strata.config import LoggingConfig, ServerConfig


class Server:
    """Runs an application under hypercorn"""

    def __init__(self, app, config: Optional[ServerConfig] = None,
                 logging_config: Optional[LoggingConfig] = None):
        self.app = app
        self.config = config or ServerConfig()
        self.logging_config = logging_config or LoggingConfig()
        self._shutdown_event: Optional[asyncio.Event] = None
        self.logger = logging.getLogger("strata.server")

    def _create_hyper_config(self) -> HyperConfig:
        """Create Hypercorn configuration"""
        config = HyperConfig()
        config.bind = [self.config.bind]
        config.backlog = self.config.backlog
        config.keep_alive_timeout = self.config.keep_alive_timeout
        if self.config.access_log:
            config.accesslog = "-"
        config.errorlog = "-"

        if self.config.ssl_certfile and self.config.ssl_keyfile:
            config.certfile = self.config.ssl_certfile
            config.keyfile = self.config.ssl_keyfile

        return config

    def _configure_logging(self) -> None:
        level = "DEBUG" if self.config.debug else self.logging_config.level
        logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                            format=self.logging_config.format)

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown"""
        loop = asyncio.get_running_loop()
        for sig in [signal.SIGTERM, signal.SIGINT]:
            try:
                loop.add_signal_handler(sig, lambda s=sig: self._handle_shutdown_signal(s))
            except (NotImplementedError, RuntimeError):
                self.logger.debug(f"Signal handler for {sig!r} not supported on this platform")

    def _handle_shutdown_signal(self, sig: signal.Signals) -> None:
        """Handle shutdown signals gracefully"""
        sig_name = signal.Signals(sig).name
        self.logger.info(f"Received signal {sig_name}, shutting down gracefully...")
        self._shutdown_event.set()

    async def _shutdown_wait(self) -> None:
        """Wait for shutdown event"""
        await self._shutdown_event.wait()

    async def start(self) -> None:
        """Serve until a shutdown signal arrives"""
        self._shutdown_event = asyncio.Event()
        self._setup_signal_handlers()
        hyper_config = self._create_hyper_config()
        self.logger.info(f"Starting server on {self.config.bind}")
        try:
            await serve(self.app, hyper_config, shutdown_trigger=self._shutdown_wait)
        except Exception as e:
            self.logger.error(f"Failed to start server: {e}")
            raise
        self.logger.info("Server shutdown complete")

    async def shutdown(self) -> None:
        """Ask a running server to stop"""
        self.logger.info("Initiating graceful shutdown...")
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    def run(self) -> None:
        """Run the server (blocking call)"""
        self._configure_logging()

        if self.config.use_uvloop:
            import uvloop
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
            self.logger.info("Using uvloop for enhanced performance")

        try:
            asyncio.run(self.start())
        except KeyboardInterrupt:
            self.logger.info("Keyboard interrupt received")


__all__ = ['Server']
