"""WatchlistBridge Main Application."""

import asyncio
import signal
import sys

import uvicorn
from pydantic import ValidationError

from src import WATCHLISTBRIDGE_HEADER, log
from src.config.settings import get_config
from src.core.sched import ReconciliationScheduler
from src.exceptions import ConfigError, PlexConnectivityError
from src.web.app import create_app


def _setup_signal_handlers_for_scheduler(scheduler: ReconciliationScheduler) -> None:
    """Install SIGINT/SIGTERM handlers that request scheduler shutdown."""
    loop = asyncio.get_running_loop()

    def _on_signal(sig):
        name = signal.Signals(sig).name if sig else "UNKNOWN"
        log.info(
            f"WatchlistBridge: Received {name} signal, initiating graceful shutdown..."
        )
        scheduler.request_shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda s=sig: _on_signal(s))
        except NotImplementedError:
            # Windows event loops
            signal.signal(sig, lambda s, f: _on_signal(s))


def validate_configuration() -> bool:
    """Validate the application configuration and log a summary of it.

    Returns:
        bool: True if configuration is valid, False otherwise
    """
    try:
        config = get_config()
    except ValidationError as e:
        log.error(f"WatchlistBridge: Configuration validation failed: {e}")
        return False
    except (OSError, PermissionError) as e:
        log.error(f"WatchlistBridge: File system error during configuration: {e}")
        return False

    if config.plex_token is None:
        log.error("WatchlistBridge: No plex_token configured")
        return False

    log.info(f"WatchlistBridge: Configuration: {config!s}")
    return True


async def run() -> int:
    """Main application entry point.

    Starts the reconciliation workflow and runs until shutdown is requested.

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    scheduler: ReconciliationScheduler | None = None

    ret = 0
    try:
        log.info("\n" + WATCHLISTBRIDGE_HEADER)

        if not validate_configuration():
            return 1
        config = get_config()

        scheduler = ReconciliationScheduler.from_config(config)
        _setup_signal_handlers_for_scheduler(scheduler)
        await scheduler.start_workflow()

        if config.web.enabled:
            app = create_app(scheduler)
            uv_config = uvicorn.Config(
                app,
                host=config.web.host,
                port=config.web.port,
                log_config=None,
                loop="asyncio",
                proxy_headers=True,
                forwarded_allow_ips="*",
            )

            server = uvicorn.Server(uv_config)
            # Use `_serve()` so uvicorn doesn't install its own signal handlers
            server_task = asyncio.create_task(server._serve())

            log.success(
                "WatchlistBridge: Web API started at "
                f"\033[92mhttp://{config.web.host}:{config.web.port} "
                "(ctrl+c to stop)\033[0m"
            )

            await scheduler.wait_for_completion()

            server.should_exit = True
            await server_task
        else:
            await scheduler.wait_for_completion()
    except KeyboardInterrupt:
        log.info("WatchlistBridge: Keyboard interrupt received, shutting down...")
    except ConfigError as e:
        log.error(f"WatchlistBridge: Configuration error: {e}")
        return 1
    except PlexConnectivityError as e:
        log.error(f"WatchlistBridge: Connection error: {e}")
        return 1
    except (OSError, PermissionError) as e:
        log.error(f"WatchlistBridge: File system error: {e}")
        return 1
    except asyncio.CancelledError:
        log.info("WatchlistBridge: Application cancelled")
        return 0
    except Exception as e:
        log.error(f"WatchlistBridge: Unexpected application error: {e}", exc_info=True)
        return 1
    finally:
        if scheduler:
            log.info("WatchlistBridge: Shutting down application...")
            try:
                await scheduler.close()
                log.success("WatchlistBridge: Application shutdown complete")
            except asyncio.CancelledError:
                log.info("WatchlistBridge: Shutdown cancelled")
                ret = 1
            except Exception as e:
                log.error(f"WatchlistBridge: Error during shutdown: {e}", exc_info=True)
                ret = 1
    return ret


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        argv (list[str] | None): Command-line arguments (unused).

    Returns:
        int: Exit code (0 for success, 1 for error)
    """
    try:
        return asyncio.run(run())
    except KeyboardInterrupt:
        log.info("WatchlistBridge: Application interrupted")
        return 0


if __name__ == "__main__":
    sys.exit(main())
