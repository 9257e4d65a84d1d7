"""Composition root for the Innkeeper booking system.

This module is the ONLY location that imports both core domain logic
and concrete adapter implementations. All wiring of dependencies
happens here, creating a clear entry point for the application.

Module Structure:
- Configuration loading via config module
- Adapter instantiation
- Core service initialization
- Dependency injection
- Entry point selection (daemon, CLI, API)
"""

import asyncio
import json
import logging
import sys
from typing import Any

from innkeeper.adapters.api.handlers import ApiHandlers
from innkeeper.adapters.api.http_server import ApiHTTPServer
from innkeeper.adapters.cache.memory import MemoryAvailabilityCache
from innkeeper.adapters.cli.commands import CLICommandHandler, run_command
from innkeeper.adapters.scheduler.daemon import SweepScheduler
from innkeeper.adapters.store.sqlite import SQLiteUnitOfWork
from innkeeper.config import Settings, load_settings
from innkeeper.core.availability import CacheRecoveryService
from innkeeper.core.booking_service import BookingService
from innkeeper.core.payment_service import PaymentService
from innkeeper.core.ports import AvailabilityCachePort, UnitOfWorkPort
from innkeeper.core.sweep_service import SweepService
from innkeeper.core.unit_service import UnitService


async def _run_cli_interactive(cli_handler: CLICommandHandler) -> None:
    """Run interactive CLI loop.

    Provides a REPL-like interface for operator commands.

    Args:
        cli_handler: CLICommandHandler instance for executing commands.
    """
    logger = logging.getLogger(__name__)
    logger.info("Starting interactive CLI. Type 'help' for available commands or 'exit' to quit.")

    loop = asyncio.get_running_loop()

    while True:
        try:
            # Read command from stdin in a thread to avoid blocking
            command_line = await loop.run_in_executor(None, input, "innkeeper> ")
            command_line = command_line.strip()

            if not command_line:
                continue

            if command_line.lower() == "exit":
                logger.info("Exiting CLI")
                break

            if command_line.lower() == "help":
                _print_cli_help()
                continue

            parts = command_line.split(maxsplit=1)
            command = parts[0].lower()
            args_str = parts[1] if len(parts) > 1 else ""

            try:
                args = json.loads(args_str) if args_str else {}
            except json.JSONDecodeError:
                logger.error("Invalid JSON arguments. Use 'help' for command syntax.")
                continue

            if not isinstance(args, dict):
                logger.error("Arguments must be a JSON object. Use 'help' for command syntax.")
                continue

            try:
                result = await run_command(cli_handler, command, args)
                print(json.dumps(result, indent=2, default=str))
            except Exception as e:
                logger.error(f"Command execution error: {e}", exc_info=True)
                print(json.dumps({"status": "error", "message": str(e)}, indent=2))

        except EOFError:
            # Ctrl+D to exit
            logger.info("EOF received, exiting CLI")
            break
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            continue
        except Exception as e:
            logger.error(f"CLI error: {e}", exc_info=True)


def _print_cli_help() -> None:
    """Print CLI help message."""
    help_text = """
Available Commands (JSON format):

  create-unit
    Create an available unit priced with the system markup.
    Required: user_id, number_of_rooms, accommodation_type (HOME, FLAT, APARTMENTS),
              floor, base_price, description

    Example: create-unit {"user_id": "admin", "number_of_rooms": 2,
             "accommodation_type": "FLAT", "floor": 3, "base_price": "100.00",
             "description": "Sunny flat"}

  unit / update-unit / delete-unit
    Show, replace or delete a unit.
    Required: unit_id (update-unit also takes the create-unit fields; update and
              delete take user_id)

  search
    Search available units.
    Optional: number_of_rooms, accommodation_type, floor, min_price, max_price,
              check_in, check_out, page, size

    Example: search {"accommodation_type": "HOME", "check_in": "2030-01-01T14:00:00+00:00",
             "check_out": "2030-01-05T11:00:00+00:00"}

  available
    Show the number of available units.

  book
    Hold a unit pending payment.
    Required: unit_id, check_in, check_out (ISO-8601 with offset), user_id

  booking
    Show a booking.
    Required: booking_id
    Optional: format (json, text)

  confirm / cancel
    Confirm or cancel a booking.
    Required: booking_id, user_id

  bookings
    List a user's bookings, newest first.
    Required: user_id
    Optional: page, size

  pay
    Record a pending payment for a pending booking.
    Required: booking_id, amount, payment_method, user_id
    Optional: transaction_id

  process-payment / refund / fail-payment
    Complete (and confirm the booking), refund or fail a payment.
    Required: payment_id, user_id

  cancel-payments
    Cancel every pending payment of a booking.
    Required: booking_id, user_id

  payments
    List payments of a booking.
    Required: booking_id

  sweep
    Run the expiry and completion sweeps once.

  help
    Show this help message.

  exit
    Exit the CLI.

Note: All commands accept arguments as a single JSON object.
Provide the JSON after the command name on the same line.
    """
    print(help_text)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    if log_format == "json":
        format_str = (
            '{"time": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}'
        )
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )


def build_store(settings: Settings) -> UnitOfWorkPort:
    """Select the unit-of-work implementation from settings.

    Raises:
        ValueError: If the backend is unknown or misconfigured.
    """
    if settings.store_backend == "sqlite":
        return SQLiteUnitOfWork(
            db_path=settings.store_sqlite_path,
            pool_size=settings.store_pool_size,
        )
    if settings.store_backend == "postgresql":
        # Lazy import for optional PostgreSQL dependency
        from innkeeper.adapters.store.postgresql import PostgreSQLUnitOfWork

        if not settings.database_url:
            raise ValueError("PostgreSQL backend selected but DATABASE_URL not set")
        return PostgreSQLUnitOfWork(
            dsn=settings.database_url,
            pool_size=settings.store_pool_size,
        )
    raise ValueError(f"Unknown store backend: {settings.store_backend}")


def build_cache(settings: Settings) -> AvailabilityCachePort:
    """Select the availability cache implementation from settings.

    Raises:
        ValueError: If the backend is unknown.
    """
    if settings.cache_backend == "memory":
        return MemoryAvailabilityCache(ttl_seconds=settings.cache_ttl_seconds)
    if settings.cache_backend == "redis":
        # Lazy import for optional Redis dependency
        from innkeeper.adapters.cache.redis import RedisAvailabilityCache

        return RedisAvailabilityCache(
            redis_url=settings.redis_url,
            ttl_seconds=settings.cache_ttl_seconds,
        )
    raise ValueError(f"Unknown cache backend: {settings.cache_backend}")


def build_services(
    settings: Settings, uow: UnitOfWorkPort, cache: AvailabilityCachePort
) -> dict[str, Any]:
    """Initialize core services wired to the given adapters."""
    return {
        "bookings": BookingService(
            uow=uow,
            cache=cache,
            payment_timeout_minutes=settings.payment_timeout_minutes,
            markup_percent=settings.system_markup_percent,
        ),
        "units": UnitService(
            uow=uow,
            cache=cache,
            markup_percent=settings.system_markup_percent,
        ),
        "payments": PaymentService(uow=uow),
        "sweeps": SweepService(uow=uow, cache=cache),
        "recovery": CacheRecoveryService(uow=uow, cache=cache),
    }


async def bootstrap() -> None:
    """Load configuration, wire adapters, and start the application.

    This is the composition root: the single place where all components
    are instantiated and wired together.

    Steps:
    1. Load configuration from environment
    2. Configure logging
    3. Instantiate adapters with configuration
    4. Initialize core services
    5. Select and start run mode

    Raises:
        SystemExit: On fatal errors (configuration, adapter initialization)
        asyncio.CancelledError: On graceful shutdown signal
    """
    # Step 1: Load configuration
    settings = load_settings()

    # Step 2: Configure logging
    configure_logging("DEBUG" if settings.debug else settings.log_level, settings.log_format)
    logger = logging.getLogger(__name__)
    logger.info("Loading Innkeeper booking system...")

    # Step 3: Instantiate adapters
    logger.info("Initializing adapters...")
    try:
        uow = build_store(settings)
        cache = build_cache(settings)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)
    logger.info(f"Store backend: {settings.store_backend}, cache backend: {settings.cache_backend}")

    # Step 4: Initialize core services
    logger.info("Initializing core services...")
    services = build_services(settings, uow, cache)

    scheduler = SweepScheduler(
        sweep_port=services["sweeps"],
        recovery_port=services["recovery"],
        expiry_interval_seconds=settings.expiry_sweep_interval_seconds,
        completion_interval_seconds=settings.completion_sweep_interval_seconds,
        cache_recovery_interval_seconds=settings.cache_recovery_interval_seconds,
    )

    # Step 5: Select run mode and start
    logger.info(f"Starting in {settings.run_mode} mode...")

    try:
        if settings.run_mode == "daemon":
            # Sweeps and cache recovery only
            await scheduler.start()

        elif settings.run_mode == "cli":
            logger.info("CLI mode - Ready for interactive commands")
            await services["recovery"].recover_cache()
            cli_handler = CLICommandHandler(
                bookings=services["bookings"],
                units=services["units"],
                payments=services["payments"],
                sweeps=services["sweeps"],
            )
            await _run_cli_interactive(cli_handler)

        elif settings.run_mode == "api":
            # API server plus the background jobs in the same event loop
            api = ApiHandlers(
                bookings=services["bookings"],
                units=services["units"],
                payments=services["payments"],
                sweeps=services["sweeps"],
            )
            http_server = ApiHTTPServer(
                api=api,
                host=settings.api_host,
                port=settings.api_port,
                api_key=settings.api_key or None,
                require_auth=settings.api_require_auth,
            )
            await http_server.start()
            try:
                await scheduler.start()
            finally:
                await http_server.stop()

        else:
            logger.error(f"Unknown run mode: {settings.run_mode}")
            sys.exit(1)

    finally:
        # Clean up resources
        await cache.close()
        await uow.close()


def main() -> None:
    """Application entry point.

    Loads configuration, wires adapters, initializes core services,
    and starts the appropriate run mode (daemon, CLI, or API).

    Exit codes:
        0: Successful shutdown
        1: Fatal bootstrap or runtime error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    logger = logging.getLogger(__name__)
    try:
        asyncio.run(bootstrap())
    except KeyboardInterrupt:
        logger.warning("Shutdown requested by user (SIGINT)")
        sys.exit(130)
    except asyncio.CancelledError:
        logger.info("Graceful shutdown completed")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
