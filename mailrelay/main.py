"""Main entry point for the mailrelay notification worker."""

from dotenv import load_dotenv
load_dotenv()

import argparse
import json
import signal
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from mailrelay.config.environment import EnvironmentConfig
from mailrelay.config.exceptions import ConfigurationError
from mailrelay.config.loader import load_config
from mailrelay.config.models import AppConfig
from mailrelay.flows.credential_reset import CredentialResetFlow
from mailrelay.logging import get_logger
from mailrelay.logging.config import configure_logging
from mailrelay.notifications.delivery import DeliveryClient
from mailrelay.notifications.producer import NotificationProducer
from mailrelay.notifications.templates import TemplateRenderer
from mailrelay.notifications.worker import NotificationWorker
from mailrelay.persistence.database import close_database, init_database
from mailrelay.queue import NotificationQueue
from mailrelay.scheduler import WorkerPool
from mailrelay.tokens.store import ResetTokenStore

logger = get_logger(__name__, component="cli")


@dataclass
class Services:
    """Wired application components sharing one configuration."""

    queue: NotificationQueue
    renderer: TemplateRenderer
    delivery_client: DeliveryClient
    producer: NotificationProducer
    worker: NotificationWorker
    token_store: ResetTokenStore
    reset_flow: CredentialResetFlow


def build_services(
    app_config: AppConfig,
    env_config: EnvironmentConfig,
    delivery_client: Optional[DeliveryClient] = None,
) -> Services:
    """
    Build every component from configuration.

    The database must already be initialised.

    Args:
        app_config: Validated application configuration
        env_config: Environment configuration (credentials)
        delivery_client: Replacement delivery client (tests, dry runs)

    Returns:
        Services bundle
    """
    queue = NotificationQueue(app_config.queue)
    renderer = TemplateRenderer(app_config.templates.directory)
    delivery_client = delivery_client or DeliveryClient(
        api_key=env_config.brevo_api_key,
        sender_email=env_config.sender_email,
        sender_name=env_config.sender_name,
        config=app_config.delivery,
    )
    producer = NotificationProducer(
        queue,
        app_config=app_config.app,
        token_lifetime_seconds=app_config.tokens.lifetime_seconds,
    )
    worker = NotificationWorker(queue, renderer, delivery_client)
    token_store = ResetTokenStore(lifetime_seconds=app_config.tokens.lifetime_seconds)
    reset_flow = CredentialResetFlow(token_store, producer)

    return Services(
        queue=queue,
        renderer=renderer,
        delivery_client=delivery_client,
        producer=producer,
        worker=worker,
        token_store=token_store,
        reset_flow=reset_flow,
    )


def load_runtime_config(
    config_path: Optional[Path], log_level_override: Optional[str]
) -> Tuple[AppConfig, EnvironmentConfig]:
    """
    Load configuration and resolve the effective log level.

    Priority for the log level: CLI > environment > config file.

    Raises:
        ConfigurationError: If configuration is invalid
    """
    app_config, env_config = load_config(config_path)

    if log_level_override:
        env_config.log_level = log_level_override
    elif not env_config.log_level:
        env_config.log_level = app_config.logging.level or "INFO"

    return app_config, env_config


def print_status(services: Services) -> int:
    """Print per-state job counts as JSON."""
    status = services.queue.get_status()
    print(json.dumps(status.model_dump(), indent=2))
    return 0


def print_failed(services: Services, limit: int) -> int:
    """Print retained failed jobs as JSON (recipient, template, error)."""
    failed = services.queue.get_failed(limit=limit)
    rows = [
        {
            "id": job.id,
            "job_kind": job.job_kind.value,
            "to": job.payload.to,
            "template": job.payload.template,
            "attempts": job.attempt_count,
            "last_error": job.last_error,
            "finished_at": job.finished_at.isoformat() if job.finished_at else None,
        }
        for job in failed
    ]
    print(json.dumps(rows, indent=2))
    return 0


def main() -> int:
    """
    Main entry point for mailrelay.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    start_time = time.time()
    parser = argparse.ArgumentParser(
        description="mailrelay - queued transactional email delivery and credential reset tokens"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config and environment)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--manual-run",
        action="store_true",
        help="Drain the queue once and exit",
    )
    mode.add_argument(
        "--status",
        action="store_true",
        help="Print queue counts per state as JSON and exit",
    )
    mode.add_argument(
        "--failed",
        action="store_true",
        help="List failed jobs as JSON and exit",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum failed jobs to list with --failed (default: 50)",
    )

    args = parser.parse_args()

    try:
        # Step 1: Load configuration (before logging, for format selection)
        app_config, env_config = load_runtime_config(args.config, args.log_level)

        # Step 2: Configure logging
        log_format = app_config.logging.format
        configure_logging(
            level=env_config.log_level,
            format_type=log_format,
            environment=env_config.environment,
        )

        logger.info(
            "mailrelay starting",
            extra={
                "event": "service.starting",
                "config_path": str(args.config) if args.config else None,
                "log_level": env_config.log_level,
                "manual_run": args.manual_run,
            },
        )

        # Step 3: Initialize database
        init_database(env_config.database_url)

        # Step 4: Wire services
        services = build_services(app_config, env_config)

        logger.info(
            "Services initialized",
            extra={
                "event": "services.initialized",
                "delivery_configured": env_config.delivery_configured,
                "concurrency": app_config.worker.concurrency,
                "max_attempts": app_config.queue.max_attempts,
            },
        )

        # Step 5: Branch based on mode
        if args.status:
            exit_code = print_status(services)
            close_database()
            return exit_code

        if args.failed:
            exit_code = print_failed(services, args.limit)
            close_database()
            return exit_code

        pool = WorkerPool(services.worker, services.queue, app_config.worker)

        if args.manual_run:
            logger.info("Executing manual drain", extra={"event": "service.manual_run.starting"})
            outcomes = pool.trigger_now()

            completed = sum(1 for o in outcomes if o.status == "completed")
            retried = sum(1 for o in outcomes if o.status == "retry_scheduled")
            failed = sum(1 for o in outcomes if o.status == "failed")
            logger.info(
                f"Manual drain completed: {len(outcomes)} processed, "
                f"{completed} delivered, {retried} scheduled for retry, {failed} failed",
                extra={
                    "event": "service.manual_run.completed",
                    "processed": len(outcomes),
                    "completed": completed,
                    "retry_scheduled": retried,
                    "failed": failed,
                },
            )

            services.delivery_client.close()
            close_database()
            logger.info(
                "mailrelay stopped",
                extra={
                    "event": "service.stopping",
                    "uptime_seconds": round(time.time() - start_time, 2),
                },
            )
            return 1 if failed else 0

        # Daemon mode: run the worker pool until signalled
        shutdown_event = threading.Event()
        pool.shutdown_event = shutdown_event

        def signal_handler(signum, frame):
            logger.info(
                f"Received signal {signum}, shutting down",
                extra={"event": "service.signal_received", "signal": signum},
            )
            shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        pool.start()
        logger.info(
            "Worker pool started. Press Ctrl+C to stop",
            extra={"event": "service.daemon_mode.started"},
        )

        shutdown_event.wait()

        # In-flight deliveries finish; unfinished jobs are recovered by lease expiry
        pool.shutdown(wait=True)
        services.delivery_client.close()
        close_database()

        logger.info(
            "mailrelay stopped",
            extra={
                "event": "service.stopping",
                "uptime_seconds": round(time.time() - start_time, 2),
            },
        )
        return 0

    except ConfigurationError as e:
        print(f"Configuration Error: {e}", file=sys.stderr)
        logger.error(
            f"Configuration error: {e.message}",
            extra={"event": "config.error", "error_type": "ConfigurationError"},
        )
        return 1
    except KeyboardInterrupt:
        print("\nShutdown requested by user", file=sys.stderr)
        return 0
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        logger.critical(
            "Fatal error during startup",
            extra={
                "event": "service.startup.failed",
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        return 1


if __name__ == "__main__":
    sys.exit(main())
