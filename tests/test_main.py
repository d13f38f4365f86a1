"""Unit tests for the main entry point.

Tests the main() function including:
- Log level priority (CLI > env > config)
- Service wiring
- Status, failed-job listing, manual drain, and daemon modes
- Exit code handling
- Error handling
"""

import json
from unittest.mock import Mock, patch

import pytest

from mailrelay.config.environment import EnvironmentConfig
from mailrelay.config.exceptions import ConfigurationError
from mailrelay.config.models import AppConfig, LoggingConfig
from mailrelay.domain.models import QueueStatus
from mailrelay.main import build_services, load_runtime_config, main
from mailrelay.notifications.models import ProcessingOutcome
from tests.helpers import FakeDeliveryClient


def _configs(log_level="INFO"):
    return AppConfig(), EnvironmentConfig(brevo_api_key="key-123", log_level=log_level)


class TestLoadRuntimeConfig:
    """Test suite for load_runtime_config helper."""

    def test_log_level_priority(self):
        """CLI beats environment, environment beats the config file."""
        app_config = AppConfig(logging=LoggingConfig(level="WARNING"))
        env_config = EnvironmentConfig(log_level="INFO")

        with patch("mailrelay.main.load_config", return_value=(app_config, env_config)):
            _, env = load_runtime_config(None, "DEBUG")
            assert env.log_level == "DEBUG"

            env_config.log_level = "INFO"
            _, env = load_runtime_config(None, None)
            assert env.log_level == "INFO"

            env_config.log_level = None
            _, env = load_runtime_config(None, None)
            assert env.log_level == "WARNING"


class TestBuildServices:
    """Tests for build_services."""

    def test_wires_components(self, database):
        app_config = AppConfig.model_validate(
            {"queue": {"max_attempts": 2}, "tokens": {"lifetime": "30m"}}
        )
        delivery = FakeDeliveryClient()

        services = build_services(app_config, EnvironmentConfig(), delivery_client=delivery)

        assert services.worker.delivery_client is delivery
        assert services.worker.queue is services.queue
        assert services.producer.queue is services.queue
        assert services.queue.default_options().max_attempts == 2
        assert services.token_store.lifetime.total_seconds() == 1800
        assert services.producer.token_lifetime_seconds == 1800
        assert services.reset_flow.producer is services.producer

    def test_builds_delivery_client_from_environment(self, database):
        env_config = EnvironmentConfig(
            brevo_api_key="key-123", sender_email="team@example.com", sender_name="Acme"
        )

        services = build_services(AppConfig(), env_config)

        assert services.delivery_client.configured
        assert services.delivery_client.sender_email == "team@example.com"
        services.delivery_client.close()


class TestMain:
    """Test suite for main() function."""

    @patch("mailrelay.main.build_services")
    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.close_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--status"])
    def test_status_prints_counts(
        self,
        mock_load_config,
        mock_configure_logging,
        mock_close_db,
        mock_init_db,
        mock_build_services,
        capsys,
    ):
        """--status prints per-state counts as JSON."""
        mock_load_config.return_value = _configs()
        services = Mock()
        services.queue.get_status.return_value = QueueStatus(waiting=2, failed=1)
        mock_build_services.return_value = services

        exit_code = main()

        assert exit_code == 0
        output = json.loads(capsys.readouterr().out)
        assert output == {"waiting": 2, "active": 0, "completed": 0, "failed": 1, "delayed": 0}
        mock_init_db.assert_called_once()
        mock_close_db.assert_called_once()

    @patch("mailrelay.main.build_services")
    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.close_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--failed", "--limit", "5"])
    def test_failed_lists_jobs(
        self,
        mock_load_config,
        mock_configure_logging,
        mock_close_db,
        mock_init_db,
        mock_build_services,
        capsys,
    ):
        """--failed passes the limit through and prints a JSON list."""
        mock_load_config.return_value = _configs()
        services = Mock()
        services.queue.get_failed.return_value = []
        mock_build_services.return_value = services

        assert main() == 0
        services.queue.get_failed.assert_called_once_with(limit=5)
        assert json.loads(capsys.readouterr().out) == []

    @patch("mailrelay.main.WorkerPool")
    @patch("mailrelay.main.build_services")
    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.close_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--manual-run"])
    def test_manual_run_success(
        self,
        mock_load_config,
        mock_configure_logging,
        mock_close_db,
        mock_init_db,
        mock_build_services,
        mock_worker_pool,
    ):
        """--manual-run drains once and exits 0 when nothing failed."""
        mock_load_config.return_value = _configs()
        mock_build_services.return_value = Mock()
        pool = Mock()
        pool.trigger_now.return_value = [
            ProcessingOutcome(job_id="j1", status="completed", attempts=1),
            ProcessingOutcome(job_id="j2", status="retry_scheduled", attempts=1),
        ]
        mock_worker_pool.return_value = pool

        exit_code = main()

        assert exit_code == 0
        pool.trigger_now.assert_called_once()
        mock_configure_logging.assert_called_once()
        mock_close_db.assert_called_once()

    @patch("mailrelay.main.WorkerPool")
    @patch("mailrelay.main.build_services")
    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.close_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--manual-run"])
    def test_manual_run_with_failures(
        self,
        mock_load_config,
        mock_configure_logging,
        mock_close_db,
        mock_init_db,
        mock_build_services,
        mock_worker_pool,
    ):
        """--manual-run exits 1 when a job failed for good."""
        mock_load_config.return_value = _configs()
        mock_build_services.return_value = Mock()
        pool = Mock()
        pool.trigger_now.return_value = [
            ProcessingOutcome(job_id="j1", status="failed", attempts=5, error="HTTP 400"),
        ]
        mock_worker_pool.return_value = pool

        assert main() == 1

    @patch("mailrelay.main.WorkerPool")
    @patch("mailrelay.main.build_services")
    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.close_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("signal.signal")
    @patch("sys.argv", ["mailrelay"])
    def test_daemon_mode(
        self,
        mock_signal,
        mock_load_config,
        mock_configure_logging,
        mock_close_db,
        mock_init_db,
        mock_build_services,
        mock_worker_pool,
    ):
        """Daemon mode starts the pool and exits cleanly on interrupt."""
        mock_load_config.return_value = _configs()
        mock_build_services.return_value = Mock()
        pool = Mock()
        pool.start.side_effect = KeyboardInterrupt()
        mock_worker_pool.return_value = pool

        exit_code = main()

        pool.start.assert_called_once()
        assert mock_signal.call_count == 2
        assert exit_code == 0

    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--config", "nonexistent.yaml"])
    def test_configuration_error(self, mock_load_config, capsys):
        """ConfigurationError is reported on stderr with exit code 1."""
        mock_load_config.side_effect = ConfigurationError(
            "Specified configuration file not found: nonexistent.yaml",
            suggestions=["Omit --config to run with built-in defaults"],
        )

        assert main() == 1
        assert "Configuration Error" in capsys.readouterr().err

    @patch("mailrelay.main.init_database")
    @patch("mailrelay.main.configure_logging")
    @patch("mailrelay.main.load_runtime_config")
    @patch("sys.argv", ["mailrelay", "--status"])
    def test_unexpected_error(self, mock_load_config, mock_configure_logging, mock_init_db, capsys):
        """Unexpected startup errors exit 1."""
        mock_load_config.return_value = _configs()
        mock_init_db.side_effect = RuntimeError("disk full")

        assert main() == 1
        assert "disk full" in capsys.readouterr().err

    @patch("sys.argv", ["mailrelay", "--status", "--failed"])
    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            main()
