# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for the kube-janitor command line interface.
"""

from unittest.mock import MagicMock, patch

import pytest

from kube_janitor.cli import build_parser, build_runner, config_from_args, main
from kube_janitor.config import JanitorConfig
from kube_janitor.errors import ConfigError, TransportError, UnknownHookError
from kube_janitor.extensions.hooks import random_dice
from kube_janitor.janitor.runner import JanitorRunner
from kube_janitor.shutdown import GracefulShutdown


def parse(argv, environ=None):
    environ = environ or {}
    return config_from_args(build_parser(environ).parse_args(argv), environ)


class TestArgumentParsing:
    """Tests for flag parsing and environment defaults."""

    def test_defaults(self):
        config = parse([])
        assert config.interval == 30
        assert config.include_resources == ["all"]
        assert config.exclude_resources == ["events", "controllerrevisions"]
        assert config.exclude_namespaces == ["kube-system"]
        assert config.rules_file is None
        assert config.dry_run is False

    def test_flags(self):
        config = parse(
            [
                "--dry-run",
                "--once",
                "--interval=60",
                "--delete-notification=3600",
                "--include-namespaces=dev,pr-*",
                "--include-cluster-resources",
                "--parallelism=4",
                "--deployment-time-annotation=deploy-time",
            ]
        )
        assert config.dry_run and config.once
        assert config.interval == 60
        assert config.delete_notification == 3600
        assert config.include_namespaces == ["dev", "pr-*"]
        assert config.include_cluster_resources is True
        assert config.parallelism == 4
        assert config.deployment_time_annotation == "deploy-time"

    def test_environment_defaults(self):
        environ = {
            "EXCLUDE_NAMESPACES": "kube-system,monitoring",
            "RULES_FILE": "/config/rules.yaml",
            "WEBHOOK_URL": "https://hooks.example.com",
            "CONTEXT_NAME": "prod",
            "RESOURCE_CONTEXT_HOOK": "random_dice",
        }
        config = parse([], environ)
        assert config.exclude_namespaces == ["kube-system", "monitoring"]
        assert config.rules_file == "/config/rules.yaml"
        assert config.webhook_url == "https://hooks.example.com"
        assert config.context_name == "prod"
        assert config.resource_context_hook == "random_dice"

    def test_flag_overrides_environment(self):
        config = parse(["--exclude-namespaces=none"], {"EXCLUDE_NAMESPACES": "kube-system"})
        assert config.exclude_namespaces == ["none"]

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser({}).parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "kube-janitor" in capsys.readouterr().out


class TestBuildRunner:
    """Tests for wiring the runner from configuration."""

    def test_builds_runner(self, fake_client):
        runner = build_runner(JanitorConfig(parallelism=2, dry_run=True), cluster_client=fake_client)

        assert isinstance(runner, JanitorRunner)
        assert runner.client is fake_client
        assert runner.engine.dry_run is True
        assert runner.engine.notifier is None
        assert runner.dispatcher.parallelism == 2

    def test_webhook_enabled(self, fake_client):
        runner = build_runner(JanitorConfig(webhook_url="https://hooks.example.com"), cluster_client=fake_client)
        assert runner.engine.notifier.url == "https://hooks.example.com"

    def test_resolves_hook(self, fake_client):
        runner = build_runner(JanitorConfig(resource_context_hook="random_dice"), cluster_client=fake_client)
        assert runner.engine.context_provider.hook is random_dice

    def test_unknown_hook(self, fake_client):
        with pytest.raises(UnknownHookError):
            build_runner(JanitorConfig(resource_context_hook="missing"), cluster_client=fake_client)

    def test_loads_rules(self, fake_client, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text(
            "rules:\n"
            "  - id: temporary-pr-namespaces\n"
            "    resources: [namespaces]\n"
            "    jmespath: \"starts_with(metadata.name, 'pr-')\"\n"
            "    ttl: 4h\n"
        )
        runner = build_runner(JanitorConfig(rules_file=str(rules_file)), cluster_client=fake_client)
        assert [r.id for r in runner.engine.rules] == ["temporary-pr-namespaces"]

    def test_invalid_rules(self, fake_client, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rules:\n  - id: BAD\n    resources: ['*']\n    jmespath: metadata\n    ttl: 1h\n")
        with pytest.raises(ConfigError):
            build_runner(JanitorConfig(rules_file=str(rules_file)), cluster_client=fake_client)


class TestMain:
    """Tests for main() exit behavior."""

    @pytest.fixture
    def runner(self):
        runner = MagicMock()
        with patch("kube_janitor.cli.build_runner", return_value=runner), patch(
            "kube_janitor.cli.configure_logging"
        ), patch("kube_janitor.shutdown.GracefulShutdown.install", lambda self: self):
            yield runner

    def test_once_success(self, runner):
        main(["--once"])
        runner.run_once.assert_called_once()
        runner.run_forever.assert_not_called()

    def test_once_failure_exits_nonzero(self, runner):
        runner.run_once.side_effect = TransportError("failed to list namespaces")
        with pytest.raises(SystemExit) as exc_info:
            main(["--once"])
        assert exc_info.value.code == 1

    def test_signal_during_failed_run_exits_nonzero(self, runner):
        created = []

        class RecordingShutdown(GracefulShutdown):
            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                created.append(self)

        def run_once(cancel):
            created[0].request_shutdown()
            raise TransportError("failed to list namespaces")

        runner.run_once.side_effect = run_once
        with patch("kube_janitor.shutdown.GracefulShutdown", RecordingShutdown):
            with pytest.raises(SystemExit) as exc_info:
                main(["--once"])
        assert exc_info.value.code == 1

    def test_loop_mode(self, runner):
        main(["--interval=5"])
        runner.run_forever.assert_called_once()
        scheduler = runner.run_forever.call_args[0][1]
        assert scheduler.interval_seconds == 5

    def test_invalid_config_exits_nonzero(self, runner):
        with pytest.raises(SystemExit) as exc_info:
            main(["--interval=0"])
        assert exc_info.value.code == 1
        runner.run_once.assert_not_called()

    def test_config_error_from_wiring(self):
        with patch("kube_janitor.cli.build_runner", side_effect=ConfigError("no kubeconfig")), patch(
            "kube_janitor.cli.configure_logging"
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--once"])
        assert exc_info.value.code == 1
