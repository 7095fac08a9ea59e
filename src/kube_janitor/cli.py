"""CLI entry point for kube-janitor.

Usage:
    kube-janitor                          # Clean up every 30 seconds
    kube-janitor --once --dry-run         # Preview a single run
    kube-janitor --rules-file rules.yaml  # Apply TTL rules
    kube-janitor --version                # Show version

Environment variables provide defaults for the matching flags:
INCLUDE_RESOURCES, EXCLUDE_RESOURCES, INCLUDE_NAMESPACES,
EXCLUDE_NAMESPACES, RULES_FILE. WEBHOOK_URL, CONTEXT_NAME and
RESOURCE_CONTEXT_HOOK are read from the environment only.
"""

import argparse
import logging
import os
import sys
from typing import List, Mapping, Optional

from kube_janitor import __version__
from kube_janitor.config import (
    DEFAULT_EXCLUDE_NAMESPACES,
    DEFAULT_EXCLUDE_RESOURCES,
    DEFAULT_INCLUDE_NAMESPACES,
    DEFAULT_INCLUDE_RESOURCES,
    DEFAULT_INTERVAL,
    DEFAULT_LOG_FORMAT,
    JanitorConfig,
    env_default,
    split_list,
)
from kube_janitor.errors import ConfigError, JanitorError
from kube_janitor.extensions.registry import HookRegistry

logger = logging.getLogger("kube_janitor")


def build_parser(environ: Optional[Mapping[str, str]] = None) -> argparse.ArgumentParser:
    """Build the argument parser with environment-provided defaults."""
    environ = os.environ if environ is None else environ

    parser = argparse.ArgumentParser(
        prog="kube-janitor",
        description="Clean up Kubernetes resources after a configured TTL",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Dry run mode: do not change anything, just print what would be done",
    )
    parser.add_argument("--debug", action="store_true", help="Debug mode: print more information")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Quiet mode: hide per-resource logs but keep deletion logs",
    )
    parser.add_argument("--once", action="store_true", help="Run only once and exit")
    parser.add_argument(
        "--interval",
        type=int,
        default=DEFAULT_INTERVAL,
        help=f"Loop interval in seconds (default: {DEFAULT_INTERVAL})",
    )
    parser.add_argument(
        "--wait-after-delete",
        type=int,
        default=0,
        help="Wait time after issuing a delete (in seconds)",
    )
    parser.add_argument(
        "--delete-notification",
        type=int,
        default=0,
        help="Notify this many seconds before a deletion",
    )
    parser.add_argument(
        "--include-resources",
        default=env_default("INCLUDE_RESOURCES", ",".join(DEFAULT_INCLUDE_RESOURCES), environ),
        help="Resources to consider for clean up (comma-separated)",
    )
    parser.add_argument(
        "--exclude-resources",
        default=env_default("EXCLUDE_RESOURCES", ",".join(DEFAULT_EXCLUDE_RESOURCES), environ),
        help="Resources to exclude from clean up (comma-separated)",
    )
    parser.add_argument(
        "--include-namespaces",
        default=env_default("INCLUDE_NAMESPACES", ",".join(DEFAULT_INCLUDE_NAMESPACES), environ),
        help="Include namespaces for clean up (comma-separated)",
    )
    parser.add_argument(
        "--exclude-namespaces",
        default=env_default("EXCLUDE_NAMESPACES", ",".join(DEFAULT_EXCLUDE_NAMESPACES), environ),
        help="Exclude namespaces from clean up (comma-separated)",
    )
    parser.add_argument(
        "--rules-file",
        default=env_default("RULES_FILE", None, environ),
        help="Load TTL rules from given file path",
    )
    parser.add_argument(
        "--deployment-time-annotation",
        default=None,
        help="Annotation that contains a resource's last deployment time",
    )
    parser.add_argument(
        "--include-cluster-resources",
        action="store_true",
        help="Include cluster scoped resources",
    )
    parser.add_argument(
        "--log-format",
        default=DEFAULT_LOG_FORMAT,
        help="Set custom log format",
    )
    parser.add_argument(
        "--parallelism",
        type=int,
        default=0,
        help="Number of parallel workers (0 = use number of CPUs)",
    )
    return parser


def config_from_args(
    args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None
) -> JanitorConfig:
    environ = os.environ if environ is None else environ
    return JanitorConfig(
        dry_run=args.dry_run,
        debug=args.debug,
        quiet=args.quiet,
        once=args.once,
        interval=args.interval,
        wait_after_delete=args.wait_after_delete,
        delete_notification=args.delete_notification,
        include_resources=split_list(args.include_resources),
        exclude_resources=split_list(args.exclude_resources),
        include_namespaces=split_list(args.include_namespaces),
        exclude_namespaces=split_list(args.exclude_namespaces),
        rules_file=args.rules_file,
        deployment_time_annotation=args.deployment_time_annotation,
        include_cluster_resources=args.include_cluster_resources,
        parallelism=args.parallelism,
        webhook_url=env_default("WEBHOOK_URL", None, environ),
        context_name=env_default("CONTEXT_NAME", None, environ),
        resource_context_hook=env_default("RESOURCE_CONTEXT_HOOK", None, environ),
        log_format=args.log_format,
    )


def configure_logging(config: JanitorConfig) -> None:
    level = logging.DEBUG if config.debug else logging.INFO
    logging.basicConfig(level=level, format=config.log_format, force=True)


def build_runner(config: JanitorConfig, cluster_client=None):
    """Wire up the runner for a validated configuration.

    Resolves the context hook and loads rules before the cluster client
    is created, so configuration errors surface first.

    Raises:
        ConfigError: Unknown hook, invalid rules or missing kubeconfig.
    """
    from kube_janitor.integrations.kubernetes_client import KubernetesClusterClient
    from kube_janitor.integrations.webhook import WebhookNotifier
    from kube_janitor.janitor.context import ContextProvider
    from kube_janitor.janitor.decision import LifecycleEngine
    from kube_janitor.janitor.rules import load_rules, rules_summary
    from kube_janitor.janitor.runner import JanitorRunner

    hook = None
    if config.resource_context_hook:
        hook = HookRegistry.get().resolve(config.resource_context_hook)
        logger.info(f"Using resource context hook {config.resource_context_hook}")

    rules = load_rules(config.rules_file) if config.rules_file else []
    if rules:
        logger.debug(f"Rules: {rules_summary(rules)}")

    if cluster_client is None:
        cluster_client = KubernetesClusterClient()

    notifier = WebhookNotifier(config.webhook_url or "")
    engine = LifecycleEngine(
        cluster_client,
        rules=rules,
        context_provider=ContextProvider(cluster_client, hook=hook),
        notifier=notifier if notifier.enabled else None,
        dry_run=config.dry_run,
        delete_notification=config.delete_notification,
        deployment_time_annotation=config.deployment_time_annotation,
        wait_after_delete=config.wait_after_delete,
        context_name=config.context_name,
        quiet=config.quiet,
    )
    return JanitorRunner(
        cluster_client,
        engine,
        resource_filter=config.resource_filter(),
        parallelism=config.effective_parallelism,
    )


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    from kube_janitor.janitor.scheduler import JanitorScheduler
    from kube_janitor.shutdown import GracefulShutdown

    args = build_parser().parse_args(argv)
    config = config_from_args(args)
    configure_logging(config)

    logger.info(f"Kubernetes Janitor {__version__} starting up...")
    if config.dry_run:
        logger.info("Running in dry-run mode")

    try:
        config.validate()
        runner = build_runner(config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    logger.info(f"Performance settings: parallelism={config.effective_parallelism}")

    shutdown = GracefulShutdown().install()

    if config.once:
        with shutdown.unsafe():
            try:
                runner.run_once(cancel=shutdown.shutdown_requested)
            except JanitorError as e:
                logger.error(f"Error during cleanup: {e}")
                shutdown.exit_code = 1
        if shutdown.exit_code:
            sys.exit(shutdown.exit_code)
        return

    runner.run_forever(shutdown, JanitorScheduler(interval_seconds=config.interval))


if __name__ == "__main__":
    main()
