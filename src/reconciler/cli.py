"""CLI handlers for operator verbs (reconcile, run).

Usage:
    serving-operator operator reconcile -n <namespace> -N <name> [--manifest-path P] [--recursive]
    serving-operator operator run -n <namespace> -N <name> [--interval S] [--max-passes N]
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from config import ConfigError, OperatorConfig, load_operator_config
from kube import KubernetesClient
from manifest import load_manifest
from reconciler.controller import ReconcileResult, Request, ServingReconciler

logger = logging.getLogger(__name__)


def _common_parser(verb: str) -> argparse.ArgumentParser:
    """Build argument parser with common options for all verbs."""
    parser = argparse.ArgumentParser(
        prog=f'serving-operator operator {verb}',
        description=f'{verb.capitalize()} a KnativeServing resource',
    )
    parser.add_argument(
        '--namespace', '-n',
        required=True,
        help='Namespace of the KnativeServing resource',
    )
    parser.add_argument(
        '--name', '-N',
        required=True,
        help='Name of the KnativeServing resource',
    )
    parser.add_argument(
        '--config', '-c',
        help='Operator config YAML (override: SERVING_OPERATOR_CONFIG env var)',
    )
    parser.add_argument(
        '--manifest-path',
        type=Path,
        help='Manifest file or directory (default: $KO_DATA_PATH/knative-serving)',
    )
    parser.add_argument(
        '--recursive',
        action='store_true',
        help='If manifest path is a directory, process all manifests recursively',
    )
    parser.add_argument(
        '--kubeconfig',
        help='Path to kubeconfig (default: in-cluster config, then ~/.kube/config)',
    )
    parser.add_argument(
        '--context',
        help='kubeconfig context to use',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs to stderr)',
    )
    return parser


def _setup_logging(verbose: bool, json_output: bool) -> None:
    """Configure logging based on flags."""
    if json_output:
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        root_logger.addHandler(stderr_handler)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_config(args) -> OperatorConfig:
    """Load operator config and apply command line overrides."""
    config = load_operator_config(args.config)
    if args.manifest_path is not None:
        config.manifest_path = args.manifest_path
    if args.recursive:
        config.recursive = True
    if args.kubeconfig:
        config.kubeconfig = args.kubeconfig
    if args.context:
        config.context = args.context
    return config


def _build_reconciler(args) -> ServingReconciler:
    """Load config and manifest, connect to the cluster.

    Raises:
        SystemExit: On configuration errors
    """
    try:
        config = _load_config(args)
        manifest = load_manifest(config.manifest_path, recursive=config.recursive)
        client = KubernetesClient.connect(kubeconfig=config.kubeconfig, context=config.context)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    return ServingReconciler(client=client, manifest=manifest, config=config)


def _describe(request: Request, result: ReconcileResult) -> dict:
    """Summarize a pass for output."""
    output: dict = {
        'namespace': request.namespace,
        'name': request.name,
        'success': result.success,
        'ready': result.ready,
        'requeue': result.requeue,
        'uninstalled': result.uninstalled,
    }
    if result.error is not None:
        output['error'] = str(result.error)
    if result.status is not None:
        output['version'] = result.status.version
        output['conditions'] = [c.to_dict() for c in result.status.conditions]
    return output


def _emit(output: dict, json_output: bool) -> None:
    if json_output:
        print(json.dumps(output, indent=2))
        return
    state = 'ready' if output['ready'] else 'not ready'
    if output['uninstalled']:
        state = 'uninstalled'
    print(f"{output['namespace']}/{output['name']}: {state}")
    for condition in output.get('conditions', []):
        line = f"  {condition['type']}={condition['status']}"
        if condition.get('message'):
            line += f" ({condition['message']})"
        print(line)
    if 'error' in output:
        print(f"  error: {output['error']}")


def reconcile_main(argv: list) -> int:
    """Handle 'operator reconcile' verb: one reconcile pass."""
    parser = _common_parser('reconcile')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    reconciler = _build_reconciler(args)
    request = Request(args.namespace, args.name)

    result = reconciler.reconcile(request)
    _emit(_describe(request, result), args.json_output)
    return 0 if result.success else 1


def run_main(argv: list) -> int:
    """Handle 'operator run' verb: reconcile repeatedly until stopped."""
    parser = _common_parser('run')
    parser.add_argument(
        '--interval',
        type=float,
        help='Seconds between passes (default: requeue_interval from config)',
    )
    parser.add_argument(
        '--max-passes',
        type=int,
        help='Stop after this many passes',
    )
    args = parser.parse_args(argv)
    _setup_logging(args.verbose, args.json_output)

    reconciler = _build_reconciler(args)
    request = Request(args.namespace, args.name)
    interval = args.interval if args.interval is not None else reconciler.config.requeue_interval

    passes = 0
    result = ReconcileResult()
    try:
        while args.max_passes is None or passes < args.max_passes:
            result = reconciler.reconcile(request)
            passes += 1
            if args.json_output:
                _emit(_describe(request, result), True)
            elif not result.success:
                logger.warning(f"Pass {passes} failed, requeueing: {result.error}")
            if args.max_passes is not None and passes >= args.max_passes:
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Interrupted")

    logger.info(f"Stopped after {passes} passes")
    return 0 if result.success else 1
