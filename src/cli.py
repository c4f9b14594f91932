#!/usr/bin/env python3
"""CLI entry point for the serving operator.

Noun-action subcommands:
- serving-operator operator reconcile -n knative-serving -N knative-serving
- serving-operator operator run -n knative-serving -N knative-serving

Nouns:
- operator: Reconcile KnativeServing resources (reconcile/run)
"""

import logging
import sys

from version import VERSION

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "operator": "Reconcile KnativeServing resources (reconcile/run)",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def dispatch_operator(argv: list) -> int:
    """Dispatch 'operator' noun to action-specific handler.

    Args:
        argv: Arguments after 'operator' (e.g., ['reconcile', '-n', 'ns', '-N', 'name'])

    Returns:
        Exit code
    """
    if not argv or argv[0].startswith('-'):
        print("Usage: serving-operator operator <action> [options]")
        print()
        print("Actions:")
        print("  reconcile  Run a single reconcile pass")
        print("  run        Reconcile repeatedly, requeueing after each pass")
        print()
        print("Run 'serving-operator operator <action> --help' for action-specific options.")
        return 1 if not argv else 0

    action = argv[0]
    rest = argv[1:]

    if action == "reconcile":
        from reconciler.cli import reconcile_main
        rc: int = reconcile_main(rest)
        return rc
    if action == "run":
        from reconciler.cli import run_main
        rc = run_main(rest)
        return rc

    print(f"Error: Unknown operator action '{action}'")
    print("Available actions: reconcile, run")
    return 1


def dispatch_noun(noun: str, argv: list) -> int:
    """Dispatch to noun-specific CLI handler.

    Args:
        noun: The noun command (e.g., "operator")
        argv: Remaining command line arguments

    Returns:
        Exit code
    """
    if noun == "operator":
        return dispatch_operator(argv)

    print(f"Error: Noun '{noun}' not yet implemented")
    return 1


def print_usage():
    """Print top-level usage showing noun commands."""
    print(f"serving-operator {VERSION}")
    print()
    print("Usage: serving-operator <noun> <action> [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<12} {desc}")
    print()
    print("Run 'serving-operator <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  serving-operator operator reconcile -n knative-serving -N knative-serving")
    print("  serving-operator operator run -n knative-serving -N knative-serving --interval 10")


def main(argv=None) -> int:
    """CLI entry point: dispatch to noun-action handlers."""
    if argv is None:
        argv = sys.argv[1:]

    if not argv:
        print_usage()
        return 0

    first_arg = argv[0]
    if first_arg in ('--version', '-V'):
        print(f"serving-operator {VERSION}")
        return 0
    if first_arg in ('--help', '-h'):
        print_usage()
        return 0
    if first_arg in NOUN_COMMANDS:
        return dispatch_noun(first_arg, argv[1:])

    print(f"Error: Unknown command '{first_arg}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
