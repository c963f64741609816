"""CLI entrypoint for costreport-mirror."""
import sys
import argparse
import logging

from .validators import mask, validate_secret_name
from ..config_loader import apply_authentication, describe, load_config
from ..errors import MirrorError
from ..logging_setup import configure_logging

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def _load(args):
    """Load config, then configure logging and authentication from it."""
    config = load_config(args.config)
    configure_logging(config.log_file, config.log_level, verbose=args.verbose)
    apply_authentication(config.authentication)
    return config


def cmd_version(args):
    """Show version information."""
    print(f"costreport-mirror {VERSION}")


def cmd_run(args):
    """Fetch credentials and mirror once."""
    from costreport_mirror.run.workflows.run_operations import run

    config = _load(args)
    sys.exit(run(config))


def cmd_bootstrap(args):
    """Deferred bootstrap: wait, install, schedule, first run."""
    from costreport_mirror.bootstrap.workflows.launcher import bootstrap

    config = _load(args)
    sys.exit(bootstrap(config))


def cmd_bootstrap_status(args):
    """Show what bootstrap has already done on this machine."""
    from costreport_mirror.bootstrap.workflows.launcher import bootstrap_state

    config = _load(args)
    state = bootstrap_state(config)

    def mark(ok):
        return "yes" if ok else "no"

    print(f"rclone installed:   {mark(state.tool_installed)}")
    print(f"packages installed: {mark(state.packages_installed)}", end="")
    print(f" (missing: {', '.join(state.missing_packages)})" if state.missing_packages else "")
    print(f"cron registered:    {mark(state.schedule_registered)}")
    print(f"unit installed:     {mark(state.unit_installed)}")
    sys.exit(0 if state.complete else 1)


def cmd_install_unit(args):
    """Install and start the deferred bootstrap unit."""
    from costreport_mirror.bootstrap.workflows.launcher import install_bootstrap_unit

    config = _load(args)
    result = install_bootstrap_unit(config)
    state = "written" if result["written"] else "unchanged"
    print(f"Bootstrap unit {config.bootstrap.unit_name} {state} and started")


def cmd_check(args):
    """Compare source and destination checksums without transferring."""
    from costreport_mirror.secrets.workflows.secret_operations import fetch_credentials
    from costreport_mirror.sync.workflows.mirror import check

    config = _load(args)
    credentials = fetch_credentials(config.secrets)
    plan = check(config.job, credentials)

    for label, paths in (
        ("new", plan.to_copy),
        ("changed", plan.to_update),
        ("delete", plan.to_delete),
    ):
        for path in paths:
            print(f"{label:8} {path}")
    print(
        f"{len(plan.to_copy)} new, {len(plan.to_update)} changed, "
        f"{len(plan.to_delete)} to delete, {len(plan.unchanged)} unchanged"
    )
    sys.exit(0 if plan.in_sync else 1)


def cmd_config_show(args):
    """Show resolved configuration."""
    config = load_config(args.config)
    for line in describe(config):
        print(line)


def cmd_secrets_get(args):
    """Fetch one secret the way a run does, to verify access."""
    from costreport_mirror.secrets.domains.models import SecretReference
    from costreport_mirror.secrets.workflows.secret_operations import fetch_credential

    validate_secret_name(args.secret_name)
    config = _load(args)
    ref = SecretReference(
        secret_name=args.secret_name,
        project_id=args.project_id or config.project_id,
        auth_mode=config.authentication.mode,
    )
    credential = fetch_credential(ref)
    value = credential.value if args.reveal else mask(credential.value)
    print(f"Secret '{args.secret_name}': {value}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="costreport-mirror",
        description="Mirror a cost-report bucket to another object store with short-lived credentials",
        epilog="""
Exit codes:
  0   - Success
  1   - Unexpected error
  2   - Configuration or usage error
  3   - Secret store unreachable or access denied
  4   - Secret payload malformed
  5   - Bootstrap installation failed
  75  - Another run is in progress
  127 - rclone not installed
  any other - rclone's own exit code

Environment variables:
  COSTREPORT_MIRROR_CONFIG    - Config file path (default /etc/costreport-mirror/config.yml)
  COSTREPORT_MIRROR_AUTH_MODE - ambient | service_account (overrides config file)
  GCP_PROJECT                 - GCP project ID (overrides config file)
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show progress on stderr")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")
    subparsers.add_parser(
        "run",
        help="Fetch credentials and mirror once",
        description="Run invoked by cron. Alerts the configured topic on failure.",
    )
    subparsers.add_parser(
        "bootstrap",
        help="Deferred bootstrap (run by the oneshot unit)",
        description="""
Wait for the network, install packages and rclone, register the cron
entry, then mirror once. Safe to run again.
        """,
    )
    subparsers.add_parser("bootstrap-status", help="Show bootstrap progress on this machine")
    subparsers.add_parser(
        "install-unit",
        help="Install and start the bootstrap unit",
        description="For the first-boot handler: returns without waiting for the bootstrap.",
    )
    subparsers.add_parser("check", help="Report what the next run would transfer")

    config_parser = subparsers.add_parser("config", help="Configuration management")
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_subparsers.add_parser("show", help="Show resolved configuration")

    secrets_parser = subparsers.add_parser("secrets", help="Secret store operations")
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")
    get_parser = secrets_subparsers.add_parser(
        "get",
        help="Fetch and decode a secret",
        description="Fetch a secret, decode it and print a masked preview.",
    )
    get_parser.add_argument("secret_name", help="Name of the secret (format: [a-zA-Z0-9_-]+)")
    get_parser.add_argument("--project-id", help="GCP project ID (defaults to the config file's)")
    get_parser.add_argument("--reveal", action="store_true", help="Print the full decoded value")

    return parser, config_parser, secrets_parser


COMMANDS = {
    "version": cmd_version,
    "run": cmd_run,
    "bootstrap": cmd_bootstrap,
    "bootstrap-status": cmd_bootstrap_status,
    "install-unit": cmd_install_unit,
    "check": cmd_check,
}


def main(argv=None):
    """Main CLI entrypoint."""
    parser, config_parser, secrets_parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    # Console only until a command loads the config and adds the log file.
    configure_logging(verbose=args.verbose)

    try:
        if args.command in COMMANDS:
            COMMANDS[args.command](args)
        elif args.command == "config":
            if args.config_command == "show":
                cmd_config_show(args)
            else:
                config_parser.print_help()
                sys.exit(2)
        elif args.command == "secrets":
            if args.secrets_command == "get":
                cmd_secrets_get(args)
            else:
                secrets_parser.print_help()
                sys.exit(2)
        else:
            parser.print_help()
            sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except MirrorError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    except Exception as e:
        # The console formatter drops the traceback; the log file keeps it.
        logger.error(f"Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
