"""
Command-line interface for the domain intelligence system.

Subcommands:
- scan: Analyze a single domain
- check-keys: Run the fraud key health check
- serve: Run the boundary proxy
- config: Configuration management
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from . import __version__
from .audit_logger import AuditLogger, mask_secret
from .config import (
    ApiCredentials,
    KeyRotationConfig,
    LoggingConfig,
    MirrorConfig,
    ProviderEndpoints,
    SystemConfig,
    load_config_from_env,
)
from .exceptions import InputValidationError
from .i18n import get_message
from .key_rotation import KeyPool, KeyRotationGateway
from .models import MetadataResult, ReputationResult, ScanResult
from .orchestrator import DomainAnalysisOrchestrator, ScanOutcome
from .provider_gateway import ProviderGateway
from .proxy_server import create_app


DEFAULT_CONFIG_PATH = Path.home() / ".domain_intel" / "config.json"

EXIT_OK = 0
EXIT_SCAN_FAILED = 1
EXIT_INVALID_INPUT = 2


def load_config_from_file(
    config_path: Path,
    defaults: Optional[SystemConfig] = None,
) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Sections missing from the file are taken from `defaults`; credentials
    left empty in the file fall back to the defaults' credentials.

    Args:
        config_path: Path to the configuration file
        defaults: Base configuration (a plain SystemConfig if omitted)

    Returns:
        SystemConfig if successful, None otherwise
    """
    base = defaults or SystemConfig()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        credentials_data = {
            name: value for name, value in data.get("credentials", {}).items() if value
        }

        return SystemConfig(
            endpoints=ProviderEndpoints(**{**asdict(base.endpoints), **data.get("endpoints", {})}),
            credentials=ApiCredentials(**{**asdict(base.credentials), **credentials_data}),
            key_rotation=KeyRotationConfig(**{**asdict(base.key_rotation), **data.get("key_rotation", {})}),
            mirrors=MirrorConfig(**{**asdict(base.mirrors), **data.get("mirrors", {})}),
            logging=LoggingConfig(**{**asdict(base.logging), **data.get("logging", {})}),
            provider_timeout=float(data.get("provider_timeout", base.provider_timeout)),
            language=data.get("language", base.language),
        )

    except (OSError, ValueError, TypeError, AttributeError) as e:
        print(get_message("config.load_failed", base.language, error=e), file=sys.stderr)
        return None


def save_config_to_file(config: SystemConfig, config_path: Path) -> bool:
    """
    Save configuration to a JSON file.

    Credentials are written empty; they belong in the environment or .env.

    Returns:
        True if successful, False otherwise
    """
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = asdict(config)
        data["credentials"] = asdict(ApiCredentials())

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        return True

    except (OSError, TypeError) as e:
        print(get_message("config.save_failed", config.language, error=e), file=sys.stderr)
        return False


def resolve_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Environment configuration, overlaid by --config and --language."""
    config = load_config_from_env()
    if getattr(args, "config", None):
        config = load_config_from_file(Path(args.config), defaults=config)
        if config is None:
            return None
    if getattr(args, "language", None):
        config.language = args.language
    return config


def create_logger(config: SystemConfig, verbose: bool) -> Optional[AuditLogger]:
    if not verbose:
        return None
    return AuditLogger.from_config("debug", config.logging.output_format, sys.stderr)


def _print_scan(scan: ScanResult, language: str) -> None:
    location = ", ".join(v for v in (scan.city, scan.region, scan.country) if v != "-") or "-"
    yes_no = get_message("label.yes" if scan.is_vpn_proxy else "label.no", language)
    rows = [
        ("label.domain", scan.domain),
        ("label.created", scan.created or "-"),
        ("label.expires", scan.expires or "-"),
        ("label.domain_age", scan.domain_age),
        ("label.registrar", scan.registrar),
        ("label.name_servers", ", ".join(scan.name_servers) or "-"),
        ("label.ip_address", scan.ip_address),
        ("label.location", location),
        ("label.isp", scan.isp),
        ("label.abuse_score", f"{scan.abuse_score}%"),
        ("label.vpn_proxy", yes_no),
    ]
    print(f"== {get_message('section.scan', language)} ==")
    for key, value in rows:
        print(f"  {get_message(key, language)}: {value}")


def _print_reputation(reputation: ReputationResult, language: str) -> None:
    stats = ", ".join(f"{name}={count}" for name, count in reputation.last_analysis_stats.items()) or "-"
    print(f"== {get_message('section.reputation', language)} ==")
    print(f"  {get_message('label.risk_level', language)}: {reputation.risk_level.value}")
    print(f"  {get_message('label.analysis_stats', language)}: {stats}")


def _print_metadata(metadata: MetadataResult, language: str) -> None:
    print(f"== {get_message('section.metadata', language)} ==")
    if metadata.error:
        print(f"  {get_message('label.error', language)}: {metadata.error}")
        return
    print(f"  {get_message('label.title', language)}: {metadata.title or '-'}")
    print(f"  {get_message('label.description', language)}: {metadata.description or '-'}")
    print(f"  {get_message('label.completeness', language)}: {metadata.completeness_score}%")


def outcome_to_dict(outcome: ScanOutcome, metadata: MetadataResult) -> dict:
    return {
        "domain": outcome.domain,
        "error": outcome.error,
        "scan": outcome.scan.to_dict() if outcome.scan else None,
        "reputation": outcome.reputation.to_dict() if outcome.reputation else None,
        "metadata": metadata.to_dict(),
    }


async def scan_domain(
    domain: str,
    config: SystemConfig,
    as_json: bool = False,
    verbose: bool = False,
) -> int:
    """
    Scan one domain and print the three records.

    Returns:
        Exit code (0 success, 1 scan failure, 2 invalid input)
    """
    language = config.language
    logger = create_logger(config, verbose)

    async with DomainAnalysisOrchestrator(config=config, logger=logger) as orchestrator:
        if not as_json:
            print(get_message("scan.started", language, domain=domain.strip()))
        try:
            outcome = await orchestrator.analyze(domain)
        except InputValidationError as e:
            print(f"{get_message('validation.invalid_input', language)}: {e.message}", file=sys.stderr)
            return EXIT_INVALID_INPUT

        metadata = await outcome.wait_metadata()

    if as_json:
        print(json.dumps(outcome_to_dict(outcome, metadata), indent=2, ensure_ascii=False, default=str))
    else:
        if outcome.scan:
            _print_scan(outcome.scan, language)
        if outcome.reputation:
            _print_reputation(outcome.reputation, language)
        _print_metadata(metadata, language)
        print(outcome.error or get_message("scan.complete", language))

    return EXIT_OK if outcome.ok else EXIT_SCAN_FAILED


async def check_keys(config: SystemConfig, verbose: bool = False) -> int:
    """Probe every fraud key and print its status."""
    language = config.language
    pool = KeyPool(config.credentials.fraud_api_keys)
    if not len(pool):
        print(get_message("keys.none_configured", language), file=sys.stderr)
        return 1

    async with ProviderGateway(timeout=config.provider_timeout) as gateway:
        rotation = KeyRotationGateway(
            gateway=gateway,
            pool=pool,
            url_template=config.endpoints.fraud_url,
            probe_params={"ip": config.key_rotation.probe_ip},
            quota_signals=config.key_rotation.quota_signals,
            startup_wait_seconds=config.key_rotation.startup_wait_seconds,
            logger=create_logger(config, verbose),
        )
        statuses = await rotation.run_health_check()

    for index, (entry, status) in enumerate(zip(pool.entries, statuses)):
        print(get_message("keys.status_line", language, index=index, key=mask_secret(entry.key), status=status.value))
    print(get_message("keys.selected", language, index=pool.current_index))
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    """Handle the 'scan' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(scan_domain(
        domain=args.domain,
        config=config,
        as_json=args.json,
        verbose=args.verbose,
    ))


def cmd_check_keys(args: argparse.Namespace) -> int:
    """Handle the 'check-keys' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    return asyncio.run(check_keys(config, verbose=args.verbose))


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the 'serve' command."""
    config = resolve_config(args)
    if config is None:
        return 1
    logger = AuditLogger.from_config(config.logging.level, config.logging.output_format, sys.stderr)
    print(get_message("server.starting", config.language, host=args.host, port=args.port))
    create_app(config=config, logger=logger).run(host=args.host, port=args.port)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = Path(args.path) if args.path else DEFAULT_CONFIG_PATH
    language = args.language or "en"

    if args.action == "init":
        if config_path.exists() and not args.force:
            print(get_message("config.exists", language, path=config_path), file=sys.stderr)
            return 1
        config = SystemConfig(language=language)
        if not save_config_to_file(config, config_path):
            return 1
        print(get_message("config.written", language, path=config_path))
        return 0

    if not config_path.exists():
        print(get_message("config.not_found", language, path=config_path), file=sys.stderr)
        return 1
    config = load_config_from_file(config_path, defaults=load_config_from_env())
    if config is None:
        return 1

    credentials = config.credentials
    summary = [
        ("Language", config.language),
        ("Provider timeout", f"{config.provider_timeout}s"),
        ("Reputation key", mask_secret(credentials.reputation_api_key)),
        ("Abuse key", mask_secret(credentials.abuse_api_key)),
        ("Fraud keys", len(credentials.fraud_api_keys)),
        ("Mirrors", len(config.mirrors.mirrors)),
        ("DNSBL endpoint", config.endpoints.dnsbl_url),
        ("Log level", config.logging.level),
    ]
    print(get_message("config.source", config.language, path=config_path))
    for label, value in summary:
        print(f"  {label}: {value}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-intel",
        description="Multi-source domain and IP threat intelligence lookup",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'scan' command
    scan_parser = subparsers.add_parser(
        "scan",
        help="Analyze a single domain",
    )
    scan_parser.add_argument(
        "domain",
        help="Domain to analyze (e.g., example.com)",
    )
    scan_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the records as JSON",
    )
    scan_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    scan_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Output language (default: en)",
    )
    scan_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    scan_parser.set_defaults(func=cmd_scan)

    # 'check-keys' command
    keys_parser = subparsers.add_parser(
        "check-keys",
        help="Run the fraud API key health check",
    )
    keys_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    keys_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    keys_parser.set_defaults(func=cmd_check_keys)

    # 'serve' command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the fraud lookup proxy",
    )
    serve_parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port", "-p",
        type=int,
        default=8080,
        help="Port (default: 8080)",
    )
    serve_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    serve_parser.set_defaults(func=cmd_serve)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Default language for new configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
