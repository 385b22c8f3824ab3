"""
main.py — govmap-agent Entry Point

Usage:
    python main.py                              # serve with config/config.yaml
    python main.py --log-level DEBUG            # verbose logging
    python main.py --config path/to/config.yaml
    python main.py --host 0.0.0.0 --port 8080   # override server.host / server.port
"""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

# .env must be loaded before Settings reads the environment
ENV_PATH = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=ENV_PATH)

import argparse  # noqa: E402
import sys  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="govmap-agent",
        description="govmap-agent — conversational map assistant backend",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $GOVMAP_AGENT_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument("--host", default=None, help="Override server.host")
    parser.add_argument("--port", type=int, default=None, help="Override server.port")
    return parser.parse_args()


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    from pydantic import ValidationError

    from config.settings import ConfigError, load_settings
    from observability.logger import get_logger, setup_logging

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (OSError, ValueError) as exc:
        print(f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n", file=sys.stderr)
        sys.exit(1)

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # CLI --log-level flag overrides config.yaml
    setup_logging(
        level=args.log_level or settings.log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("govmap_agent.main")
    return settings, log


def main() -> int:
    import uvicorn

    from gateway.app import create_app

    args = parse_args()
    settings, log = bootstrap(args)

    host = args.host or settings.server.host
    port = args.port or settings.server.port
    log.info(
        "main.starting",
        version=settings.agent.version,
        host=host,
        port=port,
        model=settings.llm.model,
        store=settings.store.backend,
        frontend_origin=settings.server.frontend_origin,
    )

    app = create_app(settings)
    # log_config=None keeps uvicorn on the structlog handlers set up above
    uvicorn.run(app, host=host, port=port, log_config=None)
    log.info("main.stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
