"""Serve command: run the dashboard API with uvicorn."""

import logging
import sys

import uvicorn

from wpdock.api.app import create_app
from wpdock.commands.common import load_app_config
from wpdock.config import ConfigError
from wpdock.logging_setup import setup_server_logging

logger = logging.getLogger(__name__)


def handle_serve(args):
    """CLI handler for 'serve'."""
    setup_server_logging(verbose=args.verbose)
    try:
        config = load_app_config(args)
    except (ConfigError, FileNotFoundError, ValueError) as e:
        logger.error(f"Error: {e}")
        sys.exit(1)
    if config.host is None:
        logger.warning(f"Host connection is not configured; set {', '.join(config.missing_host_vars)}. Site operations will fail.")
    if not config.admin_password:
        logger.warning("WPDOCK_ADMIN_PASSWORD is not set; dashboard login is disabled.")

    app = create_app(config)
    logger.info(f"Serving API on http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)


def register_serve_command(subparsers):
    """Register the serve subcommand."""
    parser = subparsers.add_parser("serve", help="Run the dashboard API server")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    parser.set_defaults(func=handle_serve)
