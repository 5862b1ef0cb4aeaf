#!/usr/bin/env python3
"""
Command-line entry point for the site monitor.

Checks one URL for changes, emails operators when it changed and sends a
second notification when the "Buy Tickets" marker shows up. Meant to be
run by an external scheduler; each invocation performs a single check.

Usage:
    site_monitor.py -url <url> [-file <filename>] -smtp <smtp.json>
                    -email <email.json> -tickets <tickets.json>
"""

import argparse
import sys
from typing import List, Optional

from monitor.exceptions import ConfigError, MonitorError
from monitor.pipeline import build_pipeline
from utilities.config import load_email_config, load_settings, load_smtp_config
from utilities.logger import get_logger, setup_logging

DEFAULT_SNAPSHOT_FILE = "/tmp/site_monitor-url"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site_monitor.py",
        description="Notify by email when a web page changes.",
    )
    parser.add_argument("-url", required=True, help="URL to monitor.")
    parser.add_argument("-file", default=DEFAULT_SNAPSHOT_FILE,
                        help="Download to this file.")
    parser.add_argument("-smtp", required=True, help="SMTP server config file.")
    parser.add_argument("-email", required=True, help="Email message config file.")
    parser.add_argument("-tickets", required=True,
                        help="Buy Tickets button email message config file.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run one check. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"site_monitor: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.get_log_file_path(),
        debug=settings.debug
    )
    logger = get_logger(__name__)

    try:
        smtp_config = load_smtp_config(args.smtp)
        change_email = load_email_config(args.email)
        marker_email = load_email_config(args.tickets)
    except ConfigError as e:
        logger.error("Configuration error", error=str(e))
        return 1

    logger.info("SMTP config loaded", smtp=smtp_config.address, username=smtp_config.username)
    logger.info("Email config loaded", email=change_email.model_dump())
    logger.info("Tickets config loaded", tickets=marker_email.model_dump())

    pipeline = build_pipeline(settings, smtp_config, change_email, marker_email)

    try:
        result = pipeline.run(args.url, args.file)
    except MonitorError as e:
        logger.error("Monitoring run failed", error_type=type(e).__name__, error=str(e))
        return 1

    if not result.success:
        for dispatch in result.dispatches:
            if not dispatch.success:
                logger.error(
                    "Notification was not fully delivered",
                    notification=dispatch.event.value,
                    stage=dispatch.stage,
                    failed_recipient=dispatch.failed_recipient,
                    undelivered=dispatch.undelivered,
                )
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
