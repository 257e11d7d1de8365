"""CLI entry: python -m daily_quote.cli <command> [--config path]."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from daily_quote.commands import CommandRouter, ConsoleEvent, probe_report
from daily_quote.errors import DirectoryError, DispatchBusyError, FetchError, ProviderPoolError, QuotePushError, UsageError
from daily_quote.message import format_dispatch_summary, format_provider_list
from daily_quote.models import RunMode
from daily_quote.runner import load_app, run, serve
from daily_quote.usage import format_usage

load_dotenv()

DEFAULT_CONFIG = "config/config.yaml"
LOG_DIR = Path("logs")


def _setup_logging(verbose: bool = False) -> None:
    LOG_DIR.mkdir(exist_ok=True)
    log_file = LOG_DIR / "app.log"
    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    formatter = logging.Formatter(fmt)
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not root.handlers:
        h_stderr = logging.StreamHandler(sys.stderr)
        h_stderr.setFormatter(formatter)
        root.addHandler(h_stderr)
        h_file = logging.FileHandler(log_file, encoding="utf-8")
        h_file.setFormatter(formatter)
        root.addHandler(h_file)


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Config file path (default: {DEFAULT_CONFIG})",
    )
    common.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch quotes and log messages but do not send to channels",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser = argparse.ArgumentParser(description="Daily quote push")
    sub = parser.add_subparsers(dest="command", required=True)
    run_parser = sub.add_parser("run", parents=[common], help="Run schedules matching the current minute once")
    run_parser.add_argument(
        "--schedule",
        default=None,
        help="Run only this schedule id (default: match by cron)",
    )
    sub.add_parser("serve", parents=[common], help="Run the scheduler until interrupted")
    sub.add_parser("push", parents=[common], help="Manual push to every destination")
    test_parser = sub.add_parser("test", parents=[common], help="Test push to one destination")
    test_parser.add_argument("destination")
    sub.add_parser("quote", parents=[common], help="Print one composed quote message")
    sub.add_parser("providers", parents=[common], help="List providers")
    sub.add_parser("probe", parents=[common], help="Check model endpoints and lines")
    sub.add_parser("usage", parents=[common], help="Token usage over the last 24 hours")
    command_parser = sub.add_parser("command", parents=[common], help="Route a chat command through the bot adapter")
    command_parser.add_argument("text")
    command_parser.add_argument("--sender", default=None, help="Sender id (default: first operator)")
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "run":
        run(args.config, args.schedule, args.dry_run)
        return 0
    if args.command == "serve":
        serve(args.config, args.dry_run)
        return 0

    app = load_app(args.config, dry_run=args.dry_run)
    if args.command == "push":
        try:
            summary = app.dispatcher.run(RunMode.MANUAL)
        except DispatchBusyError as e:
            logging.error("%s", e)
            return 1
        print(format_dispatch_summary(summary))
        return 0 if summary.fail_count == 0 else 2
    if args.command == "test":
        try:
            app.dispatcher.send_test(args.destination)
        except QuotePushError as e:
            logging.error("测试推送失败: %s", e)
            return 1
        print(f"已向 {args.destination} 发送测试推送")
        return 0
    if args.command == "quote":
        try:
            print(app.dispatcher.compose_one())
        except (FetchError, ProviderPoolError) as e:
            logging.error("获取语录失败: %s", e)
            return 1
        return 0
    if args.command == "providers":
        print(format_provider_list(app.registry.list(), app.registry.current))
        return 0
    if args.command == "probe":
        print("\n\n".join(probe_report(app)))
        return 0
    if args.command == "usage":
        if app.usage is None:
            logging.error("usage.url is not configured")
            return 1
        try:
            print(format_usage(app.usage.fetch(app.clock())))
        except UsageError as e:
            logging.error("%s", e)
            return 1
        return 0
    if args.command == "command":
        sender = args.sender or next(iter(sorted(app.operators)), "console")
        if not CommandRouter(app).handle(ConsoleEvent(args.text, sender_id=sender)):
            logging.warning("no command matched %r", args.text)
            return 1
        return 0
    return 1


def main() -> None:
    args = _build_parser().parse_args()

    _setup_logging(args.verbose)

    try:
        code = _dispatch(args)
    except FileNotFoundError as e:
        logging.error("%s", e)
        sys.exit(1)
    except ValueError as e:
        logging.error("%s", e)
        sys.exit(1)
    except (DirectoryError, ProviderPoolError) as e:
        logging.error("%s", e)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
