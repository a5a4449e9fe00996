"""Console entry point for webpilot."""
from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from webpilot.src.actionlog.store import ActionLog
from webpilot.src.utils.config import CONFIG
from webpilot.src.utils.errors import HostUnavailableError


def _print_json(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


async def _run_local(args: argparse.Namespace) -> int:
    from playwright.async_api import async_playwright

    from webpilot.src.engine.controller import ExecutionController
    from webpilot.src.executor.executor import ActionExecutor
    from webpilot.src.oracle.planner import LLMPlanner
    from webpilot.src.oracle.verifier import LLMVerifier
    from webpilot.src.page.view import PlaywrightPageView
    from webpilot.src.utils.models import ExecutionStatus, NavigateAction

    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=not args.headed)
        try:
            page = await browser.new_page()
            view = PlaywrightPageView(page)
            executor = ActionExecutor(
                CONFIG.engine,
                action_log=ActionLog(),
                fallback_callback=lambda message: print(f"[Fallback] {message}"),
            )
            controller = ExecutionController(view, LLMPlanner(), LLMVerifier(), executor=executor)

            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, controller.cancel)
            except (NotImplementedError, RuntimeError):
                pass

            if args.url:
                await executor.execute(view, NavigateAction(url=args.url))
            session = await controller.run(
                args.command,
                max_steps=args.max_steps,
                confidence_threshold=args.threshold,
            )
            await view.close()
        finally:
            await browser.close()

    _print_json(session.model_dump(mode="json", exclude={"steps"}))
    return 0 if session.status is ExecutionStatus.SATISFIED else 1


def _host_client():
    from webpilot.src.host_client import HostClient

    return HostClient()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webpilot", description="Drive a web page with natural-language commands")
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    run = subparsers.add_parser("run", help="Run one command in a local browser")
    run.add_argument("command")
    run.add_argument("--url", help="Page to open before running the command")
    run.add_argument("--max-steps", type=int, default=None)
    run.add_argument("--threshold", type=float, default=None)
    run.add_argument("--headed", action="store_true", help="Show the browser window")

    serve = subparsers.add_parser("serve", help="Start the HTTP host")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8011)

    send = subparsers.add_parser("send", help="Run a command on a running host")
    send.add_argument("command")
    send.add_argument("--session", default="default")
    send.add_argument("--url", help="Page to open before running the command")
    send.add_argument("--max-steps", type=int, default=None)
    send.add_argument("--threshold", type=float, default=None)

    stop = subparsers.add_parser("stop", help="Stop the command running on a host session")
    stop.add_argument("--session", default="default")

    explain = subparsers.add_parser("explain", help="Explain the page open in a host session")
    explain.add_argument("--session", default="default")

    logs = subparsers.add_parser("logs", help="Show or clear the local action log")
    logs.add_argument("--limit", type=int, default=50)
    logs.add_argument("--clear", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    if args.subcommand == "run":
        return asyncio.run(_run_local(args))

    if args.subcommand == "serve":
        from webpilot.src.browser_host import main as serve_main

        serve_main(host=args.host, port=args.port)
        return 0

    if args.subcommand == "logs":
        log = ActionLog()
        if args.clear:
            return 0 if log.clear() else 1
        for record in log.recent(args.limit):
            print(record.model_dump_json(exclude_none=True))
        return 0

    try:
        client = _host_client()
        if args.subcommand == "send":
            _print_json(
                client.execute_command(
                    args.command,
                    session_id=args.session,
                    max_steps=args.max_steps,
                    confidence_threshold=args.threshold,
                    start_url=args.url,
                )
            )
        elif args.subcommand == "stop":
            _print_json(client.stop(args.session))
        elif args.subcommand == "explain":
            _print_json(client.explain(args.session))
    except HostUnavailableError as exc:
        print(f"[webpilot] {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
