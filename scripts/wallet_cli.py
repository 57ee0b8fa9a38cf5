#!/usr/bin/env python3
"""scripts/wallet_cli.py

CLI entrypoint for testnet transfers.

Usage:
    python -m scripts.wallet_cli balance --network sepolia
    python -m scripts.wallet_cli send --network sepolia --to <addr> --amount 0.01 [--no-wait]
    python -m scripts.wallet_cli batch --network base-sepolia --recipients <file.txt> --amount 0.001 [--wait]
    python -m scripts.wallet_cli schedule --network sepolia --cron "0 * * * *" --to <addr> --amount 0.001 [--confirm] [--run-now]
    python -m scripts.wallet_cli interactive

Environment (.env is loaded if present):
    PRIVATE_KEY, RPC_URL_SEPOLIA, RPC_URL_BASE_SEPOLIA,
    TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID (optional alerts for scheduled sends)

Results go to stdout, diagnostics to stderr.
"""

from __future__ import annotations

import argparse
import functools
import json
import logging
import sys
import time
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv
from web3 import Web3

from chain.session import ChainSession, open_session
from chain.web3_client import create_chain_client
from config.loader import DEFAULT_CONFIG_PATH, LoadedConfig, load_app_config
from execution.batch_runner import send_batch, summarize
from execution.dispatcher import Dispatcher
from execution.errors import InvalidRequest, TransferError
from execution.models import TransferRequest, TransferResult
from execution.scheduler import ScheduledJob, TransferScheduler
from integration.key_manager import load_signing_identity
from integration.recipient_source import load_recipients
from monitoring.alerts import TelegramBot, make_result_notifier

logger = logging.getLogger("wallet_cli")


def parse_ether(text: str) -> int:
    """Convert an ether amount string to wei.

    Raises:
        InvalidRequest: If the amount is not a decimal number.
    """
    try:
        value = Decimal(str(text).strip())
    except InvalidOperation:
        raise InvalidRequest(f"Amount is not a number: {text!r}") from None
    if not value.is_finite():
        raise InvalidRequest(f"Amount is not a number: {text!r}")
    try:
        return int(Web3.to_wei(value, "ether"))
    except ValueError as e:
        raise InvalidRequest(f"Amount out of range: {text!r}: {e}") from None


def format_ether(wei: int) -> str:
    return f"{Web3.from_wei(wei, 'ether')}"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Signed transfers on EVM test networks")
    parser.add_argument("--config", type=str, default=DEFAULT_CONFIG_PATH, help="Networks config YAML [default: the packaged config/networks.yaml]")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level [default: INFO]")
    parser.add_argument("--json", action="store_true", help="Print results as JSON lines")

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("balance", help="Show the account balance")
    p.add_argument("--network", type=str, required=True)

    p = sub.add_parser("send", help="Send one transfer")
    p.add_argument("--network", type=str, required=True)
    p.add_argument("--to", type=str, required=True, help="Recipient address")
    p.add_argument("--amount", type=str, required=True, help="Amount in ETH")
    p.add_argument("--no-wait", action="store_true", help="Do not wait for confirmation")

    p = sub.add_parser("batch", help="Send the same amount to every address in a file")
    p.add_argument("--network", type=str, required=True)
    p.add_argument("--recipients", type=str, required=True, help="File with one address per line")
    p.add_argument("--amount", type=str, required=True, help="Amount in ETH per recipient")
    p.add_argument("--wait", action="store_true", help="Wait for each confirmation before the next send")

    p = sub.add_parser("schedule", help="Send on a cron schedule until interrupted")
    p.add_argument("--network", type=str, required=True)
    p.add_argument("--cron", type=str, required=True, help="Cron expression (5 fields, or 6 with leading seconds)")
    p.add_argument("--to", type=str, required=True, help="Recipient address")
    p.add_argument("--amount", type=str, required=True, help="Amount in ETH per fire")
    p.add_argument("--confirm", action="store_true", help="Report confirmations asynchronously")
    p.add_argument("--run-now", action="store_true", help="Also fire once immediately")

    sub.add_parser("interactive", help="Menu-driven mode")

    return parser.parse_args(argv)


class WalletApp:
    """Wires config, identity, sessions and the scheduler for the CLI."""

    def __init__(self, loaded: LoadedConfig, as_json: bool = False, out: Callable[[str], None] = print):
        self.loaded = loaded
        self.as_json = as_json
        self.out = out
        self.dispatcher = Dispatcher(loaded.dispatch)
        self._scheduler: Optional[TransferScheduler] = None
        # One session per network so interactive and scheduled sends share its lock.
        self._sessions: Dict[str, ChainSession] = {}

    def open(self, network_id: str) -> ChainSession:
        session = self._sessions.get(network_id)
        if session is not None:
            return session
        network = self.loaded.registry.resolve(network_id)
        identity = load_signing_identity()
        factory = functools.partial(create_chain_client, request_timeout=self.loaded.dispatch.request_timeout_sec)
        session = open_session(network, identity, client_factory=factory)
        self._sessions[network_id] = session
        return session

    def scheduler(self, confirm_async: bool = False) -> TransferScheduler:
        if self._scheduler is None:
            bot = TelegramBot.from_env()
            self._scheduler = TransferScheduler(
                self.dispatcher,
                on_result=self._scheduled_result_sink(bot),
                confirm_async=confirm_async,
                config=self.loaded.dispatch,
            )
        elif confirm_async:
            self._scheduler.confirm_async = True
        return self._scheduler

    def _scheduled_result_sink(self, bot: TelegramBot):
        notify = make_result_notifier(bot) if bot.enabled else None

        def _sink(job: ScheduledJob, result: TransferResult) -> None:
            stamp = time.strftime("%Y-%m-%dT%H:%M:%S")
            if self.as_json:
                self.out(json.dumps({"ts": stamp, "job_id": job.job_id, **result.to_dict()}))
            else:
                self.out(f"{stamp} [{job.job_id}] {self.describe(result)}")
            if notify is not None:
                notify(job, result)

        return _sink

    def describe(self, result: TransferResult) -> str:
        if result.kind == "failed":
            return f"FAILED {result.recipient} on {result.network}: {result.reason}: {result.detail}"
        if result.kind == "confirmed" and result.reverted:
            return f"REVERTED {result.tx_hash} in block {result.block.number} ({result.recipient})"
        if result.kind == "confirmed":
            return f"Confirmed {result.tx_hash} in block {result.block.number} ({result.recipient})"
        suffix = f" (warning: {result.warning})" if result.warning else ""
        return f"Sent {result.tx_hash} to {result.recipient} on {result.network}{suffix}"

    def report(self, result: TransferResult) -> None:
        if self.as_json:
            self.out(json.dumps(result.to_dict()))
        else:
            self.out(self.describe(result))

    # ---- commands ----

    def balance(self, network_id: str) -> int:
        session = self.open(network_id)
        wei = session.get_balance()
        if self.as_json:
            self.out(json.dumps({"network": network_id, "address": session.account_address, "balance_wei": wei}))
        else:
            self.out(f"=== Balance on {network_id} ===\n{session.account_address}: {format_ether(wei)} ETH ({wei} wei)")
        return wei

    def send(self, network_id: str, to: str, amount: str, wait: bool = True) -> TransferResult:
        amount_wei = parse_ether(amount)
        session = self.open(network_id)
        logger.info(f"[wallet_cli] Sending {amount} ETH on {network_id} to {to}...")
        result = self.dispatcher.send(session, TransferRequest(recipient=to, amount_wei=amount_wei), await_confirmation=wait)
        self.report(result)
        return result

    def batch(self, network_id: str, recipients_path: str, amount: str, wait: bool = False) -> List[TransferResult]:
        amount_wei = parse_ether(amount)
        recipients = load_recipients(recipients_path)
        session = self.open(network_id)
        logger.info(f"[wallet_cli] Sending {amount} ETH to {len(recipients)} recipients on {network_id}")
        results = send_batch(session, recipients, amount_wei, await_confirmation=wait, dispatcher=self.dispatcher)
        for r in results:
            self.report(r)
        summary = summarize(results)
        if self.as_json:
            self.out(json.dumps({"summary": summary.to_dict()}))
        else:
            self.out(f"{summary.total} recipients: {summary.submitted + summary.confirmed} sent, {summary.failed} failed")
        return results

    def schedule(self, network_id: str, cron: str, to: str, amount: str, confirm: bool = False) -> ScheduledJob:
        amount_wei = parse_ether(amount)
        request = TransferRequest(recipient=to, amount_wei=amount_wei)
        scheduler = self.scheduler(confirm_async=confirm)
        session = self.open(network_id)
        job = scheduler.schedule(cron, session, request)
        self.out(f"Scheduled job {job.job_id}: {amount} ETH on {network_id} to {to} at '{cron}'")
        return job

    def close(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        for s in self._sessions.values():
            s.close()
        self._sessions.clear()


# ---- interactive menu ----

MENU = """
Menu:
1) Check Balance
2) Send ETH
3) Schedule Recurring Send
4) Batch Send From File
5) List Scheduled Jobs
6) Cancel Scheduled Job
0) Exit"""


def choose_network(app: WalletApp, prompt: Callable[[str], str]) -> str:
    names = app.loaded.registry.identifiers()
    print("\nChoose network:")
    for i, name in enumerate(names, start=1):
        print(f"{i}) {name}")
    choice = prompt(f"Network (1-{len(names)}): ").strip()
    try:
        return names[int(choice) - 1]
    except (ValueError, IndexError):
        print(f"Invalid choice, defaulting to {names[0]}")
        return names[0]


def run_interactive(app: WalletApp, prompt: Callable[[str], str] = input) -> None:
    print("Multi-Net Testnet Wallet Automation (Interactive)")
    while True:
        print(MENU)
        choice = prompt("Choose an option: ").strip()
        try:
            if choice == "1":
                app.balance(choose_network(app, prompt))
            elif choice == "2":
                net = choose_network(app, prompt)
                to = prompt("Enter recipient address: ").strip()
                amount = prompt("Enter amount (ETH): ").strip()
                app.send(net, to, amount, wait=True)
            elif choice == "3":
                net = choose_network(app, prompt)
                cron = prompt("Enter cron expression (e.g. 0 * * * *): ").strip()
                to = prompt("Enter recipient address: ").strip()
                amount = prompt("Enter amount (ETH): ").strip()
                app.schedule(net, cron, to, amount)
                print("Job running in background. Keep the menu open to keep it alive.")
            elif choice == "4":
                net = choose_network(app, prompt)
                path = prompt("Recipients file: ").strip()
                amount = prompt("Enter amount per recipient (ETH): ").strip()
                app.batch(net, path, amount)
            elif choice == "5":
                jobs = app.scheduler().jobs()
                if not jobs:
                    print("No scheduled jobs.")
                for job in jobs:
                    print(json.dumps(job.to_dict()))
            elif choice == "6":
                scheduler = app.scheduler()
                job = scheduler.get_job(prompt("Job id: ").strip())
                if job is None:
                    print("No such job.")
                else:
                    scheduler.cancel(job)
                    print(f"Cancelled {job.job_id}.")
            elif choice == "0":
                print("Goodbye!")
                return
            else:
                print("Invalid choice, please try again.")
        except TransferError as e:
            print(f"Error ({e.code}): {e}", file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        loaded = load_app_config(args.config)
    except TransferError as e:
        print(f"[wallet_cli] Config error: {e}", file=sys.stderr)
        return 1

    app = WalletApp(loaded, as_json=args.json)
    try:
        if args.command == "balance":
            app.balance(args.network)
        elif args.command == "send":
            result = app.send(args.network, args.to, args.amount, wait=not args.no_wait)
            return 0 if result.ok else 2
        elif args.command == "batch":
            results = app.batch(args.network, args.recipients, args.amount, wait=args.wait)
            return 0 if all(r.ok for r in results) else 2
        elif args.command == "schedule":
            job = app.schedule(args.network, args.cron, args.to, args.amount, confirm=args.confirm)
            if args.run_now:
                app.scheduler().fire(job)
            print("[wallet_cli] Scheduler running. Press Ctrl+C to stop.", file=sys.stderr)
            while True:
                time.sleep(1)
        elif args.command == "interactive":
            run_interactive(app)
    except TransferError as e:
        print(f"[wallet_cli] {e.code}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[wallet_cli] Interrupted by user", file=sys.stderr)
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
