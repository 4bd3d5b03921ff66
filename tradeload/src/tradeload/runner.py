import argparse
import asyncio
import logging
import signal
from dataclasses import replace
from pathlib import Path

from tradeload.account_task import AccountTask
from tradeload.config import Settings, load_settings
from tradeload.constants import TaskState
from tradeload.ledger import Web3Ledger
from tradeload.logging_config import setup_logging
from tradeload.models import Account, TaskOutcome
from tradeload.pool import WorkerPool
from tradeload.proof import ProofClient
from tradeload.store import OutcomeStore
from tradeload.wallets import load_wallets

log = logging.getLogger("tradeload.runner")


async def run(settings: Settings, accounts: list[Account]) -> OutcomeStore:
    """Run every configured round over all accounts."""
    ledger = Web3Ledger(settings.rpc_url, rpc_timeout=settings.rpc_timeout)
    store = OutcomeStore()
    pool = WorkerPool(
        settings.max_threads,
        task_timeout=settings.task_timeout,
        round_cooldown=settings.round_cooldown,
        store=store,
    )

    try:
        async with ProofClient(settings.proof_url, timeout=settings.proof_timeout) as proofs:

            async def make_task(account: Account, round_no: int) -> TaskOutcome:
                # Every round starts from scratch: fresh approval cache, fresh nonce seed.
                task = AccountTask(
                    replace(account, approved_spenders=set()),
                    ledger,
                    proofs,
                    settings,
                    resync_first=store.needs_resync(account.address),
                )
                return await task.run()

            await pool.run(accounts, make_task, rounds=settings.rounds)
    finally:
        await ledger.aclose()

    for outcome in await store.find_by_state(TaskState.FAILED, TaskState.TIMED_OUT):
        log.warning("account %s %s: %s", outcome.account_index + 1, outcome.state, outcome.reason)
    log.info("all rounds done: %s", store.snapshot_stats())
    return store


async def _main(settings: Settings, accounts: list[Account]) -> int:
    loop = asyncio.get_running_loop()
    runner = asyncio.create_task(run(settings, accounts), name="rounds")
    stopped = asyncio.Event()
    fatal: list[str] = []

    def on_signal(signame: str) -> None:
        log.warning("received %s, stopping", signame)
        stopped.set()
        runner.cancel()

    def on_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        log.error("unhandled error in event loop: %s", context.get("message"), exc_info=context.get("exception"))
        fatal.append(context.get("message", "unhandled error"))
        runner.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, on_signal, sig.name)
    loop.set_exception_handler(on_unhandled)

    try:
        await runner
    except asyncio.CancelledError:
        if fatal:
            return 1
        if stopped.is_set():
            log.info("stopped")
            return 0
        raise
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        loop.set_exception_handler(None)
    return 1 if fatal else 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tradeload", description="Claim, approve and trade across many wallets.")
    parser.add_argument("-c", "--config", type=Path, help="Path to a config.toml (default: packaged one).")
    parser.add_argument("-w", "--wallets", type=Path, help="Newline-delimited private key file.")
    parser.add_argument("-r", "--rounds", type=int, help="Number of full passes over the wallet list.")
    parser.add_argument("-t", "--threads", type=int, help="Maximum accounts processed concurrently.")
    parser.add_argument("--timeout", type=float, help="Per-account time budget in seconds.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
        overrides = {
            "wallet_file": args.wallets,
            "rounds": args.rounds,
            "max_threads": args.threads,
            "task_timeout": args.timeout,
        }
        settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})
        setup_logging(filename=settings.log_file)
        log.info("starting")
        accounts = load_wallets(settings.wallet_file)
        code = asyncio.run(_main(settings, accounts))
    except KeyboardInterrupt:
        log.warning("interrupted")
        return 0
    except Exception:
        log.exception("unrecoverable error")
        return 1
    log.info("finished with status %s", code)
    return code
