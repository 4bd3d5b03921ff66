import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

import tradeload.constants as C
from tradeload.constants import TaskState
from tradeload.models import Account, TaskOutcome
from tradeload.store import OutcomeStore

log = logging.getLogger("tradeload.pool")

TaskFactory = Callable[[Account, int], Awaitable[TaskOutcome]]


class WorkerPool:
    """Runs one task per account with at most `max_workers` in flight.

    Each task gets a hard wall-clock budget. Whenever a task finishes, for
    whatever reason, the next queued account starts straight away. A round
    is over when the backlog is empty and nothing is running.
    """

    def __init__(
        self,
        max_workers: int,
        *,
        task_timeout: float = C.TASK_TIMEOUT,
        round_cooldown: float = C.ROUND_COOLDOWN,
        store: OutcomeStore | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        log: logging.Logger | logging.LoggerAdapter = log,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.task_timeout = task_timeout
        self.round_cooldown = round_cooldown
        self.store = store or OutcomeStore()
        self.sleep = sleep
        self.log = log
        self.active = 0
        self.max_active = 0

    async def run(self, accounts: Sequence[Account], make_task: TaskFactory, rounds: int = 1) -> list[list[TaskOutcome]]:
        results = []
        for round_no in range(rounds):
            self.log.info("round %s/%s: %s accounts, %s workers", round_no + 1, rounds, len(accounts), self.max_workers)
            outcomes = await self.run_round(accounts, make_task, round_no)
            results.append(outcomes)
            ok = sum(1 for o in outcomes if o.ok)
            self.log.info("round %s/%s finished: %s ok, %s not ok", round_no + 1, rounds, ok, len(outcomes) - ok)
            if round_no + 1 < rounds:
                await self.sleep(self.round_cooldown)
        self.log.info("all rounds finished %s", self.store.snapshot_stats())
        return results

    async def run_round(self, accounts: Sequence[Account], make_task: TaskFactory, round_no: int = 0) -> list[TaskOutcome]:
        backlog = iter(accounts)
        running: dict[asyncio.Task, Account] = {}
        outcomes: list[TaskOutcome] = []

        def start_next() -> bool:
            account = next(backlog, None)
            if account is None:
                return False
            task = asyncio.create_task(self._run_one(account, make_task, round_no), name=f"account-{account.index + 1}")
            running[task] = account
            self.active = len(running)
            self.max_active = max(self.max_active, self.active)
            return True

        while len(running) < self.max_workers and start_next():
            pass

        try:
            while running:
                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    running.pop(task)
                    self.active = len(running)
                    outcome = task.result()
                    outcomes.append(outcome)
                    await self.store.record(round_no, outcome)
                    start_next()
        finally:
            # Only reached with tasks left when we are being cancelled.
            for task in running:
                task.cancel()
            if running:
                await asyncio.gather(*running, return_exceptions=True)
                self.active = 0
        return outcomes

    async def _run_one(self, account: Account, make_task: TaskFactory, round_no: int) -> TaskOutcome:
        timeout = asyncio.timeout(self.task_timeout)
        try:
            async with timeout:
                return await make_task(account, round_no)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if isinstance(e, TimeoutError) and timeout.expired():
                self.log.error("account %s timed out after %.0fs", account.index + 1, self.task_timeout)
                return TaskOutcome(
                    account_index=account.index,
                    address=account.address,
                    state=TaskState.TIMED_OUT,
                    reason=f"timed out after {self.task_timeout:.0f}s",
                )
            self.log.exception("account %s task crashed", account.index + 1)
            return TaskOutcome(
                account_index=account.index,
                address=account.address,
                state=TaskState.FAILED,
                reason=f"{e.__class__.__name__}: {e}",
            )
