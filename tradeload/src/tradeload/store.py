import asyncio
import logging
from collections import Counter

from tradeload.constants import TaskState
from tradeload.models import TaskOutcome

log = logging.getLogger("tradeload.store")


class OutcomeStore:
    """Outcome of every account task, per round, with running tallies."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._records: dict[tuple[int, str], TaskOutcome] = {}
        self.count_by_state: Counter[str] = Counter()
        self.timed_out: set[str] = set()

    def _recount(self) -> None:
        self.count_by_state = Counter(str(rec.state) for rec in self._records.values())

    async def record(self, round_no: int, outcome: TaskOutcome) -> None:
        async with self._lock:
            self._records[(round_no, outcome.address)] = outcome
            if outcome.state == TaskState.TIMED_OUT:
                self.timed_out.add(outcome.address)
            else:
                self.timed_out.discard(outcome.address)
            self._recount()
        log.debug("round %s: %s", round_no + 1, outcome)

    def needs_resync(self, address: str) -> bool:
        """True if the last task for this account was cut off by its timeout."""
        return address in self.timed_out

    async def by_round(self, round_no: int) -> list[TaskOutcome]:
        async with self._lock:
            return [rec for (r, _), rec in self._records.items() if r == round_no]

    async def find_by_state(self, *states: TaskState) -> list[TaskOutcome]:
        wanted = set(states)
        async with self._lock:
            return [rec for rec in self._records.values() if rec.state in wanted]

    def snapshot_stats(self) -> dict:
        return {
            "by_state": dict(self.count_by_state),
            "total_tracked": len(self._records),
            "timed_out_accounts": len(self.timed_out),
        }
