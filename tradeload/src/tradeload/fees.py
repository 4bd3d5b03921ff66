"""Fee escalation across the retries of one logical call."""

from dataclasses import dataclass, field

import tradeload.constants as C
from tradeload.models import FeeCaps


@dataclass
class FeeEscalator:
    """Fee caps for a single logical call.

    Starts at `baseline` and multiplies both caps by num/den on each bump,
    at most `max_bumps` times. After that the caps stay where they are.
    Create a fresh escalator for every logical call.
    """

    baseline: FeeCaps
    num: int = C.FEE_BUMP_NUM
    den: int = C.FEE_BUMP_DEN
    max_bumps: int = C.MAX_FEE_BUMPS
    bumps: int = 0
    current: FeeCaps = field(init=False)

    def __post_init__(self) -> None:
        if self.num < self.den:
            raise ValueError("fee bump factor must not decrease fees")
        self.current = self.baseline

    @classmethod
    def from_gwei(cls, max_fee_gwei: float, priority_fee_gwei: float, **kwargs) -> "FeeEscalator":
        baseline = FeeCaps(
            max_fee_per_gas=int(max_fee_gwei * C.GWEI),
            max_priority_fee_per_gas=int(priority_fee_gwei * C.GWEI),
        )
        return cls(baseline=baseline, **kwargs)

    @property
    def exhausted(self) -> bool:
        return self.bumps >= self.max_bumps

    def bump(self) -> bool:
        """Raise the caps if budget remains. Returns True if they changed."""
        if self.exhausted:
            return False
        self.current = self.current.scaled(self.num, self.den)
        self.bumps += 1
        return True
