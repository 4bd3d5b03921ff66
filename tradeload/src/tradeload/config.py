import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path

from dotenv import dotenv_values

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"
env_file = Path(".env")


@dataclass(frozen=True, slots=True)
class Pair:
    name: str
    index: int


@dataclass(frozen=True, slots=True)
class Settings:
    """Read-only run configuration. The only state shared between account tasks."""

    rpc_url: str
    chain_id: int
    token: str
    claim_contract: str
    router: str
    spender: str
    proof_url: str
    pairs: tuple[Pair, ...]
    rpc_timeout: float = 30.0
    proof_timeout: float = 10.0
    max_fee_gwei: float = 5
    priority_fee_gwei: float = 2
    bump_factor: float = 1.2
    max_bumps: int = 3
    max_threads: int = 10
    task_timeout: float = 1200.0
    rounds: int = 1
    round_cooldown: float = 3.0
    trade_attempts: int = 100
    wallet_file: Path = Path("wallet.txt")
    log_file: str = "/tmp/tradeload.log"

    @property
    def bump_ratio(self) -> tuple[int, int]:
        """bump_factor as an exact integer ratio, e.g. 1.2 -> (6, 5)."""
        f = Fraction(str(self.bump_factor)).limit_denominator(1000)
        return f.numerator, f.denominator


def load_settings(path: Path | None = None, env: Mapping[str, str] | None = None, dotenv: Path = env_file) -> Settings:
    """Packaged or given config.toml, overridden by a .env file, overridden by the process environment."""
    if env is None:
        env = {**{k: v for k, v in dotenv_values(dotenv).items() if v is not None}, **os.environ}
    cfg = tomllib.loads(Path(path or config_file).read_text())
    net = cfg["network"]
    contracts = cfg["contracts"]
    fees = cfg.get("fees", {})
    pool = cfg.get("pool", {})
    trade = cfg.get("trade", {})

    pairs = tuple(Pair(name=p["name"], index=int(p["index"])) for p in trade.get("pairs", []))
    if not pairs:
        raise ValueError("config: [trade] pairs must list at least one market pair")

    settings = Settings(
        rpc_url=env.get("RPC_URL", net["rpc_url"]),
        chain_id=int(env.get("CHAIN_ID", net["chain_id"])),
        rpc_timeout=float(net.get("rpc_timeout", 30.0)),
        token=contracts["token"],
        claim_contract=contracts["claim"],
        router=contracts["router"],
        spender=contracts["spender"],
        proof_url=env.get("PROOF_API", cfg["proof"]["base_url"]),
        proof_timeout=float(cfg["proof"].get("timeout", 10.0)),
        pairs=pairs,
        max_fee_gwei=float(fees.get("max_fee_gwei", 5)),
        priority_fee_gwei=float(fees.get("priority_fee_gwei", 2)),
        bump_factor=float(fees.get("bump_factor", 1.2)),
        max_bumps=int(fees.get("max_bumps", 3)),
        max_threads=int(env.get("MAX_THREADS", pool.get("max_threads", 10))),
        task_timeout=float(env.get("THREAD_TIMEOUT", pool.get("task_timeout", 1200))),
        rounds=int(env.get("ROUNDS", pool.get("rounds", 1))),
        round_cooldown=float(pool.get("round_cooldown", 3.0)),
        trade_attempts=int(trade.get("max_attempts", 100)),
        wallet_file=Path(env.get("WALLET_FILE", cfg.get("wallets", {}).get("file", "wallet.txt"))),
        log_file=env.get("LOG_FILE", cfg.get("logging", {}).get("file", "/tmp/tradeload.log")),
    )
    if settings.max_threads < 1:
        raise ValueError("config: max_threads must be at least 1")
    if settings.bump_factor < 1:
        raise ValueError("config: bump_factor must be >= 1")
    return settings
