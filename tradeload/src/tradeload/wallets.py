import logging
from pathlib import Path

from tradeload.models import Account

log = logging.getLogger("tradeload.wallets")


def parse_wallets(text: str) -> list[Account]:
    """One private key per line. Blank lines and surrounding whitespace are ignored."""
    keys = [line.strip() for line in text.splitlines()]
    return [Account.from_key(i, key) for i, key in enumerate(k for k in keys if k)]


def load_wallets(path: Path) -> list[Account]:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"wallet file not found: {path}")
    accounts = parse_wallets(path.read_text(encoding="utf-8"))
    if not accounts:
        raise ValueError(f"wallet file {path} has no keys")
    log.info("loaded %s wallets from %s", len(accounts), path)
    return accounts
