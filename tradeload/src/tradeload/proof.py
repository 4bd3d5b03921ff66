import logging
from typing import Protocol

import httpx

from tradeload.errors import ProofFetchError

log = logging.getLogger("tradeload.proof")

HEADERS = {
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.9",
    "Origin": "https://app.brokex.trade",
    "Referer": "https://app.brokex.trade/",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "cross-site",
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
}


class ProofSource(Protocol):
    async def fetch(self, pair_index: int) -> bytes: ...


class ProofClient:
    """Fetches the short-lived price proof a trade call must carry.

    Proofs go stale quickly, so callers fetch a new one for every attempt.
    """

    def __init__(self, base_url: str, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=HEADERS)

    async def __aenter__(self) -> "ProofClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, pair_index: int) -> bytes:
        try:
            r = await self._client.get(f"{self.base_url}/proof", params={"pairs": pair_index})
            r.raise_for_status()
            payload = r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ProofFetchError(f"proof request for pair {pair_index} failed: {e}") from e

        proof = payload.get("proof") if isinstance(payload, dict) else None
        if not proof:
            raise ProofFetchError(f"proof service returned no proof for pair {pair_index}")
        try:
            raw = bytes.fromhex(proof.removeprefix("0x")) if isinstance(proof, str) else bytes(proof)
        except ValueError as e:
            raise ProofFetchError(f"proof for pair {pair_index} is not hex: {proof[:32]!r}") from e
        log.debug("proof for pair %s: %s bytes", pair_index, len(raw))
        return raw
