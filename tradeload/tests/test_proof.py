import httpx
import pytest

from tradeload.errors import ProofFetchError
from tradeload.proof import ProofClient


def client_for(handler) -> ProofClient:
    return ProofClient("http://proof.local/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_fetch_decodes_hex_proof():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json={"proof": "0xdeadbeef"})

    async with client_for(handler) as proofs:
        assert await proofs.fetch(6004) == bytes.fromhex("deadbeef")
    assert seen[0].path == "/proof"
    assert seen[0].params["pairs"] == "6004"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, text="upstream down"),
        httpx.Response(200, json={"proof": ""}),
        httpx.Response(200, json={"error": "unknown pair"}),
        httpx.Response(200, json={"proof": "0xnothex"}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_bad_responses_raise_fetch_error(response):
    async with client_for(lambda request: response) as proofs:
        with pytest.raises(ProofFetchError):
            await proofs.fetch(6004)


async def test_transport_failure_raises_fetch_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with client_for(handler) as proofs:
        with pytest.raises(ProofFetchError):
            await proofs.fetch(1)
