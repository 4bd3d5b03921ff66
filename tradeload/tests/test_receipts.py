import pytest

from tradeload.errors import ConfirmationTimeout, ReceiptNotFound, TransactionDropped, TransientRPCError
from tradeload.models import Receipt
from tradeload.receipts import ReceiptWaiter

TX = "0x" + "ab" * 32


@pytest.fixture
def waiter(ledger, sleep):
    return ReceiptWaiter(ledger, sleep=sleep)


async def test_returns_receipt_from_primary_wait(waiter, ledger):
    ledger.wait_script.append(Receipt(TX, 55, 1))
    receipt = await waiter.wait(TX)
    assert receipt.block_number == 55
    assert ledger.wait_calls == 1


async def test_never_mined_exhausts_ten_waits_and_one_lookup(waiter, ledger, sleep):
    ledger.wait_script.extend(TransactionDropped("not found") for _ in range(20))
    with pytest.raises(ReceiptNotFound) as exc:
        await waiter.wait(TX)
    assert exc.value.tx_hash == TX
    assert ledger.wait_calls == 10
    assert ledger.receipt_lookups == 1
    # dropped transactions are retried without backoff
    assert sleep.calls == []


async def test_timeouts_probe_then_back_off_capped(waiter, ledger, sleep):
    ledger.transactions[TX] = {"hash": TX}
    ledger.wait_script.extend(ConfirmationTimeout("slow") for _ in range(10))
    with pytest.raises(ReceiptNotFound):
        await waiter.wait(TX)
    assert ledger.wait_calls == 10
    assert ledger.tx_lookups == 10
    assert sleep.calls == [1, 2, 4, 8, 10, 10, 10, 10, 10, 10]


async def test_timeout_recovered_by_status_probe(waiter, ledger):
    ledger.transactions[TX] = {"hash": TX}
    ledger.receipts[TX] = Receipt(TX, 77, 1)
    ledger.wait_script.append(ConfirmationTimeout("slow"))
    receipt = await waiter.wait(TX)
    assert receipt.block_number == 77
    assert ledger.wait_calls == 1


async def test_final_lookup_finds_late_receipt(waiter, ledger):
    ledger.wait_script.extend(TransientRPCError("flaky") for _ in range(10))
    ledger.receipts[TX] = Receipt(TX, 90, 1)
    receipt = await waiter.wait(TX)
    assert receipt.block_number == 90
    assert ledger.wait_calls == 10


async def test_failed_final_lookup_is_receipt_not_found(waiter, ledger):
    ledger.transactions[TX] = {"hash": TX}
    ledger.wait_script.extend(ConfirmationTimeout("slow") for _ in range(10))
    # ten status lookups see nothing, the last direct lookup errors
    ledger.receipt_script.extend([None] * 10 + [TransientRPCError("502 Bad Gateway")])
    with pytest.raises(ReceiptNotFound) as exc:
        await waiter.wait(TX)
    assert exc.value.tx_hash == TX
    assert isinstance(exc.value.__cause__, TransientRPCError)
    assert ledger.receipt_lookups == 11
