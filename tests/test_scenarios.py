"""End-to-end scenarios against the in-memory ledger.

Tests cover:
- Deploy, write, observe the decoded event, read back without a transaction
- at() resolves iff code exists at the address
- Instances capture the merged event schema at construction
- Defaults layering for a gas override
- A receipt that appears late is awaited; one that never appears times out and
  is recovered after mining
- Cloning to an unbound network
- Concurrent invocations from one abstraction
"""

import asyncio

import pytest

from chainbind import contract
from chainbind.services.exceptions import (
    ContractNotDeployedError,
    NoAddressError,
    TransactionTimeoutError,
)
from conftest import ACCOUNT_A, ACCOUNT_B, CalculatorProgram, SimpleStorageProgram


@pytest.mark.asyncio
async def test_deploy_set_and_read_value(simple_storage, ledger):
    instance = await simple_storage.new()

    result = await instance.setValue(5)

    assert result.block_number is not None
    value_set = [log for log in result.logs if log.event == "ValueSet"]
    assert len(value_set) == 1
    assert value_set[0].args["value"] == 5
    assert value_set[0].address == instance.address

    sent_before = len(ledger.sent)
    assert await instance.getValue() == 5
    assert len(ledger.sent) == sent_before


@pytest.mark.asyncio
async def test_at_resolves_iff_code_exists(simple_storage, ledger):
    ledger.install(ACCOUNT_B, SimpleStorageProgram(b""))

    assert (await simple_storage.at(ACCOUNT_B)).address == ACCOUNT_B
    with pytest.raises(ContractNotDeployedError):
        await simple_storage.at(ACCOUNT_A)


@pytest.mark.asyncio
async def test_event_schema_frozen_at_instance_creation(
    calculator_artifact, mathlib_artifact, ledger, fast_sync
):
    Calculator = contract(calculator_artifact, provider=ledger, sync_config=fast_sync)
    Calculator.defaults({"from": ACCOUNT_A})
    Calculator.link("MathLib", "0x00000000000000000000000000000000000000aa")
    ledger.register_program(Calculator.binary, CalculatorProgram)

    before = await Calculator.new(1)
    Calculator.link(contract(mathlib_artifact))
    after = await Calculator.at(before.address)

    before_result = await before.compute(2)
    after_result = await after.compute(2)

    assert before_result.logs[0].event is None
    assert after_result.logs[0].event == "Computed"
    assert after_result.logs[0].args["result"] == 5


@pytest.mark.asyncio
async def test_gas_override_keeps_other_defaults(simple_storage, ledger):
    instance = await simple_storage.new()

    await instance.setValue(1, {"gas": 100000})

    tx = ledger.sent[-1]
    assert tx["from"] == ACCOUNT_A
    assert tx["gas"] == 100000


@pytest.mark.asyncio
async def test_late_receipt_is_awaited(simple_storage, ledger):
    instance = await simple_storage.new()
    ledger.mine_after_polls = 3

    result = await instance.setValue(2)

    assert ledger.receipt_lookups[result.tx] == 4
    assert result.events_named("ValueSet")[0].args["value"] == 2


@pytest.mark.asyncio
async def test_timeout_then_recover(simple_storage, ledger):
    instance = await simple_storage.new()
    ledger.auto_mine = False

    with pytest.raises(TransactionTimeoutError) as exc_info:
        await instance.setValue(6)
    tx_hash = exc_info.value.tx_hash
    assert exc_info.value.function == "setValue(uint256)"
    assert exc_info.value.to == instance.address
    assert "setValue(uint256)" in str(exc_info.value)

    ledger.mine(tx_hash)
    result = await simple_storage.get_transaction(tx_hash)

    assert result is not None
    assert result.tx == tx_hash
    assert result.events_named("ValueSet")[0].args["value"] == 6
    assert await instance.getValue() == 6


@pytest.mark.asyncio
async def test_clone_to_unbound_network(simple_storage, ledger):
    simple_storage.set_address(ACCOUNT_B)

    clone = simple_storage.clone(1337)

    assert not clone.has_network(1337)
    with pytest.raises(NoAddressError) as exc_info:
        await clone.deployed()
    assert exc_info.value.network_id == "1337"


@pytest.mark.asyncio
async def test_concurrent_invocations(simple_storage, ledger):
    first, second = await asyncio.gather(simple_storage.new(), simple_storage.new())
    ledger.mine_after_polls = 1

    results = await asyncio.gather(first.setValue(10), second.setValue(20))

    assert [r.events_named("ValueSet")[0].args["value"] for r in results] == [10, 20]
    assert await first.getValue() == 10
    assert await second.getValue() == 20
