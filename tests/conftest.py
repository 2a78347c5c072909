"""pytest fixtures for chainbind tests.

Provides:
- FakeLedger: in-memory Provider that executes small Python "programs",
  records submitted transactions and mines receipts on demand
- MockProvider: Provider built from AsyncMocks
- Artifacts: SimpleStorage, MathLib (library with an event), Calculator
  (links MathLib and emits its event), Token (overloaded functions)
- fast_sync: SyncConfig with millisecond polling for timeout tests
"""

import itertools
from typing import Any, Callable, Optional
from unittest.mock import AsyncMock

import pytest
from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address
from eth_utils.abi import event_signature_to_log_topic, function_signature_to_4byte_selector

from chainbind import contract
from chainbind.core.config import SyncConfig

ACCOUNT_A = "0x1234567890123456789012345678901234567890"
ACCOUNT_B = to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb0")
MATHLIB_ADDRESS = "0x00000000000000000000000000000000000000aa"

SIMPLE_STORAGE_CODE = "0x608060405234801561001057600080fd5b50"
MATHLIB_CODE = "0x6080604052600436106100"
MATHLIB_PLACEHOLDER = "__MathLib" + "_" * 31  # 40 hex chars
CALCULATOR_CODE = "0x60806040" + MATHLIB_PLACEHOLDER + "5b6000" + MATHLIB_PLACEHOLDER + "f3"

SIMPLE_STORAGE_ABI = [
    {
        "type": "function",
        "name": "getValue",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "setValue",
        "inputs": [{"name": "newValue", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "event",
        "name": "ValueSet",
        "inputs": [{"name": "value", "type": "uint256", "indexed": False}],
        "anonymous": False,
    },
]

MATHLIB_ABI = [
    {
        "type": "event",
        "name": "Computed",
        "inputs": [
            {"name": "caller", "type": "address", "indexed": True},
            {"name": "result", "type": "uint256", "indexed": False},
        ],
        "anonymous": False,
    },
]

CALCULATOR_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "seed", "type": "uint256"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "compute",
        "inputs": [{"name": "x", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "seed",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
]

TOKEN_ABI = [
    {
        "type": "function",
        "name": "balance",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "balance",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "pair",
        "inputs": [],
        "outputs": [
            {"name": "a", "type": "uint256"},
            {"name": "b", "type": "bool"},
        ],
        "stateMutability": "pure",
    },
    {
        "type": "function",
        "name": "deposit",
        "inputs": [],
        "outputs": [],
        "stateMutability": "payable",
    },
    {"type": "fallback", "stateMutability": "payable"},
]


def selector(signature: str) -> bytes:
    return function_signature_to_4byte_selector(signature)


def topic(signature: str) -> bytes:
    return event_signature_to_log_topic(signature)


class SimpleStorageProgram:
    """getValue()/setValue(uint256) emitting ValueSet(uint256)."""

    def __init__(self, ctor_args: bytes):
        self.value = 0

    def execute(self, tx: dict, calldata: bytes, persist: bool) -> tuple[bytes, list[dict]]:
        sel, body = calldata[:4], calldata[4:]
        if sel == selector("getValue()"):
            return encode(["uint256"], [self.value]), []
        if sel == selector("setValue(uint256)"):
            (new_value,) = decode(["uint256"], body)
            if persist:
                self.value = new_value
            log = {"topics": [topic("ValueSet(uint256)")], "data": encode(["uint256"], [new_value])}
            return b"", [log]
        raise ValueError("execution reverted")


class CalculatorProgram:
    """compute(uint256) doubles x and emits MathLib's Computed(address,uint256)."""

    def __init__(self, ctor_args: bytes):
        (self.seed,) = decode(["uint256"], ctor_args)

    def execute(self, tx: dict, calldata: bytes, persist: bool) -> tuple[bytes, list[dict]]:
        sel, body = calldata[:4], calldata[4:]
        if sel == selector("seed()"):
            return encode(["uint256"], [self.seed]), []
        if sel == selector("compute(uint256)"):
            (x,) = decode(["uint256"], body)
            result = x * 2 + self.seed
            log = {
                "topics": [
                    topic("Computed(address,uint256)"),
                    encode(["address"], [tx.get("from") or ACCOUNT_A]),
                ],
                "data": encode(["uint256"], [result]),
            }
            return encode(["uint256"], [result]), [log]
        raise ValueError("execution reverted")


class MockProvider:
    """Provider whose primitives are AsyncMocks, for asserting on awaited calls."""

    def __init__(self, network_id: str = "1"):
        self.send_transaction = AsyncMock(return_value="0x" + "ab" * 32)
        self.call = AsyncMock(return_value=b"")
        self.estimate_gas = AsyncMock(return_value=21000)
        self.get_code = AsyncMock(return_value=b"\x60\x80")
        self.get_transaction_receipt = AsyncMock(return_value={"blockNumber": 1, "logs": []})
        self.get_network_id = AsyncMock(return_value=network_id)


class FakeLedger:
    """In-memory ledger implementing the Provider protocol.

    Receipts only appear once a transaction is mined. With ``auto_mine``
    (default) every transaction is mined ``mine_after_polls`` receipt
    lookups after submission; otherwise call ``mine()``.
    """

    def __init__(self, network_id: str = "1"):
        self.network_id = network_id
        self.auto_mine = True
        self.mine_after_polls = 0
        self.block_number = 100
        self.programs: dict[str, Callable[[bytes], Any]] = {}  # creation code → factory
        self.code: dict[str, bytes] = {}
        self.instances: dict[str, Any] = {}
        self.sent: list[dict] = []
        self.calls: list[dict] = []
        self.estimates: list[dict] = []
        self.receipt_lookups: dict[str, int] = {}
        self.pending: dict[str, dict] = {}
        self.receipts: dict[str, dict] = {}
        self._counter = itertools.count(1)

    def register_program(self, creation_code: str, factory: Callable[[bytes], Any]) -> None:
        self.programs[creation_code.lower().removeprefix("0x")] = factory

    def install(self, address: str, program: Any = None, code: bytes = b"\x60\x80") -> str:
        address = to_checksum_address(address)
        self.code[address] = code
        if program is not None:
            self.instances[address] = program
        return address

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        self.sent.append(dict(tx))
        nonce = next(self._counter)
        tx_hash = "0x" + keccak(text=f"tx-{nonce}").hex()
        self.pending[tx_hash] = dict(tx)
        self.receipt_lookups[tx_hash] = 0
        return tx_hash

    async def call(self, tx: dict[str, Any], block_identifier: Any = None) -> bytes:
        self.calls.append(dict(tx))
        program = self.instances[to_checksum_address(tx["to"])]
        output, _ = program.execute(tx, bytes.fromhex(tx["data"][2:]), persist=False)
        return output

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        self.estimates.append(dict(tx))
        return 21000 + len(tx.get("data", "0x")) // 2

    async def get_code(self, address: str) -> bytes:
        return self.code.get(to_checksum_address(address), b"")

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        if tx_hash in self.pending:
            self.receipt_lookups[tx_hash] += 1
            if self.auto_mine and self.receipt_lookups[tx_hash] > self.mine_after_polls:
                self.mine(tx_hash)
        return self.receipts.get(tx_hash)

    async def get_network_id(self) -> str:
        return self.network_id

    def mine(self, tx_hash: Optional[str] = None) -> None:
        """Mine one pending transaction (or all of them)."""
        hashes = [tx_hash] if tx_hash else list(self.pending)
        for h in hashes:
            self.block_number += 1
            self.receipts[h] = self._execute(h, self.pending.pop(h))

    def _execute(self, tx_hash: str, tx: dict) -> dict:
        receipt: dict[str, Any] = {
            "transactionHash": tx_hash,
            "blockNumber": self.block_number,
            "blockHash": "0x" + keccak(text=f"block-{self.block_number}").hex(),
            "gasUsed": 21000,
            "status": 1,
            "contractAddress": None,
            "logs": [],
        }
        data = bytes.fromhex((tx.get("data") or "0x")[2:])

        if not tx.get("to"):
            code_hex = data.hex()
            for creation_code, factory in self.programs.items():
                if code_hex.startswith(creation_code):
                    address = to_checksum_address(keccak(text=tx_hash)[-20:])
                    self.install(address, factory(data[len(creation_code) // 2 :]))
                    receipt["contractAddress"] = address
                    break
            else:
                receipt["status"] = 0
            return receipt

        to = to_checksum_address(tx["to"])
        program = self.instances.get(to)
        if program is None or not data:
            return receipt
        try:
            _, logs = program.execute(tx, data, persist=True)
        except ValueError:
            receipt["status"] = 0
            return receipt
        for index, log in enumerate(logs):
            receipt["logs"].append(
                {
                    "address": log.get("address", to),
                    "topics": log["topics"],
                    "data": log["data"],
                    "blockNumber": self.block_number,
                    "transactionHash": tx_hash,
                    "logIndex": index,
                }
            )
        return receipt


@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.register_program(SIMPLE_STORAGE_CODE, SimpleStorageProgram)
    return fake


@pytest.fixture
def fast_sync() -> SyncConfig:
    """Millisecond polling so timeout tests finish quickly."""
    return SyncConfig(timeout=0.2, poll_interval=0.01, max_poll_interval=0.05)


@pytest.fixture
def simple_storage_artifact() -> dict:
    return {
        "contract_name": "SimpleStorage",
        "abi": SIMPLE_STORAGE_ABI,
        "unlinked_binary": SIMPLE_STORAGE_CODE,
        "networks": {},
    }


@pytest.fixture
def simple_storage(simple_storage_artifact, ledger, fast_sync):
    abstraction = contract(simple_storage_artifact, provider=ledger, sync_config=fast_sync)
    abstraction.set_network("1")
    abstraction.defaults({"from": ACCOUNT_A})
    return abstraction


@pytest.fixture
def mathlib_artifact() -> dict:
    return {
        "contractName": "MathLib",
        "abi": MATHLIB_ABI,
        "bytecode": MATHLIB_CODE,
        "networks": {"1": {"address": MATHLIB_ADDRESS}},
        "network_id": 1,
    }


@pytest.fixture
def calculator_artifact() -> dict:
    return {
        "contract_name": "Calculator",
        "abi": CALCULATOR_ABI,
        "unlinked_binary": CALCULATOR_CODE,
    }


@pytest.fixture
def token_artifact() -> dict:
    return {
        "contract_name": "Token",
        "abi": TOKEN_ABI,
        "unlinked_binary": "0x6080",
        "networks": {"1": {"address": ACCOUNT_B}},
        "network_id": "1",
    }
