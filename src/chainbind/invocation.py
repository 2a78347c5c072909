"""Invocation binder: callable surfaces for contract functions.

Every ABI function becomes a ContractMethod. Whether calling it issues a free
call or a synchronized transaction is decided once, when the method is built,
by choosing a ReadInvocation or a WriteInvocation.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

import structlog

from chainbind.abi import FunctionSpec
from chainbind.models.transaction import TransactionResult
from chainbind.services.exceptions import ArgumentCountError

if TYPE_CHECKING:
    from chainbind.instance import Contract

logger = structlog.get_logger()

TX_PARAM_KEYS = frozenset({"from", "gas", "gasPrice", "value", "nonce"})


def split_tx_params(
    name: str, arity: int, args: Sequence[Any]
) -> tuple[list[Any], dict[str, Any]]:
    """Separate positional arguments from a trailing transaction-parameter record.

    A trailing Mapping is an override record only when it is one past the
    function's arity.

    Raises:
        ArgumentCountError: If the remaining argument count differs from the arity
    """
    args = list(args)
    tx_params: dict[str, Any] = {}
    if len(args) == arity + 1 and isinstance(args[-1], Mapping):
        tx_params = dict(args.pop())
    if len(args) != arity:
        raise ArgumentCountError(name, arity, len(args))
    return args, tx_params


class Invocation(ABC):
    """Shared plumbing for read and write invocations of one function."""

    def __init__(self, contract: "Contract", spec: FunctionSpec):
        self.contract = contract
        self.spec = spec

    def build_tx(self, args: Sequence[Any], tx_params: Mapping[str, Any]) -> dict[str, Any]:
        """Layer per-call overrides on abstraction defaults and add to/data."""
        tx = self.contract.abstraction.merged_tx_params(tx_params)
        tx["to"] = self.contract.address
        tx["data"] = self.spec.encode_input(args)
        return tx

    async def call(
        self,
        args: Sequence[Any],
        tx_params: Mapping[str, Any],
        block_identifier: Any = None,
    ) -> Any:
        tx = self.build_tx(args, tx_params)
        provider = self.contract.abstraction.require_provider()
        raw = await provider.call(tx, block_identifier)
        logger.debug(
            "invocation.call",
            contract=self.contract.abstraction.contract_name,
            function=self.spec.signature,
            address=self.contract.address,
        )
        return self.spec.decode_output(raw)

    async def send_transaction(self, args: Sequence[Any], tx_params: Mapping[str, Any]) -> str:
        tx = self.build_tx(args, tx_params)
        return await self.contract.synchronizer().submit(tx)

    async def transact(
        self, args: Sequence[Any], tx_params: Mapping[str, Any]
    ) -> TransactionResult:
        tx = self.build_tx(args, tx_params)
        return await self.contract.synchronizer().send(tx, function=self.spec.signature)

    async def estimate_gas(self, args: Sequence[Any], tx_params: Mapping[str, Any]) -> int:
        tx = self.build_tx(args, tx_params)
        provider = self.contract.abstraction.require_provider()
        return await provider.estimate_gas(tx)

    @abstractmethod
    async def invoke(self, args: Sequence[Any], tx_params: Mapping[str, Any]) -> Any:
        """Default invocation for the function's mutability."""


class ReadInvocation(Invocation):
    """pure/view functions: invoking issues a free call."""

    async def invoke(self, args: Sequence[Any], tx_params: Mapping[str, Any]) -> Any:
        return await self.call(args, tx_params)


class WriteInvocation(Invocation):
    """payable/nonpayable functions: invoking issues a synchronized transaction."""

    async def invoke(
        self, args: Sequence[Any], tx_params: Mapping[str, Any]
    ) -> TransactionResult:
        return await self.transact(args, tx_params)


class ContractMethod:
    """Invocable surface for one function signature.

    ``await method(*args)`` dispatches by mutability; ``call``,
    ``send_transaction`` and ``estimate_gas`` force a specific mode.
    A trailing mapping argument overrides transaction defaults.
    """

    def __init__(self, contract: "Contract", spec: FunctionSpec):
        self.spec = spec
        invocation_cls = ReadInvocation if spec.is_read_only else WriteInvocation
        self.invocation: Invocation = invocation_cls(contract, spec)

    def __repr__(self) -> str:
        mode = "read" if isinstance(self.invocation, ReadInvocation) else "write"
        return f"<ContractMethod {self.spec.signature} ({mode})>"

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def signature(self) -> str:
        return self.spec.signature

    def _split(self, args: Sequence[Any]) -> tuple[list[Any], dict[str, Any]]:
        return split_tx_params(self.spec.name, len(self.spec.inputs), args)

    async def __call__(self, *args: Any) -> Any:
        call_args, tx_params = self._split(args)
        return await self.invocation.invoke(call_args, tx_params)

    async def call(self, *args: Any, block_identifier: Any = None) -> Any:
        """Free call regardless of mutability; state changes are not persisted."""
        call_args, tx_params = self._split(args)
        return await self.invocation.call(call_args, tx_params, block_identifier)

    async def send_transaction(self, *args: Any) -> str:
        """Submit a transaction without waiting; returns the transaction hash."""
        call_args, tx_params = self._split(args)
        return await self.invocation.send_transaction(call_args, tx_params)

    async def estimate_gas(self, *args: Any) -> int:
        call_args, tx_params = self._split(args)
        return await self.invocation.estimate_gas(call_args, tx_params)

    def encode_input(self, *args: Any) -> str:
        """Calldata for the given arguments (a trailing override record is ignored)."""
        call_args, _ = self._split(args)
        return self.spec.encode_input(call_args)


class OverloadedMethod:
    """Several signatures sharing one name, resolved by argument count."""

    def __init__(self, name: str, methods: Sequence[ContractMethod]):
        self.name = name
        self.methods = tuple(methods)

    def __repr__(self) -> str:
        signatures = ", ".join(m.signature for m in self.methods)
        return f"<OverloadedMethod {self.name}: {signatures}>"

    def __getitem__(self, signature: str) -> ContractMethod:
        for method in self.methods:
            if method.signature == signature:
                return method
        raise KeyError(signature)

    def select(self, args: Sequence[Any]) -> ContractMethod:
        """
        Pick the overload whose arity fits the arguments.

        Raises:
            ArgumentCountError: If no overload, or more than one, fits
        """
        given = len(args)
        candidates: list[ContractMethod] = []
        # ABI values are never mappings, so a trailing mapping is the override
        # record whenever some overload accepts one argument fewer
        if given > 0 and isinstance(args[-1], Mapping):
            candidates = [m for m in self.methods if len(m.spec.inputs) == given - 1]
        if not candidates:
            candidates = [m for m in self.methods if len(m.spec.inputs) == given]
        if len(candidates) == 1:
            return candidates[0]

        arities = sorted({len(m.spec.inputs) for m in self.methods})
        hint = ""
        if candidates:
            signatures = ", ".join(m.signature for m in candidates)
            hint = f"Ambiguous overload; select one of {signatures} via contract.methods[...]"
        raise ArgumentCountError(self.name, " or ".join(map(str, arities)), given, hint)

    async def __call__(self, *args: Any) -> Any:
        return await self.select(args)(*args)

    async def call(self, *args: Any, block_identifier: Any = None) -> Any:
        return await self.select(args).call(*args, block_identifier=block_identifier)

    async def send_transaction(self, *args: Any) -> str:
        return await self.select(args).send_transaction(*args)

    async def estimate_gas(self, *args: Any) -> int:
        return await self.select(args).estimate_gas(*args)

    def encode_input(self, *args: Any) -> str:
        return self.select(args).encode_input(*args)


class FallbackMethod:
    """Unnamed surface: plain value transfers to the contract address."""

    def __init__(self, contract: "Contract"):
        self.contract = contract

    def __repr__(self) -> str:
        return f"<FallbackMethod {self.contract.address}>"

    def _build_tx(self, tx_params: Optional[Mapping[str, Any]]) -> dict[str, Any]:
        tx = self.contract.abstraction.merged_tx_params(tx_params or {})
        tx["to"] = self.contract.address
        return tx

    async def __call__(self, tx_params: Optional[Mapping[str, Any]] = None) -> TransactionResult:
        """Send a synchronized transaction with only transaction parameters."""
        if tx_params is not None and not isinstance(tx_params, Mapping):
            raise TypeError("fallback accepts only a transaction-parameter mapping")
        return await self.contract.synchronizer().send(
            self._build_tx(tx_params), function="fallback"
        )

    async def send(
        self, amount: int, tx_params: Optional[Mapping[str, Any]] = None
    ) -> TransactionResult:
        """Transfer ``amount`` wei to the contract."""
        params = dict(tx_params or {})
        params["value"] = amount
        return await self(params)
