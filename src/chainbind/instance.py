"""Contract instance - a live handle bound to one deployed address."""

from typing import TYPE_CHECKING, Any, Mapping, Optional

from chainbind.invocation import ContractMethod, FallbackMethod, OverloadedMethod
from chainbind.networks import normalize_address
from chainbind.services.blockchain.events import EventSchema
from chainbind.services.blockchain.synchronizer import TransactionSynchronizer

if TYPE_CHECKING:
    from chainbind.abstraction import ContractAbstraction
    from chainbind.models.transaction import TransactionResult


class Contract:
    """Live handle for a deployed contract.

    The address and the merged event schema are fixed at construction; later
    link() calls on the abstraction do not affect existing instances.

    Contract functions are available as attributes (``await c.setValue(5)``),
    by name (``c.functions["setValue"]``) and by signature
    (``c.methods["setValue(uint256)"]``).
    """

    def __init__(
        self,
        abstraction: "ContractAbstraction",
        address: str,
        transaction_hash: Optional[str] = None,
    ):
        self.abstraction = abstraction
        self.address = normalize_address(address)
        self.transaction_hash = transaction_hash
        self.events = EventSchema.merge(abstraction.descriptor.events, abstraction.link_table)

        # Dispatch tables, built once
        self.methods: dict[str, ContractMethod] = {
            spec.signature: ContractMethod(self, spec) for spec in abstraction.descriptor.functions
        }
        grouped: dict[str, list[ContractMethod]] = {}
        for method in self.methods.values():
            grouped.setdefault(method.name, []).append(method)
        self.functions: dict[str, ContractMethod | OverloadedMethod] = {
            name: methods[0] if len(methods) == 1 else OverloadedMethod(name, methods)
            for name, methods in grouped.items()
        }
        self.fallback = FallbackMethod(self)

    def __repr__(self) -> str:
        return f"<Contract {self.abstraction.contract_name} at {self.address}>"

    def __getattr__(self, name: str) -> Any:
        # Only called for attributes not found normally
        functions = self.__dict__.get("functions")
        if functions is not None and name in functions:
            return functions[name]
        raise AttributeError(
            f"{type(self).__name__} {self.__dict__.get('abstraction')!r} has no function {name!r}"
        )

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self.__dict__.get("functions", {})))

    @property
    def contract_name(self) -> str:
        return self.abstraction.contract_name

    def synchronizer(self) -> TransactionSynchronizer:
        """Synchronizer over the abstraction's current provider and config."""
        return TransactionSynchronizer(
            provider=self.abstraction.require_provider(),
            schema=self.events,
            config=self.abstraction.sync_config,
        )

    async def send_transaction(
        self, tx_params: Optional[Mapping[str, Any]] = None
    ) -> "TransactionResult":
        """Synchronized value transfer to the contract (fallback function)."""
        return await self.fallback(tx_params)

    async def send(
        self, amount: int, tx_params: Optional[Mapping[str, Any]] = None
    ) -> "TransactionResult":
        """Transfer ``amount`` wei to the contract."""
        return await self.fallback.send(amount, tx_params)

    async def has_code(self) -> bool:
        code = await self.abstraction.require_provider().get_code(self.address)
        return len(code) > 0
