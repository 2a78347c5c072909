"""Error hierarchy for contract abstraction operations.

This module defines the exception hierarchy raised by chainbind:
- ContractError: Base for all chainbind errors
- TransientError: The operation may succeed later (timeouts)
- PermanentError: Retrying the same call will not help (missing address,
  wrong network, unlinked bytecode, bad arguments)

Provider (RPC/transport) errors are not wrapped. They propagate unmodified,
with a ``tx_hash`` attribute attached when the transaction hash is known.
"""

from typing import Any, Iterable


class ContractError(Exception):
    """Base exception for all contract abstraction errors."""

    pass


class TransientError(ContractError):
    """Error whose underlying condition may clear on its own.

    Examples:
    - Transaction not mined before the synchronization timeout
    """

    pass


class PermanentError(ContractError):
    """Error that will not succeed on retry without changing inputs or state.

    Examples:
    - No address bound for the current network
    - Provider connected to a different network
    - No code at the resolved address
    - Unresolved library placeholders in bytecode
    - Wrong number of arguments
    """

    pass


class TransactionTimeoutError(TransientError):
    """Transaction receipt did not become final within the synchronization timeout.

    The transaction itself is still pending on the network. Use
    ``get_transaction``/``sync_transaction`` with ``tx_hash`` to recover it.
    """

    def __init__(
        self,
        tx_hash: str,
        timeout: float,
        to: str | None = None,
        function: str | None = None,
    ):
        self.tx_hash = tx_hash
        self.timeout = timeout
        self.to = to
        self.function = function
        target = ""
        if function:
            target += f" calling {function}"
        if to:
            target += f" on {to}"
        super().__init__(
            f"Transaction {tx_hash}{target} was not mined within {timeout:g} seconds. "
            "It may still be mined; use get_transaction() or sync_transaction() "
            "to recover the result."
        )


class NoAddressError(PermanentError):
    """No deployed address is bound for the current network."""

    def __init__(self, contract_name: str, network_id: str | None):
        self.contract_name = contract_name
        self.network_id = network_id
        if network_id is None:
            message = (
                f"{contract_name} has no network selected. "
                "Call set_network() or detect_network() first."
            )
        else:
            message = f"{contract_name} has not been deployed to network {network_id!r}"
        super().__init__(message)


class InvalidNetworkError(PermanentError):
    """Address is bound, but the provider is connected to a different network."""

    def __init__(self, contract_name: str, network_id: str, provider_network_id: str):
        self.contract_name = contract_name
        self.network_id = network_id
        self.provider_network_id = provider_network_id
        super().__init__(
            f"{contract_name} is bound to network {network_id!r} but the provider "
            f"reports network {provider_network_id!r}"
        )


class ContractNotDeployedError(PermanentError):
    """No executable code exists at the resolved address."""

    def __init__(
        self,
        contract_name: str,
        address: str | None,
        network_id: str | None = None,
        tx_hash: str | None = None,
    ):
        self.contract_name = contract_name
        self.address = address
        self.network_id = network_id
        self.tx_hash = tx_hash
        if address is None:
            message = f"{contract_name} creation transaction {tx_hash} produced no contract address"
        else:
            message = f"Cannot create instance of {contract_name}; no code at address {address}"
            if network_id is not None:
                message += f" on network {network_id!r}"
        super().__init__(message)


class UnlinkedLibraryError(PermanentError):
    """Bytecode still contains placeholders for libraries that were never linked."""

    def __init__(self, contract_name: str, libraries: Iterable[str]):
        self.contract_name = contract_name
        self.libraries = tuple(sorted(set(libraries)))
        super().__init__(
            f"{contract_name} contains unresolved libraries. You must link the "
            f"following libraries before deploying: {', '.join(self.libraries)}"
        )


class ArgumentCountError(PermanentError):
    """Number of positional arguments does not match the function's input arity."""

    def __init__(self, function_name: str, expected: Any, given: int, hint: str = ""):
        self.function_name = function_name
        self.expected = expected
        self.given = given
        message = (
            f"Invalid number of arguments to {function_name}: expected {expected}, got {given}"
        )
        if hint:
            message += f". {hint}"
        super().__init__(message)


class NoProviderError(PermanentError):
    """An operation needs a provider but none is bound to the abstraction."""

    def __init__(self, contract_name: str):
        self.contract_name = contract_name
        super().__init__(
            f"{contract_name} has no provider. Call set_provider() before interacting "
            "with the network."
        )
