"""Provider contract and the web3.py adapter.

The runtime never talks JSON-RPC itself. Every network round-trip goes
through an object satisfying ``Provider``. ``Web3Provider`` adapts a
``web3.AsyncWeb3`` instance; tests substitute an in-memory fake.
"""

from typing import Any, Optional, Protocol, runtime_checkable

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import TransactionNotFound

from chainbind.core.config import Settings

logger = structlog.get_logger()

_ADDRESS_FIELDS = ("from", "to")


@runtime_checkable
class Provider(Protocol):
    """Asynchronous primitives the runtime needs from a ledger connection."""

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        """Submit a transaction, returning its 0x-prefixed hash."""
        ...

    async def call(self, tx: dict[str, Any], block_identifier: Any = None) -> bytes:
        """Execute a call without persisting state, returning raw return bytes."""
        ...

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        """Estimate gas for a transaction."""
        ...

    async def get_code(self, address: str) -> bytes:
        """Return the code at an address (empty when nothing is deployed)."""
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        """Return the receipt for a transaction, or None if it is unknown."""
        ...

    async def get_network_id(self) -> str:
        """Return the network id of the active connection."""
        ...


class Web3Provider:
    """Provider backed by ``web3.AsyncWeb3``."""

    def __init__(self, w3: AsyncWeb3):
        """
        Initialize the adapter.

        Args:
            w3: AsyncWeb3 instance (e.g. ``AsyncWeb3(AsyncHTTPProvider(url))``)
        """
        self.w3 = w3

    def __repr__(self) -> str:
        return f"Web3Provider({self.w3.provider!r})"

    @staticmethod
    def _prepare(tx: dict[str, Any]) -> dict[str, Any]:
        """Checksum address fields; web3.py rejects lowercase addresses."""
        prepared = dict(tx)
        for key in _ADDRESS_FIELDS:
            if prepared.get(key):
                prepared[key] = Web3.to_checksum_address(prepared[key])
        return prepared

    async def send_transaction(self, tx: dict[str, Any]) -> str:
        tx_hash = await self.w3.eth.send_transaction(self._prepare(tx))  # type: ignore[arg-type]
        return Web3.to_hex(tx_hash)

    async def call(self, tx: dict[str, Any], block_identifier: Any = None) -> bytes:
        result = await self.w3.eth.call(self._prepare(tx), block_identifier)  # type: ignore[arg-type]
        return bytes(result)

    async def estimate_gas(self, tx: dict[str, Any]) -> int:
        return await self.w3.eth.estimate_gas(self._prepare(tx))  # type: ignore[arg-type]

    async def get_code(self, address: str) -> bytes:
        code = await self.w3.eth.get_code(Web3.to_checksum_address(address))
        return bytes(code)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict[str, Any]]:
        try:
            receipt = await self.w3.eth.get_transaction_receipt(tx_hash)  # type: ignore[arg-type]
        except TransactionNotFound:
            return None
        return dict(receipt)

    async def get_network_id(self) -> str:
        return str(await self.w3.net.version)


def as_provider(provider: Any) -> Provider:
    """Accept a Provider or a raw AsyncWeb3 and return a Provider.

    Raises:
        TypeError: If the object is neither
    """
    if isinstance(provider, AsyncWeb3):
        return Web3Provider(provider)
    if isinstance(provider, Provider):
        return provider
    raise TypeError(
        f"Unsupported provider type {type(provider).__name__}; "
        "pass an AsyncWeb3 instance or an object implementing Provider"
    )


def provider_from_settings(settings: Settings) -> Web3Provider:
    """Build an HTTP provider for the configured RPC URL."""
    logger.info("provider.configured", rpc_url=settings.rpc_url)
    return Web3Provider(AsyncWeb3(AsyncHTTPProvider(settings.rpc_url)))
