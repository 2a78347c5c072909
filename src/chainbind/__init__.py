"""
chainbind: asyncio contract abstractions over a JSON-RPC provider
"""

from importlib.metadata import PackageNotFoundError, version
from typing import Any, Mapping, Optional

from chainbind.abstraction import ContractAbstraction
from chainbind.core.config import Settings, SyncConfig, configure_logging
from chainbind.instance import Contract
from chainbind.models.descriptor import ContractArtifact
from chainbind.models.transaction import DecodedLog, TransactionResult
from chainbind.services.blockchain.provider import Provider, Web3Provider, provider_from_settings
from chainbind.services.exceptions import (
    ArgumentCountError,
    ContractError,
    ContractNotDeployedError,
    InvalidNetworkError,
    NoAddressError,
    NoProviderError,
    PermanentError,
    TransactionTimeoutError,
    TransientError,
    UnlinkedLibraryError,
)

try:
    __version__ = version("chainbind")
except PackageNotFoundError:
    __version__ = None


def contract(
    artifact: Mapping[str, Any] | ContractArtifact,
    provider: Any = None,
    sync_config: Optional[SyncConfig] = None,
) -> ContractAbstraction:
    """Create a contract abstraction from an artifact.

    Example:
        >>> SimpleStorage = contract(artifact, provider=Web3Provider(w3))
        >>> SimpleStorage.defaults({"from": accounts[0]})
        >>> instance = await SimpleStorage.new()
        >>> result = await instance.setValue(5)
        >>> await instance.getValue()
        5
    """
    return ContractAbstraction.from_artifact(artifact, provider=provider, sync_config=sync_config)


__all__ = [
    "contract",
    "Contract",
    "ContractAbstraction",
    "ContractArtifact",
    "DecodedLog",
    "TransactionResult",
    "Provider",
    "Web3Provider",
    "provider_from_settings",
    "Settings",
    "SyncConfig",
    "configure_logging",
    "ContractError",
    "TransientError",
    "PermanentError",
    "ArgumentCountError",
    "ContractNotDeployedError",
    "InvalidNetworkError",
    "NoAddressError",
    "NoProviderError",
    "TransactionTimeoutError",
    "UnlinkedLibraryError",
]
