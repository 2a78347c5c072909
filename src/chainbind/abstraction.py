"""Contract abstraction - the per-contract factory for live instances.

A ContractAbstraction owns one descriptor (shared, read-only) plus its own
address table, link table, transaction defaults, provider and
synchronization config. It creates Contract instances via ``new``, ``at``
and ``deployed``.
"""

from typing import Any, Mapping, Optional

import structlog

from chainbind.core.config import Settings, SyncConfig
from chainbind.instance import Contract
from chainbind.invocation import TX_PARAM_KEYS, split_tx_params
from chainbind.linker import LinkTable, link_bytecode
from chainbind.models.descriptor import ContractArtifact, InterfaceDescriptor
from chainbind.models.transaction import TransactionResult
from chainbind.networks import AddressTable, normalize_address, normalize_network_id
from chainbind.services.blockchain.events import EventSchema
from chainbind.services.blockchain.provider import (
    Provider,
    as_provider,
    provider_from_settings,
)
from chainbind.services.blockchain.synchronizer import TransactionSynchronizer
from chainbind.services.exceptions import (
    ContractNotDeployedError,
    InvalidNetworkError,
    NoProviderError,
)

logger = structlog.get_logger()

DEFAULT_NETWORK_ID = "default"


def _check_tx_params(record: Mapping[str, Any]) -> None:
    unknown = set(record) - TX_PARAM_KEYS
    if unknown:
        raise ValueError(
            f"Unknown transaction parameter(s): {', '.join(sorted(unknown))}. "
            f"Expected some of: {', '.join(sorted(TX_PARAM_KEYS))}"
        )


class ContractAbstraction:
    """Factory and configuration holder for one contract type."""

    def __init__(
        self,
        descriptor: InterfaceDescriptor,
        provider: Any = None,
        sync_config: Optional[SyncConfig] = None,
        network_id: Any = None,
    ):
        """
        Initialize abstraction.

        Args:
            descriptor: Parsed contract description
            provider: Provider or AsyncWeb3 instance (optional, see set_provider)
            sync_config: Synchronization timeout/polling (default: 120 s timeout)
            network_id: Initial current network (optional, see set_network)
        """
        self.descriptor = descriptor
        self.address_table = AddressTable(descriptor.contract_name, network_id)
        self.link_table = LinkTable()
        self.sync_config = sync_config or SyncConfig()
        self._defaults: dict[str, Any] = {}
        self._provider: Optional[Provider] = None
        if provider is not None:
            self.set_provider(provider)

    @classmethod
    def from_artifact(
        cls,
        artifact: Mapping[str, Any] | ContractArtifact,
        provider: Any = None,
        sync_config: Optional[SyncConfig] = None,
    ) -> "ContractAbstraction":
        """Build an abstraction from a compiler artifact.

        Network records become address bindings, ``links`` (top-level and
        those of the selected network) become link table entries, and a legacy
        top-level ``address`` is bound to ``network_id`` (or "default").
        """
        if not isinstance(artifact, ContractArtifact):
            artifact = ContractArtifact.model_validate(artifact)

        network_id = artifact.network_id
        if network_id is None and artifact.address and not artifact.networks:
            network_id = DEFAULT_NETWORK_ID

        abstraction = cls(
            InterfaceDescriptor.from_artifact(artifact),
            provider=provider,
            sync_config=sync_config,
            network_id=network_id,
        )

        for net_id, record in artifact.networks.items():
            if record.address:
                abstraction.address_table.bind(net_id, record.address)
        if artifact.address and network_id is not None:
            abstraction.address_table.bind(network_id, artifact.address)

        links = dict(artifact.links)
        if network_id is not None and network_id in artifact.networks:
            links.update(artifact.networks[network_id].links)
        if links:
            abstraction.link_table.link(links)

        return abstraction

    def __repr__(self) -> str:
        return (
            f"<ContractAbstraction {self.contract_name} "
            f"network={self.network_id!r} provider={self._provider!r}>"
        )

    # ------------------------------------------------------------------
    # Descriptor views
    # ------------------------------------------------------------------

    @property
    def contract_name(self) -> str:
        return self.descriptor.contract_name

    @property
    def abi(self) -> list[dict]:
        return list(self.descriptor.abi)

    @property
    def events(self) -> EventSchema:
        """The contract's own events keyed by topic (no library events)."""
        return EventSchema.from_events(self.descriptor.events)

    @property
    def unlinked_binary(self) -> str:
        return str(self.descriptor.bytecode)

    @property
    def binary(self) -> str:
        """Creation bytecode with all libraries linked.

        Raises:
            UnlinkedLibraryError: If a placeholder has no linked library
        """
        return link_bytecode(self.descriptor.bytecode, self.link_table, self.contract_name)

    @property
    def deployed_binary(self) -> str:
        """Runtime bytecode with all libraries linked."""
        return link_bytecode(
            self.descriptor.deployed_bytecode, self.link_table, self.contract_name
        )

    # ------------------------------------------------------------------
    # Provider & configuration
    # ------------------------------------------------------------------

    @property
    def provider(self) -> Optional[Provider]:
        return self._provider

    def set_provider(self, provider: Any) -> None:
        """Bind a Provider (or an AsyncWeb3, wrapped in Web3Provider)."""
        self._provider = as_provider(provider)

    def require_provider(self) -> Provider:
        """
        Raises:
            NoProviderError: If no provider is bound
        """
        if self._provider is None:
            raise NoProviderError(self.contract_name)
        return self._provider

    def configure(self, settings: Settings) -> None:
        """Apply provider, synchronization and network settings."""
        self.set_provider(provider_from_settings(settings))
        self.sync_config = SyncConfig.from_settings(settings)
        if settings.network_id is not None:
            self.set_network(settings.network_id)

    @property
    def synchronization_timeout(self) -> float:
        """Seconds to wait for a transaction to be mined."""
        return self.sync_config.timeout

    @synchronization_timeout.setter
    def synchronization_timeout(self, seconds: float) -> None:
        self.sync_config = SyncConfig(
            timeout=seconds,
            poll_interval=self.sync_config.poll_interval,
            max_poll_interval=self.sync_config.max_poll_interval,
            backoff=self.sync_config.backoff,
        )

    def defaults(self, record: Optional[Mapping[str, Any]] = None) -> dict[str, Any]:
        """Get or update transaction parameter defaults.

        Recognized fields: ``from``, ``gas``, ``gasPrice``, ``value`` (and
        ``nonce``). A None value unsets the field; unset fields are left out
        of transactions entirely.

        Args:
            record: Fields to merge into the defaults (optional)

        Returns:
            Copy of the current defaults

        Raises:
            ValueError: If the record contains unknown fields
        """
        if record is not None:
            _check_tx_params(record)
            for key, value in record.items():
                if value is None:
                    self._defaults.pop(key, None)
                elif key == "from":
                    self._defaults[key] = normalize_address(value)
                else:
                    self._defaults[key] = value
        return dict(self._defaults)

    def merged_tx_params(self, overrides: Mapping[str, Any]) -> dict[str, Any]:
        """Defaults with per-call overrides layered on top (override wins per field).

        Raises:
            ValueError: If the overrides contain unknown fields
        """
        _check_tx_params(overrides)
        tx = dict(self._defaults)
        for key, value in overrides.items():
            if value is None:
                tx.pop(key, None)
            else:
                tx[key] = value
        return tx

    # ------------------------------------------------------------------
    # Networks
    # ------------------------------------------------------------------

    @property
    def network_id(self) -> Optional[str]:
        return self.address_table.network_id

    def set_network(self, network_id: Any) -> None:
        self.address_table.set_network(network_id)

    def has_network(self, network_id: Any) -> bool:
        return self.address_table.has_network(network_id)

    def networks(self) -> set[str]:
        return self.address_table.networks()

    def is_deployed(self) -> bool:
        """Whether an address is bound for the current network."""
        network_id = self.network_id
        return network_id is not None and self.address_table.has_network(network_id)

    @property
    def address(self) -> str:
        """
        Deployed address on the current network.

        Raises:
            NoAddressError: If no address is bound for the current network
        """
        return self.address_table.address

    def set_address(self, address: str) -> None:
        """Bind an address on the current network.

        Raises:
            ValueError: If no network is selected or the address is invalid
        """
        if self.network_id is None:
            raise ValueError(
                f"Cannot set address of {self.contract_name}: no network selected. "
                "Call set_network() first."
            )
        self.address_table.bind(self.network_id, address)

    def reset_address(self) -> None:
        if self.network_id is not None:
            self.address_table.unbind(self.network_id)

    async def detect_network(self) -> str:
        """Select the provider's network as the current network and return its id."""
        network_id = normalize_network_id(await self.require_provider().get_network_id())
        self.set_network(network_id)
        logger.debug(
            "abstraction.network_detected", contract=self.contract_name, network_id=network_id
        )
        return network_id

    # ------------------------------------------------------------------
    # Linking & cloning
    # ------------------------------------------------------------------

    def link(self, target: Any, address: Optional[str] = None) -> None:
        """Link a library.

        Forms:
            link(library_instance_or_abstraction)  # name/address inferred, events merged
            link("MathLib", "0x...")                # events not merged
            link({"MathLib": "0x...", ...})         # batch of the above
        """
        self.link_table.link(target, address)

    def unlink(self, name: str) -> None:
        self.link_table.remove(name)

    @property
    def links(self) -> dict[str, str]:
        return self.link_table.addresses()

    def clone(self, network_id: Any = None) -> "ContractAbstraction":
        """Copy this abstraction for another network.

        The clone shares the descriptor, gets value copies of the address
        table, link table and defaults, keeps the sync config, and has no
        provider.
        """
        clone = ContractAbstraction(self.descriptor, sync_config=self.sync_config)
        clone.address_table = self.address_table.copy()
        clone.link_table = self.link_table.copy()
        clone._defaults = dict(self._defaults)
        if network_id is not None:
            clone.set_network(network_id)
        return clone

    def to_json(self) -> dict[str, Any]:
        """Artifact-shaped dict of the current state."""
        networks: dict[str, Any] = {
            net_id: {"address": binding.address} for net_id, binding in self.address_table
        }
        return {
            "contract_name": self.contract_name,
            "abi": self.abi,
            "unlinked_binary": self.unlinked_binary,
            "networks": networks,
            "network_id": self.network_id,
            "links": self.links,
        }

    # ------------------------------------------------------------------
    # Instances
    # ------------------------------------------------------------------

    async def at(self, address: str) -> Contract:
        """Instance at ``address``, once code is confirmed there.

        Raises:
            ContractNotDeployedError: If there is no code at the address
        """
        instance = Contract(self, address)
        provider = self.require_provider()
        code = await provider.get_code(instance.address)
        if len(code) == 0:
            logger.warning(
                "abstraction.no_code",
                contract=self.contract_name,
                address=instance.address,
                network_id=self.network_id,
            )
            raise ContractNotDeployedError(self.contract_name, instance.address, self.network_id)
        return instance

    async def deployed(self) -> Contract:
        """Instance at the current network's bound address.

        Raises:
            NoAddressError: No address bound for the current network
            InvalidNetworkError: Provider reports a different network
            ContractNotDeployedError: No code at the bound address
        """
        address = self.address
        provider = self.require_provider()

        provider_network_id = normalize_network_id(await provider.get_network_id())
        if provider_network_id != self.network_id:
            raise InvalidNetworkError(
                self.contract_name,
                self.network_id,  # type: ignore[arg-type]
                provider_network_id,
            )

        instance = await self.at(address)
        logger.debug(
            "abstraction.deployed",
            contract=self.contract_name,
            address=instance.address,
            network_id=self.network_id,
        )
        return instance

    async def new(self, *args: Any) -> Contract:
        """Deploy a new instance and wait for it to be mined.

        Args:
            *args: Constructor arguments, optionally followed by a
                transaction-parameter record

        Raises:
            ArgumentCountError: Constructor arity mismatch
            UnlinkedLibraryError: Unresolved placeholders (before any network call)
            TransactionTimeoutError: Creation not mined within the timeout
            ContractNotDeployedError: Receipt carries no contract address
        """
        constructor = self.descriptor.constructor
        arity = len(constructor.inputs) if constructor else 0
        ctor_args, tx_params = split_tx_params(f"{self.contract_name}.new", arity, args)

        data = self.binary
        if constructor is not None:
            data += constructor.encode_arguments(ctor_args)

        tx = self.merged_tx_params(tx_params)
        tx["data"] = data

        result = await self._synchronizer().send(tx, function=f"{self.contract_name}.new")

        contract_address = result.receipt.get("contractAddress")
        if not contract_address:
            raise ContractNotDeployedError(self.contract_name, None, self.network_id, result.tx)

        logger.info(
            "abstraction.contract_created",
            contract=self.contract_name,
            address=contract_address,
            tx_hash=result.tx,
            network_id=self.network_id,
        )
        return Contract(self, contract_address, transaction_hash=result.tx)

    # ------------------------------------------------------------------
    # Transaction recovery
    # ------------------------------------------------------------------

    def _synchronizer(self) -> TransactionSynchronizer:
        return TransactionSynchronizer(
            provider=self.require_provider(),
            schema=EventSchema.merge(self.descriptor.events, self.link_table),
            config=self.sync_config,
        )

    async def get_transaction(self, tx_hash: str) -> Optional[TransactionResult]:
        """One receipt lookup: None if not mined yet, else the decoded result."""
        return await self._synchronizer().get(tx_hash)

    async def sync_transaction(self, tx_hash: str) -> TransactionResult:
        """Wait for an already-submitted transaction, as a write invocation would.

        Raises:
            TransactionTimeoutError: Not mined within the timeout
        """
        return await self._synchronizer().sync(tx_hash)
