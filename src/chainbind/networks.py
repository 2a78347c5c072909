"""Per-network address bindings for a contract abstraction."""

from dataclasses import dataclass
from typing import Any, Iterator, Optional

from eth_utils import is_address, to_checksum_address

from chainbind.services.exceptions import NoAddressError


def normalize_network_id(network_id: Any) -> str:
    """Network ids may arrive as ints or strings; both forms compare equal."""
    if network_id is None:
        raise ValueError("network id is required")
    return str(network_id)


def normalize_address(address: str) -> str:
    """Validate an address and return its checksummed form.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


@dataclass(frozen=True)
class NetworkBinding:
    """Deployed address of a contract on one network."""

    address: str
    contract_name: str


class AddressTable:
    """Maps network ids to deployed addresses, with one current network.

    The current network only changes through set_network().
    """

    def __init__(self, contract_name: str, network_id: Any = None):
        self.contract_name = contract_name
        self._bindings: dict[str, NetworkBinding] = {}
        self._current: Optional[str] = None
        if network_id is not None:
            self.set_network(network_id)

    def __repr__(self) -> str:
        return (
            f"AddressTable({self.contract_name!r}, current={self._current!r}, "
            f"networks={sorted(self._bindings)!r})"
        )

    def __iter__(self) -> Iterator[tuple[str, NetworkBinding]]:
        return iter(self._bindings.items())

    @property
    def network_id(self) -> Optional[str]:
        return self._current

    def set_network(self, network_id: Any) -> None:
        """Select the current network; a binding for it is not required."""
        self._current = normalize_network_id(network_id)

    def has_network(self, network_id: Any) -> bool:
        return normalize_network_id(network_id) in self._bindings

    def networks(self) -> set[str]:
        return set(self._bindings)

    def binding(self, network_id: Any = None) -> NetworkBinding:
        """
        Get the binding for a network (the current one by default).

        Raises:
            NoAddressError: If no network is selected or no binding exists
        """
        key = self._current if network_id is None else normalize_network_id(network_id)
        if key is None or key not in self._bindings:
            raise NoAddressError(self.contract_name, key)
        return self._bindings[key]

    @property
    def address(self) -> str:
        """Deployed address on the current network.

        Raises:
            NoAddressError: If no network is selected or no binding exists
        """
        return self.binding().address

    def bind(self, network_id: Any, address: str) -> NetworkBinding:
        binding = NetworkBinding(
            address=normalize_address(address), contract_name=self.contract_name
        )
        self._bindings[normalize_network_id(network_id)] = binding
        return binding

    def unbind(self, network_id: Any) -> None:
        self._bindings.pop(normalize_network_id(network_id), None)

    def copy(self) -> "AddressTable":
        clone = AddressTable(self.contract_name)
        clone._bindings = dict(self._bindings)
        clone._current = self._current
        return clone
