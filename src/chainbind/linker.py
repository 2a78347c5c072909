"""Library linking: resolving named placeholder slots in bytecode.

A LinkTable maps library names to addresses. Linking is last-write-wins and
idempotent; applying the table to a BytecodeTemplate replaces every slot of
each linked library with its address.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional

import structlog

from chainbind.models.descriptor import BytecodeTemplate
from chainbind.networks import normalize_address
from chainbind.services.exceptions import UnlinkedLibraryError

if TYPE_CHECKING:
    from chainbind.abstraction import ContractAbstraction

logger = structlog.get_logger()

ADDRESS_HEX_WIDTH = 40


@dataclass(frozen=True)
class LinkEntry:
    """One linked library."""

    address: str
    source: Optional["ContractAbstraction"] = None  # library abstraction, when known
    merge_events: bool = False


class LinkTable:
    """Library name → LinkEntry."""

    def __init__(self, entries: Optional[Mapping[str, LinkEntry]] = None):
        self._entries: dict[str, LinkEntry] = dict(entries or {})

    def __repr__(self) -> str:
        return f"LinkTable({self.addresses()!r})"

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __getitem__(self, name: str) -> LinkEntry:
        return self._entries[name]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LinkTable):
            return NotImplemented
        return self._entries == other._entries

    def items(self) -> Iterator[tuple[str, LinkEntry]]:
        return iter(self._entries.items())

    def addresses(self) -> dict[str, str]:
        return {name: entry.address for name, entry in self._entries.items()}

    def set(
        self,
        name: str,
        address: str,
        source: Optional["ContractAbstraction"] = None,
        merge_events: bool = False,
    ) -> LinkEntry:
        """Bind a library name, replacing any previous entry for it."""
        if not name:
            raise ValueError("library name is required")
        entry = LinkEntry(
            address=normalize_address(address), source=source, merge_events=merge_events
        )
        previous = self._entries.get(name)
        self._entries[name] = entry
        if previous != entry:
            logger.debug(
                "linker.library_linked",
                library=name,
                address=entry.address,
                merge_events=merge_events,
                replaced=previous.address if previous else None,
            )
        return entry

    def remove(self, name: str) -> None:
        self._entries.pop(name, None)

    def copy(self) -> "LinkTable":
        return LinkTable(self._entries)

    def link(self, target: Any, address: Optional[str] = None) -> None:
        """Apply one of the three accepted link forms.

        Args:
            target: A library Contract instance or ContractAbstraction
                (name and address inferred, events merged), a library
                name (requires ``address``), or a name → address mapping
            address: Library address when ``target`` is a name

        Raises:
            TypeError: If the arguments match none of the forms
            NoAddressError: If a library abstraction has no address on its
                current network
        """
        # Imported here: abstraction/instance import this module
        from chainbind.abstraction import ContractAbstraction
        from chainbind.instance import Contract

        if isinstance(target, Contract):
            if address is not None:
                raise TypeError("address must not be given when linking a contract instance")
            self.set(
                target.abstraction.contract_name,
                target.address,
                source=target.abstraction,
                merge_events=True,
            )
        elif isinstance(target, ContractAbstraction):
            if address is not None:
                raise TypeError("address must not be given when linking a contract abstraction")
            self.set(target.contract_name, target.address, source=target, merge_events=True)
        elif isinstance(target, str):
            if address is None:
                raise TypeError(f"address is required to link library {target!r}")
            self.set(target, address)
        elif isinstance(target, Mapping):
            if address is not None:
                raise TypeError("address must not be given with a name → address mapping")
            for name, library_address in target.items():
                self.set(name, library_address)
        else:
            raise TypeError(
                f"Cannot link {type(target).__name__}; expected a contract instance, "
                "a contract abstraction, a library name and address, or a mapping"
            )


def link_bytecode(
    template: BytecodeTemplate,
    links: LinkTable,
    contract_name: str = "Contract",
) -> str:
    """Resolve every placeholder in a bytecode template.

    Addresses are left-padded with zeros to the slot width.

    Args:
        template: Bytecode with placeholder ranges
        links: Library name → address table
        contract_name: Used in error messages

    Returns:
        0x-prefixed linked bytecode

    Raises:
        UnlinkedLibraryError: If any placeholder has no linked library
        ValueError: If a slot is narrower than an address
    """
    missing = [p.name for p in template.placeholders if p.name not in links]
    if missing:
        raise UnlinkedLibraryError(contract_name, missing)

    code = template.code
    for placeholder in template.placeholders:
        if placeholder.width < ADDRESS_HEX_WIDTH:
            raise ValueError(
                f"Placeholder for {placeholder.name} at offset {placeholder.offset} "
                f"is {placeholder.width // 2} bytes wide; an address needs 20"
            )
        address_hex = links[placeholder.name].address[2:].lower()
        replacement = address_hex.rjust(placeholder.width, "0")
        end = placeholder.offset + placeholder.width
        code = code[: placeholder.offset] + replacement + code[end:]

    return "0x" + code
