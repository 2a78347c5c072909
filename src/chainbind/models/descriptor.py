"""Interface descriptor - the immutable description of a contract.

A descriptor is built once from a compiler artifact (``ContractArtifact``)
and shared, read-only, by an abstraction and all of its clones.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from chainbind.abi import ConstructorSpec, EventSpec, FunctionSpec, parse_abi

# Library slots are always 20 bytes (40 hex chars) in legacy solc output:
# "__" + name padded with "_" (e.g. "__MathLib______...") or "__$<34 hex>$__".
PLACEHOLDER_WIDTH = 40
_PLACEHOLDER_START = re.compile(r"__")


@dataclass(frozen=True)
class Placeholder:
    """A named, unresolved address slot inside bytecode.

    ``offset`` and ``width`` are measured in hex characters, not counting the
    ``0x`` prefix.
    """

    name: str
    offset: int
    width: int = PLACEHOLDER_WIDTH


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def scan_placeholders(code: str) -> tuple[Placeholder, ...]:
    """Find legacy library placeholders in hex bytecode."""
    placeholders = []
    position = 0
    while True:
        match = _PLACEHOLDER_START.search(code, position)
        if match is None:
            break
        start = match.start()
        window = code[start : start + PLACEHOLDER_WIDTH]
        name = window[2:].rstrip("_")
        if len(window) < PLACEHOLDER_WIDTH or not name:
            raise ValueError(f"Malformed library placeholder at offset {start}: {window!r}")
        placeholders.append(Placeholder(name=name, offset=start))
        position = start + PLACEHOLDER_WIDTH
    return tuple(placeholders)


def placeholders_from_link_references(
    link_references: dict[str, dict[str, list[dict[str, int]]]],
) -> tuple[Placeholder, ...]:
    """Build placeholders from solc ``linkReferences`` (byte offsets and lengths)."""
    placeholders = [
        Placeholder(name=library, offset=ref["start"] * 2, width=ref["length"] * 2)
        for libraries in link_references.values()
        for library, refs in libraries.items()
        for ref in refs
    ]
    return tuple(sorted(placeholders, key=lambda p: p.offset))


@dataclass(frozen=True)
class BytecodeTemplate:
    """Hex bytecode with named placeholder ranges."""

    code: str  # hex, no 0x prefix
    placeholders: tuple[Placeholder, ...] = ()

    @classmethod
    def parse(
        cls,
        bytecode: str | None,
        link_references: Optional[dict[str, Any]] = None,
    ) -> "BytecodeTemplate":
        code = _strip_0x(bytecode or "")
        if link_references:
            placeholders = placeholders_from_link_references(link_references)
        else:
            placeholders = scan_placeholders(code)
        return cls(code=code, placeholders=placeholders)

    @property
    def library_names(self) -> tuple[str, ...]:
        """Names of every library referenced, in first-occurrence order."""
        return tuple(dict.fromkeys(p.name for p in self.placeholders))

    @property
    def is_empty(self) -> bool:
        return not self.code

    def __str__(self) -> str:
        return "0x" + self.code


class NetworkRecord(BaseModel):
    """Per-network deployment record as stored in artifacts."""

    model_config = ConfigDict(extra="ignore")

    address: Optional[str] = None
    links: dict[str, str] = Field(default_factory=dict)
    events: dict[str, Any] = Field(default_factory=dict)


class ContractArtifact(BaseModel):
    """Artifact JSON produced by an external compile/build step.

    Accepts both truffle-style (``contract_name``, ``unlinked_binary``) and
    solc/hardhat-style (``contractName``, ``bytecode``) keys; field names and
    aliases are both populated.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    abi: list[dict[str, Any]]
    contract_name: str = Field(default="Contract", alias="contractName")
    unlinked_binary: Optional[str] = Field(default=None, alias="bytecode")
    deployed_bytecode: Optional[str] = Field(default=None, alias="deployedBytecode")
    link_references: dict[str, Any] = Field(default_factory=dict, alias="linkReferences")
    deployed_link_references: dict[str, Any] = Field(
        default_factory=dict, alias="deployedLinkReferences"
    )
    networks: dict[str, NetworkRecord] = Field(default_factory=dict)
    address: Optional[str] = None
    network_id: Optional[str] = None
    links: dict[str, str] = Field(default_factory=dict)

    @field_validator("unlinked_binary", "deployed_bytecode", mode="before")
    @classmethod
    def unwrap_bytecode_object(cls, value: Any) -> Any:
        """Foundry emits ``{"object": "0x..."}`` instead of a plain string."""
        if isinstance(value, dict):
            return value.get("object")
        return value

    @field_validator("network_id", mode="before")
    @classmethod
    def network_id_to_str(cls, value: Any) -> Any:
        return None if value is None else str(value)

    @field_validator("networks", mode="before")
    @classmethod
    def network_keys_to_str(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(key): record for key, record in value.items()}
        return value


@dataclass(frozen=True)
class InterfaceDescriptor:
    """Immutable contract description shared by abstractions and clones."""

    contract_name: str
    functions: tuple[FunctionSpec, ...]
    events: tuple[EventSpec, ...]
    bytecode: BytecodeTemplate
    deployed_bytecode: BytecodeTemplate
    constructor: Optional[ConstructorSpec] = None
    has_fallback: bool = False
    has_receive: bool = False
    abi: tuple[dict, ...] = ()

    @classmethod
    def from_artifact(cls, artifact: ContractArtifact) -> "InterfaceDescriptor":
        parsed = parse_abi(artifact.abi)
        return cls(
            contract_name=artifact.contract_name,
            functions=parsed.functions,
            events=parsed.events,
            bytecode=BytecodeTemplate.parse(artifact.unlinked_binary, artifact.link_references),
            deployed_bytecode=BytecodeTemplate.parse(
                artifact.deployed_bytecode, artifact.deployed_link_references
            ),
            constructor=parsed.constructor,
            has_fallback=parsed.has_fallback,
            has_receive=parsed.has_receive,
            abi=tuple(artifact.abi),
        )

    def functions_named(self, name: str) -> list[FunctionSpec]:
        return [f for f in self.functions if f.name == name]
