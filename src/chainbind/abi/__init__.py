"""Contract ABI utilities for chainbind.

This module parses the ``abi`` list of a contract artifact into immutable
function, event and constructor specs, and provides the encoding helpers the
invocation layer uses (selector + ABI-encoded arguments, decoded outputs).

Example:
    >>> functions, events, constructor = parse_abi(artifact["abi"])
    >>> functions[0].signature
    'setValue(uint256)'
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence

from eth_abi import decode, encode
from eth_utils.abi import (
    collapse_if_tuple,
    event_signature_to_log_topic,
    function_signature_to_4byte_selector,
)


class Mutability(str, Enum):
    """Function state mutability."""

    PURE = "pure"
    VIEW = "view"
    NONPAYABLE = "nonpayable"
    PAYABLE = "payable"

    @property
    def is_read_only(self) -> bool:
        return self in (Mutability.PURE, Mutability.VIEW)


@dataclass(frozen=True)
class AbiParam:
    """A single function/event parameter."""

    name: str
    type: str  # canonical type, tuples collapsed, e.g. "(uint256,address)[]"
    indexed: bool = False
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_abi(cls, entry: dict) -> "AbiParam":
        return cls(
            name=entry.get("name", ""),
            type=collapse_if_tuple(entry),
            indexed=bool(entry.get("indexed", False)),
            raw=dict(entry),
        )


def _mutability(entry: dict) -> Mutability:
    """Read state mutability, falling back to pre-0.4.16 ``constant``/``payable`` flags."""
    state = entry.get("stateMutability")
    if state:
        return Mutability(state)
    if entry.get("constant"):
        return Mutability.VIEW
    if entry.get("payable"):
        return Mutability.PAYABLE
    return Mutability.NONPAYABLE


@dataclass(frozen=True)
class FunctionSpec:
    """Parsed ABI function entry."""

    name: str
    inputs: tuple[AbiParam, ...]
    outputs: tuple[AbiParam, ...]
    mutability: Mutability

    @classmethod
    def from_abi(cls, entry: dict) -> "FunctionSpec":
        return cls(
            name=entry["name"],
            inputs=tuple(AbiParam.from_abi(p) for p in entry.get("inputs", [])),
            outputs=tuple(AbiParam.from_abi(p) for p in entry.get("outputs", [])),
            mutability=_mutability(entry),
        )

    @property
    def input_types(self) -> list[str]:
        return [p.type for p in self.inputs]

    @property
    def output_types(self) -> list[str]:
        return [p.type for p in self.outputs]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @property
    def selector(self) -> bytes:
        return function_signature_to_4byte_selector(self.signature)

    @property
    def is_read_only(self) -> bool:
        return self.mutability.is_read_only

    def encode_input(self, args: Sequence[Any]) -> str:
        """ABI-encode a call to this function.

        Args:
            args: Positional arguments, one per input

        Returns:
            0x-prefixed hex calldata (selector + encoded arguments)
        """
        encoded_args = encode(self.input_types, list(args)) if self.inputs else b""
        return "0x" + self.selector.hex() + encoded_args.hex()

    def decode_output(self, data: bytes) -> Any:
        """Decode raw return data.

        Returns:
            None for no outputs, the value for a single output, else a tuple
        """
        if not self.outputs:
            return None
        decoded = decode(self.output_types, bytes(data))
        if len(decoded) == 1:
            return decoded[0]
        return tuple(decoded)

    def to_abi(self) -> dict:
        return {
            "type": "function",
            "name": self.name,
            "inputs": [p.raw for p in self.inputs],
            "outputs": [p.raw for p in self.outputs],
            "stateMutability": self.mutability.value,
        }


@dataclass(frozen=True)
class ConstructorSpec:
    """Parsed ABI constructor entry."""

    inputs: tuple[AbiParam, ...] = ()
    mutability: Mutability = Mutability.NONPAYABLE

    @classmethod
    def from_abi(cls, entry: dict) -> "ConstructorSpec":
        return cls(
            inputs=tuple(AbiParam.from_abi(p) for p in entry.get("inputs", [])),
            mutability=_mutability(entry),
        )

    @property
    def input_types(self) -> list[str]:
        return [p.type for p in self.inputs]

    def encode_arguments(self, args: Sequence[Any]) -> str:
        """ABI-encode constructor arguments (hex, no 0x prefix)."""
        if not self.inputs:
            return ""
        return encode(self.input_types, list(args)).hex()

    def to_abi(self) -> dict:
        return {
            "type": "constructor",
            "inputs": [p.raw for p in self.inputs],
            "stateMutability": self.mutability.value,
        }


@dataclass(frozen=True)
class EventSpec:
    """Parsed ABI event entry.

    The ``topic`` (keccak256 of the canonical signature) is the key used to
    match raw logs against this event.
    """

    name: str
    inputs: tuple[AbiParam, ...]
    anonymous: bool = False

    @classmethod
    def from_abi(cls, entry: dict) -> "EventSpec":
        return cls(
            name=entry["name"],
            inputs=tuple(AbiParam.from_abi(p) for p in entry.get("inputs", [])),
            anonymous=bool(entry.get("anonymous", False)),
        )

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(p.type for p in self.inputs)})"

    @property
    def topic(self) -> bytes:
        return event_signature_to_log_topic(self.signature)

    @property
    def indexed_inputs(self) -> tuple[AbiParam, ...]:
        return tuple(p for p in self.inputs if p.indexed)

    @property
    def data_inputs(self) -> tuple[AbiParam, ...]:
        return tuple(p for p in self.inputs if not p.indexed)

    def to_abi(self) -> dict:
        return {
            "type": "event",
            "name": self.name,
            "inputs": [p.raw for p in self.inputs],
            "anonymous": self.anonymous,
        }


@dataclass(frozen=True)
class ParsedAbi:
    """Result of parse_abi()."""

    functions: tuple[FunctionSpec, ...]
    events: tuple[EventSpec, ...]
    constructor: ConstructorSpec | None = None
    has_fallback: bool = False
    has_receive: bool = False


def parse_abi(abi: Iterable[dict]) -> ParsedAbi:
    """Parse a contract ABI list.

    Args:
        abi: ABI as list of function/event descriptors

    Returns:
        ParsedAbi with functions and events in declaration order

    Raises:
        ValueError: If two entries share the same name and input types
    """
    functions: list[FunctionSpec] = []
    events: list[EventSpec] = []
    constructor = None
    has_fallback = False
    has_receive = False
    seen: set[tuple[str, str]] = set()

    for entry in abi:
        # Entries without a type are functions (solc < 0.4.x omitted it)
        entry_type = entry.get("type", "function")

        if entry_type == "function":
            spec = FunctionSpec.from_abi(entry)
            key = ("function", spec.signature)
            if key in seen:
                raise ValueError(f"Duplicate function signature in ABI: {spec.signature}")
            seen.add(key)
            functions.append(spec)
        elif entry_type == "event":
            event = EventSpec.from_abi(entry)
            key = ("event", event.signature)
            if key in seen:
                raise ValueError(f"Duplicate event signature in ABI: {event.signature}")
            seen.add(key)
            events.append(event)
        elif entry_type == "constructor":
            constructor = ConstructorSpec.from_abi(entry)
        elif entry_type == "fallback":
            has_fallback = True
        elif entry_type == "receive":
            has_receive = True
        # "error" entries carry no runtime behavior here

    return ParsedAbi(
        functions=tuple(functions),
        events=tuple(events),
        constructor=constructor,
        has_fallback=has_fallback,
        has_receive=has_receive,
    )
