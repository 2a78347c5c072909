"""Event schema merging and receipt log decoding.

This module provides:
1. EventSchema - a topic-hash → EventSpec table built from a contract's own
   events and the events of libraries linked with event merging enabled
2. Log decoding - turning raw receipt logs into DecodedLog records, passing
   unknown logs through undecoded
"""

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional

import structlog
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address, to_hex
from hexbytes import HexBytes

from chainbind.abi import EventSpec
from chainbind.models.transaction import DecodedLog

if TYPE_CHECKING:
    from chainbind.linker import LinkTable

logger = structlog.get_logger()

# Indexed values of these types are stored as keccak256 hashes in topics
_HASHED_TOPIC_TYPES = ("string", "bytes")


def _is_hashed_topic_type(abi_type: str) -> bool:
    return abi_type in _HASHED_TOPIC_TYPES or abi_type.endswith("]") or abi_type.startswith("(")


def _hex(value: Any) -> str:
    return to_hex(bytes(HexBytes(value)))


def _optional_hex(value: Any) -> Optional[str]:
    return None if value is None else _hex(value)


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16)
    return int(value)


class EventSchema:
    """Frozen mapping from event topic hash to EventSpec."""

    def __init__(self, events: Mapping[bytes, EventSpec]):
        self._events = MappingProxyType(dict(events))

    @classmethod
    def from_events(cls, events: Iterable[EventSpec]) -> "EventSchema":
        """Build a schema from one event list; anonymous events are not keyed."""
        return cls({event.topic: event for event in events if not event.anonymous})

    @classmethod
    def merge(cls, own_events: Iterable[EventSpec], link_table: "LinkTable") -> "EventSchema":
        """Union own events with events of every merge-flagged linked library.

        Contract-owned events take precedence on topic collisions.

        Args:
            own_events: The contract's own EventSpecs
            link_table: Link table whose merge-flagged entries contribute events

        Returns:
            New, independent EventSchema
        """
        merged: dict[bytes, EventSpec] = {}

        for name, entry in link_table.items():
            if not entry.merge_events or entry.source is None:
                continue
            for event in entry.source.descriptor.events:
                if not event.anonymous:
                    merged.setdefault(event.topic, event)
            logger.debug("events.library_merged", library=name, address=entry.address)

        for event in own_events:
            if not event.anonymous:
                merged[event.topic] = event

        return cls(merged)

    def __contains__(self, topic: Any) -> bool:
        return bytes(HexBytes(topic)) in self._events

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self):
        return iter(self._events.values())

    def get(self, topic: Any) -> Optional[EventSpec]:
        return self._events.get(bytes(HexBytes(topic)))

    def by_name(self, name: str) -> list[EventSpec]:
        return [event for event in self._events.values() if event.name == name]

    def decode_log(self, log: Mapping[str, Any]) -> DecodedLog:
        """Decode one raw log.

        Logs whose first topic is unknown, or whose payload does not match
        the event's layout, are returned undecoded (``event=None``).
        """
        topics = [HexBytes(t) for t in log.get("topics", [])]
        data = HexBytes(log.get("data") or b"")
        address = log.get("address")

        raw = dict(
            address=to_checksum_address(address) if address else None,
            transaction_hash=_optional_hex(log.get("transactionHash")),
            block_number=_optional_int(log.get("blockNumber")),
            log_index=_optional_int(log.get("logIndex")),
            topics=tuple(_hex(t) for t in topics),
            data=_hex(data),
        )

        event = self.get(topics[0]) if topics else None
        if event is None:
            return DecodedLog(event=None, args=MappingProxyType({}), **raw)

        try:
            args = self._decode_args(event, topics[1:], bytes(data))
        except (DecodingError, ValueError, IndexError) as e:
            logger.warning(
                "events.decode_failed",
                event_signature=event.signature,
                transaction_hash=raw["transaction_hash"],
                error=str(e),
            )
            return DecodedLog(event=None, args=MappingProxyType({}), **raw)

        return DecodedLog(
            event=event.name,
            args=MappingProxyType(args),
            signature=event.signature,
            **raw,
        )

    def decode_logs(self, logs: Iterable[Mapping[str, Any]]) -> tuple[DecodedLog, ...]:
        """Decode logs in receipt order."""
        return tuple(self.decode_log(log) for log in logs)

    @staticmethod
    def _decode_args(event: EventSpec, topics: list[HexBytes], data: bytes) -> dict[str, Any]:
        indexed = event.indexed_inputs
        if len(topics) != len(indexed):
            raise ValueError(
                f"{event.signature} expects {len(indexed)} indexed topics, got {len(topics)}"
            )

        topic_values = []
        for param, topic in zip(indexed, topics):
            if _is_hashed_topic_type(param.type):
                topic_values.append(_hex(topic))
            else:
                topic_values.append(decode([param.type], bytes(topic))[0])

        data_params = event.data_inputs
        data_values = list(decode([p.type for p in data_params], data)) if data_params else []

        # Declaration order; unnamed params are keyed by position
        args: dict[str, Any] = {}
        for position, param in enumerate(event.inputs):
            source = topic_values if param.indexed else data_values
            args[param.name or str(position)] = source.pop(0)
        return args
