"""Data records: interface descriptors and transaction results."""

from chainbind.models.descriptor import (
    BytecodeTemplate,
    ContractArtifact,
    InterfaceDescriptor,
    NetworkRecord,
    Placeholder,
)
from chainbind.models.transaction import (
    DecodedLog,
    InvalidStateTransition,
    PendingTransaction,
    TransactionResult,
    TxState,
)

__all__ = [
    "BytecodeTemplate",
    "ContractArtifact",
    "InterfaceDescriptor",
    "NetworkRecord",
    "Placeholder",
    "DecodedLog",
    "InvalidStateTransition",
    "PendingTransaction",
    "TransactionResult",
    "TxState",
]
