"""Transaction synchronizer: submit, wait for a final receipt, decode logs."""

import asyncio
from typing import Any, Mapping, Optional

import structlog

from chainbind.core.config import SyncConfig
from chainbind.models.transaction import (
    PendingTransaction,
    TransactionResult,
    is_final_receipt,
)
from chainbind.services.blockchain.events import EventSchema
from chainbind.services.blockchain.provider import Provider
from chainbind.services.exceptions import TransactionTimeoutError

logger = structlog.get_logger()


def _attach_tx_hash(error: BaseException, tx_hash: str) -> None:
    """Tag a provider error with the transaction it concerns, leaving it otherwise unmodified."""
    try:
        error.tx_hash = tx_hash  # type: ignore[attr-defined]
    except AttributeError:
        pass


class TransactionSynchronizer:
    """Drives one provider's transactions from submission to a final receipt."""

    def __init__(
        self,
        provider: Provider,
        schema: EventSchema,
        config: Optional[SyncConfig] = None,
    ):
        """
        Initialize synchronizer.

        Args:
            provider: Provider used for submission and receipt lookups
            schema: Event schema used to decode receipt logs
            config: Timeout and polling parameters (default: SyncConfig())
        """
        self.provider = provider
        self.schema = schema
        self.config = config or SyncConfig()

    async def submit(self, tx: Mapping[str, Any]) -> str:
        """Submit a transaction without waiting for it to be mined.

        Returns:
            Transaction hash (0x-prefixed hex string)

        Raises:
            Exception: Provider errors, unmodified
        """
        try:
            tx_hash = await self.provider.send_transaction(dict(tx))
        except Exception as e:
            logger.error(
                "sync.transaction_submission_failed",
                error=str(e),
                error_type=type(e).__name__,
                to=tx.get("to"),
            )
            raise

        logger.info(
            "sync.transaction_submitted",
            tx_hash=tx_hash,
            to=tx.get("to"),
            sender=tx.get("from"),
            gas=tx.get("gas"),
        )
        return tx_hash

    async def send(
        self, tx: Mapping[str, Any], function: Optional[str] = None
    ) -> TransactionResult:
        """Submit a transaction and wait until it is mined.

        Raises:
            TransactionTimeoutError: Receipt not final within the timeout
            Exception: Provider errors, unmodified (``tx_hash`` attached when known)
        """
        tx_hash = await self.submit(tx)
        return await self.sync(tx_hash, to=tx.get("to"), function=function)

    async def sync(
        self,
        tx_hash: str,
        to: Optional[str] = None,
        function: Optional[str] = None,
    ) -> TransactionResult:
        """Wait for an already-submitted transaction to be mined.

        Polls for the receipt with a growing delay (poll_interval × backoff, capped
        at max_poll_interval). The whole wait, receipt lookups included, is
        bounded by the configured timeout.

        Args:
            tx_hash: Hash of a submitted transaction
            to: Target address, reported on timeout
            function: Function signature, reported on timeout

        Returns:
            TransactionResult with decoded logs

        Raises:
            TransactionTimeoutError: Receipt not final within the timeout
            Exception: Provider errors, unmodified (``tx_hash`` attached)
        """
        pending = PendingTransaction(tx_hash=tx_hash)
        pending.mark_pending()

        deadline = asyncio.get_running_loop().time() + self.config.timeout
        waiter = asyncio.timeout_at(deadline)
        try:
            async with waiter:
                receipt = await self._wait_for_receipt(pending, deadline)
        except TimeoutError:
            if not waiter.expired():
                raise
            receipt = None

        if receipt is None:
            pending.mark_timed_out()
            logger.warning(
                "sync.transaction_timeout",
                tx_hash=tx_hash,
                timeout=self.config.timeout,
                polls=pending.polls,
                to=to,
                function=function,
            )
            raise TransactionTimeoutError(
                tx_hash, self.config.timeout, to=to, function=function
            )

        pending.mark_confirmed(receipt)
        return self._build_result(tx_hash, receipt, polls=pending.polls)

    async def _wait_for_receipt(
        self, pending: PendingTransaction, deadline: float
    ) -> Optional[Mapping[str, Any]]:
        """Poll until a final receipt arrives; None once the deadline has passed."""
        loop = asyncio.get_running_loop()
        delay = self.config.poll_interval

        while True:
            receipt = await self._fetch_receipt(pending.tx_hash)
            pending.polls += 1

            if is_final_receipt(receipt):
                return receipt

            remaining = deadline - loop.time()
            if remaining <= 0:
                return None

            logger.debug(
                "sync.receipt_pending",
                tx_hash=pending.tx_hash,
                polls=pending.polls,
                retry_in_seconds=min(delay, remaining),
            )
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * self.config.backoff, self.config.max_poll_interval)

    async def get(self, tx_hash: str) -> Optional[TransactionResult]:
        """Look up a transaction once, without waiting.

        Returns:
            TransactionResult if the receipt is final, else None
        """
        receipt = await self._fetch_receipt(tx_hash)
        if not is_final_receipt(receipt):
            return None
        return self._build_result(tx_hash, receipt)  # type: ignore[arg-type]

    async def _fetch_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            return await self.provider.get_transaction_receipt(tx_hash)
        except Exception as e:
            logger.error(
                "sync.receipt_lookup_failed",
                tx_hash=tx_hash,
                error=str(e),
                error_type=type(e).__name__,
            )
            _attach_tx_hash(e, tx_hash)
            raise

    def _build_result(
        self,
        tx_hash: str,
        receipt: Mapping[str, Any],
        polls: int = 1,
    ) -> TransactionResult:
        logs = self.schema.decode_logs(receipt.get("logs") or [])
        result = TransactionResult(tx=tx_hash, receipt=receipt, logs=logs)

        logger.info(
            "sync.transaction_confirmed",
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            status=result.status,
            log_count=len(logs),
            decoded_count=sum(1 for log in logs if log.decoded),
            polls=polls,
        )
        if result.status == 0:
            logger.warning(
                "sync.transaction_reverted",
                tx_hash=tx_hash,
                block_number=receipt.get("blockNumber"),
            )

        return result
