from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from swaploop.core.backoff import Sleep
from swaploop.core.exceptions import (
    ConfirmationTimeout,
    SimulationFailed,
    TransactionFailed,
    UpstreamError,
)
from swaploop.data.ledger.client import LedgerClient, LedgerRpcError
from swaploop.engine.wallet import Wallet

logger = logging.getLogger(__name__)

CONFIRMED_LEVELS = {"confirmed", "finalized"}


@dataclass(frozen=True)
class ExecutionReceipt:
    transaction_id: str
    output_amount: int


@dataclass(frozen=True)
class ProviderSubmission:
    signature: str
    output_amount: Optional[int] = None


ProviderSubmitter = Callable[[str], Awaitable[ProviderSubmission]]


def decode_transaction(transaction_b64: str) -> VersionedTransaction:
    try:
        raw = base64.b64decode(transaction_b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TransactionFailed("transaction payload is not valid base64") from exc
    try:
        return VersionedTransaction.from_bytes(raw)
    except ValueError as exc:
        raise TransactionFailed(f"could not deserialize transaction: {exc}") from exc


def encode_transaction(transaction: VersionedTransaction) -> str:
    return base64.b64encode(bytes(transaction)).decode("ascii")


class ExecutionEngine:
    """Signs provider-built transactions and drives them to confirmation.

    Two submission strategies end in the same ``ExecutionReceipt``: a provider
    that submits the signed transaction itself, or the ledger path
    (``sendTransaction`` then ``getSignatureStatuses`` polling).
    """

    def __init__(
        self,
        wallet: Wallet,
        ledger: LedgerClient,
        confirm_timeout_sec: float = 60.0,
        confirm_poll_sec: float = 0.5,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.wallet = wallet
        self.ledger = ledger
        self.confirm_timeout_sec = confirm_timeout_sec
        self.confirm_poll_sec = max(0.01, confirm_poll_sec)
        self._sleep = sleep or asyncio.sleep

    def sign(self, transaction_b64: str) -> str:
        transaction = decode_transaction(transaction_b64)
        return encode_transaction(self.wallet.sign(transaction))

    async def execute(
        self,
        transaction_b64: str,
        expected_out: int,
        submitter: Optional[ProviderSubmitter] = None,
        simulate_first: bool = False,
    ) -> ExecutionReceipt:
        signed = self.sign(transaction_b64)
        if simulate_first:
            await self.simulate(signed)
        if submitter is not None:
            submission = await submitter(signed)
            if not submission.signature:
                raise TransactionFailed("provider returned no signature")
            output = submission.output_amount if submission.output_amount else expected_out
            return ExecutionReceipt(transaction_id=submission.signature, output_amount=int(output))
        signature = await self.send_and_confirm(signed)
        return ExecutionReceipt(transaction_id=signature, output_amount=int(expected_out))

    async def simulate(self, signed_b64: str) -> None:
        result = await self.ledger.simulate_transaction(signed_b64)
        if result.err is not None:
            logs = result.logs or []
            raise SimulationFailed(f"Simulation failed: {result.err}", logs=logs)

    async def send_and_confirm(self, signed_b64: str) -> str:
        try:
            signature = await self.ledger.send_transaction(signed_b64)
        except LedgerRpcError as exc:
            raise TransactionFailed(f"send rejected: {exc}") from exc
        logger.info("submitted %s, awaiting confirmation", signature)
        await self.confirm(signature)
        return signature

    async def confirm(self, signature: str) -> None:
        polls = max(1, math.ceil(self.confirm_timeout_sec / self.confirm_poll_sec))
        for _ in range(polls):
            try:
                statuses = await self.ledger.get_signature_statuses([signature])
            except UpstreamError as exc:
                logger.debug("status poll for %s failed: %s", signature, exc)
                statuses = []
            status = statuses[0] if statuses else None
            if status is not None:
                if status.err is not None:
                    raise TransactionFailed(f"transaction {signature} failed: {status.err}", signature=signature)
                if status.confirmation_status in CONFIRMED_LEVELS:
                    logger.info("confirmed %s (%s)", signature, status.confirmation_status)
                    return
            await self._sleep(self.confirm_poll_sec)
        raise ConfirmationTimeout(
            f"transaction {signature} not confirmed within {self.confirm_timeout_sec:.0f}s",
            signature=signature,
        )

    async def build_and_send(self, instructions: List[Instruction]) -> str:
        blockhash = await self.ledger.get_latest_blockhash()
        message = MessageV0.try_compile(self.wallet.pubkey, instructions, [], Hash.from_string(blockhash))
        transaction = VersionedTransaction(message, [self.wallet.keypair])
        return await self.send_and_confirm(encode_transaction(transaction))


__all__ = [
    "ExecutionEngine",
    "ExecutionReceipt",
    "ProviderSubmission",
    "ProviderSubmitter",
    "decode_transaction",
    "encode_transaction",
]
