from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import create_idempotent_associated_token_account, get_associated_token_address

from swaploop.config import repo_root
from swaploop.core.backoff import BackoffPolicy, Sleep, retry_async
from swaploop.core.exceptions import AccountPreparationFailed, PreconditionFailed, ProviderMisconfigured
from swaploop.data.ledger.client import LedgerClient
from swaploop.engine.assets import Asset

logger = logging.getLogger(__name__)

Submitter = Callable[[List[Instruction]], Awaitable[str]]

ALREADY_EXISTS_MARKERS = ("already in use", "already exists")


@dataclass(frozen=True)
class WalletSettings:
    keypair_path: str
    private_key: str

    @classmethod
    def from_env(cls, cfg: Optional[Dict[str, Any]] = None) -> "WalletSettings":
        section = dict((cfg or {}).get("wallet", {}) or {})
        return cls(
            keypair_path=os.getenv("KEYPAIR_PATH", "").strip() or str(section.get("keypair_path", "keypair.json")),
            private_key=os.getenv("SOLANA_PRIVATE_KEY", "").strip(),
        )


def load_keypair(settings: WalletSettings) -> Keypair:
    """Load the signing keypair from a base58 secret or a JSON byte-array file."""
    if settings.private_key:
        try:
            return Keypair.from_base58_string(settings.private_key)
        except ValueError as exc:
            raise ProviderMisconfigured("SOLANA_PRIVATE_KEY is not a valid base58 keypair") from exc

    path = Path(settings.keypair_path)
    if not path.is_absolute():
        path = repo_root() / path
    if not path.exists():
        raise ProviderMisconfigured(f"Keypair file not found: {path}")
    try:
        secret = json.loads(path.read_text(encoding="utf-8"))
        return Keypair.from_bytes(bytes(secret))
    except (ValueError, TypeError) as exc:
        raise ProviderMisconfigured(f"Keypair file {path} is not a 64-byte JSON array") from exc


class Wallet:
    """The single signing identity plus its token-account cache.

    Token accounts are resolved lazily and memoized by mint for the lifetime
    of the process. An asset with no account resolves to ``None`` and is not
    cached, so a later creation is picked up.
    """

    def __init__(
        self,
        keypair: Keypair,
        ledger: LedgerClient,
        account_policy: Optional[BackoffPolicy] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.keypair = keypair
        self.ledger = ledger
        self.account_policy = account_policy or BackoffPolicy.exponential(3, 1.0)
        self._sleep = sleep
        self.token_accounts: Dict[str, str] = {}

    @property
    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    @property
    def address(self) -> str:
        return str(self.keypair.pubkey())

    def sign(self, transaction: VersionedTransaction) -> VersionedTransaction:
        return VersionedTransaction(transaction.message, [self.keypair])

    def associated_address(self, asset: Asset) -> str:
        ata = get_associated_token_address(
            self.pubkey,
            Pubkey.from_string(asset.mint),
            Pubkey.from_string(asset.token_program),
        )
        return str(ata)

    async def resolve_token_account(self, asset: Asset) -> Optional[str]:
        cached = self.token_accounts.get(asset.mint)
        if cached:
            return cached
        accounts = await self.ledger.get_token_accounts_by_owner(self.address, asset.mint)
        if not accounts:
            return None
        self.token_accounts[asset.mint] = accounts[0]
        return accounts[0]

    async def ensure_token_account(self, asset: Asset, submit: Submitter) -> str:
        cached = self.token_accounts.get(asset.mint)
        if cached:
            return cached

        def _log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            logger.warning(
                "token account for %s not ready (attempt %s/%s), retrying in %.1fs: %s",
                asset.symbol,
                attempt,
                self.account_policy.max_attempts,
                delay,
                exc,
            )

        try:
            address = await retry_async(
                self.account_policy,
                lambda: self._ensure_once(asset, submit),
                on_retry=_log_retry,
                sleep=self._sleep,
            )
        except PreconditionFailed:
            raise
        except Exception as exc:
            raise AccountPreparationFailed(f"could not prepare accounts: {asset.symbol}: {exc}") from exc
        self.token_accounts[asset.mint] = address
        return address

    async def _ensure_once(self, asset: Asset, submit: Submitter) -> str:
        address = self.associated_address(asset)
        if await self.ledger.get_account_info(address) is not None:
            return address
        instruction = create_idempotent_associated_token_account(
            payer=self.pubkey,
            owner=self.pubkey,
            mint=Pubkey.from_string(asset.mint),
            token_program_id=Pubkey.from_string(asset.token_program),
        )
        try:
            signature = await submit([instruction])
        except Exception as exc:
            message = str(exc).lower()
            if any(marker in message for marker in ALREADY_EXISTS_MARKERS):
                logger.info("token account for %s already exists: %s", asset.symbol, address)
                return address
            raise
        logger.info("created token account %s for %s (tx %s)", address, asset.symbol, signature)
        return address

    async def prepare_accounts(self, assets: List[Asset], submit: Submitter) -> Dict[str, str]:
        prepared: Dict[str, str] = {}
        for asset in assets:
            prepared[asset.symbol] = await self.ensure_token_account(asset, submit)
        return prepared


__all__ = ["Submitter", "Wallet", "WalletSettings", "load_keypair"]
