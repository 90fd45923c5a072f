from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Set

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from swaploop.core.exceptions import UpstreamRateLimited
from swaploop.data.ledger.schemas import SignatureStatus, SimulationValue
from swaploop.engine.assets import TOKEN_2022_PROGRAM_ID, Asset, AssetRegistry
from swaploop.engine.wallet import Wallet

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
GIDDY_MINT = "8kQzvMELBQGSiFmrXqLuDSpYVLKkNoXE4bUQCC14wj3Z"

USDC = Asset(symbol="USDC", mint=USDC_MINT, decimals=6)
GIDDY = Asset(symbol="GIDDY", mint=GIDDY_MINT, decimals=6, token_program=TOKEN_2022_PROGRAM_ID)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeLedger:
    """In-memory stand-in for ``LedgerClient``; balances are keyed by mint."""

    def __init__(self, native: int = 50_000_000, balances: Optional[Dict[str, int]] = None) -> None:
        self.native = native
        self.balances: Dict[str, int] = dict(balances or {})
        self.missing_accounts: Set[str] = set()
        self.rate_limited = 0
        self.broken_mints: Set[str] = set()
        self.sent: List[str] = []
        self.statuses: List[Optional[SignatureStatus]] = []
        self.simulation = SimulationValue(err=None, logs=[])
        self.calls: List[str] = []

    def _maybe_limit(self) -> None:
        if self.rate_limited > 0:
            self.rate_limited -= 1
            raise UpstreamRateLimited("ledger rate limited", status_code=429)

    async def get_balance(self, owner: str) -> int:
        self.calls.append("getBalance")
        self._maybe_limit()
        return self.native

    async def get_token_accounts_by_owner(self, owner: str, mint: str) -> List[str]:
        self.calls.append("getTokenAccountsByOwner")
        return [f"acct-{mint}"]

    async def get_token_account_balance(self, account: str) -> int:
        self.calls.append("getTokenAccountBalance")
        self._maybe_limit()
        mint = account.split("acct-", 1)[1]
        if mint in self.broken_mints:
            raise RuntimeError("account decode failed")
        return self.balances.get(mint, 0)

    async def get_account_info(self, address: str) -> Optional[Dict[str, Any]]:
        self.calls.append("getAccountInfo")
        if address in self.missing_accounts:
            return None
        return {"lamports": 2_039_280}

    async def get_latest_blockhash(self) -> str:
        return str(Hash.default())

    async def send_transaction(self, transaction_b64: str) -> str:
        self.sent.append(transaction_b64)
        return f"sig-{len(self.sent)}"

    async def simulate_transaction(self, transaction_b64: str) -> SimulationValue:
        self.calls.append("simulateTransaction")
        return self.simulation

    async def get_signature_statuses(self, signatures: List[str]) -> List[Optional[SignatureStatus]]:
        self.calls.append("getSignatureStatuses")
        if not self.statuses:
            return [None]
        if len(self.statuses) > 1:
            return [self.statuses.pop(0)]
        return [self.statuses[0]]


def confirmed_status() -> SignatureStatus:
    return SignatureStatus(slot=1, confirmationStatus="confirmed")


def unsigned_transaction(payer: Pubkey) -> str:
    message = MessageV0.try_compile(payer, [], [], Hash.new_unique())
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(transaction)).decode("ascii")


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def registry() -> AssetRegistry:
    return AssetRegistry([USDC, GIDDY])


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger(native=50_000_000, balances={USDC_MINT: 20_000_000, GIDDY_MINT: 0})


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def wallet(keypair: Keypair, ledger: FakeLedger, sleeper: SleepRecorder) -> Wallet:
    return Wallet(keypair, ledger, sleep=sleeper)
