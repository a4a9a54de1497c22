"""Service wiring and the per-user lender session."""
from __future__ import annotations

import logging

from ..chains.evm import EscrowContracts, EvmClient, JsonRpcWallet
from ..config import AppConfig
from ..interfaces.ledger import DealLedger
from ..interfaces.notifier import Notifier
from ..interfaces.wallet import WalletProvider
from ..ledger import HttpDealLedger, Outbox
from ..models import DealRecord, LenderIdentity, LenderPosition, OperationResult, Receipt
from ..notifications import TelegramNotifier
from .admin import AdminRateController
from .chain_reader import ChainStateReader
from .position_cache import PositionCache
from .reconciler import PositionReconciler, UserLocks
from .refresh import RefreshScheduler
from .submitter import TransactionSubmitter
from .sweeper import ReconciliationSweeper, SweepReport

logger = logging.getLogger(__name__)


class LenderService:
    """Builds the chain, ledger and orchestration components from config."""

    def __init__(
        self,
        config: AppConfig,
        client: EvmClient | None = None,
        wallet: WalletProvider | None = None,
        ledger: DealLedger | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config

        self.client = client or EvmClient(config.chain)
        self.wallet = wallet or JsonRpcWallet(self.client, config.wallet.address)
        self.contracts = EscrowContracts(
            self.client, config.chain.escrow_address, config.chain.lender_address
        )
        self.ledger = ledger or HttpDealLedger(config.ledger)
        self.outbox = Outbox(config.outbox.path)

        if notifiers is None:
            notifiers = []
            if config.notifications.telegram.enabled:
                notifiers.append(TelegramNotifier(config.notifications.telegram))
        self.notifiers = notifiers

        self.cache = PositionCache()
        self.reader = ChainStateReader(self.contracts, self.cache)
        self.submitter = TransactionSubmitter(
            self.wallet,
            self.contracts,
            self.client,
            poll_interval=config.chain.receipt_poll_seconds,
            receipt_timeout=config.chain.receipt_timeout_seconds,
        )
        self.locks = UserLocks()
        self.reconciler = PositionReconciler(
            self.submitter,
            self.ledger,
            self.reader,
            self.outbox,
            notifiers=self.notifiers,
            locks=self.locks,
        )
        self.admin = AdminRateController(config.admin.address, self.submitter)
        self.sweeper = ReconciliationSweeper(
            self.outbox,
            self.submitter,
            self.ledger,
            self.locks,
            notifiers=self.notifiers,
        )

    def session(
        self, user_id: int, refresh_interval: float | None = None
    ) -> "LenderSession":
        interval = refresh_interval or self._config.refresh.interval_seconds
        return LenderSession(self, user_id, interval)

    async def reconcile(self) -> SweepReport:
        return await self.sweeper.sweep()


class LenderSession:
    """An active user paired with the wallet address.

    Entering the session resolves the wallet address and starts the periodic
    position refresh; leaving it stops the refresh deterministically.
    """

    def __init__(self, service: LenderService, user_id: int, refresh_interval: float) -> None:
        self._service = service
        self.user_id = user_id
        self._refresh_interval = refresh_interval
        self._identity: LenderIdentity | None = None
        self._scheduler: RefreshScheduler | None = None

    @property
    def identity(self) -> LenderIdentity:
        if self._identity is None:
            raise RuntimeError("Session not started")
        return self._identity

    async def start(self, refresh: bool = True) -> None:
        address = await self._service.wallet.get_address()
        self._identity = LenderIdentity(user_id=self.user_id, address=address)
        logger.info("Session started for user %s (%s)", self.user_id, address)
        if refresh:
            self._scheduler = RefreshScheduler(
                self._service.reader, self._identity, self._refresh_interval
            )
            self._scheduler.start()

    async def stop(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
            self._scheduler = None

    async def __aenter__(self) -> "LenderSession":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    @property
    def position(self) -> LenderPosition | None:
        """Last cached snapshot; may lag the chain by one refresh interval."""
        return self._service.cache.get(self.user_id)

    async def refresh(self) -> LenderPosition:
        return await self._service.reader.refresh(self.identity)

    async def deposit(self, amount: int) -> OperationResult:
        return await self._service.reconciler.deposit(self.identity, amount)

    async def withdraw(self) -> OperationResult:
        return await self._service.reconciler.withdraw(self.identity)

    async def deals(self) -> list[DealRecord]:
        return await self._service.ledger.list_by_user(self.user_id)

    @property
    def is_admin(self) -> bool:
        return self._service.admin.is_admin(self.identity.address)

    async def change_rate(self, new_rate_bps: int) -> Receipt:
        return await self._service.admin.change_rate(self.identity.address, new_rate_bps)
