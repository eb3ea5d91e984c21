from decimal import localcontext
from typing import Iterable, List, Optional, Tuple
import structlog

from errors import (
    AlreadyExists,
    ClientMismatch,
    DisputeAlreadyExists,
    InsufficientFunds,
    LedgerError,
    Locked,
    NonexistentDispute,
    NonexistentTransaction,
)
from models import (
    Account,
    AccountSnapshot,
    BALANCE_CONTEXT,
    ResolvePolicy,
    RunSummary,
    SnapshotOrder,
    Transaction,
    TransactionRecord,
    TransactionType,
)
from repositories import (
    AccountRepository,
    DisputeRepository,
    InMemoryAccountRepository,
    InMemoryDisputeRepository,
    InMemoryTransactionRepository,
    TransactionRepository,
)

logger = structlog.get_logger()


class LedgerService:
    """Applies validated transactions to account state, one at a time.

    Every precondition is checked before anything is written, so a rejected
    transaction leaves balances, lock flags, the ledger and the dispute
    markers exactly as they were. The one exception is the lazily created
    empty account of a rejected deposit or withdrawal.
    """

    def __init__(
        self,
        account_repo: Optional[AccountRepository] = None,
        transaction_repo: Optional[TransactionRepository] = None,
        dispute_repo: Optional[DisputeRepository] = None,
        resolve_policy: ResolvePolicy = ResolvePolicy.release,
    ):
        self.account_repo = account_repo if account_repo is not None else InMemoryAccountRepository()
        self.transaction_repo = transaction_repo if transaction_repo is not None else InMemoryTransactionRepository()
        self.dispute_repo = dispute_repo if dispute_repo is not None else InMemoryDisputeRepository()
        self.resolve_policy = resolve_policy

    def apply(self, transaction: Transaction) -> None:
        """Apply one transaction. Raises a ``LedgerError`` on rejection."""
        with localcontext(BALANCE_CONTEXT):
            self._apply(transaction)

    def _apply(self, transaction: Transaction) -> None:
        if transaction.type == TransactionType.deposit:
            account = self._check_regular(transaction)
            account.available += transaction.amount
            self.transaction_repo.store_transaction(transaction)
        elif transaction.type == TransactionType.withdrawal:
            account = self._check_regular(transaction)
            # an amount equal to the whole available balance is rejected too
            if transaction.amount >= account.available:
                raise InsufficientFunds(transaction.id)
            account.available -= transaction.amount
            self.transaction_repo.store_transaction(transaction)
        elif transaction.type == TransactionType.dispute:
            account, referenced = self._check_irregular(transaction)
            account.held += referenced.amount
            account.available -= referenced.amount
            self.dispute_repo.open_dispute(transaction.id)
        elif transaction.type == TransactionType.resolve:
            account, referenced = self._check_irregular(transaction)
            if self.resolve_policy == ResolvePolicy.rehold:
                account.held += referenced.amount
                account.available -= referenced.amount
            else:
                account.held -= referenced.amount
                account.available += referenced.amount
            self.dispute_repo.close_dispute(transaction.id)
        elif transaction.type == TransactionType.chargeback:
            account, referenced = self._check_irregular(transaction)
            account.locked = True
            account.held -= referenced.amount
            self.dispute_repo.close_dispute(transaction.id)

        logger.debug(
            "Transaction applied",
            tx=transaction.id,
            client=transaction.client,
            type=transaction.type.value,
            available=str(account.available),
            held=str(account.held),
            locked=account.locked,
        )

    def _check_regular(self, transaction: Transaction) -> Account:
        if self.transaction_repo.transaction_exists(transaction.id):
            raise AlreadyExists(transaction.id)
        account = self.account_repo.get_or_create_account(transaction.client)
        if account.locked:
            raise Locked(transaction.id)
        return account

    def _check_irregular(self, transaction: Transaction) -> Tuple[Account, Transaction]:
        referenced = self.transaction_repo.get_transaction(transaction.id)
        if referenced is None:
            raise NonexistentTransaction(transaction.id)
        if referenced.client != transaction.client:
            raise ClientMismatch(transaction.id)
        # the referenced transaction was accepted, so its account exists
        account = self.account_repo.get_account(transaction.client)
        if account.locked:
            raise Locked(transaction.id)

        disputed = self.dispute_repo.is_disputed(transaction.id)
        if transaction.type == TransactionType.dispute:
            if disputed:
                raise DisputeAlreadyExists(transaction.id)
        elif not disputed:
            raise NonexistentDispute(transaction.id)
        return account, referenced

    def process(self, records: Iterable[TransactionRecord]) -> RunSummary:
        """Validate and apply every record, skipping the ones that are rejected.

        Input errors raised while iterating ``records`` are not caught here;
        they abort the run.
        """
        summary = RunSummary()
        logger.info("Processing started", resolve_policy=self.resolve_policy.value)

        for record in records:
            summary.records_read += 1
            try:
                self.apply(record.to_transaction())
            except LedgerError as e:
                summary.rejected[e.code] = summary.rejected.get(e.code, 0) + 1
                logger.warning(
                    "Transaction rejected",
                    tx=record.id,
                    client=record.client,
                    type=record.type.value,
                    error_code=e.code,
                    reason=str(e),
                )
            else:
                summary.applied += 1

        summary.accounts_count = self.account_repo.get_accounts_count()
        summary.transactions_count = self.transaction_repo.get_transactions_count()
        summary.open_disputes = self.dispute_repo.get_disputes_count()
        logger.info(
            "Processing finished",
            records_read=summary.records_read,
            applied=summary.applied,
            rejected=summary.rejected_total,
            accounts_count=summary.accounts_count,
            transactions_count=summary.transactions_count,
            open_disputes=summary.open_disputes,
        )
        return summary

    def snapshot(self, order: SnapshotOrder = SnapshotOrder.insertion) -> List[AccountSnapshot]:
        accounts = self.account_repo.list_accounts()
        if order == SnapshotOrder.client:
            accounts = sorted(accounts, key=lambda account: account.client)
        return [AccountSnapshot.from_account(account) for account in accounts]


# Factory function for dependency injection
def get_ledger_service(resolve_policy: ResolvePolicy = ResolvePolicy.release) -> LedgerService:
    return LedgerService(
        InMemoryAccountRepository(),
        InMemoryTransactionRepository(),
        InMemoryDisputeRepository(),
        resolve_policy=resolve_policy,
    )
