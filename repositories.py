from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set

from models import Account, Transaction


class AccountRepository(ABC):
    @abstractmethod
    def get_account(self, client_id: int) -> Optional[Account]:
        """Get account. Returns None if account doesn't exist."""
        pass

    @abstractmethod
    def get_or_create_account(self, client_id: int) -> Account:
        """Get account, creating an empty unlocked one on first reference."""
        pass

    @abstractmethod
    def list_accounts(self) -> List[Account]:
        """All accounts in the order they were created."""
        pass

    @abstractmethod
    def get_accounts_count(self) -> int:
        """Get total number of accounts."""
        pass


class TransactionRepository(ABC):
    @abstractmethod
    def get_transaction(self, tx_id: int) -> Optional[Transaction]:
        """Get stored deposit or withdrawal by transaction ID."""
        pass

    @abstractmethod
    def store_transaction(self, transaction: Transaction) -> None:
        """Store an accepted deposit or withdrawal."""
        pass

    @abstractmethod
    def transaction_exists(self, tx_id: int) -> bool:
        pass

    @abstractmethod
    def get_transactions_count(self) -> int:
        """Get total number of stored transactions."""
        pass


class DisputeRepository(ABC):
    @abstractmethod
    def is_disputed(self, tx_id: int) -> bool:
        pass

    @abstractmethod
    def open_dispute(self, tx_id: int) -> None:
        pass

    @abstractmethod
    def close_dispute(self, tx_id: int) -> None:
        pass

    @abstractmethod
    def get_disputes_count(self) -> int:
        pass


class InMemoryAccountRepository(AccountRepository):
    def __init__(self):
        # dicts keep insertion order, which is the default snapshot order
        self.accounts: Dict[int, Account] = {}

    def get_account(self, client_id: int) -> Optional[Account]:
        return self.accounts.get(client_id)

    def get_or_create_account(self, client_id: int) -> Account:
        account = self.accounts.get(client_id)
        if account is None:
            account = Account(client=client_id)
            self.accounts[client_id] = account
        return account

    def list_accounts(self) -> List[Account]:
        return list(self.accounts.values())

    def get_accounts_count(self) -> int:
        return len(self.accounts)


class InMemoryTransactionRepository(TransactionRepository):
    def __init__(self):
        self.store: Dict[int, Transaction] = {}

    def get_transaction(self, tx_id: int) -> Optional[Transaction]:
        return self.store.get(tx_id)

    def store_transaction(self, transaction: Transaction) -> None:
        if not transaction.type.is_regular:
            raise ValueError(f"Only deposits and withdrawals are stored, got {transaction.type.value}")
        if transaction.id in self.store:
            raise ValueError(f"Transaction {transaction.id} is already stored")
        self.store[transaction.id] = transaction

    def transaction_exists(self, tx_id: int) -> bool:
        return tx_id in self.store

    def get_transactions_count(self) -> int:
        return len(self.store)


class InMemoryDisputeRepository(DisputeRepository):
    def __init__(self):
        self.disputed: Set[int] = set()

    def is_disputed(self, tx_id: int) -> bool:
        return tx_id in self.disputed

    def open_dispute(self, tx_id: int) -> None:
        self.disputed.add(tx_id)

    def close_dispute(self, tx_id: int) -> None:
        self.disputed.discard(tx_id)

    def get_disputes_count(self) -> int:
        return len(self.disputed)
