from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator
from enum import Enum
from typing import Dict, Optional
from decimal import (
    Context,
    Decimal,
    DivisionByZero,
    Inexact,
    InvalidOperation,
    MAX_EMAX,
    MAX_PREC,
    MIN_EMIN,
    Overflow,
    localcontext,
)

from errors import AmountNotPositive, MissingAmount, SuperfluousAmount

U16_MAX = 2**16 - 1
U32_MAX = 2**32 - 1

# Balances are sums of exact input amounts and must never be rounded.
BALANCE_CONTEXT = Context(
    prec=MAX_PREC,
    Emax=MAX_EMAX,
    Emin=MIN_EMIN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)


class TransactionType(str, Enum):
    deposit = "deposit"
    withdrawal = "withdrawal"
    dispute = "dispute"
    resolve = "resolve"
    chargeback = "chargeback"

    @property
    def is_regular(self) -> bool:
        """Deposits and withdrawals carry an amount and enter the ledger."""
        return self in (TransactionType.deposit, TransactionType.withdrawal)


class ResolvePolicy(str, Enum):
    # held -= amount, available += amount
    release = "release"
    # repeats the dispute hold: held += amount, available -= amount
    rehold = "rehold"


class SnapshotOrder(str, Enum):
    insertion = "insertion"
    client = "client"


class TransactionRecord(BaseModel):
    """One raw input row, structurally parsed but not yet validated."""

    model_config = ConfigDict(extra="ignore")

    type: TransactionType = Field(..., description="Transaction type")
    client: int = Field(..., ge=0, le=U16_MAX, description="Client identifier")
    id: int = Field(
        ...,
        ge=0,
        le=U32_MAX,
        validation_alias=AliasChoices("tx", "id"),
        description="Transaction identifier",
    )
    amount: Optional[Decimal] = Field(None, description="Amount for deposits and withdrawals")

    @field_validator("*", mode="before")
    @classmethod
    def normalize_field(cls, v, info: ValidationInfo):
        if not isinstance(v, str):
            return v
        v = v.strip()
        if info.field_name == "type":
            return v.lower()
        if info.field_name == "amount" and not v:
            return None
        return v

    def to_transaction(self) -> "Transaction":
        return Transaction(type=self.type, client=self.client, id=self.id, amount=self.amount)


class Transaction(BaseModel):
    """A validated transaction.

    Construction enforces the amount rule, so an instance never pairs a
    deposit or withdrawal with a missing or non-positive amount, nor a
    dispute, resolve or chargeback with any amount at all. Violations raise
    the matching ``TransactionError`` directly rather than a pydantic
    ``ValidationError``.
    """

    model_config = ConfigDict(frozen=True)

    type: TransactionType
    client: int = Field(..., ge=0, le=U16_MAX)
    id: int = Field(..., ge=0, le=U32_MAX)
    amount: Optional[Decimal] = None

    @model_validator(mode="after")
    def validate_amount_type_consistency(self):
        if self.type.is_regular:
            if self.amount is None:
                raise MissingAmount(self.id)
            if self.amount <= 0:
                raise AmountNotPositive(self.id)
        elif self.amount is not None:
            raise SuperfluousAmount(self.id)
        return self


class Account(BaseModel):
    client: int
    available: Decimal = Decimal(0)
    held: Decimal = Decimal(0)
    locked: bool = False

    @property
    def total(self) -> Decimal:
        with localcontext(BALANCE_CONTEXT):
            return self.available + self.held


class AccountSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    client: int = Field(..., description="Client identifier")
    available: Decimal = Field(..., description="Funds usable for withdrawal")
    held: Decimal = Field(..., description="Funds frozen under dispute")
    total: Decimal = Field(..., description="available + held")
    locked: bool = Field(..., description="Whether a chargeback froze the account")

    @classmethod
    def from_account(cls, account: Account) -> "AccountSnapshot":
        return cls(
            client=account.client,
            available=account.available,
            held=account.held,
            total=account.total,
            locked=account.locked,
        )


class RunSummary(BaseModel):
    records_read: int = Field(0, description="Rows read from the input")
    applied: int = Field(0, description="Rows that changed account state")
    rejected: Dict[str, int] = Field(default_factory=dict, description="Rejections per error code")
    accounts_count: int = Field(0, description="Number of accounts in the final snapshot")
    transactions_count: int = Field(0, description="Deposits and withdrawals stored in the ledger")
    open_disputes: int = Field(0, description="Transactions still under dispute at the end of the run")

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())
