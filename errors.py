from typing import Optional


class LedgerError(Exception):
    """Base class for rejections that skip a single record."""

    code: str = "LEDGER_ERROR"
    message: str = "transaction `{tx_id}` was rejected"

    def __init__(self, tx_id: int):
        self.tx_id = tx_id
        super().__init__(self.message.format(tx_id=tx_id))


class TransactionError(LedgerError):
    code = "TRANSACTION_ERROR"


class AlreadyExists(TransactionError):
    code = "ALREADY_EXISTS"
    message = "transaction with ID `{tx_id}` already exists"


class NonexistentTransaction(TransactionError):
    code = "NONEXISTENT_TRANSACTION"
    message = "transaction with ID `{tx_id}` does not exist"


class AmountNotPositive(TransactionError):
    code = "AMOUNT_NOT_POSITIVE"
    message = "transaction with ID `{tx_id}` had a negative or zero amount"


class ClientMismatch(TransactionError):
    code = "CLIENT_MISMATCH"
    message = "transaction with ID `{tx_id}` had a different client from the one specified"


class NonexistentDispute(TransactionError):
    code = "NONEXISTENT_DISPUTE"
    message = "dispute for transaction ID `{tx_id}` does not exist"


class DisputeAlreadyExists(TransactionError):
    code = "DISPUTE_ALREADY_EXISTS"
    message = "dispute for transaction ID `{tx_id}` already exists"


class MissingAmount(TransactionError):
    code = "MISSING_AMOUNT"
    message = "missing amount for transaction ID `{tx_id}`"


class SuperfluousAmount(TransactionError):
    code = "SUPERFLUOUS_AMOUNT"
    message = "superfluous amount for transaction ID `{tx_id}`"


class ClientError(LedgerError):
    code = "CLIENT_ERROR"


class Locked(ClientError):
    code = "LOCKED"
    message = "client locked for transaction ID `{tx_id}`"


class InsufficientFunds(ClientError):
    code = "INSUFFICIENT_FUNDS"
    message = "client for transaction ID `{tx_id}` had insufficient funds"


class InputError(Exception):
    """Fatal problem with the input stream. Aborts the run."""

    code = "INPUT_ERROR"


class MissingColumnsError(InputError):
    code = "MISSING_COLUMNS"

    def __init__(self, missing):
        self.missing = sorted(missing)
        super().__init__(f"input header is missing columns: {', '.join(self.missing)}")


class MalformedRecordError(InputError):
    code = "MALFORMED_RECORD"

    def __init__(self, line: int, reason: str, record: Optional[dict] = None):
        self.line = line
        self.reason = reason
        self.record = record
        super().__init__(f"malformed record on line {line}: {reason}")
