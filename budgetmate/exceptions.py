"""Domain exceptions for the reconciliation core."""


class BudgetMateError(Exception):
    """Base exception for reconciliation errors."""


class InvalidBankTransactionError(BudgetMateError):
    """Incoming bank record has an unparseable amount or date."""


class LedgerError(BudgetMateError):
    """Storage operation failed."""


class RecordNotFoundError(LedgerError):
    """A transaction, envelope or account id does not exist."""

    def __init__(self, resource_name: str, record_id: int) -> None:
        super().__init__(f"{resource_name} {record_id} not found")
        self.resource_name = resource_name
        self.record_id = record_id
