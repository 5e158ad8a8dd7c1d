"""Exceptions raised by ledger rules. None of them leaves state modified."""


class LedgerError(Exception):
    """Base exception for rejected ledger operations."""
    pass


class InvalidAmountError(LedgerError):
    """Amount is not positive, or would push a balance below zero."""
    pass


class LoanNotFoundError(LedgerError):
    """No loan with the requested id."""

    def __init__(self, loan_id: str):
        self.loan_id = loan_id
        super().__init__(f"Loan not found: {loan_id}")
