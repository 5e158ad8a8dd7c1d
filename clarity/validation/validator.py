"""
Form Validation

DESIGN DECISION: Every user submission is validated against a form
schema BEFORE any state is touched. A failed form never reaches the
ledger rules or storage.

Failures are reported per field so the UI can show each message next to
the input that caused it. Validation NEVER silently fixes input.
"""

from datetime import date
from decimal import Decimal
from typing import Any, ClassVar, Mapping, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from clarity.models.ledger import LoanTransactionType


FormT = TypeVar("FormT", bound="LedgerForm")


class ValidationIssue(BaseModel):
    """A single problem with one form field."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'string_too_short', 'greater_than')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )


class FormValidationError(ValueError):
    """A form was rejected. Carries one issue per failing field."""

    def __init__(self, form: str, issues: list[ValidationIssue]):
        self.form = form
        self.issues = issues
        summary = "; ".join(f"{i.field}: {i.message}" for i in issues)
        super().__init__(f"{form} is invalid: {summary}")

    def for_field(self, field: str) -> Optional[ValidationIssue]:
        """First issue for a field, for inline display."""
        for issue in self.issues:
            if issue.field == field:
                return issue
        return None

    def as_dicts(self) -> list[dict]:
        return [issue.model_dump() for issue in self.issues]


# =============================================================================
# FORMS
# =============================================================================

class LedgerForm(BaseModel):
    """
    Base for submitted forms.

    field_messages maps a field to the message shown for any problem
    with it, in place of pydantic's generic wording.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    field_messages: ClassVar[dict[str, str]] = {}


class ExpenseForm(LedgerForm):
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category_id: str = Field(..., min_length=1)
    date: date

    field_messages: ClassVar[dict[str, str]] = {
        "description": "Description is required.",
        "amount": "Amount must be positive.",
        "category_id": "Category is required.",
        "date": "Date is required.",
    }


class IncomeForm(LedgerForm):
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: date

    field_messages: ClassVar[dict[str, str]] = {
        "description": "Description is required.",
        "amount": "Amount must be positive.",
        "date": "Date is required.",
    }


class BudgetForm(LedgerForm):
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0, decimal_places=2)

    field_messages: ClassVar[dict[str, str]] = {
        "category_id": "Category is required.",
        "amount": "Amount must be positive.",
    }


class LoanForm(LedgerForm):
    name: str = Field(..., min_length=1, max_length=200)
    lender: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: date

    field_messages: ClassVar[dict[str, str]] = {
        "name": "A name for the loan is required.",
        "lender": "Lender is required.",
        "amount": "Initial amount must be positive.",
        "date": "Date is required.",
    }


class LoanTransactionForm(LedgerForm):
    amount: Decimal = Field(..., ge=Decimal("0.01"), decimal_places=2)
    type: LoanTransactionType

    field_messages: ClassVar[dict[str, str]] = {
        "amount": "Amount must be a positive number.",
        "type": "Choose increase or decrease.",
    }


class CategorizeForm(LedgerForm):
    description: str = Field(..., min_length=1, max_length=200)

    field_messages: ClassVar[dict[str, str]] = {
        "description": "Please enter a description first.",
    }


# Pydantic error types that keep their own message
_PASSTHROUGH_TYPES = {"decimal_max_places", "string_too_long"}


def validate_form(form_cls: type[FormT], data: Mapping[str, Any]) -> FormT:
    """
    Validate submitted data against a form schema.

    Returns:
        The validated form

    Raises:
        FormValidationError: With one issue per failing field
    """
    try:
        return form_cls.model_validate(dict(data))
    except ValidationError as e:
        messages = form_cls.field_messages
        issues: list[ValidationIssue] = []
        seen = set()

        for error in e.errors():
            field = str(error["loc"][0]) if error["loc"] else "form"
            if field in seen:
                continue
            seen.add(field)

            message = messages.get(field, error["msg"])
            if error["type"] in _PASSTHROUGH_TYPES:
                message = error["msg"]

            issues.append(ValidationIssue(
                field=field,
                issue_type=error["type"],
                message=message,
            ))

        raise FormValidationError(form_cls.__name__, issues) from e
