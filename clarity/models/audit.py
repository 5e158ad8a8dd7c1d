"""
Audit Models for Clarity Budgets

Every write to the ledger, and every AI call, is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. A way to reconstruct how a balance got to where it is

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger writes
    CATEGORY_CREATED = "category_created"
    EXPENSE_ADDED = "expense_added"
    INCOME_ADDED = "income_added"
    BUDGET_SET = "budget_set"
    LOAN_ADDED = "loan_added"
    LOAN_UPDATED = "loan_updated"
    LOAN_UPDATE_REJECTED = "loan_update_rejected"
    CURRENCY_CHANGED = "currency_changed"

    # Input validation
    VALIDATION_FAILED = "validation_failed"

    # AI assistance
    CATEGORY_SUGGESTED = "category_suggested"
    CATEGORY_SUGGESTION_UNRESOLVED = "category_suggestion_unresolved"
    SAVING_TIPS_GENERATED = "saving_tips_generated"

    # Failures
    SAVE_FAILED = "save_failed"
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # What record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'loan', 'budget')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate events of one user action"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense_id, "Coffee", "4.50", cid)
    """

    @staticmethod
    def category_created(
        category_id: str,
        name: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_CREATED,
            entity_type="category",
            entity_id=category_id,
            correlation_id=correlation_id,
            description=f"Category created: {name}",
            details={"name": name},
        )

    @staticmethod
    def expense_added(
        expense_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Expense added: {description}",
            details={"description": description, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def income_added(
        income_id: str,
        description: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_ADDED,
            entity_type="income",
            entity_id=income_id,
            correlation_id=correlation_id,
            description=f"Income added: {description}",
            details={"description": description, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def budget_set(
        budget_id: str,
        category_id: str,
        amount: str,
        created: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SET,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget {'created' if created else 'updated'}: {amount}",
            details={
                "category_id": category_id,
                "amount": amount,
                "created": created,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_added(
        loan_id: str,
        name: str,
        amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_ADDED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan added: {name}",
            details={"name": name, "initial_amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def loan_updated(
        loan_id: str,
        transaction_type: str,
        amount: str,
        previous_balance: str,
        new_balance: str,
        expense_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_UPDATED,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan {transaction_type}: {previous_balance} -> {new_balance}",
            details={
                "transaction_type": transaction_type,
                "amount": amount,
                "previous_balance": previous_balance,
                "new_balance": new_balance,
                "expense_id": expense_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def loan_update_rejected(
        loan_id: str,
        reason: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAN_UPDATE_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="loan",
            entity_id=loan_id,
            correlation_id=correlation_id,
            description=f"Loan update rejected: {reason}",
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def currency_changed(
        code: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CURRENCY_CHANGED,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"Display currency set to {code}",
            details={"currency": code},
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        form: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="form",
            correlation_id=correlation_id,
            description=f"{form} rejected with {len(issues)} issues",
            details={"form": form, "issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def category_suggested(
        description: str,
        category: str,
        confidence: float,
        resolved: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.CATEGORY_SUGGESTED
            if resolved
            else AuditEventType.CATEGORY_SUGGESTION_UNRESOLVED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.INFO if resolved else AuditSeverity.WARNING,
            entity_type="suggestion",
            correlation_id=correlation_id,
            description=f"AI suggested '{category}' with {confidence:.0%} confidence",
            details={
                "description": description,
                "category": category,
                "confidence": confidence,
                "resolved": resolved,
            },
        )

    @staticmethod
    def saving_tips_generated(
        summary_length: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVING_TIPS_GENERATED,
            entity_type="suggestion",
            correlation_id=correlation_id,
            description="Saving tips generated",
            details={"summary_length": summary_length},
        )

    @staticmethod
    def save_failed(
        entity_type: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=entity_type,
            correlation_id=correlation_id,
            description=f"Could not save {entity_type}",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
