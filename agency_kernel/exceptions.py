"""
Typed exception hierarchy for the agency kernel.

Every error the kernel raises is a subclass of ``AgencyKernelError`` and
carries:

  1. A ``code`` class attribute (machine-readable, API-safe).
  2. A ``retryable`` class attribute telling the caller whether re-running
     the whole operation can succeed (``ConcurrentModificationError``,
     ``TransientStorageError``) or will repeat the same rejection
     (``InvalidTransitionError``, ``IneligiblePayoutError``, ...).
  3. Structured attributes, never just a message string.

Catch by type, not by message:

    try:
        case_service.transition_status(case_id, CaseStatus.PAID, actor_id)
    except InvalidTransitionError as e:
        show(e.current_status, e.target_status)
    except ConcurrentModificationError:
        refetch_and_retry()

Hierarchy:

    AgencyKernelError (base)
    |
    +-- CaseError
    |   +-- CaseNotFoundError
    |   +-- LeadNotFoundError
    |   +-- LeadAlreadyConvertedError
    |   +-- InvalidTransitionError
    |   +-- OverrideReasonRequiredError
    |   +-- FastTrackDisabledError
    |   +-- HandlerRequiredError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError      (retryable)
    |
    +-- StorageError
    |   +-- TransientStorageError            (retryable)
    |
    +-- SnapshotError
    |   +-- DuplicateAttachmentError         (benign)
    |   +-- ServiceNotFoundError
    |   +-- InactiveServiceError
    |   +-- SnapshotNotFoundError
    |   +-- CaseSettledError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- MoneyError
    |   +-- NegativeAmountError
    |
    +-- PayoutError
    |   +-- PayoutNotFoundError
    |   +-- InvalidPayoutTransitionError
    |   +-- PayoutAlreadyResolvedError
    |   +-- IneligiblePayoutError
    |   +-- PayoutBelowThresholdError
    |   +-- RewardNotAvailableError
    |   +-- EmptyPayoutRequestError
    |   +-- NotRequestOwnerError
    |   +-- RejectReasonRequiredError
    |
    +-- CascadeFailureError
    |
    +-- AuditError
    |   +-- AuditWriteFailureError
    |   +-- AuditChainBrokenError
    |
    +-- ImmutabilityViolationError
    |
    +-- ConfigValidationError
"""

from datetime import datetime


class AgencyKernelError(Exception):
    """
    Base exception for all agency kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification and a ``retryable`` flag.
    """

    code: str = "AGENCY_KERNEL_ERROR"
    retryable: bool = False


# Case lifecycle


class CaseError(AgencyKernelError):
    """Base exception for case lifecycle errors."""

    code: str = "CASE_ERROR"


class CaseNotFoundError(CaseError):
    """Case with given ID was not found."""

    code: str = "CASE_NOT_FOUND"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case not found: {case_id}")


class LeadNotFoundError(CaseError):
    """Lead with given ID was not found."""

    code: str = "LEAD_NOT_FOUND"

    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead not found: {lead_id}")


class LeadAlreadyConvertedError(CaseError):
    """Lead already has a case; conversion is one case per lead."""

    code: str = "LEAD_ALREADY_CONVERTED"

    def __init__(self, lead_id: str, case_id: str):
        self.lead_id = lead_id
        self.case_id = case_id
        super().__init__(f"Lead {lead_id} already converted to case {case_id}")


class InvalidTransitionError(CaseError):
    """Requested status change is not an edge of the status graph."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, current_status: str, target_status: str, case_id: str | None = None):
        self.current_status = current_status
        self.target_status = target_status
        self.case_id = case_id
        super().__init__(
            f"Cannot transition case from '{current_status}' to '{target_status}'"
        )


class OverrideReasonRequiredError(CaseError):
    """A fast-track status override was attempted without a reason."""

    code: str = "OVERRIDE_REASON_REQUIRED"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Status override on case {case_id} requires a reason")


class FastTrackDisabledError(CaseError):
    """Fast-track overrides are switched off by configuration."""

    code: str = "FAST_TRACK_DISABLED"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Fast-track overrides are disabled (case {case_id})")


class HandlerRequiredError(CaseError):
    """Case cannot enter 'assigned' without a handler; use assign_handler."""

    code: str = "HANDLER_REQUIRED"

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case {case_id} has no handler to be assigned to")


# Concurrency / storage


class ConcurrencyError(AgencyKernelError):
    """Base exception for concurrency errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    Another actor changed the record between read and write.

    Re-fetch and retry; never re-apply stale data.
    """

    code: str = "CONCURRENT_MODIFICATION"
    retryable: bool = True

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        detail = ""
        if expected_version is not None:
            detail = f" (expected version {expected_version}, found {actual_version})"
        super().__init__(f"{entity_type} {entity_id} was modified concurrently{detail}")


class StorageError(AgencyKernelError):
    """Base exception for storage layer errors."""

    code: str = "STORAGE_ERROR"


class TransientStorageError(StorageError):
    """The store failed in a way that may succeed on retry."""

    code: str = "TRANSIENT_STORAGE_ERROR"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Transient storage failure during {operation}: {reason}")


# Service snapshots


class SnapshotError(AgencyKernelError):
    """Base exception for service snapshot errors."""

    code: str = "SNAPSHOT_ERROR"


class DuplicateAttachmentError(SnapshotError):
    """
    Service already snapshotted onto the case.

    Benign: attach() reports these as skipped rather than raising them.
    """

    code: str = "DUPLICATE_ATTACHMENT"

    def __init__(self, case_id: str, master_service_id: str):
        self.case_id = case_id
        self.master_service_id = master_service_id
        super().__init__(
            f"Service {master_service_id} is already attached to case {case_id}"
        )


class ServiceNotFoundError(SnapshotError):
    """Catalog service with given ID was not found."""

    code: str = "SERVICE_NOT_FOUND"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Catalog service not found: {service_id}")


class InactiveServiceError(SnapshotError):
    """Catalog service exists but is not offered any more."""

    code: str = "INACTIVE_SERVICE"

    def __init__(self, service_id: str):
        self.service_id = service_id
        super().__init__(f"Catalog service is inactive: {service_id}")


class SnapshotNotFoundError(SnapshotError):
    """Service snapshot with given ID was not found."""

    code: str = "SNAPSHOT_NOT_FOUND"

    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"Service snapshot not found: {snapshot_id}")


class CaseSettledError(SnapshotError):
    """
    Services cannot be attached once the case is settled.

    Rewards are accrued from the commissions at the move into 'paid';
    a later attachment would add commission no reward can pay out.
    """

    code: str = "CASE_SETTLED"

    def __init__(self, case_id: str, status: str):
        self.case_id = case_id
        self.status = status
        super().__init__(f"Case {case_id} is settled ({status}); services are locked")


# Currency / money


class CurrencyError(AgencyKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a recognized ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Amounts in different currencies were combined."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Currency mismatch: expected {expected}, got {actual}")


class MoneyError(AgencyKernelError):
    """Base exception for money value errors."""

    code: str = "MONEY_ERROR"


class NegativeAmountError(MoneyError):
    """A monetary amount would become negative."""

    code: str = "NEGATIVE_AMOUNT"

    def __init__(self, amount: str, currency: str):
        self.amount = amount
        self.currency = currency
        super().__init__(f"Monetary amount cannot be negative: {amount} {currency}")


# Payouts


class PayoutError(AgencyKernelError):
    """Base exception for payout workflow errors."""

    code: str = "PAYOUT_ERROR"


class PayoutNotFoundError(PayoutError):
    """Payout request with given ID was not found."""

    code: str = "PAYOUT_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Payout request not found: {request_id}")


class InvalidPayoutTransitionError(PayoutError):
    """Payout status change is not permitted from the current status."""

    code: str = "INVALID_PAYOUT_TRANSITION"

    def __init__(self, request_id: str, current_status: str, target_status: str):
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Cannot move payout request {request_id} "
            f"from '{current_status}' to '{target_status}'"
        )


class PayoutAlreadyResolvedError(InvalidPayoutTransitionError):
    """Payout request is paid or rejected; no further transition exists."""

    code: str = "PAYOUT_ALREADY_RESOLVED"


class IneligiblePayoutError(PayoutError):
    """Payout requested or approved before the lock window elapsed."""

    code: str = "INELIGIBLE_PAYOUT"

    def __init__(self, eligible_at: datetime, reward_ids: list[str] | None = None):
        self.eligible_at = eligible_at
        self.reward_ids = reward_ids or []
        super().__init__(
            f"Payout not eligible until {eligible_at.isoformat()}"
        )


class PayoutBelowThresholdError(PayoutError):
    """Requested payout total is below the configured minimum."""

    code: str = "PAYOUT_BELOW_THRESHOLD"

    def __init__(self, amount: str, threshold: str, currency: str):
        self.amount = amount
        self.threshold = threshold
        self.currency = currency
        super().__init__(
            f"Payout amount {amount} {currency} is below the minimum {threshold} {currency}"
        )


class RewardNotAvailableError(PayoutError):
    """Reward cannot be linked to a new payout request."""

    code: str = "REWARD_NOT_AVAILABLE"

    def __init__(self, reward_id: str, reason: str):
        self.reward_id = reward_id
        self.reason = reason
        super().__init__(f"Reward {reward_id} is not available: {reason}")


class EmptyPayoutRequestError(PayoutError):
    """No rewards to request a payout for."""

    code: str = "EMPTY_PAYOUT_REQUEST"

    def __init__(self, requestor_id: str):
        self.requestor_id = requestor_id
        super().__init__(f"No eligible rewards to request for {requestor_id}")


class NotRequestOwnerError(PayoutError):
    """Only the requestor may withdraw their own payout request."""

    code: str = "NOT_REQUEST_OWNER"

    def __init__(self, request_id: str, actor_id: str):
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} does not own payout request {request_id}")


class RejectReasonRequiredError(PayoutError):
    """A payout request was rejected without a reason."""

    code: str = "REJECT_REASON_REQUIRED"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Rejecting payout request {request_id} requires a reason")


# Cascades


class CascadeFailureError(AgencyKernelError):
    """A deletion or payout cascade could not complete all dependent writes."""

    code: str = "CASCADE_FAILURE"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cascade on {entity_type} {entity_id} failed: {reason}")


# Audit


class AuditError(AgencyKernelError):
    """Base exception for audit errors."""

    code: str = "AUDIT_ERROR"


class AuditWriteFailureError(AuditError):
    """The audit entry could not be written; the mutation is rolled back."""

    code: str = "AUDIT_WRITE_FAILURE"

    def __init__(self, action: str, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Audit write failed for '{action}': {reason}")


class AuditChainBrokenError(AuditError):
    """Audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability


class ImmutabilityViolationError(AgencyKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Configuration


class ConfigValidationError(AgencyKernelError):
    """Configuration set failed validation."""

    code: str = "CONFIG_VALIDATION_ERROR"

    def __init__(self, config_id: str, errors: list[str]):
        self.config_id = config_id
        self.errors = errors
        super().__init__(
            f"Configuration '{config_id}' is invalid: " + "; ".join(errors)
        )
