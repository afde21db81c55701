"""
Invoice status engine.

Once payments exist, an invoice's status is a pure function of
(total_paid, total_amount, due_date, today, current status):

    total_paid == 0            -> draft if currently draft, else sent
    total_paid >= total_amount -> fully_paid
    0 < total_paid < total     -> partially_paid
    total_paid < 0             -> unchanged

then, if the due date is strictly before today and the candidate is not
fully_paid, the result is overdue.

There is no transition table. A cancelled invoice is recomputed like any
other when one of its payments changes.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from core.models.enums import InvoiceStatus

# Statuses that never count as overdue in listings and statistics
SETTLED_STATUSES = frozenset({InvoiceStatus.FULLY_PAID, InvoiceStatus.CANCELLED})


def sum_payments(amounts: Iterable[Decimal]) -> Decimal:
    """Signed sum of payment amounts; refunds are negative rows."""
    return sum(amounts, Decimal("0"))


def resolve_status(
    total_paid: Decimal,
    total_amount: Decimal,
    due_date: date | None,
    today: date,
    current: InvoiceStatus,
) -> InvoiceStatus:
    """
    Status an invoice should have given its payments.

    Args:
        total_paid: Sum of all payment amounts, refunds included
        total_amount: Invoice grand total
        due_date: Due date, or None if the invoice can never be overdue
        today: Calendar date to compare the due date against
        current: Status currently stored

    Returns:
        The recomputed status (may equal current)
    """
    current = InvoiceStatus(current)

    if total_paid == 0:
        candidate = InvoiceStatus.DRAFT if current == InvoiceStatus.DRAFT else InvoiceStatus.SENT
    elif total_paid >= total_amount:
        candidate = InvoiceStatus.FULLY_PAID
    elif total_paid > 0:
        candidate = InvoiceStatus.PARTIALLY_PAID
    else:
        # Net refunds exceed payments: leave the stored status alone
        candidate = current

    if due_date is not None and due_date < today and candidate != InvoiceStatus.FULLY_PAID:
        candidate = InvoiceStatus.OVERDUE

    return candidate


def is_overdue(due_date: date | None, status: InvoiceStatus | str, today: date) -> bool:
    """Listing/statistics predicate: past due and neither fully paid nor cancelled."""
    if due_date is None:
        return False
    return due_date < today and InvoiceStatus(status) not in SETTLED_STATUSES
