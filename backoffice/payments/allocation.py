# backoffice/payments/allocation.py

"""
Canonical allocation policy: oldest obligation first.

Both the payment engine and the allocation preview endpoint go through
plan_allocation, so a preview can never disagree with what recording the
same payment would do.

Order:
1. due_date ascending, invoices without a due date after every dated one
2. invoice_date ascending
3. id ascending (stable tie-break for invoices created the same day)
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Protocol, Tuple

from backoffice.utils.money import ZERO, to_money


class AllocatableInvoice(Protocol):
    id: int
    due_date: Optional[date]
    invoice_date: date
    balance: Optional[Decimal]


@dataclass(frozen=True)
class AllocationLine:
    invoice_id: int
    amount_applied: Decimal
    balance_before: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    amount: Decimal
    lines: List[AllocationLine] = field(default_factory=list)

    @property
    def total_allocated(self) -> Decimal:
        return sum((line.amount_applied for line in self.lines), ZERO)

    @property
    def remainder(self) -> Decimal:
        return self.amount - self.total_allocated


def allocation_order_key(invoice: AllocatableInvoice) -> Tuple[bool, date, date, int]:
    return (
        invoice.due_date is None,
        invoice.due_date or date.max,
        invoice.invoice_date,
        invoice.id,
    )


def order_for_allocation(invoices: Iterable[AllocatableInvoice]) -> List[AllocatableInvoice]:
    return sorted(invoices, key=allocation_order_key)


def plan_allocation(invoices: Iterable[AllocatableInvoice], amount: Decimal) -> AllocationPlan:
    """
    Walks the invoices in allocation order and applies min(remaining, balance)
    to each until the amount runs out. Invoices with no outstanding balance
    are skipped. Does not touch the invoices.
    """
    amount = to_money(amount)
    remaining = amount
    lines: List[AllocationLine] = []

    for invoice in order_for_allocation(invoices):
        if remaining <= 0:
            break
        balance = to_money(invoice.balance or ZERO)
        apply = min(remaining, balance)
        if apply <= 0:
            continue
        lines.append(
            AllocationLine(
                invoice_id=invoice.id,
                amount_applied=apply,
                balance_before=balance,
                balance_after=balance - apply,
            )
        )
        remaining -= apply

    return AllocationPlan(amount=amount, lines=lines)
