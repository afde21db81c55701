"""
Monetary arithmetic for invoices.

All amounts are Decimal, rounded to 2 places half away from zero. Each
quantity is rounded on its own: the subtotal is rounded before VAT is taken
on it, and the total is the rounded sum of the two rounded parts.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from pydantic import BaseModel

from core.models.enums import Currency
from core.models.invoice import InvoiceLineItem

TWOPLACES = Decimal("0.01")
HUNDRED = Decimal("100")

AED_VAT_RATE = Decimal("5")


class InvoiceTotals(BaseModel):
    """Subtotal, VAT and grand total for a set of line items."""

    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal via str, so 0.1 stays 0.1."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def calculate_vat(subtotal, vat_rate) -> Decimal:
    """
    VAT on a subtotal.

    Args:
        subtotal: Amount VAT is charged on
        vat_rate: Percentage (5 means 5%)

    Returns:
        VAT rounded to 2 places, e.g. calculate_vat(333.33, 5) == Decimal("16.67")
    """
    return round_money(to_decimal(subtotal) * to_decimal(vat_rate) / HUNDRED)


def calculate_totals(line_items: Iterable[InvoiceLineItem | dict], vat_rate) -> InvoiceTotals:
    """
    Totals for a list of line items.

    Accepts InvoiceLineItem models or dicts carrying a "total" key.
    """
    raw_subtotal = sum(
        (to_decimal(item["total"] if isinstance(item, dict) else item.total) for item in line_items),
        Decimal("0"),
    )
    subtotal = round_money(raw_subtotal)
    vat_amount = calculate_vat(subtotal, vat_rate)
    total = round_money(subtotal + vat_amount)

    return InvoiceTotals(subtotal=subtotal, vat_amount=vat_amount, total=total)


def vat_rate_for_currency(currency: Currency | str, aed_rate=AED_VAT_RATE) -> Decimal:
    """Vehicle-sale VAT: the AED rate for dirham invoices, zero for export currencies."""
    if Currency(currency) == Currency.AED:
        return to_decimal(aed_rate)
    return Decimal("0")


def payment_percentage(total_paid, invoice_amount) -> Decimal:
    """Share of the invoice paid, in percent. Zero for a zero-value invoice; not capped at 100."""
    invoice_amount = to_decimal(invoice_amount)
    if invoice_amount == 0:
        return Decimal("0")
    return round_money(to_decimal(total_paid) / invoice_amount * HUNDRED)
