"""
Tax breakdown for sales documents.

Every tax type in the branch's tax group is applied to the document subtotal
independently (no compounding):
  - tax-inclusive prices:  amount = S - S / (1 + rate/100)
  - tax-exclusive prices:  amount = S * rate/100
"""
from decimal import Decimal
import logging

from routes.utils import to_decimal, money, field_value, safe_int

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')


def tax_amount(subtotal, rate, tax_included):
    """Tax carried by `subtotal` at `rate` percent, unrounded."""
    s = to_decimal(subtotal)
    r = to_decimal(rate)
    if tax_included:
        return s - s / (1 + r / HUNDRED)
    return s * r / HUNDRED


def _find_tax_type(tax_types, tax_type_id):
    wanted = safe_int(tax_type_id)
    for t in tax_types or []:
        if safe_int(field_value(t, 'id')) == wanted:
            return t
    return None


def compute_taxes(subtotal, tax_group_items, tax_types, tax_included):
    """
    Returns {'lines': [{'tax_type_id', 'name', 'rate', 'amount'}], 'total_tax': Decimal}.

    A tax group item whose tax type is unknown is reported as "Tax" at 0%.
    Each line amount is rounded to cents; total_tax is the sum of the rounded lines.
    """
    lines = []
    for item in tax_group_items or []:
        tax_type_id = field_value(item, 'tax_type_id', 'taxTypeId')
        tax_type = _find_tax_type(tax_types, tax_type_id)
        rate = to_decimal(field_value(tax_type, 'default_rate', 'rate', default=0))
        name = field_value(tax_type, 'description', 'name', default='Tax')
        lines.append({
            'tax_type_id': safe_int(tax_type_id),
            'name': name,
            'rate': rate,
            'amount': money(tax_amount(subtotal, rate, tax_included)),
        })
    total_tax = sum((line['amount'] for line in lines), Decimal('0.00'))
    return {'lines': lines, 'total_tax': total_tax}


def document_total(subtotal, total_tax, tax_included, shipping=0):
    """Grand total: inclusive tax is already inside the subtotal; shipping is untaxed."""
    total = to_decimal(subtotal) + to_decimal(shipping)
    if not tax_included:
        total += to_decimal(total_tax)
    return money(total)


def branch_tax_items(branch):
    """Tax group items applicable to a customer branch (empty when it has no tax group)."""
    from models import TaxGroupItem

    if branch is None or not branch.tax_group_id:
        return []
    return TaxGroupItem.query.filter_by(tax_group_id=branch.tax_group_id).all()
