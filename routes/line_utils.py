from decimal import Decimal

from routes.utils import to_decimal, money

PRICE_FIELDS = ('price_before_tax', 'price_after_tax')
TOTAL_FIELDS = ('quantity', 'discount') + PRICE_FIELDS


def line_total(quantity, unit_price, discount):
    """quantity x unit price x (1 - discount/100), rounded to cents."""
    return money(to_decimal(quantity) * to_decimal(unit_price) * (1 - to_decimal(discount) / Decimal('100')))


def recompute_line(row, changed_field, new_value, tax_included=True):
    """
    Return a copy of `row` with `changed_field` set and `total` recomputed.

    The total uses the after-tax price on tax-inclusive price lists and the
    before-tax price otherwise. Edits to other fields keep the current total.
    """
    updated = dict(row)
    updated[changed_field] = new_value
    if changed_field not in TOTAL_FIELDS:
        return updated
    price_field = 'price_after_tax' if tax_included else 'price_before_tax'
    updated['total'] = line_total(updated.get('quantity'), updated.get(price_field), updated.get('discount'))
    return updated


def document_subtotal(rows, exclude_last=False):
    """
    Sum of line totals.

    With exclude_last the final row (the one still being edited) is left out
    until a new row is appended after it.
    """
    rows = list(rows or [])
    if exclude_last:
        rows = rows[:-1]
    return sum((money(r.get('total')) for r in rows), Decimal('0.00'))
