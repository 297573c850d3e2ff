from decimal import Decimal

from routes.line_utils import line_total, recompute_line, document_subtotal


def test_line_total_applies_discount():
    assert line_total(2, 50, 10) == Decimal('90.00')
    assert line_total('3', '19.99', 0) == Decimal('59.97')
    assert line_total(1, 10, 100) == Decimal('0.00')


def test_recompute_uses_price_matching_tax_mode():
    row = {'quantity': 2, 'price_before_tax': 40, 'price_after_tax': 50, 'discount': 0, 'total': 100}
    assert recompute_line(row, 'quantity', 3)['total'] == Decimal('150.00')
    assert recompute_line(row, 'quantity', 3, tax_included=False)['total'] == Decimal('120.00')
    assert row['quantity'] == 2


def test_recompute_ignores_unrelated_fields():
    row = {'quantity': 2, 'price_after_tax': 50, 'discount': 0, 'total': 100}
    updated = recompute_line(row, 'description', 'Blue widget')
    assert updated['total'] == 100
    assert updated['description'] == 'Blue widget'


def test_subtotal_can_leave_out_the_row_being_edited():
    rows = [{'total': 90}, {'total': '10.50'}, {'total': 5}]
    assert document_subtotal(rows) == Decimal('105.50')
    assert document_subtotal(rows, exclude_last=True) == Decimal('100.50')
    assert document_subtotal([], exclude_last=True) == Decimal('0.00')
