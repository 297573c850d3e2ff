from decimal import Decimal

from routes.tax_utils import tax_amount, compute_taxes, document_total

TAX_TYPES = [
    {'id': 1, 'description': 'VAT', 'default_rate': 15},
    {'id': 2, 'description': 'Levy', 'default_rate': 2},
]


def test_exclusive_tax_is_a_straight_percentage():
    assert tax_amount(Decimal('90'), 15, False) == Decimal('13.5')
    assert tax_amount(Decimal('180'), 15, False) == 2 * tax_amount(Decimal('90'), 15, False)


def test_inclusive_tax_is_extracted_from_the_price():
    assert tax_amount(Decimal('115'), 15, True) == Decimal('15')
    assert tax_amount(Decimal('50'), 15, True) <= Decimal('50')
    assert tax_amount(Decimal('50'), 0, True) == 0


def test_compute_taxes_exclusive():
    result = compute_taxes(Decimal('90'), [{'tax_type_id': 1}], TAX_TYPES, False)
    assert result['total_tax'] == Decimal('13.50')
    assert result['lines'] == [{'tax_type_id': 1, 'name': 'VAT', 'rate': Decimal('15'), 'amount': Decimal('13.50')}]
    assert document_total(Decimal('90'), result['total_tax'], False) == Decimal('103.50')


def test_compute_taxes_inclusive_total_is_the_subtotal():
    result = compute_taxes(Decimal('115'), [{'tax_type_id': 1}], TAX_TYPES, True)
    assert result['total_tax'] == Decimal('15.00')
    assert document_total(Decimal('115'), result['total_tax'], True) == Decimal('115.00')


def test_taxes_do_not_compound():
    result = compute_taxes(Decimal('100'), [{'tax_type_id': 1}, {'tax_type_id': 2}], TAX_TYPES, False)
    assert [l['amount'] for l in result['lines']] == [Decimal('15.00'), Decimal('2.00')]
    assert result['total_tax'] == Decimal('17.00')


def test_unknown_tax_type_reports_zero():
    result = compute_taxes(Decimal('100'), [{'tax_type_id': 42}], TAX_TYPES, False)
    assert result['lines'][0]['name'] == 'Tax'
    assert result['lines'][0]['amount'] == Decimal('0.00')


def test_no_tax_group_items():
    result = compute_taxes(Decimal('100'), [], TAX_TYPES, False)
    assert result == {'lines': [], 'total_tax': Decimal('0.00')}


def test_shipping_is_added_untaxed():
    assert document_total(Decimal('180'), Decimal('27'), False, shipping=10) == Decimal('217.00')
    assert document_total(Decimal('115'), Decimal('15'), True, shipping='5') == Decimal('120.00')
