from decimal import Decimal

from routes.pricing_utils import resolve_price, applicable_price, list_factor, find_pricing_row

PRICE_LISTS = [
    {'id': 1, 'sales_type': 'Retail', 'tax_included': True, 'factor': 1},
    {'id': 2, 'sales_type': 'Wholesale', 'tax_included': False, 'factor': 0.9},
    {'id': 3, 'sales_type': 'Staff', 'tax_included': False, 'factor': 0.5},
]


def test_exact_pricing_row_wins():
    rows = [{'stock_id': 'A', 'sales_type_id': 2, 'price_before_tax': 80, 'price_after_tax': 92}]
    quote = resolve_price('A', 2, rows, PRICE_LISTS, base_cost=40)
    assert quote == {'before': Decimal('80'), 'after': Decimal('92'), 'source': 'pricing'}


def test_wholesale_falls_back_to_retail_times_factor():
    rows = [{'stock_id': 'A', 'sales_type_id': 1, 'price_before_tax': 100, 'price_after_tax': 115}]
    quote = resolve_price('A', 2, rows, PRICE_LISTS, base_cost=40)
    assert quote['before'] == Decimal('90.0')
    assert quote['after'] == quote['before']
    assert quote['source'] == 'retail_factor'


def test_wholesale_without_retail_row_uses_cost_times_factor():
    quote = resolve_price('A', 2, [], PRICE_LISTS, base_cost=40)
    assert quote['before'] == Decimal('36.0')
    assert quote['source'] == 'cost_factor'


def test_other_lists_fall_back_to_cost_without_factor():
    rows = [{'stock_id': 'A', 'sales_type_id': 1, 'price_before_tax': 100, 'price_after_tax': 115}]
    quote = resolve_price('A', 3, rows, PRICE_LISTS, base_cost=40)
    assert quote == {'before': Decimal('40'), 'after': Decimal('40'), 'source': 'cost'}


def test_unknown_list_uses_cost():
    quote = resolve_price('A', 99, [], PRICE_LISTS, base_cost='12.50')
    assert quote['before'] == Decimal('12.50')
    assert quote['source'] == 'cost'


def test_pricing_rows_for_other_items_are_ignored():
    rows = [{'stock_id': 'B', 'sales_type_id': 2, 'price_before_tax': 1, 'price_after_tax': 1}]
    assert find_pricing_row(rows, 'A', 2) is None


def test_list_names_match_case_insensitively():
    lists = [{'id': 1, 'sales_type': 'RETAIL', 'factor': 1}, {'id': 2, 'sales_type': 'wholesale', 'factor': 0.5}]
    rows = [{'stock_id': 'A', 'sales_type_id': 1, 'price_before_tax': 10, 'price_after_tax': 11}]
    quote = resolve_price('A', 2, rows, lists, base_cost=0)
    assert quote['before'] == Decimal('5.0')


def test_missing_factor_counts_as_one():
    assert list_factor({'factor': 0}) == Decimal('1')
    assert list_factor({}) == Decimal('1')
    assert list_factor({'factor': '0.7'}) == Decimal('0.7')


def test_applicable_price_depends_on_tax_inclusion():
    quote = {'before': Decimal('100'), 'after': Decimal('115')}
    assert applicable_price(quote, True) == Decimal('115')
    assert applicable_price(quote, False) == Decimal('100')
