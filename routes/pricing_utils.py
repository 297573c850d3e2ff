"""
Sales price resolution.

A line's unit price comes from the SalesPricing row for (stock item, price list).
When that row is missing the price falls back, in order, to:
  - Wholesale list: the Retail row's before-tax price x the wholesale factor,
    or the item's material cost x the factor when there is no Retail row.
  - Any other list: the item's material cost.
Missing mappings never raise; the `source` key tells the caller which rule applied.
"""
from decimal import Decimal
import logging

from routes.utils import to_decimal, field_value, safe_int

logger = logging.getLogger(__name__)

RETAIL = 'Retail'
WHOLESALE = 'Wholesale'

BEFORE_TAX_FIELDS = ('price_before_tax', 'priceBeforeTax', 'price')
AFTER_TAX_FIELDS = ('price_after_tax', 'priceAfterTax', 'price')
STOCK_FIELDS = ('stock_id', 'stockId', 'stock')
SALES_TYPE_FIELDS = ('sales_type_id', 'salesTypeId')
LIST_NAME_FIELDS = ('sales_type', 'typeName', 'type_name', 'name')


class PricingError(ValueError):
    pass


def list_name(price_list):
    name = field_value(price_list, *LIST_NAME_FIELDS, default='')
    return str(name).strip()


def list_factor(price_list):
    """Factor of a price list; 0/None/missing counts as 1."""
    factor = to_decimal(field_value(price_list, 'factor'))
    return factor if factor else Decimal('1')


def find_price_list(price_lists, sales_type_id=None, name=None):
    for pl in price_lists or []:
        if sales_type_id is not None and safe_int(field_value(pl, 'id')) == safe_int(sales_type_id):
            return pl
        if name is not None and list_name(pl).lower() == name.lower():
            return pl
    return None


def find_pricing_row(pricing_rows, stock_id, sales_type_id):
    """Row whose sales type matches; rows that carry a stock id must match it too."""
    wanted_type = safe_int(sales_type_id)
    if wanted_type is None:
        return None
    for row in pricing_rows or []:
        if safe_int(field_value(row, *SALES_TYPE_FIELDS)) != wanted_type:
            continue
        row_stock = field_value(row, *STOCK_FIELDS)
        if row_stock is not None and str(row_stock) != str(stock_id):
            continue
        return row
    return None


def resolve_price(stock_id, sales_type_id, pricing_rows, price_lists, base_cost,
                  retail_name=RETAIL, wholesale_name=WHOLESALE):
    """
    Resolve the before/after tax unit price of `stock_id` on price list `sales_type_id`.

    Returns {'before': Decimal, 'after': Decimal, 'source': str} where source is
    one of 'pricing', 'retail_factor', 'cost_factor', 'cost'.
    """
    row = find_pricing_row(pricing_rows, stock_id, sales_type_id)
    if row is not None:
        return {
            'before': to_decimal(field_value(row, *BEFORE_TAX_FIELDS)),
            'after': to_decimal(field_value(row, *AFTER_TAX_FIELDS)),
            'source': 'pricing',
        }

    cost = to_decimal(base_cost)
    selected = find_price_list(price_lists, sales_type_id=sales_type_id)
    if selected is not None and list_name(selected).lower() == wholesale_name.lower():
        factor = list_factor(selected)
        retail = find_price_list(price_lists, name=retail_name)
        retail_row = None
        if retail is not None:
            retail_row = find_pricing_row(pricing_rows, stock_id, field_value(retail, 'id'))
        if retail_row is not None:
            price = to_decimal(field_value(retail_row, *BEFORE_TAX_FIELDS)) * factor
            source = 'retail_factor'
        else:
            price = cost * factor
            source = 'cost_factor'
        logger.debug("No %s pricing for %s; using %s (%s)", wholesale_name, stock_id, source, price)
        return {'before': price, 'after': price, 'source': source}

    return {'before': cost, 'after': cost, 'source': 'cost'}


def applicable_price(quote, tax_included):
    """After-tax price for tax-inclusive lists, before-tax otherwise."""
    return quote['after'] if tax_included else quote['before']


def resolve_item_price(stock_item, sales_type_id):
    """Database-backed resolve_price for one StockItem."""
    from flask import current_app
    from models import db, SalesPricing, SalesType

    if stock_item is None:
        raise PricingError('Stock item not found')
    if sales_type_id is None or db.session.get(SalesType, sales_type_id) is None:
        raise PricingError(f'Price list {sales_type_id!r} not found')

    pricing_rows = SalesPricing.query.filter_by(stock_id=stock_item.stock_id).all()
    price_lists = SalesType.query.all()
    return resolve_price(
        stock_item.stock_id,
        sales_type_id,
        pricing_rows,
        price_lists,
        stock_item.material_cost,
        retail_name=current_app.config.get('RETAIL_PRICE_LIST', RETAIL),
        wholesale_name=current_app.config.get('WHOLESALE_PRICE_LIST', WHOLESALE),
    )
