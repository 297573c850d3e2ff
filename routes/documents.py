"""
Sales document entry: direct invoices, sales orders, quotations, credit notes.

Each document is priced the same way:
  resolve unit prices -> line totals -> subtotal -> tax breakdown -> grand total
and written (header, lines, tax details) in a single transaction.
"""
from datetime import date, timedelta
from decimal import Decimal
import logging

from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required
from sqlalchemy import exc, func

from models import (db, Customer, CustomerBranch, SalesType, StockItem, TaxType, PaymentTerms,
                    SalesOrder, SalesOrderDetail, DebtorTrans, DebtorTransDetail, CustAllocation,
                    TransTaxDetail, ST_SALESINVOICE, ST_CUSTCREDIT, ST_CUSTDELIVERY, ST_SALESORDER,
                    ST_SALESQUOTE, TRANS_TYPE_NAMES)
from routes.decorators import role_required
from routes.utils import to_decimal, money, safe_int, log_action
from routes.pricing_utils import resolve_item_price, applicable_price, PricingError
from routes.tax_utils import compute_taxes, document_total, branch_tax_items, tax_amount
from routes.line_utils import line_total, document_subtotal, recompute_line
from routes.reference_utils import (next_document_reference, next_trans_no, resolve_fiscal_year,
                                    year_label, FiscalYearNotFound, _as_date)

logger = logging.getLogger(__name__)

documents_bp = Blueprint('documents', __name__, url_prefix='/api')

# kind -> (transaction type, exclude the row being edited from the running subtotal)
DOCUMENT_KINDS = {
    'direct_invoice': (ST_SALESINVOICE, True),
    'sales_order': (ST_SALESORDER, True),
    'quotation': (ST_SALESQUOTE, False),
    'credit_note': (ST_CUSTCREDIT, False),
}


class DocumentError(ValueError):
    def __init__(self, message, status=400):
        super().__init__(message)
        self.status = status


class OverCreditError(DocumentError):
    pass


class ReferenceConflict(DocumentError):
    def __init__(self, message):
        super().__init__(message, status=409)


def _num(value):
    return float(money(value))


# --- Pricing a draft ---

def load_context(data):
    """Customer, branch and price list a document is priced against."""
    customer = db.session.get(Customer, safe_int(data.get('debtor_no')))
    if customer is None:
        raise DocumentError('Select customer first')
    branch = db.session.get(CustomerBranch, safe_int(data.get('branch_code')))
    if branch is None or branch.debtor_no != customer.debtor_no:
        raise DocumentError('Select branch first')

    sales_type_id = safe_int(data.get('sales_type_id'), customer.sales_type)
    sales_type = db.session.get(SalesType, sales_type_id) if sales_type_id else None
    if sales_type is None:
        raise DocumentError('Select a price list')
    return customer, branch, sales_type


def price_lines(raw_lines, sales_type, default_discount=0):
    """
    Normalize submitted lines and compute their totals.

    Lines without a stock item or with a non-positive quantity are dropped. A
    line with no price gets one from the price resolver; a line with no
    discount gets the customer's default discount. Each priced line keeps the
    index of the submitted row it came from in `row`.
    """
    priced = []
    for index, raw in enumerate(raw_lines or []):
        stock_id = raw.get('stock_id') or raw.get('stk_code')
        quantity = to_decimal(raw.get('quantity'))
        if not stock_id or quantity <= 0:
            continue
        item = db.session.get(StockItem, str(stock_id))
        if item is None:
            raise DocumentError(f'Item {stock_id} not found', status=404)

        before = raw.get('price_before_tax')
        after = raw.get('price_after_tax')
        if 'price' in raw and before is None and after is None:
            before = after = raw.get('price')
        source = 'manual'
        if before is None or after is None:
            quote = resolve_item_price(item, sales_type.id)
            before = quote['before'] if before is None else before
            after = quote['after'] if after is None else after
            source = quote['source']

        discount = raw.get('discount')
        if discount is None:
            discount = default_discount
        discount = to_decimal(discount)
        if discount < 0 or discount > 100:
            raise DocumentError(f'Discount for {stock_id} must be between 0 and 100')

        unit_price = applicable_price({'before': to_decimal(before), 'after': to_decimal(after)},
                                      sales_type.tax_included)
        priced.append({
            'stock_id': item.stock_id,
            'description': raw.get('description') or item.description,
            'quantity': quantity,
            'price_before_tax': to_decimal(before),
            'price_after_tax': to_decimal(after),
            'unit_price': to_decimal(unit_price),
            'discount': discount,
            'total': line_total(quantity, unit_price, discount),
            'price_source': source,
            'src_id': raw.get('src_id'),
            'row': index,
        })
    return priced


def summarize(lines, branch, tax_included, shipping=0):
    subtotal = document_subtotal(lines)
    tax_types = TaxType.query.all()
    taxes = compute_taxes(subtotal, branch_tax_items(branch), tax_types, tax_included)
    return {
        'subtotal': subtotal,
        'taxes': taxes,
        'shipping': money(shipping),
        'total': document_total(subtotal, taxes['total_tax'], tax_included, shipping),
    }


def serialize_summary(lines, summary, tax_included):
    return {
        'lines': [{
            'stock_id': l['stock_id'],
            'description': l['description'],
            'quantity': float(l['quantity']),
            'price_before_tax': _num(l['price_before_tax']),
            'price_after_tax': _num(l['price_after_tax']),
            'unit_price': _num(l['unit_price']),
            'discount': float(l['discount']),
            'total': _num(l['total']),
            'price_source': l['price_source'],
        } for l in lines],
        'tax_included': bool(tax_included),
        'subtotal': _num(summary['subtotal']),
        'taxes': [{
            'tax_type_id': t['tax_type_id'],
            'name': t['name'],
            'rate': float(t['rate']),
            'amount': _num(t['amount']),
        } for t in summary['taxes']['lines']],
        'total_tax': _num(summary['taxes']['total_tax']),
        'shipping': _num(summary['shipping']),
        'total': _num(summary['total']),
    }


# --- Persistence ---

def _save_with_retry(build):
    """
    Run `build` and commit. A unique-constraint hit on a generated reference or
    number is retried with freshly generated values.
    """
    retries = current_app.config.get('REFERENCE_RETRIES', 3)
    for attempt in range(1, retries + 1):
        try:
            result = build()
            db.session.commit()
            return result
        except exc.IntegrityError:
            db.session.rollback()
            logger.warning("Reference collision while saving document (attempt %d/%d)", attempt, retries)
    raise ReferenceConflict('Failed to generate a unique document reference. Please try again.')


def _unit_tax(unit_price, tax_lines, tax_included):
    """Tax carried by one unit, each tax type applied to the price independently."""
    return money(sum((tax_amount(unit_price, t['rate'], tax_included) for t in tax_lines), Decimal('0')))


def _add_tax_details(trans_type, trans_no, tran_date, summary, tax_included):
    net = summary['subtotal']
    if tax_included:
        net -= summary['taxes']['total_tax']
    for t in summary['taxes']['lines']:
        db.session.add(TransTaxDetail(
            trans_type=trans_type,
            trans_no=trans_no,
            tran_date=tran_date,
            tax_type_id=t['tax_type_id'],
            rate=float(t['rate']),
            included_in_price=bool(tax_included),
            net_amount=net,
            amount=t['amount'],
        ))


def _due_date(customer, tran_date):
    terms = db.session.get(PaymentTerms, customer.payment_terms) if customer.payment_terms else None
    if terms is None:
        return tran_date
    return tran_date + timedelta(days=terms.days_before_due or 0)


def _ledger_amounts(summary, tax_included):
    """ov_amount is the line subtotal; ov_gst only carries tax not already in the prices."""
    return {
        'ov_amount': summary['subtotal'],
        'ov_gst': Decimal('0.00') if tax_included else summary['taxes']['total_tax'],
        'ov_freight': summary['shipping'],
    }


def create_sales_order(trans_type, data, customer, branch, sales_type, lines, summary, tran_date, fiscal_year):
    order = SalesOrder(
        order_no=next_trans_no(trans_type),
        trans_type=trans_type,
        debtor_no=customer.debtor_no,
        branch_code=branch.branch_code,
        reference=next_document_reference(trans_type, fiscal_year=fiscal_year),
        customer_ref=data.get('customer_ref') or '',
        ord_date=tran_date,
        order_type=sales_type.id,
        ship_via=safe_int(data.get('ship_via')),
        deliver_to=data.get('deliver_to') or customer.name,
        delivery_address=data.get('delivery_address') or branch.br_address or customer.address,
        delivery_date=_as_date(data.get('delivery_date')),
        freight_cost=summary['shipping'],
        tax_included=bool(sales_type.tax_included),
        total=summary['total'],
        prep_amount=summary['total'] if data.get('prepaid') else Decimal('0.00'),
    )
    db.session.add(order)
    for l in lines:
        order.details.append(SalesOrderDetail(
            order_no=order.order_no,
            trans_type=trans_type,
            stk_code=l['stock_id'],
            description=l['description'],
            quantity=float(l['quantity']),
            unit_price=l['unit_price'],
            discount_percent=float(l['discount']),
        ))
    db.session.flush()
    return order


def create_debtor_trans(trans_type, customer, branch, sales_type, lines, summary, tran_date, fiscal_year,
                        order_no=None, version=0, src_ids=None, ship_via=None, tax_included=None):
    if tax_included is None:
        tax_included = bool(sales_type.tax_included)
    trans = DebtorTrans(
        trans_no=next_trans_no(trans_type),
        trans_type=trans_type,
        version=version,
        debtor_no=customer.debtor_no,
        branch_code=branch.branch_code,
        reference=next_document_reference(trans_type, fiscal_year=fiscal_year),
        tran_date=tran_date,
        due_date=_due_date(customer, tran_date) if trans_type == ST_SALESINVOICE else None,
        order_no=order_no,
        tpe=sales_type.id if sales_type is not None else None,
        ship_via=ship_via,
        tax_included=tax_included,
        **_ledger_amounts(summary, tax_included),
    )
    db.session.add(trans)
    for idx, l in enumerate(lines):
        trans.details.append(DebtorTransDetail(
            debtor_trans_no=trans.trans_no,
            debtor_trans_type=trans_type,
            stock_id=l['stock_id'],
            description=l['description'],
            unit_price=l['unit_price'],
            unit_tax=_unit_tax(l['unit_price'], summary['taxes']['lines'], tax_included),
            quantity=float(l['quantity']),
            discount_percent=float(l['discount']),
            src_id=src_ids[idx] if src_ids else l.get('src_id'),
        ))
    _add_tax_details(trans_type, trans.trans_no, tran_date, summary, tax_included)
    db.session.flush()
    return trans


def serialize_document(header, summary, tax_included, lines):
    out = header.to_dict()
    out.update(serialize_summary(lines, summary, tax_included))
    out['details'] = [d.to_dict() for d in header.details]
    out['trans_type_name'] = TRANS_TYPE_NAMES.get(header.trans_type)
    return out


# --- Credit notes against an invoice ---

def credited_quantity(invoice_detail_id):
    total = (db.session.query(func.coalesce(func.sum(DebtorTransDetail.quantity), 0.0))
             .filter(DebtorTransDetail.debtor_trans_type == ST_CUSTCREDIT,
                     DebtorTransDetail.src_id == invoice_detail_id)
             .scalar())
    return to_decimal(total)


def creditable_lines(invoice):
    """Invoice lines with the quantity still available for crediting."""
    out = []
    for d in invoice.details:
        remaining = to_decimal(d.quantity) - credited_quantity(d.id)
        out.append({'detail': d, 'remaining': max(remaining, Decimal('0'))})
    return out


def credit_lines_from_invoice(invoice, raw_lines):
    available = {row['detail'].id: row for row in creditable_lines(invoice)}
    lines = []
    for raw in raw_lines or []:
        detail_id = safe_int(raw.get('invoice_detail_id') or raw.get('src_id'))
        quantity = to_decimal(raw.get('quantity'))
        if quantity <= 0:
            continue
        row = available.get(detail_id)
        if row is None:
            raise DocumentError(f'Invoice line {detail_id} not found', status=404)
        if quantity > row['remaining']:
            raise OverCreditError(
                f"Cannot credit {quantity} of {row['detail'].stock_id}; only {row['remaining']} remaining")
        row['remaining'] -= quantity
        d = row['detail']
        lines.append({
            'stock_id': d.stock_id,
            'description': d.description,
            'quantity': quantity,
            'price_before_tax': d.unit_price,
            'price_after_tax': d.unit_price,
            'unit_price': d.unit_price,
            'discount': to_decimal(d.discount_percent),
            'total': line_total(quantity, d.unit_price, d.discount_percent),
            'price_source': 'invoice',
            'src_id': d.id,
        })
    return lines


def _document_date(data):
    try:
        return _as_date(data.get('date')) or date.today()
    except ValueError:
        raise DocumentError('Invalid date format. Please use YYYY-MM-DD.')


def _error_response(e):
    db.session.rollback()
    if isinstance(e, FiscalYearNotFound):
        return jsonify({'error': str(e), 'errors': {'date': str(e)}}), 422
    if isinstance(e, DocumentError):
        return jsonify({'error': str(e)}), e.status
    if isinstance(e, PricingError):
        return jsonify({'error': str(e)}), 400
    logger.exception("Unexpected error while processing document")
    return jsonify({'error': f'An unexpected error occurred: {str(e)}'}), 500


def _priced_draft(data):
    customer, branch, sales_type = load_context(data)
    lines = price_lines(data.get('lines'), sales_type, default_discount=customer.discount)
    return customer, branch, sales_type, lines


# --- Endpoints ---

@documents_bp.route('/documents/preview', methods=['POST'])
@login_required
def preview_document():
    data = request.get_json(silent=True) or {}
    kind = data.get('kind', 'direct_invoice')
    if kind not in DOCUMENT_KINDS:
        return jsonify({'error': f'Unknown document kind {kind!r}'}), 400
    trans_type, exclude_last = DOCUMENT_KINDS[kind]
    try:
        customer, branch, sales_type, lines = _priced_draft(data)
        counted = lines
        if exclude_last and data.get('editing_last_row'):
            # The table's last row is the one being edited, whether or not it is filled in yet
            last_row = len(data.get('lines') or []) - 1
            counted = [l for l in lines if l['row'] != last_row]
        summary = summarize(counted, branch, sales_type.tax_included, data.get('shipping'))
        result = serialize_summary(lines, summary, sales_type.tax_included)
        try:
            result['reference'] = next_document_reference(trans_type, _document_date(data))
        except FiscalYearNotFound as e:
            result['reference'] = ''
            result['errors'] = {'date': str(e)}
        return jsonify(result)
    except Exception as e:
        return _error_response(e)


@documents_bp.route('/direct-invoices', methods=['POST'])
@login_required
@role_required('Admin', 'Clerk')
def create_direct_invoice():
    """
    Sales order (30) + invoice (10) + delivery (13), one line set shared by all three.
    Delivery and invoice lines point back at the sales order detail they came from.
    """
    data = request.get_json(silent=True) or {}
    try:
        customer, branch, sales_type, lines = _priced_draft(data)
        if not lines:
            return jsonify({'error': 'At least one item must be added to the invoice.'}), 400
        tran_date = _document_date(data)
        fiscal_year = resolve_fiscal_year(tran_date)
        summary = summarize(lines, branch, sales_type.tax_included, data.get('shipping'))

        def build():
            order = create_sales_order(ST_SALESORDER, data, customer, branch, sales_type, lines, summary,
                                       tran_date, fiscal_year)
            for d in order.details:
                d.qty_sent = d.quantity
            src_ids = [d.id for d in order.details]
            ship_via = safe_int(data.get('ship_via'))
            invoice = create_debtor_trans(ST_SALESINVOICE, customer, branch, sales_type, lines, summary,
                                          tran_date, fiscal_year, order_no=order.order_no, src_ids=src_ids,
                                          ship_via=ship_via)
            delivery = create_debtor_trans(ST_CUSTDELIVERY, customer, branch, sales_type, lines, summary,
                                           tran_date, fiscal_year, order_no=order.order_no, version=1,
                                           src_ids=src_ids, ship_via=ship_via)
            log_action(f'Created direct invoice {invoice.reference} for {customer.name}: {summary["total"]:,.2f}.')
            return order, invoice, delivery

        order, invoice, delivery = _save_with_retry(build)
        result = serialize_document(invoice, summary, sales_type.tax_included, lines)
        result['order_no'] = order.order_no
        result['delivery'] = {'trans_no': delivery.trans_no, 'reference': delivery.reference}
        return jsonify(result), 201
    except Exception as e:
        return _error_response(e)


def _create_order_like(trans_type):
    data = request.get_json(silent=True) or {}
    try:
        customer, branch, sales_type, lines = _priced_draft(data)
        if not lines:
            return jsonify({'error': 'At least one item must be added.'}), 400
        tran_date = _document_date(data)
        fiscal_year = resolve_fiscal_year(tran_date)
        summary = summarize(lines, branch, sales_type.tax_included, data.get('shipping'))

        def build():
            order = create_sales_order(trans_type, data, customer, branch, sales_type, lines, summary,
                                       tran_date, fiscal_year)
            log_action(f'Created {TRANS_TYPE_NAMES[trans_type]} {order.reference} for {customer.name}.')
            return order

        order = _save_with_retry(build)
        return jsonify(serialize_document(order, summary, sales_type.tax_included, lines)), 201
    except Exception as e:
        return _error_response(e)


@documents_bp.route('/sales-orders/entry', methods=['POST'])
@login_required
@role_required('Admin', 'Clerk')
def create_sales_order_entry():
    return _create_order_like(ST_SALESORDER)


@documents_bp.route('/sales-quotations', methods=['POST'])
@login_required
@role_required('Admin', 'Clerk')
def create_sales_quotation():
    return _create_order_like(ST_SALESQUOTE)


@documents_bp.route('/credit-notes', methods=['POST'])
@login_required
@role_required('Admin', 'Clerk')
def create_credit_note():
    """
    Customer credit note (11). With `invoice_trans_no` the lines credit that
    invoice's lines (bounded by what is left to credit) and the credit is
    allocated against the invoice; without it the lines are priced like any
    other document.
    """
    data = request.get_json(silent=True) or {}
    try:
        tran_date = _document_date(data)
        invoice_no = safe_int(data.get('invoice_trans_no'))
        invoice = None
        if invoice_no is not None:
            invoice = DebtorTrans.query.filter_by(trans_type=ST_SALESINVOICE, trans_no=invoice_no).first()
            if invoice is None:
                return jsonify({'error': f'Invoice {invoice_no} not found'}), 404
            customer = invoice.customer
            branch = db.session.get(CustomerBranch, invoice.branch_code)
            sales_type = db.session.get(SalesType, invoice.tpe) if invoice.tpe else None
            tax_included = bool(invoice.tax_included)
            lines = credit_lines_from_invoice(invoice, data.get('lines'))
        else:
            customer, branch, sales_type, lines = _priced_draft(data)
            tax_included = bool(sales_type.tax_included)
        if not lines:
            return jsonify({'error': 'At least one item must be credited.'}), 400
        fiscal_year = resolve_fiscal_year(tran_date)
        summary = summarize(lines, branch, tax_included, data.get('shipping'))

        def build():
            credit = create_debtor_trans(ST_CUSTCREDIT, customer, branch, sales_type, lines, summary,
                                         tran_date, fiscal_year, tax_included=tax_included)
            if invoice is not None:
                outstanding = invoice.total - (invoice.alloc or Decimal('0.00'))
                amount = min(credit.total, max(outstanding, Decimal('0.00')))
                if amount > 0:
                    db.session.add(CustAllocation(
                        person_id=customer.debtor_no,
                        amount=amount,
                        date_alloc=tran_date,
                        trans_no_from=credit.trans_no,
                        trans_type_from=ST_CUSTCREDIT,
                        trans_no_to=invoice.trans_no,
                        trans_type_to=ST_SALESINVOICE,
                    ))
                    invoice.alloc = (invoice.alloc or Decimal('0.00')) + amount
                    credit.alloc = amount
            log_action(f'Created credit note {credit.reference} for {customer.name}: {summary["total"]:,.2f}.')
            return credit

        credit = _save_with_retry(build)
        result = serialize_document(credit, summary, tax_included, lines)
        result['invoice_trans_no'] = invoice_no
        return jsonify(result), 201
    except Exception as e:
        return _error_response(e)


@documents_bp.route('/debtor-trans/invoices/<int:trans_no>/creditable')
@login_required
def invoice_creditable(trans_no):
    invoice = DebtorTrans.query.filter_by(trans_type=ST_SALESINVOICE, trans_no=trans_no).first()
    if invoice is None:
        return jsonify({'error': f'Invoice {trans_no} not found'}), 404
    return jsonify([{
        'invoice_detail_id': row['detail'].id,
        'stock_id': row['detail'].stock_id,
        'description': row['detail'].description,
        'invoiced': float(row['detail'].quantity),
        'remaining': float(row['remaining']),
        'unit_price': _num(row['detail'].unit_price),
    } for row in creditable_lines(invoice)])


@documents_bp.route('/references/next')
@login_required
def next_reference_preview():
    trans_type = safe_int(request.args.get('trans_type'))
    if trans_type not in TRANS_TYPE_NAMES:
        return jsonify({'error': 'Unknown transaction type'}), 400
    try:
        on_date = _as_date(request.args.get('date')) if request.args.get('date') else None
    except ValueError:
        return jsonify({'error': 'Invalid date format. Please use YYYY-MM-DD.'}), 400
    try:
        fiscal_year = resolve_fiscal_year(on_date)
        reference = next_document_reference(trans_type, fiscal_year=fiscal_year)
    except FiscalYearNotFound as e:
        return _error_response(e)
    return jsonify({'trans_type': trans_type, 'reference': reference,
                    'fiscal_year_id': fiscal_year.id, 'year_label': year_label(fiscal_year)})


@documents_bp.route('/pricing/resolve')
@login_required
def pricing_resolve():
    stock_id = request.args.get('stock_id')
    sales_type_id = safe_int(request.args.get('sales_type_id'))
    item = db.session.get(StockItem, stock_id) if stock_id else None
    if item is None:
        return jsonify({'error': f'Item {stock_id} not found'}), 404
    try:
        quote = resolve_item_price(item, sales_type_id)
    except PricingError as e:
        return jsonify({'error': str(e)}), 400
    sales_type = db.session.get(SalesType, sales_type_id)
    return jsonify({
        'stock_id': item.stock_id,
        'sales_type_id': sales_type_id,
        'price_before_tax': _num(quote['before']),
        'price_after_tax': _num(quote['after']),
        'tax_included': bool(sales_type.tax_included),
        'price': _num(applicable_price(quote, sales_type.tax_included)),
        'source': quote['source'],
    })


@documents_bp.route('/lines/recompute', methods=['POST'])
@login_required
def lines_recompute():
    data = request.get_json(silent=True) or {}
    row = data.get('row') or {}
    field = data.get('field')
    if not field:
        return jsonify({'error': 'field is required'}), 400
    updated = recompute_line(row, field, data.get('value'), tax_included=bool(data.get('tax_included', True)))
    if 'total' in updated:
        updated['total'] = _num(updated['total'])
    return jsonify(updated)
