"""
Per-entity REST resources under /api.

Every resource answers GET (list), GET /<id>, POST, PUT /<id> and DELETE /<id>
with JSON. List endpoints accept equality filters on any column
(?debtor_no=3&trans_type=10) and optional ?page=/&per_page= pagination.
"""
import logging

from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required
from sqlalchemy import exc

from extensions import cache
from models import (db, _coerce, Customer, CustomerBranch, PaymentTerms, SalesType, SalesPricing,
                    StockItem, ItemUnit, TaxType, TaxGroup, TaxGroupItem, FiscalYear, ShippingCompany,
                    BankAccount, CompanySetup, SalesOrder, SalesOrderDetail, DebtorTrans,
                    DebtorTransDetail, CustAllocation, TransTaxDetail)
from routes.decorators import role_required
from routes.utils import paginate_query, log_action

logger = logging.getLogger(__name__)

resources_bp = Blueprint('resources', __name__, url_prefix='/api')

ADMIN = ('Admin',)
STAFF = ('Admin', 'Clerk')

# url name -> (model, roles allowed to write, cache list responses)
RESOURCES = {
    'customers': (Customer, STAFF, False),
    'customer-branch': (CustomerBranch, STAFF, False),
    'payment-terms': (PaymentTerms, ADMIN, True),
    'sales-types': (SalesType, ADMIN, True),
    'sales-pricing': (SalesPricing, STAFF, False),
    'stock-items': (StockItem, STAFF, False),
    'item-units': (ItemUnit, ADMIN, True),
    'tax-types': (TaxType, ADMIN, True),
    'tax-groups': (TaxGroup, ADMIN, True),
    'tax-group-items': (TaxGroupItem, ADMIN, True),
    'fiscal-years': (FiscalYear, ADMIN, True),
    'shipping-companies': (ShippingCompany, ADMIN, True),
    'bank-accounts': (BankAccount, ADMIN, False),
    'company-setup': (CompanySetup, ADMIN, False),
    'sales-orders': (SalesOrder, STAFF, False),
    'sales-order-details': (SalesOrderDetail, STAFF, False),
    'debtor-trans': (DebtorTrans, STAFF, False),
    'debtor-trans-details': (DebtorTransDetail, STAFF, False),
    'cust-allocations': (CustAllocation, STAFF, False),
    'trans-tax-details': (TransTaxDetail, STAFF, False),
}


def _pk_column(model):
    return list(model.__table__.primary_key.columns)[0]


def _get_or_404(model, pk):
    column = _pk_column(model)
    try:
        key = _coerce(column, pk)
    except (TypeError, ValueError):
        return None
    return db.session.get(model, key)


def _filtered_query(model):
    query = model.query
    columns = model.__table__.columns
    for name, value in request.args.items():
        if name in ('page', 'per_page') or name not in columns:
            continue
        try:
            query = query.filter(columns[name] == _coerce(columns[name], value))
        except (TypeError, ValueError):
            raise ValueError(f'Invalid value for {name}: {value!r}')
    return query.order_by(_pk_column(model))


def _list_cache_key(name):
    return f'resource:{name}:{request.query_string.decode()}'


def register_resource(bp, name, model, write_roles, cached):
    def list_items():
        key = _list_cache_key(name)
        if cached:
            hit = cache.get(key)
            if hit is not None:
                return jsonify(hit)
        try:
            items, meta = paginate_query(_filtered_query(model), per_page=current_app.config.get('PAGE_SIZE'))
        except ValueError as e:
            return jsonify({'error': str(e)}), 400
        payload = [item.to_dict() for item in items]
        if meta is not None:
            payload = {'items': payload, 'meta': meta}
        if cached:
            cache.set(key, payload)
        return jsonify(payload)

    def get_item(pk):
        item = _get_or_404(model, pk)
        if item is None:
            return jsonify({'error': f'{model.__name__} {pk} not found'}), 404
        return jsonify(item.to_dict())

    def create_item():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'A JSON object is required'}), 400
        try:
            item = model()
            item.update_from(data)
            db.session.add(item)
            db.session.flush()
            log_action(f'Created {model.__name__} {_pk_column(model).key}={getattr(item, _pk_column(model).key)}.')
            db.session.commit()
        except exc.IntegrityError as e:
            db.session.rollback()
            return jsonify({'error': 'Duplicate or invalid reference.', 'details': str(e.orig)}), 409
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            db.session.rollback()
            logger.exception("Failed to create %s", model.__name__)
            return jsonify({'error': str(e)}), 500
        if cached:
            cache.clear()
        return jsonify(item.to_dict()), 201

    def update_item(pk):
        item = _get_or_404(model, pk)
        if item is None:
            return jsonify({'error': f'{model.__name__} {pk} not found'}), 404
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'A JSON object is required'}), 400
        try:
            item.update_from(data)
            log_action(f'Updated {model.__name__} {pk}.')
            db.session.commit()
        except exc.IntegrityError as e:
            db.session.rollback()
            return jsonify({'error': 'Duplicate or invalid reference.', 'details': str(e.orig)}), 409
        except (TypeError, ValueError) as e:
            db.session.rollback()
            return jsonify({'error': str(e)}), 400
        except Exception as e:
            db.session.rollback()
            logger.exception("Failed to update %s %s", model.__name__, pk)
            return jsonify({'error': str(e)}), 500
        if cached:
            cache.clear()
        return jsonify(item.to_dict())

    def delete_item(pk):
        item = _get_or_404(model, pk)
        if item is None:
            return jsonify({'error': f'{model.__name__} {pk} not found'}), 404
        try:
            db.session.delete(item)
            log_action(f'Deleted {model.__name__} {pk}.')
            db.session.commit()
        except exc.IntegrityError as e:
            db.session.rollback()
            return jsonify({'error': f'{model.__name__} {pk} is still in use.', 'details': str(e.orig)}), 409
        if cached:
            cache.clear()
        return jsonify({'status': 'ok'})

    endpoint = name.replace('-', '_')
    writer = role_required(*write_roles)
    bp.add_url_rule(f'/{name}', f'{endpoint}_list', login_required(list_items), methods=['GET'])
    bp.add_url_rule(f'/{name}', f'{endpoint}_create', login_required(writer(create_item)), methods=['POST'])
    bp.add_url_rule(f'/{name}/<pk>', f'{endpoint}_get', login_required(get_item), methods=['GET'])
    bp.add_url_rule(f'/{name}/<pk>', f'{endpoint}_update', login_required(writer(update_item)), methods=['PUT'])
    bp.add_url_rule(f'/{name}/<pk>', f'{endpoint}_delete', login_required(writer(delete_item)), methods=['DELETE'])


for _name, (_model, _roles, _cached) in RESOURCES.items():
    register_resource(resources_bp, _name, _model, _roles, _cached)
