# tests/conftest.py
# ---------------------------------------------------------------------
# - Every test gets a fresh in-memory SQLite app built by create_app(TestConfig)
# - Seed: fiscal year 2025, VAT 15% tax group, Retail (tax incl.) and
#   Wholesale (x0.9) price lists, two customers, two stock items
# - Users admin / clerk / viewer all share PASSWORD
# ---------------------------------------------------------------------
from datetime import date
from decimal import Decimal

import pytest
from passlib.hash import pbkdf2_sha256

from app import create_app, seed_essential_data
from config import TestConfig
from models import (db, User, FiscalYear, CompanySetup, SalesType, TaxType, TaxGroup, TaxGroupItem,
                    Customer, CustomerBranch, StockItem, SalesPricing, PaymentTerms)

PASSWORD = 'secret1'


def _seed(app):
    seed_essential_data(app)
    with app.app_context():
        fy = FiscalYear(fiscal_year_from=date(2025, 1, 1), fiscal_year_to=date(2025, 12, 31))
        db.session.add(fy)
        db.session.flush()
        db.session.add(CompanySetup(name='Test Co', fiscal_year_id=fy.id))

        retail = SalesType.query.filter_by(sales_type='Retail').one()
        wholesale = SalesType.query.filter_by(sales_type='Wholesale').one()
        wholesale.factor = 0.9
        net30 = PaymentTerms.query.filter_by(days_before_due=30).one()

        vat = TaxType(description='VAT', default_rate=15.0)
        group = TaxGroup(description='Standard')
        db.session.add_all([vat, group])
        db.session.flush()
        db.session.add(TaxGroupItem(tax_group_id=group.id, tax_type_id=vat.id))

        trade = Customer(debtor_no=1, name='Acme Trading', sales_type=wholesale.id, payment_terms=net30.id)
        walkin = Customer(debtor_no=2, name='Walk-in', sales_type=retail.id)
        db.session.add_all([trade, walkin])
        db.session.flush()
        db.session.add_all([
            CustomerBranch(branch_code=1, debtor_no=1, br_name='Acme HQ', br_address='1 Main St',
                           tax_group_id=group.id),
            CustomerBranch(branch_code=2, debtor_no=2, br_name='Counter', tax_group_id=group.id),
        ])

        db.session.add_all([
            StockItem(stock_id='WIDGET', description='Widget', material_cost=Decimal('40.00')),
            StockItem(stock_id='GADGET', description='Gadget', material_cost=Decimal('25.00')),
        ])
        db.session.flush()
        db.session.add(SalesPricing(stock_id='WIDGET', sales_type_id=retail.id,
                                    price_before_tax=Decimal('100.00'), price_after_tax=Decimal('115.00')))

        for username, role in (('admin', 'Admin'), ('clerk', 'Clerk'), ('viewer', 'Viewer')):
            db.session.add(User(username=username, password_hash=pbkdf2_sha256.hash(PASSWORD), role=role))
        db.session.commit()
        db.session.remove()


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
    _seed(app)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def login(client, username):
    resp = client.post('/api/login', json={'username': username, 'password': PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return {'Authorization': f"Bearer {resp.get_json()['token']}"}


@pytest.fixture()
def admin_headers(client):
    return login(client, 'admin')


@pytest.fixture()
def clerk_headers(client):
    return login(client, 'clerk')


@pytest.fixture()
def viewer_headers(client):
    return login(client, 'viewer')
