from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime, date
from sqlalchemy.orm import validates
from decimal import Decimal, ROUND_HALF_UP, getcontext
from sqlalchemy.types import TypeDecorator, Numeric as SA_Numeric
import logging


db = SQLAlchemy()

getcontext().prec = 28

# Transaction type codes shared by sales orders and the customer ledger
ST_SALESINVOICE = 10
ST_CUSTCREDIT = 11
ST_CUSTDELIVERY = 13
ST_SALESORDER = 30
ST_SALESQUOTE = 32

TRANS_TYPE_NAMES = {
    ST_SALESINVOICE: 'Sales Invoice',
    ST_CUSTCREDIT: 'Customer Credit Note',
    ST_CUSTDELIVERY: 'Customer Delivery',
    ST_SALESORDER: 'Sales Order',
    ST_SALESQUOTE: 'Sales Quotation',
}


class Money(TypeDecorator):
    """
    SQLAlchemy TypeDecorator to store Decimal values in a NUMERIC/DECIMAL column.
    - Python value: decimal.Decimal (quantized to 2 decimal places, ROUND_HALF_UP)
    - DB value: Decimal stored in NUMERIC(18,2)
    """
    impl = SA_Numeric(precision=18, scale=2)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, Decimal):
            try:
                # Use str() to avoid binary-float surprises
                value = Decimal(str(value))
            except Exception:
                raise ValueError(f"Cannot convert {value!r} to Decimal")
        return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            if isinstance(value, Decimal):
                return value.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
            return Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        except Exception as e:
            logging.exception("Money.process_result_value: failed to parse DB value %r (type=%s): %s", value, type(value), e)
            return Decimal('0.00')

    @property
    def python_type(self):
        return Decimal


class SerializerMixin:
    """Column-driven JSON serialization shared by every REST resource."""

    # Columns a client may not set through POST/PUT
    read_only_fields = ()

    def to_dict(self):
        out = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, (datetime, date)):
                value = value.isoformat()
            out[column.key] = value
        return out

    @classmethod
    def writable_fields(cls):
        fields = []
        for column in cls.__table__.columns:
            if column.primary_key and isinstance(column.type, db.Integer):
                continue
            if column.key in cls.read_only_fields:
                continue
            fields.append(column.key)
        return fields

    def update_from(self, data):
        """Assign known writable columns from a JSON payload; unknown keys are ignored."""
        for key in self.writable_fields():
            if key in data:
                setattr(self, key, _coerce(self.__table__.columns[key], data[key]))
        return self


def _coerce(column, value):
    if value is None or value == '':
        return None if column.nullable else value
    if isinstance(column.type, db.Date) and isinstance(value, str):
        return date.fromisoformat(value[:10])
    if isinstance(column.type, db.DateTime) and isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(column.type, db.Boolean) and not isinstance(value, bool):
        return str(value).strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(column.type, db.Integer) and not isinstance(value, int):
        return int(value)
    return value


class CompanySetup(SerializerMixin, db.Model):
    __tablename__ = 'company_setup'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(300))
    email = db.Column(db.String(120))
    curr_default = db.Column(db.String(3), default='USD')
    fiscal_year_id = db.Column(db.Integer, db.ForeignKey('fiscal_year.id'), nullable=True)
    fiscal_year = db.relationship('FiscalYear')


class FiscalYear(SerializerMixin, db.Model):
    __tablename__ = 'fiscal_year'
    id = db.Column(db.Integer, primary_key=True)
    fiscal_year_from = db.Column(db.Date, nullable=False)
    fiscal_year_to = db.Column(db.Date, nullable=False)
    is_closed = db.Column(db.Boolean, nullable=False, default=False)

    def contains(self, on_date):
        return self.fiscal_year_from <= on_date <= self.fiscal_year_to

    @validates('fiscal_year_to')
    def validate_to(self, key, value):
        if value is not None and self.fiscal_year_from is not None and value < self.fiscal_year_from:
            raise ValueError('fiscal_year_to cannot be before fiscal_year_from')
        return value


class User(db.Model, UserMixin):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)
    role = db.Column(db.String(50), nullable=False, default='Clerk')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {'id': self.id, 'username': self.username, 'role': self.role}


class AuditLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id', ondelete="SET NULL"))
    user = db.relationship('User')
    action = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow)
    ip_address = db.Column(db.String(45))

    def __repr__(self):
        username = self.user.username if self.user else 'System'
        return f'<AuditLog {self.timestamp} - {username}: {self.action}>'

    __table_args__ = (
        db.Index('idx_auditlog_user_id', 'user_id'),
        db.Index('idx_auditlog_timestamp', 'timestamp'),
    )


# --- Reference data ---

class PaymentTerms(SerializerMixin, db.Model):
    __tablename__ = 'payment_terms'
    id = db.Column(db.Integer, primary_key=True)
    terms = db.Column(db.String(80), nullable=False)
    days_before_due = db.Column(db.Integer, nullable=False, default=0)
    inactive = db.Column(db.Boolean, nullable=False, default=False)


class SalesType(SerializerMixin, db.Model):
    """A price list (e.g. Retail, Wholesale)."""
    __tablename__ = 'sales_type'
    id = db.Column(db.Integer, primary_key=True)
    sales_type = db.Column(db.String(50), unique=True, nullable=False)
    tax_included = db.Column(db.Boolean, nullable=False, default=False)
    factor = db.Column(db.Float, nullable=False, default=1.0)
    inactive = db.Column(db.Boolean, nullable=False, default=False)

    @validates('factor')
    def validate_factor(self, key, value):
        if value is None or value == '':
            return 1.0
        v = float(value)
        if v < 0:
            raise ValueError('factor cannot be negative')
        return v


class ItemUnit(SerializerMixin, db.Model):
    __tablename__ = 'item_unit'
    id = db.Column(db.Integer, primary_key=True)
    abbr = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(40), nullable=False)
    decimals = db.Column(db.Integer, nullable=False, default=0)


class StockItem(SerializerMixin, db.Model):
    __tablename__ = 'stock_item'
    stock_id = db.Column(db.String(20), primary_key=True)
    description = db.Column(db.String(200), nullable=False)
    units = db.Column(db.Integer, db.ForeignKey('item_unit.id'), nullable=True)
    unit = db.relationship('ItemUnit')
    material_cost = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    inactive = db.Column(db.Boolean, nullable=False, default=False)

    @validates('material_cost')
    def validate_cost(self, key, value):
        if value is None or value == '':
            return Decimal('0.00')
        d = Decimal(str(value))
        if d < 0:
            raise ValueError('material_cost cannot be negative')
        return d.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


class SalesPricing(SerializerMixin, db.Model):
    __tablename__ = 'sales_pricing'
    id = db.Column(db.Integer, primary_key=True)
    stock_id = db.Column(db.String(20), db.ForeignKey('stock_item.stock_id'), nullable=False)
    sales_type_id = db.Column(db.Integer, db.ForeignKey('sales_type.id'), nullable=False)
    currency = db.Column(db.String(3), default='USD')
    price_before_tax = db.Column(Money(), nullable=True)
    price_after_tax = db.Column(Money(), nullable=True)

    __table_args__ = (
        db.UniqueConstraint('stock_id', 'sales_type_id', 'currency', name='uq_sales_pricing_item_type'),
        db.Index('idx_sales_pricing_stock', 'stock_id'),
    )


class TaxType(SerializerMixin, db.Model):
    __tablename__ = 'tax_type'
    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(60), nullable=False)
    default_rate = db.Column(db.Float, nullable=False, default=0.0)
    inactive = db.Column(db.Boolean, nullable=False, default=False)


class TaxGroup(SerializerMixin, db.Model):
    __tablename__ = 'tax_group'
    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(60), unique=True, nullable=False)
    tax_included = db.Column(db.Boolean, nullable=False, default=False)
    inactive = db.Column(db.Boolean, nullable=False, default=False)
    items = db.relationship('TaxGroupItem', backref='tax_group', cascade='all, delete-orphan')


class TaxGroupItem(SerializerMixin, db.Model):
    __tablename__ = 'tax_group_item'
    id = db.Column(db.Integer, primary_key=True)
    tax_group_id = db.Column(db.Integer, db.ForeignKey('tax_group.id'), nullable=False)
    tax_type_id = db.Column(db.Integer, db.ForeignKey('tax_type.id'), nullable=False)
    tax_type = db.relationship('TaxType')
    tax_shipping = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.UniqueConstraint('tax_group_id', 'tax_type_id', name='uq_tax_group_item'),
    )


class Customer(SerializerMixin, db.Model):
    __tablename__ = 'debtors_master'
    debtor_no = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(300))
    email = db.Column(db.String(120))
    phone = db.Column(db.String(40))
    sales_type = db.Column(db.Integer, db.ForeignKey('sales_type.id'), nullable=True)
    price_list = db.relationship('SalesType')
    discount = db.Column(db.Float, nullable=False, default=0.0)
    credit_limit = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    payment_terms = db.Column(db.Integer, db.ForeignKey('payment_terms.id'), nullable=True)
    inactive = db.Column(db.Boolean, nullable=False, default=False)

    @validates('discount')
    def validate_discount(self, key, value):
        if value is None or value == '':
            return 0.0
        v = float(value)
        if v < 0 or v > 100:
            raise ValueError('discount must be between 0 and 100')
        return v

    __table_args__ = (
        db.Index('idx_customer_name', 'name'),
    )


class CustomerBranch(SerializerMixin, db.Model):
    __tablename__ = 'cust_branch'
    branch_code = db.Column(db.Integer, primary_key=True)
    debtor_no = db.Column(db.Integer, db.ForeignKey('debtors_master.debtor_no'), nullable=False)
    customer = db.relationship('Customer', backref='branches')
    br_name = db.Column(db.String(60), nullable=False)
    br_address = db.Column(db.String(300))
    tax_group_id = db.Column(db.Integer, db.ForeignKey('tax_group.id'), nullable=True)
    tax_group = db.relationship('TaxGroup')
    default_location = db.Column(db.String(5))
    inactive = db.Column(db.Boolean, nullable=False, default=False)


class ShippingCompany(SerializerMixin, db.Model):
    __tablename__ = 'shippers'
    shipper_id = db.Column(db.Integer, primary_key=True)
    shipper_name = db.Column(db.String(60), nullable=False)
    phone = db.Column(db.String(30))
    inactive = db.Column(db.Boolean, nullable=False, default=False)


class BankAccount(SerializerMixin, db.Model):
    __tablename__ = 'bank_account'
    id = db.Column(db.Integer, primary_key=True)
    bank_account_name = db.Column(db.String(60), nullable=False)
    bank_account_number = db.Column(db.String(100))
    bank_name = db.Column(db.String(60))
    bank_curr_code = db.Column(db.String(3), default='USD')
    account_code = db.Column(db.String(15))
    inactive = db.Column(db.Boolean, nullable=False, default=False)


# --- Documents ---

class SalesOrder(SerializerMixin, db.Model):
    """Header of a sales order (30) or a sales quotation (32)."""
    __tablename__ = 'sales_orders'
    read_only_fields = ('total',)

    id = db.Column(db.Integer, primary_key=True)
    order_no = db.Column(db.Integer, nullable=False)
    trans_type = db.Column(db.Integer, nullable=False, default=ST_SALESORDER)
    version = db.Column(db.Integer, nullable=False, default=0)
    debtor_no = db.Column(db.Integer, db.ForeignKey('debtors_master.debtor_no'), nullable=False)
    customer = db.relationship('Customer')
    branch_code = db.Column(db.Integer, db.ForeignKey('cust_branch.branch_code'), nullable=False)
    reference = db.Column(db.String(60), nullable=False)
    customer_ref = db.Column(db.String(100))
    ord_date = db.Column(db.Date, nullable=False, default=date.today)
    order_type = db.Column(db.Integer, db.ForeignKey('sales_type.id'), nullable=True)
    ship_via = db.Column(db.Integer, db.ForeignKey('shippers.shipper_id'), nullable=True)
    deliver_to = db.Column(db.String(200))
    delivery_address = db.Column(db.String(300))
    delivery_date = db.Column(db.Date, nullable=True)
    freight_cost = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    tax_included = db.Column(db.Boolean, nullable=False, default=False)
    total = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    prep_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    details = db.relationship('SalesOrderDetail', backref='order', cascade='all, delete-orphan')

    __table_args__ = (
        db.UniqueConstraint('order_no', 'trans_type', name='uq_sales_order_no'),
        db.UniqueConstraint('trans_type', 'reference', name='uq_sales_order_reference'),
    )


class SalesOrderDetail(SerializerMixin, db.Model):
    __tablename__ = 'sales_order_details'
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('sales_orders.id'), nullable=False)
    order_no = db.Column(db.Integer, nullable=False)
    trans_type = db.Column(db.Integer, nullable=False, default=ST_SALESORDER)
    stk_code = db.Column(db.String(20), db.ForeignKey('stock_item.stock_id'), nullable=False)
    description = db.Column(db.String(200))
    quantity = db.Column(db.Float, nullable=False, default=0.0)
    unit_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    discount_percent = db.Column(db.Float, nullable=False, default=0.0)
    qty_sent = db.Column(db.Float, nullable=False, default=0.0)


class DebtorTrans(SerializerMixin, db.Model):
    """Customer ledger transaction: invoice (10), credit note (11), delivery (13)."""
    __tablename__ = 'debtor_trans'
    read_only_fields = ('ov_amount', 'ov_gst', 'alloc')

    id = db.Column(db.Integer, primary_key=True)
    trans_no = db.Column(db.Integer, nullable=False)
    trans_type = db.Column(db.Integer, nullable=False)
    version = db.Column(db.Integer, nullable=False, default=0)
    debtor_no = db.Column(db.Integer, db.ForeignKey('debtors_master.debtor_no'), nullable=False)
    customer = db.relationship('Customer')
    branch_code = db.Column(db.Integer, db.ForeignKey('cust_branch.branch_code'), nullable=False)
    reference = db.Column(db.String(60), nullable=False)
    tran_date = db.Column(db.Date, nullable=False, default=date.today)
    due_date = db.Column(db.Date, nullable=True)
    order_no = db.Column(db.Integer, nullable=True)
    tpe = db.Column(db.Integer, db.ForeignKey('sales_type.id'), nullable=True)
    ship_via = db.Column(db.Integer, db.ForeignKey('shippers.shipper_id'), nullable=True)
    ov_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    ov_gst = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    ov_freight = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    ov_discount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    alloc = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    tax_included = db.Column(db.Boolean, nullable=False, default=False)
    details = db.relationship('DebtorTransDetail', backref='debtor_trans', cascade='all, delete-orphan')

    @property
    def total(self):
        return (self.ov_amount or Decimal('0.00')) + (self.ov_gst or Decimal('0.00')) + (self.ov_freight or Decimal('0.00'))

    __table_args__ = (
        db.UniqueConstraint('trans_no', 'trans_type', name='uq_debtor_trans_no'),
        db.UniqueConstraint('trans_type', 'reference', name='uq_debtor_trans_reference'),
        db.Index('idx_debtor_trans_debtor', 'debtor_no'),
    )


class DebtorTransDetail(SerializerMixin, db.Model):
    __tablename__ = 'debtor_trans_details'
    id = db.Column(db.Integer, primary_key=True)
    debtor_trans_id = db.Column(db.Integer, db.ForeignKey('debtor_trans.id'), nullable=False)
    debtor_trans_no = db.Column(db.Integer, nullable=False)
    debtor_trans_type = db.Column(db.Integer, nullable=False)
    stock_id = db.Column(db.String(20), db.ForeignKey('stock_item.stock_id'), nullable=False)
    description = db.Column(db.String(200))
    unit_price = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    unit_tax = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    quantity = db.Column(db.Float, nullable=False, default=0.0)
    discount_percent = db.Column(db.Float, nullable=False, default=0.0)
    # Invoice lines point at the sales order detail; credit note lines at the invoice line
    src_id = db.Column(db.Integer, nullable=True)


class CustAllocation(SerializerMixin, db.Model):
    __tablename__ = 'cust_allocations'
    id = db.Column(db.Integer, primary_key=True)
    person_id = db.Column(db.Integer, db.ForeignKey('debtors_master.debtor_no'), nullable=False)
    amount = db.Column(Money(), nullable=False)
    date_alloc = db.Column(db.Date, nullable=False, default=date.today)
    trans_no_from = db.Column(db.Integer, nullable=False)
    trans_type_from = db.Column(db.Integer, nullable=False)
    trans_no_to = db.Column(db.Integer, nullable=False)
    trans_type_to = db.Column(db.Integer, nullable=False)


class TransTaxDetail(SerializerMixin, db.Model):
    __tablename__ = 'trans_tax_details'
    id = db.Column(db.Integer, primary_key=True)
    trans_type = db.Column(db.Integer, nullable=False)
    trans_no = db.Column(db.Integer, nullable=False)
    tran_date = db.Column(db.Date, nullable=False, default=date.today)
    tax_type_id = db.Column(db.Integer, db.ForeignKey('tax_type.id'), nullable=True)
    rate = db.Column(db.Float, nullable=False, default=0.0)
    included_in_price = db.Column(db.Boolean, nullable=False, default=False)
    net_amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    amount = db.Column(Money(), nullable=False, default=Decimal('0.00'))
    memo = db.Column(db.String(100))

    __table_args__ = (
        db.Index('idx_trans_tax_trans', 'trans_type', 'trans_no'),
    )
