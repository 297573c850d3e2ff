from flask import request
from models import db, AuditLog
from decimal import Decimal, ROUND_HALF_UP, getcontext
import logging

getcontext().prec = 28

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')


def to_decimal(value):
    """Coerce value (None, float, int, str, Decimal) -> Decimal without rounding.

    - Accepts strings with commas "1,234.56", parentheses for negatives "(1,234.56)".
    - Returns Decimal('0') for invalid inputs instead of raising.
    """
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        # Convert through str() to avoid binary float artifacts
        return Decimal(str(value))
    try:
        s = str(value).strip().replace(',', '')
        if s.startswith('(') and s.endswith(')'):
            s = '-' + s[1:-1]
        return Decimal(s)
    except Exception:
        return Decimal('0')


def money(value):
    """Quantize to 2 decimal places using ROUND_HALF_UP for currency."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def field_value(row, *names, default=None):
    """
    Return the first non-None attribute/key among `names` from a dict or an object.

    Pricing rows reach us as model instances or as JSON dicts whose key spelling
    varies (price_before_tax / priceBeforeTax / price).
    """
    if row is None:
        return default
    for name in names:
        if isinstance(row, dict):
            value = row.get(name)
        else:
            value = getattr(row, name, None)
        if value is not None:
            return value
    return default


def safe_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate_query(query, per_page=None):
    """Paginate a SQLAlchemy query when ?page= is present.

    - Without ?page= the full list is returned (the front end filters in memory).
    - Returns (items, meta) where meta is None for unpaginated results.
    """
    page_raw = request.args.get('page')
    if page_raw is None:
        return query.all(), None
    page = safe_int(page_raw, 1)
    if page < 1:
        page = 1
    per_page = safe_int(request.args.get('per_page'), per_page) or 40
    try:
        pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    except Exception as e:
        logger.exception("Error while paginating query: %s", e)
        raise
    meta = {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
    }
    return pagination.items, meta


def log_action(action_description, user=None):
    """
    Create an AuditLog row for the action_description.

    - Does not commit (caller controls transaction).
    - Never raises on logging failures; logs internal exception instead to avoid breaking user flows.
    """
    try:
        user_to_log = user
        if user_to_log is None:
            from flask_login import current_user
            if getattr(current_user, 'is_authenticated', False):
                user_to_log = current_user

        try:
            ip_addr = request.remote_addr
        except RuntimeError:
            ip_addr = None

        log_entry = AuditLog(
            user_id=(user_to_log.id if user_to_log else None),
            action=(str(action_description)[:255] if action_description is not None else ''),
            ip_address=ip_addr
        )
        db.session.add(log_entry)
        return log_entry
    except Exception:
        logger.exception("Failed to create audit log for action: %s", action_description)
        return None
