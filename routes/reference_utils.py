"""
Sequential document references, formatted NNN/<year label> (zero-padded to
three digits; numbers past 999 simply grow wider).

The year label is the fiscal year's start year, or "start/end" when the fiscal
year spans two calendar years. Numbering restarts at 001 in every fiscal year
and is independent per transaction type.
"""
from datetime import date
import logging
import re

from sqlalchemy import func

from routes.utils import field_value, safe_int

logger = logging.getLogger(__name__)

REF_PREFIX_RE = re.compile(r'^(\d{3,})/')


class FiscalYearNotFound(LookupError):
    pass


def _as_date(value):
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def year_label(fiscal_year):
    start = _as_date(field_value(fiscal_year, 'fiscal_year_from', 'begin'))
    end = _as_date(field_value(fiscal_year, 'fiscal_year_to', 'end')) or start
    if start.year == end.year:
        return f'{start.year}'
    return f'{start.year}/{end.year}'


def find_fiscal_year(fiscal_years, on_date):
    """First fiscal year whose [from, to] range contains on_date, or None."""
    on_date = _as_date(on_date)
    for fy in fiscal_years or []:
        start = _as_date(field_value(fy, 'fiscal_year_from', 'begin'))
        end = _as_date(field_value(fy, 'fiscal_year_to', 'end'))
        if start and end and start <= on_date <= end:
            return fy
    return None


def next_reference(trans_type, fiscal_year, existing_documents):
    """
    Next reference for `trans_type` in `fiscal_year`.

    Only documents of the same transaction type whose reference ends with
    "/<label>" count; their numeric prefixes are parsed and the maximum is
    incremented. An empty set starts at 001.
    """
    label = year_label(fiscal_year)
    suffix = f'/{label}'
    wanted = safe_int(trans_type)
    numbers = []
    for doc in existing_documents or []:
        if safe_int(field_value(doc, 'trans_type')) != wanted:
            continue
        ref = field_value(doc, 'reference')
        if not ref or not str(ref).endswith(suffix):
            continue
        match = REF_PREFIX_RE.match(str(ref))
        if match and int(match.group(1)) > 0:
            numbers.append(int(match.group(1)))
    next_num = max(numbers) + 1 if numbers else 1
    return f'{next_num:03d}{suffix}'


# --- Database-backed helpers ---

def resolve_fiscal_year(on_date=None):
    """
    Fiscal year for a new document.

    - With a date: the fiscal year containing it.
    - Without: the company setup's current fiscal year.
    Raises FiscalYearNotFound when nothing resolves or the year is closed.
    """
    from models import CompanySetup, FiscalYear

    if on_date is not None:
        fy = find_fiscal_year(FiscalYear.query.order_by(FiscalYear.fiscal_year_from).all(), on_date)
        if fy is None:
            raise FiscalYearNotFound(f'No fiscal year covers {_as_date(on_date).isoformat()}')
    else:
        company = CompanySetup.query.first()
        fy = company.fiscal_year if company else None
        if fy is None:
            raise FiscalYearNotFound('No fiscal year selected in company setup')
    if fy.is_closed:
        raise FiscalYearNotFound(f'Fiscal year {year_label(fy)} is closed')
    return fy


def document_model(trans_type):
    from models import SalesOrder, DebtorTrans, ST_SALESORDER, ST_SALESQUOTE

    return SalesOrder if safe_int(trans_type) in (ST_SALESORDER, ST_SALESQUOTE) else DebtorTrans


def next_document_reference(trans_type, on_date=None, fiscal_year=None):
    """next_reference() over the stored documents of `trans_type`."""
    if fiscal_year is None:
        fiscal_year = resolve_fiscal_year(on_date)
    model = document_model(trans_type)
    label = year_label(fiscal_year)
    existing = (model.query
                .with_entities(model.trans_type, model.reference)
                .filter(model.trans_type == trans_type, model.reference.like(f'%/{label}'))
                .all())
    docs = [{'trans_type': t, 'reference': r} for t, r in existing]
    return next_reference(trans_type, fiscal_year, docs)


def next_trans_no(trans_type):
    """Next order_no / trans_no for a transaction type (max + 1, starting at 1)."""
    from models import db, SalesOrder

    model = document_model(trans_type)
    column = model.order_no if model is SalesOrder else model.trans_no
    current = db.session.query(func.max(column)).filter(model.trans_type == trans_type).scalar()
    return (current or 0) + 1
