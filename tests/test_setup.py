import configparser
import logging

from first_time_setup import write_config
from run import check_sales_setup, initialize_database
from models import db, CompanySetup, SalesType


def test_write_config_sections(tmp_path):
    path = tmp_path / 'db_config.ini'
    write_config(path, {'host': 'db', 'port': '3306', 'username': 'u', 'password': 'p', 'database': 'ld'},
                 retail='Shop', wholesale='Trade')
    parser = configparser.ConfigParser()
    parser.read(path)
    assert parser.get('database', 'host') == 'db'
    assert parser.get('app', 'secret_key') == 'AUTO_GENERATED'
    assert parser.get('pricing', 'retail_price_list') == 'Shop'
    assert parser.get('pricing', 'wholesale_price_list') == 'Trade'


def test_initialize_database_is_idempotent(app):
    initialize_database(app)
    with app.app_context():
        assert SalesType.query.count() == 2


def test_setup_check_is_quiet_on_a_complete_setup(app, caplog):
    with caplog.at_level(logging.WARNING, logger='ledgerdesk'):
        check_sales_setup(app)
    assert caplog.records == []


def test_setup_check_warns_about_gaps(app, caplog):
    app.config['WHOLESALE_PRICE_LIST'] = 'Trade'
    with app.app_context():
        CompanySetup.query.one().fiscal_year_id = None
        db.session.commit()
    with caplog.at_level(logging.WARNING, logger='ledgerdesk'):
        check_sales_setup(app)
    messages = ' '.join(r.getMessage() for r in caplog.records)
    assert 'fiscal year' in messages
    assert "'Trade'" in messages
