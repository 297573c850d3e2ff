import os
import sys
import logging
import tempfile
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import Config
from app import create_app, seed_essential_data
from models import db, CompanySetup, SalesType

logger = logging.getLogger('ledgerdesk')


def configure_logging(level=None):
    """Rotating file log in the per-user log directory plus console output."""
    log_dir = Config.get_log_dir()
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"WARNING: log directory {log_dir} is not writable ({e}); logging to the temp dir")
        log_dir = Path(tempfile.gettempdir())

    logfile = log_dir / 'ledgerdesk.log'
    handlers = [
        RotatingFileHandler(logfile, maxBytes=10 * 1024 * 1024, backupCount=5, encoding='utf-8'),
        logging.StreamHandler(),
    ]
    logging.basicConfig(
        level=level or os.environ.get('LOGLEVEL', 'INFO'),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        handlers=handlers,
    )
    return logfile


def check_sales_setup(app):
    """Warn about setup gaps that make every document request fail."""
    with app.app_context():
        company = CompanySetup.query.first()
        if company is None or company.fiscal_year is None:
            logger.warning("No current fiscal year in company setup; documents without a date will be rejected")
        names = {t.sales_type.lower() for t in SalesType.query.all()}
        for key in ('RETAIL_PRICE_LIST', 'WHOLESALE_PRICE_LIST'):
            wanted = app.config.get(key)
            if wanted and wanted.lower() not in names:
                logger.warning("%s %r does not match any sales type; its price fallback is disabled", key, wanted)


def initialize_database(app):
    """Create tables and seed price lists, payment terms and units on an empty database."""
    with app.app_context():
        db.create_all()
        logger.info("Database tables ready (%s)", db.engine.url.render_as_string(hide_password=True))
    seed_essential_data(app)


def main():
    logfile = configure_logging()
    logger.info("Logging to %s, running from %s", logfile, Config.BASE_DIR)

    app = create_app()
    try:
        initialize_database(app)
    except Exception:
        logger.exception("Failed to initialize the database; check db_config.ini or DATABASE_URL")
        sys.exit(1)
    check_sales_setup(app)

    host = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', '8000'))

    if os.environ.get('USE_WAITRESS', '1').lower() in ('0', 'false', 'no'):
        logger.info("Serving LedgerDesk API on %s:%s with the Flask development server", host, port)
        app.run(host=host, port=port, debug=Config.DEBUG, use_reloader=False)
        return

    from waitress import serve
    threads = int(os.environ.get('WAITRESS_THREADS', '8'))
    logger.info("Serving LedgerDesk API on %s:%s with Waitress (threads=%d)", host, port, threads)
    serve(app, host=host, port=port, threads=threads)


if __name__ == '__main__':
    main()
