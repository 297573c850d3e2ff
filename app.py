import logging

from flask import Flask, jsonify, request
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from extensions import cache, limiter, login_manager
from models import db, SalesType, PaymentTerms, ItemUnit

logger = logging.getLogger(__name__)


def create_app(config_object=None):
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)
    if not app.config.get('SECRET_KEY'):
        app.config['SECRET_KEY'] = Config.load_secret_key()

    cache.init_app(app)
    limiter.init_app(app)

    db.init_app(app)
    Migrate(app, db)

    from routes.auth import auth_bp, bearer_token, user_from_token
    from routes.users import user_bp
    from routes.resources import resources_bp
    from routes.documents import documents_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(user_bp)
    # documents first so its fixed paths (/sales-orders/entry) are registered ahead of <pk> rules
    app.register_blueprint(documents_bp)
    app.register_blueprint(resources_bp)

    # --- Login Manager ---
    login_manager.init_app(app)

    @login_manager.request_loader
    def load_user_from_request(req):
        return user_from_token(bearer_token(req))

    @login_manager.unauthorized_handler
    def unauthorized():
        # The client clears its stored token and user on this response
        return jsonify({'error': 'Authentication required', 'clear_session': True}), 401

    # --- JSON errors ---
    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description, 'status': e.code}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({'error': f'An unexpected error occurred: {str(e)}'}), 500

    return app


def seed_essential_data(app):
    """Seeds the default price lists, payment terms and unit if the database is empty."""
    price_lists = [
        ('Retail', True, 1.0),
        ('Wholesale', False, 0.7),
    ]
    terms = [
        ('Cash Only', 0),
        ('Due 15th Of The Following Month', 15),
        ('Net 30 Days', 30),
    ]

    with app.app_context():
        if SalesType.query.count() > 0:
            return
        logger.info("Seeding price lists and payment terms...")
        try:
            for name, tax_included, factor in price_lists:
                db.session.add(SalesType(sales_type=name, tax_included=tax_included, factor=factor))
            for label, days in terms:
                db.session.add(PaymentTerms(terms=label, days_before_due=days))
            db.session.add(ItemUnit(abbr='each', name='Each', decimals=0))
            db.session.commit()
            logger.info("Essential data seeded.")
        except Exception:
            db.session.rollback()
            logger.exception("Error seeding essential data")
            raise
