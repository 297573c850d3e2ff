import configparser
import getpass
import sys
from pathlib import Path

def get_base_dir():
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent

def write_config(config_file, db_settings, retail='Retail', wholesale='Wholesale'):
    config = configparser.ConfigParser()
    config['database'] = db_settings
    config['app'] = {
        'secret_key': 'AUTO_GENERATED',
        'debug': 'False'
    }
    config['pricing'] = {
        'retail_price_list': retail,
        'wholesale_price_list': wholesale,
    }
    with open(config_file, 'w') as f:
        config.write(f)
    return config

def create_admin(username, password):
    """Create the first Admin user in the configured database."""
    from passlib.hash import pbkdf2_sha256
    from app import create_app
    from models import db, User
    from run import initialize_database

    app = create_app()
    initialize_database(app)
    with app.app_context():
        if User.query.filter_by(username=username).first():
            print(f"User {username!r} already exists; skipping.")
            return
        db.session.add(User(username=username, password_hash=pbkdf2_sha256.hash(password), role='Admin'))
        db.session.commit()
        print(f"Admin user {username!r} created.")

def run_setup():
    print("=" * 60)
    print("LedgerDesk - First Time Setup")
    print("=" * 60)

    print("\n[DATABASE CONFIGURATION]")
    db_settings = {
        'host': input("Database Host [localhost]: ").strip() or 'localhost',
        'port': input("Database Port [3306]: ").strip() or '3306',
        'username': input("Database Username:  ").strip(),
        'password': getpass.getpass("Database Password: ").strip(),
        'database': input("Database Name: ").strip(),
    }

    print("\n[PRICE LISTS]")
    retail = input("Retail price list name [Retail]: ").strip() or 'Retail'
    wholesale = input("Wholesale price list name [Wholesale]: ").strip() or 'Wholesale'

    config_file = get_base_dir() / 'db_config.ini'
    write_config(config_file, db_settings, retail, wholesale)
    print(f"\nConfiguration saved to {config_file}")

    print("\n[ADMIN ACCOUNT]")
    username = input("Admin username [admin]: ").strip() or 'admin'
    password = getpass.getpass("Admin password: ")
    if len(password) < 6:
        print("Password must be at least 6 characters; run setup again to create the admin.")
        return
    create_admin(username, password)

if __name__ == '__main__':
    run_setup()
