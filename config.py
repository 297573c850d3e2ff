import os
import configparser
from pathlib import Path
import sys

class Config:
    if getattr(sys, 'frozen', False):
        BASE_DIR = Path(sys.executable).parent
    else:
        BASE_DIR = Path(__file__).resolve().parent

    CONFIG_FILE = BASE_DIR / 'db_config.ini'

    @staticmethod
    def get_log_dir():
        """Get log directory with write permissions."""
        env_log = os.environ.get('LEDGERDESK_LOG_DIR')
        if env_log:
            log_dir = Path(env_log)
            try:
                log_dir.mkdir(parents=True, exist_ok=True)
                return log_dir
            except OSError:
                pass

        try:
            if os.name == 'nt':
                base = Path(os.environ.get('APPDATA', Path.home() / 'AppData' / 'Roaming'))
                log_dir = base / 'LedgerDesk' / 'logs'
            else:
                log_dir = Path.home() / '.local' / 'share' / 'ledgerdesk' / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            pass

        try:
            log_dir = Config.BASE_DIR / 'logs'
            log_dir.mkdir(parents=True, exist_ok=True)
            return log_dir
        except OSError:
            import tempfile
            return Path(tempfile.gettempdir()) / 'ledgerdesk_logs'

    @staticmethod
    def _user_secret_path():
        if os.name == 'nt':
            base = Path(os.environ.get('APPDATA', str(Path.home() / 'AppData' / 'Roaming')))
            return base / 'ledgerdesk' / '.secret_key'
        return Path.home() / '.ledgerdesk' / '.secret_key'

    config_parser = configparser.ConfigParser()
    if CONFIG_FILE.exists():
        config_parser.read(CONFIG_FILE)

    if config_parser.sections():
        db_host = config_parser.get('database', 'host', fallback='localhost')
        db_port = config_parser.get('database', 'port', fallback='3306')
        db_user = config_parser.get('database', 'username', fallback='ledgerdesk_app')
        db_pass = config_parser.get('database', 'password', fallback='')
        db_name = config_parser.get('database', 'database', fallback='ledgerdesk')
        SQLALCHEMY_DATABASE_URI = f'mysql+pymysql://{db_user}:{db_pass}@{db_host}:{db_port}/{db_name}?charset=utf8mb4'
        DEBUG = config_parser.getboolean('app', 'debug', fallback=False)
        RETAIL_PRICE_LIST = config_parser.get('pricing', 'retail_price_list', fallback='Retail')
        WHOLESALE_PRICE_LIST = config_parser.get('pricing', 'wholesale_price_list', fallback='Wholesale')
    else:
        SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', '')
        DEBUG = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
        RETAIL_PRICE_LIST = os.environ.get('RETAIL_PRICE_LIST', 'Retail')
        WHOLESALE_PRICE_LIST = os.environ.get('WHOLESALE_PRICE_LIST', 'Wholesale')

    if not SQLALCHEMY_DATABASE_URI:
        SQLALCHEMY_DATABASE_URI = f'sqlite:///{BASE_DIR / "ledgerdesk.db"}'

    SECRET_KEY = None
    if config_parser.sections():
        SECRET_KEY = config_parser.get('app', 'secret_key', fallback=None)
        if SECRET_KEY == 'AUTO_GENERATED':
            SECRET_KEY = None
    if not SECRET_KEY:
        SECRET_KEY = os.environ.get('SECRET_KEY')

    # Bearer tokens issued by /api/login expire after this many seconds
    TOKEN_MAX_AGE = int(os.environ.get('TOKEN_MAX_AGE', 8 * 3600))

    # Attempts at writing a document before a reference collision is reported
    REFERENCE_RETRIES = 3

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 280,
    }

    CACHE_TYPE = 'SimpleCache'
    CACHE_DEFAULT_TIMEOUT = 300
    RATELIMIT_STORAGE_URI = 'memory://'

    JSON_SORT_KEYS = False
    PAGE_SIZE = 40

    @classmethod
    def load_secret_key(cls):
        """Return the configured secret key, generating and persisting one if needed."""
        if cls.SECRET_KEY:
            return cls.SECRET_KEY
        secret_file = cls._user_secret_path()
        try:
            if secret_file.exists():
                return secret_file.read_text().strip()
            secret_file.parent.mkdir(parents=True, exist_ok=True)
            key = os.urandom(32).hex()
            secret_file.write_text(key)
            try:
                os.chmod(secret_file, 0o600)
            except OSError:
                pass
            return key
        except OSError:
            return os.urandom(32).hex()


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SECRET_KEY = 'test-secret-key'
    CACHE_TYPE = 'NullCache'
    RATELIMIT_ENABLED = False
