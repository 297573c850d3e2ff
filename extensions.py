from flask_caching import Cache
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_login import LoginManager

cache = Cache()
limiter = Limiter(key_func=get_remote_address, default_limits=[])
login_manager = LoginManager()
