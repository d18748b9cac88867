"""
Shared Flask extension objects, bound to the app in ``create_app()``.

Models and services import ``db`` from here rather than from the app
package, which keeps the import graph acyclic.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

db = SQLAlchemy()

# ``flask db upgrade`` applies migrations/versions/.
migrate = Migrate()

# Sessions are dropped when the client's IP or user agent changes.
login_manager = LoginManager()
login_manager.session_protection = "strong"

# State-changing requests carry the token from /auth/csrf-token in the
# X-CSRFToken header.
csrf = CSRFProtect()
