import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from schooladmin.config import DevelopmentConfig, ProductionConfig, TestingConfig
from datetime import timedelta
from werkzeug.security import generate_password_hash

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

logging.basicConfig(level=getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO))
logger = logging.getLogger(__name__)

# Compute DB URI for development using instance path
if env not in ("production", "testing"):
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

db = SQLAlchemy(app)

# Configure session lifetime
timeout_minutes = app.config.get('SESSION_TIMEOUT_MINUTES', 120)
try:
    app.permanent_session_lifetime = timedelta(minutes=int(timeout_minutes))
except (TypeError, ValueError):
    app.permanent_session_lifetime = timedelta(minutes=120)


def bootstrap_admin():
    """Create the admin account named by ADMIN_USERNAME if it does not exist yet."""
    from schooladmin.models import User
    admin_user = os.environ.get("ADMIN_USERNAME")
    if not admin_user:
        return None
    existing = User.query.filter_by(username=admin_user).first()
    if existing:
        return existing
    admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    admin_pw_plain = os.environ.get("ADMIN_PASSWORD")
    pw_hash = admin_pw_hash if admin_pw_hash else generate_password_hash(admin_pw_plain or "admin")
    user = User(username=admin_user, password_hash=pw_hash, role="admin", name="Administrator")
    db.session.add(user)
    db.session.commit()
    logger.info(f"Bootstrapped admin user {admin_user}")
    return user


try:
    from schooladmin import models  # noqa: F401
    with app.app_context():
        db.create_all()
        bootstrap_admin()
except Exception:
    logger.exception("Database bootstrap failed")

from schooladmin import routes  # noqa: E402,F401
