"""Reset (or create) an administrator account and print its new password.

    python reset_admin.py            # account named by ADMIN_USERNAME, default "admin"
    python reset_admin.py principal  # a specific account
"""
import logging
import os
import secrets
import string
import sys

from werkzeug.security import generate_password_hash

from schooladmin import app, db
from schooladmin.models import User

logger = logging.getLogger(__name__)


def generate_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def reset_admin(username: str) -> str:
    password = generate_password()
    user = User.query.filter_by(username=username).first()
    if user is None:
        user = User(username=username, name='Administrator', role='admin')
        db.session.add(user)
        logger.info(f"Created admin account {username}")
    elif user.role != 'admin':
        logger.warning(f"Promoting {username} from {user.role} to admin")
        user.role = 'admin'
    user.password_hash = generate_password_hash(password)
    db.session.commit()
    return password


if __name__ == "__main__":
    target = sys.argv[1] if len(sys.argv) > 1 else os.environ.get('ADMIN_USERNAME', 'admin')
    with app.app_context():
        new_pw = reset_admin(target)
    # Print only the password for easy copying
    print(new_pw)
