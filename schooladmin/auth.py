import logging
from functools import wraps

from flask import session

from schooladmin import db
from schooladmin.api import ApiError
from schooladmin.models import User, AuditLog

logger = logging.getLogger(__name__)

ROLES = ('admin', 'staff', 'teacher', 'warden', 'student', 'parent')

# --- Role-based CRUD policy ---
_EVERYONE = list(ROLES)
_OFFICE = ['admin', 'staff']

CRUD_PERMISSIONS = {
    'student': {
        'create': ['admin', 'staff'],
        'read':   ['admin', 'staff', 'teacher', 'warden'],
        'update': ['admin', 'staff'],
        'delete': ['admin'],
    },
    'audit': {
        'read': ['admin'],
    },
    # Alumni
    'alumni': {
        'create': _OFFICE,
        'read':   _EVERYONE,
        'update': _OFFICE,
        'delete': ['admin'],
    },
    'alumni_event': {
        'create': _OFFICE,
        'read':   _EVERYONE,
        'update': _OFFICE,
        'delete': ['admin'],
    },
    'graduation': {
        'create': ['admin'],
        'read':   _OFFICE,
    },
    # Communication
    'announcement': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   _EVERYONE,
        'update': ['admin', 'staff', 'teacher'],
        'delete': ['admin', 'staff'],
    },
    'circular': {
        'create': _OFFICE,
        'read':   _EVERYONE,
        'update': _OFFICE,
        'delete': ['admin'],
    },
    'survey': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   _EVERYONE,
        'update': ['admin', 'staff', 'teacher'],
        'delete': ['admin', 'staff'],
    },
    'alert': {
        'create': ['admin', 'staff', 'warden'],
        'read':   _EVERYONE,
        'update': ['admin', 'staff', 'warden'],
        'delete': ['admin'],
    },
    'school_event': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   _EVERYONE,
        'update': ['admin', 'staff', 'teacher'],
        'delete': ['admin', 'staff'],
    },
    'message': {
        'create': _EVERYONE,
        'read':   _EVERYONE,
    },
    'communication_stats': {
        'read': ['admin', 'staff', 'teacher'],
    },
    # Exams
    'exam': {
        'create': ['admin', 'staff'],
        'read':   _EVERYONE,
        'update': ['admin', 'staff'],
        'delete': ['admin'],
    },
    'marks': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   ['admin', 'staff', 'teacher'],
        'update': ['admin', 'staff', 'teacher'],
    },
    'report_card': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   ['admin', 'staff', 'teacher'],
    },
    'grade_scale': {
        'create': ['admin'],
        'read':   ['admin', 'staff', 'teacher'],
        'update': ['admin'],
        'delete': ['admin'],
    },
    'question_paper': {
        'create': ['admin', 'staff', 'teacher'],
        'read':   ['admin', 'staff', 'teacher'],
        'delete': ['admin', 'staff', 'teacher'],
    },
    # Hostel
    'hostel': {
        'create': ['admin'],
        'read':   ['admin', 'staff', 'warden'],
        'update': ['admin', 'warden'],
        'delete': ['admin'],
    },
    'hostel_allocation': {
        'create': ['admin', 'warden'],
        'read':   ['admin', 'staff', 'warden'],
        'update': ['admin', 'warden'],
    },
    'hostel_fee': {
        'create': ['admin', 'staff'],
        'read':   ['admin', 'staff', 'warden'],
        'update': ['admin', 'staff'],
    },
    'mess_menu': {
        'read':   _EVERYONE,
        'update': ['admin', 'warden'],
    },
    'hostel_attendance': {
        'create': ['admin', 'warden'],
        'read':   ['admin', 'staff', 'warden'],
    },
}


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not session.get('logged_in'):
            raise ApiError(401, "Authentication required")
        return fn(*args, **kwargs)
    return wrapper


def roles_required(*roles):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not session.get('logged_in'):
                raise ApiError(401, "Authentication required")
            if session.get('role') not in roles:
                raise ApiError(403, "You are not authorized to perform this action")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def crud_required(resource: str, action: str):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not session.get('logged_in'):
                raise ApiError(401, "Authentication required")
            role = session.get('role')
            allowed = CRUD_PERMISSIONS.get(resource, {}).get(action, [])
            if role not in allowed:
                raise ApiError(403, "You are not authorized to perform this action")
            return fn(*args, **kwargs)
        return wrapper
    return decorator


def current_username():
    return session.get('user') or 'system'


def current_user():
    username = session.get('user')
    if not username:
        return None
    return User.query.filter_by(username=username).first()


def current_actor():
    """(username, display name, role) of whoever is making the request."""
    user = current_user()
    username = current_username()
    name = user.display_name if user else username
    return username, name, session.get('role')


def record_audit(action, target, details=None):
    try:
        log = AuditLog(
            action=action,
            actor_username=current_username(),
            actor_role=session.get('role'),
            target=target,
            details=details,
        )
        db.session.add(log)
        db.session.commit()
    except Exception as _e:
        db.session.rollback()
        logger.warning(f"Failed to write audit log for {action}: {_e}")
