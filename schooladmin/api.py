"""JSON request/response plumbing shared by every route module."""
import logging
from datetime import datetime, date, timezone

from flask import jsonify, request, current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from schooladmin import app, db

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, message: str, fields: dict = None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.fields = fields

    def to_dict(self):
        body = {"error": self.message}
        if self.fields:
            body["fields"] = self.fields
        return body


class ValidationError(ApiError):
    def __init__(self, message: str = "Validation failed", fields: dict = None):
        super().__init__(400, message, fields)


@app.errorhandler(ApiError)
def handle_api_error(error):
    return jsonify(error.to_dict()), error.status


@app.errorhandler(IntegrityError)
def handle_integrity_error(error):
    db.session.rollback()
    logger.warning(f"Integrity error on {request.method} {request.path}: {error.orig}")
    return jsonify({"error": "Record conflicts with existing data"}), 409


@app.errorhandler(HTTPException)
def handle_http_error(error):
    return jsonify({"error": error.description or error.name}), error.code


@app.errorhandler(500)
def handle_500(error):
    logger.exception("Unhandled exception")
    return jsonify({"error": "Internal server error"}), 500


def ok(data, status=200, meta=None):
    body = {"data": data}
    if meta is not None:
        body["meta"] = meta
    return jsonify(body), status


def no_content():
    return "", 204


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def page_args(default_limit=None):
    page = request.args.get('page', 1, type=int) or 1
    limit = request.args.get('limit', default_limit or current_app.config.get('DEFAULT_PAGE_SIZE', 20), type=int)
    max_limit = current_app.config.get('MAX_PAGE_SIZE', 100)
    page = max(page, 1)
    limit = min(max(limit or 1, 1), max_limit)
    return page, limit


def page_meta(total, page, limit):
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": (total + limit - 1) // limit if total else 0,
    }


def paginate(query, default_limit=None, serialize=None):
    """Run a paginated query and build the `{data, meta}` envelope."""
    page, limit = page_args(default_limit)
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    serialize = serialize or (lambda obj: obj.to_dict())
    return ok([serialize(obj) for obj in pagination.items], meta=page_meta(pagination.total, page, limit))


def paginate_list(items, default_limit=None):
    page, limit = page_args(default_limit)
    start = (page - 1) * limit
    return ok(items[start:start + limit], meta=page_meta(len(items), page, limit))


def get_or_404(model, obj_id, label=None):
    obj = db.session.get(model, obj_id)
    if obj is None:
        raise ApiError(404, f"{label or model.__name__} not found")
    return obj


def arg_bool(name):
    value = request.args.get(name)
    if value is None or value == '':
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Field validation ---

def require(payload: dict, *names):
    missing = {}
    for name in names:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing[name] = ["This field is required"]
    if missing:
        raise ValidationError("Missing required fields", missing)


def as_text(payload: dict, name, required=True):
    """Stripped string value of payload[name]; None when optional and blank."""
    value = payload.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"Invalid {name}", {name: ["Must be a string"]})
    value = (value or '').strip()
    if not value:
        if required:
            raise ValidationError("Missing required fields", {name: ["This field is required"]})
        return None
    return value


def one_of(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"Invalid {field}", {field: [f"Must be one of: {', '.join(allowed)}"]})
    return value


def as_number(value, field, minimum=None, maximum=None, integer=False):
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}", {field: ["Must be a number"]})
    try:
        number = int(value) if integer else float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}", {field: ["Must be a number"]})
    if integer and float(value) != number:
        raise ValidationError(f"Invalid {field}", {field: ["Must be a whole number"]})
    if minimum is not None and number < minimum:
        raise ValidationError(f"Invalid {field}", {field: [f"Must be at least {minimum}"]})
    if maximum is not None and number > maximum:
        raise ValidationError(f"Invalid {field}", {field: [f"Must be at most {maximum}"]})
    return number


def as_list(value, field):
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"Invalid {field}", {field: ["Must be a list"]})
    return value


def parse_date(value, field):
    if value is None or value == '':
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid {field}", {field: ["Expected a date in YYYY-MM-DD format"]})


def parse_datetime(value, field):
    """Parse an ISO-8601 timestamp into naive UTC."""
    if value is None or value == '':
        return None
    text = str(value).strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid {field}", {field: ["Expected an ISO-8601 date-time"]})
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_time(value, field):
    """Validate an HH:MM clock time and return it normalised."""
    text = str(value or '').strip()
    try:
        parsed = datetime.strptime(text, "%H:%M")
    except ValueError:
        raise ValidationError(f"Invalid {field}", {field: ["Expected a time in HH:MM format"]})
    return parsed.strftime("%H:%M")
