import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=30.0, write=10.0, pool=30.0)


class ApiClientError(Exception):
    """A failed API call, carrying the server's status, message and field errors."""

    def __init__(self, status, message, fields=None):
        super().__init__(message)
        self.status = status
        self.message = message
        self.fields = fields or {}

    def is_unauthorized(self):
        return self.status == 401

    def is_forbidden(self):
        return self.status == 403

    def is_not_found(self):
        return self.status == 404

    def is_validation_error(self):
        return self.status in (400, 422)

    def is_conflict(self):
        return self.status == 409

    def is_network_error(self):
        return self.status == 0

    def user_message(self):
        if self.is_network_error():
            return "Unable to reach the server. Check your connection and try again."
        if self.is_unauthorized():
            return "Session expired. Please log in again."
        if self.is_forbidden():
            return "Access denied. You do not have permission to do this."
        if self.is_validation_error() and self.fields:
            return "; ".join(f"{name}: {', '.join(messages)}" for name, messages in self.fields.items())
        if self.status >= 500:
            return "Something went wrong on the server. Please try again later."
        return self.message or "Request failed"

    def __repr__(self):
        return f"<ApiClientError {self.status} {self.message!r}>"


def _error_from_response(response: httpx.Response) -> ApiClientError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get('error') or body.get('message') or response.reason_phrase
    return ApiClientError(response.status_code, message, body.get('fields'))


class ApiClient:
    """Session-authenticated JSON client for the school administration API.

    Pass `transport=httpx.WSGITransport(app=app)` to talk to an in-process app.
    """

    def __init__(self, base_url="http://localhost:5000", transport=None, timeout=DEFAULT_TIMEOUT):
        self._http = httpx.Client(base_url=base_url, transport=transport, timeout=timeout,
                                  headers={"Accept": "application/json"})

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def request(self, method, path, params=None, json=None):
        """Send a request and return the decoded JSON body, or None for 204."""
        if params:
            params = {k: _param(v) for k, v in params.items() if v is not None and v != ''}
        try:
            response = self._http.request(method, path, params=params or None, json=json)
        except httpx.HTTPError as exc:
            logger.warning(f"{method} {path} failed: {exc}")
            raise ApiClientError(0, str(exc)) from exc
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.debug(f"{method} {path} -> {error.status} {error.message}")
            raise error
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    def get(self, path, params=None):
        return self.request("GET", path, params=params)

    def post(self, path, json=None):
        return self.request("POST", path, json=json if json is not None else {})

    def put(self, path, json=None):
        return self.request("PUT", path, json=json if json is not None else {})

    def patch(self, path, json=None):
        return self.request("PATCH", path, json=json if json is not None else {})

    def delete(self, path):
        return self.request("DELETE", path)

    def login(self, username, password):
        return self.post("/api/auth/login", {"username": username, "password": password})['data']

    def logout(self):
        return self.post("/api/auth/logout")

    def me(self):
        return self.get("/api/auth/me")['data']


def _param(value):
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return value
