import logging

logger = logging.getLogger(__name__)


def freeze(filters):
    """Turn a filter dict into a hashable, order-independent key part."""
    if not filters:
        return ()
    return tuple(sorted((k, _freeze_value(v)) for k, v in filters.items() if v is not None and v != ''))


def _freeze_value(value):
    if isinstance(value, dict):
        return freeze(value)
    if isinstance(value, (list, tuple, set)):
        return tuple(_freeze_value(v) for v in value)
    return value


class QueryCache:
    """Memoises query results under tuple keys.

    Keys are hierarchical, e.g. ('hostel', 'rooms', 'list', filters), so
    invalidating ('hostel', 'rooms') drops every cached room query.
    """

    def __init__(self):
        self._entries = {}
        self.hits = 0
        self.misses = 0

    def fetch(self, key, loader):
        key = tuple(key)
        if key in self._entries:
            self.hits += 1
            return self._entries[key]
        self.misses += 1
        value = loader()
        self._entries[key] = value
        return value

    def get(self, key, default=None):
        return self._entries.get(tuple(key), default)

    def set(self, key, value):
        self._entries[tuple(key)] = value

    def invalidate(self, prefix):
        prefix = tuple(prefix)
        stale = [key for key in self._entries if key[:len(prefix)] == prefix]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} cached queries under {prefix}")
        return len(stale)

    def clear(self):
        self._entries.clear()

    def keys(self):
        return list(self._entries)

    def __contains__(self, key):
        return tuple(key) in self._entries

    def __len__(self):
        return len(self._entries)


class FeatureClient:
    """Base for the per-vertical clients: cached queries, invalidating mutations."""

    def __init__(self, api, cache=None):
        self.api = api
        self.cache = cache if cache is not None else QueryCache()

    def _query(self, key, path, params=None, envelope=False):
        def load():
            body = self.api.get(path, params=params)
            return body if envelope else body['data']
        return self.cache.fetch(key, load)

    def _mutate(self, method, path, payload=None, invalidate=()):
        if method == "DELETE":
            body = self.api.delete(path)
        else:
            body = self.api.request(method, path, json=payload if payload is not None else {})
        for prefix in invalidate:
            self.cache.invalidate(prefix)
        return body['data'] if body else None
