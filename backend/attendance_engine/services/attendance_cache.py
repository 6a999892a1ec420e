"""Short-lived Redis cache for session attendance views."""
import json
from typing import Dict, Optional

import redis
from flask import current_app

EXTENSION_KEY = 'attendance_cache'


class AttendanceCache:
    """Read-through cache in front of the roster query; never authoritative."""

    def __init__(self, client=None, ttl_seconds: int = 5):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @classmethod
    def from_config(cls, config) -> 'AttendanceCache':
        client = None
        if config.get('REDIS_URL'):
            client = redis.Redis.from_url(config['REDIS_URL'], decode_responses=True)
        return cls(client, config.get('ATTENDANCE_CACHE_SECONDS', 5))

    @staticmethod
    def key(session_id: int) -> str:
        return f"attendance:session:{session_id}"

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, session_id: int) -> Optional[Dict]:
        if not self.enabled:
            return None
        try:
            raw = self.client.get(self.key(session_id))
        except redis.RedisError:
            current_app.logger.warning('Attendance cache read failed for session %s', session_id)
            return None
        return json.loads(raw) if raw else None

    def set(self, session_id: int, payload: Dict) -> None:
        if not self.enabled:
            return
        try:
            self.client.setex(self.key(session_id), self.ttl_seconds, json.dumps(payload))
        except redis.RedisError:
            current_app.logger.warning('Attendance cache write failed for session %s', session_id)

    def invalidate(self, session_id: int) -> None:
        if not self.enabled:
            return
        try:
            self.client.delete(self.key(session_id))
        except redis.RedisError:
            current_app.logger.warning('Attendance cache invalidation failed for session %s', session_id)


def get_cache() -> AttendanceCache:
    """Cache bound to the current app."""
    return current_app.extensions[EXTENSION_KEY]
