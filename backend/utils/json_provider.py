# utils/json_provider.py
from datetime import date, datetime
from flask.json.provider import DefaultJSONProvider

class CustomJSONProvider(DefaultJSONProvider):
    """Custom JSON provider: ISO timestamps for datetimes, YYYY-MM-DD for dates"""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, date):
            return obj.strftime('%Y-%m-%d')
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        return super().default(obj)
