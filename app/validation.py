"""
Request validation for the roadmap API

Each parser takes JSON-decoded input and returns a typed request object, or
raises ValidationException naming the offending field. Nothing here touches
the store or the network.
"""
import re

from constants import SEARCH_LIMIT_SENTINEL
from exceptions import ValidationException
from schemas import SearchFilters, SyncRequest

YEAR_MONTH_PATTERN = re.compile(r"^[0-9]{4}-(0[1-9]|1[0-2])\Z")

# Accepted camelCase spellings
SEARCH_FIELD_ALIASES = {
    "dateFrom": "date_from",
    "dateTo": "date_to",
    "cloudInstances": "cloud_instances",
}

# Largest integer SQLite can bind
MAX_SQL_INTEGER = 2**63 - 1

SEARCH_FIELDS = {
    "query",
    "products",
    "platforms",
    "cloud_instances",
    "status",
    "date_from",
    "date_to",
    "limit",
    "offset",
}


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _optional_string(data, name):
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationException(f"Invalid parameter: {name} (must be a string)", field=name)
    return value.strip() or None


def _optional_tag_list(data, name):
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValidationException(f"Invalid parameter: {name} (must be an array of non-empty strings)", field=name)
    # An empty list filters nothing
    return [v.strip() for v in value] or None


def _optional_year_month(data, name):
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str) or not YEAR_MONTH_PATTERN.match(value):
        raise ValidationException(f"Invalid parameter: {name} (must be YYYY-MM format)", field=name)
    return value


def parse_search_filters(raw, max_limit=SEARCH_LIMIT_SENTINEL):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationException("Search filters must be a JSON object")

    data = {}
    for key, value in raw.items():
        name = SEARCH_FIELD_ALIASES.get(key, key)
        if name not in SEARCH_FIELDS:
            raise ValidationException(f"Unknown parameter: {key}", field=key)
        data[name] = value

    limit = data.get("limit")
    if limit is not None and (not _is_int(limit) or not 1 <= limit <= max_limit):
        raise ValidationException(f"Invalid parameter: limit (must be an integer between 1 and {max_limit})", field="limit")

    offset = data.get("offset")
    if offset is not None and (not _is_int(offset) or not 0 <= offset <= MAX_SQL_INTEGER):
        raise ValidationException("Invalid parameter: offset (must be a non-negative integer)", field="offset")

    date_from = _optional_year_month(data, "date_from")
    date_to = _optional_year_month(data, "date_to")
    if date_from and date_to and date_from > date_to:
        raise ValidationException("Invalid date range: date_from must not be after date_to", field="date_from")

    return SearchFilters(
        query=_optional_string(data, "query"),
        products=_optional_tag_list(data, "products"),
        platforms=_optional_tag_list(data, "platforms"),
        cloud_instances=_optional_tag_list(data, "cloud_instances"),
        status=_optional_string(data, "status"),
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset or 0,
    )


def parse_search_args(args, max_limit=SEARCH_LIMIT_SENTINEL):
    """Adapt a query string (werkzeug MultiDict) to the JSON filter shape"""
    raw = {}
    for key in args.keys():
        name = SEARCH_FIELD_ALIASES.get(key, key)
        if name in ("products", "platforms", "cloud_instances"):
            values = []
            for value in args.getlist(key):
                values.extend(v for v in value.split(",") if v.strip())
            raw[key] = values
        elif name in ("limit", "offset"):
            value = args.get(key)
            if not re.fullmatch(r"-?[0-9]+", value or ""):
                raise ValidationException(f"Invalid parameter: {name} (must be an integer)", field=name)
            raw[key] = int(value)
        else:
            raw[key] = args.get(key)
    return parse_search_filters(raw, max_limit=max_limit)


def parse_feature_id(raw):
    """Positive integer id, from an int or a string of digits"""
    if isinstance(raw, str) and re.fullmatch(r"[0-9]+", raw.strip()):
        raw = int(raw.strip())
    if not _is_int(raw) or not 0 < raw <= MAX_SQL_INTEGER:
        raise ValidationException("Invalid required parameter: id (must be a positive integer)", field="id")
    return raw


def parse_sync_request(raw):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationException("Sync request must be a JSON object")

    unknown = set(raw) - {"force"}
    if unknown:
        key = sorted(unknown)[0]
        raise ValidationException(f"Unknown parameter: {key}", field=key)

    force = raw.get("force", False)
    if force is None:
        force = False
    if not isinstance(force, bool):
        raise ValidationException("Invalid parameter: force (must be a boolean)", field="force")
    return SyncRequest(force=force)
