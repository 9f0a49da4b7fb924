# api_utils.py: React-Admin list/item helpers shared by the billing routers
import json
from typing import Any, Callable, Iterable
from fastapi import Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from tortoise.queryset import QuerySet

DEFAULT_RANGE = (0, 9)
MAX_PAGE = 500  # activity history is capped at the same size


def _loads(raw: str | None, default: Any) -> Any:
    try:
        return json.loads(raw) if raw else default
    except (TypeError, ValueError):
        return default


# ---------- React-Admin param parsing ----------
def parse_range(range_param: str | None) -> tuple[int, int]:
    """
    '[start,end]' (inclusive) -> (skip, limit). Anything unreadable falls back to
    the first page; the page never exceeds MAX_PAGE rows.
    """
    value = _loads(range_param, DEFAULT_RANGE)
    try:
        start, end = (int(x) for x in value)
    except (TypeError, ValueError):
        start, end = DEFAULT_RANGE
    skip = max(0, start)
    limit = max(1, min(MAX_PAGE, end - skip + 1))
    return skip, limit


def parse_sort(sort_param: str | None, allowed_fields: Iterable[str]) -> str:
    """'["field","DESC"]' -> '-field'; unknown fields sort by id."""
    allowed = set(allowed_fields) | {"id"}
    value = _loads(sort_param, ("id", "ASC"))
    try:
        field, order = value
    except (TypeError, ValueError):
        field, order = ("id", "ASC")
    field = field if isinstance(field, str) and field in allowed else "id"
    prefix = "-" if str(order).upper() == "DESC" else ""
    return f"{prefix}{field}"


def parse_filter(filter_param: str | None) -> dict:
    value = _loads(filter_param, {})
    return value if isinstance(value, dict) else {}


# ---------- Query helpers ----------
def as_int(v):
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def as_status_list(v) -> list[str]:
    """RA sends either a single value or a list for multi-select filters."""
    values = v if isinstance(v, (list, tuple)) else [v]
    return [str(x).upper() for x in values if x not in (None, "")]


def apply_filter_map(qs: QuerySet, filters: dict, fmap: dict[str, Callable[[QuerySet, Any], QuerySet]]) -> QuerySet:
    for key, fn in fmap.items():
        if filters.get(key) is not None:
            qs = fn(qs, filters[key])
    return qs


def _content_range(skip: int, count: int, total: int) -> dict:
    return {"Content-Range": f"items {skip}-{skip + max(count - 1, 0)}/{total}"}


async def paginate_and_respond(
    qs: QuerySet,
    skip: int,
    limit: int,
    order: str,
    to_pydantic: Callable[[Any], Any],
) -> JSONResponse:
    total = await qs.count()
    rows = await qs.order_by(order).offset(skip).limit(limit)
    content = [to_pydantic(row).model_dump(mode="json") for row in rows]
    return JSONResponse(status_code=206, content=content, headers=_content_range(skip, len(rows), total))


def respond_plain_list(items: list[dict], skip: int, limit: int) -> JSONResponse:
    """Pages an already materialised list (activity history)."""
    page = items[skip : skip + limit]
    return JSONResponse(
        status_code=206,
        content=jsonable_encoder(page),
        headers=_content_range(skip, len(page), len(items)),
    )


def respond_item(model_obj: Any, to_pydantic: Callable[[Any], Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=to_pydantic(model_obj).model_dump(mode="json"))


# ---------- RA params container ----------
class RAListParams:
    def __init__(
        self,
        range: str = Query("[0,9]"),
        sort: str = Query('["id","ASC"]'),
        filter: str = Query("{}"),
    ):
        self.skip, self.limit = parse_range(range)
        self.filters = parse_filter(filter)
        self.sort = sort
