from flask import request
from services.errors import ValidationError

MAX_LIMIT = 100


def get_page_args(default_limit=10):
    """Read and check ?page= and ?limit= from the query string."""
    errors = []
    try:
        page = int(request.args.get('page', 1))
        if page < 1:
            raise ValueError
    except ValueError:
        errors.append({"field": "page", "message": "Page must be a positive integer"})
        page = None

    try:
        limit = int(request.args.get('limit', default_limit))
        if not 1 <= limit <= MAX_LIMIT:
            raise ValueError
    except ValueError:
        errors.append({"field": "limit", "message": f"Limit must be between 1 and {MAX_LIMIT}"})
        limit = None

    if errors:
        raise ValidationError(errors)
    return page, limit


def paginate(query, serializer=None, default_limit=10):
    """Paginate a query; returns (items, pagination dict)."""
    page, limit = get_page_args(default_limit)
    result = query.paginate(page=page, per_page=limit, error_out=False)
    serializer = serializer or (lambda obj: obj.to_dict())
    items = [serializer(obj) for obj in result.items]
    return items, {
        "current_page": page,
        "total_pages": result.pages,
        "total_items": result.total,
        "items_per_page": limit,
    }
