"""Unbounded reads over Protean DAOs."""

PAGE_SIZE = 100


def fetch_all(dao, **filters):
    """Every row matching ``filters``, read page by page."""
    rows = []
    offset = 0
    while True:
        query = dao.query
        if filters:
            query = query.filter(**filters)
        page = query.offset(offset).limit(PAGE_SIZE).all().items
        rows.extend(page)
        if len(page) < PAGE_SIZE:
            return rows
        offset += PAGE_SIZE
