"""
Backend-neutral query description.
A Query collects filters, ordering and limits; each backend translates it
(SQL WHERE clause for the local backend, PostgREST params for the hosted one).
"""

from collections import namedtuple

Filter = namedtuple('Filter', ['column', 'op', 'value'])

OPERATORS = ('eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'in', 'is', 'or')


class Query:
    """
    Chainable query builder.

    Usage:
        Query().eq('rental_status', 'available').gte('daily_rate', 50).order('daily_rate')
    """

    def __init__(self):
        self.columns = '*'
        self.filters = []
        self.ordering = []
        self.row_limit = None

    def _add(self, column, op, value):
        self.filters.append(Filter(column, op, value))
        return self

    def select(self, *columns):
        self.columns = ','.join(columns) if columns else '*'
        return self

    def eq(self, column, value):
        return self._add(column, 'eq', value)

    def neq(self, column, value):
        return self._add(column, 'neq', value)

    def gt(self, column, value):
        return self._add(column, 'gt', value)

    def gte(self, column, value):
        return self._add(column, 'gte', value)

    def lt(self, column, value):
        return self._add(column, 'lt', value)

    def lte(self, column, value):
        return self._add(column, 'lte', value)

    def in_(self, column, values):
        return self._add(column, 'in', tuple(values))

    def is_(self, column, value):
        """Match NULL (value=None) or a boolean."""
        return self._add(column, 'is', value)

    def or_(self, *filters):
        """
        Match rows satisfying any of the given filters.

        Args:
            *filters: Filter tuples, e.g. Filter('email', 'eq', 'a@b.c')
        """
        for flt in filters:
            if flt.op not in OPERATORS:
                raise ValueError(f'Unknown operator: {flt.op}')
        return self._add(None, 'or', tuple(filters))

    def order(self, column, desc=False):
        self.ordering.append((column, desc))
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def __repr__(self):
        return f'Query(filters={self.filters!r}, ordering={self.ordering!r}, limit={self.row_limit!r})'


def matches(row: dict, flt: Filter) -> bool:
    """
    Evaluate a single filter against an in-memory row.
    Used by the change feed and by tests; backends evaluate filters natively.
    """
    if flt.op == 'or':
        return any(matches(row, sub) for sub in flt.value)

    value = row.get(flt.column)
    if flt.op == 'is':
        return value is flt.value or value == flt.value
    if flt.op == 'in':
        return value in flt.value
    if value is None:
        return False
    if flt.op == 'eq':
        return value == flt.value
    if flt.op == 'neq':
        return value != flt.value
    if flt.op == 'gt':
        return value > flt.value
    if flt.op == 'gte':
        return value >= flt.value
    if flt.op == 'lt':
        return value < flt.value
    if flt.op == 'lte':
        return value <= flt.value
    raise ValueError(f'Unknown operator: {flt.op}')
