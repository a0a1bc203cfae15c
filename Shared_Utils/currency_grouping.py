"""Per-currency grouping and totals shared by the matcher and the event service."""

from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, TypeVar

from Config.constants_core import ZERO
from Shared_Utils.precision import add

T = TypeVar('T')


def group_by_currency(items: Iterable[T], currency_of: Callable[[T], str] = None) -> Dict[str, List[T]]:
    """
    Bucket items by currency, preserving the incoming order inside each bucket.

    Callers rely on that: a bucket built from a descending list stays descending.
    """
    currency_of = currency_of or (lambda item: item.currency)
    buckets: Dict[str, List[T]] = OrderedDict()
    for item in items:
        buckets.setdefault(currency_of(item), []).append(item)
    return buckets


def total_by_currency(items: Iterable[T], quantity_of: Callable[[T], Decimal],
                      currency_of: Callable[[T], str] = None) -> Dict[str, Decimal]:
    """Exact per-currency sum of ``quantity_of(item)``."""
    currency_of = currency_of or (lambda item: item.currency)
    totals: Dict[str, Decimal] = {}
    for item in items:
        currency = currency_of(item)
        totals[currency] = add(totals.get(currency, ZERO), quantity_of(item))
    return totals
