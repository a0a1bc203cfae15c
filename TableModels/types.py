from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

from Config.constants_core import QUANTITY_SCALE
from Shared_Utils.precision import exceeds_scale, format_quantity, to_decimal


class ExactDecimal(TypeDecorator):
    """
    Quantity column that always round-trips as an exact Decimal.

    NUMERIC(38, 18) on PostgreSQL. SQLite has no exact numeric storage, so the
    value is kept as its fixed-point string there.
    """

    impl = Numeric(38, QUANTITY_SCALE)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'sqlite':
            return dialect.type_descriptor(String(80))
        return dialect.type_descriptor(Numeric(38, QUANTITY_SCALE, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = to_decimal(value)
        if exceeds_scale(value):
            # NUMERIC(38, 18) would silently round this
            raise ValueError(f"Quantity {value} has more than {QUANTITY_SCALE} fractional digits")
        if dialect.name == 'sqlite':
            return format_quantity(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
