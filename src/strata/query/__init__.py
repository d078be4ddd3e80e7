"""Query description, type coercion and SQL translation."""

from strata.query.coercion import coerce, coerce_list, format_timestamp, parse_timestamp, utc_timestamp
from strata.query.spec import (
    RESERVED_KEYS,
    Fragment,
    FragmentKind,
    GenericQuery,
    Mode,
    Statement,
)
from strata.query.translator import NEVER, QueryTranslator, fill_primary_key

__all__ = [
    "coerce",
    "coerce_list",
    "format_timestamp",
    "parse_timestamp",
    "utc_timestamp",
    "RESERVED_KEYS",
    "Fragment",
    "FragmentKind",
    "GenericQuery",
    "Mode",
    "Statement",
    "NEVER",
    "QueryTranslator",
    "fill_primary_key",
]
