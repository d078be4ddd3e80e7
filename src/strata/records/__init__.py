"""Record engine, relation resolver and lifecycle hooks."""

from strata.records.engine import RecordEngine, add_join_from_keys, fold_dotted, post_process
from strata.records.hooks import (
    DefaultHooks,
    HookEvent,
    Notification,
    Observers,
    RecordHooks,
    call_hook,
)
from strata.records.resolver import JoinContext, RelationResolver, RowSource, normalize_join

__all__ = [
    "RecordEngine",
    "add_join_from_keys",
    "fold_dotted",
    "post_process",
    "DefaultHooks",
    "HookEvent",
    "Notification",
    "Observers",
    "RecordHooks",
    "call_hook",
    "JoinContext",
    "RelationResolver",
    "RowSource",
    "normalize_join",
]
