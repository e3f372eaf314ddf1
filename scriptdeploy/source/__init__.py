from .checkout import resolve_checkout  # noqa: F401
from .trigger import describe_mismatch, is_triggered, trigger_from_env  # noqa: F401
