"""Log context variables shared by formatters."""

from contextvars import ContextVar
from typing import Dict, Optional

_test_run_id: ContextVar[Optional[str]] = ContextVar("test_run_id", default=None)
_component: ContextVar[Optional[str]] = ContextVar("component", default=None)
_vault: ContextVar[Optional[str]] = ContextVar("vault", default=None)


def set_log_context(
    test_run_id: Optional[str] = None,
    component: Optional[str] = None,
    vault: Optional[str] = None,
) -> None:
    """Set context values. Only provided values are updated."""
    if test_run_id is not None:
        _test_run_id.set(test_run_id)
    if component is not None:
        _component.set(component)
    if vault is not None:
        _vault.set(vault)


def get_log_context() -> Dict[str, Optional[str]]:
    """Get current context values."""
    return {
        "test_run_id": _test_run_id.get(),
        "component": _component.get(),
        "vault": _vault.get(),
    }


def clear_log_context() -> None:
    """Reset all context values."""
    _test_run_id.set(None)
    _component.set(None)
    _vault.set(None)
