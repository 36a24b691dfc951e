"""Heuristics the fix passes rely on.

These are approximations of how the CAPI documentation is written, not
exact rules, so each one is a small named function that can be tested and
corrected on its own.
"""

import re
from collections.abc import Iterable

PATH_TEMPLATE_RE = re.compile(r"\{[^}]+\}")
TRAILING_TEMPLATE_RE = re.compile(r"\{[^}]+\}$")


def is_parameterized_path(path: str) -> bool:
    """True when the path ends in a ``{param}`` placeholder (a single resource).

    Nested collections such as ``/v3/spaces/{guid}/users`` are not parameterized.
    """
    return bool(TRAILING_TEMPLATE_RE.search(path))


def is_list_operation(operation: dict) -> bool:
    """A list endpoint is summarised as "List ..." or described as retrieving all."""
    summary = (operation.get("summary") or "").strip()
    description = (operation.get("description") or "").lower()
    return summary.lower().startswith("list") or "retrieve all" in description


def is_exempt_from_security(path: str, exempt_paths: Iterable[str]) -> bool:
    return path in set(exempt_paths)


def is_success_status(status: str) -> bool:
    return str(status).startswith("2")


def is_snake_case(name: str) -> bool:
    """Parameter names: lower snake case, optionally with a ``[op]`` suffix."""
    return bool(re.fullmatch(r"[a-z][a-z0-9_.]*(\[[a-z_.]+\])?", name))
