"""
Dependency precondition check, run before anything imports the Graph stack.
"""

from __future__ import annotations

import importlib.util
from dataclasses import dataclass, field

# import name → distribution name on the package index
REQUIRED_MODULES = {
    "msal": "msal",
    "httpx": "httpx",
    "cryptography": "cryptography",
    "requests": "requests",
}


@dataclass
class DependencyCheck:
    """Outcome of the dependency precondition check."""
    missing: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing

    @property
    def install_hint(self) -> str:
        return f"pip install {' '.join(self.missing)}"


def check_dependencies(modules: dict[str, str] | None = None) -> DependencyCheck:
    """Report which required client libraries cannot be imported."""
    modules = REQUIRED_MODULES if modules is None else modules
    missing = [
        dist for mod, dist in modules.items()
        if importlib.util.find_spec(mod) is None
    ]
    return DependencyCheck(missing=missing)
