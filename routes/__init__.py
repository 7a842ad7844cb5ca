"""
Route modules for the Shutter API

Routers reach shared services through get_deps() instead of importing
server globals, so they can be mounted on a test app with fakes.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class RouteDependencies:
    """Services shared by all routers"""
    shutter_service: Optional[object] = None
    capture_sink: Optional[object] = None


_deps = RouteDependencies()


def set_deps(**services) -> RouteDependencies:
    """Register services (called from server startup and tests)"""
    for name, service in services.items():
        if not hasattr(_deps, name):
            raise AttributeError(f"Unknown dependency: {name}")
        setattr(_deps, name, service)
    return _deps


def get_deps() -> RouteDependencies:
    return _deps
