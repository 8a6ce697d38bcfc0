"""Host data model and persistence."""

from hostinit.host.store import HostStore, UserStore
from hostinit.host.types import (
    BootstrapMethod,
    Distro,
    Host,
    HostStatus,
    ProvisionOptions,
    User,
)

__all__ = [
    "BootstrapMethod",
    "Distro",
    "Host",
    "HostStatus",
    "HostStore",
    "ProvisionOptions",
    "User",
    "UserStore",
]
