"""Testing utilities for portastore."""

from .fixtures import (
    Account,
    Address,
    Document,
    HookedRecord,
    Note,
    Profile,
    Status,
    User,
)
from .mocks import (
    FailingKeyValueProvider,
    NoFilterVectorProvider,
    NoTTLKeyValueProvider,
    RecordingKeyValueProvider,
)

__all__ = [
    "Account",
    "Address",
    "Document",
    "HookedRecord",
    "Note",
    "Profile",
    "Status",
    "User",
    "FailingKeyValueProvider",
    "NoFilterVectorProvider",
    "NoTTLKeyValueProvider",
    "RecordingKeyValueProvider",
]
