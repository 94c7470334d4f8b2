"""Sample record types covering every field kind and hook role."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional


class Status(Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


@dataclass
class User:
    id: str = field(metadata={"constraints": "primarykey"})
    name: str = ""
    email: str = field(default="", metadata={"json": "mail", "constraints": "unique"})
    age: int = 0
    active: bool = True
    status: Status = Status.ACTIVE
    tags: list[str] = field(default_factory=list)
    nickname: Optional[str] = None
    created: Optional[datetime] = None


@dataclass
class Address:
    street: str = ""
    city: str = ""


@dataclass
class Profile:
    user_id: str = field(metadata={"db": "uid", "constraints": "primarykey"})
    avatar: bytes = b""
    scores: list[float] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    home: Address = field(default_factory=Address)
    work: Optional[Address] = None
    login_count: Optional[int] = None
    cache_key: str = field(default="", metadata={"db": "-"})


@dataclass
class Account:
    id: int = field(metadata={"constraints": "primarykey"})
    owner: str = field(default="", metadata={"constraints": "notnull"})
    balance: float = 0.0
    region: str = ""


@dataclass
class Document:
    """Vector metadata."""
    title: str = ""
    lang: str = ""
    views: int = 0
    tags: list[str] = field(default_factory=list)
    author: Optional[str] = None


@dataclass
class Note:
    """A record without a primary key."""
    text: str = ""


@dataclass
class HookedRecord:
    """Records every hook call in ``calls``; hooks named in ``fail`` raise.

    Both are class-level because delete hooks run on a zero value.
    """
    id: str = field(default="", metadata={"constraints": "primarykey"})
    value: int = 0

    calls: ClassVar[list] = []
    fail: ClassVar[set] = set()

    @classmethod
    def reset(cls) -> None:
        cls.calls = []
        cls.fail = set()

    def _record(self, phase: str) -> None:
        type(self).calls.append((phase, self.id))
        if phase in type(self).fail:
            raise ValueError(f"{phase} refused")

    def before_save(self):
        self._record("before_save")

    async def after_save(self):
        self._record("after_save")

    def after_load(self):
        self._record("after_load")

    async def before_delete(self):
        self._record("before_delete")

    def after_delete(self):
        self._record("after_delete")
