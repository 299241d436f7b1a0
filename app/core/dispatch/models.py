# app/core/dispatch/models.py
"""
Dispatch domain types.

Recipients are read-only snapshots of the user directory.  Per-recipient
outcomes are an explicit tagged union (``Sent | Skipped | Failed``) so a
batch never relies on ``None`` to mean "nothing happened".
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Union

UNKNOWN = "Unknown"

# Skip reasons
SKIP_EXCLUDED = "excluded-sender"
SKIP_ROLE_MISMATCH = "role-mismatch"
SKIP_NO_TOKEN = "no-token"


@dataclass(frozen=True)
class Recipient:
    """A user record as seen by the dispatcher"""
    id: str
    group_code: str | None = None
    role: str | None = None
    inline_token: str | None = None


@dataclass(frozen=True)
class LocationContext:
    """Last known position; each coordinate is a float or ``UNKNOWN``"""
    latitude: float | str = UNKNOWN
    longitude: float | str = UNKNOWN

    @property
    def latitude_text(self) -> str:
        return str(self.latitude)

    @property
    def longitude_text(self) -> str:
        return str(self.longitude)

    @property
    def is_known(self) -> bool:
        return self.latitude != UNKNOWN and self.longitude != UNKNOWN


@dataclass(frozen=True)
class NotificationPayload:
    """Push content for one recipient"""
    title: str
    body: str
    data: dict[str, str] = field(default_factory=dict)

    def with_location(self, location: LocationContext) -> NotificationPayload:
        lat, lon = location.latitude_text, location.longitude_text
        return replace(
            self,
            body=f"{self.body} (Lat: {lat}, Lon: {lon})",
            data={**self.data, "latitude": lat, "longitude": lon},
        )


@dataclass(frozen=True)
class Sent:
    recipient_id: str
    receipt: str


@dataclass(frozen=True)
class Skipped:
    recipient_id: str
    reason: str


@dataclass(frozen=True)
class Failed:
    recipient_id: str
    error: str


DispatchResult = Union[Sent, Skipped, Failed]


@dataclass(frozen=True)
class GroupSelector:
    """
    Audience of a group dispatch.

    ``group_code`` queries the circle; when it is None, ``role`` is the
    query itself (role-only broadcast).  With a group code, ``role`` narrows
    the circle and non-matching members are skipped as role mismatches.
    """
    group_code: str | None = None
    role: str | None = None
    exclude_id: str | None = None
    include_location: bool = False

    @classmethod
    def for_circle(
        cls,
        group_code: str,
        sender_id: str | None,
        *,
        role: str | None = None,
        include_location: bool = False,
    ) -> GroupSelector:
        return cls(
            group_code=group_code,
            role=role or None,
            exclude_id=sender_id,
            include_location=include_location,
        )

    @classmethod
    def for_admin(
        cls,
        admin: Recipient,
        *,
        role: str | None = None,
        include_location: bool = False,
    ) -> GroupSelector:
        return cls(
            group_code=admin.group_code,
            role=role or None,
            exclude_id=admin.id,
            include_location=include_location,
        )

    @classmethod
    def for_role(cls, role: str, *, include_location: bool = True) -> GroupSelector:
        return cls(role=role, include_location=include_location)

    @property
    def is_role_query(self) -> bool:
        return self.group_code is None


@dataclass
class BatchResult:
    """All per-recipient outcomes of one group dispatch, in audience order"""
    results: list[DispatchResult] = field(default_factory=list)
    message: str | None = None

    @property
    def sent(self) -> list[Sent]:
        return [r for r in self.results if isinstance(r, Sent)]

    @property
    def skipped(self) -> list[Skipped]:
        return [r for r in self.results if isinstance(r, Skipped)]

    @property
    def failed(self) -> list[Failed]:
        return [r for r in self.results if isinstance(r, Failed)]

    def skip_count(self, reason: str) -> int:
        return sum(1 for r in self.skipped if r.reason == reason)

    def summary(self) -> dict[str, int]:
        return {
            "sent": len(self.sent),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "total": len(self.results),
        }
