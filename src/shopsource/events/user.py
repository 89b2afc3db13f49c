"""Events emitted by the User aggregate."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar

from shopsource.events.base import DomainEvent, ValueObject
from shopsource.events.registry import register_event


class UserAddressData(ValueObject):
    """Postal address stored on a user."""

    id: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    is_default: bool = False
    label: str | None = None


class UserAddressChanges(ValueObject):
    """Partial address update; ``None`` means unchanged."""

    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    is_default: bool | None = None
    label: str | None = None


class UserEvent(DomainEvent):
    aggregate_type: ClassVar[str] = "User"


@register_event
class UserRegistered(UserEvent):
    email: str
    first_name: str
    last_name: str
    password_hash: str


@register_event
class UserProfileUpdated(UserEvent):
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    avatar: str | None = None


@register_event
class UserPasswordChanged(UserEvent):
    password_hash: str
    changed_at: datetime


@register_event
class UserEmailVerified(UserEvent):
    verified_at: datetime


@register_event
class UserDeactivated(UserEvent):
    reason: str | None = None
    deactivated_at: datetime


@register_event
class UserReactivated(UserEvent):
    reactivated_at: datetime


@register_event
class UserLoginAttempted(UserEvent):
    success: bool
    ip_address: str | None = None
    user_agent: str | None = None
    attempted_at: datetime


@register_event
class UserAddressAdded(UserEvent):
    address_id: str
    address: UserAddressData


@register_event
class UserAddressUpdated(UserEvent):
    address_id: str
    address: UserAddressChanges


@register_event
class UserAddressRemoved(UserEvent):
    address_id: str
