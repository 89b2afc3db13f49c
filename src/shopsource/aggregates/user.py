"""User account aggregate."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Self

from pydantic import BaseModel, Field

from shopsource.aggregates.base import DeclarativeAggregate
from shopsource.events.base import utc_now
from shopsource.events.user import (
    UserAddressAdded,
    UserAddressChanges,
    UserAddressData,
    UserAddressRemoved,
    UserAddressUpdated,
    UserDeactivated,
    UserEmailVerified,
    UserLoginAttempted,
    UserPasswordChanged,
    UserProfileUpdated,
    UserReactivated,
    UserRegistered,
)
from shopsource.handlers import handles

PROFILE_FIELDS = ("first_name", "last_name", "phone", "date_of_birth", "gender", "avatar")


class UserState(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    password_hash: str
    phone: str | None = None
    date_of_birth: str | None = None
    gender: str | None = None
    avatar: str | None = None
    is_active: bool = True
    email_verified: bool = False
    addresses: dict[str, UserAddressData] = Field(default_factory=dict)
    last_login_at: datetime | None = None
    failed_login_attempts: int = 0
    created_at: datetime
    updated_at: datetime

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


def _clear_defaults(addresses: dict[str, UserAddressData], keep: str) -> dict[str, UserAddressData]:
    return {
        address_id: address if address_id == keep or not address.is_default
        else address.model_copy(update={"is_default": False})
        for address_id, address in addresses.items()
    }


class User(DeclarativeAggregate[UserState]):
    """
    A registered customer account.

    All commands other than ``reactivate`` require an active user.
    At most one address is flagged as default.
    """

    aggregate_type = "User"

    @classmethod
    def register(
        cls,
        user_id: str,
        email: str,
        first_name: str,
        last_name: str,
        password_hash: str,
    ) -> Self:
        user = cls(user_id)
        user._require("@" in email, f"Invalid email address {email!r}")
        user._require(bool(password_hash), "Password hash is required")
        user._record(
            UserRegistered,
            email=email.lower(),
            first_name=first_name,
            last_name=last_name,
            password_hash=password_hash,
        )
        return user

    create = register

    def _require_active(self, action: str) -> UserState:
        state = self._require_state()
        self._require(state.is_active, f"Cannot {action} inactive user")
        return state

    # Commands

    def update_profile(self, **changes: Any) -> None:
        self._require_active("update profile of")
        unknown = set(changes) - set(PROFILE_FIELDS)
        self._require(not unknown, f"Unknown profile fields: {', '.join(sorted(unknown))}")
        self._record(UserProfileUpdated, **changes)

    def change_password(self, password_hash: str) -> None:
        self._require_active("change password of")
        self._require(bool(password_hash), "Password hash is required")
        self._record(UserPasswordChanged, password_hash=password_hash, changed_at=utc_now())

    def verify_email(self) -> None:
        self._require_active("verify email of")
        self._record(UserEmailVerified, verified_at=utc_now())

    def deactivate(self, reason: str | None = None) -> None:
        state = self._require_state()
        self._require(state.is_active, "User is already deactivated")
        self._record(UserDeactivated, reason=reason, deactivated_at=utc_now())

    def reactivate(self) -> None:
        state = self._require_state()
        self._require(not state.is_active, "User is already active")
        self._record(UserReactivated, reactivated_at=utc_now())

    def record_login(
        self,
        success: bool,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        self._require_active("record login for")
        self._record(
            UserLoginAttempted,
            success=success,
            ip_address=ip_address,
            user_agent=user_agent,
            attempted_at=utc_now(),
        )

    def add_address(self, address: UserAddressData | Mapping[str, Any]) -> None:
        state = self._require_active("add address to")
        if not isinstance(address, UserAddressData):
            address = UserAddressData.model_validate(address)
        self._require(address.id not in state.addresses, f"Address {address.id} already exists")
        self._record(UserAddressAdded, address_id=address.id, address=address)

    def update_address(self, address_id: str, changes: UserAddressChanges | Mapping[str, Any]) -> None:
        state = self._require_active("update address of")
        self._require(address_id in state.addresses, "Address not found")
        if not isinstance(changes, UserAddressChanges):
            changes = UserAddressChanges.model_validate(changes)
        self._record(UserAddressUpdated, address_id=address_id, address=changes)

    def remove_address(self, address_id: str) -> None:
        state = self._require_active("remove address of")
        self._require(address_id in state.addresses, "Address not found")
        self._record(UserAddressRemoved, address_id=address_id)

    # Queries

    @property
    def is_active(self) -> bool:
        return bool(self._state and self._state.is_active)

    @property
    def addresses(self) -> list[UserAddressData]:
        return list(self._state.addresses.values()) if self._state else []

    def get_default_address(self) -> UserAddressData | None:
        return next((a for a in self.addresses if a.is_default), None)

    # Reducers

    @handles(UserRegistered)
    def _registered(self, state: UserState | None, event: UserRegistered) -> UserState:
        return UserState(
            user_id=self.aggregate_id,
            email=event.email,
            first_name=event.first_name,
            last_name=event.last_name,
            password_hash=event.password_hash,
            created_at=event.timestamp,
            updated_at=event.timestamp,
        )

    @handles(UserProfileUpdated)
    def _profile_updated(self, state: UserState, event: UserProfileUpdated) -> UserState:
        changes = {f: getattr(event, f) for f in PROFILE_FIELDS if getattr(event, f) is not None}
        return state.model_copy(update={**changes, "updated_at": event.timestamp})

    @handles(UserPasswordChanged)
    def _password_changed(self, state: UserState, event: UserPasswordChanged) -> UserState:
        return state.model_copy(update={"password_hash": event.password_hash, "updated_at": event.timestamp})

    @handles(UserEmailVerified)
    def _email_verified(self, state: UserState, event: UserEmailVerified) -> UserState:
        return state.model_copy(update={"email_verified": True, "updated_at": event.timestamp})

    @handles(UserDeactivated)
    def _deactivated(self, state: UserState, event: UserDeactivated) -> UserState:
        return state.model_copy(update={"is_active": False, "updated_at": event.timestamp})

    @handles(UserReactivated)
    def _reactivated(self, state: UserState, event: UserReactivated) -> UserState:
        return state.model_copy(update={"is_active": True, "updated_at": event.timestamp})

    @handles(UserLoginAttempted)
    def _login_attempted(self, state: UserState, event: UserLoginAttempted) -> UserState:
        if event.success:
            update: dict[str, Any] = {"last_login_at": event.attempted_at, "failed_login_attempts": 0}
        else:
            update = {"failed_login_attempts": state.failed_login_attempts + 1}
        return state.model_copy(update={**update, "updated_at": event.timestamp})

    @handles(UserAddressAdded)
    def _address_added(self, state: UserState, event: UserAddressAdded) -> UserState:
        addresses = {**state.addresses, event.address_id: event.address}
        if event.address.is_default:
            addresses = _clear_defaults(addresses, keep=event.address_id)
        return state.model_copy(update={"addresses": addresses, "updated_at": event.timestamp})

    @handles(UserAddressUpdated)
    def _address_updated(self, state: UserState, event: UserAddressUpdated) -> UserState:
        current = state.addresses.get(event.address_id)
        if current is None:
            return state.model_copy(update={"updated_at": event.timestamp})
        changes = event.address.model_dump(exclude_none=True)
        addresses = {**state.addresses, event.address_id: current.model_copy(update=changes)}
        if event.address.is_default:
            addresses = _clear_defaults(addresses, keep=event.address_id)
        return state.model_copy(update={"addresses": addresses, "updated_at": event.timestamp})

    @handles(UserAddressRemoved)
    def _address_removed(self, state: UserState, event: UserAddressRemoved) -> UserState:
        addresses = {k: v for k, v in state.addresses.items() if k != event.address_id}
        return state.model_copy(update={"addresses": addresses, "updated_at": event.timestamp})
