"""Command handler of the user service."""

from shopsource.aggregates.user import User
from shopsource.commands.base import CommandHandler, handles_command
from shopsource.commands.models import (
    AddUserAddress,
    ChangeUserPassword,
    DeactivateUser,
    ReactivateUser,
    RecordUserLogin,
    RegisterUser,
    RemoveUserAddress,
    UpdateUserAddress,
    UpdateUserProfile,
    VerifyUserEmail,
)


class UserCommandHandler(CommandHandler[User]):
    @handles_command(RegisterUser)
    async def register_user(self, command: RegisterUser) -> User:
        return await self._create(
            command,
            command.user_id,
            lambda: User.register(
                user_id=command.user_id,
                email=command.email,
                first_name=command.first_name,
                last_name=command.last_name,
                password_hash=command.password_hash,
            ),
        )

    @handles_command(UpdateUserProfile)
    async def update_profile(self, command: UpdateUserProfile) -> User:
        changes = command.changes()
        return await self._update(command, command.user_id, lambda user: user.update_profile(**changes))

    @handles_command(ChangeUserPassword)
    async def change_password(self, command: ChangeUserPassword) -> User:
        return await self._update(command, command.user_id, lambda user: user.change_password(command.password_hash))

    @handles_command(VerifyUserEmail)
    async def verify_email(self, command: VerifyUserEmail) -> User:
        return await self._update(command, command.user_id, lambda user: user.verify_email())

    @handles_command(DeactivateUser)
    async def deactivate_user(self, command: DeactivateUser) -> User:
        return await self._update(command, command.user_id, lambda user: user.deactivate(command.reason))

    @handles_command(ReactivateUser)
    async def reactivate_user(self, command: ReactivateUser) -> User:
        return await self._update(command, command.user_id, lambda user: user.reactivate())

    @handles_command(RecordUserLogin)
    async def record_login(self, command: RecordUserLogin) -> User:
        return await self._update(
            command,
            command.user_id,
            lambda user: user.record_login(command.success, command.ip_address, command.user_agent),
        )

    @handles_command(AddUserAddress)
    async def add_address(self, command: AddUserAddress) -> User:
        return await self._update(command, command.user_id, lambda user: user.add_address(command.address))

    @handles_command(UpdateUserAddress)
    async def update_address(self, command: UpdateUserAddress) -> User:
        return await self._update(
            command,
            command.user_id,
            lambda user: user.update_address(command.address_id, command.changes),
        )

    @handles_command(RemoveUserAddress)
    async def remove_address(self, command: RemoveUserAddress) -> User:
        return await self._update(command, command.user_id, lambda user: user.remove_address(command.address_id))
