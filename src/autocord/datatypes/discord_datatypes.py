"""
Type-safe wrapper classes for Discord identifiers.

The engine itself treats identifiers as opaque strings (that is how they are
stored in rule definitions and state keys). These wrappers sit at the py-cord
boundary, where snowflakes have to be validated and turned back into integers
for API calls.
"""

from __future__ import annotations

from typing import Union

import discord


class Snowflake:
    """
    Base wrapper for a Discord snowflake ID.

    Discord snowflakes are 64-bit integers, but rule definitions and state keys
    carry them as strings. Subclasses only differ in their ``from_*``
    constructors and their repr.

    Example:
        >>> cid = ChannelID(123456789012345678)
        >>> cid.to_int()
        123456789012345678
        >>> str(ChannelID("123456789012345678"))
        '123456789012345678'
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "Snowflake"]) -> None:
        """
        Args:
            value: The snowflake as a string, int, or another wrapper.

        Raises:
            ValueError: If the value is not a valid integer snowflake.
        """
        if isinstance(value, Snowflake):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create {type(self).__name__} from bool")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            self._value = str(int(value.strip()))
        else:
            raise ValueError(f"Cannot create {type(self).__name__} from {type(value).__name__}: {value}")

    @classmethod
    def parse(cls, value: object) -> "Snowflake | None":
        """Return a wrapper for ``value`` or None when it is not a snowflake."""
        try:
            return cls(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None

    def to_int(self) -> int:
        """Convert to an integer for Discord API calls."""
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Snowflake):
            return type(self) is type(other) and self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


class UserID(Snowflake):
    """Snowflake of a Discord user or member."""

    __slots__ = ()

    @classmethod
    def from_user(cls, member: Union[discord.Member, discord.User]) -> "UserID":
        return cls(member.id)


class GuildID(Snowflake):
    """Snowflake of a Discord guild (server)."""

    __slots__ = ()

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        return cls(guild.id)


class ChannelID(Snowflake):
    """Snowflake of a guild channel or thread."""

    __slots__ = ()

    @classmethod
    def from_channel(cls, channel: Union[discord.abc.GuildChannel, discord.Thread]) -> "ChannelID":
        return cls(channel.id)


class RoleID(Snowflake):
    """Snowflake of a guild role."""

    __slots__ = ()

    @classmethod
    def from_role(cls, role: discord.Role) -> "RoleID":
        return cls(role.id)


class MessageID(Snowflake):
    """Snowflake of a message."""

    __slots__ = ()

    @classmethod
    def from_message(cls, message: discord.Message) -> "MessageID":
        return cls(message.id)
