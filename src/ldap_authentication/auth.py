"""authenticate(): the bind / search / bind flows.

The flow is picked from the options:

  verify_user_exists    -> admin bind, search the user and (optionally) its
                           groups on that admin connection. No password check.
  admin_dn given        -> admin bind + user search, admin connection released,
                           bind as the found DN with user_password, then
                           (optionally) a group search on a fresh admin
                           connection.
  otherwise (user_dn)   -> bind as user_dn. Without username_attribute and
                           user_search_base the result is just True; otherwise
                           the user's own entry and groups are read on that
                           same connection.

All options are checked before anything touches the network. Each bind gets
its own connection, released before the phase ends on success and failure
alike. There are no retries: the first failure ends the call.

The ldap3 calls block, so the whole flow runs in a worker thread.
"""

import asyncio
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from ldap3 import Connection
from pydantic import ValidationError

from ldap_authentication.config import settings
from ldap_authentication.connection import bind, bound_connection, release
from ldap_authentication.errors import (
    AdminBindError,
    ConfigurationError,
    InvalidCredentialsError,
    UserDetailsNotFoundError,
    UserNotFoundError,
)
from ldap_authentication.filters import validate_attribute_name
from ldap_authentication.schemas import AuthenticationOptions, DirectoryEntry
from ldap_authentication.search import search_groups, search_user

log = logging.getLogger(__name__)


# ── validation ─────────────────────────────────────────────────────────────


def _parse_options(options: AuthenticationOptions | Mapping[str, Any]) -> AuthenticationOptions:
    if isinstance(options, AuthenticationOptions):
        return options
    try:
        return AuthenticationOptions.model_validate(options)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid authentication options: {exc}") from exc


def _require(value: Any, message: str) -> None:
    if not value:
        raise ConfigurationError(message)


def _check_attribute(name: str | None, field: str) -> None:
    if name is None:
        return
    try:
        validate_attribute_name(name)
    except ValueError as exc:
        raise ConfigurationError(f"{field}: {exc}") from exc


def _validate(options: AuthenticationOptions) -> None:
    _require(options.ldap_opts.url, "ldap_opts.url must be provided")

    if options.admin_dn or options.admin_password:
        _require(
            options.admin_dn and options.admin_password,
            "admin_dn and admin_password must be both provided",
        )
    if options.verify_user_exists:
        _require(options.admin_dn, "verify_user_exists requires admin_dn and admin_password")

    if options.admin_dn:
        _require(options.user_search_base, "Admin mode user_search_base must be provided")
        _require(options.username_attribute, "Admin mode username_attribute must be provided")
        _require(options.username, "Admin mode username must be provided")
    else:
        _require(options.user_dn, "admin_dn/admin_password or user_dn must be provided")
        if options.wants_user_search:
            _require(options.username, "username must be provided to search user details")

    if not options.verify_user_exists:
        _require(options.user_password, "user_password must be provided")

    _check_attribute(options.username_attribute, "username_attribute")
    for name in options.attributes or []:
        _check_attribute(name, "attributes")
    if options.wants_groups:
        _check_attribute(options.group_member_attribute, "group_member_attribute")


# ── phases ─────────────────────────────────────────────────────────────────


@contextmanager
def _admin_connection(options: AuthenticationOptions) -> Iterator[Connection]:
    try:
        conn = bind(options.admin_dn, options.admin_password, options.starttls, options.ldap_opts)
    except InvalidCredentialsError as exc:
        raise AdminBindError(
            f"Admin bind failed: {exc.message}",
            result_code=exc.result_code,
            description=exc.description,
        ) from exc
    try:
        yield conn
    finally:
        release(conn)


def _find_user(conn: Connection, options: AuthenticationOptions) -> DirectoryEntry | None:
    return search_user(
        conn,
        options.user_search_base,
        options.username_attribute,
        options.username,
        options.attributes,
    )


def _attach_groups(conn: Connection, options: AuthenticationOptions, user: DirectoryEntry) -> None:
    user.groups = search_groups(
        conn,
        options.groups_search_base,
        user,
        options.group_class,
        options.group_member_attribute or settings.LDAP_GROUP_MEMBER_ATTRIBUTE,
        options.group_member_user_attribute or settings.LDAP_GROUP_MEMBER_USER_ATTRIBUTE,
    )


def _user_not_found(options: AuthenticationOptions) -> UserNotFoundError:
    log.debug(
        "Admin did not find user (%s=%s) under %s",
        options.username_attribute, options.username, options.user_search_base,
    )
    return UserNotFoundError("user not found or username_attribute is wrong")


# ── flows ──────────────────────────────────────────────────────────────────


def _verify_user_exists(options: AuthenticationOptions) -> DirectoryEntry:
    with _admin_connection(options) as conn:
        user = _find_user(conn, options)
        if user is None:
            raise _user_not_found(options)
        if options.wants_groups:
            _attach_groups(conn, options, user)
    return user


def _authenticate_with_admin(options: AuthenticationOptions) -> DirectoryEntry:
    with _admin_connection(options) as conn:
        user = _find_user(conn, options)
    if user is None:
        raise _user_not_found(options)

    # the user's own bind is the password check
    with bound_connection(user.bind_dn, options.user_password, options.starttls, options.ldap_opts):
        log.debug("Password verified for %s", user.dn)

    if options.wants_groups:
        with _admin_connection(options) as conn:
            _attach_groups(conn, options, user)
    return user


def _authenticate_with_user(options: AuthenticationOptions) -> DirectoryEntry | bool:
    with bound_connection(
        options.user_dn, options.user_password, options.starttls, options.ldap_opts
    ) as conn:
        if not options.wants_user_search:
            if options.wants_groups:
                log.debug("Group lookup needs username_attribute and user_search_base, skipping")
            return True

        user = search_user(
            conn,
            options.user_search_base,
            options.username_attribute,
            options.username,
            options.attributes,
        )
        if user is None:
            log.debug(
                "%s bound, but (%s=%s) was not found under %s",
                options.user_dn, options.username_attribute, options.username,
                options.user_search_base,
            )
            raise UserDetailsNotFoundError(
                "user logged in, but user details could not be found. "
                "Probably username_attribute or user_search_base is wrong?"
            )
        if options.wants_groups:
            _attach_groups(conn, options, user)
    return user


def _run(options: AuthenticationOptions) -> DirectoryEntry | bool:
    if options.verify_user_exists:
        return _verify_user_exists(options)
    if options.admin_dn:
        return _authenticate_with_admin(options)
    return _authenticate_with_user(options)


async def authenticate(options: AuthenticationOptions | Mapping[str, Any]) -> DirectoryEntry | bool:
    """Authenticate a user against the directory described by ``options``.

    Returns the user's DirectoryEntry (with ``groups`` filled in when a
    group lookup was requested), or True for a direct bind without a user
    search. Raises a subclass of LdapError on failure.
    """
    opts = _parse_options(options)
    _validate(opts)
    return await asyncio.to_thread(_run, opts)
