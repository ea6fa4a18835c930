"""Directory connections: open, optionally upgrade with STARTTLS, bind, unbind.

A connection is never shared. bind() hands back a freshly bound
ldap3.Connection and the caller must release() it; bound_connection() wraps
both so the unbind happens on every exit path. When bind() itself fails, the
half-open connection is released before the error propagates.

Timeouts are given in milliseconds (like the request options) and converted
to the seconds ldap3 expects.
"""

import logging
import ssl
from collections.abc import Iterator
from contextlib import contextmanager

from ldap3 import NONE, SIMPLE, Connection, Server, Tls
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPException,
    LDAPPasswordIsMandatoryError,
    LDAPStartTLSError,
)

from ldap_authentication.config import settings
from ldap_authentication.errors import (
    ConfigurationError,
    InvalidCredentialsError,
    LdapConnectionError,
    LdapError,
)
from ldap_authentication.schemas import LdapOptions, TlsOptions
from ldap_authentication.utils import escape_dn

log = logging.getLogger(__name__)

_MS_PER_SECOND = 1000


def _build_tls(tls_options: TlsOptions | None) -> Tls:
    opts = tls_options or TlsOptions()
    return Tls(
        validate=ssl.CERT_REQUIRED if opts.reject_unauthorized else ssl.CERT_NONE,
        ca_certs_file=opts.ca_certs_file,
        ca_certs_data=opts.ca_certs_data,
    )


def _create_connection(dn: str, password: str | None, ldap_opts: LdapOptions) -> Connection:
    connect_timeout = ldap_opts.connect_timeout or settings.LDAP_CONNECT_TIMEOUT_MS
    receive_timeout = ldap_opts.timeout or settings.LDAP_RECEIVE_TIMEOUT_MS
    try:
        srv = Server(
            ldap_opts.url,
            connect_timeout=connect_timeout / _MS_PER_SECOND,
            tls=_build_tls(ldap_opts.tls_options),
            get_info=NONE,
        )
        return Connection(
            srv,
            user=dn,
            password=password,
            authentication=SIMPLE,
            auto_bind=False,
            raise_exceptions=False,
            receive_timeout=receive_timeout / _MS_PER_SECOND if receive_timeout else None,
        )
    except LDAPException as exc:
        raise ConfigurationError(f"Invalid connection options for {ldap_opts.url}: {exc}") from exc


def _open(conn: Connection, starttls: bool, url: str | None) -> None:
    try:
        conn.open()
        if starttls and not conn.start_tls():
            raise LdapConnectionError(f"STARTTLS negotiation with {url} failed: {conn.result}")
    except LDAPStartTLSError as exc:
        raise LdapConnectionError(f"STARTTLS negotiation with {url} failed: {exc}") from exc
    except LDAPException as exc:
        raise LdapConnectionError(f"Could not connect to {url}: {exc}") from exc


def _simple_bind(conn: Connection, dn: str) -> None:
    try:
        bound = conn.bind()
    except LDAPPasswordIsMandatoryError as exc:
        raise InvalidCredentialsError(
            f"Bind as {dn} rejected: a password is required", description=str(exc)
        ) from exc
    except LDAPCommunicationError as exc:
        raise LdapConnectionError(f"Connection lost during bind as {dn}: {exc}") from exc
    except LDAPException as exc:
        raise LdapError(f"Bind as {dn} failed: {exc}") from exc

    if not bound:
        result = conn.result or {}
        description = result.get("description")
        raise InvalidCredentialsError(
            f"Bind as {dn} rejected: {description}",
            result_code=result.get("result"),
            description=description,
        )


def release(conn: Connection) -> None:
    """Unbind ``conn``. Errors while unbinding are logged, not raised."""
    try:
        conn.unbind()
    except LDAPException as exc:
        log.debug("Error while unbinding: %s", exc)


def bind(dn: str, password: str | None, starttls: bool, ldap_opts: LdapOptions) -> Connection:
    """Open a connection to ``ldap_opts.url`` and simple-bind as ``dn``.

    Raises LdapConnectionError when the server cannot be reached, the connect
    times out or STARTTLS fails, and InvalidCredentialsError when the server
    rejects the bind.
    """
    conn = _create_connection(escape_dn(dn), password, ldap_opts)
    try:
        _open(conn, starttls, ldap_opts.url)
        _simple_bind(conn, dn)
    except Exception:
        release(conn)
        raise
    log.debug("Bind as %s succeeded", dn)
    return conn


@contextmanager
def bound_connection(
    dn: str,
    password: str | None,
    starttls: bool,
    ldap_opts: LdapOptions,
) -> Iterator[Connection]:
    conn = bind(dn, password, starttls, ldap_opts)
    try:
        yield conn
    finally:
        release(conn)
