"""Authenticate users against an LDAP directory.

    from ldap_authentication import authenticate

    user = await authenticate({
        "ldapOpts": {"url": "ldap://ldap.example.com"},
        "adminDn": "cn=read-only-admin,dc=example,dc=com",
        "adminPassword": "password",
        "userSearchBase": "dc=example,dc=com",
        "usernameAttribute": "uid",
        "username": "gauss",
        "userPassword": "password",
    })
"""

from ldap_authentication.auth import authenticate
from ldap_authentication.errors import (
    AdminBindError,
    ConfigurationError,
    InvalidCredentialsError,
    LdapAuthenticationError,
    LdapConnectionError,
    LdapError,
    SearchError,
    UserDetailsNotFoundError,
    UserNotFoundError,
)
from ldap_authentication.schemas import (
    AuthenticationOptions,
    DirectoryEntry,
    LdapOptions,
    TlsOptions,
)
from ldap_authentication.utils import decode_hex_values, escape_dn, parse_escaped_hex

__version__ = "1.0.0"

__all__ = [
    "AdminBindError",
    "AuthenticationOptions",
    "ConfigurationError",
    "DirectoryEntry",
    "InvalidCredentialsError",
    "LdapAuthenticationError",
    "LdapConnectionError",
    "LdapError",
    "LdapOptions",
    "SearchError",
    "TlsOptions",
    "UserDetailsNotFoundError",
    "UserNotFoundError",
    "authenticate",
    "decode_hex_values",
    "escape_dn",
    "parse_escaped_hex",
]
