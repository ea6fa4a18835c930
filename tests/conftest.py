"""Shared fixtures: an in-memory directory standing in for ldap3.

The ``directory`` fixture patches ldap3.Server and ldap3.Connection inside
ldap_authentication.connection. Every connection created during a test is
recorded so tests can check that each one was unbound exactly once.

Searches are answered from a table keyed by the exact filter string, which
also pins down how filters are serialized.
"""

from unittest.mock import MagicMock, patch

import pytest
from ldap3.core.exceptions import (
    LDAPPasswordIsMandatoryError,
    LDAPSocketOpenError,
    LDAPStartTLSError,
)

ADMIN_DN = "cn=read-only-admin,dc=example,dc=com"
BASE_DN = "dc=example,dc=com"
GAUSS_DN = "uid=gauss,dc=example,dc=com"
EINSTEIN_DN = "uid=einstein,dc=example,dc=com"
SMITH_DN = "CN=Smith\\, John,OU=Staff,DC=example,DC=com"
YANFA_DN = "uid=yanfa,dc=example,dc=com"
ANN_DN = "uid=ann,ou=Sales\\2C Marketing,dc=example,dc=com"
MATHEMATICIANS_DN = "ou=mathematicians,dc=example,dc=com"
MARKETING_DN = "ou=marketing,dc=example,dc=com"
SCIENTISTS_DN = "ou=scientists,dc=example,dc=com"
PASSWORD = "password"


class FakeConnection:
    """Mimics the parts of ldap3.Connection the library uses."""

    def __init__(self, directory: "FakeDirectory", server, user=None, password=None, **kwargs) -> None:
        self.directory = directory
        self.server = server
        self.user = user
        self.password = password
        self.kwargs = kwargs
        self.closed = True
        self.bound = False
        self.authenticated = False
        self.tls_started = False
        self.bind_calls = 0
        self.unbind_calls = 0
        self.searches: list[tuple[str, str, object]] = []
        self.result: dict = {}
        self.response: list[dict] = []

    def open(self) -> None:
        if self.directory.unreachable:
            raise LDAPSocketOpenError("socket connection error while opening: timed out")
        self.closed = False

    def start_tls(self) -> bool:
        if self.directory.starttls_error:
            raise LDAPStartTLSError("wrap socket error: certificate verify failed")
        self.tls_started = True
        return True

    def bind(self) -> bool:
        self.bind_calls += 1
        if not self.password:
            raise LDAPPasswordIsMandatoryError("password is mandatory in simple bind")
        if self.directory.passwords.get(self.user.lower()) == self.password:
            self.bound = True
            self.authenticated = True
            self.result = {"result": 0, "description": "success"}
            return True
        self.result = {"result": 49, "description": "invalidCredentials"}
        return False

    def search(self, search_base, search_filter, search_scope=None, attributes=None, **kwargs) -> bool:
        self.searches.append((search_base, search_filter, attributes))
        if search_base.lower() in self.directory.missing_bases:
            self.result = {"result": 32, "description": "noSuchObject"}
            self.response = []
            return False
        if self.directory.search_error:
            self.result = {"result": 50, "description": "insufficientAccessRights"}
            self.response = []
            return False

        self.response = []
        for dn in self.directory.searches.get(search_filter, []):
            if not dn.lower().endswith(search_base.lower()):
                continue
            attrs = self.directory.entries[dn]
            if attributes and attributes != "*":
                wanted = {name.lower() for name in attributes}
                attrs = {k: v for k, v in attrs.items() if k.lower() in wanted}
            self.response.append({"type": "searchResEntry", "dn": dn, "attributes": dict(attrs)})
        self.response.extend(self.directory.referrals)
        self.result = {"result": 0, "description": "success"}
        return bool(self.response)

    def unbind(self) -> bool:
        self.unbind_calls += 1
        self.closed = True
        self.bound = False
        return True


class FakeDirectory:
    def __init__(self) -> None:
        self.unreachable = False
        self.starttls_error = False
        self.search_error = False
        self.missing_bases: set[str] = set()
        self.referrals: list[dict] = []
        self.connections: list[FakeConnection] = []
        self.passwords = {
            ADMIN_DN: PASSWORD,
            GAUSS_DN: PASSWORD,
            EINSTEIN_DN: PASSWORD,
            SMITH_DN.lower(): PASSWORD,
            ANN_DN.lower(): PASSWORD,
        }
        self.entries = {
            GAUSS_DN: {
                "uid": ["gauss"],
                "cn": ["Carl Friedrich Gauss"],
                "mail": ["gauss@ldap.example.com"],
                "objectClass": ["inetOrgPerson", "organizationalPerson", "person", "top"],
            },
            EINSTEIN_DN: {
                "uid": ["einstein"],
                "cn": ["Albert Einstein"],
                "mail": ["einstein@ldap.example.com"],
                "telephoneNumber": [],
            },
            YANFA_DN: {
                "uid": ["yanfa"],
                "ou": ["\\e7\\a0\\94\\e5\\8f\\91A\\e9\\83\\a8"],
            },
            MATHEMATICIANS_DN: {
                "ou": ["mathematicians"],
                "uniqueMember": [GAUSS_DN, "uid=euler,dc=example,dc=com"],
                "objectClass": ["groupOfUniqueNames", "top"],
            },
            ANN_DN: {
                "uid": ["ann"],
                "cn": ["Ann Lee"],
            },
            MARKETING_DN: {
                "ou": ["marketing"],
                "uniqueMember": [ANN_DN],
                "objectClass": ["groupOfUniqueNames", "top"],
            },
            SCIENTISTS_DN: {
                "ou": ["scientists"],
                "uniqueMember": [EINSTEIN_DN, GAUSS_DN],
                "objectClass": ["groupOfUniqueNames", "top"],
            },
        }
        self.searches = {
            "(uid=gauss)": [GAUSS_DN],
            "(uid=einstein)": [EINSTEIN_DN],
            "(uid=yanfa)": [YANFA_DN],
            "(uid=ann)": [ANN_DN],
            f"(&(objectClass=groupOfUniqueNames)(uniqueMember={GAUSS_DN}))": [
                MATHEMATICIANS_DN,
                SCIENTISTS_DN,
            ],
            f"(&(objectClass=groupOfUniqueNames)(uniqueMember={EINSTEIN_DN}))": [SCIENTISTS_DN],
            # backslash in the assertion value is escaped as \5c
            "(&(objectClass=groupOfUniqueNames)(uniqueMember=uid=ann,ou=Sales\\5c2C Marketing,dc=example,dc=com))": [
                MARKETING_DN,
            ],
        }

    def connect(self, server, **kwargs) -> FakeConnection:
        conn = FakeConnection(self, server, **kwargs)
        self.connections.append(conn)
        return conn

    @property
    def bound_users(self) -> list[str]:
        return [c.user for c in self.connections if c.authenticated]

    def assert_all_released(self) -> None:
        assert self.connections, "no connection was opened"
        for conn in self.connections:
            assert conn.unbind_calls == 1, f"connection for {conn.user} unbound {conn.unbind_calls} times"


@pytest.fixture
def directory():
    fake = FakeDirectory()
    server_cls = MagicMock(name="Server")
    with (
        patch("ldap_authentication.connection.Server", server_cls),
        patch("ldap_authentication.connection.Connection", side_effect=fake.connect),
    ):
        fake.server_cls = server_cls
        yield fake
