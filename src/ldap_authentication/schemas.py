"""Request and result types for authenticate().

AuthenticationOptions accepts snake_case field names as well as the camelCase
names used by the JavaScript ldap-authentication package, so an options
object written for either can be passed in unchanged:

    AuthenticationOptions.model_validate({
        "ldapOpts": {"url": "ldap://ldap.example.com"},
        "userDn": "uid=einstein,dc=example,dc=com",
        "userPassword": "password",
    })
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ldap3.utils.ciDict import CaseInsensitiveDict
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

_OPTIONS_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


class TlsOptions(BaseModel):
    model_config = _OPTIONS_CONFIG

    reject_unauthorized: bool = True
    ca_certs_file: str | None = None
    ca_certs_data: str | None = None


class LdapOptions(BaseModel):
    model_config = _OPTIONS_CONFIG

    url: str | None = None
    tls_options: TlsOptions | None = None
    # milliseconds; None falls back to LdapSettings
    connect_timeout: int | None = None
    timeout: int | None = None

    @field_validator("connect_timeout", "timeout")
    @classmethod
    def validate_timeout(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            msg = "timeouts must be greater than 0 milliseconds"
            raise ValueError(msg)
        return v


class AuthenticationOptions(BaseModel):
    model_config = _OPTIONS_CONFIG

    ldap_opts: LdapOptions
    starttls: bool = False

    admin_dn: str | None = None
    admin_password: str | None = None

    user_dn: str | None = None
    user_password: str | None = None

    user_search_base: str | None = None
    username_attribute: str | None = None
    username: str | None = None
    attributes: list[str] | None = None

    verify_user_exists: bool = False

    groups_search_base: str | None = None
    group_class: str | None = None
    group_member_attribute: str | None = None
    group_member_user_attribute: str | None = None

    @property
    def wants_user_search(self) -> bool:
        return bool(self.username_attribute and self.user_search_base)

    @property
    def wants_groups(self) -> bool:
        return bool(self.groups_search_base and self.group_class)


@dataclass
class DirectoryEntry:
    """One entry returned by a search.

    Attribute values hold a single scalar when the server returned exactly
    one value and a list otherwise. Lookups are case-insensitive, and
    ``entry["dn"]`` returns the distinguished name.

    ``dn`` is the display form with UTF-8 byte escapes decoded. Binds and
    membership filters must use ``bind_dn``, which keeps escapes such as
    ``\\2C`` that protect special characters inside an RDN value.
    """

    dn: str
    attributes: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    groups: list[DirectoryEntry] | None = None
    # DN exactly as the server sent it, escapes intact
    raw_dn: str | None = None

    @property
    def bind_dn(self) -> str:
        return self.raw_dn or self.dn

    def __getitem__(self, name: str) -> Any:
        if name.lower() == "dn":
            return self.dn
        return self.attributes[name]

    def __contains__(self, name: object) -> bool:
        if isinstance(name, str) and name.lower() == "dn":
            return True
        return name in self.attributes

    def get(self, name: str, default: Any = None) -> Any:
        try:
            return self[name]
        except KeyError:
            return default

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"dn": self.dn}
        data.update((key, self.attributes[key]) for key in self.attributes)
        if self.groups is not None:
            data["groups"] = [group.to_dict() for group in self.groups]
        return data
