"""LdapSettings -- library-wide defaults.

All values are read via pydantic-settings from the environment (or a local
.env file). Per-request options always win over these defaults.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class LdapSettings(BaseSettings):
    """Defaults applied when an authentication request leaves a field unset."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Timeouts, in milliseconds
    LDAP_CONNECT_TIMEOUT_MS: int = 5000
    LDAP_RECEIVE_TIMEOUT_MS: int | None = None

    # Group lookup
    LDAP_GROUP_MEMBER_ATTRIBUTE: str = "member"
    LDAP_GROUP_MEMBER_USER_ATTRIBUTE: str = "dn"


settings = LdapSettings()
