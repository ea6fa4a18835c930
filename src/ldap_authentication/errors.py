"""ldap-authentication error hierarchy.

All errors raised by authenticate() inherit from LdapError. Each subclass
carries a stable ``code`` so callers can tell credential problems apart from
directory misconfiguration and from connectivity problems without matching on
message text:

  ConfigurationError        -- options missing or misused, no network I/O done
  LdapConnectionError       -- host unreachable, timeout, STARTTLS failure
  InvalidCredentialsError   -- the user's bind was rejected
  AdminBindError            -- the admin account's bind was rejected
  UserNotFoundError         -- admin search found no entry for the username
  UserDetailsNotFoundError  -- user bind worked but the self-search found nothing
  SearchError               -- the directory answered a search with an error
"""


class LdapError(Exception):
    code: str = "LDAP_ERROR"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(LdapError):
    code = "CONFIGURATION_ERROR"


class LdapConnectionError(LdapError):
    code = "CONNECTION_ERROR"


class SearchError(LdapError):
    code = "SEARCH_FAILED"


class LdapAuthenticationError(LdapError):
    code = "AUTHENTICATION_ERROR"


class InvalidCredentialsError(LdapAuthenticationError):
    code = "INVALID_CREDENTIALS"

    def __init__(
        self,
        message: str = "",
        result_code: int | None = None,
        description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.result_code = result_code
        self.description = description


class AdminBindError(InvalidCredentialsError):
    code = "ADMIN_BIND_FAILED"


class UserNotFoundError(LdapAuthenticationError):
    code = "USER_NOT_FOUND"


class UserDetailsNotFoundError(LdapAuthenticationError):
    code = "USER_DETAILS_NOT_FOUND"
