"""User and group searches on an already bound connection.

Both searches run with subtree scope and return DirectoryEntry objects whose
DN and attribute values have been passed through decode_hex_values.
Referrals are logged and ignored.
"""

import logging
from typing import Any

from ldap3 import ALL_ATTRIBUTES, SUBTREE, Connection
from ldap3.core.exceptions import LDAPCommunicationError, LDAPException
from ldap3.core.results import RESULT_NO_SUCH_OBJECT, RESULT_SUCCESS
from ldap3.utils.ciDict import CaseInsensitiveDict

from ldap_authentication.errors import LdapConnectionError, SearchError
from ldap_authentication.filters import AndFilter, EqualityFilter, Filter, OrFilter
from ldap_authentication.schemas import DirectoryEntry
from ldap_authentication.utils import decode_hex_values, parse_escaped_hex

log = logging.getLogger(__name__)


def _collapse(value: Any) -> Any:
    if isinstance(value, list) and len(value) == 1:
        return value[0]
    return value


def _to_entry(item: dict) -> DirectoryEntry | None:
    dn = item.get("dn")
    if not dn:
        return None
    raw = decode_hex_values(item.get("attributes") or {})
    attributes = CaseInsensitiveDict({name: _collapse(value) for name, value in raw.items()})
    return DirectoryEntry(dn=parse_escaped_hex(dn), attributes=attributes, raw_dn=dn)


def _run_search(
    conn: Connection,
    search_base: str,
    search_filter: Filter,
    attributes: list[str] | None = None,
) -> tuple[int | None, list[dict]]:
    """Execute one subtree search; return (result code, entry items)."""
    filter_text = str(search_filter)
    try:
        conn.search(
            search_base=search_base,
            search_filter=filter_text,
            search_scope=SUBTREE,
            attributes=attributes or ALL_ATTRIBUTES,
        )
    except LDAPCommunicationError as exc:
        raise LdapConnectionError(f"Connection lost while searching {search_base}: {exc}") from exc
    except LDAPException as exc:
        raise SearchError(f"Search {filter_text} under {search_base} failed: {exc}") from exc

    entries: list[dict] = []
    for item in conn.response or []:
        if item.get("type") == "searchResRef":
            log.warning("Ignoring referral %s returned for %s", item.get("uri"), filter_text)
        elif item.get("type") == "searchResEntry":
            entries.append(item)

    result_code = (conn.result or {}).get("result")
    log.debug("Search %s under %s: result=%s, %d entries", filter_text, search_base, result_code, len(entries))
    return result_code, entries


def _search_failed(conn: Connection, search_base: str, search_filter: Filter) -> SearchError:
    result = conn.result or {}
    return SearchError(
        f"Search {search_filter} under {search_base} failed: "
        f"{result.get('description')} ({result.get('result')})"
    )


def search_user(
    conn: Connection,
    search_base: str,
    username_attribute: str,
    username: str,
    attributes: list[str] | None = None,
) -> DirectoryEntry | None:
    """Find the entry whose ``username_attribute`` equals ``username``.

    Returns None when nothing matches, when the search base does not exist
    or when the first entry carries no DN. If several entries match, the
    first one returned by the server wins.
    """
    user_filter = EqualityFilter(username_attribute, username)
    result_code, items = _run_search(conn, search_base, user_filter, attributes)

    if result_code == RESULT_NO_SUCH_OBJECT:
        log.debug("Search base %s does not exist", search_base)
        return None
    if result_code != RESULT_SUCCESS:
        raise _search_failed(conn, search_base, user_filter)
    if not items:
        return None
    if len(items) > 1:
        log.warning(
            "%d entries match %s under %s, using %s",
            len(items), user_filter, search_base, items[0].get("dn"),
        )
    return _to_entry(items[0])


def search_groups(
    conn: Connection,
    groups_search_base: str,
    user: DirectoryEntry,
    group_class: str,
    group_member_attribute: str = "member",
    group_member_user_attribute: str = "dn",
) -> list[DirectoryEntry]:
    """Return the groups of class ``group_class`` that list ``user`` as a member.

    The membership test compares the group's ``group_member_attribute`` with
    the user's ``group_member_user_attribute`` (the DN by default). A user
    without that attribute cannot be a member of anything, so no search is
    sent and the result is empty.
    """
    if group_member_user_attribute.lower() == "dn":
        member_values = user.bind_dn
    else:
        member_values = user.get(group_member_user_attribute)
    if member_values is None or member_values == [] or member_values == "":
        log.debug("%s has no %s value, skipping group search", user.dn, group_member_user_attribute)
        return []
    if not isinstance(member_values, list):
        member_values = [member_values]

    group_filter = AndFilter(
        EqualityFilter("objectClass", group_class),
        OrFilter(*(EqualityFilter(group_member_attribute, str(v)) for v in member_values)),
    )
    result_code, items = _run_search(conn, groups_search_base, group_filter)
    if result_code != RESULT_SUCCESS:
        raise _search_failed(conn, groups_search_base, group_filter)

    groups = [entry for entry in map(_to_entry, items) if entry is not None]
    log.debug("%s is a member of %d groups under %s", user.dn, len(groups), groups_search_base)
    return groups
