"""Structured LDAP search filters.

Filters are built as small predicate trees and only turned into RFC 4515
text by str(). Assertion values are always escaped with ldap3's
escape_filter_chars, so user input can never change the shape of a filter:

    >>> str(AndFilter(EqualityFilter("objectClass", "group"),
    ...               EqualityFilter("member", "uid=a*,dc=example")))
    '(&(objectClass=group)(member=uid=a\\\\2a,dc=example))'
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from ldap3.utils.conv import escape_filter_chars


def validate_attribute_name(name: str) -> str:
    """Reject anything that is not a plain attribute description.

    Names, OIDs and options (``cn;lang-en``) are allowed. Attribute names
    are written into the filter text unescaped.
    """
    if not name or not all(ch.isalnum() or ch in "-;." for ch in name):
        raise ValueError(f"Invalid attribute name: {name!r}")
    return name


class Filter(ABC):
    @abstractmethod
    def __str__(self) -> str: ...


@dataclass(frozen=True)
class EqualityFilter(Filter):
    attribute: str
    value: str

    def __post_init__(self) -> None:
        validate_attribute_name(self.attribute)

    def __str__(self) -> str:
        return f"({self.attribute}={escape_filter_chars(str(self.value))})"


class _CompoundFilter(Filter):
    operator = ""

    def __init__(self, *filters: Filter) -> None:
        if not filters:
            raise ValueError(f"{type(self).__name__} needs at least one filter")
        self.filters = filters

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.filters == other.filters

    def __hash__(self) -> int:
        return hash((type(self), self.filters))

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.filters!r}"

    def __str__(self) -> str:
        if len(self.filters) == 1:
            return str(self.filters[0])
        return f"({self.operator}{''.join(str(f) for f in self.filters)})"


class AndFilter(_CompoundFilter):
    operator = "&"


class OrFilter(_CompoundFilter):
    operator = "|"
