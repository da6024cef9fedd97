"""Redaction of personal data before records are stored."""

from typing import Any, Callable, Iterable, Optional

# JSON pointer prefixes of fields that can hold personal data
PERSONAL_DATA_PATHS = (
    "/barcode",
    "/externalSystemId",
    "/personal",
    "/username",
)


def possible_personal_data(path: str) -> bool:
    """Return True if the value at this JSON pointer may identify a person."""
    for prefix in PERSONAL_DATA_PATHS:
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def redacted_value(value: Any) -> Any:
    """Type-appropriate replacement for a scalar value."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return 0
    if isinstance(value, str):
        return ""
    return value


class AnonymizationPolicy:
    """
    Decides which tables are anonymized and which values are redacted.

    Args:
        tables: Names of the tables to anonymize
        classifier: Predicate over JSON pointer paths
    """

    def __init__(self, tables: Iterable[str] = (),
                 classifier: Callable[[str], bool] = possible_personal_data):
        self.tables = frozenset(tables)
        self.classifier = classifier

    def is_active(self, table_name: str) -> bool:
        return table_name in self.tables

    def redact(self, path: str, value: Any) -> Any:
        if self.classifier(path):
            return redacted_value(value)
        return value

    def for_table(self, table_name: str) -> Optional["AnonymizationPolicy"]:
        """Return self if table_name is anonymized, else None."""
        return self if self.is_active(table_name) else None
