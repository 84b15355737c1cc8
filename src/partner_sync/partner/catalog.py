"""Static registry of partner organizations known to the sync engine."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from src.partner_sync.config import CatalogEntry, Settings
from src.partner_sync.errors import ConfigError, UnknownOrganizationError


class ExternalCatalog:
    """Ordered, read-only code -> organization registry.

    Built from configuration rather than compiled in, so deployments can
    add or retire partner organizations without a code change.
    """

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._entries: dict[str, CatalogEntry] = {}
        for entry in entries:
            if entry.code in self._entries:
                raise ConfigError(
                    f"Duplicate organization code in catalog: {entry.code}",
                    organization_code=entry.code,
                )
            self._entries[entry.code] = entry

    @classmethod
    def from_settings(cls, settings: Settings) -> ExternalCatalog:
        return cls(settings.EXTERNAL_ORGANIZATIONS)

    def list_organizations(self) -> list[CatalogEntry]:
        return list(self._entries.values())

    def codes(self) -> list[str]:
        return list(self._entries)

    def get(self, code: str) -> CatalogEntry | None:
        return self._entries.get(code)

    def require(self, code: str) -> CatalogEntry:
        """Return the entry for ``code`` or raise UnknownOrganizationError."""
        entry = self._entries.get(code)
        if entry is None:
            raise UnknownOrganizationError(code)
        return entry

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
