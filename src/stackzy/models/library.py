"""Pydantic models for the library catalog."""

import json
from collections.abc import Iterable, Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from stackzy.exceptions import CatalogUnavailableError


class Library(BaseModel):
    """A known third-party library, as listed in the catalog."""

    model_config = ConfigDict(frozen=True)

    id: int
    """Catalog identifier."""

    name: str
    """Human-readable library name (e.g., 'OkHttp')."""

    category: str
    """Library category (e.g., 'Networking')."""

    package_name: str
    """Root package of the library (e.g., 'com.squareup.okhttp3')."""

    website: str | None = None
    """Project homepage."""


_LIBRARY_LIST = TypeAdapter(list[Library])


class LibraryCatalog:
    """Read-only lookup of known libraries keyed by package name.

    Insertion order is preserved so that filtered results come back in
    catalog order.
    """

    def __init__(self, libraries: Iterable[Library]):
        self._by_package: dict[str, Library] = {}
        for library in libraries:
            self._by_package.setdefault(library.package_name, library)

    @classmethod
    def from_json(cls, path: Path) -> "LibraryCatalog":
        """Load a catalog from a JSON array of library objects.

        Raises:
            CatalogUnavailableError: If the file is unreadable or malformed.
        """
        try:
            data = json.loads(path.read_text())
            libraries = _LIBRARY_LIST.validate_python(data)
        except ValidationError as exc:
            raise CatalogUnavailableError(
                f"{path}: {exc.error_count()} invalid entries"
            ) from exc
        except (OSError, ValueError) as exc:
            raise CatalogUnavailableError(f"{path}: {exc}") from exc
        return cls(libraries)

    def __len__(self) -> int:
        return len(self._by_package)

    def __iter__(self) -> Iterator[Library]:
        return iter(self._by_package.values())

    def __contains__(self, package_name: object) -> bool:
        return package_name in self._by_package

    def get(self, package_name: str) -> Library | None:
        return self._by_package.get(package_name)

    def filter_packages(self, package_names: Iterable[str]) -> list[Library]:
        """Return catalog entries whose package name is in ``package_names``."""
        wanted = set(package_names)
        return [lib for lib in self if lib.package_name in wanted]

    def match(self, namespace: str) -> Library | None:
        """Find the library owning ``namespace`` (exact or sub-package match)."""
        parts = namespace.split(".")
        # Longest prefix wins, so nested library roots resolve to the inner one
        for end in range(len(parts), 0, -1):
            library = self.get(".".join(parts[:end]))
            if library is not None:
                return library
        return None
