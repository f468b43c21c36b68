"""
tenancy/migrations.py
---------------------
Migration registry: discovers and orders the SQL scripts that define a
tenant namespace's target shape.

File naming:  <version>_<description>.sql
  - <version> is the substring before the first underscore and must parse as a
    non-negative integer; anything else is ignored.
  - Versions must be unique. Gaps are allowed.
  - Bodies are executed verbatim by the provisioner.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from ehr.core.logging import get_logger
from ehr.tenancy.errors import DuplicateMigrationVersionError, MigrationRegistryError

logger = get_logger(__name__)

MIGRATION_SUFFIX = ".sql"


@dataclass(frozen=True, order=True)
class Migration:
    version: int
    name: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def parse_version(filename: str) -> int | None:
    """Leading integer of ``<version>_<description>.sql``, or None."""
    prefix, sep, _ = filename.partition("_")
    if not sep or not prefix.isascii() or not prefix.isdigit():
        return None
    return int(prefix)


def discover_migrations(directory: Union[str, Path]) -> list[Migration]:
    """
    Return the migrations in ``directory`` sorted by ascending version.

    Raises:
        MigrationRegistryError: the directory is missing or unreadable.
        DuplicateMigrationVersionError: two files carry the same version.
    """
    root = Path(directory)
    try:
        entries = list(root.iterdir())
    except OSError as exc:
        raise MigrationRegistryError(
            f"Cannot read migrations directory '{root}': {exc}"
        ) from exc

    by_version: dict[int, Migration] = {}
    for entry in entries:
        if entry.is_dir() or entry.suffix != MIGRATION_SUFFIX:
            continue
        version = parse_version(entry.name)
        if version is None:
            logger.debug("Skipping unversioned migration file", file=entry.name)
            continue
        if version in by_version:
            raise DuplicateMigrationVersionError(version, by_version[version].path, entry)
        by_version[version] = Migration(version=version, name=entry.name, path=entry)

    return sorted(by_version.values())
