"""
Helpers shared by unit and integration tests.
"""

from pathlib import Path

PROJECT_MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations"


def write_migrations(directory: Path, scripts: dict[str, str]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    for name, body in scripts.items():
        (directory / name).write_text(body, encoding="utf-8")
    return directory
