import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.sitehost.modules.templates.service import sync_catalog_from_store
from app.sitehost.modules.templates.store import TemplateStore
from scripts._db_utils import resolve_database_url, script_session


def seed_only(*, database_url: str | None = None, templates_dir: str | None = None) -> list[str]:
    """
    Register a catalog row for every template archive on disk that has none.
    Idempotent; existing rows are never modified.
    """
    db_url = resolve_database_url(database_url)
    tdir = (templates_dir or os.environ.get("TEMPLATES_DIR") or str(Path.cwd() / "allscripts")).strip()

    store = TemplateStore(tdir)
    with script_session(db_url) as s:
        created = sync_catalog_from_store(s, store)
        names = [t.name for t in created]

    print(f"Template catalog synced from {tdir}.")
    print(f"Registered {len(names)} new template(s): {', '.join(names) or '(none)'}")
    return names


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
