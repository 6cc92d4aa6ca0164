"""
Filesystem subtrees backing user websites.

Each website owns ``<root>/<user_id>/<subdomain>``. The root is injected so the
whole tree can be redirected (tests use a temporary directory).

Clear and delete are best-effort: they never raise for filesystem errors and
report what happened through :class:`RemovalResult` instead.
"""
from __future__ import annotations

import enum
import logging
import os
import shutil
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def site_path(root: Path, user_id: int | str, subdomain: str) -> Path:
    """Deterministic location of a website subtree."""
    return Path(root) / str(user_id) / subdomain


class RemovalStatus(str, enum.Enum):
    REMOVED = "removed"
    PARTIAL = "partial"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class RemovalResult:
    status: RemovalStatus
    path: Path
    cause: OSError | None = None

    @property
    def ok(self) -> bool:
        return self.status is not RemovalStatus.PARTIAL


def _rmtree(path: Path) -> OSError | None:
    """Remove a file or directory tree; return the error instead of raising."""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except FileNotFoundError:
        return None
    except OSError as e:
        return e
    return None


class SiteDirectoryManager:
    def __init__(self, root: Path | str):
        self.root = Path(root)

    def path_for(self, user_id: int | str, subdomain: str) -> Path:
        return site_path(self.root, user_id, subdomain)

    def create_subtree(self, user_id: int | str, subdomain: str) -> Path:
        p = self.path_for(user_id, subdomain)
        p.mkdir(parents=True, exist_ok=True)
        logger.info("Created website directory %s", p)
        return p

    def exists(self, user_id: int | str, subdomain: str) -> bool:
        return self.path_for(user_id, subdomain).is_dir()

    def clear_subtree(self, user_id: int | str, subdomain: str) -> RemovalResult:
        """Remove every child of the subtree, keeping the subtree root."""
        p = self.path_for(user_id, subdomain)
        if not p.is_dir():
            logger.info("Nothing to clear; website directory missing: %s", p)
            return RemovalResult(RemovalStatus.NOT_FOUND, p)

        first_error: OSError | None = None
        try:
            children = list(p.iterdir())
        except OSError as e:
            logger.warning("Failed to list website directory %s: %s", p, e)
            return RemovalResult(RemovalStatus.PARTIAL, p, e)
        for child in children:
            err = _rmtree(child)
            if err is not None and first_error is None:
                first_error = err
        if first_error is not None:
            logger.warning("Website directory %s only partially cleared: %s", p, first_error)
            return RemovalResult(RemovalStatus.PARTIAL, p, first_error)
        return RemovalResult(RemovalStatus.REMOVED, p)

    def delete_subtree(self, user_id: int | str, subdomain: str) -> RemovalResult:
        p = self.path_for(user_id, subdomain)
        if not p.exists():
            return RemovalResult(RemovalStatus.NOT_FOUND, p)
        err = _rmtree(p)
        if err is not None:
            logger.warning("Website directory %s only partially deleted: %s", p, err)
            return RemovalResult(RemovalStatus.PARTIAL, p, err)
        logger.info("Deleted website directory %s", p)
        return RemovalResult(RemovalStatus.REMOVED, p)

    def replace_subtree(self, user_id: int | str, subdomain: str, populate: Callable[[Path], None]) -> Path:
        """
        Build new content in a staging sibling, then swap it into place.

        ``populate`` receives the empty staging directory. If it raises, the
        staging directory is removed and the live subtree is left untouched.
        """
        live = self.path_for(user_id, subdomain)
        live.parent.mkdir(parents=True, exist_ok=True)
        token = uuid.uuid4().hex[:12]
        staging = live.parent / f".{subdomain}.staging-{token}"
        trash = live.parent / f".{subdomain}.trash-{token}"

        staging.mkdir()
        try:
            populate(staging)
        except BaseException:
            err = _rmtree(staging)
            if err is not None:
                logger.warning("Failed to remove staging directory %s: %s", staging, err)
            raise

        try:
            if live.exists():
                os.replace(live, trash)
        except OSError:
            _rmtree(staging)
            raise
        try:
            os.replace(staging, live)
        except OSError:
            if trash.exists():
                os.replace(trash, live)
            _rmtree(staging)
            raise

        if trash.exists():
            err = _rmtree(trash)
            if err is not None:
                logger.warning("Failed to remove previous website content %s: %s", trash, err)
        return live

    def list_tree(self, user_id: int | str, subdomain: str) -> dict[str, Any] | None:
        p = self.path_for(user_id, subdomain)
        if not p.is_dir():
            return None
        return _read_tree(p)


def _read_tree(directory: Path) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for entry in sorted(directory.iterdir(), key=lambda e: e.name):
        if entry.is_dir():
            result[entry.name] = _read_tree(entry)
        else:
            st = entry.stat()
            result[entry.name] = {
                "size": st.st_size,
                "modified": datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
            }
    return result


def directories_from_config(config: dict) -> SiteDirectoryManager:
    root = config.get("SITES_ROOT") or os.path.join(os.getcwd(), "user_websites")
    return SiteDirectoryManager(root)
