"""Index status, removal and orphan sweeping."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

from codeseek.core.errors import CleanNotConfirmed
from codeseek.core.logging import get_logger
from codeseek.models.entities import IndexStats
from codeseek.store.sidecar import SidecarStore

logger = get_logger(__name__)

Confirm = Callable[[Path], bool]


class IndexMaintenance:
    """Structured maintenance operations; callers decide how to present them."""

    def status(self, root: Path) -> IndexStats:
        return SidecarStore(root).stats()

    def clean(self, root: Path, confirm: Confirm) -> bool:
        """Delete the whole index once ``confirm`` agrees; returns False if none existed."""
        store = SidecarStore(root)
        if not store.exists():
            return False
        if not confirm(store.root):
            raise CleanNotConfirmed(store.root)
        return store.clean()

    def clean_orphans(self, root: Path) -> int:
        removed = SidecarStore(root).clean_orphans()
        logger.debug("Orphan sweep of %s removed %s entries", root, removed)
        return removed


__all__ = ["IndexMaintenance", "Confirm"]
