"""Offline structural repair for the file tree.

The checker scans the ``files`` table for orphans, children of non-folder
nodes and parent cycles, and repairs them in place. Each step commits its
own transaction; a failing statement aborts the run with StorageError and
leaves the steps already completed committed.

The checker issues multi-statement read-then-write repairs that are not
isolated from a concurrent writer. Run it while no FileService process is
using the same store.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from notepad_store.config import config
from notepad_store.exceptions import ErrorCode, StorageError

logger = logging.getLogger(__name__)

_SELECT_ORPHANS = text("""
    SELECT id, title FROM files
    WHERE parent_id != '' AND parent_id IS NOT NULL AND is_deleted = 0
      AND parent_id NOT IN (SELECT id FROM files)
""")

_DELETE_ORPHANS = text("""
    DELETE FROM files
    WHERE parent_id != '' AND parent_id IS NOT NULL AND is_deleted = 0
      AND parent_id NOT IN (SELECT id FROM files)
""")

_SELECT_NON_FOLDER_CHILDREN = text("""
    SELECT f.id, f.title, p.title
    FROM files f
    JOIN files p ON f.parent_id = p.id
    WHERE f.parent_id != '' AND p.is_folder = 0 AND f.is_deleted = 0
    ORDER BY f.id
""")

# Soft-deletes the node and its live descendants, like FileService.delete
_SOFT_DELETE_SUBTREE = text("""
    UPDATE files SET is_deleted = 1, deleted_at = :now, updated_at = :now
    WHERE is_deleted = 0 AND id IN (
        WITH RECURSIVE subtree(id) AS (
            SELECT id FROM files WHERE id = :node_id
            UNION
            SELECT f.id FROM files f JOIN subtree s ON f.parent_id = s.id
        )
        SELECT id FROM subtree
    )
""")

_SELECT_SELF_REFERENCES = text(
    "SELECT id, title FROM files WHERE id = parent_id ORDER BY id"
)

# Each two-hop pair is reported once, from its smaller id
_SELECT_TWO_HOP_CYCLES = text("""
    SELECT a.id, a.title, b.id, b.title
    FROM files a
    JOIN files b ON a.parent_id = b.id
    WHERE b.parent_id = a.id AND a.id < b.id
      AND a.is_deleted = 0 AND b.is_deleted = 0
    ORDER BY a.id
""")

_PROMOTE_TO_ROOT = text("UPDATE files SET parent_id = '' WHERE id = :node_id")


@dataclass
class RepairedNode:
    """One node touched by a repair step."""

    id: str
    title: str
    detail: str = ""


@dataclass
class IntegrityReport:
    """What a checker run fixed, per step."""

    orphans_removed: List[RepairedNode] = field(default_factory=list)
    orphan_passes: int = 0
    non_folder_children_deleted: List[RepairedNode] = field(default_factory=list)
    self_references_fixed: List[RepairedNode] = field(default_factory=list)
    two_hop_cycles_broken: List[RepairedNode] = field(default_factory=list)
    long_cycles_broken: List[RepairedNode] = field(default_factory=list)

    @property
    def total_fixed(self) -> int:
        return (
            len(self.orphans_removed)
            + len(self.non_folder_children_deleted)
            + len(self.self_references_fixed)
            + len(self.two_hop_cycles_broken)
            + len(self.long_cycles_broken)
        )

    def summary_lines(self) -> List[str]:
        """Human-readable lines, one per fix plus a per-step count."""
        lines = []
        for item in self.orphans_removed:
            lines.append(f"Deleted orphan item (parent missing): {item.title} ({item.id})")
        if self.orphans_removed:
            lines.append(
                f"Deleted {len(self.orphans_removed)} orphan items "
                f"in {self.orphan_passes} pass(es)"
            )
        for item in self.non_folder_children_deleted:
            lines.append(
                f"Deleted item under non-folder parent: {item.title} ({item.detail})"
            )
        if self.self_references_fixed:
            lines.append(
                f"Fixed {len(self.self_references_fixed)} items with "
                "self-referencing parent_id"
            )
        for item in self.two_hop_cycles_broken:
            lines.append(f"Broke loop: {item.title} <-> {item.detail}")
        for item in self.long_cycles_broken:
            lines.append(f"Broke long loop at {item.title}: {item.detail}")
        if not self.total_fixed:
            lines.append("No structural problems found")
        return lines

    def to_dict(self) -> Dict[str, object]:
        return {
            "orphans_removed": [n.id for n in self.orphans_removed],
            "orphan_passes": self.orphan_passes,
            "non_folder_children_deleted": [n.id for n in self.non_folder_children_deleted],
            "self_references_fixed": [n.id for n in self.self_references_fixed],
            "two_hop_cycles_broken": [n.id for n in self.two_hop_cycles_broken],
            "long_cycles_broken": [n.id for n in self.long_cycles_broken],
            "total_fixed": self.total_fixed,
        }


def find_cycles(parents: Dict[str, str]) -> List[List[str]]:
    """Find every parent-pointer cycle in an id -> parent_id mapping.

    Each node is visited once; a walk that reaches a node on its own
    current path has found a cycle, returned in walk order. Parents that
    are not keys of the mapping end the walk.
    """
    state: Dict[str, int] = {}  # 1 = on current path, 2 = done
    cycles = []
    for start in sorted(parents):
        if start in state:
            continue
        path: List[str] = []
        node: Optional[str] = start
        while node is not None and node in parents and node not in state:
            state[node] = 1
            path.append(node)
            node = parents[node] or None
        if node is not None and state.get(node) == 1:
            cycles.append(path[path.index(node):])
        for visited in path:
            state[visited] = 2
    return cycles


class TreeIntegrityChecker:
    """Batch repair of structural violations in the ``files`` table.

    ``run()`` performs, in order: orphan removal to a fixed point,
    non-folder-parent repair, self-reference repair, two-hop cycle repair
    and, when ``deep_cycles`` is on, repair of cycles of any length.
    """

    def __init__(
        self,
        engine: Engine,
        deep_cycles: Optional[bool] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.engine = engine
        self.deep_cycles = config.integrity_deep_cycles if deep_cycles is None else deep_cycles
        self._clock = clock

    def _step(self, name: str, func: Callable[[Connection], object]):
        """Run one repair step in its own transaction."""
        try:
            with self.engine.begin() as conn:
                return func(conn)
        except SQLAlchemyError as e:
            logger.error(f"Integrity step '{name}' failed: {e}")
            raise StorageError(
                f"Integrity repair step '{name}' failed",
                operation=name,
                code=ErrorCode.INTEGRITY_REPAIR_FAILED,
                original_error=e,
            ) from e

    def remove_orphans(self) -> Tuple[List[RepairedNode], int]:
        """Delete live nodes whose parent does not exist, until none remain.

        Removing one generation turns its children into orphans, so the
        loop repeats until a pass deletes nothing.

        Returns:
            Removed nodes and the number of passes, including the final
            empty one.
        """
        def remove_one_generation(conn: Connection) -> Tuple[List[RepairedNode], int]:
            orphans = [RepairedNode(row[0], row[1]) for row in conn.execute(_SELECT_ORPHANS)]
            return orphans, conn.execute(_DELETE_ORPHANS).rowcount

        removed: List[RepairedNode] = []
        passes = 0
        while True:
            passes += 1
            batch, affected = self._step("remove_orphans", remove_one_generation)
            if affected == 0:
                break
            for orphan in batch:
                logger.info(f"Deleted orphan item (parent missing): {orphan.title} ({orphan.id})")
            logger.info(f"Deleted {affected} orphan items (parent missing)")
            removed.extend(batch)
        return removed, passes

    def repair_non_folder_parents(self) -> List[RepairedNode]:
        """Soft-delete live nodes whose parent exists but is not a folder."""
        now = int(self._clock())

        def repair(conn: Connection) -> List[RepairedNode]:
            bad = [
                RepairedNode(row[0], row[1], f"parent: {row[2]}")
                for row in conn.execute(_SELECT_NON_FOLDER_CHILDREN)
            ]
            for item in bad:
                conn.execute(_SOFT_DELETE_SUBTREE, {"node_id": item.id, "now": now})
                logger.info(
                    f"Deleted item under non-folder parent: {item.title} ({item.id}, {item.detail})"
                )
            return bad

        return self._step("repair_non_folder_parents", repair)

    def repair_self_references(self) -> List[RepairedNode]:
        """Promote nodes that are their own parent to the top level."""
        def repair(conn: Connection) -> List[RepairedNode]:
            fixed = [RepairedNode(row[0], row[1]) for row in conn.execute(_SELECT_SELF_REFERENCES)]
            if fixed:
                conn.execute(text("UPDATE files SET parent_id = '' WHERE id = parent_id"))
                logger.info(f"Fixed {len(fixed)} items with self-referencing parent_id")
            return fixed

        return self._step("repair_self_references", repair)

    def repair_two_hop_cycles(self) -> List[RepairedNode]:
        """Break A <-> B parent cycles by promoting A, the smaller id."""
        def repair(conn: Connection) -> List[RepairedNode]:
            pairs = [
                RepairedNode(row[0], row[1], row[3])
                for row in conn.execute(_SELECT_TWO_HOP_CYCLES)
            ]
            for item in pairs:
                conn.execute(_PROMOTE_TO_ROOT, {"node_id": item.id})
                logger.info(f"Broke loop for item {item.title} ({item.id}) <-> {item.detail}")
            return pairs

        return self._step("repair_two_hop_cycles", repair)

    def repair_long_cycles(self) -> List[RepairedNode]:
        """Break parent cycles of any length by promoting their smallest id."""
        def repair(conn: Connection) -> List[RepairedNode]:
            rows = conn.execute(text("SELECT id, title, parent_id FROM files")).fetchall()
            titles = {row[0]: row[1] for row in rows}
            parents = {row[0]: row[2] or "" for row in rows}
            fixed = []
            for cycle in find_cycles(parents):
                victim = min(cycle)
                chain = " -> ".join(titles[node_id] for node_id in cycle)
                conn.execute(_PROMOTE_TO_ROOT, {"node_id": victim})
                fixed.append(RepairedNode(victim, titles[victim], chain))
                logger.info(f"Broke {len(cycle)}-node loop at {titles[victim]} ({victim}): {chain}")
            return fixed

        return self._step("repair_long_cycles", repair)

    def run(self) -> IntegrityReport:
        """Run every repair step in order and report what was fixed.

        Raises:
            StorageError: A repair statement failed; later steps did not run.
        """
        report = IntegrityReport()
        report.orphans_removed, report.orphan_passes = self.remove_orphans()
        report.non_folder_children_deleted = self.repair_non_folder_parents()
        report.self_references_fixed = self.repair_self_references()
        report.two_hop_cycles_broken = self.repair_two_hop_cycles()
        if self.deep_cycles:
            report.long_cycles_broken = self.repair_long_cycles()
        logger.info(f"Integrity check finished: {report.total_fixed} fix(es) applied")
        return report
