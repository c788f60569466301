"""Repository for file/folder node storage and retrieval."""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Set

from sqlalchemy import func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from notepad_store.exceptions import ErrorCode, StorageError
from notepad_store.models.db_models import DBFile, get_session_factory, init_db
from notepad_store.models.schema import ROOT_PARENT_ID, Node
from notepad_store.utils import escape_like_pattern

logger = logging.getLogger(__name__)

# Node ids reachable from :node_id through parent_id edges (node included).
# UNION rather than UNION ALL so a corrupt cycle terminates the recursion.
_SUBTREE_SELECT = """
    WITH RECURSIVE subtree(id) AS (
        SELECT id FROM files WHERE id = :node_id
        UNION
        SELECT f.id FROM files f JOIN subtree s ON f.parent_id = s.id
    )
    SELECT id FROM subtree
"""


class FileRepository:
    """Durable table of file/folder records.

    Row-level methods take the caller's session so that a service can
    compose a read-check-write sequence into one transaction opened with
    ``transaction()``. ``add`` and ``get`` are self-contained conveniences.
    """

    def __init__(self, engine: Optional[Engine] = None):
        """Initialize the repository.

        Args:
            engine: SQLAlchemy engine. If None, uses the configured store.
        """
        self.engine = engine or init_db()
        self.session_factory = get_session_factory(self.engine)
        logger.info(f"FileRepository initialized: {self.engine.url}")

    @contextmanager
    def transaction(
        self,
        operation: str,
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
    ) -> Iterator[Session]:
        """Open a session whose commit covers one logical operation.

        Any exception rolls the whole operation back. Storage engine
        failures surface as StorageError; domain errors propagate as-is.
        """
        try:
            with self.session_factory.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Storage failure during {operation}: {e}")
            raise StorageError(
                f"Storage failure during {operation}",
                operation=operation,
                code=code,
                original_error=e,
            ) from e

    # =========================================================================
    # Row-level operations (caller owns the session)
    # =========================================================================

    @staticmethod
    def to_model(db_file: DBFile) -> Node:
        """Convert a database row to a Node."""
        return Node(
            id=db_file.id,
            title=db_file.title,
            content=db_file.content or "",
            is_folder=bool(db_file.is_folder),
            parent_id=db_file.parent_id or ROOT_PARENT_ID,
            sort_order=db_file.sort_order or 0,
            is_deleted=bool(db_file.is_deleted),
            deleted_at=db_file.deleted_at or 0,
            created_at=db_file.created_at,
            updated_at=db_file.updated_at,
        )

    def insert(self, session: Session, node: Node) -> DBFile:
        db_file = DBFile(
            id=node.id,
            title=node.title,
            content=node.content,
            created_at=node.created_at,
            updated_at=node.updated_at,
            is_folder=node.is_folder,
            parent_id=node.parent_id,
            sort_order=node.sort_order,
            is_deleted=node.is_deleted,
            deleted_at=node.deleted_at,
        )
        session.add(db_file)
        session.flush()
        return db_file

    def get_row(
        self, session: Session, node_id: str, include_deleted: bool = False
    ) -> Optional[DBFile]:
        """Fetch a row by id; soft-deleted rows only when asked for."""
        db_file = session.get(DBFile, node_id)
        if db_file is None:
            return None
        if db_file.is_deleted and not include_deleted:
            return None
        return db_file

    def count_sibling_conflicts(
        self,
        session: Session,
        parent_id: str,
        title: str,
        exclude_id: Optional[str] = None,
    ) -> int:
        """Count live nodes already holding (parent_id, title)."""
        stmt = select(func.count()).select_from(DBFile).where(
            DBFile.parent_id == parent_id,
            DBFile.title == title,
            DBFile.is_deleted.is_(False),
        )
        if exclude_id is not None:
            stmt = stmt.where(DBFile.id != exclude_id)
        return session.execute(stmt).scalar_one()

    def subtree_ids(self, session: Session, node_id: str) -> Set[str]:
        """Ids of the node and all its transitive descendants."""
        rows = session.execute(
            text(_SUBTREE_SELECT),
            {"node_id": node_id},
        )
        return {row[0] for row in rows}

    def soft_delete_subtree(self, session: Session, node_id: str, now: int) -> int:
        """Mark the node and every live descendant deleted in one statement.

        Returns:
            Number of rows stamped.
        """
        result = session.execute(
            text(
                "UPDATE files SET is_deleted = 1, deleted_at = :now, updated_at = :now "
                f"WHERE id IN ({_SUBTREE_SELECT}) AND is_deleted = 0"
            ),
            {"node_id": node_id, "now": now},
        )
        return result.rowcount

    def restore_subtree(
        self, session: Session, node_id: str, deleted_at: int, now: int
    ) -> int:
        """Un-delete the rows of the subtree removed by the same cascade."""
        result = session.execute(
            text(
                "UPDATE files SET is_deleted = 0, deleted_at = 0, updated_at = :now "
                f"WHERE id IN ({_SUBTREE_SELECT}) "
                "AND is_deleted = 1 AND deleted_at = :deleted_at"
            ),
            {"node_id": node_id, "deleted_at": deleted_at, "now": now},
        )
        return result.rowcount

    def purge_deleted_before(self, session: Session, threshold: int) -> int:
        """Physically remove soft-deleted rows stamped before threshold."""
        result = session.execute(
            text("DELETE FROM files WHERE is_deleted = 1 AND deleted_at < :threshold"),
            {"threshold": threshold},
        )
        return result.rowcount

    def search(
        self, session: Session, query: str, limit: int, offset: int
    ) -> List[DBFile]:
        """Live nodes whose title or content contains query, newest order first."""
        stmt = select(DBFile).where(DBFile.is_deleted.is_(False))
        if query:
            pattern = f"%{escape_like_pattern(query)}%"
            stmt = stmt.where(
                or_(
                    DBFile.title.like(pattern, escape="\\"),
                    DBFile.content.like(pattern, escape="\\"),
                )
            )
        stmt = (
            stmt.order_by(DBFile.sort_order.desc(), DBFile.id)
            .limit(limit)
            .offset(offset)
        )
        return list(session.execute(stmt).scalars().all())

    # =========================================================================
    # Self-contained conveniences
    # =========================================================================

    def add(self, node: Node) -> Node:
        """Store a node exactly as given, without any tree validation."""
        with self.transaction("add") as session:
            self.insert(session, node)
        return node

    def get(self, node_id: str, include_deleted: bool = False) -> Optional[Node]:
        with self.transaction("get", code=ErrorCode.STORAGE_READ_FAILED) as session:
            db_file = self.get_row(session, node_id, include_deleted=include_deleted)
            return self.to_model(db_file) if db_file is not None else None

    def count(self, include_deleted: bool = False) -> int:
        with self.transaction("count", code=ErrorCode.STORAGE_READ_FAILED) as session:
            stmt = select(func.count()).select_from(DBFile)
            if not include_deleted:
                stmt = stmt.where(DBFile.is_deleted.is_(False))
            return session.execute(stmt).scalar_one()
