"""Service layer for file tree mutations.

This is the only writer of the ``files`` table during normal operation.
Every public mutation runs as one transaction and leaves the live tree
acyclic, with folder-only parents and unique sibling names (subject to
the create-time asymmetry controlled by ``enforce_unique_on_create``).
"""

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from notepad_store.config import config
from notepad_store.exceptions import (
    ConflictError,
    ErrorCode,
    InvalidArgumentError,
    NotFoundError,
    StorageError,
)
from notepad_store.models.schema import ROOT_PARENT_ID, Node, NodeUpdate
from notepad_store.observability import traced
from notepad_store.storage.file_repository import FileRepository
from notepad_store.utils import title_from_path

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

_UTF8_NAMES = ("", "utf-8", "utf8")


def _normalize_encoding(encoding: Optional[str]) -> str:
    """Only UTF-8 is handled here; charset detection lives at the boundary."""
    enc = (encoding or "").strip().lower()
    if enc not in _UTF8_NAMES:
        raise InvalidArgumentError(
            f"Unsupported encoding: {encoding}",
            field="encoding",
            value=encoding,
            code=ErrorCode.UNSUPPORTED_ENCODING,
        )
    return "utf-8"


def _require_path(path: Optional[Union[str, Path]]) -> Path:
    if path is None or not str(path).strip():
        raise InvalidArgumentError(
            "Target path cannot be empty",
            field="path",
            code=ErrorCode.PATH_REQUIRED,
        )
    return Path(str(path).strip()).resolve()


class FileService:
    """Online API over the file tree: create, get, update, delete, list."""

    def __init__(
        self,
        repository: Optional[FileRepository] = None,
        engine: Optional[Engine] = None,
        clock: Callable[[], float] = time.time,
        enforce_unique_on_create: Optional[bool] = None,
        retention_days: Optional[int] = None,
        default_page_size: Optional[int] = None,
    ):
        """Initialize the service.

        Args:
            repository: Record store. Created over ``engine`` if None.
            engine: Pre-configured SQLAlchemy engine, used when repository
                is None.
            clock: Returns epoch seconds; injectable for tests.
            enforce_unique_on_create: Also reject duplicate sibling names
                on create. Defaults to config.enforce_unique_on_create.
            retention_days: Age after which soft-deleted rows are purged.
            default_page_size: Page size used when list() gets size <= 0.
        """
        self.repository = repository or FileRepository(engine=engine)
        self._clock = clock
        self.enforce_unique_on_create = (
            config.enforce_unique_on_create
            if enforce_unique_on_create is None
            else enforce_unique_on_create
        )
        self.retention_days = retention_days or config.deleted_retention_days
        self.default_page_size = default_page_size or config.default_page_size
        # Serializes read-check-write sequences within this process
        self._write_lock = threading.RLock()

    def _now(self) -> int:
        return int(self._clock())

    # =========================================================================
    # Invariant checks (run inside the caller's transaction)
    # =========================================================================

    def _require_folder_parent(self, session: Session, parent_id: str) -> None:
        parent = self.repository.get_row(session, parent_id)
        if parent is None:
            raise InvalidArgumentError(
                f"Parent '{parent_id}' does not exist or is deleted",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.INVALID_PARENT,
            )
        if not parent.is_folder:
            raise InvalidArgumentError(
                f"Parent '{parent.title}' is not a folder",
                field="parent_id",
                value=parent_id,
                code=ErrorCode.INVALID_PARENT,
            )

    def _check_sibling_conflict(
        self,
        session: Session,
        parent_id: str,
        title: str,
        exclude_id: Optional[str] = None,
    ) -> None:
        if self.repository.count_sibling_conflicts(session, parent_id, title, exclude_id):
            raise ConflictError(
                f"A file or folder named '{title}' already exists here",
                node_id=exclude_id,
                parent_id=parent_id,
                title=title,
                code=ErrorCode.NAME_CONFLICT,
            )

    def _validate_move(self, session: Session, node_id: str, new_parent_id: str) -> None:
        if new_parent_id == ROOT_PARENT_ID:
            return
        if new_parent_id == node_id:
            raise InvalidArgumentError(
                "A node cannot be its own parent",
                field="parent_id",
                value=new_parent_id,
                code=ErrorCode.CYCLE_DETECTED,
            )
        self._require_folder_parent(session, new_parent_id)
        if new_parent_id in self.repository.subtree_ids(session, node_id):
            raise InvalidArgumentError(
                "Cannot move a folder into one of its own descendants",
                field="parent_id",
                value=new_parent_id,
                code=ErrorCode.CYCLE_DETECTED,
            )

    # =========================================================================
    # Operations
    # =========================================================================

    @traced("create")
    def create(
        self,
        title: str,
        content: str = "",
        is_folder: bool = False,
        parent_id: str = ROOT_PARENT_ID,
    ) -> Node:
        """Create a file or folder.

        New nodes get ``sort_order = now`` so the newest item sorts first
        until it is explicitly reordered.

        Raises:
            InvalidArgumentError: Blank title, or parent missing/deleted/not a folder.
            ConflictError: Duplicate sibling name, only when
                enforce_unique_on_create is on.
        """
        if not title or not title.strip():
            raise InvalidArgumentError(
                "Title is required", field="title", code=ErrorCode.TITLE_REQUIRED
            )
        parent_id = parent_id or ROOT_PARENT_ID

        with self._write_lock, self.repository.transaction("create") as session:
            if parent_id:
                self._require_folder_parent(session, parent_id)
            if self.enforce_unique_on_create:
                self._check_sibling_conflict(session, parent_id, title)

            now = self._now()
            node = Node(
                title=title,
                content=content or "",
                is_folder=is_folder,
                parent_id=parent_id,
                sort_order=now,
                created_at=now,
                updated_at=now,
            )
            self.repository.insert(session, node)

        logger.info(
            f"Created {'folder' if is_folder else 'file'} '{node.title}' ({node.id}) "
            f"under '{node.parent_id or '<root>'}'"
        )
        return node

    @traced("get")
    def get(self, node_id: str) -> Node:
        """Get a live node.

        Raises:
            NotFoundError: If the node does not exist or is soft-deleted.
        """
        with self.repository.transaction("get", code=ErrorCode.STORAGE_READ_FAILED) as session:
            db_file = self.repository.get_row(session, node_id)
            if db_file is None:
                raise NotFoundError(node_id)
            return self.repository.to_model(db_file)

    @traced("update")
    def update(
        self, node_id: str, changes: Union[NodeUpdate, Dict[str, Any]]
    ) -> Node:
        """Apply a partial update.

        A deleted node accepts only an update that un-deletes it. Changing
        title or parent (or restoring) re-checks sibling uniqueness.

        Raises:
            NotFoundError: If the node does not exist at all.
            ConflictError: Edit of a deleted node, delete through update,
                or a sibling with the resulting (parent_id, title).
            InvalidArgumentError: Malformed fields or an invalid move.
        """
        if not isinstance(changes, NodeUpdate):
            try:
                changes = NodeUpdate(**changes)
            except PydanticValidationError as e:
                raise InvalidArgumentError(
                    f"Invalid update: {e.errors()[0]['msg']}", value=changes
                ) from e

        with self._write_lock, self.repository.transaction("update") as session:
            db_file = self.repository.get_row(session, node_id, include_deleted=True)
            if db_file is None:
                raise NotFoundError(node_id)

            restoring = bool(db_file.is_deleted) and changes.is_deleted is False
            if db_file.is_deleted and not restoring:
                raise ConflictError(
                    f"'{db_file.title}' is deleted and cannot be updated",
                    node_id=node_id,
                    code=ErrorCode.NODE_DELETED,
                )
            if not db_file.is_deleted and changes.is_deleted:
                raise ConflictError(
                    "Use delete() to remove a node and its descendants",
                    node_id=node_id,
                    code=ErrorCode.NODE_DELETED,
                )

            old_parent_id = db_file.parent_id or ROOT_PARENT_ID
            new_title = changes.title if changes.title is not None else db_file.title
            new_parent_id = (
                changes.parent_id if changes.parent_id is not None else old_parent_id
            )

            if new_parent_id != old_parent_id:
                self._validate_move(session, node_id, new_parent_id)
            elif restoring and new_parent_id:
                self._require_folder_parent(session, new_parent_id)
            if changes.touches_placement or restoring:
                self._check_sibling_conflict(
                    session, new_parent_id, new_title, exclude_id=node_id
                )

            db_file.title = new_title
            db_file.parent_id = new_parent_id
            if changes.content is not None:
                db_file.content = changes.content
            if changes.sort_order is not None:
                db_file.sort_order = changes.sort_order
            if restoring:
                db_file.is_deleted = False
                db_file.deleted_at = 0
            db_file.updated_at = self._now()
            session.flush()
            node = self.repository.to_model(db_file)

        if changes.parent_id is not None or changes.sort_order is not None:
            logger.info(
                f"[Move] File {node.title} ({node.id}) moved to Parent: "
                f"{node.parent_id or '<root>'}, Order: {node.sort_order}"
            )
        if restoring:
            logger.info(f"Restored '{node.title}' ({node.id})")
        return node

    @traced("delete")
    def delete(self, node_id: str) -> int:
        """Soft-delete a node and all its descendants atomically.

        One UPDATE over the recursive descendant closure stamps the same
        ``deleted_at`` on every live row of the subtree. Unknown ids are a
        no-op.

        Returns:
            Number of rows marked deleted.
        """
        with self._write_lock, self.repository.transaction(
            "delete", code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            affected = self.repository.soft_delete_subtree(session, node_id, self._now())
        logger.info(f"Soft-deleted {affected} node(s) under {node_id}")
        return affected

    @traced("restore")
    def restore(self, node_id: str) -> Node:
        """Undo a cascading delete.

        Restores the node and every descendant removed by the same delete
        (identical ``deleted_at``); descendants deleted earlier stay deleted.

        Raises:
            NotFoundError: If the node does not exist.
            ConflictError: If a live sibling now holds the node's name.
            InvalidArgumentError: If the node's parent is not a live folder.
        """
        with self._write_lock, self.repository.transaction("restore") as session:
            db_file = self.repository.get_row(session, node_id, include_deleted=True)
            if db_file is None:
                raise NotFoundError(node_id)
            if not db_file.is_deleted:
                return self.repository.to_model(db_file)

            parent_id = db_file.parent_id or ROOT_PARENT_ID
            if parent_id:
                self._require_folder_parent(session, parent_id)
            self._check_sibling_conflict(
                session, parent_id, db_file.title, exclude_id=node_id
            )
            restored = self.repository.restore_subtree(
                session, node_id, db_file.deleted_at, self._now()
            )
            session.refresh(db_file)
            node = self.repository.to_model(db_file)

        logger.info(f"Restored {restored} node(s) under '{node.title}' ({node.id})")
        return node

    @traced("cleanup_old_deleted")
    def cleanup_old_deleted(self) -> int:
        """Physically remove nodes soft-deleted longer than the retention window.

        Returns:
            Number of rows purged.
        """
        threshold = self._now() - self.retention_days * SECONDS_PER_DAY
        with self._write_lock, self.repository.transaction(
            "cleanup_old_deleted", code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            purged = self.repository.purge_deleted_before(session, threshold)
        if purged:
            logger.info(f"Purged {purged} node(s) deleted more than {self.retention_days} days ago")
        return purged

    @traced("list")
    def list(self, query: str = "", page: int = 1, size: int = 0) -> List[Node]:
        """Live nodes whose title or content contains query.

        Ordered by sort_order descending. ``page`` is 1-based; non-positive
        values fall back to page 1 and the default page size.
        """
        if page <= 0:
            page = 1
        if size <= 0:
            size = self.default_page_size
        offset = (page - 1) * size
        with self.repository.transaction("list", code=ErrorCode.STORAGE_READ_FAILED) as session:
            rows = self.repository.search(session, query or "", size, offset)
            return [self.repository.to_model(row) for row in rows]

    # =========================================================================
    # Import / export bridges
    # =========================================================================

    @traced("save_as")
    def save_as(
        self, node_id: str, path: Union[str, Path], encoding: str = "utf-8"
    ) -> Path:
        """Write a node's content to a file on disk.

        Raises:
            InvalidArgumentError: Empty path or unsupported encoding.
            NotFoundError: If the node is missing or deleted.
            StorageError: If the file cannot be written.
        """
        target = _require_path(path)
        enc = _normalize_encoding(encoding)
        node = self.get(node_id)
        try:
            target.write_text(node.content, encoding=enc)
        except OSError as e:
            raise StorageError(
                f"Failed to write {node.title}",
                operation="save_as",
                path=str(target),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.info(f"Saved '{node.title}' to {target}")
        return target

    def _read_import(self, path: Union[str, Path], encoding: str) -> Node:
        source = _require_path(path)
        enc = _normalize_encoding(encoding)
        try:
            content = source.read_bytes().decode(enc)
        except OSError as e:
            raise StorageError(
                f"Failed to read {source.name}",
                operation="import",
                path=str(source),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
        except UnicodeDecodeError as e:
            raise InvalidArgumentError(
                f"{source.name} is not valid {enc}",
                field="encoding",
                value=encoding,
                code=ErrorCode.UNSUPPORTED_ENCODING,
            ) from e
        now = self._now()
        return Node(
            title=title_from_path(source),
            content=content,
            sort_order=now,
            created_at=now,
            updated_at=now,
        )

    @traced("import_path")
    def import_path(self, path: Union[str, Path], encoding: str = "utf-8") -> Node:
        """Create a top-level file from a text file on disk."""
        node = self._read_import(path, encoding)
        return self.create(node.title, node.content, False, ROOT_PARENT_ID)

    @traced("batch_import")
    def batch_import(
        self, paths: Sequence[Union[str, Path]], encoding: str = "utf-8"
    ) -> List[Node]:
        """Import several files as top-level nodes in one transaction.

        Blank entries are skipped. If any file fails, nothing is imported.
        """
        nodes = [
            self._read_import(path, encoding)
            for path in paths
            if path is not None and str(path).strip()
        ]
        with self._write_lock, self.repository.transaction("batch_import") as session:
            for node in nodes:
                self.repository.insert(session, node)
        logger.info(f"Imported {len(nodes)} file(s)")
        return nodes
