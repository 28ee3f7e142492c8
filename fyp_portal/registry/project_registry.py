"""
Project Registry - SQLite persistent storage for submitted projects.

Provides the corpus that new submissions are checked against. The scan
functions only depend on the ProjectStore interface, so the portal's real
database can be swapped in without touching them.

Design principles:
- Minimal schema: the columns duplicate detection projects, plus display fields
- Configurable DB path via environment variable
- stdlib sqlite3 only
"""

import logging
import os
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from fyp_portal.dedup.errors import CorpusFetchFailed
from fyp_portal.dedup.models import Document

logger = logging.getLogger(__name__)

# =============================================================================
# Configuration
# =============================================================================

DEFAULT_DB_PATH = "./data/project_registry.db"
SCHEMA_VERSION = "1.0.0"


# =============================================================================
# Store interface
# =============================================================================

class ProjectStore(ABC):
    """Query capability the corpus check depends on."""

    @abstractmethod
    def fetch_projects(self, exclude_id: Optional[str] = None) -> List[Document]:
        """
        Fetch stored projects, projecting at least id, title and abstract.

        Args:
            exclude_id: Project to leave out (re-checking an existing record)

        Raises:
            CorpusFetchFailed: If the query fails
        """


# =============================================================================
# Project Registry Class
# =============================================================================

class ProjectRegistry(ProjectStore):
    """
    Persistent project registry using SQLite.

    Provides:
    - Schema versioning for future migrations
    - Adding and reading project records
    - Corpus queries for duplicate checks
    """

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the project registry.

        Args:
            db_path: Path to SQLite database file. If None, uses env var or default.
        """
        self.db_path = db_path or os.getenv("PROJECT_REGISTRY_DB_PATH", DEFAULT_DB_PATH)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

        logger.info(f"[Registry] Project registry: {self.db_path}")

        self._ensure_directory()
        self._init_db()

    def _ensure_directory(self) -> None:
        """Create parent directory if it doesn't exist."""
        db_dir = Path(self.db_path).parent
        if not db_dir.exists():
            db_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Registry] Created directory: {db_dir}")

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            # Shared with executor threads; access is serialized by self._lock
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_db(self) -> None:
        """Initialize database schema with version tracking."""
        with self._lock:
            conn = self._get_connection()
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS meta (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)

            cursor.execute("SELECT value FROM meta WHERE key = 'schema_version'")
            row = cursor.fetchone()
            current_version = row["value"] if row else None

            if current_version is None:
                self._create_schema(cursor)
                cursor.execute(
                    "INSERT INTO meta (key, value) VALUES ('schema_version', ?)",
                    (SCHEMA_VERSION,)
                )
                logger.info(f"[Registry] Schema created (v{SCHEMA_VERSION})")
            elif current_version != SCHEMA_VERSION:
                logger.warning(
                    f"[Registry] Unknown schema version {current_version}, expected {SCHEMA_VERSION}"
                )
            else:
                logger.debug(f"[Registry] Schema version: v{current_version}")

            conn.commit()

    def _create_schema(self, cursor: sqlite3.Cursor) -> None:
        """Create the database schema."""
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS projects (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                abstract TEXT,
                year INTEGER,
                student_name TEXT,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_projects_created_at
            ON projects(created_at)
        """)

    @staticmethod
    def _coerce_year(year: Any) -> Optional[int]:
        if year is None or year == "":
            return None
        try:
            return int(year)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid project year: {year!r}") from e

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            title=row["title"],
            abstract=row["abstract"],
            authors=row["student_name"],
            metadata={
                "year": row["year"],
                "student_name": row["student_name"],
                "created_at": row["created_at"],
            },
        )

    def add_project(
        self,
        title: str,
        abstract: Optional[str] = None,
        year: Optional[int] = None,
        student_name: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> str:
        """
        Add a project to the registry.

        Args:
            title: Project title
            abstract: Project abstract
            year: Submission year
            student_name: Submitting student's name
            project_id: Explicit ID (a UUID is generated if omitted)

        Returns:
            The project ID

        Raises:
            ValueError: If year is not a whole number
        """
        year = self._coerce_year(year)
        project_id = project_id or str(uuid.uuid4())
        created_at = datetime.now().isoformat()

        with self._lock:
            conn = self._get_connection()
            conn.execute(
                """
                INSERT INTO projects (id, title, abstract, year, student_name, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (project_id, title, abstract, year, student_name, created_at),
            )
            conn.commit()

        logger.info(f"[Registry] Project added: {project_id} \"{title}\"")
        return project_id

    def get_project(self, project_id: str) -> Optional[Document]:
        """Get a single project by ID, or None."""
        with self._lock:
            conn = self._get_connection()
            row = conn.execute(
                "SELECT * FROM projects WHERE id = ?", (project_id,)
            ).fetchone()
        return self._row_to_document(row) if row else None

    def fetch_projects(self, exclude_id: Optional[str] = None) -> List[Document]:
        """
        Fetch all projects in submission order.

        Args:
            exclude_id: Project ID to leave out

        Returns:
            List of project documents

        Raises:
            CorpusFetchFailed: On any SQLite error
        """
        query = "SELECT * FROM projects"
        params: tuple = ()
        if exclude_id:
            query += " WHERE id != ?"
            params = (exclude_id,)
        query += " ORDER BY created_at ASC, rowid ASC"

        try:
            with self._lock:
                conn = self._get_connection()
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"[Registry] Project query failed: {e}")
            raise CorpusFetchFailed(str(e)) from e

        return [self._row_to_document(row) for row in rows]

    def count(self) -> int:
        """Number of stored projects."""
        with self._lock:
            conn = self._get_connection()
            row = conn.execute("SELECT COUNT(*) AS total FROM projects").fetchone()
        return int(row["total"])

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.debug("[Registry] Connection closed")
