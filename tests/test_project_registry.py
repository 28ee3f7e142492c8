"""
Tests for the SQLite project registry.
"""

import sqlite3

import pytest

from fyp_portal.dedup.errors import CorpusFetchFailed
from fyp_portal.registry.project_registry import SCHEMA_VERSION, ProjectRegistry


class TestRegistryInit:
    """Tests for ProjectRegistry initialization."""

    def test_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "projects.db"
        registry = ProjectRegistry(db_path=str(db_path))

        assert db_path.exists()
        registry.close()

    def test_path_from_env(self, tmp_path, monkeypatch):
        db_path = tmp_path / "env.db"
        monkeypatch.setenv("PROJECT_REGISTRY_DB_PATH", str(db_path))

        registry = ProjectRegistry()

        assert registry.db_path == str(db_path)
        registry.close()

    def test_schema_version_recorded(self, registry):
        conn = sqlite3.connect(registry.db_path)
        row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
        conn.close()

        assert row[0] == SCHEMA_VERSION

    def test_reopen_keeps_data(self, tmp_path):
        db_path = str(tmp_path / "projects.db")
        first = ProjectRegistry(db_path=db_path)
        first.add_project("Persisted Project", project_id="p1")
        first.close()

        second = ProjectRegistry(db_path=db_path)
        assert second.get_project("p1").title == "Persisted Project"
        second.close()


class TestRegistryOperations:
    """Tests for adding and reading projects."""

    def test_add_and_get(self, registry):
        project_id = registry.add_project(
            "Smart Irrigation", "Soil moisture sensors.", year=2025, student_name="Bo Kim"
        )
        doc = registry.get_project(project_id)

        assert doc.id == project_id
        assert doc.title == "Smart Irrigation"
        assert doc.abstract == "Soil moisture sensors."
        assert doc.authors == "Bo Kim"
        assert doc.metadata["year"] == 2025
        assert doc.metadata["student_name"] == "Bo Kim"

    def test_get_missing(self, registry):
        assert registry.get_project("missing") is None

    def test_duplicate_id_rejected(self, registry):
        registry.add_project("First", project_id="p1")
        with pytest.raises(sqlite3.IntegrityError):
            registry.add_project("Second", project_id="p1")

    def test_fetch_in_submission_order(self, registry):
        for i in range(3):
            registry.add_project(f"Project {i}", project_id=f"p{i}")

        assert [d.id for d in registry.fetch_projects()] == ["p0", "p1", "p2"]

    def test_fetch_excludes_id(self, registry):
        registry.add_project("Keep", project_id="keep")
        registry.add_project("Skip", project_id="skip")

        assert [d.id for d in registry.fetch_projects(exclude_id="skip")] == ["keep"]

    def test_fetch_empty(self, registry):
        assert registry.fetch_projects() == []

    def test_null_abstract(self, registry):
        registry.add_project("Title Only", project_id="p1")
        doc = registry.fetch_projects()[0]

        assert doc.abstract is None
        assert doc.document_text(include_authors=False) == "Title Only"

    def test_count(self, registry):
        assert registry.count() == 0
        registry.add_project("One")
        registry.add_project("Two")
        assert registry.count() == 2

    def test_query_failure_raises_corpus_fetch_failed(self, registry):
        registry.add_project("One")
        conn = sqlite3.connect(registry.db_path)
        conn.execute("DROP TABLE projects")
        conn.commit()
        conn.close()

        with pytest.raises(CorpusFetchFailed) as exc_info:
            registry.fetch_projects()

        assert "projects" in str(exc_info.value)

    def test_year_text_is_stored_as_integer(self, registry):
        registry.add_project("Smart Irrigation", year="2025", project_id="p1")

        assert registry.get_project("p1").metadata["year"] == 2025

    def test_blank_year_is_null(self, registry):
        registry.add_project("Smart Irrigation", year="", project_id="p1")

        assert registry.get_project("p1").metadata["year"] is None

    def test_invalid_year_rejected(self, registry):
        with pytest.raises(ValueError, match="Invalid project year"):
            registry.add_project("Smart Irrigation", year="2024/25", project_id="p1")

        assert registry.count() == 0
