"""Unit tests for the database initialization script"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from coordinator.db.postgres import DOCUMENT_TABLES
from scripts.init_db import report_collections
from shared.models import Recipe, Task


@pytest.mark.unit
async def test_report_lists_every_collection(capsys, recipe_factory) -> None:
    """Test each collection is printed with its stored document count"""
    stored = {Recipe: [recipe_factory()], Task: []}
    postgres = MagicMock()
    postgres.list_documents = AsyncMock(
        side_effect=lambda kind: stored.get(kind, []))

    await report_collections(postgres)

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == len(DOCUMENT_TABLES)
    assert postgres.list_documents.await_count == len(DOCUMENT_TABLES)
    recipes = next(line for line in lines if line.split()[0] == "recipes")
    assert recipes.split()[1] == "Recipe"
    assert recipes.endswith("1 documents")
    tasks = next(line for line in lines if line.split()[0] == "tasks")
    assert tasks.endswith("0 documents")
