"""Tests for sample document generation."""

from __future__ import annotations

import pytest

from app.services.dummy_data import MAX_DOCUMENTS, generate_documents


@pytest.mark.parametrize(
    "data_type,field",
    [("users", "email"), ("products", "price"), ("orders", "items"), ("anything", "title")],
)
def test_generate_documents_by_type(data_type: str, field: str) -> None:
    docs = generate_documents(data_type, 3, seed=1)
    assert [doc["id"] for doc in docs] == [1, 2, 3]
    assert all(field in doc for doc in docs)


def test_orders_have_between_one_and_five_items() -> None:
    for doc in generate_documents("orders", 50, seed=7):
        assert 1 <= len(doc["items"]) <= 5


def test_count_bounds() -> None:
    assert len(generate_documents("users", MAX_DOCUMENTS)) == MAX_DOCUMENTS
    for bad in (0, MAX_DOCUMENTS + 1):
        with pytest.raises(ValueError):
            generate_documents("users", bad)
