"""Pytest configuration and shared fixtures."""

from types import SimpleNamespace

import pytest
from mongomock_motor import AsyncMongoMockClient

from labresult.infrastructure.database import init_db
from labresult.modules.catalog.model import Category, TestParameter, TestType


@pytest.fixture
async def db():
    """Fresh in-memory MongoDB with beanie initialised on it."""
    client = AsyncMongoMockClient()
    await init_db(client["labresult_test"])
    yield client


@pytest.fixture
async def catalog(db) -> SimpleNamespace:
    """
    Hemogram (RBC, WBC) and Lipid Panel (Cholesterol, Triglycerides).
    Attributes hold the string ids used by the engine.
    """
    category = await Category(name="Hematology").insert()
    hemogram = await TestType(name="Hemogram", category_id=str(category.id)).insert()
    lipid = await TestType(name="Lipid Panel", category_id=str(category.id)).insert()
    wbc = await TestParameter(
        test_type_id=str(hemogram.id), name="WBC", unit="10^3/uL", reference_range="4 - 10"
    ).insert()
    rbc = await TestParameter(
        test_type_id=str(hemogram.id), name="RBC", unit="10^6/uL", reference_range="4.2 - 5.9"
    ).insert()
    cholesterol = await TestParameter(
        test_type_id=str(lipid.id), name="Cholesterol", unit="mg/dL", reference_range="< 200"
    ).insert()
    triglycerides = await TestParameter(
        test_type_id=str(lipid.id), name="Triglycerides", unit="mg/dL", reference_range="< 150"
    ).insert()
    return SimpleNamespace(
        hemogram=str(hemogram.id),
        lipid=str(lipid.id),
        wbc=str(wbc.id),
        rbc=str(rbc.id),
        cholesterol=str(cholesterol.id),
        triglycerides=str(triglycerides.id),
    )
