from datetime import datetime

from beanie import Document, PydanticObjectId
from pydantic import Field


class Category(Document):
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "category"

    class Config:
        json_encoders = {
            PydanticObjectId: str,
        }


class TestType(Document):
    __test__ = False

    name: str
    category_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "test_type"
        indexes = ["name"]

    class Config:
        json_encoders = {
            PydanticObjectId: str,
        }


class TestParameter(Document):
    __test__ = False

    test_type_id: str
    name: str
    unit: str | None = None
    reference_range: str | None = None
    description: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "test_parameter"
        indexes = ["test_type_id"]

    class Config:
        json_encoders = {
            PydanticObjectId: str,
        }
