from pydantic import BaseModel, ConfigDict, Field


class TestTypeResponse(BaseModel):
    __test__ = False

    id: str = Field(..., description="Identity of the test type")
    name: str = Field(..., description="Display name, e.g. Hemogram")
    category_id: str = Field(..., description="Category the test type belongs to")

    model_config = ConfigDict(frozen=True)


class TestParameterResponse(BaseModel):
    __test__ = False

    id: str = Field(..., description="Identity of the parameter")
    test_type_id: str = Field(..., description="Owning test type")
    name: str = Field(..., description="Display name, e.g. WBC")
    unit: str | None = Field(None, description="Unit of the measured value")
    reference_range: str | None = Field(
        None, description="Reference range as typed by the lab, e.g. 4 - 10"
    )
    description: str | None = None

    model_config = ConfigDict(frozen=True)
