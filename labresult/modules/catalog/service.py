from beanie import PydanticObjectId
from beanie.operators import In
from bson import ObjectId
from loguru import logger
from pymongo.errors import PyMongoError
from rapidfuzz.fuzz import partial_ratio
from rapidfuzz.utils import default_process

from labresult.environment import environment
from labresult.errors import CatalogUnavailable
from labresult.modules.catalog.model import TestParameter, TestType
from labresult.modules.catalog.schema import TestParameterResponse, TestTypeResponse


def to_test_type_response(test_type: TestType) -> TestTypeResponse:
    return TestTypeResponse(
        id=str(test_type.id),
        name=test_type.name,
        category_id=test_type.category_id,
    )


def to_test_parameter_response(parameter: TestParameter) -> TestParameterResponse:
    return TestParameterResponse(
        id=str(parameter.id),
        test_type_id=parameter.test_type_id,
        name=parameter.name,
        unit=parameter.unit,
        reference_range=parameter.reference_range,
        description=parameter.description,
    )


async def list_test_types() -> list[TestTypeResponse]:
    try:
        test_types = await TestType.find_all().sort("+name").to_list()
    except PyMongoError as exc:
        logger.error(f"Failed to list test types: {exc}")
        raise CatalogUnavailable() from exc
    return [to_test_type_response(tt) for tt in test_types]


async def get_test_types(test_type_ids: list[str]) -> list[TestTypeResponse]:
    object_ids = [PydanticObjectId(i) for i in test_type_ids if ObjectId.is_valid(i)]
    if not object_ids:
        return []
    try:
        test_types = await TestType.find(In(TestType.id, object_ids)).to_list()
    except PyMongoError as exc:
        logger.error(f"Failed to load test types {test_type_ids}: {exc}")
        raise CatalogUnavailable() from exc
    return [to_test_type_response(tt) for tt in test_types]


async def list_parameters(test_type_id: str) -> list[TestParameterResponse]:
    try:
        parameters = (
            await TestParameter.find(TestParameter.test_type_id == test_type_id)
            .sort("+name")
            .to_list()
        )
    except PyMongoError as exc:
        logger.error(f"Failed to list parameters of test type {test_type_id}: {exc}")
        raise CatalogUnavailable(test_type_id) from exc
    logger.debug(f"Loaded {len(parameters)} parameters for test type {test_type_id}")
    return [to_test_parameter_response(p) for p in parameters]


async def list_parameters_for_types(
    test_type_ids: list[str],
) -> list[TestParameterResponse]:
    if not test_type_ids:
        return []
    try:
        parameters = (
            await TestParameter.find(In(TestParameter.test_type_id, test_type_ids))
            .sort("+name")
            .to_list()
        )
    except PyMongoError as exc:
        logger.error(f"Failed to list parameters of test types {test_type_ids}: {exc}")
        raise CatalogUnavailable() from exc
    return [to_test_parameter_response(p) for p in parameters]


async def get_parameters(parameter_ids: list[str]) -> list[TestParameterResponse]:
    object_ids = [PydanticObjectId(i) for i in parameter_ids if ObjectId.is_valid(i)]
    if not object_ids:
        return []
    try:
        parameters = await TestParameter.find(
            In(TestParameter.id, object_ids)
        ).to_list()
    except PyMongoError as exc:
        logger.error(f"Failed to load parameters {parameter_ids}: {exc}")
        raise CatalogUnavailable() from exc
    return [to_test_parameter_response(p) for p in parameters]


def search_test_types(
    term: str,
    test_types: list[TestTypeResponse],
    threshold: int | None = None,
) -> list[TestTypeResponse]:
    term = term.strip()
    if not term:
        return list(test_types)
    if threshold is None:
        threshold = environment.catalog_search_threshold

    term_lc = term.lower()
    processed_term = default_process(term)
    matches = []
    for tt in test_types:
        # 1) substring
        if term_lc in tt.name.lower():
            matches.append(tt)
            continue
        # 2) fuzzy, tolerates typos in the search box
        if partial_ratio(processed_term, default_process(tt.name)) >= threshold:
            matches.append(tt)
    return matches
