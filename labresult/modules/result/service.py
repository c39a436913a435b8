from loguru import logger

from labresult.modules.catalog.service import get_parameters
from labresult.modules.result.range_check import check_value_range_status
from labresult.modules.result.schema import RangeStatus, ValueRangeCheckResponse
from labresult.modules.result.storage import get_result_header, load_stored_values


async def check_result_ranges(result_id: str) -> list[ValueRangeCheckResponse]:
    await get_result_header(result_id)
    stored_values = await load_stored_values(result_id)
    parameters = {
        p.id: p
        for p in await get_parameters(
            list({v.test_parameter_id for v in stored_values})
        )
    }
    checks = []
    for stored in stored_values:
        parameter = parameters.get(stored.test_parameter_id)
        reference_range = parameter.reference_range if parameter else None
        checks.append(
            ValueRangeCheckResponse(
                value_id=stored.id,
                test_parameter_id=stored.test_parameter_id,
                parameter_name=parameter.name if parameter else None,
                value=stored.value,
                reference_range=reference_range,
                status=check_value_range_status(stored.value, reference_range),
            )
        )
    out_of_range = sum(1 for c in checks if c.status == RangeStatus.OUT_OF_RANGE)
    logger.info(
        f"Range check for result {result_id}: {out_of_range}/{len(checks)} out of range"
    )
    return checks
