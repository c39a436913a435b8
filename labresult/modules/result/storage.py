from datetime import datetime, timezone

from beanie import PydanticObjectId
from beanie.operators import In, Set
from bson import ObjectId
from loguru import logger
from pymongo.errors import PyMongoError

from labresult.errors import PersistenceError, ResultNotFound
from labresult.modules.catalog.service import get_parameters
from labresult.modules.result.model import PatientResult, ResultValue
from labresult.modules.result.schema import (
    ResultHeaderResponse,
    ResultStatus,
    StoredValue,
    ValueInsert,
    ValueUpdate,
)


def to_result_header_response(result: PatientResult) -> ResultHeaderResponse:
    return ResultHeaderResponse(
        id=str(result.id),
        patient_id=result.patient_id,
        doctor_id=result.doctor_id,
        result_date=result.result_date,
        status=result.status,
        total_price=result.total_price,
        amount_paid=result.amount_paid,
    )


def to_stored_value(value: ResultValue, test_type_id: str | None = None) -> StoredValue:
    return StoredValue(
        id=str(value.id),
        patient_result_id=value.patient_result_id,
        test_parameter_id=value.test_parameter_id,
        test_type_id=test_type_id,
        value=value.value,
    )


# ================ HEADER ====================


async def get_result_header(result_id: str) -> PatientResult:
    if not ObjectId.is_valid(result_id):
        raise ResultNotFound(result_id)
    result = await PatientResult.get(PydanticObjectId(result_id))
    if result is None:
        raise ResultNotFound(result_id)
    return result


async def find_header_by_submission_key(submission_key: str) -> PatientResult | None:
    return await PatientResult.find_one(
        PatientResult.submission_key == submission_key
    )


async def insert_header(
    patient_id: str,
    doctor_id: str,
    result_date: datetime,
    total_price: float | None = None,
    amount_paid: float | None = None,
    submission_key: str | None = None,
) -> PatientResult:
    result = PatientResult(
        patient_id=patient_id,
        doctor_id=doctor_id,
        result_date=result_date,
        status=ResultStatus.PENDING,
        total_price=total_price,
        amount_paid=amount_paid,
        submission_key=submission_key,
    )
    await result.insert()
    logger.info(f"Inserted result header {result.id} for patient {patient_id}")
    return result


async def update_header(
    result_id: str,
    patient_id: str,
    doctor_id: str,
    result_date: datetime,
    total_price: float | None = None,
    amount_paid: float | None = None,
) -> PatientResult:
    # status is left alone, it only changes through update_result_status
    result = await get_result_header(result_id)
    result.patient_id = patient_id
    result.doctor_id = doctor_id
    result.result_date = result_date
    result.total_price = total_price
    result.amount_paid = amount_paid
    result.updated_at = datetime.now(timezone.utc)
    await result.save()
    logger.info(f"Updated result header {result_id}")
    return result


async def update_result_status(result_id: str, status: ResultStatus) -> PatientResult:
    try:
        result = await get_result_header(result_id)
        if result.status == status:
            return result
        result.status = status
        result.updated_at = datetime.now(timezone.utc)
        await result.save()
    except PyMongoError as exc:
        logger.error(f"Failed to set status of result {result_id}: {exc}")
        raise PersistenceError(
            "update_status", str(exc), code=getattr(exc, "code", None)
        ) from exc
    logger.info(f"Result {result_id} status set to {status.value}")
    return result


# ================ VALUES ====================


async def load_stored_values(result_id: str) -> list[StoredValue]:
    """
    Load every value row of a result, each tagged with the test type of its
    parameter. Rows whose parameter no longer exists keep test_type_id=None.
    """
    values = await ResultValue.find(
        ResultValue.patient_result_id == result_id
    ).to_list()
    if not values:
        return []
    parameters = await get_parameters(
        list({value.test_parameter_id for value in values})
    )
    test_type_by_parameter = {p.id: p.test_type_id for p in parameters}
    orphans = [v for v in values if v.test_parameter_id not in test_type_by_parameter]
    if orphans:
        logger.warning(
            f"Result {result_id} has {len(orphans)} values whose parameter is gone"
        )
    return [
        to_stored_value(v, test_type_by_parameter.get(v.test_parameter_id))
        for v in values
    ]


async def delete_values(value_ids: list[str]) -> int:
    if not value_ids:
        return 0
    object_ids = [PydanticObjectId(i) for i in value_ids]
    result = await ResultValue.find(In(ResultValue.id, object_ids)).delete()
    deleted = result.deleted_count if result is not None else 0
    logger.info(f"Deleted {deleted}/{len(value_ids)} result values")
    return deleted


async def upsert_values(
    result_id: str,
    inserts: list[ValueInsert],
    updates: list[ValueUpdate],
) -> None:
    """
    Write the value batch. Updates are keyed by value id, inserts by
    (result, parameter) so replaying the batch never duplicates a row.
    """
    now = datetime.now(timezone.utc)
    for update in updates:
        await ResultValue.find_one(
            ResultValue.id == PydanticObjectId(update.id)
        ).update(Set({ResultValue.value: update.value, ResultValue.updated_at: now}))
    for insert in inserts:
        await ResultValue.find_one(
            ResultValue.patient_result_id == result_id,
            ResultValue.test_parameter_id == insert.parameter_id,
        ).upsert(
            Set({ResultValue.value: insert.value, ResultValue.updated_at: now}),
            on_insert=ResultValue(
                patient_result_id=result_id,
                test_parameter_id=insert.parameter_id,
                value=insert.value,
            ),
        )
    logger.info(
        f"Upserted values for result {result_id}: "
        f"{len(updates)} updated, {len(inserts)} inserted"
    )
