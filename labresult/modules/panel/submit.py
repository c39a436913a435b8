import math
from enum import Enum
from typing import Iterable

from loguru import logger
from pymongo.errors import PyMongoError

from labresult.errors import (
    CatalogUnavailable,
    PersistenceError,
    ResultNotFound,
    ValidationError,
)
from labresult.modules.panel.reconcile import reconcile
from labresult.modules.panel.schema import PanelState
from labresult.modules.result.schema import HeaderFields, StoredValue
from labresult.modules.result.storage import (
    delete_values,
    find_header_by_submission_key,
    insert_header,
    load_stored_values,
    update_header,
    upsert_values,
)


class SubmitStep(str, Enum):
    SAVE_HEADER = "save_header"
    DELETE_VALUES = "delete_values"
    UPSERT_VALUES = "upsert_values"


class SubmitProgress:
    """Steps of one submission that are already committed."""

    def __init__(self):
        self.completed: list[SubmitStep] = []
        self.result_id: str | None = None

    def complete(self, step: SubmitStep):
        self.completed.append(step)
        logger.debug(f"Submit step {step.value} done for result {self.result_id}")

    def err(self, step: SubmitStep, exc: Exception) -> PersistenceError:
        done = [s.value for s in self.completed]
        logger.error(
            f"Submit step {step.value} failed for result {self.result_id}, "
            f"already committed: {done or 'nothing'}: {exc}"
        )
        return PersistenceError(
            step.value,
            f"Submission failed at {step.value}: {exc}",
            completed_steps=done,
            code=getattr(exc, "code", None),
            result_id=self.result_id,
        )


def parse_price(text: str) -> float:
    cleaned = text.strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")
    price = float(cleaned)
    if math.isnan(price) or math.isinf(price):
        raise ValueError(f"not a finite number: {text}")
    return price


def validate_header(
    header: HeaderFields,
    panel: PanelState,
    is_edit_mode: bool,
) -> dict[str, float | None]:
    """Check the form before any store call, return the parsed prices."""
    problems: list[str] = []
    if not header.patient_id:
        problems.append("Patient is not set.")
    if not header.doctor_id:
        problems.append("Select the prescribing doctor.")
    if header.result_date is None:
        problems.append("Select the result date.")
    if not is_edit_mode and not panel.entries:
        problems.append("Select at least one test type.")

    prices: dict[str, float | None] = {}
    for field in ("total_price", "amount_paid"):
        text = getattr(header, field)
        if text is None or not text.strip():
            prices[field] = None
            continue
        try:
            prices[field] = parse_price(text)
        except ValueError:
            problems.append(f"{field.replace('_', ' ').capitalize()} must be a number.")

    if problems:
        logger.warning(f"Result form rejected: {problems}")
        raise ValidationError(problems)
    return prices


async def submit_result(
    header: HeaderFields,
    panel: PanelState,
    original_snapshot: Iterable[StoredValue],
    is_edit_mode: bool,
    result_id: str | None = None,
    submission_key: str | None = None,
) -> str:
    """
    Save the header, then delete then upsert the value rows.

    The steps are not one transaction. When a step fails the previous ones
    stay committed and PersistenceError tells which. Returns the header id.
    """
    prices = validate_header(header, panel, is_edit_mode)
    if is_edit_mode and not result_id:
        raise ValueError("result_id is required in edit mode")

    progress = SubmitProgress()
    progress.result_id = result_id

    try:
        if is_edit_mode:
            saved = await update_header(
                result_id,
                header.patient_id,
                header.doctor_id,
                header.result_date,
                **prices,
            )
        else:
            existing = None
            if submission_key:
                existing = await find_header_by_submission_key(submission_key)
            if existing is not None:
                logger.info(
                    f"Header {existing.id} already created by submission "
                    f"{submission_key}, updating it"
                )
                # rows written by the earlier attempt are the ones to diff
                original_snapshot = await load_stored_values(str(existing.id))
                saved = await update_header(
                    str(existing.id),
                    header.patient_id,
                    header.doctor_id,
                    header.result_date,
                    **prices,
                )
            else:
                saved = await insert_header(
                    header.patient_id,
                    header.doctor_id,
                    header.result_date,
                    submission_key=submission_key,
                    **prices,
                )
    except (PyMongoError, ResultNotFound, CatalogUnavailable) as exc:
        raise progress.err(SubmitStep.SAVE_HEADER, exc) from exc
    progress.result_id = str(saved.id)
    progress.complete(SubmitStep.SAVE_HEADER)

    plan = reconcile(panel, original_snapshot)
    logger.info(
        f"Result {progress.result_id}: {len(plan.to_delete)} to delete, "
        f"{len(plan.to_update)} to update, {len(plan.to_insert)} to insert"
    )

    try:
        await delete_values(plan.to_delete)
    except PyMongoError as exc:
        raise progress.err(SubmitStep.DELETE_VALUES, exc) from exc
    progress.complete(SubmitStep.DELETE_VALUES)

    try:
        await upsert_values(progress.result_id, plan.to_insert, plan.to_update)
    except PyMongoError as exc:
        raise progress.err(SubmitStep.UPSERT_VALUES, exc) from exc
    progress.complete(SubmitStep.UPSERT_VALUES)

    logger.info(f"Result {progress.result_id} saved")
    return progress.result_id
