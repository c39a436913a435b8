from loguru import logger

from labresult.errors import LabResultError
from labresult.modules.panel.schema import (
    ParameterEntryResponse,
    ResultFormResponse,
    SelectionEntryResponse,
)
from labresult.modules.panel.session import ResultFormSession
from labresult.modules.result.range_check import check_value_range_status


class FormNotFound(LabResultError):
    def __init__(self, form_id: str):
        self.form_id = form_id
        super().__init__(f"Result form {form_id} not found.")


# open forms of this process, keyed by form id
_forms: dict[str, ResultFormSession] = {}


async def open_form(
    patient_id: str | None = None,
    result_id: str | None = None,
) -> ResultFormSession:
    if result_id:
        form = await ResultFormSession.open_edit(result_id)
    else:
        form = ResultFormSession(patient_id=patient_id)
        logger.info(f"Opened form {form.id} for a new result of patient {patient_id}")
    _forms[form.id] = form
    return form


def get_form(form_id: str) -> ResultFormSession:
    form = _forms.get(form_id)
    if form is None:
        raise FormNotFound(form_id)
    return form


def close_form(form_id: str) -> None:
    form = _forms.pop(form_id, None)
    if form is None:
        raise FormNotFound(form_id)
    form.close()


def to_result_form_response(form: ResultFormSession) -> ResultFormResponse:
    panel = form.panel
    return ResultFormResponse(
        form_id=form.id,
        result_id=form.result_id,
        header=form.header,
        selections=[
            SelectionEntryResponse(
                test_type_id=entry.test_type_id,
                test_type_name=entry.test_type_name,
                status=entry.status,
                parameters=[
                    ParameterEntryResponse(
                        parameter_id=p.parameter_id,
                        name=p.name,
                        unit=p.unit,
                        reference_range=p.reference_range,
                        value=p.value,
                        visibility=p.visibility,
                        origin_value_id=p.origin_value_id,
                        range_status=check_value_range_status(
                            p.value, p.reference_range
                        ),
                    )
                    for p in entry.parameters.values()
                ],
            )
            for entry in panel.entries.values()
        ],
        load_flags=panel.load_flags(),
        messages=list(form.messages),
        error=form.error,
    )
