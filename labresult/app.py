from fastapi import FastAPI, Request
from fastapi.concurrency import asynccontextmanager
from fastapi.responses import JSONResponse

from labresult.errors import (
    CatalogUnavailable,
    PersistenceError,
    ResultNotFound,
    ValidationError,
)
from labresult.infrastructure.database import init_db
from labresult.modules.catalog.schema import TestParameterResponse, TestTypeResponse
from labresult.modules.catalog.service import (
    list_parameters,
    list_test_types,
    search_test_types,
)
from labresult.modules.panel.schema import (
    OpenResultFormRequest,
    ParameterValueRequest,
    ResultFormResponse,
    SubmitResultResponse,
)
from labresult.modules.panel.service import (
    FormNotFound,
    close_form,
    get_form,
    open_form,
    to_result_form_response,
)
from labresult.modules.panel.session import FormClosed
from labresult.modules.result.schema import (
    HeaderFields,
    ResultHeaderResponse,
    UpdateResultStatusRequest,
    ValueRangeCheckResponse,
)
from labresult.modules.result.service import check_result_ranges
from labresult.modules.result.storage import (
    to_result_header_response,
    update_result_status,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    # Add any cleanup logic here if needed


app = FastAPI(title="Lab Result Service", lifespan=lifespan)


# ================ ERRORS ====================


@app.exception_handler(ResultNotFound)
@app.exception_handler(FormNotFound)
async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(FormClosed)
async def form_closed_handler(request: Request, exc: FormClosed) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def validation_error_handler(
    request: Request, exc: ValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "problems": exc.problems},
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(
    request: Request, exc: PersistenceError
) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={
            "detail": str(exc),
            "step": exc.step,
            "completed_steps": exc.completed_steps,
            "code": exc.code,
            "result_id": exc.result_id,
        },
    )


@app.exception_handler(CatalogUnavailable)
async def catalog_unavailable_handler(
    request: Request, exc: CatalogUnavailable
) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


# ================ CATALOG ====================


@app.get("/")
async def root():
    return {"message": "Welcome to the Lab Result Service!"}


@app.get("/test-types")
async def test_types_handler(search: str = "") -> list[TestTypeResponse]:
    return search_test_types(search, await list_test_types())


@app.get("/test-types/{test_type_id}/parameters")
async def test_parameters_handler(test_type_id: str) -> list[TestParameterResponse]:
    return await list_parameters(test_type_id)


# ================ RESULT FORMS ====================


@app.post("/result-forms")
async def open_result_form_handler(
    body: OpenResultFormRequest,
) -> ResultFormResponse:
    form = await open_form(patient_id=body.patient_id, result_id=body.result_id)
    return to_result_form_response(form)


@app.get("/result-forms/{form_id}")
async def result_form_handler(form_id: str) -> ResultFormResponse:
    return to_result_form_response(get_form(form_id))


@app.put("/result-forms/{form_id}/header")
async def result_form_header_handler(
    form_id: str,
    header: HeaderFields,
) -> ResultFormResponse:
    form = get_form(form_id)
    form.set_header(header)
    return to_result_form_response(form)


@app.post("/result-forms/{form_id}/test-types/{test_type_id}")
async def select_test_type_handler(
    form_id: str,
    test_type_id: str,
    name: str | None = None,
    wait: bool = False,
) -> ResultFormResponse:
    form = get_form(form_id)
    task = form.select(test_type_id, name)
    if wait and task is not None:
        await task
    return to_result_form_response(form)


@app.post("/result-forms/{form_id}/test-types/{test_type_id}/reload")
async def reload_test_type_handler(
    form_id: str,
    test_type_id: str,
    wait: bool = False,
) -> ResultFormResponse:
    form = get_form(form_id)
    task = form.reload(test_type_id)
    if wait and task is not None:
        await task
    return to_result_form_response(form)


@app.delete("/result-forms/{form_id}/test-types/{test_type_id}")
async def deselect_test_type_handler(
    form_id: str,
    test_type_id: str,
) -> ResultFormResponse:
    form = get_form(form_id)
    form.deselect(test_type_id)
    return to_result_form_response(form)


@app.put("/result-forms/{form_id}/test-types/{test_type_id}/parameters/{parameter_id}")
async def set_parameter_value_handler(
    form_id: str,
    test_type_id: str,
    parameter_id: str,
    body: ParameterValueRequest,
) -> ResultFormResponse:
    form = get_form(form_id)
    form.set_value(test_type_id, parameter_id, body.value)
    return to_result_form_response(form)


@app.delete(
    "/result-forms/{form_id}/test-types/{test_type_id}/parameters/{parameter_id}"
)
async def remove_parameter_handler(
    form_id: str,
    test_type_id: str,
    parameter_id: str,
) -> ResultFormResponse:
    form = get_form(form_id)
    form.remove_parameter(test_type_id, parameter_id)
    return to_result_form_response(form)


@app.post("/result-forms/{form_id}/submit")
async def submit_result_form_handler(
    form_id: str,
    header: HeaderFields | None = None,
) -> SubmitResultResponse:
    form = get_form(form_id)
    result_id = await form.submit(header)
    return SubmitResultResponse(result_id=result_id)


@app.delete("/result-forms/{form_id}", status_code=204)
async def close_result_form_handler(form_id: str) -> None:
    close_form(form_id)


# ================ RESULTS ====================


@app.patch("/results/{result_id}/status")
async def result_status_handler(
    result_id: str,
    body: UpdateResultStatusRequest,
) -> ResultHeaderResponse:
    result = await update_result_status(result_id, body.status)
    return to_result_header_response(result)


@app.get("/results/{result_id}/range-check")
async def result_range_check_handler(
    result_id: str,
) -> list[ValueRangeCheckResponse]:
    return await check_result_ranges(result_id)
