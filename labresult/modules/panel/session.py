import asyncio
from uuid import uuid4

from loguru import logger
from pymongo.errors import PyMongoError

from labresult.errors import CatalogUnavailable, LabResultError, PersistenceError
from labresult.modules.catalog.service import list_parameters
from labresult.modules.panel.hydrate import hydrate_edit_session
from labresult.modules.panel.loader import FetchParameters, load_parameters
from labresult.modules.panel.schema import LoadStatus, PanelState
from labresult.modules.panel.submit import submit_result
from labresult.modules.result.schema import HeaderFields, StoredValue
from labresult.modules.result.storage import load_stored_values


class FormClosed(LabResultError):
    def __init__(self, form_id: str):
        self.form_id = form_id
        super().__init__(f"Result form {form_id} is closed.")


class ResultFormSession:
    """
    Owner of one result form: the only writer of its PanelState.

    Parameter loads run as tasks on the running loop. Once the form is closed
    the pending loads are cancelled and any late completion is dropped.
    """

    def __init__(
        self,
        patient_id: str | None = None,
        fetch_parameters: FetchParameters | None = None,
    ):
        self.id = uuid4().hex
        self.result_id: str | None = None
        self.header = HeaderFields(patient_id=patient_id)
        self.panel = PanelState()
        self.original_snapshot: tuple[StoredValue, ...] = ()
        # reused by every submit of this form so a retried create does not
        # insert a second header
        self.submission_key = uuid4().hex
        self.messages: list[str] = []
        # set once this form wrote rows the snapshot does not know about
        self._snapshot_stale = False
        self.error: str | None = None
        self.closed = False
        self._fetch = fetch_parameters or list_parameters
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    async def open_edit(
        cls,
        result_id: str,
        fetch_parameters: FetchParameters | None = None,
    ) -> "ResultFormSession":
        hydrated = await hydrate_edit_session(result_id)
        session = cls(fetch_parameters=fetch_parameters)
        session.result_id = hydrated.result_id
        session.header = hydrated.header
        session.panel = hydrated.panel
        session.original_snapshot = hydrated.original_snapshot
        logger.info(f"Opened form {session.id} on result {result_id}")
        return session

    @property
    def is_edit_mode(self) -> bool:
        return self.result_id is not None

    # ---------- panel operations ----------

    def select(
        self, test_type_id: str, test_type_name: str | None = None
    ) -> asyncio.Task | None:
        self._ensure_open()
        if self.panel.is_selected(test_type_id):
            return None
        self.panel = self.panel.select(test_type_id, test_type_name)
        return self._start_load(test_type_id)

    def reload(self, test_type_id: str) -> asyncio.Task | None:
        self._ensure_open()
        if not self.panel.is_selected(test_type_id):
            return None
        self.panel = self.panel.reload(test_type_id)
        return self._start_load(test_type_id)

    def deselect(self, test_type_id: str) -> None:
        self._ensure_open()
        self.panel = self.panel.deselect(test_type_id)

    def set_value(self, test_type_id: str, parameter_id: str, value: str) -> None:
        self._ensure_open()
        self.panel = self.panel.set_value(test_type_id, parameter_id, value)

    def remove_parameter(self, test_type_id: str, parameter_id: str) -> None:
        self._ensure_open()
        self.panel = self.panel.remove_parameter(test_type_id, parameter_id)

    def set_header(self, header: HeaderFields) -> None:
        self._ensure_open()
        if self.is_edit_mode or header.patient_id is None:
            # the patient of a result never changes from the form
            header = header.model_copy(update={"patient_id": self.header.patient_id})
        self.header = header

    async def wait_idle(self) -> None:
        while self._tasks and not self.closed:
            await asyncio.gather(*list(self._tasks))

    async def submit(self, header: HeaderFields | None = None) -> str:
        self._ensure_open()
        if header is not None:
            self.set_header(header)
        await self.wait_idle()
        self.error = None
        try:
            if self._snapshot_stale:
                await self._refresh_snapshot()
            result_id = await submit_result(
                self.header,
                self.panel,
                self.original_snapshot,
                self.is_edit_mode,
                result_id=self.result_id,
                submission_key=self.submission_key,
            )
        except PersistenceError as exc:
            self.error = str(exc)
            if exc.result_id and exc.completed_steps:
                # the header exists now, later submits edit it
                self.result_id = exc.result_id
                self._snapshot_stale = True
            raise
        except LabResultError as exc:
            self.error = str(exc)
            raise
        logger.info(f"Form {self.id} submitted as result {result_id}")

        self.result_id = result_id
        self._snapshot_stale = True
        try:
            await self._refresh_snapshot()
        except PersistenceError:
            logger.exception(
                f"Form {self.id} could not reload result {result_id}, "
                f"retrying on next submit"
            )
        return result_id

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in self._tasks:
            task.cancel()
        logger.info(f"Closed form {self.id}, {len(self._tasks)} loads cancelled")

    # ---------- loading ----------

    def _start_load(self, test_type_id: str) -> asyncio.Task:
        generation = self.panel.entries[test_type_id].generation
        task = asyncio.create_task(self._run_load(test_type_id, generation))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_load(self, test_type_id: str, generation: int) -> None:
        update = await load_parameters(test_type_id, generation, self._fetch)
        if self.closed:
            logger.warning(
                f"Form {self.id} closed, dropping parameters of test type {test_type_id}"
            )
            return
        self.panel = update(self.panel)
        entry = self.panel.entry(test_type_id)
        if (
            entry is not None
            and entry.generation == generation
            and entry.status == LoadStatus.ERROR
        ):
            name = entry.test_type_name or test_type_id
            self.messages.append(f"Unable to load parameters for {name}.")

    async def _refresh_snapshot(self) -> None:
        """Reload the rows of the result so the next diff sees what is stored."""
        try:
            values = await load_stored_values(self.result_id)
        except (PyMongoError, CatalogUnavailable) as exc:
            raise PersistenceError(
                "load_result",
                str(exc),
                code=getattr(exc, "code", None),
                result_id=self.result_id,
            ) from exc
        self.original_snapshot = tuple(values)
        self._snapshot_stale = False

    def _ensure_open(self) -> None:
        if self.closed:
            raise FormClosed(self.id)
