class LabResultError(Exception):
    """Base class for every error raised by the result form engine."""


class CatalogUnavailable(LabResultError):
    def __init__(self, test_type_id: str | None = None, message: str | None = None):
        self.test_type_id = test_type_id
        if message is None:
            message = (
                f"Unable to load parameters for test type {test_type_id}."
                if test_type_id
                else "Unable to load the test type catalog."
            )
        super().__init__(message)


class ValidationError(LabResultError):
    """Header or panel is not submittable. No store call was made."""

    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("; ".join(problems))


class PersistenceError(LabResultError):
    """
    A store call of the submit sequence failed.

    Steps listed in `completed_steps` stay committed, nothing is rolled back.
    `code` is the store's machine-readable error code when it gave one.
    """

    def __init__(
        self,
        step: str,
        message: str,
        completed_steps: list[str] | None = None,
        code: int | str | None = None,
        result_id: str | None = None,
    ):
        self.step = step
        self.completed_steps = completed_steps or []
        self.code = code
        # header id once the header step is committed
        self.result_id = result_id
        super().__init__(message)


class ResultNotFound(LabResultError):
    def __init__(self, result_id: str):
        self.result_id = result_id
        super().__init__(f"Result {result_id} not found.")
