from typing import Awaitable, Callable

from loguru import logger

from labresult.errors import CatalogUnavailable
from labresult.modules.catalog.schema import TestParameterResponse
from labresult.modules.catalog.service import list_parameters
from labresult.modules.panel.schema import PanelState

FetchParameters = Callable[[str], Awaitable[list[TestParameterResponse]]]
PanelUpdate = Callable[[PanelState], PanelState]


async def load_parameters(
    test_type_id: str,
    generation: int,
    fetch: FetchParameters = list_parameters,
) -> PanelUpdate:
    """
    Fetch the definitions of one selected test type.

    Returns the update to apply to whatever the panel looks like once the
    fetch is done, not to the panel it was started from. The update is a no-op
    when the selection moved on in between.
    """
    try:
        parameters = await fetch(test_type_id)
    except CatalogUnavailable as exc:
        logger.error(f"Parameter load failed for test type {test_type_id}: {exc}")
        return lambda panel: panel.fail_load(test_type_id, generation)
    except Exception:
        logger.exception(f"Unexpected error loading test type {test_type_id}")
        return lambda panel: panel.fail_load(test_type_id, generation)

    logger.debug(
        f"Fetched {len(parameters)} parameters for test type {test_type_id} "
        f"(generation {generation})"
    )
    return lambda panel: panel.complete_load(test_type_id, generation, parameters)
