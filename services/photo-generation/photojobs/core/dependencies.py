from functools import lru_cache

from photojobs.connections.edit_api_client import EditApiClient
from photojobs.connections.fal_queue_provider import FalQueueAPIProvider
from photojobs.connections.json_history_store import JsonFileHistoryStore
from photojobs.core.config import settings
from photojobs.core.exceptions import ProviderNotConfiguredError
from photojobs.domain.interfaces import HistoryStore, QueueProvider
from photojobs.services.edit_service import EditService
from photojobs.services.job_controller import JobController


@lru_cache()
def get_history_store() -> HistoryStore:
    """
    Dependency Factory: the one history store shared by every tool surface.
    """
    return JsonFileHistoryStore(settings.HISTORY_PATH)


@lru_cache()
def get_edit_client() -> EditApiClient:
    return EditApiClient.from_settings(settings)


def get_queue_provider() -> QueueProvider:
    """
    Dependency Factory: fal queue client.
    Not cached, the key may be provided after startup.
    """
    key = (settings.FAL_KEY or "").strip()
    if not key:
        raise ProviderNotConfiguredError("FAL key not configured. Set FAL_KEY (or FAL_API_KEY) in your environment.")
    return FalQueueAPIProvider(api_key=key, base_url=settings.FAL_QUEUE_URL, timeout=settings.REQUEST_TIMEOUT)


def get_edit_service() -> EditService:
    return EditService(provider=get_queue_provider(), default_model=settings.default_model)


def create_job_controller(tool: str) -> JobController:
    """
    One controller per tool surface (photo tools, headshot, ...).
    Controllers share the history store and nothing else.
    """
    client = get_edit_client()
    return JobController(
        submitter=client,
        status_source=client,
        history=get_history_store(),
        tool=tool,
        interval=settings.POLLING_INTERVAL,
        timeout=settings.GENERATION_TIMEOUT,
        max_poll_failures=settings.MAX_POLL_FAILURES,
        poll_failure_backoff=settings.POLL_FAILURE_BACKOFF,
    )
