from typing import Optional, cast

from .async_service import PlannerAsyncService
from .config import AsyncServiceConfiguration, ClientSettings
from .http import PlanningHttpClient
from .package_service import PlannerPackagePreviewService
from .service import PlannerService
from .sync_service import PlannerSyncService


def create_planner(settings: ClientSettings, transport: Optional[PlanningHttpClient] = None) -> PlannerService:
    configuration = settings.run_configuration()
    if settings.service_kind == "async":
        configuration = cast(AsyncServiceConfiguration, configuration)
        return PlannerAsyncService(settings.service_url, configuration, transport)
    if settings.service_kind == "package":
        return PlannerPackagePreviewService(
            settings.service_url,
            configuration,
            transport,
            poll_interval_s=settings.poll_interval_s,
            max_poll_duration_s=settings.max_poll_duration_s,
        )
    return PlannerSyncService(settings.service_url, configuration, transport)
