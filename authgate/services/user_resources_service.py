"""
Deletion of user-owned resources in downstream microservices.

Each step is a DELETE through the API gateway. Failures never raise: they
are logged and reported as a result with count -1 so the caller can record
which steps failed.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import httpx
import structlog
from authgate.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResourceStep:
    """A downstream resource type removed during user deletion"""
    name: str
    flag: str
    path: str
    result_key: str = "data"


RESOURCE_STEPS = (
    ResourceStep("datasets", "datasetsDeleted", "/v1/dataset/by-user/{user_id}", "deletedDatasets"),
    ResourceStep("layers", "layersDeleted", "/v1/layer/by-user/{user_id}", "deletedLayers"),
    ResourceStep("widgets", "widgetsDeleted", "/v1/widget/by-user/{user_id}", "deletedWidgets"),
    ResourceStep("userData", "userDataDeleted", "/v2/user/{user_id}"),
    ResourceStep("collections", "collectionsDeleted", "/v1/collection/by-user/{user_id}"),
    ResourceStep("favourites", "favouritesDeleted", "/v1/favourite/by-user/{user_id}"),
    ResourceStep("areas", "areasDeleted", "/v2/area/by-user/{user_id}"),
    ResourceStep("stories", "storiesDeleted", "/v1/story/by-user/{user_id}"),
    ResourceStep("subscriptions", "subscriptionsDeleted", "/v1/subscriptions/by-user/{user_id}"),
    ResourceStep("dashboards", "dashboardsDeleted", "/v1/dashboard/by-user/{user_id}"),
    ResourceStep("profiles", "profilesDeleted", "/v1/profile/{user_id}"),
    ResourceStep("topics", "topicsDeleted", "/v1/topic/by-user/{user_id}"),
)


@dataclass
class DeleteResourceResult:
    count: int
    deleted_data: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.count >= 0


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


class UserResourcesService:
    """Calls the downstream services that own user resources"""

    def __init__(
        self,
        base_url: str = settings.GATEWAY_URL,
        api_key: str = settings.MICROSERVICE_API_KEY,
        timeout: float = settings.DOWNSTREAM_REQUEST_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def delete_resource(self, step: ResourceStep, user_id: str) -> DeleteResourceResult:
        """Run one deletion step; never raises"""
        path = step.path.format(user_id=user_id)
        try:
            response = await self._client.delete(path, headers={"x-api-key": self.api_key})
            if response.status_code == 404:
                return DeleteResourceResult(count=0)
            response.raise_for_status()
            payload: Dict[str, Any] = response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Downstream resource deletion failed",
                resource=step.name,
                user_id=user_id,
                error=str(e),
            )
            return DeleteResourceResult(count=-1, error=str(e))

        deleted = _as_list(payload.get(step.result_key))
        return DeleteResourceResult(count=len(deleted), deleted_data=deleted)
