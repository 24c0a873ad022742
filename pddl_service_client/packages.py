from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .errors import ContractViolationError
from .http import PlanningHttpClient

ArgumentValue = Union[bool, int, float, str]


class EndpointServiceArgumentChoice(BaseModel):
    display_value: str
    value: ArgumentValue


class EndpointServiceArgument(BaseModel):
    name: str
    description: str = ""
    type: str
    default: Optional[ArgumentValue] = None
    # only for 'categorical' arguments
    choices: List[EndpointServiceArgumentChoice] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class EndpointService(BaseModel):
    args: List[EndpointServiceArgument] = Field(default_factory=list)
    call: Optional[str] = None
    return_: Optional[Dict[str, Any]] = Field(default=None, alias="return")

    model_config = {"extra": "allow", "populate_by_name": True}


class PackageEndpoint(BaseModel):
    services: Dict[str, EndpointService] = Field(default_factory=dict)

    model_config = {"extra": "allow"}


class PackageManifest(BaseModel):
    name: str = ""
    package_name: Optional[str] = None
    description: Optional[str] = None
    endpoint: PackageEndpoint = Field(default_factory=PackageEndpoint)
    runnable: bool = False
    install_size: Optional[str] = Field(default=None, alias="install-size")
    dependencies: List[str] = Field(default_factory=list)

    model_config = {"extra": "allow", "populate_by_name": True}

    def solve_service(self) -> Optional[EndpointService]:
        return self.endpoint.services.get("solve")

    def solve_path(self) -> str:
        return f"package/{self.package_name or self.name}/solve"


class PackagedPlanners:
    """Lists the planner packages a planning-as-a-service server offers."""

    def __init__(self, package_url: str, transport: Optional[PlanningHttpClient] = None):
        self.package_url = package_url
        self._owns_transport = transport is None
        self.transport = transport or PlanningHttpClient()

    async def get_manifests(self) -> List[PackageManifest]:
        data = await self.transport.get_json(self.package_url, friendly_name="Planner package index")
        if isinstance(data, dict):
            # some servers key the index by package name
            data = [{"package_name": key, **value} for key, value in data.items() if isinstance(value, dict)]
        if not isinstance(data, list):
            raise ContractViolationError(f"Unexpected package index from {self.package_url}")
        return [PackageManifest.model_validate(item) for item in data if isinstance(item, dict)]

    async def close(self) -> None:
        if self._owns_transport:
            await self.transport.close()
