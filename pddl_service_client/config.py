import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

CONFIG_PATH = Path("pddl_service.json")
ENV_OVERRIDE_KEY = "PDDL_CLIENT_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}

ServiceKind = Literal["sync", "async", "package"]


class PlannerRunConfiguration(BaseModel):
    authentication_token: Optional[str] = None
    # Raw query string appended to the planner URL, e.g. "planner=lama&timeout=30"
    options: Optional[str] = None
    timeout: Optional[float] = None
    args: Dict[str, Any] = Field(default_factory=dict)

    @property
    def authenticated(self) -> bool:
        return bool(self.authentication_token)


class AsyncServiceConfiguration(PlannerRunConfiguration):
    plan_format: str = Field(default="JSON", alias="planFormat")
    plan_time_unit: Optional[str] = Field(default=None, alias="planTimeUnit")
    search_debugger: Optional[Dict[str, Any]] = Field(default=None, alias="searchDebugger")

    model_config = {"extra": "allow", "populate_by_name": True}

    def to_service_payload(self) -> Dict[str, Any]:
        data = self.model_dump(
            by_alias=True,
            exclude_none=True,
            exclude={"authentication_token", "options", "args"},
        )
        data.update(self.args)
        return data


class ClientSettings(BaseModel):
    service_url: str = "http://localhost:8087/solve"
    service_kind: ServiceKind = "sync"
    authentication_token: Optional[str] = None
    request_options: Optional[str] = None
    timeout_s: Optional[float] = None
    plan_format: str = "JSON"
    plan_time_unit: Optional[str] = None
    package_index_url: str = "https://solver.planning.domains:5001/package"
    poll_interval_s: float = 0.5
    max_poll_duration_s: Optional[float] = None
    epsilon: float = 1e-3

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        if data.get("authentication_token"):
            data["authentication_token"] = "********"
        return data

    def run_configuration(self) -> PlannerRunConfiguration:
        common = {
            "authentication_token": self.authentication_token,
            "options": self.request_options,
            "timeout": self.timeout_s,
        }
        if self.service_kind == "async":
            return AsyncServiceConfiguration(
                planFormat=self.plan_format,
                planTimeUnit=self.plan_time_unit,
                **common,
            )
        return PlannerRunConfiguration(**common)


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "service_url": os.getenv("PDDL_SERVICE_URL"),
        "service_kind": os.getenv("PDDL_SERVICE_KIND"),
        "authentication_token": os.getenv("PDDL_SERVICE_TOKEN"),
        "request_options": os.getenv("PDDL_SERVICE_OPTIONS"),
        "timeout_s": os.getenv("PDDL_SERVICE_TIMEOUT"),
        "plan_format": os.getenv("PDDL_PLAN_FORMAT"),
        "plan_time_unit": os.getenv("PDDL_PLAN_TIME_UNIT"),
        "package_index_url": os.getenv("PDDL_PACKAGE_INDEX_URL"),
        "poll_interval_s": os.getenv("PDDL_POLL_INTERVAL"),
        "max_poll_duration_s": os.getenv("PDDL_MAX_POLL_DURATION"),
        "epsilon": os.getenv("PDDL_EPSILON"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    for key in ("timeout_s", "poll_interval_s", "max_poll_duration_s", "epsilon"):
        if key in cleaned:
            cleaned[key] = float(cleaned[key])
    if "service_kind" in cleaned:
        cleaned["service_kind"] = cleaned["service_kind"].strip().lower()
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def load_settings(config_path: Optional[Path] = None) -> ClientSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except (OSError, ValueError):
            file_data = {}
        if not isinstance(file_data, dict):
            file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    if not merged.get("authentication_token") and env_data.get("authentication_token"):
        merged["authentication_token"] = env_data["authentication_token"]
    return ClientSettings(**merged)


def save_settings(settings: ClientSettings, config_path: Optional[Path] = None) -> None:
    path = config_path or CONFIG_PATH
    path.write_text(settings.model_dump_json(indent=2))
