import os
from typing import List

from pydantic import BaseModel, Field

from .session import AdmissionPolicy, CreatorLeavePolicy


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 5000
    reload: bool = False
    log_level: str = "info"

    admission: AdmissionPolicy = AdmissionPolicy.GATED
    creator_leaves: CreatorLeavePolicy = CreatorLeavePolicy.TRANSFER
    code_length: int = Field(default=6, ge=4, le=12)
    stale_after: float = Field(default=3600.0, gt=0)   # seconds without activity
    janitor_interval: float = Field(default=60.0, gt=0)

    cors_origins: List[str] = ["*"]
    # GET /calls lists every live call with member ids; keep off in production
    expose_call_list: bool = False

    @classmethod
    def from_env(cls, env=None) -> "Settings":
        env = os.environ if env is None else env
        values = {}
        if "HOST" in env:
            values["host"] = env["HOST"]
        if "PORT" in env:
            values["port"] = int(env["PORT"])
        if "DEBUG" in env:
            values["reload"] = _flag(env["DEBUG"])

        prefix = "CALL_RELAY_"
        for name in ("log_level", "admission", "creator_leaves", "code_length",
                     "stale_after", "janitor_interval"):
            key = prefix + name.upper()
            if key in env:
                values[name] = env[key]
        if prefix + "CORS_ORIGINS" in env:
            values["cors_origins"] = [o.strip() for o in env[prefix + "CORS_ORIGINS"].split(",") if o.strip()]
        if prefix + "EXPOSE_CALL_LIST" in env:
            values["expose_call_list"] = _flag(env[prefix + "EXPOSE_CALL_LIST"])
        return cls(**values)
