"""Custom exceptions used for feature gating enforcement."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status

UPGRADE_PATH = "/subscription"


@dataclass
class FeatureGateError(Exception):
    """A feature the user's effective plan does not include.

    The payload points clients at the subscription page so they can upgrade.
    """

    code: str
    message: str
    status_code: int = status.HTTP_403_FORBIDDEN
    detail: Optional[Mapping[str, Any]] = None
    upgrade_path: str = UPGRADE_PATH

    def __post_init__(self) -> None:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "upgradePath": self.upgrade_path,
        }
        if self.detail:
            payload.update(self.detail)
        object.__setattr__(self, "_payload", payload)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        return self._payload

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=dict(self.payload))
