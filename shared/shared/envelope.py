"""Slim API wire-format models.

Pure data — no I/O, no business logic.  Both the host application and the
client import these for serialisation only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# ── Response codes ───────────────────────────────────────────────────
SUCCESS = 0
BAD_REQUEST = 400
INTERNAL_ERROR = 500

# ── Meta parameters ──────────────────────────────────────────────────
# Reserved request keys, read from the query string or the posted form.
META_METHOD = "~method"
META_FORMAT = "~format"
META_CALLBACK = "~callback"

# ── Request formats ──────────────────────────────────────────────────
FORMAT_JSON = "json"
FORMAT_POST = "post"
FORMAT_GET = "get"

FORM_FORMATS = frozenset({FORMAT_POST, FORMAT_GET})
KNOWN_FORMATS = FORM_FORMATS | {FORMAT_JSON}


# ── Models ───────────────────────────────────────────────────────────
@dataclass(slots=True, frozen=True)
class ApiResponse:
    """The envelope every API call answers with.

    ``code`` is ``0`` on success; anything else is either a transport-level
    failure (400/500) or an application-defined business code.
    """

    code: int = SUCCESS
    message: str = ""
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "ApiResponse":
        """Parse a raw dict into a response; raises ``ValueError`` on bad input."""
        if not isinstance(raw, dict):
            raise ValueError("response must be a JSON object")
        code = raw.get("code")
        if not isinstance(code, int) or isinstance(code, bool):
            raise ValueError("missing or invalid 'code' field")
        message = raw.get("message") or ""
        if not isinstance(message, str):
            raise ValueError("'message' must be a string")
        return cls(code=code, message=message, data=raw.get("data"))

    @property
    def ok(self) -> bool:
        return self.code == SUCCESS

    # -- Factories -----------------------------------------------------
    @classmethod
    def success(cls, data: Any = None) -> "ApiResponse":
        return cls(code=SUCCESS, data=data)

    @classmethod
    def fail(cls, code: int, message: str, data: Any = None) -> "ApiResponse":
        return cls(code=code, message=message, data=data)
