"""Per-call request metadata threaded from transport to audit log."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CallContext:
    session_id: str = ""
    transport: str = "stdio"
    user: str | None = None
    client_id: str | None = None

    def audit_details(self) -> dict[str, str]:
        details = {"transport": self.transport}
        if self.session_id:
            details["session_id"] = self.session_id
        return details
