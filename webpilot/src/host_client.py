"""Thin wrapper around the webpilot HTTP host."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from webpilot.src.utils.config import CONFIG, HostConfig
from webpilot.src.utils.errors import HostUnavailableError


class HostClient:
    def __init__(self, config: Optional[HostConfig] = None, session: Optional[requests.Session] = None) -> None:
        self.config = config or CONFIG.host
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.config.host_url.rstrip('/')}{path}"
        try:
            response = self.http.request(method, url, timeout=self.config.request_timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise HostUnavailableError(f"{method} {url} failed: {exc}") from exc
        return response.json() if response.content else {}

    def execute_command(
        self,
        command: str,
        session_id: str = "default",
        max_steps: Optional[int] = None,
        confidence_threshold: Optional[float] = None,
        start_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"command": command, "session_id": session_id}
        if max_steps is not None:
            payload["max_steps"] = max_steps
        if confidence_threshold is not None:
            payload["confidence_threshold"] = confidence_threshold
        if start_url:
            payload["start_url"] = start_url
        return self._request("POST", "/execute-command", json=payload)

    def stop(self, session_id: str = "default") -> Dict[str, Any]:
        return self._request("POST", "/stop", json={"session_id": session_id})

    def snapshot(self, session_id: str = "default") -> Dict[str, Any]:
        return self._request("POST", "/snapshot", json={"session_id": session_id})

    def explain(self, session_id: str = "default") -> Dict[str, Any]:
        return self._request("POST", "/explain", json={"session_id": session_id})

    def browser(self, action: str, session_id: str = "default", url: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/browser", json={"session_id": session_id, "action": action, "url": url})

    def logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self._request("GET", "/logs", params={"limit": limit}).get("logs", []))

    def clear_logs(self) -> bool:
        return bool(self._request("DELETE", "/logs").get("success"))

    def close_session(self, session_id: str = "default") -> Dict[str, Any]:
        return self._request("POST", "/close-session", json={"session_id": session_id})
