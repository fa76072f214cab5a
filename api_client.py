# api_client.py
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import requests

DEFAULT_BASE_URL = "http://localhost:3001"
DEFAULT_TIMEOUT = 15
AI_TIMEOUT = 90  # model calls can be slow


class APIConfigError(RuntimeError):
    pass


class APIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _base_url() -> str:
    url = (os.getenv("API_BASE_URL") or DEFAULT_BASE_URL).strip().rstrip("/")
    if not url.startswith(("http://", "https://")):
        raise APIConfigError("API_BASE_URL must start with http:// or https://")
    return url


class APIClient:
    """
    Thin client for the CV builder HTTP API, used by the Streamlit editor.

    Every non-2xx answer becomes APIError carrying the server's "error"
    message and the status code, so callers can tell 401 from 503 from 502.
    """

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, session: Any = None):
        self.base_url = (base_url or _base_url()).rstrip("/")
        self.token = token
        self.session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, timeout: int = DEFAULT_TIMEOUT, raw: bool = False, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(), timeout=timeout, **kwargs)
        except requests.RequestException as e:
            raise APIError(f"Network error calling {path}") from e

        if resp.status_code >= 400:
            try:
                message = (resp.json() or {}).get("error") or f"Request failed with status {resp.status_code}"
            except ValueError:
                message = f"Request failed with status {resp.status_code}"
            raise APIError(message, resp.status_code)

        if raw:
            return resp.content
        try:
            return resp.json()
        except ValueError as e:
            raise APIError(f"Invalid JSON returned by {path}", resp.status_code) from e

    # ---------- auth ----------
    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = data.get("token")
        return data

    def register(self, username: str, email: str, password: str) -> Dict[str, Any]:
        data = self._request(
            "POST", "/api/auth/register", json={"username": username, "email": email, "password": password}
        )
        self.token = data.get("token")
        return data

    def me(self) -> Dict[str, Any]:
        return self._request("GET", "/api/users/me")

    def update_me(self, **fields) -> Dict[str, Any]:
        return self._request("PUT", "/api/users/me", json={k: v for k, v in fields.items() if v})

    # ---------- CVs ----------
    def list_cvs(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/cvs")

    def get_cv(self, cv_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/cvs/{cv_id}")

    def create_cv(self, cv_data: Dict[str, Any], template_id: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
        return self._request(
            "POST", "/api/cvs", json={"cv_data": cv_data, "template_id": template_id, "name": name}
        )

    def update_cv(self, cv_id: int, **fields) -> Dict[str, Any]:
        return self._request("PUT", f"/api/cvs/{cv_id}", json=fields)

    def delete_cv(self, cv_id: int) -> None:
        self._request("DELETE", f"/api/cvs/{cv_id}")

    def export_cv(self, cv_id: int, fmt: str = "pdf", theme: Optional[str] = None) -> bytes:
        params = {"format": fmt}
        if theme:
            params["theme"] = theme
        return self._request("GET", f"/api/cvs/{cv_id}/export", params=params, timeout=60, raw=True)

    def templates(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/cv-templates")

    # ---------- AI ----------
    def generate(self, section_type: str, user_input: str, context: Optional[Dict[str, Any]] = None) -> Any:
        """Raw JSON fragment; pass it through ai_normalize-shaped models before merging."""
        payload = {"sectionType": section_type, "userInput": user_input, "context": context or {}}
        return self._request("POST", "/api/ai/generate", json=payload, timeout=AI_TIMEOUT)

    # ---------- admin ----------
    def admin_users(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/admin/users")

    def admin_toggle_active(self, user_id: int) -> Dict[str, Any]:
        return self._request("PUT", f"/api/admin/users/{user_id}/toggle-active")

    def admin_overview(self, days: int = 30) -> Dict[str, Any]:
        return self._request("GET", "/api/admin/analytics/overview", params={"days": days})

    def admin_ga_settings(self) -> Dict[str, Any]:
        return self._request("GET", "/api/admin/settings/ga")

    def save_admin_ga_settings(self, measurement_id: str, property_id: str) -> Dict[str, Any]:
        return self._request(
            "POST", "/api/admin/settings/ga", json={"measurementId": measurement_id, "propertyId": property_id}
        )
