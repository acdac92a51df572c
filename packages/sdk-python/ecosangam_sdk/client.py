"""EcoSangam MRV API client."""

import requests
from typing import Optional


class EcoSangamClient:
    """Client for the EcoSangam MRV API."""

    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None):
        """Initialize client."""
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _request(self, method: str, path: str, **kwargs):
        response = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        response.raise_for_status()
        if response.status_code == 204:
            return None
        return response.json()

    def login(self, email: str, credential: str) -> dict:
        """Log in and use the returned bearer token for later calls."""
        session = self._request("POST", "/v1/auth/login", json={"email": email, "credential": credential})
        self.session.headers.update({"Authorization": f"Bearer {session['token']}"})
        return session

    def logout(self) -> None:
        self._request("POST", "/v1/auth/logout")
        self.session.headers.pop("Authorization", None)

    def list_projects(self, status: Optional[str] = None) -> list[dict]:
        params = {"status": status} if status else None
        return self._request("GET", "/v1/projects", params=params)

    def create_project(
        self,
        name: str,
        ecosystem_type: str,
        lat: float,
        lng: float,
        area_hectares: float,
        methodology: Optional[str] = None,
        state: Optional[str] = None,
        district: Optional[str] = None,
    ) -> dict:
        """Register a project; it starts ``pending``."""
        payload = {
            "name": name,
            "ecosystem_type": ecosystem_type,
            "location": {"lat": lat, "lng": lng, "state": state, "district": district},
            "area_hectares": area_hectares,
            "methodology": methodology,
        }
        return self._request("POST", "/v1/projects", json=payload)

    def save_measurement(self, device_id: str, measurement: dict) -> dict:
        """Queue a measurement on a device's offline queue."""
        return self._request("POST", f"/v1/devices/{device_id}/measurements", json=measurement)

    def sync(self, device_id: str) -> dict:
        """Sync a device's queue; returns synced and failed measurement ids."""
        return self._request("POST", f"/v1/devices/{device_id}/sync")

    def open_review(
        self,
        project_id: str,
        verification_method: str,
        evidence_items: Optional[list[dict]] = None,
        findings: Optional[dict] = None,
    ) -> dict:
        payload = {
            "project_id": project_id,
            "verification_method": verification_method,
            "evidence_items": evidence_items or [],
            "findings": findings,
        }
        return self._request("POST", "/v1/verifications", json=payload)

    def approve(self, verification_id: str) -> dict:
        """Approve a review; the response carries the minted token, if any."""
        return self._request("POST", f"/v1/verifications/{verification_id}/approve")

    def reject(self, verification_id: str, reason: str) -> dict:
        return self._request("POST", f"/v1/verifications/{verification_id}/reject", json={"reason": reason})

    def get_balance(self, owner: Optional[str] = None) -> dict:
        params = {"owner": owner} if owner else None
        return self._request("GET", "/v1/credits/balance", params=params)

    def get_transactions(self, owner: Optional[str] = None, limit: Optional[int] = None) -> list[dict]:
        """Credit movements to or from ``owner``, newest first."""
        params = {key: value for key, value in (("owner", owner), ("limit", limit)) if value is not None}
        return self._request("GET", "/v1/credits/transactions", params=params or None)

    def get_transaction(self, transaction_hash: str) -> dict:
        return self._request("GET", f"/v1/credits/transactions/{transaction_hash}")

    def transfer(self, token_id: str, from_owner: str, to_owner: str, amount: int) -> dict:
        payload = {"from_owner": from_owner, "to_owner": to_owner, "amount": amount}
        return self._request("POST", f"/v1/credits/tokens/{token_id}/transfer", json=payload)

    def retire(self, token_id: str, amount: int, reason: str) -> dict:
        payload = {"amount": amount, "reason": reason}
        return self._request("POST", f"/v1/credits/tokens/{token_id}/retire", json=payload)
