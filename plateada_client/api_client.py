"""Magia Plateada API client - authentication, discovery, sessions and credits."""
from dataclasses import dataclass
from typing import Any, Optional

import httpx


@dataclass
class UserSession:
    """User session data."""
    access_token: str
    user_id: str
    email: str
    display_name: str
    role: str
    credits: int


class APIError(Exception):
    """Error response from the server."""

    def __init__(self, status_code: int, kind: str, detail: str, body: Optional[dict] = None):
        self.status_code = status_code
        self.kind = kind
        self.detail = detail
        self.body = body or {}
        super().__init__(f"{status_code} {kind}: {detail}")


class NotAuthenticatedError(APIError):
    def __init__(self):
        super().__init__(401, "unauthorized", "Not authenticated. Please login first.")


class InsufficientCreditsError(APIError):
    """402 from the server. `credits` is the balance it reported."""

    @property
    def credits(self) -> int:
        return int(self.body.get("credits", 0))


class PlateadaAPI:
    """API client for the Magia Plateada server."""

    def __init__(
        self,
        server_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.session: Optional[UserSession] = None
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def is_authenticated(self) -> bool:
        """Check if user is authenticated."""
        return self.session is not None

    @property
    def credits(self) -> int:
        """Get last known credits."""
        return self.session.credits if self.session else 0

    def _headers(self) -> dict:
        """Get request headers with auth token."""
        headers = {"Content-Type": "application/json"}
        if self.session:
            headers["Authorization"] = f"Bearer {self.session.access_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self._client.request(
            method,
            f"{self.server_url}{path}",
            headers=self._headers(),
            **kwargs,
        )

        if response.is_success:
            return response.json()

        try:
            body = response.json()
        except ValueError:
            body = {"error": "http_error", "detail": response.text}

        error_cls = InsufficientCreditsError if response.status_code == 402 else APIError
        raise error_cls(
            response.status_code,
            body.get("error", "http_error"),
            str(body.get("detail", "")),
            body,
        )

    def _require_auth(self) -> None:
        if not self.is_authenticated:
            raise NotAuthenticatedError()

    def _start_session(self, data: dict) -> UserSession:
        user = data["user"]
        self.session = UserSession(
            access_token=data["token"],
            user_id=user["id"],
            email=user["email"],
            display_name=user["displayName"],
            role=user["role"],
            credits=user["credits"],
        )
        return self.session

    # ============= Auth =============

    def register(self, email: str, password: str, display_name: str, role: str = "client") -> UserSession:
        """Create an account and log in."""
        data = self._request("POST", "/auth/register", json={
            "email": email,
            "password": password,
            "displayName": display_name,
            "role": role,
        })
        return self._start_session(data)

    def login(self, email: str, password: str) -> UserSession:
        """Log in with email and password."""
        data = self._request("POST", "/auth/login", json={"email": email, "password": password})
        return self._start_session(data)

    def login_with_token(self, access_token: str) -> UserSession:
        """Restore a session from a stored access token."""
        self.session = UserSession(access_token, "", "", "", "", 0)
        try:
            data = self._request("GET", "/auth/me")
        except APIError:
            self.session = None
            raise
        return self._start_session({"token": access_token, "user": data["user"]})

    def logout(self):
        """Clear current session."""
        self.session = None

    # ============= Experts =============

    def list_experts(
        self,
        zone: Optional[str] = None,
        modality: Optional[str] = None,
        service_category: Optional[str] = None,
    ) -> list[dict]:
        """Ranked experts matching the filters."""
        params = {
            key: value for key, value in {
                "zone": zone,
                "modality": modality,
                "service_category": service_category,
            }.items() if value
        }
        return self._request("GET", "/experts", params=params)["experts"]

    def create_expert_profile(self, profile: dict) -> dict:
        """Create the caller's expert profile. `profile` uses the wire (camelCase) keys."""
        self._require_auth()
        return self._request("POST", "/experts", json=profile)["expert"]

    def get_expert_dashboard(self) -> dict:
        """Own profile (or None) with pendingSessions, urgentSessions and confirmedSessions."""
        self._require_auth()
        return self._request("GET", "/experts/me")

    def update_profile_field(self, field: str, value: str) -> None:
        self._require_auth()
        self._request("PUT", "/experts/profile", json={"field": field, "value": value})

    def set_expert_status(self, status: str) -> str:
        self._require_auth()
        return self._request("PUT", "/experts/status", json={"status": status})["status"]

    def set_membership(self, membership_type: str) -> bool:
        """Switch membership. Returns whether the profile is now featured."""
        self._require_auth()
        data = self._request("PUT", "/experts/membership", json={"membershipType": membership_type})
        return data["isFeatured"]

    # ============= Sessions =============

    def request_session(
        self,
        expert_id: str,
        requested_date: str,
        requested_time: str = "",
        requested_duration: str = "1 hora",
    ) -> dict:
        """Request a session. Raises InsufficientCreditsError on 402."""
        self._require_auth()
        data = self._request("POST", "/sessions", json={
            "expertId": expert_id,
            "requestedDate": requested_date,
            "requestedTime": requested_time,
            "requestedDuration": requested_duration,
        })
        self.session.credits = data["credits"]
        return data["session"]

    def list_sessions(self) -> dict:
        self._require_auth()
        return self._request("GET", "/sessions")

    def update_session(self, session_id: str, status: str) -> dict:
        self._require_auth()
        data = self._request("PATCH", "/sessions", json={"sessionId": session_id, "status": status})
        return data["session"]

    def rate_session(
        self,
        session_id: str,
        rated_id: str,
        quality: int,
        clarity: int,
        punctuality: int,
        overall: int,
        comment: str = "",
    ) -> dict:
        self._require_auth()
        data = self._request("POST", "/ratings", json={
            "sessionId": session_id,
            "ratedId": rated_id,
            "quality": quality,
            "clarity": clarity,
            "punctuality": punctuality,
            "overall": overall,
            "comment": comment,
        })
        return data["rating"]

    # ============= Credits =============

    def get_credits(self) -> int:
        """Fetch current credit balance from server."""
        if not self.is_authenticated:
            return 0

        data = self._request("GET", "/credits")
        self.session.credits = data["credits"]
        return data["credits"]

    def purchase_credits(self, amount: int) -> int:
        """Simulated purchase. Returns the new balance."""
        self._require_auth()
        data = self._request("POST", "/credits", json={"amount": amount})
        self.session.credits = data["credits"]
        return data["credits"]
