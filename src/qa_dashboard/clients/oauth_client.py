"""
Atlassian OAuth 2.0 (3LO) client
"""

import logging
import secrets
from typing import Any, Dict, List
from urllib.parse import urlencode

import requests

from qa_dashboard.core.exceptions import DashboardError, NotAuthenticatedError, TransientError
from qa_dashboard.utils.log_sanitizer import redact

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://auth.atlassian.com/authorize"
TOKEN_URL = "https://auth.atlassian.com/oauth/token"
RESOURCES_URL = "https://api.atlassian.com/oauth/token/accessible-resources"


class AtlassianOAuthClient:
    """Builds the consent URL and trades authorization codes for tokens."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: str = "read:jira-work write:jira-work read:jira-user",
        timeout: int = 30,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    @staticmethod
    def generate_state() -> str:
        """Random value bound to one login attempt (CSRF protection)."""
        return secrets.token_urlsafe(32)

    def authorization_url(self, state: str) -> str:
        params = {
            "audience": "api.atlassian.com",
            "client_id": self.client_id,
            "scope": self.scopes,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "response_type": "code",
            "prompt": "consent",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def _post_json(self, url: str, payload: Dict[str, Any]) -> requests.Response:
        try:
            return self.session.post(url, json=payload, timeout=self.timeout)
        except requests.Timeout:
            raise TransientError("Atlassian did not respond in time", status_code=504)
        except requests.ConnectionError as e:
            raise TransientError("Could not reach Atlassian", details=str(e))

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """
        Exchange an authorization code for tokens.

        Args:
            code: The code passed to the callback

        Returns:
            Token response (access_token, expires_in, scope, ...)
        """
        r = self._post_json(TOKEN_URL, {
            "grant_type": "authorization_code",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        if r.status_code >= 500:
            raise TransientError(f"Token endpoint returned HTTP {r.status_code}")
        if r.status_code >= 400:
            logger.warning("Token exchange failed with HTTP %d", r.status_code)
            raise NotAuthenticatedError("Failed to exchange authorization code", details=r.text[:500] or None)

        tokens = r.json()
        logger.debug("Token exchange succeeded: %s", redact(tokens))
        if not tokens.get("access_token"):
            raise NotAuthenticatedError("Token response did not contain an access token")
        return tokens

    def accessible_resources(self, access_token: str) -> List[Dict[str, Any]]:
        """List the Jira sites the token can reach."""
        try:
            r = self.session.get(
                RESOURCES_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientError("Could not list accessible Jira sites", details=str(e))
        if r.status_code == 401:
            raise NotAuthenticatedError("Invalid or expired token")
        if r.status_code >= 400:
            raise DashboardError(
                "Could not list accessible Jira sites",
                code="tracker_rejected",
                details=r.text[:500] or None,
                status_code=502,
            )
        return r.json() or []
