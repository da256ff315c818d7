"""
Jira API Client
Talks to Jira Cloud through the Atlassian API gateway with an OAuth token
"""

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from qa_dashboard.core.exceptions import (
    DashboardError,
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    TrackerRequestError,
    TransientError,
)
from qa_dashboard.utils.issue_normalizer import BULK_FIELDS
from qa_dashboard.utils.log_sanitizer import redact

logger = logging.getLogger(__name__)

API_GATEWAY = "https://api.atlassian.com/ex/jira"

# Everything that belongs somewhere in the project -> epic -> story -> test case tree
BULK_JQL = (
    "(issuetype in (Epic, Story, Task, Bug, Sub-task) OR parent is not EMPTY) "
    "ORDER BY project, issuetype, summary"
)


def _error_details(r: requests.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text[:500] if r.text else None


class JiraClient:
    """Client for interacting with the Jira Cloud REST API."""

    def __init__(
        self,
        access_token: str,
        cloud_id: str,
        timeout: int = 30,
        read_retries: int = 2,
        page_size: int = 100,
        not_found_message: str = "Not found",
    ):
        """
        Initialize Jira client.

        Args:
            access_token: OAuth 2.0 (3LO) access token
            cloud_id: Id of the Jira site from accessible-resources
            timeout: Timeout in seconds for every request
            read_retries: Extra attempts for GET requests on transient failures
            page_size: Page size for paginated endpoints
            not_found_message: Message used when Jira answers 404
        """
        if not access_token:
            raise NotAuthenticatedError()
        self.cloud_id = cloud_id
        self.base_url = f"{API_GATEWAY}/{cloud_id}"
        self.timeout = timeout
        self.read_retries = max(0, read_retries)
        self.page_size = page_size
        self.not_found_message = not_found_message
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def _raise_for_status(self, r: requests.Response, not_found: Optional[str] = None) -> None:
        """Map an error response onto the dashboard's error taxonomy"""
        status = r.status_code
        if status < 400:
            return
        details = _error_details(r)
        logger.debug("Jira answered HTTP %d: %s", status, redact(details))
        if status == 401:
            raise NotAuthenticatedError("Invalid or expired token", details=details)
        if status == 403:
            raise PermissionDeniedError(details=details)
        if status == 404:
            raise NotFoundError(not_found or self.not_found_message, details=details)
        if status == 429 or status >= 500:
            raise TransientError(
                f"Jira returned HTTP {status}, please retry",
                details=details,
                status_code=504 if status == 504 else 502,
            )
        raise TrackerRequestError(details=details)

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        not_found: Optional[str] = None,
        allow_statuses: tuple = (),
    ) -> requests.Response:
        """
        Send a request, retrying idempotent reads on transient failures.

        Args:
            method: HTTP method
            path: Path below the site's gateway URL
            params: Query parameters
            json: JSON body
            not_found: Message for a 404 answer
            allow_statuses: Statuses returned to the caller instead of raised

        Returns:
            The response
        """
        url = f"{self.base_url}{path}"
        attempts = 1 + (self.read_retries if method == "GET" else 0)
        last_err: Optional[DashboardError] = None

        for attempt in range(attempts):
            try:
                logger.debug("Jira %s %s (attempt %d)", method, path, attempt + 1)
                r = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
                if r.status_code in allow_statuses:
                    return r
                self._raise_for_status(r, not_found)
                return r
            except requests.Timeout:
                last_err = TransientError("Jira did not respond in time", status_code=504)
            except requests.ConnectionError as e:
                last_err = TransientError("Could not reach Jira", details=str(e))
            except TransientError as e:
                last_err = e

            if attempt + 1 < attempts:
                logger.warning("Transient Jira failure on %s %s, retrying: %s", method, path, last_err.message)
                time.sleep(0.8 * (attempt + 1))

        raise last_err

    def get_myself(self) -> Dict[str, Any]:
        """Fetch the user the token belongs to."""
        return self._request("GET", "/rest/api/3/myself").json()

    def get_projects(self) -> List[Dict[str, Any]]:
        """
        Fetch every project visible to the user.

        Returns:
            Raw project payloads from the paginated project search
        """
        projects: List[Dict[str, Any]] = []
        start_at = 0
        while True:
            data = self._request(
                "GET",
                "/rest/api/3/project/search",
                params={"startAt": start_at, "maxResults": self.page_size},
            ).json()
            batch = data.get("values", []) or []
            projects.extend(batch)
            if data.get("isLast", True) or not batch:
                break
            start_at += len(batch)
        return projects

    def _search_jql_tokens(self, jql: str, fields: List[str], max_results: int) -> Dict[str, Any]:
        """Search through the token-paginated /search/jql endpoint."""
        issues: List[Dict[str, Any]] = []
        token: Optional[str] = None
        pages = 0
        while len(issues) < max_results:
            params = {
                "jql": jql,
                "fields": ",".join(fields),
                "maxResults": min(self.page_size, max_results - len(issues)),
            }
            if token:
                params["nextPageToken"] = token
            data = self._request("GET", "/rest/api/3/search/jql", params=params).json()
            batch = data.get("issues", []) or []
            issues.extend(batch)
            pages += 1
            token = data.get("nextPageToken")
            if not token or not batch:
                break
        return {
            "issues": issues[:max_results],
            "pagination": {"endpoint": "search/jql", "pages": pages, "truncated": bool(token)},
        }

    def search_issues(self, jql: str, fields: List[str], max_results: int = 1000) -> Dict[str, Any]:
        """
        Execute a JQL search, following pagination up to max_results.

        Falls back to the newer /search/jql endpoint when Jira answers 410
        for the classic search.

        Returns:
            Dict with 'issues' (raw payloads) and 'pagination' metadata
        """
        issues: List[Dict[str, Any]] = []
        start_at = 0
        pages = 0
        total = None
        while len(issues) < max_results:
            r = self._request(
                "GET",
                "/rest/api/3/search",
                params={
                    "jql": jql,
                    "fields": ",".join(fields),
                    "startAt": start_at,
                    "maxResults": min(self.page_size, max_results - len(issues)),
                },
                allow_statuses=(410,),
            )
            if r.status_code == 410:
                logger.info("Classic search endpoint is gone, falling back to search/jql")
                return self._search_jql_tokens(jql, fields, max_results)

            data = r.json()
            batch = data.get("issues", []) or []
            issues.extend(batch)
            pages += 1
            total = data.get("total", len(issues))
            start_at += len(batch)
            if not batch or start_at >= total:
                break

        return {
            "issues": issues[:max_results],
            "pagination": {
                "endpoint": "search",
                "pages": pages,
                "total": total,
                "truncated": total is not None and total > len(issues[:max_results]),
            },
        }

    def fetch_bulk_issues(self, max_results: int = 1000) -> Dict[str, Any]:
        """Fetch every issue that belongs in the dashboard hierarchy."""
        return self.search_issues(BULK_JQL, BULK_FIELDS, max_results=max_results)

    def get_issue(self, key: str, fields: Optional[List[str]] = None, not_found: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a single Jira issue.

        Args:
            key: Issue key (e.g., 'PROJ-123')
            fields: Restrict the returned fields
            not_found: Message for a 404 answer

        Returns:
            Issue data as dictionary
        """
        params = {"fields": ",".join(fields)} if fields else None
        return self._request("GET", f"/rest/api/3/issue/{key}", params=params, not_found=not_found).json()

    def get_story_test_cases(self, story_key: str) -> Dict[str, Any]:
        """Fetch a story with only its subtasks."""
        return self.get_issue(story_key, fields=["subtasks"], not_found="Story not found")

    def create_issue(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an issue. Never retried: a timed out create may still have
        gone through on Jira's side.

        Args:
            fields: The 'fields' object of the create request

        Returns:
            Jira's answer ({'id', 'key', 'self'})
        """
        r = self._request("POST", "/rest/api/3/issue", json={"fields": fields})
        return r.json()
