"""HTTP task storage adapter - REST client for a remote task backend."""

import logging

import requests

from dayplan.core.overlay import InstanceKey
from dayplan.core.tasks import InstanceState, Task
from dayplan.ports.task_repo import StorageError, TaskNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class AuthenticationError(StorageError):
    """Raised when the backend rejects the API token."""

    pass


class HttpTaskStore:
    """
    Remote task backend adapter.

    Implements TaskRepository and InstanceStateStore protocols. Handles
    auth headers, error translation and JSON mapping. No business logic -
    just I/O.
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not base_url:
            raise StorageError("No API base URL configured. Set api_base_url in dayplan.conf")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request(self, method: str, endpoint: str, **kwargs) -> requests.Response:
        """Make an authenticated API request, translating failures to StorageError."""
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self._session.request(
                method,
                f"{self.base_url}{endpoint}",
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise StorageError(f"Task backend unreachable: {e}") from e

        if resp.status_code in (401, 403):
            raise AuthenticationError(f"Task backend rejected credentials: {resp.text}")
        return resp

    def _json(self, resp: requests.Response) -> dict | list:
        try:
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as e:
            raise StorageError(f"Task backend error: {e}") from e
        except ValueError as e:
            raise StorageError(f"Task backend returned invalid JSON: {e}") from e

    # TaskRepository

    def fetch_all(self) -> list[Task]:
        """Fetch every task definition."""
        data = self._json(self._request("GET", "/tasks"))
        return [Task.from_dict(item) for item in data]

    def get(self, task_id: str) -> Task | None:
        """Fetch one task. Returns None if not found."""
        resp = self._request("GET", f"/tasks/{task_id}")
        if resp.status_code == 404:
            return None
        return Task.from_dict(self._json(resp))

    def insert(self, task: Task) -> Task:
        """Create a task; the backend assigns id and timestamps."""
        payload = task.to_dict()
        payload.pop("id", None)
        resp = self._request("POST", "/tasks", json=payload)
        return Task.from_dict(self._json(resp))

    def save(self, task: Task) -> Task:
        """Overwrite an existing task (last write wins)."""
        resp = self._request("PUT", f"/tasks/{task.id}", json=task.to_dict())
        if resp.status_code == 404:
            raise TaskNotFoundError(task.id)
        return Task.from_dict(self._json(resp))

    def delete(self, task_id: str) -> None:
        """Remove a task definition. Missing ids are ignored."""
        resp = self._request("DELETE", f"/tasks/{task_id}")
        if resp.status_code != 404:
            self._check(resp)

    # InstanceStateStore

    def get_state(self, parent_task_id: str, instance_date: int) -> InstanceState | None:
        """Stored override for one occurrence, or None."""
        resp = self._request("GET", f"/instances/{parent_task_id}/{instance_date}")
        if resp.status_code == 404:
            return None
        return InstanceState.from_dict(self._json(resp))

    def states_for(self, parent_task_ids: list[str]) -> dict[InstanceKey, InstanceState]:
        """All stored overrides for the given parents."""
        if not parent_task_ids:
            return {}
        resp = self._request("GET", "/instances", params={"parentTaskId": parent_task_ids})
        return {
            (item["parentTaskId"], int(item["instanceDate"])): InstanceState.from_dict(item)
            for item in self._json(resp)
        }

    def set_field(self, parent_task_id: str, instance_date: int, field_name: str, value: bool) -> InstanceState:
        """Upsert one boolean of an occurrence; the backend creates the row if needed."""
        wire = {
            "completed": "completed",
            "pinned_today": "pinnedToday",
            "pinned_tomorrow": "pinnedTomorrow",
        }[field_name]
        resp = self._request(
            "PATCH",
            f"/instances/{parent_task_id}/{instance_date}",
            json={wire: value},
        )
        return InstanceState.from_dict(self._json(resp))

    def delete_for_parent(self, parent_task_id: str) -> None:
        """Drop every override owned by a parent task."""
        self._check(self._request("DELETE", "/instances", params={"parentTaskId": parent_task_id}))

    def _check(self, resp: requests.Response) -> None:
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise StorageError(f"Task backend error: {e}") from e
