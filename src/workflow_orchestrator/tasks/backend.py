"""Remote task backend transports."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol
from urllib import error, parse, request

from workflow_orchestrator.errors import TaskBackendError
from workflow_orchestrator.tasks.schemas import TaskExecutionRequest

logger = logging.getLogger(__name__)


class TaskBackend(Protocol):
    """Interface for the service that actually runs clean/merge/analyze/... stages."""

    def execute(
        self,
        *,
        workflow_id: str,
        task_id: str,
        payload: TaskExecutionRequest,
        timeout_s: float,
    ) -> dict[str, Any]: ...


class HttpTaskBackend:
    """JSON-over-HTTP backend client using the task execute endpoint."""

    def __init__(self, *, base_url: str, api_token: str = "") -> None:
        if not base_url:
            raise ValueError("backend base_url is required")
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token

    def execute(
        self,
        *,
        workflow_id: str,
        task_id: str,
        payload: TaskExecutionRequest,
        timeout_s: float,
    ) -> dict[str, Any]:
        url = (
            f"{self.base_url}/workflows/{parse.quote(workflow_id, safe='')}"
            f"/tasks/{parse.quote(task_id, safe='')}/execute"
        )
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        req = request.Request(
            url=url,
            data=json.dumps(payload.to_wire()).encode("utf-8"),
            method="POST",
            headers=headers,
        )
        logger.debug(
            "task_backend event=request workflow_id=%s task_id=%s task_type=%s url=%s",
            workflow_id,
            task_id,
            payload.task_type.value,
            url,
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                raw = response.read().decode("utf-8")
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise TaskBackendError(
                _remote_message(body) or f"Task backend returned HTTP {exc.code}",
                status_code=exc.code,
            ) from exc
        except error.URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise exc.reason from exc
            raise TaskBackendError(f"Task backend unreachable: {exc.reason}") from exc

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TaskBackendError("Task backend returned non-JSON response") from exc
        if not isinstance(parsed, dict):
            raise TaskBackendError("Task backend response must be a JSON object")
        return parsed


def _remote_message(body: str) -> str | None:
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        text = body.strip()
        return text[:400] or None
    if isinstance(parsed, dict):
        for key in ("message", "error", "detail"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None
