"""HttpRemoteApi: the RemoteApi over HTTP, using httpx.AsyncClient.

Each public method is one endpoint.  They all go through _request(),
which owns the cross-cutting parts:

  1. Builds the URL from the configured base URL
  2. Adds the bearer token, if a token provider was given
  3. Times the call and counts it by operation and outcome
  4. Turns every failure into RemoteError:
       non-2xx          -> RemoteError(status, server "message" or reason)
       transport errors -> RemoteError(None, str(exc))

WHO OWNS THE httpx CLIENT?
----------------------------
Pass one in (tests pass a client built on httpx.MockTransport) and the
caller closes it.  Otherwise HttpRemoteApi creates its own and aclose()
releases it.  Either way a single AsyncClient is reused across calls so
connections are pooled.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

import httpx
from pydantic import BaseModel

from coursecache.api import schemas
from coursecache.core.config import SETTINGS
from coursecache.core.errors import RemoteError
from coursecache.core.metrics import REMOTE_CALL_DURATION, REMOTE_CALLS
from coursecache.models.assignment import Assignment, Submission
from coursecache.models.course import Course, CourseEnrollment, EnrollmentRole
from coursecache.models.module import ContentItem, Module
from coursecache.models.progress import (
    ContentProgress,
    CourseProgress,
    ModuleProgress,
    UserProgress,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return response.reason_phrase


class HttpRemoteApi:
    def __init__(
        self,
        base_url: str | None = None,
        *,
        token_provider: TokenProvider | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or SETTINGS.api_base_url).rstrip("/")
        self._token_provider = token_provider
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else SETTINGS.api_timeout,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {}
        if self._token_provider is not None:
            token = self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"

        start = time.monotonic()
        outcome = "ok"
        try:
            response = await self._client.request(
                method,
                f"{self.base_url}{path}",
                json=json,
                params=params,
                headers=headers,
            )
            if response.is_error:
                outcome = "not_found" if response.status_code == 404 else "error"
                raise RemoteError(response.status_code, _error_message(response))
        except httpx.HTTPError as exc:
            outcome = "transport_error"
            logger.warning("%s %s failed: %s", method, path, exc)
            raise RemoteError(None, str(exc) or type(exc).__name__) from exc
        finally:
            REMOTE_CALLS.labels(operation=operation, outcome=outcome).inc()
            REMOTE_CALL_DURATION.labels(operation=operation).observe(
                time.monotonic() - start
            )

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _one(schema: type[BaseModel], data: Any) -> Any:
        return schema.model_validate(data).to_model()  # type: ignore[attr-defined]

    @staticmethod
    def _many(schema: type[BaseModel], data: Any) -> list[Any]:
        return [schema.model_validate(row).to_model() for row in data or ()]  # type: ignore[attr-defined]

    # -----------------------------------------------------------------------
    # Courses
    # -----------------------------------------------------------------------

    async def list_courses(self) -> list[Course]:
        data = await self._request("list_courses", "GET", "/api/courses")
        return self._many(schemas.CourseOut, data)

    async def list_enrolled_courses(self) -> list[Course]:
        data = await self._request(
            "list_enrolled_courses", "GET", "/api/courses", params={"enrolled": "true"}
        )
        return self._many(schemas.CourseOut, data)

    async def get_course(self, course_id: int) -> Course:
        data = await self._request("get_course", "GET", f"/api/courses/{course_id}")
        return self._one(schemas.CourseOut, data)

    async def create_course(
        self, *, code: str, name: str, description: str = "", schedule: str = ""
    ) -> Course:
        body = schemas.CourseCreateIn(
            code=code, name=name, description=description, schedule=schedule
        )
        data = await self._request(
            "create_course", "POST", "/api/courses", json=schemas.request_body(body)
        )
        return self._one(schemas.CourseOut, data)

    async def update_course(self, course_id: int, changes: dict[str, Any]) -> Course:
        data = await self._request(
            "update_course",
            "PUT",
            f"/api/courses/{course_id}",
            json=schemas.camel_changes(changes),
        )
        return self._one(schemas.CourseOut, data)

    async def delete_course(self, course_id: int) -> None:
        await self._request("delete_course", "DELETE", f"/api/courses/{course_id}")

    async def list_course_enrollments(self, course_id: int) -> list[CourseEnrollment]:
        data = await self._request(
            "list_course_enrollments", "GET", f"/api/courses/{course_id}/enrollments"
        )
        return self._many(schemas.EnrollmentOut, data)

    async def enroll_user(
        self, course_id: int, user_id: int, role: EnrollmentRole
    ) -> CourseEnrollment:
        body = schemas.EnrollmentIn(course_id=course_id, user_id=user_id, role=role)
        data = await self._request(
            "enroll_user",
            "POST",
            f"/api/courses/{course_id}/enrollments",
            json=schemas.request_body(body),
        )
        return self._one(schemas.EnrollmentOut, data)

    async def unenroll_user(self, course_id: int, user_id: int) -> None:
        await self._request(
            "unenroll_user", "DELETE", f"/api/courses/{course_id}/enrollments/{user_id}"
        )

    # -----------------------------------------------------------------------
    # Modules and content
    # -----------------------------------------------------------------------

    async def list_modules(self, course_id: int) -> list[Module]:
        data = await self._request("list_modules", "GET", f"/api/courses/{course_id}/modules")
        return self._many(schemas.ModuleOut, data)

    async def get_module(self, module_id: int) -> Module:
        data = await self._request("get_module", "GET", f"/api/modules/{module_id}")
        return self._one(schemas.ModuleOut, data)

    async def create_module(
        self, course_id: int, *, title: str, order: int, description: str | None = None
    ) -> Module:
        body = schemas.ModuleCreateIn(
            course_id=course_id, title=title, order=order, description=description
        )
        data = await self._request(
            "create_module",
            "POST",
            f"/api/courses/{course_id}/modules",
            json=schemas.request_body(body),
        )
        return self._one(schemas.ModuleOut, data)

    async def update_module(self, module_id: int, changes: dict[str, Any]) -> Module:
        data = await self._request(
            "update_module",
            "PUT",
            f"/api/modules/{module_id}",
            json=schemas.camel_changes(changes),
        )
        return self._one(schemas.ModuleOut, data)

    async def delete_module(self, module_id: int) -> None:
        await self._request("delete_module", "DELETE", f"/api/modules/{module_id}")

    async def reorder_modules(self, course_id: int, module_ids: Sequence[int]) -> list[Module]:
        body = schemas.ReorderIn(module_ids=list(module_ids))
        data = await self._request(
            "reorder_modules",
            "PUT",
            f"/api/courses/{course_id}/modules/reorder",
            json=schemas.request_body(body),
        )
        return self._many(schemas.ModuleOut, data)

    async def list_content(self, module_id: int) -> list[ContentItem]:
        data = await self._request("list_content", "GET", f"/api/modules/{module_id}/content")
        return self._many(schemas.ContentItemOut, data)

    async def get_content(self, content_id: int) -> ContentItem:
        data = await self._request("get_content", "GET", f"/api/content/{content_id}")
        return self._one(schemas.ContentItemOut, data)

    async def create_content(
        self, module_id: int, *, title: str, content_type: str, **fields: Any
    ) -> ContentItem:
        body = schemas.ContentItemCreateIn(
            module_id=module_id, title=title, content_type=content_type, **fields
        )
        data = await self._request(
            "create_content",
            "POST",
            f"/api/modules/{module_id}/content",
            json=schemas.request_body(body),
        )
        return self._one(schemas.ContentItemOut, data)

    async def update_content(self, content_id: int, changes: dict[str, Any]) -> ContentItem:
        data = await self._request(
            "update_content",
            "PUT",
            f"/api/content/{content_id}",
            json=schemas.camel_changes(changes),
        )
        return self._one(schemas.ContentItemOut, data)

    async def delete_content(self, content_id: int) -> None:
        await self._request("delete_content", "DELETE", f"/api/content/{content_id}")

    # -----------------------------------------------------------------------
    # Progress
    # -----------------------------------------------------------------------

    async def get_module_progress(self, module_id: int, user_id: int) -> ModuleProgress:
        data = await self._request(
            "get_module_progress", "GET", f"/api/modules/{module_id}/progress/{user_id}"
        )
        return self._one(schemas.ModuleProgressOut, data)

    async def mark_module_completed(self, module_id: int) -> ModuleProgress:
        data = await self._request(
            "mark_module_completed", "POST", f"/api/modules/{module_id}/progress/complete"
        )
        return self._one(schemas.ModuleProgressOut, data)

    async def mark_module_incomplete(self, module_id: int) -> ModuleProgress:
        data = await self._request(
            "mark_module_incomplete", "POST", f"/api/modules/{module_id}/progress/incomplete"
        )
        return self._one(schemas.ModuleProgressOut, data)

    async def get_content_progress(self, content_id: int, user_id: int) -> ContentProgress:
        data = await self._request(
            "get_content_progress", "GET", f"/api/content/{content_id}/progress/{user_id}"
        )
        return self._one(schemas.ContentProgressOut, data)

    async def record_content_progress(
        self, content_id: int, *, completed: bool = False, time_spent: int | None = None
    ) -> ContentProgress:
        body = schemas.ContentProgressIn(completed=completed, time_spent=time_spent)
        data = await self._request(
            "record_content_progress",
            "POST",
            f"/api/content/{content_id}/progress",
            json=schemas.request_body(body),
        )
        return self._one(schemas.ContentProgressOut, data)

    async def get_course_progress(self, course_id: int, user_id: int) -> CourseProgress:
        data = await self._request(
            "get_course_progress", "GET", f"/api/courses/{course_id}/progress/{user_id}"
        )
        return self._one(schemas.CourseProgressOut, data)

    async def get_user_progress(self, user_id: int) -> UserProgress:
        data = await self._request("get_user_progress", "GET", f"/api/users/{user_id}/progress")
        return self._one(schemas.UserProgressOut, data)

    async def record_course_started(self, course_id: int) -> dict[str, Any]:
        data = await self._request(
            "record_course_started", "POST", f"/api/courses/{course_id}/progress/start"
        )
        return data or {}

    async def record_assignment_submission(self, assignment_id: int) -> dict[str, Any]:
        data = await self._request(
            "record_assignment_submission",
            "POST",
            f"/api/assignments/{assignment_id}/progress/submit",
        )
        return data or {}

    # -----------------------------------------------------------------------
    # Assignments
    # -----------------------------------------------------------------------

    async def list_assignments(self, course_id: int) -> list[Assignment]:
        data = await self._request(
            "list_assignments", "GET", f"/api/courses/{course_id}/assignments"
        )
        return self._many(schemas.AssignmentOut, data)

    async def get_assignment(self, assignment_id: int) -> Assignment:
        data = await self._request("get_assignment", "GET", f"/api/assignments/{assignment_id}")
        return self._one(schemas.AssignmentOut, data)

    async def create_assignment(
        self, course_id: int, *, title: str, due_date: str, description: str = ""
    ) -> Assignment:
        body = schemas.AssignmentCreateIn(
            course_id=course_id, title=title, due_date=due_date, description=description
        )
        data = await self._request(
            "create_assignment",
            "POST",
            f"/api/courses/{course_id}/assignments",
            json=schemas.request_body(body),
        )
        return self._one(schemas.AssignmentOut, data)

    async def update_assignment(self, assignment_id: int, changes: dict[str, Any]) -> Assignment:
        data = await self._request(
            "update_assignment",
            "PUT",
            f"/api/assignments/{assignment_id}",
            json=schemas.camel_changes(changes),
        )
        return self._one(schemas.AssignmentOut, data)

    async def delete_assignment(self, assignment_id: int) -> None:
        await self._request("delete_assignment", "DELETE", f"/api/assignments/{assignment_id}")

    async def list_submissions(self, assignment_id: int) -> list[Submission]:
        data = await self._request(
            "list_submissions", "GET", f"/api/assignments/{assignment_id}/submissions"
        )
        return self._many(schemas.SubmissionOut, data)

    async def get_user_submission(self, assignment_id: int, user_id: int) -> Submission:
        data = await self._request(
            "get_user_submission",
            "GET",
            f"/api/assignments/{assignment_id}/submissions/{user_id}",
        )
        return self._one(schemas.SubmissionOut, data)

    async def submit_assignment(self, assignment_id: int, submission_url: str) -> Submission:
        body = schemas.SubmissionIn(assignment_id=assignment_id, submission_url=submission_url)
        data = await self._request(
            "submit_assignment",
            "POST",
            f"/api/assignments/{assignment_id}/submissions",
            json=schemas.request_body(body),
        )
        return self._one(schemas.SubmissionOut, data)

    async def grade_submission(self, submission_id: int, grade: float) -> Submission:
        body = schemas.GradeIn(submission_id=submission_id, grade=grade)
        data = await self._request(
            "grade_submission",
            "PUT",
            f"/api/submissions/{submission_id}/grade",
            json=schemas.request_body(body),
        )
        return self._one(schemas.SubmissionOut, data)
