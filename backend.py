"""Async backends the feed coordinator talks to.

``DatabaseBackend`` calls the query functions in ``crud`` in-process, running
the blocking SQLAlchemy work in the default executor. ``HttpBackend`` talks to
the ``/api`` routes of a running service with httpx. Neither raises: every
failure comes back as a ``BackendError`` inside the result object.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol, Type, TypeVar
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel
from sqlalchemy.orm import Session

import crud
import schemas
from database import SessionLocal

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JobBackend(Protocol):
    async def list_jobs(self, filters: schemas.JobListFilters) -> schemas.JobListingsResult: ...

    async def get_job_by_id(
        self, job_id: str, user_id: Optional[str] = None
    ) -> schemas.JobListingDetailResult: ...

    async def update_job(self, job_id: str, fields: Any) -> schemas.JobListingUpdateResult: ...

    async def save_job(self, user_id: str, job_id: str) -> schemas.MutationResult: ...

    async def unsave_job(self, user_id: str, job_id: str) -> schemas.MutationResult: ...


class DatabaseBackend:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    async def _run(self, func, *args):
        def _call():
            with self.session_factory() as db:
                return func(db, *args)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _call)

    async def list_jobs(self, filters: schemas.JobListFilters) -> schemas.JobListingsResult:
        return await self._run(crud.list_jobs, filters)

    async def get_job_by_id(self, job_id: str, user_id: Optional[str] = None) -> schemas.JobListingDetailResult:
        return await self._run(crud.get_job_by_id, job_id, user_id)

    async def update_job(self, job_id: str, fields: Any) -> schemas.JobListingUpdateResult:
        return await self._run(crud.update_job, job_id, fields)

    async def save_job(self, user_id: str, job_id: str) -> schemas.MutationResult:
        return await self._run(crud.save_job, user_id, job_id)

    async def unsave_job(self, user_id: str, job_id: str) -> schemas.MutationResult:
        return await self._run(crud.unsave_job, user_id, job_id)


def _response_error(response: httpx.Response) -> schemas.BackendError:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if not isinstance(detail, str):
        detail = None
    code = "not_found" if response.status_code == 404 else "http_error"
    if response.status_code == 401:
        code = "unauthenticated"
    return schemas.BackendError(message=detail or response.reason_phrase or "Request failed", code=code)


def _transport_error(exc: httpx.HTTPError) -> schemas.BackendError:
    logger.warning("Backend request failed", error=str(exc))
    return schemas.BackendError(message=str(exc) or exc.__class__.__name__, code="http_error")


def _decode_error(response: httpx.Response, exc: ValueError) -> schemas.BackendError:
    logger.warning("Unreadable backend response", status_code=response.status_code, error=str(exc))
    return schemas.BackendError(message="Unexpected response from the job service.", code="http_error")


def _job_path(job_id: str, suffix: str = "") -> str:
    return f"/api/jobs/{quote(job_id, safe='')}{suffix}"


class HttpBackend:
    """Backend over the service's JSON API.

    The user identity travels in the bearer token; ``user_id`` arguments are
    accepted to match ``JobBackend`` and otherwise ignored.
    """

    def __init__(self, client: httpx.AsyncClient, token: Optional[str] = None):
        self.client = client
        self.headers = {"Authorization": f"Bearer {token}"} if token else {}

    @staticmethod
    def _parse(response: httpx.Response, model: Type[ModelT]) -> ModelT:
        # ValueError covers both JSONDecodeError and pydantic's ValidationError
        return model.model_validate(response.json())

    async def list_jobs(self, filters: schemas.JobListFilters) -> schemas.JobListingsResult:
        params = {
            "limit": filters.limit,
            "offset": filters.offset,
            "saved_only": str(filters.saved_only).lower(),
        }
        if filters.search_term:
            params["q"] = filters.search_term
        try:
            response = await self.client.get("/api/jobs", params=params, headers=self.headers)
        except httpx.HTTPError as exc:
            return schemas.JobListingsResult(error=_transport_error(exc))
        if response.is_error:
            return schemas.JobListingsResult(error=_response_error(response))
        try:
            return self._parse(response, schemas.JobListingsResult)
        except ValueError as exc:
            return schemas.JobListingsResult(error=_decode_error(response, exc))

    async def get_job_by_id(self, job_id: str, user_id: Optional[str] = None) -> schemas.JobListingDetailResult:
        try:
            response = await self.client.get(_job_path(job_id), headers=self.headers)
        except httpx.HTTPError as exc:
            return schemas.JobListingDetailResult(error=_transport_error(exc))
        if response.status_code == 404:
            return schemas.JobListingDetailResult()
        if response.is_error:
            return schemas.JobListingDetailResult(error=_response_error(response))
        try:
            return self._parse(response, schemas.JobListingDetailResult)
        except ValueError as exc:
            return schemas.JobListingDetailResult(error=_decode_error(response, exc))

    async def update_job(self, job_id: str, fields: Any) -> schemas.JobListingUpdateResult:
        try:
            payload = schemas.dump_update(fields)
        except ValueError as exc:
            return schemas.JobListingUpdateResult(
                error=schemas.BackendError(message=str(exc), code="invalid")
            )
        if not payload:
            return schemas.JobListingUpdateResult()

        body = schemas.JobListingUpdate(**payload).model_dump(mode="json", exclude_unset=True)
        try:
            response = await self.client.patch(_job_path(job_id), json=body, headers=self.headers)
        except httpx.HTTPError as exc:
            return schemas.JobListingUpdateResult(error=_transport_error(exc))
        if response.is_error:
            return schemas.JobListingUpdateResult(error=_response_error(response))
        try:
            return schemas.JobListingUpdateResult(row=self._parse(response, schemas.JobListingRow))
        except ValueError as exc:
            return schemas.JobListingUpdateResult(error=_decode_error(response, exc))

    async def _toggle(self, method: str, job_id: str) -> schemas.MutationResult:
        try:
            response = await self.client.request(method, _job_path(job_id, "/save"), headers=self.headers)
        except httpx.HTTPError as exc:
            return schemas.MutationResult(ok=False, error=_transport_error(exc))
        if response.is_error:
            return schemas.MutationResult(ok=False, error=_response_error(response))
        return schemas.MutationResult()

    async def save_job(self, user_id: str, job_id: str) -> schemas.MutationResult:
        return await self._toggle("PUT", job_id)

    async def unsave_job(self, user_id: str, job_id: str) -> schemas.MutationResult:
        return await self._toggle("DELETE", job_id)
