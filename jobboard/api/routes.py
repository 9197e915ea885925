from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Body, Header, Path, Request, Response

from jobboard.api import resolvers
from jobboard.api.error_handling import service_error_response
from jobboard.api.schemas import Envelope
from jobboard.service.errors import ServiceError
from jobboard.service.resolve import RequestContext
from jobboard.service.runtime import get_runtime

router = APIRouter(prefix="/v1")

Operation = Callable[[Optional[Dict[str, Any]], RequestContext], Awaitable[Any]]


def _context(
    request: Request, response: Response, authorization: Optional[str] = None
) -> RequestContext:
    runtime = get_runtime()
    return RequestContext(
        guard=runtime.guard,
        authorization=authorization,
        cookies=dict(request.cookies),
        response=response,
        refresh_cookie_name=runtime.settings.refresh_cookie_name,
    )


def _query_args(request: Request, **extra: Any) -> Dict[str, Any]:
    return {**dict(request.query_params), **extra}


async def _execute(
    operation: Operation,
    args: Optional[Dict[str, Any]],
    request: Request,
    response: Response,
    authorization: Optional[str] = None,
):
    ctx = _context(request, response, authorization)
    try:
        data = await operation(args, ctx)
    except ServiceError as exc:
        # Cookie changes on ``response`` are dropped with an error reply; a
        # refresh cookie the operation already expired must stay expired.
        if not ctx.refresh_cookie_cleared:
            raise
        failure = service_error_response(request, exc)
        ctx.clear_refresh_cookie(failure)
        return failure
    return Envelope(status="ok", data=data)


# auth
@router.post("/auth/login", response_model=Envelope, tags=["auth"])
async def login(request: Request, response: Response, body: Dict[str, Any] = Body(default={})):
    """Exchange credentials for an access token and a refresh cookie."""
    return await _execute(resolvers.login, body, request, response)


@router.post("/auth/signup", response_model=Envelope, tags=["auth"])
async def signup(request: Request, response: Response, body: Dict[str, Any] = Body(default={})):
    return await _execute(resolvers.signup, body, request, response)


@router.post("/auth/refresh", response_model=Envelope, tags=["auth"])
async def refresh(request: Request, response: Response):
    """Rotate the refresh cookie. Replaying a spent cookie revokes the whole family."""
    return await _execute(resolvers.refresh, None, request, response)


@router.post("/auth/logout", response_model=Envelope, tags=["auth"])
async def logout(
    request: Request,
    response: Response,
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.logout, None, request, response, authorization)


@router.post("/auth/verify-email", response_model=Envelope, tags=["auth"])
async def verify_email(
    request: Request, response: Response, body: Dict[str, Any] = Body(default={})
):
    return await _execute(resolvers.verify_email, body, request, response)


@router.post("/auth/change-password", response_model=Envelope, tags=["auth"])
async def change_password(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(default={}),
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.change_password, body, request, response, authorization)


@router.post("/auth/forgot-password", response_model=Envelope, tags=["auth"])
async def forgot_password(
    request: Request, response: Response, body: Dict[str, Any] = Body(default={})
):
    return await _execute(resolvers.forgot_password, body, request, response)


@router.post("/auth/reset-password", response_model=Envelope, tags=["auth"])
async def reset_password(
    request: Request, response: Response, body: Dict[str, Any] = Body(default={})
):
    return await _execute(resolvers.reset_password, body, request, response)


@router.post("/auth/send-verification-email", response_model=Envelope, tags=["auth"])
async def send_verification_email(
    request: Request,
    response: Response,
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.send_verification_email, None, request, response, authorization)


# companies
@router.get("/me", response_model=Envelope, tags=["companies"])
async def me(
    request: Request,
    response: Response,
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.me, None, request, response, authorization)


@router.patch("/me", response_model=Envelope, tags=["companies"])
async def edit_company(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(default={}),
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.edit_company, body, request, response, authorization)


@router.get("/companies", response_model=Envelope, tags=["companies"])
async def list_companies(request: Request, response: Response):
    return await _execute(resolvers.companies, _query_args(request), request, response)


@router.get("/companies/{company_id}", response_model=Envelope, tags=["companies"])
async def get_company(request: Request, response: Response, company_id: str = Path(...)):
    return await _execute(resolvers.company, {"id": company_id}, request, response)


@router.get("/companies/{company_id}/jobs", response_model=Envelope, tags=["companies"])
async def list_company_jobs(request: Request, response: Response, company_id: str = Path(...)):
    return await _execute(
        resolvers.company_jobs, _query_args(request, id=company_id), request, response
    )


# jobs
@router.get("/jobs", response_model=Envelope, tags=["jobs"])
async def list_jobs(request: Request, response: Response):
    return await _execute(resolvers.jobs, _query_args(request), request, response)


@router.get("/jobs/{job_id}", response_model=Envelope, tags=["jobs"])
async def get_job(request: Request, response: Response, job_id: str = Path(...)):
    return await _execute(resolvers.job, {"id": job_id}, request, response)


@router.post("/jobs", response_model=Envelope, status_code=201, tags=["jobs"])
async def post_job(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(default={}),
    authorization: Optional[str] = Header(None),
):
    """Publish a job posting. Requires a verified company email."""
    return await _execute(resolvers.post_job, body, request, response, authorization)


@router.patch("/jobs/{job_id}", response_model=Envelope, tags=["jobs"])
async def edit_job(
    request: Request,
    response: Response,
    job_id: str = Path(...),
    body: Dict[str, Any] = Body(default={}),
    authorization: Optional[str] = Header(None),
):
    return await _execute(
        resolvers.edit_job, {**body, "id": job_id}, request, response, authorization
    )


@router.delete("/jobs/{job_id}", response_model=Envelope, tags=["jobs"])
async def delete_job(
    request: Request,
    response: Response,
    job_id: str = Path(...),
    authorization: Optional[str] = Header(None),
):
    return await _execute(resolvers.delete_job, {"id": job_id}, request, response, authorization)
