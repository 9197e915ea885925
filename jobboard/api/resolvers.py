"""Caller-facing operations.

Each operation is a plain ``async (args, ctx)`` handler wrapped by
``resolve``, so authentication, argument validation and error conversion
happen the same way for every entry point.
"""

from __future__ import annotations

from typing import Any, Dict

from jobboard.api.schemas import (
    ChangePasswordArgs,
    CompanyIdArgs,
    CompanyJobsArgs,
    CreateJobArgs,
    ForgotPasswordArgs,
    IdArgs,
    LoginArgs,
    Pagination,
    ResetPasswordArgs,
    SignupArgs,
    UpdateCompanyArgs,
    UpdateJobArgs,
    VerifyEmailArgs,
)
from jobboard.service.cache import listing_pattern
from jobboard.service.projection import exclude, public_company
from jobboard.service.resolve import RequestContext, resolve
from jobboard.service.runtime import get_runtime

SIGNUP_MESSAGE = (
    "A link to activate your account has been emailed to the email address provided."
)
FORGOT_PASSWORD_MESSAGE = (
    "If that email address is in our database, an email is sent to reset your password"
)
SEND_VERIFICATION_MESSAGE = (
    "If your email address is not already verified, an email is sent to verify your email address"
)


def _refresh_max_age() -> int:
    return get_runtime().settings.refresh_token_ttl_minutes * 60


def _message(text: str) -> Dict[str, str]:
    return {"message": text}


# auth
async def _login(args: LoginArgs, ctx: RequestContext) -> Dict[str, Any]:
    runtime = get_runtime()
    company = await runtime.auth.login(args.email, args.password)
    presented = ctx.refresh_cookie
    if presented:
        ctx.clear_refresh_cookie()
    tokens = runtime.sessions.begin_session(company.id, presented)
    ctx.set_refresh_cookie(tokens.refresh_token, max_age=_refresh_max_age())
    return {"access_token": tokens.access_token}


async def _signup(args: SignupArgs, ctx: RequestContext) -> Dict[str, str]:
    runtime = get_runtime()
    await runtime.auth.signup(**exclude(args.company.model_dump(), ["confirm"]))
    await runtime.invalidator.invalidate(patterns=[listing_pattern("companies")])
    return _message(SIGNUP_MESSAGE)


async def _refresh(args: Dict[str, Any], ctx: RequestContext) -> Dict[str, Any]:
    runtime = get_runtime()
    presented = ctx.refresh_cookie
    if presented:
        ctx.clear_refresh_cookie()
    tokens = runtime.sessions.rotate(presented)
    ctx.set_refresh_cookie(tokens.refresh_token, max_age=_refresh_max_age())
    return {"access_token": tokens.access_token}


async def _logout(args: Dict[str, Any], ctx: RequestContext) -> Dict[str, str]:
    presented = ctx.refresh_cookie
    if presented:
        ctx.clear_refresh_cookie()
        get_runtime().sessions.end_session(presented)
    return _message("Logged out successfully")


async def _verify_email(args: VerifyEmailArgs, ctx: RequestContext) -> Dict[str, str]:
    runtime = get_runtime()
    company = await runtime.auth.verify_email(args.token)
    await runtime.companies.refresh(company)
    return _message("Email verified successfully")


async def _change_password(args: ChangePasswordArgs, ctx: RequestContext) -> Dict[str, str]:
    await get_runtime().auth.change_password(ctx.company.id, args.old_password, args.new_password)
    return _message("Password changed successfully")


async def _forgot_password(args: ForgotPasswordArgs, ctx: RequestContext) -> Dict[str, str]:
    await get_runtime().auth.send_reset_password_email(args.email)
    return _message(FORGOT_PASSWORD_MESSAGE)


async def _reset_password(args: ResetPasswordArgs, ctx: RequestContext) -> Dict[str, str]:
    await get_runtime().auth.reset_password(args.token, args.password)
    return _message("Password reset successfully")


async def _send_verification_email(args: Dict[str, Any], ctx: RequestContext) -> Dict[str, str]:
    await get_runtime().auth.send_verification_email(ctx.company)
    return _message(SEND_VERIFICATION_MESSAGE)


login = resolve(_login, input_schema=LoginArgs)
signup = resolve(_signup, input_schema=SignupArgs)
refresh = resolve(_refresh)
logout = resolve(_logout, requires_auth=True)
verify_email = resolve(_verify_email, input_schema=VerifyEmailArgs)
change_password = resolve(_change_password, requires_auth=True, input_schema=ChangePasswordArgs)
forgot_password = resolve(_forgot_password, input_schema=ForgotPasswordArgs)
reset_password = resolve(_reset_password, input_schema=ResetPasswordArgs)
send_verification_email = resolve(_send_verification_email, requires_auth=True)


# queries
async def _me(args: Dict[str, Any], ctx: RequestContext) -> Dict[str, Any]:
    return public_company(ctx.company)


async def _companies(args: Pagination, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().companies.list(args.page, args.limit, args.search)


async def _company(args: CompanyIdArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().companies.get(args.id)


async def _company_jobs(args: CompanyJobsArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().jobs.list_for_company(args.id, args.page, args.limit, args.search)


async def _jobs(args: Pagination, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().jobs.list(args.page, args.limit, args.search)


async def _job(args: IdArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().jobs.get_with_company(args.id)


me = resolve(_me, requires_auth=True)
companies = resolve(_companies, input_schema=Pagination)
company = resolve(_company, input_schema=CompanyIdArgs)
company_jobs = resolve(_company_jobs, input_schema=CompanyJobsArgs)
jobs = resolve(_jobs, input_schema=Pagination)
job = resolve(_job, input_schema=IdArgs)


# mutations
async def _post_job(args: CreateJobArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().jobs.post_job(ctx.company.id, **args.job.model_dump())


async def _edit_job(args: UpdateJobArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().jobs.edit_job(args.id, ctx.company.id, **args.job.model_dump())


async def _delete_job(args: IdArgs, ctx: RequestContext) -> Dict[str, str]:
    await get_runtime().jobs.delete_job(args.id, ctx.company.id)
    return _message("Job deleted successfully")


async def _edit_company(args: UpdateCompanyArgs, ctx: RequestContext) -> Dict[str, Any]:
    return await get_runtime().companies.edit_company(ctx.company.id, **args.company.model_dump())


post_job = resolve(
    _post_job, requires_auth=True, requires_verified_email=True, input_schema=CreateJobArgs
)
edit_job = resolve(
    _edit_job, requires_auth=True, requires_verified_email=True, input_schema=UpdateJobArgs
)
delete_job = resolve(
    _delete_job, requires_auth=True, requires_verified_email=True, input_schema=IdArgs
)
edit_company = resolve(_edit_company, requires_auth=True, input_schema=UpdateCompanyArgs)
