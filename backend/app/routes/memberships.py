"""API routes exposing the membership lifecycle."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..memberships import MembershipError, MembershipState, get_plan_definition
from ..memberships.catalog import pricing_table
from ..schemas.memberships import (
    CreateMembershipRequest,
    ErrorResponse,
    MembershipCountsResponse,
    MembershipListResponse,
    MembershipResponse,
    MembershipStatsResponse,
    MessageResponse,
    PlanBenefits,
    PlanBenefitsResponse,
    PlanPricing,
    PlanPricingResponse,
    RenewQuoteResponse,
    StudentMembershipsResponse,
    UpdateMembershipRequest,
    UpgradeMembershipRequest,
)
from ..services.memberships import get_membership_config, get_membership_service


logger = logging.getLogger("memberships")

router = APIRouter(prefix=get_membership_config().api_prefix, tags=["memberships"])


@router.post("/create", response_model=MembershipResponse, status_code=status.HTTP_201_CREATED)
def create_membership(payload: CreateMembershipRequest) -> MembershipResponse:
    service = get_membership_service()
    view = service.create(
        student_id=payload.student_id,
        category_ids=payload.category_ids,
        amount=payload.amount,
        plan_type=payload.plan_type,
        duration=payload.duration,
    )
    return MembershipResponse.from_view(view, message="Membership created successfully")


@router.get("/getAll", response_model=MembershipListResponse)
def list_memberships(
    plan_type: Optional[str] = Query(None),
    state: Optional[MembershipState] = Query(None),
) -> MembershipListResponse:
    service = get_membership_service()
    return MembershipListResponse.from_views(service.list_memberships(plan_type=plan_type, state=state))


@router.get("/get/{membership_id}", response_model=MembershipResponse)
def get_membership(membership_id: str) -> MembershipResponse:
    return MembershipResponse.from_view(get_membership_service().get(membership_id))


@router.get("/getmembership/{student_id}", response_model=StudentMembershipsResponse)
def get_memberships_for_student(student_id: str) -> StudentMembershipsResponse:
    result = get_membership_service().memberships_for_student(student_id)
    return StudentMembershipsResponse.from_result(result)


@router.get("/membership-count/{student_id}", response_model=MembershipCountsResponse)
def get_membership_counts(student_id: str) -> MembershipCountsResponse:
    counts = get_membership_service().counts_by_student(student_id)
    return MembershipCountsResponse.from_counts(counts)


@router.post("/renew/{membership_id}", response_model=MembershipResponse)
def renew_membership(membership_id: str) -> MembershipResponse:
    view = get_membership_service().renew(membership_id)
    return MembershipResponse.from_view(view, message="Membership renewed successfully")


@router.post("/upgrade/{membership_id}", response_model=MembershipResponse)
def upgrade_membership(membership_id: str, payload: UpgradeMembershipRequest) -> MembershipResponse:
    view = get_membership_service().upgrade(membership_id, payload.plan_type)
    return MembershipResponse.from_view(view, message="Membership upgraded successfully")


@router.post("/update/{membership_id}", response_model=MembershipResponse)
def update_membership(membership_id: str, payload: UpdateMembershipRequest) -> MembershipResponse:
    view = get_membership_service().update(membership_id, payload.to_patch())
    return MembershipResponse.from_view(view)


@router.delete("/delete/{membership_id}", response_model=MessageResponse)
def delete_membership(membership_id: str) -> MessageResponse:
    get_membership_service().delete(membership_id)
    return MessageResponse(message="Membership deleted successfully")


@router.get("/get-renew-amount", response_model=RenewQuoteResponse)
def get_renew_amount(
    category: str = Query(...),
    user_id: str = Query(...),
) -> RenewQuoteResponse:
    quote = get_membership_service().get_renew_amount(category, user_id)
    return RenewQuoteResponse(data=quote)


@router.get("/stats", response_model=MembershipStatsResponse)
def get_membership_stats() -> MembershipStatsResponse:
    return MembershipStatsResponse(data=get_membership_service().stats())


@router.get("/benefits/{plan_type}", response_model=PlanBenefitsResponse)
def get_plan_benefits(plan_type: str) -> PlanBenefitsResponse:
    return PlanBenefitsResponse(data=PlanBenefits.from_definition(get_plan_definition(plan_type)))


@router.get("/pricing", response_model=PlanPricingResponse)
def get_plan_pricing() -> PlanPricingResponse:
    currency = get_membership_config().currency
    return PlanPricingResponse(data=PlanPricing(currency=currency, pricing=pricing_table()))


def _envelope(status_code: int, message: str, error: object = None) -> JSONResponse:
    body = ErrorResponse(message=message, error=error)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def install_exception_handlers(app: FastAPI, *, expose_errors: bool = False) -> None:
    """Render every failure as a ``{success: false, ...}`` envelope."""

    @app.exception_handler(MembershipError)
    async def _membership_error(request: Request, exc: MembershipError) -> JSONResponse:
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "Membership storage error path=%s code=%s",
                request.url.path,
                exc.code,
                exc_info=exc,
            )
            cause = exc.__cause__ or exc
            return _envelope(
                exc.status_code,
                "Internal server error",
                str(cause) if expose_errors else None,
            )
        logger.info(
            "Membership request rejected path=%s status=%s message=%s",
            request.url.path,
            exc.status_code,
            exc.message,
        )
        return _envelope(exc.status_code, exc.message, dict(exc.payload))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _envelope(status.HTTP_400_BAD_REQUEST, "Validation failed", jsonable_encoder(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _envelope(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled server error path=%s", request.url.path)
        return _envelope(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            str(exc) if expose_errors else None,
        )
