"""ng_negotiation REST endpoints.

POST /negotiations                        — open a session (optional first message)
GET  /negotiations                        — my sessions, cursor pagination
GET  /negotiations/templates              — canned message catalogue
GET  /negotiations/{negotiation_id}       — full detail with message log
POST /negotiations/{negotiation_id}/messages
POST /negotiations/{negotiation_id}/accept   — seller only, returns the discount code
POST /negotiations/{negotiation_id}/reject
POST /negotiations/{negotiation_id}/report
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_common.database import get_db_session
from src.ng_common.response import ApiResponse, success_response
from src.ng_gateway.auth.dependencies import get_current_user_id
from src.ng_negotiation.application.schemas import (
    OpenNegotiationRequest,
    PostMessageRequest,
    RejectRequest,
    ReportRequest,
)
from src.ng_negotiation.application.service import NegotiationApplicationService

router = APIRouter(prefix="/negotiations", tags=["negotiations"])

_service = NegotiationApplicationService()


def get_negotiation_service() -> NegotiationApplicationService:
    return _service


ServiceDep = Annotated[NegotiationApplicationService, Depends(get_negotiation_service)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
DbDep = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("", status_code=201)
async def open_negotiation(
    body: OpenNegotiationRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.open_negotiation(
        db,
        buyer_id=user_id,
        item_id=body.item_id,
        seller_id=body.seller_id,
        original_price=body.original_price,
        message=body.message,
        template_id=body.template_id,
    )
    return success_response(outcome.unwrap().model_dump(), request)


@router.get("")
async def list_negotiations(
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
    status: Literal["active", "accepted", "rejected", "expired", "completed"] | None = Query(
        None
    ),
    limit: int = Query(20, ge=1, le=100),
    cursor: str | None = Query(None),
) -> ApiResponse:
    result = await service.list_negotiations(db, user_id, status, cursor, limit)
    return success_response(result.model_dump(), request)


@router.get("/templates")
async def list_templates(request: Request, service: ServiceDep) -> ApiResponse:
    templates = service.list_templates()
    return success_response([t.model_dump() for t in templates], request)


@router.get("/{negotiation_id}")
async def get_negotiation(
    negotiation_id: str,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.get_negotiation(db, negotiation_id, user_id)
    return success_response(outcome.unwrap().model_dump(), request)


@router.post("/{negotiation_id}/messages", status_code=201)
async def post_message(
    negotiation_id: str,
    body: PostMessageRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.post_message(
        db,
        negotiation_id,
        sender_id=user_id,
        message_type=body.type,
        content=body.content,
        template_id=body.template_id,
        price_offer=body.price_offer,
    )
    return success_response(outcome.unwrap().model_dump(), request)


@router.post("/{negotiation_id}/accept")
async def accept_offer(
    negotiation_id: str,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.accept_offer(db, negotiation_id, user_id)
    return success_response(outcome.unwrap().model_dump(), request)


@router.post("/{negotiation_id}/reject")
async def reject_offer(
    negotiation_id: str,
    body: RejectRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.reject_offer(db, negotiation_id, user_id, body.reason)
    return success_response(outcome.unwrap().model_dump(), request)


@router.post("/{negotiation_id}/report")
async def report_negotiation(
    negotiation_id: str,
    body: ReportRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.report_negotiation(db, negotiation_id, user_id, body.reason)
    return success_response(outcome.unwrap().model_dump(), request)
