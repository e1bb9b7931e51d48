"""ng_settlement REST endpoints, called by the purchase flow.

POST /settlement-tokens/validate          — check a code for (me, item)
POST /settlement-tokens/{code}/redeem     — mark used after payment capture
GET  /settlement-tokens/mine              — codes issued to me
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_common.database import get_db_session
from src.ng_common.response import ApiResponse, success_response
from src.ng_gateway.auth.dependencies import get_current_user_id
from src.ng_settlement.application.schemas import RedeemTokenRequest, ValidateTokenRequest
from src.ng_settlement.application.service import SettlementApplicationService

router = APIRouter(prefix="/settlement-tokens", tags=["settlement-tokens"])

_service = SettlementApplicationService()


def get_settlement_service() -> SettlementApplicationService:
    return _service


ServiceDep = Annotated[SettlementApplicationService, Depends(get_settlement_service)]
UserIdDep = Annotated[str, Depends(get_current_user_id)]
DbDep = Annotated[AsyncSession, Depends(get_db_session)]


@router.post("/validate")
async def validate_token(
    body: ValidateTokenRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    # An invalid code is a normal answer (valid=false), not an error envelope
    result = await service.validate_token(db, body.code, user_id, body.item_id)
    return success_response(result.model_dump(), request)


@router.post("/{code}/redeem")
async def redeem_token(
    code: str,
    body: RedeemTokenRequest,
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    outcome = await service.redeem_token(
        db, code, body.purchase_ref, buyer_id=user_id, item_id=body.item_id
    )
    return success_response(outcome.unwrap().model_dump(), request)


@router.get("/mine")
async def list_my_tokens(
    request: Request,
    user_id: UserIdDep,
    db: DbDep,
    service: ServiceDep,
) -> ApiResponse:
    result = await service.list_my_tokens(db, user_id)
    return success_response(result.model_dump(), request)
