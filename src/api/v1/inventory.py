"""
Inventory API endpoints: catalog pushes and variant lookups.
"""

from uuid import UUID

from fastapi import APIRouter

from src.api.deps import CurrentAdmin, CurrentCaller, Ledger
from src.core.logging import get_logger
from src.schemas.inventory import VariantResponse, VariantUpsertRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])


@router.put(
    "/variants/{variant_id}",
    response_model=VariantResponse,
    summary="Push a catalog variant",
    description="Insert or replace a variant's price, stock and active flag",
)
async def upsert_variant(
    variant_id: UUID,
    request: VariantUpsertRequest,
    admin: CurrentAdmin,
    ledger: Ledger,
) -> VariantResponse:
    logger.info(
        "Catalog variant push",
        variant_id=str(variant_id),
        sku=request.sku,
        admin_id=str(admin.user_id),
    )
    record = await ledger.upsert_variant(request.to_record(variant_id))
    return VariantResponse.from_record(record)


@router.get(
    "/variants/{variant_id}",
    response_model=VariantResponse,
    summary="Get variant",
)
async def get_variant(
    variant_id: UUID,
    caller: CurrentCaller,
    ledger: Ledger,
) -> VariantResponse:
    record = await ledger.get_variant(variant_id)
    return VariantResponse.from_record(record)
