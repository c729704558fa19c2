"""Quote routes: price a job and list past quotes."""

from fastapi import APIRouter, Depends, HTTPException, Query

from models.schemas import QuoteRequest
from routes.dependencies import get_current_business, get_current_user
from services.quote_service import QuoteError, QuoteService
from services.supabase_client import SupabaseClient, get_supabase_client

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("")
async def generate_quote(
    request: QuoteRequest,
    business: dict = Depends(get_current_business),
    db: SupabaseClient = Depends(get_supabase_client),
):
    """Estimate a job from the business's pricing rules and store the quote."""
    try:
        result = await QuoteService(db).generate(business, request)
    except QuoteError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, **result}


@router.get("")
async def list_quotes(
    limit: int = Query(50, ge=1, le=200),
    user: dict = Depends(get_current_user),
    db: SupabaseClient = Depends(get_supabase_client),
):
    quotes = await db.list_quotes(user["business_id"], limit=limit)
    return {"success": True, "quotes": quotes, "count": len(quotes)}
