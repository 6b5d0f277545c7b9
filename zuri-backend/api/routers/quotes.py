"""
Quotes API Endpoints.

Endpoint for pricing a payment before creating it.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_context
from api.models import ErrorResponse, QuoteRequest, QuoteResponse
from domain.assets import Asset, UnsupportedAssetError
from services.context import PaymentContext
from services.pricing_service import calculate_funding_quote

router = APIRouter()


@router.post(
    "/quote",
    response_model=QuoteResponse,
    responses={400: {"model": ErrorResponse}},
    summary="Calculate Funding Quote",
    description="Price a payout in the chosen funding asset. Quote is valid for 15 minutes."
)
def calculate_quote(
    request: QuoteRequest,
    context: PaymentContext = Depends(get_context),
):
    """
    Calculate how much of `payAsset` funds a payout of `destAmount` `destAsset`.

    Prices come from the configured static USD table; the shielding fee is added
    on top of the converted amount.

    **Example request:**
    ```json
    {"destAsset": "SOL", "destAmount": "1.5", "payAsset": "ETH"}
    ```
    """
    try:
        settings = context.settings
        quote = calculate_funding_quote(
            Asset.parse(request.dest_asset),
            request.dest_amount,
            Asset.parse(request.pay_asset),
            usd_prices=settings.usd_prices,
            fee_rate=settings.fee_rate,
        )
        return QuoteResponse.from_quote(quote)

    except (UnsupportedAssetError, ValueError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to calculate quote: {str(e)}"
        )
