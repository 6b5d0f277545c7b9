"""
Payments API Endpoints.

Endpoints for creating payments, attaching funding transactions and reading
payment status. Everything after attach happens in the background loops.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_context
from api.models import (
    AttachFundingTxRequest,
    AttachFundingTxResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    ErrorResponse,
    PaymentStatusResponse,
)
from providers.base import CollectorPoolExhaustedError
from services.context import PaymentContext
from services.payment_service import (
    FundingConflictError,
    PaymentNotFoundError,
    PaymentValidationError,
    attach_funding_tx,
    create_payment,
    get_payment,
    list_payments,
)

router = APIRouter()


@router.post(
    "/create-payment-intent",
    response_model=CreatePaymentResponse,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Create Payment",
    description="Create a payment and get the collector address and fee-inclusive funding amount."
)
def create_payment_intent(
    request: CreatePaymentRequest,
    context: PaymentContext = Depends(get_context),
):
    """
    Create a cross-chain payment in CREATED status.

    **Process:**
    1. Validates assets, amount, destination chain and recipient address
    2. Prices the funding side and adds the shielding fee
    3. Allocates a single-use collector address on the funding chain

    The user then sends `fundingAmountWithFee` of `payAsset` to `collectorAddress`
    and reports the transaction through `/api/attach-funding-tx`.

    **Example request:**
    ```json
    {
      "recipient": "0x8ba1f109551bd432803012645ac136ddd64dba72",
      "destAsset": "ETH",
      "destAmount": "0.1",
      "payAsset": "ETH"
    }
    ```
    """
    try:
        record = create_payment(
            context,
            recipient=request.recipient,
            dest_asset=request.dest_asset,
            dest_amount=request.dest_amount,
            pay_asset=request.pay_asset,
            dest_chain=request.dest_chain,
        )
        return CreatePaymentResponse.from_record(record)

    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CollectorPoolExhaustedError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to create payment: {str(e)}"
        )


@router.post(
    "/attach-funding-tx",
    response_model=AttachFundingTxResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Attach Funding Transaction",
    description="Report the funding transaction sent to the collector address."
)
def attach_funding_transaction(
    request: AttachFundingTxRequest,
    context: PaymentContext = Depends(get_context),
):
    """
    Attach a funding transaction and move the payment to WAITING_FOR_FUNDING.

    Re-sending the same reference is accepted. A different reference, or any
    reference once the payment has moved past WAITING_FOR_FUNDING, is a 409.
    """
    try:
        record = attach_funding_tx(context, request.payment_id, request.funding_tx_reference)
        return AttachFundingTxResponse(
            payment_id=str(record.payment_id),
            status=record.status.public_label,
            funding_tx_reference=record.funding_tx_reference,
        )

    except PaymentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentNotFoundError:
        raise HTTPException(status_code=404, detail=f"Payment not found: {request.payment_id}")
    except FundingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to attach funding tx: {str(e)}"
        )


@router.get(
    "/payment-status",
    response_model=PaymentStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get Payment Status",
    description="Best-known state of a payment."
)
def get_payment_status(
    payment_id: str = Query(..., alias="paymentId", min_length=1),
    context: PaymentContext = Depends(get_context),
):
    """
    Return the payment record.

    The internal PRIVACY_BURNED state is reported as COLLECTED. For ERROR the
    stored diagnostic is returned in `error`.
    """
    try:
        return PaymentStatusResponse.from_record(get_payment(context, payment_id))

    except PaymentNotFoundError:
        raise HTTPException(status_code=404, detail=f"Payment not found: {payment_id}")
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to get payment status: {str(e)}"
        )


@router.get(
    "/payments",
    response_model=List[PaymentStatusResponse],
    summary="List Payments",
    description="Every payment, oldest first. Debugging aid; unauthenticated."
)
def list_all_payments(context: PaymentContext = Depends(get_context)):
    try:
        return [PaymentStatusResponse.from_record(record) for record in list_payments(context)]
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list payments: {str(e)}"
        )
