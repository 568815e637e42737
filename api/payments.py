from fastapi import APIRouter, Depends, Request
from api.dependencies import get_current_user, get_payment_service
from api.models import CreateOrderRequest, CreateOrderResponse, PaymentResponse, VerifyPaymentRequest
from api.services.payment_gateway import WEBHOOK_SIGNATURE_HEADER
from api.services.payment_service import PaymentService
from db.models.user import User

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-order", response_model=CreateOrderResponse)
def create_order(
    body: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
):
    order, payment = payment_service.create_order(current_user, body.amount, body.currency)
    return CreateOrderResponse(
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
        key_id=payment_service.gateway.key_id or None,
        payment_id=payment.id,
    )


@router.post("/verify", response_model=PaymentResponse)
def verify_payment(
    body: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
):
    return payment_service.verify_payment(current_user, body.order_id, body.payment_id, body.signature)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    payment_service: PaymentService = Depends(get_payment_service),
):
    # The signature covers the exact bytes sent, so read them before any parsing
    raw_body = await request.body()
    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)
    return payment_service.handle_webhook(raw_body, signature)
