"""
DRF views for the billing app.

Endpoints:
    POST /api/v1/billing/subscriptions/ - Subscribe to a creator
    POST /api/v1/billing/subscriptions/<subscription_id>/confirm/ - Re-check after 3DS
    POST /api/v1/billing/subscriptions/<subscription_id>/cancel/ - Cancel at period end
    POST /api/v1/billing/payment-methods/setup-intent/ - Start saving a card
    GET  /api/v1/billing/payment-methods/setup-intent/<setup_intent_id>/ - Read back a saved card
    DELETE /api/v1/billing/payment-methods/<payment_method_id>/ - Remove a saved card
    GET  /api/v1/billing/earnings/ - Creator balances and recent earnings
    POST /api/v1/billing/webhooks/stripe/ - Stripe webhook (see billing.webhooks.views)

Security:
    - All endpoints require authentication except the webhook
    - Subscriptions are only visible to their subscriber
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.serializers import (
    CreateSubscriptionSerializer,
    EarningsSummarySerializer,
    SetupIntentDetailSerializer,
    SetupIntentSerializer,
    SubscriptionCreationResultSerializer,
    SubscriptionSerializer,
)
from billing.services import (
    CreateSubscriptionParams,
    EarningsService,
    PaymentMethodService,
    SubscriptionOrchestrator,
)

logger = logging.getLogger(__name__)

# ServiceResult error codes that are not plain 400s
ERROR_STATUS_CODES = {
    "CREATOR_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "SUBSCRIPTION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_SUBSCRIBED": status.HTTP_409_CONFLICT,
    "ALREADY_CANCELED": status.HTTP_409_CONFLICT,
    "SUBSCRIPTION_IN_PROGRESS": status.HTTP_409_CONFLICT,
    "PAYMENT_FAILED": status.HTTP_402_PAYMENT_REQUIRED,
    "CANCELLATION_FAILED": status.HTTP_502_BAD_GATEWAY,
    "PAYMENT_METHOD_SETUP_FAILED": status.HTTP_502_BAD_GATEWAY,
    "SETUP_INTENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PAYMENT_METHOD_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PAYMENT_METHOD_IN_USE": status.HTTP_409_CONFLICT,
    "PAYMENT_METHOD_DETACH_FAILED": status.HTTP_502_BAD_GATEWAY,
}


def failure_response(result) -> Response:
    return Response(
        {"error": result.error, "error_code": result.error_code},
        status=ERROR_STATUS_CODES.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


def creation_result_data(creation) -> dict:
    return SubscriptionCreationResultSerializer(
        {
            "subscription_id": creation.subscription_id,
            "status": creation.status,
            "requires_action": creation.requires_action,
            "client_continuation_token": creation.client_continuation_token,
        }
    ).data


class SubscriptionCreateView(APIView):
    """
    Subscribe the current user to a creator.

    POST /api/v1/billing/subscriptions/

    Returns:
        201 with subscription_id, status, requires_action and, when the bank
        asks for authentication, client_continuation_token
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        request=CreateSubscriptionSerializer,
        responses={
            201: SubscriptionCreationResultSerializer,
            400: OpenApiResponse(description="Invalid request or price mismatch"),
            402: OpenApiResponse(description="Payment could not be completed"),
            404: OpenApiResponse(description="Creator not found"),
            409: OpenApiResponse(description="Already subscribed"),
        },
    )
    def post(self, request):
        serializer = CreateSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = SubscriptionOrchestrator().create_subscription(
            request.user,
            CreateSubscriptionParams(
                creator_id=data["creator_id"],
                payment_method_id=data["payment_method_id"],
                price=data["price"],
                currency=data["currency"],
                request_id=data.get("request_id"),
            ),
        )
        if not result.success:
            return failure_response(result)

        return Response(creation_result_data(result.data), status=status.HTTP_201_CREATED)


class SubscriptionConfirmView(APIView):
    """
    Re-check a subscription after the client completed authentication.

    POST /api/v1/billing/subscriptions/<subscription_id>/confirm/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={200: SubscriptionCreationResultSerializer})
    def post(self, request, subscription_id: str):
        result = SubscriptionOrchestrator().confirm_subscription(request.user, subscription_id)
        if not result.success:
            return failure_response(result)
        return Response(creation_result_data(result.data))


class SubscriptionCancelView(APIView):
    """
    Stop renewing a subscription at the end of the current period.

    POST /api/v1/billing/subscriptions/<subscription_id>/cancel/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={200: SubscriptionSerializer})
    def post(self, request, subscription_id: str):
        result = SubscriptionOrchestrator().cancel_subscription(request.user, subscription_id)
        if not result.success:
            return failure_response(result)
        return Response(SubscriptionSerializer(result.data).data)


class SetupIntentView(APIView):
    """
    Create a SetupIntent so the client can save a card for subscriptions.

    POST /api/v1/billing/payment-methods/setup-intent/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(request=None, responses={201: SetupIntentSerializer})
    def post(self, request):
        result = PaymentMethodService().create_setup_intent(request.user)
        if not result.success:
            return failure_response(result)
        return Response(SetupIntentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class SetupIntentDetailView(APIView):
    """
    Read back a SetupIntent and the card it saved.

    GET /api/v1/billing/payment-methods/setup-intent/<setup_intent_id>/

    The id may also be given as the SetupIntent client secret.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: SetupIntentDetailSerializer})
    def get(self, request, setup_intent_id):
        result = PaymentMethodService().retrieve_setup_intent(request.user, setup_intent_id)
        if not result.success:
            return failure_response(result)
        return Response(SetupIntentDetailSerializer(result.data).data)


class PaymentMethodDetachView(APIView):
    """
    Remove a saved card from the current user's Stripe customer.

    DELETE /api/v1/billing/payment-methods/<payment_method_id>/

    Returns 409 while a live subscription still renews with the card.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={204: None})
    def delete(self, request, payment_method_id):
        result = PaymentMethodService().detach_payment_method(request.user, payment_method_id)
        if not result.success:
            return failure_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


class EarningsSummaryView(APIView):
    """
    Creator balances and most recent earnings.

    GET /api/v1/billing/earnings/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(responses={200: EarningsSummarySerializer})
    def get(self, request):
        summary = EarningsService.get_summary(request.user)
        return Response(EarningsSummarySerializer(summary).data)
