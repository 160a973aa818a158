"""
DRF serializers for the billing app.

Request serializers validate input shape only; business rules (price match,
duplicate subscriptions) live in the services.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from billing.models import CreatorEarning, Subscription


class CreateSubscriptionSerializer(serializers.Serializer):
    """
    Request body for subscribing to a creator.

    Fields:
        creator_id: User id of the creator
        payment_method_id: Stripe PaymentMethod (pm_xxx) to charge
        price: Monthly price in major units, must match the creator's price
        currency: ISO 4217 code
        request_id: Client-generated id; retries with the same id never
            create a second remote subscription
    """

    creator_id = serializers.IntegerField(min_value=1)
    payment_method_id = serializers.CharField(max_length=255)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.01"))
    currency = serializers.CharField(max_length=3, min_length=3)
    request_id = serializers.CharField(max_length=64, required=False, allow_blank=False)

    def validate_currency(self, value: str) -> str:
        return value.lower()


class SubscriptionSerializer(serializers.ModelSerializer):
    subscription_id = serializers.CharField(source="stripe_subscription_id", read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "subscription_id",
            "subscriber",
            "creator",
            "status",
            "price_cents",
            "currency",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
        ]
        read_only_fields = fields


class SubscriptionCreationResultSerializer(serializers.Serializer):
    subscription_id = serializers.CharField()
    status = serializers.CharField()
    requires_action = serializers.BooleanField()
    client_continuation_token = serializers.CharField(allow_null=True)


class SetupIntentSerializer(serializers.Serializer):
    setup_intent_id = serializers.CharField(source="id")
    client_secret = serializers.CharField()
    customer_id = serializers.CharField()


class PaymentMethodSerializer(serializers.Serializer):
    payment_method_id = serializers.CharField(source="id")
    type = serializers.CharField()
    card_brand = serializers.CharField(allow_null=True)
    card_last4 = serializers.CharField(allow_null=True)
    card_exp_month = serializers.IntegerField(allow_null=True)
    card_exp_year = serializers.IntegerField(allow_null=True)


class SetupIntentDetailSerializer(serializers.Serializer):
    setup_intent_id = serializers.CharField(source="id")
    status = serializers.CharField()
    customer_id = serializers.CharField()
    payment_method_id = serializers.CharField(allow_null=True)
    payment_method = PaymentMethodSerializer(allow_null=True)


class CreatorEarningSerializer(serializers.ModelSerializer):
    class Meta:
        model = CreatorEarning
        fields = [
            "id",
            "subscription",
            "payment_intent_id",
            "gross_amount_cents",
            "commission_rate",
            "commission_cents",
            "net_amount_cents",
            "currency",
            "status",
            "payment_date",
            "available_at",
        ]
        read_only_fields = fields


class EarningsSummarySerializer(serializers.Serializer):
    pending_balance_cents = serializers.IntegerField()
    available_balance_cents = serializers.IntegerField()
    total_earned_cents = serializers.IntegerField()
    recent_earnings = CreatorEarningSerializer(many=True)
