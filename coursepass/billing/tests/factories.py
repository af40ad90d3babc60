from __future__ import annotations

import uuid
from decimal import Decimal

import factory
from dateutil.relativedelta import relativedelta
from django.utils import timezone
from factory.django import DjangoModelFactory

from coursepass.billing.constants import BillingCycle
from coursepass.billing.constants import PaymentStatus
from coursepass.billing.constants import PlanCode
from coursepass.billing.constants import SubscriptionSource
from coursepass.billing.constants import SubscriptionStatus
from coursepass.billing.models import Payment
from coursepass.billing.models import Plan
from coursepass.billing.models import Subscription
from coursepass.users.tests.factories import UserFactory


def get_plan(code: str = PlanCode.PREMIUM) -> Plan:
    return Plan.objects.get(code=code)


class PaymentFactory(DjangoModelFactory[Payment]):
    class Meta:
        model = Payment

    user = factory.SubFactory(UserFactory)
    plan = factory.LazyFunction(get_plan)
    billing_cycle = BillingCycle.MONTHLY
    amount = Decimal("9.99")
    original_amount = factory.SelfAttribute("amount")
    currency = "ZMW"
    status = PaymentStatus.PENDING
    merchant_reference = factory.Sequence(lambda n: f"CP-TEST-{n:06d}")
    gateway_tracking_id = factory.LazyFunction(lambda: str(uuid.uuid4()))


class SubscriptionFactory(DjangoModelFactory[Subscription]):
    class Meta:
        model = Subscription

    user = factory.SubFactory(UserFactory)
    plan = factory.LazyFunction(get_plan)
    status = SubscriptionStatus.ACTIVE
    billing_cycle = BillingCycle.MONTHLY
    start_date = factory.LazyFunction(timezone.now)
    end_date = factory.LazyAttribute(lambda o: o.start_date + relativedelta(months=1))
    source = SubscriptionSource.GATEWAY
