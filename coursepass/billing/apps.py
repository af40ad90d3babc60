from django.apps import AppConfig


class BillingConfig(AppConfig):
    """
    Django app configuration for the billing app.

    Owns plans, subscriptions, payments and usage metering, plus the
    Pesapal integration.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "coursepass.billing"
