from django.apps import AppConfig


class PromotionsConfig(AppConfig):
    """Discount codes and the referral program."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "coursepass.promotions"
