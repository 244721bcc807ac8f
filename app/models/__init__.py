from app.models.user_entitlement import UserEntitlement
from app.models.subscription_event import SubscriptionEvent
from app.models.affirmation_view import AffirmationView

__all__ = [
    "UserEntitlement",
    "SubscriptionEvent",
    "AffirmationView",
]
