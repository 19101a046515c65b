# 全モデルをインポート (Alembic autogenerate用)
from printgest.models.user_subscription import UserSubscription
from printgest.models.subscription_change import SubscriptionChange
from printgest.models.user_role import UserRole
from printgest.models.profile import Profile
from printgest.models.project import Project
from printgest.models.catalog_project import CatalogProject
from printgest.models.invoice import Invoice
from printgest.models.grace_period_notification import GracePeriodNotification
from printgest.models.refund_request import RefundRequest

__all__ = [
    "UserSubscription",
    "SubscriptionChange",
    "UserRole",
    "Profile",
    "Project",
    "CatalogProject",
    "Invoice",
    "GracePeriodNotification",
    "RefundRequest",
]
