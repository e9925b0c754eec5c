"""ORM models exposed for metadata discovery."""
from glowcare.db.models.care_plan import CarePlan
from glowcare.db.models.product import Brand, Product
from glowcare.db.models.recommendation_rule import RecommendationRule
from glowcare.db.models.recommendation_session import RecommendationSession
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.db.models.user import User

__all__ = [
    "Brand",
    "CarePlan",
    "Product",
    "RecommendationRule",
    "RecommendationSession",
    "SkinProfile",
    "User",
]
