"""Versioned skin profiles and "current profile" resolution."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from glowcare.core.config import settings
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.db.models.user import User
from glowcare.observability.tracing import trace
from glowcare.services.cache import get_cache, invalidate
from glowcare.services.cache.base import KeyValueCache

logger = logging.getLogger(__name__)

PROFILE_FIELDS = (
    "skin_type",
    "sensitivity_level",
    "acne_level",
    "dehydration_level",
    "rosacea_risk",
    "pigmentation_risk",
    "age_group",
    "has_pregnancy",
    "risk_flags",
    "main_goals",
    "notes",
    "medical_markers",
)
_LIST_FIELDS = {"risk_flags", "main_goals"}
_MAP_FIELDS = {"medical_markers"}

VIA_EXPLICIT = "explicit"
VIA_LATEST = "latest"
VIA_RETRY = "retry"


@dataclass
class ProfileVersionResult:
    profile: SkinProfile
    previous_version: Optional[int]


@dataclass
class ProfileResolution:
    profile: Optional[SkinProfile]
    via: Optional[str]

    @property
    def found(self) -> bool:
        return self.profile is not None


def create_profile_version(
    db: Session,
    user_id: UUID,
    answers: Mapping[str, Any],
    *,
    partial: bool = False,
    cache: KeyValueCache | None = None,
) -> ProfileVersionResult:
    """
    Store a new profile version for the user.

    Rows are never updated in place: a full submission writes the answers as
    given, a partial one is layered on top of the previous version. After the
    commit the cache entries of the superseded version are invalidated.
    """
    cache = cache or get_cache()
    with trace("profile.create_version", metadata={"partial": partial}, user_id=str(user_id)):
        for attempt in (1, 2):
            user = _ensure_user(db, user_id)
            previous = by_latest_version(db, user_id)
            attributes = _merge_answers(previous if partial else None, answers)
            profile = SkinProfile(
                user_id=user_id,
                version=(previous.version + 1) if previous else 1,
                **attributes,
            )
            db.add(profile)
            user.last_profile_at = datetime.now(timezone.utc)
            try:
                db.commit()
            except IntegrityError:
                # Another submission took this version number; recompute once.
                db.rollback()
                if attempt == 2:
                    raise
                logger.warning("Profile version collision for user=%s, retrying", user_id)
                continue
            db.refresh(profile)
            break

    previous_version = previous.version if previous else None
    logger.info(
        "Profile version %s stored for user=%s (previous=%s, partial=%s)",
        profile.version,
        user_id,
        previous_version,
        partial,
    )
    if previous_version is not None:
        invalidate(cache, user_id, previous_version)
    return ProfileVersionResult(profile=profile, previous_version=previous_version)


def by_explicit_id(db: Session, user_id: UUID, profile_id: UUID | str | None) -> Optional[SkinProfile]:
    """Read-your-write lookup; profiles owned by someone else are ignored."""
    if not profile_id:
        return None
    try:
        parsed = profile_id if isinstance(profile_id, UUID) else UUID(str(profile_id))
    except ValueError:
        logger.warning("Ignoring malformed profile id %r for user=%s", profile_id, user_id)
        return None
    profile = db.get(SkinProfile, parsed)
    if profile is None:
        return None
    if profile.user_id != user_id:
        logger.warning("Profile %s does not belong to user=%s; ignoring override", parsed, user_id)
        return None
    return profile


def by_latest_version(db: Session, user_id: UUID) -> Optional[SkinProfile]:
    return (
        db.query(SkinProfile)
        .filter(SkinProfile.user_id == user_id)
        .order_by(SkinProfile.version.desc())
        .first()
    )


def get_profile_by_version(db: Session, user_id: UUID, version: int) -> Optional[SkinProfile]:
    return (
        db.query(SkinProfile)
        .filter(SkinProfile.user_id == user_id, SkinProfile.version == version)
        .one_or_none()
    )


def resolve_profile(
    db: Session,
    user_id: UUID,
    explicit_profile_id: UUID | str | None = None,
    *,
    retry: bool = True,
    retry_delay_s: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ProfileResolution:
    """
    Find the profile a request should use.

    The caller's explicit id wins when it exists and is owned by the user;
    otherwise the latest version is used. When nothing is visible yet (the
    profile write may still be propagating) the lookup waits once and retries
    exactly once before reporting that the user has no profile.
    """
    explicit = by_explicit_id(db, user_id, explicit_profile_id)
    if explicit is not None:
        logger.info("Profile %s (v%s) resolved via explicit id", explicit.id, explicit.version)
        return ProfileResolution(explicit, VIA_EXPLICIT)

    latest = by_latest_version(db, user_id)
    if latest is not None:
        return ProfileResolution(latest, VIA_LATEST)

    if not retry:
        return ProfileResolution(None, None)

    delay = settings.profile_retry_delay_s if retry_delay_s is None else retry_delay_s
    logger.warning("No profile visible for user=%s, retrying once after %.2fs", user_id, delay)
    sleep(delay)
    # Drop identity-map state so the retry really goes back to the database.
    db.expire_all()
    latest = by_latest_version(db, user_id)
    if latest is not None:
        logger.info("Profile for user=%s visible after retry (v%s)", user_id, latest.version)
        return ProfileResolution(latest, VIA_RETRY)

    logger.info("User %s has no profile", user_id)
    return ProfileResolution(None, None)


def profile_summary(profile: SkinProfile) -> Dict[str, Any]:
    return {
        "profile_id": str(profile.id),
        "version": profile.version,
        "skin_type": profile.skin_type,
        "sensitivity_level": profile.sensitivity_level,
        "acne_level": profile.acne_level,
        "notes": profile.notes,
    }


def _merge_answers(previous: Optional[SkinProfile], answers: Mapping[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    if previous is not None:
        for field_name in PROFILE_FIELDS:
            value = getattr(previous, field_name)
            merged[field_name] = _copy(value)
    for field_name, value in answers.items():
        if field_name in PROFILE_FIELDS:
            merged[field_name] = _copy(value)
    for field_name in _LIST_FIELDS:
        if merged.get(field_name) is None:
            merged[field_name] = []
    for field_name in _MAP_FIELDS:
        if merged.get(field_name) is None:
            merged[field_name] = {}
    return merged


def _copy(value: Any) -> Any:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, dict):
        return dict(value)
    return value


def _ensure_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user:
        return user

    user = User(id=user_id)
    db.add(user)
    try:
        db.flush()
        return user
    except IntegrityError:
        db.rollback()
        existing = db.get(User, user_id)
        if existing:
            return existing
        raise
