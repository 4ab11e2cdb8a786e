from typing import List
import logging

from App.database import db
from App.models import QualifiedRole, User, UserQualification
from coverage_engine import NotFound, RoleType, ValidationFailed

logger = logging.getLogger(__name__)


def ensure_roles(organization_id: int) -> List[QualifiedRole]:
    """Make sure the organization has a QualifiedRole row for every role type."""
    existing = {role.slug: role for role in QualifiedRole.query.filter_by(organization_id=organization_id)}
    for role_type in RoleType:
        if role_type.value not in existing:
            role = QualifiedRole(organization_id, role_type.value)
            db.session.add(role)
            existing[role.slug] = role
    db.session.commit()
    return list(existing.values())


def _role_for(organization_id: int, role_slug) -> QualifiedRole:
    slug = role_slug.value if isinstance(role_slug, RoleType) else str(role_slug).upper()
    role = QualifiedRole.query.filter_by(organization_id=organization_id, slug=slug).first()
    if role is None:
        raise ValidationFailed(f"Unknown role: {slug}", field='role')
    return role


def grant_qualification(user_id: int, role_slug) -> UserQualification:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found", id=user_id)
    role = _role_for(user.organization_id, role_slug)
    existing = UserQualification.query.filter_by(user_id=user.id, qualified_role_id=role.id).first()
    if existing:
        return existing
    qualification = UserQualification(user.id, role.id)
    db.session.add(qualification)
    db.session.commit()
    logger.info(f"Granted {role.slug} to {user.username}")
    return qualification


def revoke_qualification(user_id: int, role_slug) -> bool:
    """Revoking does not touch existing signups or assignments."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found", id=user_id)
    role = _role_for(user.organization_id, role_slug)
    deleted = UserQualification.query.filter_by(user_id=user.id, qualified_role_id=role.id).delete()
    db.session.commit()
    if deleted:
        logger.info(f"Revoked {role.slug} from {user.username}")
    return bool(deleted)


def get_user_roles(user_id: int) -> List[str]:
    user = db.session.get(User, user_id)
    return sorted(user.role_slugs()) if user else []
