"""
Permission template management and the built-in template catalogue
"""

import logging
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, func
from sqlalchemy.orm import Session

from quizhub.models.permission import PermissionTemplate
from quizhub.models.user import User
from quizhub.services.errors import ConflictError, NotFoundError, ValidationError
from quizhub.services.permissions import normalize_permissions, UNLIMITED

logger = logging.getLogger(__name__)


BUILTIN_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Basic Educator",
        "description": "Standard permissions for approved educators",
        "is_default": True,
        "permissions": {
            "canPublishQuiz": True,
            "canAddStudents": True,
            "canEditQuiz": True,
            "canDeleteQuiz": True,
            "canViewAnalytics": True,
            "canExportData": True,
            "maxStudents": 100,
            "maxQuizzes": 50,
            "maxQuestionsPerQuiz": 100,
        },
    },
    {
        "name": "Premium Educator",
        "description": "Enhanced permissions with higher limits",
        "is_default": False,
        "permissions": {
            "canPublishQuiz": True,
            "canAddStudents": True,
            "canEditQuiz": True,
            "canDeleteQuiz": True,
            "canViewAnalytics": True,
            "canExportData": True,
            "maxStudents": 500,
            "maxQuizzes": 200,
            "maxQuestionsPerQuiz": 250,
        },
    },
    {
        "name": "Unlimited Educator",
        "description": "No limits on resources",
        "is_default": False,
        "permissions": {
            "canPublishQuiz": True,
            "canAddStudents": True,
            "canEditQuiz": True,
            "canDeleteQuiz": True,
            "canViewAnalytics": True,
            "canExportData": True,
            "maxStudents": UNLIMITED,
            "maxQuizzes": UNLIMITED,
            "maxQuestionsPerQuiz": UNLIMITED,
        },
    },
    {
        "name": "Restricted Educator",
        "description": "Limited permissions for new educators",
        "is_default": False,
        "permissions": {
            "canPublishQuiz": False,
            "canAddStudents": True,
            "canEditQuiz": True,
            "canDeleteQuiz": False,
            "canViewAnalytics": False,
            "canExportData": False,
            "maxStudents": 20,
            "maxQuizzes": 5,
            "maxQuestionsPerQuiz": 50,
        },
    },
    {
        "name": "Read Only",
        "description": "View only access",
        "is_default": False,
        "permissions": {
            "canPublishQuiz": False,
            "canAddStudents": False,
            "canEditQuiz": False,
            "canDeleteQuiz": False,
            "canViewAnalytics": True,
            "canExportData": False,
            "maxStudents": 0,
            "maxQuizzes": 0,
            "maxQuestionsPerQuiz": 0,
        },
    },
]


def list_templates(db: Session, include_inactive: bool = False) -> List[PermissionTemplate]:
    query = select(PermissionTemplate).order_by(PermissionTemplate.name)
    if not include_inactive:
        query = query.where(PermissionTemplate.is_active.is_(True))
    return list(db.execute(query).scalars().all())


def get_template(db: Session, template_id: int) -> PermissionTemplate:
    template = db.get(PermissionTemplate, template_id)
    if template is None:
        raise NotFoundError("Permission template not found")
    return template


def get_default_template(db: Session) -> Optional[PermissionTemplate]:
    return db.execute(
        select(PermissionTemplate).where(
            PermissionTemplate.is_default.is_(True),
            PermissionTemplate.is_active.is_(True),
        ).limit(1)
    ).scalar_one_or_none()


def _unset_defaults(db: Session, keep_id: Optional[int] = None) -> None:
    stmt = update(PermissionTemplate).where(PermissionTemplate.is_default.is_(True))
    if keep_id is not None:
        stmt = stmt.where(PermissionTemplate.id != keep_id)
    db.execute(stmt.values(is_default=False))


def _ensure_unique_name(db: Session, name: str, exclude_id: Optional[int] = None) -> None:
    query = select(PermissionTemplate.id).where(PermissionTemplate.name == name)
    if exclude_id is not None:
        query = query.where(PermissionTemplate.id != exclude_id)
    if db.execute(query).first() is not None:
        raise ConflictError(f"A template named '{name}' already exists")


def create_template(
    db: Session,
    name: str,
    permissions: Dict[str, Any],
    description: Optional[str] = None,
    is_default: bool = False,
    created_by: Optional[int] = None,
) -> PermissionTemplate:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Template name is required")
    _ensure_unique_name(db, name)

    if is_default:
        _unset_defaults(db)

    template = PermissionTemplate(
        name=name,
        description=description,
        permissions=normalize_permissions(permissions),
        is_default=is_default,
        is_active=True,
        created_by=created_by,
    )
    db.add(template)
    db.flush()
    logger.info(f"[Templates] created '{template.name}' (id={template.id}, default={is_default})")
    return template


def update_template(db: Session, template_id: int, **changes) -> PermissionTemplate:
    template = get_template(db, template_id)

    if changes.get("name") is not None:
        name = changes["name"].strip()
        _ensure_unique_name(db, name, exclude_id=template.id)
        template.name = name
    if changes.get("description") is not None:
        template.description = changes["description"]
    if changes.get("permissions") is not None:
        template.permissions = normalize_permissions(changes["permissions"])
    if changes.get("is_active") is not None:
        template.is_active = changes["is_active"]
    if changes.get("is_default") is not None:
        if changes["is_default"]:
            _unset_defaults(db, keep_id=template.id)
        template.is_default = changes["is_default"]

    db.flush()
    return template


def delete_template(db: Session, template_id: int) -> PermissionTemplate:
    """Soft delete. The default template cannot be removed."""
    template = get_template(db, template_id)
    if template.is_default:
        raise ConflictError("Cannot delete the default template")
    template.is_active = False
    db.flush()
    logger.info(f"[Templates] deactivated '{template.name}'")
    return template


def apply_template(db: Session, user: User, template_id: int) -> User:
    template = get_template(db, template_id)
    if not template.is_active:
        raise ValidationError("Template is not active")
    user.permission_template_id = template.id
    # custom overrides would shadow the template
    user.permissions = None
    db.flush()
    logger.info(f"[Templates] applied '{template.name}' to user {user.id}")
    return user


def count_users_by_template(db: Session) -> Dict[int, int]:
    rows = db.execute(
        select(User.permission_template_id, func.count(User.id))
        .where(User.permission_template_id.is_not(None))
        .group_by(User.permission_template_id)
    ).all()
    return {template_id: count for template_id, count in rows}


def seed_builtin_templates(db: Session, created_by: Optional[int] = None) -> Dict[str, int]:
    """Create the built-in templates, refreshing ones that already exist by name."""
    created = updated = 0
    for builtin in BUILTIN_TEMPLATES:
        existing = db.execute(
            select(PermissionTemplate).where(PermissionTemplate.name == builtin["name"])
        ).scalar_one_or_none()
        if existing is not None:
            existing.description = builtin["description"]
            existing.permissions = dict(builtin["permissions"])
            existing.is_active = True
            updated += 1
            continue
        db.add(PermissionTemplate(
            name=builtin["name"],
            description=builtin["description"],
            permissions=dict(builtin["permissions"]),
            is_default=False,
            is_active=True,
            created_by=created_by,
        ))
        created += 1
    db.flush()

    if get_default_template(db) is None:
        basic = db.execute(
            select(PermissionTemplate).where(PermissionTemplate.name == BUILTIN_TEMPLATES[0]["name"])
        ).scalar_one()
        basic.is_default = True
        db.flush()

    logger.info(f"[Templates] seeded built-in templates (created={created}, updated={updated})")
    return {"created": created, "updated": updated}
