# app/auth/permissions.py
# Role statements for the KPI system. Tokens carry the role, the statements live here.

from typing import Dict, FrozenSet, List, Optional
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)

ACTIONS = ["create", "list", "update", "delete"]

ROLE_STATEMENTS: Dict[str, Dict[str, List[str]]] = {
    # Full access to all resources
    "admin": {resource: ACTIONS for resource in ("department", "employee", "template", "kpi")},
    # Cannot create templates, delete anything or manage departments
    "nodal_officer": {
        "employee": ["create", "list", "update"],
        "template": ["list", "update"],
        "kpi": ["create", "list", "update"],
        "department": ["list"],
    },
}


def _grants(role: Optional[str]) -> FrozenSet[str]:
    return frozenset(
        f"{resource}:{action}"
        for resource, actions in ROLE_STATEMENTS.get(role or "", {}).items()
        for action in actions
    )


class PermissionChecker:
    """
    Check role permissions for the current token

    Examples:
        PermissionChecker("nodal_officer").can("template", "create")   # False
    """

    def __init__(self, role: Optional[str]):
        self.role = role
        self.grants = _grants(role)

    def can(self, resource: str, action: str) -> bool:
        return f"{resource}:{action}" in self.grants

    def require(self, resource: str, action: str, custom_message: Optional[str] = None):
        """Raise 403 unless the role holds resource:action"""
        if not self.can(resource, action):
            message = custom_message or f"Insufficient permissions to {action} {resource}"
            logger.warning(f"Permission check failed for role {self.role}: {message}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=message
            )
