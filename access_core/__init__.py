"""
Role-based access control core for the legal services platform.

Given an authenticated ``Principal`` and a ``PermissionRequest``, decide ALLOW
or DENY and record an audit entry for the decision:

    access_control = AccessControl.from_definitions(load_definitions(), recorder=...)
    decision = access_control.authorize(principal, PermissionRequest("CASES", "UPDATE"))
"""
from .auth.contract import Action, Module, ReasonCode, RoleName, SecurityLevel, SettingCategory, UserStatus
from .auth.definitions import AccessDefinitions, load_definitions
from .auth.engine import Decision, DecisionEngine, PermissionRequest, Principal
from .services.access_control import AccessControl

__all__ = [
    "AccessControl",
    "AccessDefinitions",
    "Action",
    "Decision",
    "DecisionEngine",
    "Module",
    "PermissionRequest",
    "Principal",
    "ReasonCode",
    "RoleName",
    "SecurityLevel",
    "SettingCategory",
    "UserStatus",
    "load_definitions",
]
