"""
Tests for DecisionEngine.authorize: resolution order, category policies,
ownership scoping and purity.
"""
import pytest

from access_core.auth.contract import Action, Module, ReasonCode, SettingCategory, UserStatus
from access_core.auth.engine import Decision, PermissionRequest, Principal


def principal(role: str, **overrides) -> Principal:
    values = {"user_id": "user-1", "role": role}
    values.update(overrides)
    return Principal(**values)


class TestExampleScenarios:
    def test_lawyer_can_update_cases(self, engine, fixed_now):
        decision = engine.authorize(
            principal("LAWYER"), PermissionRequest(Module.CASES, Action.UPDATE)
        )
        assert decision.allowed
        assert decision.reason_code is ReasonCode.GRANTED
        assert decision.matched_permission == "CASES_UPDATE"
        assert decision.evaluated_at == fixed_now

    def test_client_cannot_delete_users(self, engine):
        decision = engine.authorize(
            principal("CLIENT"), PermissionRequest(Module.USERS, Action.DELETE)
        )
        assert decision.denied
        assert decision.reason_code is ReasonCode.MISSING_PERMISSION

    def test_suspended_admin_is_not_active(self, engine):
        decision = engine.authorize(
            principal("ADMIN", status=UserStatus.SUSPENDED),
            PermissionRequest(Module.SETTINGS, Action.UPDATE),
        )
        assert decision.denied
        assert decision.reason_code is ReasonCode.ACCOUNT_NOT_ACTIVE

    def test_security_category_requires_two_factor(self, engine):
        decision = engine.authorize(
            principal("SUPER_ADMIN", two_factor_verified=False, source_ip="10.0.0.5"),
            PermissionRequest(Module.SETTINGS, Action.UPDATE, category=SettingCategory.SECURITY),
        )
        assert decision.denied
        assert decision.reason_code is ReasonCode.TWO_FACTOR_REQUIRED
        assert decision.matched_requirement is not None

    def test_unknown_module_and_action(self, engine):
        decision = engine.authorize(principal("ADMIN"), PermissionRequest("FOO", "BAR"))
        assert decision.denied
        assert decision.reason_code is ReasonCode.UNKNOWN_PERMISSION
        assert decision.matched_permission is None


class TestResolutionOrder:
    @pytest.mark.parametrize(
        "status", [UserStatus.INACTIVE, UserStatus.SUSPENDED, UserStatus.BANNED]
    )
    def test_non_active_denied_before_permission_lookup(self, engine, status):
        # SUPER_ADMIN would be granted this if active
        decision = engine.authorize(
            principal("SUPER_ADMIN", status=status),
            PermissionRequest(Module.CASES, Action.READ),
        )
        assert decision.reason_code is ReasonCode.ACCOUNT_NOT_ACTIVE

    def test_non_active_without_any_grant_still_reports_status(self, engine):
        decision = engine.authorize(
            principal("CLIENT", status="banned"), PermissionRequest(Module.AUDIT, Action.EXPORT)
        )
        assert decision.reason_code is ReasonCode.ACCOUNT_NOT_ACTIVE

    def test_unrecognized_status_is_not_active(self, engine):
        decision = engine.authorize(
            principal("ADMIN", status="PENDING"), PermissionRequest(Module.CASES, Action.READ)
        )
        assert decision.reason_code is ReasonCode.ACCOUNT_NOT_ACTIVE

    @pytest.mark.parametrize(
        "module,action",
        [("", ""), ("CASES", None), (None, "READ"), ("cases", "teleport"), (42, 42)],
    )
    def test_malformed_input_never_raises(self, engine, module, action):
        decision = engine.authorize(principal("ADMIN"), PermissionRequest(module, action))
        assert decision.reason_code is ReasonCode.UNKNOWN_PERMISSION

    def test_view_spelling_resolves(self, engine):
        decision = engine.authorize(principal("PARALEGAL"), PermissionRequest("cases", "view"))
        assert decision.allowed
        assert decision.matched_permission == "CASES_VIEW"

    def test_lower_case_role_is_normalized(self, engine):
        decision = engine.authorize(principal("lawyer"), PermissionRequest(Module.CASES, Action.UPDATE))
        assert decision.allowed

    def test_unknown_role_has_no_grants(self, engine):
        decision = engine.authorize(principal("INTERN"), PermissionRequest(Module.AUTH, "LOGIN"))
        assert decision.reason_code is ReasonCode.MISSING_PERMISSION


class TestCategoryPolicies:
    def test_super_admin_passes_security_with_2fa_and_ip(self, engine):
        decision = engine.authorize(
            principal("SUPER_ADMIN", two_factor_verified=True, source_ip="10.0.0.5"),
            PermissionRequest(Module.SETTINGS, Action.UPDATE, category="SECURITY"),
        )
        assert decision.allowed

    def test_admin_not_allowed_on_database_settings(self, engine):
        decision = engine.authorize(
            principal("ADMIN", two_factor_verified=True, source_ip="10.0.0.5"),
            PermissionRequest(Module.SETTINGS, Action.UPDATE, category=SettingCategory.DATABASE),
        )
        assert decision.reason_code is ReasonCode.ROLE_NOT_ALLOWED

    def test_backup_from_foreign_ip(self, engine):
        decision = engine.authorize(
            principal("SUPER_ADMIN", two_factor_verified=True, source_ip="203.0.113.9"),
            PermissionRequest(Module.SETTINGS, Action.UPDATE, category=SettingCategory.BACKUP),
        )
        assert decision.reason_code is ReasonCode.IP_NOT_ALLOWED

    def test_admin_general_settings(self, engine):
        decision = engine.authorize(
            principal("ADMIN"),
            PermissionRequest(Module.SETTINGS, Action.READ, category=SettingCategory.GENERAL),
        )
        assert decision.allowed
        assert decision.matched_requirement.required_permissions == frozenset({"SETTINGS_VIEW"})

    def test_lawyer_low_level_category_still_needs_allowed_role(self, engine):
        decision = engine.authorize(
            principal("LAWYER"),
            PermissionRequest(Module.CASES, Action.UPDATE, category=SettingCategory.TEMPLATES),
        )
        assert decision.reason_code is ReasonCode.ROLE_NOT_ALLOWED

    def test_policy_pass_still_requires_the_requested_permission(self, engine):
        # APPEARANCE requires no permission but ADMIN does not hold CASES_DELETE
        decision = engine.authorize(
            principal("ADMIN"),
            PermissionRequest(Module.CASES, Action.DELETE, category=SettingCategory.APPEARANCE),
        )
        assert decision.reason_code is ReasonCode.MISSING_PERMISSION

    def test_unknown_category_denied(self, engine):
        decision = engine.authorize(
            principal("SUPER_ADMIN"),
            PermissionRequest(Module.SETTINGS, Action.UPDATE, category="FIREWALL"),
        )
        assert decision.reason_code is ReasonCode.UNKNOWN_PERMISSION
        assert decision.matched_permission == "SETTINGS_UPDATE"


class TestOwnershipScoping:
    def test_client_reads_own_case(self, engine):
        decision = engine.authorize(
            principal("CLIENT", user_id="client-7"),
            PermissionRequest(Module.CASES, Action.READ, resource_owner_id="client-7"),
        )
        assert decision.allowed

    def test_client_reads_foreign_case(self, engine):
        decision = engine.authorize(
            principal("CLIENT", user_id="client-7"),
            PermissionRequest(Module.CASES, Action.READ, resource_owner_id="client-8"),
        )
        assert decision.reason_code is ReasonCode.NOT_RESOURCE_OWNER

    def test_owner_ids_compare_as_strings(self, engine):
        decision = engine.authorize(
            Principal(user_id=42, role="CLIENT"),
            PermissionRequest(Module.BILLING, Action.READ, resource_owner_id=42),
        )
        assert decision.allowed

    def test_unscoped_grant_covers_any_record(self, engine):
        decision = engine.authorize(
            principal("LAWYER"),
            PermissionRequest(Module.CASES, Action.READ, resource_owner_id="client-8"),
        )
        assert decision.allowed

    def test_scoped_grant_without_owner_id_is_granted(self, engine):
        decision = engine.authorize(
            principal("CLIENT"), PermissionRequest(Module.DOCUMENTS, Action.READ)
        )
        assert decision.allowed

    def test_client_send_is_not_owner_scoped(self, engine):
        decision = engine.authorize(
            principal("CLIENT"),
            PermissionRequest(Module.COMMUNICATIONS, "SEND", resource_owner_id="someone-else"),
        )
        assert decision.allowed


class TestPurity:
    def test_identical_calls_yield_identical_decisions(self, engine):
        request = PermissionRequest(Module.CASES, Action.READ, resource_owner_id="x")
        first = engine.authorize(principal("CLIENT"), request)
        second = engine.authorize(principal("CLIENT"), request)
        assert first == second
        assert isinstance(first, Decision)

    def test_equality_ignores_evaluation_time(self):
        first = Decision(allowed=True, reason_code=ReasonCode.GRANTED, matched_permission="AUTH_LOGIN")
        second = Decision(allowed=True, reason_code=ReasonCode.GRANTED, matched_permission="AUTH_LOGIN")
        assert first == second

    def test_decision_is_immutable(self, engine):
        decision = engine.authorize(principal("ADMIN"), PermissionRequest(Module.CASES, Action.READ))
        with pytest.raises(AttributeError):
            decision.allowed = False
