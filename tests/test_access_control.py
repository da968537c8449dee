"""
Tests for the AccessControl service: decide-then-record, copy-on-write role
registration and snapshot export.
"""
import logging
import threading
from unittest.mock import MagicMock

import pytest

from access_core.audit.recorder import AuditRecorder
from access_core.audit.sinks import InMemoryAuditSink
from access_core.auth.contract import Action, DecisionOutcome, Module, ReasonCode, UserStatus
from access_core.auth.engine import PermissionRequest, Principal
from access_core.errors import DuplicateRoleError, UnknownPermissionError
from access_core.schemas.audit_log import AuditContext
from access_core.services.access_control import AccessControl


@pytest.fixture
def mock_recorder():
    return MagicMock(spec=AuditRecorder)


@pytest.fixture
def access_control(definitions, allow_list, mock_recorder):
    return AccessControl.from_definitions(
        definitions, recorder=mock_recorder, ip_allow_list=allow_list
    )


class TestAuthorize:
    def test_records_every_decision_once(self, access_control, mock_recorder):
        allow = access_control.authorize(
            Principal(user_id="u-1", role="LAWYER"), PermissionRequest(Module.CASES, Action.UPDATE)
        )
        deny = access_control.authorize(
            Principal(user_id="u-2", role="CLIENT"), PermissionRequest(Module.USERS, Action.DELETE)
        )

        assert allow.allowed
        assert deny.denied
        assert mock_recorder.record.call_count == 2
        recorded = [call.args[2] for call in mock_recorder.record.call_args_list]
        assert recorded == [allow, deny]

    def test_passes_audit_context_through(self, access_control, mock_recorder):
        context = AuditContext(ip_address="10.0.0.1", user_agent="pytest")
        principal = Principal(user_id="u-1", role="ADMIN")
        request = PermissionRequest(Module.AUDIT, Action.READ)

        access_control.authorize(principal, request, context)

        mock_recorder.record.assert_called_once()
        args = mock_recorder.record.call_args.args
        assert args[0] is principal
        assert args[1] is request
        assert args[3] is context

    def test_record_failure_does_not_change_decision(self, access_control, mock_recorder, caplog):
        mock_recorder.record.side_effect = RuntimeError("sink exploded")

        with caplog.at_level(logging.ERROR, logger="access_core.access"):
            decision = access_control.authorize(
                Principal(user_id="u-1", role="LAWYER"),
                PermissionRequest(Module.CASES, Action.UPDATE),
            )

        assert decision.allowed
        assert any("audit_record_failed" in r.getMessage() for r in caplog.records)

    def test_denial_is_logged_with_reason(self, access_control, caplog):
        with caplog.at_level(logging.INFO, logger="access_core.access"):
            access_control.authorize(
                Principal(user_id="u-9", role="ADMIN", status=UserStatus.SUSPENDED),
                PermissionRequest(Module.SETTINGS, Action.UPDATE),
            )
        messages = [r.getMessage() for r in caplog.records]
        assert any("access_denied" in m and "reason=ACCOUNT_NOT_ACTIVE" in m for m in messages)

    def test_unknown_role_is_warned(self, access_control, caplog):
        with caplog.at_level(logging.WARNING, logger="access_core.access"):
            access_control.authorize(
                Principal(user_id="u-9", role="INTERN"), PermissionRequest(Module.CASES, Action.READ)
            )
        assert any("unknown_role" in r.getMessage() for r in caplog.records)

    def test_check_returns_bool(self, access_control):
        assert access_control.check(
            Principal(user_id="u-1", role="ACCOUNTANT"), PermissionRequest(Module.BILLING, Action.APPROVE)
        ) is True
        assert access_control.check(
            Principal(user_id="u-1", role="ACCOUNTANT"), PermissionRequest(Module.CASES, Action.READ)
        ) is False

    def test_works_without_recorder(self, definitions):
        access_control = AccessControl.from_definitions(definitions)
        decision = access_control.authorize(
            Principal(user_id="u-1", role="LAWYER"), PermissionRequest(Module.CASES, Action.UPDATE)
        )
        assert decision.allowed


class TestRegisterRole:
    def test_new_role_is_published(self, access_control):
        principal = Principal(user_id="u-1", role="AUDITOR")
        request = PermissionRequest(Module.AUDIT, Action.EXPORT)
        assert access_control.authorize(principal, request).reason_code is ReasonCode.MISSING_PERMISSION

        access_control.register_role("AUDITOR", ["AUDIT_VIEW", "AUDIT_EXPORT"])

        assert access_control.authorize(principal, request).allowed

    def test_in_flight_snapshot_is_unchanged(self, access_control):
        engine_before = access_control.engine
        access_control.register_role("AUDITOR", ["AUDIT_VIEW"])

        assert access_control.engine is not engine_before
        assert "AUDITOR" not in engine_before.registry
        assert "AUDITOR" in access_control.registry
        assert engine_before.catalog is access_control.catalog
        assert engine_before.policies is access_control.policies

    def test_failed_registration_publishes_nothing(self, access_control):
        engine_before = access_control.engine

        with pytest.raises(UnknownPermissionError):
            access_control.register_role("INTERN", ["CASES_MANAGE"])
        with pytest.raises(DuplicateRoleError):
            access_control.register_role("LAWYER", ["AUTH_LOGIN"])

        assert access_control.engine is engine_before

    def test_concurrent_registrations_all_land(self, access_control):
        names = [f"CUSTOM_{i}" for i in range(20)]
        threads = [
            threading.Thread(target=access_control.register_role, args=(name, ["AUTH_LOGIN"]))
            for name in names
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for name in names:
            assert name in access_control.registry


class TestSnapshot:
    def test_snapshot_rebuilds_an_equivalent_service(self, access_control):
        access_control.register_role(
            "PORTAL", ["CASES_VIEW", "BILLING_VIEW"], owner_scoped=["CASES_VIEW"]
        )
        snapshot = access_control.snapshot()
        rebuilt = AccessControl.from_definitions(snapshot)

        assert rebuilt.catalog.keys() == access_control.catalog.keys()
        assert set(rebuilt.registry.names()) == set(access_control.registry.names())
        for role in access_control.registry:
            assert rebuilt.registry.grants(role.name) == role.permissions
            assert rebuilt.registry.get(role.name).owner_scoped == role.owner_scoped
        for category, requirement in access_control.policies.items():
            assert rebuilt.policies.requirement_for(category) == requirement

    def test_snapshot_keeps_super_admin_rule(self, access_control):
        snapshot = access_control.snapshot()
        super_admin = next(r for r in snapshot.roles if r.name == "SUPER_ADMIN")
        assert super_admin.all_permissions is True
        assert super_admin.permissions == []


class TestAuditCompleteness:
    @pytest.mark.anyio
    async def test_each_authorize_produces_one_matching_entry(self, definitions):
        sink = InMemoryAuditSink()
        recorder = AuditRecorder(sink)
        access_control = AccessControl.from_definitions(definitions, recorder=recorder)
        await recorder.start()

        calls = [
            (Principal(user_id="u-1", role="LAWYER"), PermissionRequest(Module.CASES, Action.UPDATE)),
            (Principal(user_id="u-2", role="CLIENT"), PermissionRequest(Module.USERS, Action.DELETE)),
            (Principal(user_id="u-3", role="ADMIN"), PermissionRequest("FOO", "BAR")),
        ]
        decisions = [access_control.authorize(p, r) for p, r in calls]
        await recorder.stop()

        assert len(sink) == len(calls)
        for entry, (principal, request), decision in zip(sink.entries, calls, decisions):
            assert entry.user_id == principal.user_id
            assert entry.module == request.module_name
            assert entry.action == request.action_name
            assert entry.decision is (DecisionOutcome.ALLOW if decision.allowed else DecisionOutcome.DENY)
            assert entry.reason_code is decision.reason_code
