"""
Tests for loading structured access definitions and for the deployment
check script built on them.
"""
import json

import pytest

from access_core.auth.definitions import AccessDefinitions, load_definitions, parse_definitions
from access_core.errors import DefinitionsError, UnknownPermissionError
from access_core.services.access_control import AccessControl
from scripts.check_definitions import check_definitions, main


def write_definitions(tmp_path, payload) -> str:
    path = tmp_path / "definitions.json"
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload, encoding="utf-8")
    return str(path)


MINIMAL = {
    "version": 1,
    "permissions": [
        {"module": "CASES", "action": "READ", "description": "View cases"},
        {"module": "CASES", "action": "UPDATE", "description": "Update cases"},
        {"module": "SETTINGS", "action": "UPDATE", "description": "Update settings"},
    ],
    "roles": [
        {"name": "SUPER_ADMIN", "all_permissions": True},
        {"name": "CLIENT", "permissions": ["CASES_VIEW"], "owner_scoped": ["CASES_VIEW"]},
    ],
    "policies": [
        {
            "category": "SECURITY",
            "level": "CRITICAL",
            "allowed_roles": ["SUPER_ADMIN"],
            "required_permissions": ["SETTINGS_UPDATE"],
            "two_factor_required": True,
        }
    ],
}


class TestLoadDefinitions:
    def test_packaged_defaults_load(self):
        definitions = load_definitions()
        assert isinstance(definitions, AccessDefinitions)
        assert len(definitions.permissions) == 48
        assert {role.name for role in definitions.roles} >= {"SUPER_ADMIN", "CLIENT"}

    def test_load_from_path(self, tmp_path):
        definitions = load_definitions(write_definitions(tmp_path, MINIMAL))
        access_control = AccessControl.from_definitions(definitions)

        assert access_control.catalog.keys() == frozenset(
            {"CASES_VIEW", "CASES_UPDATE", "SETTINGS_UPDATE"}
        )
        assert access_control.registry.grants("SUPER_ADMIN") == access_control.catalog.keys()
        assert access_control.registry.is_owner_scoped("CLIENT", "CASES_VIEW")

    def test_missing_file(self, tmp_path):
        with pytest.raises(DefinitionsError, match="could not be read"):
            load_definitions(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        with pytest.raises(DefinitionsError, match="not valid JSON"):
            load_definitions(write_definitions(tmp_path, "{not json"))

    def test_schema_mismatch(self):
        with pytest.raises(DefinitionsError, match="do not match the schema") as exc:
            parse_definitions(json.dumps({"roles": []}))
        assert exc.value.details["errors"]

    def test_all_permissions_with_explicit_list_rejected(self):
        payload = dict(MINIMAL, roles=[{"name": "ROOT", "all_permissions": True, "permissions": ["CASES_VIEW"]}])
        with pytest.raises(DefinitionsError):
            parse_definitions(json.dumps(payload))


class TestCheckDefinitionsScript:
    def test_packaged_defaults_pass(self, capsys):
        assert main([]) == 0
        assert "Access definitions are valid" in capsys.readouterr().out

    def test_drifted_grant_fails_deployment(self, tmp_path, capsys):
        payload = dict(
            MINIMAL,
            roles=[{"name": "LAWYER", "permissions": ["CASES_VIEW", "CASES_MANAGE"]}],
            policies=[],
        )
        path = write_definitions(tmp_path, payload)

        with pytest.raises(UnknownPermissionError):
            check_definitions(path)
        assert main([path]) == 1
        out = capsys.readouterr().out
        assert "UNKNOWN_PERMISSION" in out
        assert "CASES_MANAGE" in out

    def test_unreadable_file_fails(self, tmp_path, capsys):
        assert main([str(tmp_path / "nope.json")]) == 1
        assert "DEFINITIONS_ERROR" in capsys.readouterr().out
