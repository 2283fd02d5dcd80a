"""
Settings and branding tests.
"""

import pytest

from app.core.exceptions import PermissionDeniedError, ValidationError
from app.models.audit import AuditLog
from app.models.settings import SystemSettings
from app.services import settings_service
from app.utils.crypto import decrypt_secret


class TestSystemSettings:
    def test_defaults(self, admin):
        s = settings_service.get_settings(admin)
        assert s["notifications"]["due_warning_days"] == 7
        assert s["backup"]["frequency"] == "weekly"
        assert s["integrations"]["api_key_set"] is False

    def test_partial_update(self, admin):
        s = settings_service.update_settings(admin, {
            "notifications": {"due_warning_days": 3, "push": False},
            "backup": {"frequency": "daily"},
        })
        assert s["notifications"]["due_warning_days"] == 3
        assert s["notifications"]["push"] is False
        assert s["notifications"]["email"] is True
        assert s["backup"]["frequency"] == "daily"

    def test_api_key_is_encrypted_and_never_returned(self, admin):
        s = settings_service.update_settings(admin, {"integrations": {"api_key": "sk-live-123"}})
        assert s["integrations"]["api_key_set"] is True
        assert "sk-live-123" not in str(s)

        stored = SystemSettings.query.filter_by(tenant_id=admin.tenant_id).one()
        assert stored.api_key_encrypted != "sk-live-123"
        assert decrypt_secret(stored.api_key_encrypted) == "sk-live-123"

        log = AuditLog.query.filter_by(entity_type="settings").one()
        assert "sk-live-123" not in log.diff_json

    def test_empty_api_key_clears_it(self, admin):
        settings_service.update_settings(admin, {"integrations": {"api_key": "abc"}})
        s = settings_service.update_settings(admin, {"integrations": {"api_key": ""}})
        assert s["integrations"]["api_key_set"] is False

    @pytest.mark.parametrize("payload", [
        {"backup": {"frequency": "hourly"}},
        {"security": {"min_password_length": -1}},
        {"security": {"max_login_attempts": "many"}},
        {"notifications": {"email": "yes"}},
        {"integrations": {"webhook_url": "ftp://example.com"}},
        {"backup": "daily"},
    ])
    def test_invalid_values(self, admin, payload):
        with pytest.raises(ValidationError):
            settings_service.update_settings(admin, payload)

    def test_only_admin_edits_settings(self, supervisor):
        with pytest.raises(PermissionDeniedError):
            settings_service.get_settings(supervisor)
        with pytest.raises(PermissionDeniedError):
            settings_service.update_settings(supervisor, {"backup": {"frequency": "daily"}})


class TestBranding:
    def test_update_branding(self, admin):
        t = settings_service.update_branding(admin, {"name": "Fábrica Azul", "primary_color": "#123456"})
        assert t["name"] == "Fábrica Azul"
        assert t["primary_color"] == "#123456"

    def test_blank_name_rejected(self, admin):
        with pytest.raises(ValidationError):
            settings_service.update_branding(admin, {"name": "  "})

    def test_customization_disabled(self, admin):
        admin.tenant.allow_customization = False
        with pytest.raises(ValidationError):
            settings_service.update_branding(admin, {"primary_color": "#000000"})

    def test_operator_cannot_brand(self, operator):
        with pytest.raises(PermissionDeniedError):
            settings_service.update_branding(operator, {"name": "X"})
