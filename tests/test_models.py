import pytest
from sqlalchemy.exc import IntegrityError

from wicket_sync.models import Organization, SystemSetting, User, UserMeta, db


class TestSystemSetting:
    """Typed run-state settings"""

    def test_missing_setting_returns_default(self):
        assert SystemSetting.get_setting("absent", default="fallback") == "fallback"

    @pytest.mark.parametrize(
        "value,value_type",
        [("2024-01-01T00:00:00+00:00", "string"), (42, "integer"), (True, "boolean"), ({"created": 3}, "json")],
    )
    def test_typed_values_round_trip(self, value, value_type):
        assert SystemSetting.set_setting("key", value, value_type=value_type) is True
        assert SystemSetting.get_setting("key") == value

    def test_set_setting_updates_existing_row(self):
        SystemSetting.set_setting("counter", 1, value_type="integer")
        SystemSetting.set_setting("counter", 2, value_type="integer", description="Batch counter")

        rows = SystemSetting.query.filter_by(key="counter").all()
        assert len(rows) == 1
        assert rows[0].get_value() == 2
        assert rows[0].description == "Batch counter"

    def test_corrupt_values_fall_back(self):
        db.session.add(SystemSetting(key="broken_int", value="abc", value_type="integer"))
        db.session.add(SystemSetting(key="broken_json", value="{not json", value_type="json"))
        db.session.commit()

        assert SystemSetting.get_setting("broken_int") == 0
        assert SystemSetting.get_setting("broken_json") == {}

    def test_delete_setting(self):
        SystemSetting.set_setting("lease", "owner-1")

        assert SystemSetting.delete_setting("lease") is True
        assert SystemSetting.delete_setting("lease") is False
        assert SystemSetting.get_setting("lease") is None


class TestUserMeta:
    """Per-user metadata used to link accounts to Wicket people"""

    def test_set_get_and_delete(self, test_user):
        test_user.set_meta("wicket_person_uuid", "person-1")
        db.session.commit()

        assert test_user.get_meta("wicket_person_uuid") == "person-1"

        test_user.set_meta("wicket_person_uuid", "person-2")
        db.session.commit()
        assert UserMeta.query.filter_by(user_id=test_user.id).count() == 1
        assert test_user.get_meta("wicket_person_uuid") == "person-2"

        test_user.delete_meta("wicket_person_uuid")
        db.session.commit()
        assert test_user.get_meta("wicket_person_uuid", default="none") == "none"

    def test_meta_key_is_unique_per_user(self, test_user):
        db.session.add(UserMeta(user_id=test_user.id, meta_key="k", meta_value="1"))
        db.session.add(UserMeta(user_id=test_user.id, meta_key="k", meta_value="2"))

        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

    def test_find_by_email(self, test_user):
        assert User.find_by_email("test@example.com").id == test_user.id
        assert User.find_by_email("nobody@example.com") is None

    def test_new_users_are_not_admins(self, test_user):
        assert test_user.is_admin is False
        assert test_user.is_active is True


class TestOrganization:
    """Cached organization rows"""

    def test_display_name_falls_back(self):
        assert Organization(uuid="o-1", legal_name="Acme").display_name == "Acme"
        assert Organization(uuid="o-2", alternate_name="ACME").display_name == "ACME"
        assert Organization(uuid="o-3").display_name == "o-3"

    def test_find_by_uuid_and_to_dict(self):
        db.session.add(Organization(uuid="org-1", legal_name="Alpha Inc", org_type="company"))
        db.session.commit()

        organization = Organization.find_by_uuid("org-1")

        assert organization.to_dict()["legal_name"] == "Alpha Inc"
        assert organization.to_dict()["synced_at"] is None
        assert Organization.find_by_uuid("org-missing") is None
