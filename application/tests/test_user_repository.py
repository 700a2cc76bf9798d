import pytest

PHONE = "+211900000001"


def test_create_verified_sets_defaults(users):
    user = users.create_verified(PHONE)
    assert user.id is not None
    assert user.is_verified is True
    assert user.is_active is True
    assert user.user_type == "rider"
    assert float(user.rating) == 5.0
    assert user.total_rides == 0
    assert user.language == "en"
    assert user.is_new_user is True


def test_get_by_phone_and_id(users):
    created = users.create_verified(PHONE, user_type="driver")
    assert users.get_by_phone(PHONE).id == created.id
    assert users.get_by_id(created.id).user_type == "driver"
    assert users.get_by_phone("+211900000002") is None
    assert users.get_by_id(9999) is None


def test_touch_moves_updated_at(users):
    created = users.create_verified(PHONE)
    touched = users.touch(created.id)
    assert touched.updated_at >= created.updated_at
    assert users.touch(9999) is None


def test_first_name_completes_profile(users):
    created = users.create_verified(PHONE)
    updated = users.update_profile(created.id, {"first_name": "Amina"})
    assert updated.first_name == "Amina"
    assert updated.is_new_user is False
    assert users.get_by_id(created.id).profile_complete is True


def test_update_without_first_name_keeps_user_new(users):
    created = users.create_verified(PHONE)
    updated = users.update_profile(created.id, {"language": "ar"})
    assert updated.language == "ar"
    assert updated.is_new_user is True


def test_update_rejects_fields_outside_allow_list(users):
    created = users.create_verified(PHONE)
    with pytest.raises(ValueError):
        users.update_profile(created.id, {"phone": "+211911111111"})
    assert users.get_by_id(created.id).phone == PHONE


def test_update_missing_user_returns_none(users):
    assert users.update_profile(9999, {"first_name": "Amina"}) is None
