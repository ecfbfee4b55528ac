import pytest

import profiles
from errors import AuthError, UploadError, ValidationError
from models import Role
from storage import BlobStorage, ImageUpload


def test_update_username(session, make_user):
    user = make_user("u@fooddrop.org", Role.donor)

    profile = profiles.update_username(session, user.id, "  Baker Bob ")

    assert profile.username == "Baker Bob"
    assert profile.updated_at >= profile.created_at


def test_blank_username_rejected(session, make_user):
    user = make_user("u@fooddrop.org", Role.donor, username="Keep")

    with pytest.raises(ValidationError):
        profiles.update_username(session, user.id, "   ")
    assert profiles.get_profile(session, user.id).username == "Keep"


def test_only_admins_toggle_admin(session, make_user):
    admin = make_user("admin@fooddrop.org", None, is_admin=True)
    user = make_user("u@fooddrop.org", Role.volunteer)

    with pytest.raises(AuthError):
        profiles.set_admin(session, user.id, user.id, True)

    assert profiles.set_admin(session, admin.id, user.id, True).is_admin
    assert {p.id for p in profiles.list_profiles(session, admins_only=True)} == {admin.id, user.id}

    assert not profiles.set_admin(session, admin.id, user.id, False).is_admin


def test_storage_keys_and_urls(tmp_path):
    storage = BlobStorage(tmp_path, "/uploads/")

    url = storage.upload("owner-1", ImageUpload("", "image/jpeg", b"jpeg-bytes"))

    assert url.startswith("/uploads/owner-1/")
    assert url.endswith(".jpg")
    key = url[len("/uploads/"):]
    assert (tmp_path / key).read_bytes() == b"jpeg-bytes"

    storage.delete(url)
    assert not (tmp_path / key).exists()


@pytest.mark.parametrize(
    "image",
    [
        ImageUpload("a.txt", "text/plain", b"hello"),
        ImageUpload("a.png", "image/png", b""),
        ImageUpload("a.png", "image/png", b"x" * 2048),
        ImageUpload("a.svg", "image/svg+xml", b"<svg onload='x'/>"),
        ImageUpload("a.png", "image/x-icon", b"icon"),
    ],
)
def test_storage_rejects_bad_images(tmp_path, image):
    storage = BlobStorage(tmp_path, "/uploads", max_bytes=1024)

    with pytest.raises(UploadError) as excinfo:
        storage.upload("owner-1", image)
    assert excinfo.value.status_code == 400
    assert not any(tmp_path.iterdir())


@pytest.mark.parametrize(
    "filename, content_type, suffix",
    [
        ("evil.html", "image/png", ".png"),
        ("page.htm", "image/jpeg; charset=binary", ".jpg"),
        ("anim", "IMAGE/GIF", ".gif"),
        ("photo.webp.js", "image/webp", ".webp"),
    ],
)
def test_stored_suffix_follows_content_type(tmp_path, filename, content_type, suffix):
    storage = BlobStorage(tmp_path, "/uploads")

    url = storage.upload("owner-1", ImageUpload(filename, content_type, b"<script>x</script>"))

    assert url.endswith(suffix)
    assert [p.suffix for p in (tmp_path / "owner-1").iterdir()] == [suffix]
