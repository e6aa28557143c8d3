import pytest
from conftest import FakeProfileRepo, FakeReviewRepo
from storage3.utils import StorageException

from storefront.core.errors import ValidationFailed
from storefront.models.auth import AuthSession
from storefront.models.profile import Profile
from storefront.schemas.profile import ProfileUpdate
from storefront.schemas.review import ReviewCreate
from storefront.services.profile_service import ProfileService
from storefront.services.review_service import ReviewService

AUTH = AuthSession(user_id="u1", email="asha@example.com", access_token="token")

PNG = b"\x89PNG\r\n\x1a\n" + b"0" * 32


class FakeBucket:
    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.fail_remove = False

    async def upload(self, path, file, file_options=None):
        self.objects[path] = file

    async def remove(self, paths):
        if self.fail_remove:
            raise StorageException("remove failed")
        for path in paths:
            self.objects.pop(path, None)

    async def get_public_url(self, path):
        return f"http://supabase.test/storage/v1/object/public/avatars/{path}"


class FakeStorage:
    def __init__(self):
        self.bucket = FakeBucket()

    def from_(self, _name):
        return self.bucket


class FakeClient:
    def __init__(self):
        self.storage = FakeStorage()


@pytest.fixture
def profiles() -> FakeProfileRepo:
    return FakeProfileRepo()


@pytest.fixture
def storage_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def service(profiles, storage_client, notices) -> ProfileService:
    return ProfileService(profiles, storage_client, notices)


async def test_missing_profile_reads_as_blank(service):
    profile = await service.get(AUTH)
    assert profile.id == "u1"
    assert profile.email == "asha@example.com"
    assert profile.avatar_url is None


async def test_update_name(service, profiles):
    profile = await service.update(AUTH, ProfileUpdate(full_name="Asha R"))
    assert profile.full_name == "Asha R"
    assert profiles.rows["u1"].full_name == "Asha R"


async def test_avatar_upload_replaces_previous_object(service, profiles, storage_client):
    storage_client.storage.bucket.objects["u1/1.png"] = b"old"
    profiles.rows["u1"] = Profile(id="u1", avatar="u1/1.png")

    profile = await service.upload_avatar(AUTH, "image/png", PNG)

    assert profile.avatar_path.startswith("u1/")
    assert profile.avatar_path.endswith(".png")
    assert profile.avatar_url.endswith(profile.avatar_path)
    assert list(storage_client.storage.bucket.objects) == [profile.avatar_path]


async def test_old_avatar_removal_failure_is_not_fatal(service, profiles, storage_client):
    profiles.rows["u1"] = Profile(
        id="u1", avatar="http://supabase.test/storage/v1/object/public/avatars/u1/1.png"
    )
    storage_client.storage.bucket.fail_remove = True

    profile = await service.upload_avatar(AUTH, "image/webp", PNG)

    assert profiles.rows["u1"].avatar == profile.avatar_path


async def test_avatar_type_is_checked(service, storage_client):
    with pytest.raises(ValidationFailed):
        await service.upload_avatar(AUTH, "image/gif", PNG)
    assert storage_client.storage.bucket.objects == {}


def test_review_needs_rating_in_range_and_body():
    with pytest.raises(ValueError):
        ReviewCreate(rating=6, body="Lovely")
    with pytest.raises(ValueError):
        ReviewCreate(rating=4, body="  ")


async def test_submit_review(notices):
    repo = FakeReviewRepo()
    await ReviewService(repo, notices).submit_review(3, ReviewCreate(rating=5, title="Great", body="Smells lovely"))
    assert repo.reviews == [(3, 5, "Great", "Smells lovely")]
    assert notices.peek()[-1].title == "Review submitted"
