import pytest

from linkup.firestore.users import (
    create_user_profile,
    delete_user_profile,
    get_user_profile,
    list_user_profiles,
    update_user_name,
)
from linkup.models.firestore import UserProfile


@pytest.mark.asyncio
async def test_create_and_get_profile(document_store):
    await create_user_profile(document_store, UserProfile(email="ada@example.com", name="Ada", id="uid-1"))

    profile = await get_user_profile(document_store, "ada@example.com")

    assert profile.name == "Ada"
    assert profile.about == "Available"
    assert document_store.collections["users"]["ada@example.com"] == {
        "email": "ada@example.com", "name": "Ada", "id": "uid-1", "about": "Available",
    }


@pytest.mark.asyncio
async def test_missing_profile_is_none(document_store):
    assert await get_user_profile(document_store, "nobody@example.com") is None


@pytest.mark.asyncio
async def test_update_name_merges(document_store):
    await create_user_profile(document_store, UserProfile(email="ada@example.com", name="Ada", id="uid-1"))

    await update_user_name(document_store, "ada@example.com", "Ada L.")

    stored = document_store.collections["users"]["ada@example.com"]
    assert stored["name"] == "Ada L."
    assert stored["id"] == "uid-1"


@pytest.mark.asyncio
async def test_delete_profile(document_store):
    await create_user_profile(document_store, UserProfile(email="ada@example.com", name="Ada"))

    await delete_user_profile(document_store, "ada@example.com")

    assert await get_user_profile(document_store, "ada@example.com") is None


@pytest.mark.asyncio
async def test_list_profiles_sorted_by_name_skipping_bad_documents(document_store):
    document_store.collections["users"]["zed@example.com"] = {"email": "zed@example.com", "name": "Zed"}
    document_store.collections["users"]["amy@example.com"] = {"email": "amy@example.com", "name": "Amy"}
    document_store.collections["users"]["bad@example.com"] = {"name": "Mia", "createdAt": "yesterday"}

    profiles = await list_user_profiles(document_store)

    assert [p.email for p in profiles] == ["amy@example.com", "zed@example.com"]
