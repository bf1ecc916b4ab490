import pytest

from linkup.chats.avatars import AVATAR_COLORS, avatar_color, avatar_seed, avatar_url, string_hash


@pytest.mark.parametrize("text,expected", [("", 0), ("a", 97), ("ab", 3105)])
def test_string_hash(text, expected):
    assert string_hash(text) == expected


def test_colour_is_picked_from_palette_by_hash():
    assert avatar_color("a", None) == "#4ECDC4"
    assert avatar_color("AB", None) == "#4ECDC4"
    assert avatar_color(None, "someone@example.com") in AVATAR_COLORS


def test_colour_prefers_name_over_email():
    assert avatar_color("Ada", "zed@example.com") == avatar_color("ada", None)


def test_long_names_hash_without_error():
    assert avatar_color("x" * 500, None) in AVATAR_COLORS


@pytest.mark.parametrize(
    "name,email,seed",
    [
        ("Ada Lovelace", "ada@example.com", "ada%20lovelace"),
        ("  ", "o'neil@example.com", "o'neil%40example.com"),
        (None, None, "user"),
    ],
)
def test_avatar_seed(name, email, seed):
    assert avatar_seed(name, email) == seed


def test_avatar_url_is_deterministic():
    url = avatar_url("a", None, size=64)

    assert url == (
        "https://api.dicebear.com/8.x/initials/png?seed=a"
        "&radius=50&size=64&backgroundColor=4ECDC4&textColor=ffffff"
    )
    assert avatar_url("a", None, size=64) == url
