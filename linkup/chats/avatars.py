"""Deterministic initials avatars for users without a picture."""

from urllib.parse import quote

AVATAR_COLORS = ["#FF6B6B", "#4ECDC4", "#45B7D1", "#96CEB4", "#FECA57", "#FF9FF3", "#54A0FF", "#5F27CD"]
AVATAR_BASE_URL = "https://api.dicebear.com/8.x/initials/png"

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~".
_SEED_SAFE = "!*'()"


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def string_hash(text: str) -> int:
    """``h = c + ((h << 5) - h)`` over UTF-16 code units.

    Only the shift wraps to 32 bits; the running sum does not, so the result
    matches avatars generated by the mobile app for the same user.
    """
    h = 0
    encoded = text.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = int.from_bytes(encoded[i:i + 2], "little")
        h = unit + (_int32(_int32(h) << 5) - h)
    return h


def avatar_color(name: str | None, email: str | None) -> str:
    key = (name or email or "").lower()
    return AVATAR_COLORS[abs(string_hash(key)) % len(AVATAR_COLORS)]


def avatar_seed(name: str | None, email: str | None) -> str:
    base = (name or "").strip() or (email or "").strip() or "user"
    return quote(base.lower(), safe=_SEED_SAFE)


def avatar_url(name: str | None, email: str | None, size: int = 96) -> str:
    """Initials identicon URL for a user.

    The same name/email always yields the same URL, so the image is cached
    across messages and screens.
    """
    color = avatar_color(name, email).lstrip("#")
    return (
        f"{AVATAR_BASE_URL}?seed={avatar_seed(name, email)}"
        f"&radius=50&size={size}&backgroundColor={color}&textColor=ffffff"
    )
