"""Identity gate and the session context handed to every component."""

from linkup.session.gate import IdentityGate, ScreenTree, SessionContext

__all__ = ["IdentityGate", "ScreenTree", "SessionContext"]
