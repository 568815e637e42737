from .user import User
from .subscription import Subscription
from .payment import Payment
from .refresh_token import RefreshToken
from .contact import Contact
from .settings import Settings

__all__ = ["User", "Subscription", "Payment", "RefreshToken", "Contact", "Settings"]
