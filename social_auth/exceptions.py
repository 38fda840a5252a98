"""Domain exceptions raised by the identity and notification services.

Route handlers translate these into HTTP responses; nothing in this module
knows about HTTP.
"""


class SocialAuthError(Exception):
    """Base class for all application errors."""


class TokenConfigurationError(SocialAuthError):
    """JWT secret is missing; raised at startup, not per request."""


class EmailAlreadyRegisteredError(SocialAuthError):
    """Registration attempted with an email that already has a record."""

    def __init__(self, email: str):
        super().__init__("Email already registered")
        self.email = email


class InvalidCredentialsError(SocialAuthError):
    """Unknown email or wrong password. Deliberately non-specific."""

    def __init__(self):
        super().__init__("Invalid email or password")


class OAuthOnlyAccountError(SocialAuthError):
    """Password login attempted on an account that has no password."""

    def __init__(self, provider: str = "google"):
        label = provider.capitalize()
        super().__init__(
            f"This account uses {label} login. Please sign in with {label}."
        )
        self.provider = provider


class OAuthError(SocialAuthError):
    """OAuth flow aborted. ``code`` is the value sent back to the frontend."""

    ACCESS_DENIED = "access_denied"
    STATE_MISMATCH = "state_mismatch"
    PROVIDER_ERROR = "oauth_error"
    SERVER_ERROR = "server_error"
    LINK_DENIED = "account_link_denied"

    def __init__(self, code: str, detail: str = ""):
        super().__init__(detail or code)
        self.code = code
        self.detail = detail


class UnknownOAuthProviderError(SocialAuthError):
    def __init__(self, name: str):
        super().__init__(f"Unsupported OAuth provider: {name}")
        self.name = name


class PushProviderError(SocialAuthError):
    """The push provider could not be reached or rejected our credentials."""
