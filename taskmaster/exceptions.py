"""Domain exceptions translated to HTTP responses in ``taskmaster.main``."""


class TokenError(ValueError):
    """A bearer or refresh token could not be accepted."""

    message = "Invalid token"


class TokenExpiredError(TokenError):
    message = "Token expired"


class InvalidTokenError(TokenError):
    message = "Invalid token"


class WrongTokenTypeError(InvalidTokenError):
    """Token is validly signed but is not the expected kind."""


class InvalidCredentialsError(Exception):
    """Username/password pair did not match an active user."""


class DuplicateFieldError(Exception):
    """A unique user field (username, email) is already taken."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"{field.capitalize()} already exists")
