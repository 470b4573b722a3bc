"""
Validation rules for signup credentials
"""
import re

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 64
MIN_PASSWORD_LENGTH = 8

# Jellyfin rejects control characters and path separators in user names
INVALID_USERNAME_PATTERN = re.compile(r'[\x00-\x1f/\\]')


def validate_username(username: str) -> str:
    """
    Validate a signup username and return it stripped of surrounding spaces.

    Raises:
        ValueError: If the username is too short, too long or contains
            characters the media server does not accept
    """
    username = (username or "").strip()
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValueError(f"Username must be at least {MIN_USERNAME_LENGTH} characters")
    if len(username) > MAX_USERNAME_LENGTH:
        raise ValueError(f"Username must be at most {MAX_USERNAME_LENGTH} characters")
    if INVALID_USERNAME_PATTERN.search(username):
        raise ValueError("Username contains invalid characters")
    return username


def validate_password_strength(password: str) -> None:
    """
    Validate password strength according to signup requirements.

    Enforces:
    - Minimum length: 8 characters
    - At least one digit (0-9)

    Args:
        password: Password string to validate

    Raises:
        ValueError: If password does not meet strength requirements
    """
    if not password:
        raise ValueError("Password cannot be empty")

    # Check minimum length
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

    # Check for digit
    if not re.search(r'[0-9]', password):
        raise ValueError("Password must contain at least one number")
