"""Signed-in user and store credentials.

The signed-in user id lives in the settings database so every component
reads the same identity. The PostgreSQL password and the NewsAPI key are
kept in the system keyring, never in the settings table.
"""

import logging
from dataclasses import dataclass
from typing import Callable

try:
    import keyring
    from keyring.errors import KeyringError, PasswordDeleteError
except ImportError:
    keyring = None

from core.store_adapter import AdapterError, StoreAdapter
from utils.config import Config

log = logging.getLogger("mindgains.user_manager")

# Keyring identifiers for the store password
STORE_PASSWORD_SERVICE = "mindgains_store"
NEWS_API_KEY_SERVICE = "mindgains_news"
NEWS_API_KEY_ACCOUNT = "newsapi"


@dataclass
class User:
    """Signed-in user identity."""

    user_id: str
    username: str | None = None
    email: str | None = None


class UserManager:
    """Tracks who is signed in and notifies listeners when that changes."""

    def __init__(self, config: Config, adapter: StoreAdapter | None = None):
        """Initialize user manager.

        Args:
            config: Config instance holding the signed-in user
            adapter: Store adapter; when given, sign-in makes sure a users row exists
        """
        self.config = config
        self.adapter = adapter
        self._listeners: list[Callable[[str | None], None]] = []

    def current_user_id(self) -> str | None:
        """Signed-in user id, or None when signed out."""
        return self.config.get("current_user_id", "") or None

    def current_user(self) -> User | None:
        user_id = self.current_user_id()
        if user_id is None:
            return None
        return User(
            user_id=user_id,
            username=self.config.get("current_username", "") or None,
            email=self.config.get("current_user_email", "") or None,
        )

    def add_listener(self, callback: Callable[[str | None], None]) -> None:
        """Call `callback(user_id)` after every sign-in and sign-out."""
        self._listeners.append(callback)

    def _notify(self, user_id: str | None) -> None:
        for callback in self._listeners:
            callback(user_id)

    def sign_in(self, user_id: str, email: str | None = None, username: str | None = None) -> User:
        """Make `user_id` the signed-in user.

        Args:
            user_id: Store user id
            email: Email address, if known
            username: Display name, if known

        Returns:
            The signed-in user

        Raises:
            ValueError: If user_id is blank
        """
        user_id = user_id.strip()
        if not user_id:
            raise ValueError("User id cannot be empty")

        if self.adapter is not None:
            try:
                self.adapter.ensure_user(user_id, email, username)
            except AdapterError as e:
                # Stats show the baseline until the row exists
                log.error(f"Could not create users row for {user_id}: {e}")

        self.config.set("current_user_id", user_id)
        self.config.set("current_username", username or "")
        self.config.set("current_user_email", email or "")
        log.info(f"Signed in as {username or user_id}")

        self._notify(user_id)
        return User(user_id=user_id, username=username, email=email)

    def sign_out(self) -> None:
        """Forget the signed-in user."""
        previous = self.current_user_id()
        self.config.set("current_user_id", "")
        self.config.set("current_username", "")
        self.config.set("current_user_email", "")
        if previous:
            log.info(f"Signed out {previous}")
        self._notify(None)

    # ========== Store password ==========

    @staticmethod
    def _require_keyring() -> None:
        if keyring is None:
            raise RuntimeError(
                "System keyring is not available.\n\n"
                "MindGains keeps the database password and the news API key\n"
                "in the system keyring.\n\n"
                "Install it with: pip install keyring"
            )

    def get_store_password(self, db_user: str) -> str | None:
        """Get the PostgreSQL password for `db_user` from the keyring.

        Returns:
            Password, or None if none is stored
        """
        self._require_keyring()
        try:
            return keyring.get_password(STORE_PASSWORD_SERVICE, db_user)
        except KeyringError as e:
            log.error(f"Error retrieving store password from keyring: {e}")
            return None

    def set_store_password(self, db_user: str, password: str) -> None:
        """Store the PostgreSQL password for `db_user` in the keyring.

        Raises:
            RuntimeError: If the keyring refuses the password
        """
        self._require_keyring()
        try:
            keyring.set_password(STORE_PASSWORD_SERVICE, db_user, password)
            log.info(f"Store password saved for {db_user}")
        except KeyringError as e:
            raise RuntimeError(f"Failed to store password in keyring: {e}")

    def delete_store_password(self, db_user: str) -> None:
        """Remove the PostgreSQL password for `db_user` from the keyring."""
        self._require_keyring()
        try:
            keyring.delete_password(STORE_PASSWORD_SERVICE, db_user)
            log.info(f"Store password deleted for {db_user}")
        except PasswordDeleteError:
            log.debug(f"No store password saved for {db_user}")
        except KeyringError as e:
            log.error(f"Error deleting store password: {e}")

    # ========== News API key ==========

    def get_news_api_key(self) -> str | None:
        self._require_keyring()
        try:
            return keyring.get_password(NEWS_API_KEY_SERVICE, NEWS_API_KEY_ACCOUNT)
        except KeyringError as e:
            log.error(f"Error retrieving news API key from keyring: {e}")
            return None

    def set_news_api_key(self, api_key: str) -> None:
        """Store the NewsAPI key in the keyring.

        Raises:
            RuntimeError: If the keyring refuses the key
        """
        self._require_keyring()
        try:
            keyring.set_password(NEWS_API_KEY_SERVICE, NEWS_API_KEY_ACCOUNT, api_key)
            log.info("News API key saved")
        except KeyringError as e:
            raise RuntimeError(f"Failed to store news API key in keyring: {e}")
