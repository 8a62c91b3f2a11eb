import json
import logging
import os.path
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import firebase_admin
from firebase_admin import auth, credentials, db
from firebase_admin.exceptions import FirebaseError

from permits.exceptions import ConflictError, DependencyUnavailable, NotFoundError
from permits.settings import Settings

logger = logging.getLogger(__name__)


class EmailAlreadyExists(ConflictError):
    """Raised if a Firebase Auth user already has the email address."""


class UserNotFound(NotFoundError):
    """Raised if no Firebase Auth user has the UID or email address."""


@contextmanager
def translate_errors(operation: str) -> Generator[None, None, None]:
    try:
        yield
    except FirebaseError as e:
        logger.exception("Firebase %s failed", operation)
        raise DependencyUnavailable(f"Unable to {operation}", cause=e) from e


def initialize_app(settings: Settings) -> firebase_admin.App:
    """
    Initialize the Firebase Admin SDK with, in order of precedence, the service account JSON, the service account file,
    or Application Default Credentials.

    :raises DependencyUnavailable: If the database URL is not configured.
    """
    if not settings.firebase_database_url:
        raise DependencyUnavailable("FIREBASE_DATABASE_URL is not set")

    if settings.firebase_service_account_json:
        credential = credentials.Certificate(json.loads(settings.firebase_service_account_json))
    elif settings.firebase_service_account_path and os.path.exists(settings.firebase_service_account_path):
        credential = credentials.Certificate(settings.firebase_service_account_path)
    else:
        credential = credentials.ApplicationDefault()

    options = {"databaseURL": settings.firebase_database_url}
    if settings.firebase_project_id:
        options["projectId"] = settings.firebase_project_id
    return firebase_admin.initialize_app(credential, options, name="permits")


class RealtimeDatabase:
    """
    A thin client for the Firebase Realtime Database.

    Paths are relative to the database root, like ``Treasury/fees/{uid}``.
    """

    def __init__(self, app: firebase_admin.App):
        #: The Firebase Admin app
        self.app = app

    def reference(self, path: str) -> db.Reference:
        return db.reference(path, app=self.app)

    def get(self, path: str) -> Any:
        with translate_errors(f"read {path}"):
            return self.reference(path).get()

    def set(self, path: str, value: Any) -> None:
        with translate_errors(f"write {path}"):
            self.reference(path).set(value)

    def update(self, path: str, value: dict[str, Any]) -> None:
        with translate_errors(f"update {path}"):
            self.reference(path).update(value)

    def delete(self, path: str) -> None:
        with translate_errors(f"delete {path}"):
            self.reference(path).delete()

    def push(self, path: str, value: Any) -> str:
        """
        :return: The generated key of the new child.
        """
        with translate_errors(f"push to {path}"):
            return self.reference(path).push(value).key

    def find(self, path: str, child: str, value: Any) -> dict[str, Any]:
        """
        Return the children of the path whose ``child`` equals the value.

        The child must be indexed with ``.indexOn`` in the database rules.
        """
        with translate_errors(f"query {path}"):
            return dict(self.reference(path).order_by_child(child).equal_to(value).get() or {})


class IdentityClient:
    """
    A client for Firebase Auth user management.
    """

    def __init__(self, app: firebase_admin.App):
        #: The Firebase Admin app
        self.app = app

    def create_user(self, *, email: str, password: str, email_verified: bool, display_name: str) -> str:
        """
        :return: The UID of the new user.
        :raises EmailAlreadyExists: If another user has the email address.
        """
        try:
            user = auth.create_user(
                email=email,
                password=password,
                email_verified=email_verified,
                display_name=display_name or None,
                app=self.app,
            )
        except auth.EmailAlreadyExistsError as e:
            raise EmailAlreadyExists("Email is already in use by another account.", cause=e) from e
        logger.info("Created auth user %s", user.uid)
        return user.uid

    def update_user(self, uid: str, **kwargs: Any) -> None:
        """
        :param kwargs: Any of ``email``, ``password``, ``email_verified`` and ``display_name``.
        :raises UserNotFound: If no user has the UID.
        :raises EmailAlreadyExists: If another user has the new email address.
        """
        try:
            auth.update_user(uid, app=self.app, **kwargs)
        except auth.UserNotFoundError as e:
            raise UserNotFound("Auth user not found", cause=e) from e
        except auth.EmailAlreadyExistsError as e:
            raise EmailAlreadyExists("Email is already in use by another account.", cause=e) from e

    def delete_user(self, uid: str) -> None:
        try:
            auth.delete_user(uid, app=self.app)
        except auth.UserNotFoundError as e:
            raise UserNotFound("Auth user not found", cause=e) from e

    def get_uid_by_email(self, email: str) -> str | None:
        try:
            return auth.get_user_by_email(email, app=self.app).uid
        except auth.UserNotFoundError:
            return None
