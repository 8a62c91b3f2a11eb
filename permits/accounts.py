"""
Staff and treasury accounts, managed by administrators.

Each account is a record under ``{namespace}/{role}/{id}`` in the database and a user in Firebase Auth, linked by the
record's ``uid``. Administrators are either flagged under ``admins/{uid}`` or listed under ``{namespace}/admin``.
"""

import hashlib
import logging
from typing import Any

from permits import util
from permits.exceptions import ConflictError, NotFoundError, ValidationError
from permits.firebase import EmailAlreadyExists, IdentityClient, RealtimeDatabase, UserNotFound
from permits.models import ManagedRole, ManagedUser

logger = logging.getLogger(__name__)

ADMINS_PATH = "admins"
TRUE_VALUES = ("true", "1", "yes", "y")
FALSE_VALUES = ("false", "0", "no", "n")


def base_namespace(namespace: str) -> str:
    """
    Return the namespace without a trailing role, so that ``users/webapp/staff`` and ``users/webapp`` are equivalent.
    """
    namespace = namespace.rstrip("/")
    for role in ("staff", "treasury", "admin"):
        if namespace.endswith(f"/{role}"):
            return namespace[: -len(role) - 1]
    return namespace


def role_path(namespace: str, role: str) -> str:
    return f"{base_namespace(namespace)}/{role}"


def normalize_string(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_email(value: Any) -> str:
    return normalize_string(value).lower()


def normalize_boolean(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text in TRUE_VALUES:
            return True
        if text in FALSE_VALUES:
            return False
    return default


def parse_role(value: Any) -> ManagedRole | None:
    try:
        return ManagedRole(normalize_string(value).lower())
    except ValueError:
        return None


def require_role(value: Any) -> ManagedRole:
    if (role := parse_role(value)) is None:
        raise ValidationError("Role is required. Use staff or treasury.")
    return role


def password_hash(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def display_name(first_name: str, last_name: str) -> str:
    return " ".join(part for part in (first_name, last_name) if part)


def normalize_user(key: str, payload: Any) -> ManagedUser:
    payload = util.as_dict(payload)
    return ManagedUser(
        id=key,
        first_name=normalize_string(payload.get("firstName")),
        middle_name=normalize_string(payload.get("middleName")) or None,
        last_name=normalize_string(payload.get("lastName")),
        email=normalize_email(payload.get("email")),
        status=normalize_string(payload.get("status")) or None,
        email_verified=normalize_boolean(payload.get("emailVerified"), False),
        uid=normalize_string(payload.get("uid")) or None,
        created_at=payload.get("createdAt") if util.is_number(payload.get("createdAt")) else None,
        updated_at=payload.get("updatedAt") if util.is_number(payload.get("updatedAt")) else None,
    )


def _is_listed(database: RealtimeDatabase, path: str, email: str) -> bool:
    email = normalize_email(email)
    return bool(email and database.find(path, "email", email))


def is_admin(database: RealtimeDatabase, namespace: str, uid: str, email: str) -> bool:
    if not uid:
        return False
    if database.get(f"{ADMINS_PATH}/{uid}") is True:
        return True
    return _is_listed(database, role_path(namespace, "admin"), email)


def is_treasury(database: RealtimeDatabase, namespace: str, email: str) -> bool:
    return _is_listed(database, role_path(namespace, ManagedRole.TREASURY), email)


def list_users(database: RealtimeDatabase, namespace: str, role: ManagedRole) -> list[ManagedUser]:
    """
    Return the accounts with the role, sorted by last name, then first name.
    """
    node = util.as_dict(database.get(role_path(namespace, role)))
    users = [normalize_user(key, value) for key, value in node.items()]
    return sorted(users, key=lambda user: user.sort_key)


def find_user_by_email(
    database: RealtimeDatabase, namespace: str, role: ManagedRole, email: str
) -> ManagedUser | None:
    if not email:
        return None
    for key, value in database.find(role_path(namespace, role), "email", email).items():
        return normalize_user(key, value)
    return None


def get_user(database: RealtimeDatabase, namespace: str, role: ManagedRole, key: str) -> ManagedUser:
    """
    :raises NotFoundError: If the account doesn't exist.
    """
    payload = database.get(f"{role_path(namespace, role)}/{key}")
    if payload is None:
        raise NotFoundError("User not found.")
    return normalize_user(key, payload)


def create_user(
    database: RealtimeDatabase,
    identity: IdentityClient,
    namespace: str,
    body: dict[str, Any],
    *,
    admin_email: str,
    now: int | None = None,
) -> tuple[ManagedRole, ManagedUser]:
    """
    Create the Firebase Auth user, then the account record.

    :param body: The submitted account, with camelCase keys.
    :raises ValidationError: If the role, a name, the email or the password is missing.
    :raises ConflictError: If another account with the role, or another Firebase Auth user, has the email.
    """
    role = require_role(body.get("role"))
    first_name = normalize_string(body.get("firstName"))
    middle_name = normalize_string(body.get("middleName")) or None
    last_name = normalize_string(body.get("lastName"))
    email = normalize_email(body.get("email"))
    password = normalize_string(body.get("password"))
    status = normalize_string(body.get("status")) or "active"
    email_verified = normalize_boolean(body.get("emailVerified"), True)

    if not first_name or not last_name or not email or not password:
        raise ValidationError("First name, last name, email, and password are required.")
    if not util.is_valid_email(email):
        raise ValidationError("Email is invalid.")
    if find_user_by_email(database, namespace, role, email):
        raise ConflictError("A user with this email already exists in this role.")

    try:
        uid = identity.create_user(
            email=email,
            password=password,
            email_verified=email_verified,
            display_name=display_name(first_name, last_name),
        )
    except EmailAlreadyExists as e:
        raise ConflictError("This email is already used in Firebase Auth.", cause=e) from e

    record = {
        "firstName": first_name,
        "lastName": last_name,
        "email": email,
        "passwordHash": password_hash(password),
        "status": status,
        "emailVerified": email_verified,
        "uid": uid,
        "createdAt": now or util.now_ms(),
        "createdByEmail": admin_email or None,
    }
    if middle_name:
        record["middleName"] = middle_name

    key = database.push(role_path(namespace, role), record)
    logger.info("Created %s account %s", role, key)
    return role, normalize_user(key, record)


def update_user(
    database: RealtimeDatabase,
    identity: IdentityClient,
    namespace: str,
    body: dict[str, Any],
    *,
    admin_email: str,
    now: int | None = None,
) -> tuple[ManagedRole, ManagedUser]:
    """
    Update an account and its Firebase Auth user. Fields absent from the body are unchanged.

    If the Firebase Auth user is missing and a password is submitted, the user is re-created.

    :raises ValidationError: If the role or the ID is missing, or a name or the email is cleared.
    :raises NotFoundError: If the account doesn't exist.
    :raises ConflictError: If another account with the role, or another Firebase Auth user, has the new email.
    """
    role = require_role(body.get("role"))
    key = normalize_string(body.get("id"))
    if not key:
        raise ValidationError("User id is required.")

    current = get_user(database, namespace, role, key)

    def submitted(field: str, value: Any) -> Any:
        return body[field] if field in body else value

    first_name = normalize_string(submitted("firstName", current.first_name))
    middle_name = normalize_string(submitted("middleName", current.middle_name)) or None
    last_name = normalize_string(submitted("lastName", current.last_name))
    email = normalize_email(submitted("email", current.email))
    status = normalize_string(submitted("status", current.status)) or None
    email_verified = normalize_boolean(submitted("emailVerified", current.email_verified), False)
    password = normalize_string(body.get("password"))

    if not first_name or not last_name or not email:
        raise ValidationError("First name, last name, and email are required.")
    if email != current.email:
        if not util.is_valid_email(email):
            raise ValidationError("Email is invalid.")
        duplicate = find_user_by_email(database, namespace, role, email)
        if duplicate and duplicate.id != key:
            raise ConflictError("A user with this email already exists in this role.")

    uid = current.uid
    if not uid and current.email:
        uid = identity.get_uid_by_email(current.email)

    changes: dict[str, Any] = {}
    if email != current.email:
        changes["email"] = email
    if password:
        changes["password"] = password
    if email_verified != current.email_verified:
        changes["email_verified"] = email_verified
    name = display_name(first_name, last_name)
    if name and name != current.display_name:
        changes["display_name"] = name

    if changes:
        if uid:
            try:
                identity.update_user(uid, **changes)
            except UserNotFound:
                uid = None
            except EmailAlreadyExists as e:
                raise ConflictError("This email is already used in Firebase Auth.", cause=e) from e
        if not uid and password:
            try:
                uid = identity.create_user(
                    email=email, password=password, email_verified=email_verified, display_name=name
                )
            except EmailAlreadyExists:
                uid = identity.get_uid_by_email(email)

    updates = {
        "firstName": first_name,
        "middleName": middle_name,
        "lastName": last_name,
        "email": email,
        "status": status,
        "emailVerified": email_verified,
        "updatedAt": now or util.now_ms(),
        "updatedByEmail": admin_email or None,
    }
    if password:
        updates["passwordHash"] = password_hash(password)
    if uid:
        updates["uid"] = uid

    database.update(f"{role_path(namespace, role)}/{key}", updates)
    logger.info("Updated %s account %s", role, key)
    return role, normalize_user(key, {"createdAt": current.created_at, **updates})


def delete_user(
    database: RealtimeDatabase, identity: IdentityClient, namespace: str, body: dict[str, Any]
) -> tuple[ManagedRole, str]:
    """
    Delete an account, then its Firebase Auth user, if any.

    :raises ValidationError: If the role or the ID is missing.
    :raises NotFoundError: If the account doesn't exist.
    """
    role = require_role(body.get("role"))
    key = normalize_string(body.get("id"))
    if not key:
        raise ValidationError("User id is required.")

    current = get_user(database, namespace, role, key)
    database.delete(f"{role_path(namespace, role)}/{key}")

    uid = current.uid
    if not uid and current.email:
        uid = identity.get_uid_by_email(current.email)
    if uid:
        try:
            identity.delete_user(uid)
        except UserNotFound:
            logger.info("Auth user %s of %s account %s was already deleted", uid, role, key)

    logger.info("Deleted %s account %s", role, key)
    return role, key
