"""
accounts/service.py -- The account state machine.

AccountService owns every transition an account can go through:

  Unregistered --signup / federated_login--> Registered{Incomplete|Complete}
  Registered{Incomplete} --complete_profile--> Registered{Complete}

plus the profile, password and picture mutations available to a registered
account. Routes call these methods and never touch the store directly.

Ordering rules:
  - All input is validated before anything is written or uploaded.
  - A new picture is uploaded before the account row changes; the superseded
    picture is deleted afterwards, best-effort (logged, never raised).
  - Uniqueness races are settled by the database. An IntegrityError on
    insert becomes DuplicateEmail (signup) or a re-read (federated login).

Security:
  [C1] login() always runs one bcrypt check, against a dummy hash when the
       email is unknown or the account has no local password, so response
       time does not reveal whether an email is registered.

Layer rule: no imports from api/. The collaborators (store, hasher, token
issuer, image store) are injected by the application factory.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from accounts import validation
from accounts.errors import DuplicateEmail, InvalidCredentials, NotFound, NothingToDelete, UpstreamFailure, ValidationError
from accounts.models import (
    Account,
    FederatedIdentity,
    ImageUpload,
    ProfileCompletion,
    ProfileUpdate,
    Provenance,
    SecretChange,
    SignupInput,
)
from accounts.store import AccountStore
from auth.tokens import PasswordHasher, TokenIssuer
from media.images import ImageStore

logger = logging.getLogger("profilehub.accounts")

_DEFAULT_MAX_UPLOAD_BYTES = 5 * 1024 * 1024


class AccountService:
    """Account workflows backed by AccountStore, bcrypt, JWT and Cloudinary."""

    def __init__(
        self,
        store: AccountStore,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        images: ImageStore,
        max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._tokens = tokens
        self._images = images
        self.max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def signup(self, data: SignupInput, picture: ImageUpload | None = None) -> Account:
        """Create a local account.

        Raises:
            ValidationError: any field fails the validation policy.
            DuplicateEmail: the email is already registered.
            UpstreamFailure: the picture upload failed; nothing was written.
        """
        email = validation.validate_email(data.email)
        password = validation.validate_password(data.password)
        name = validation.validate_name(data.name)
        age = validation.validate_age(data.age) if data.age is not None else None
        gender = validation.validate_gender(data.gender) if data.gender else None
        if picture is not None:
            self._check_image(picture)

        if self._store.get_by_email(email) is not None:
            raise DuplicateEmail("User already exists with this email.")

        picture_url = self._images.upload(picture.content, picture.filename) if picture is not None else None

        account = Account(
            id="",
            email=email,
            name=name,
            provenance=Provenance.local,
            hashed_password=self._hasher.hash(password),
            age=age,
            gender=gender,
            picture_url=picture_url,
        )
        try:
            created = self._store.create_account(account)
        except IntegrityError as exc:
            # Lost a race with a concurrent signup for the same email.
            if picture_url:
                self._discard_picture(picture_url)
            raise DuplicateEmail("User already exists with this email.") from exc
        logger.info("Account %s registered (local)", created.id)
        return created

    def login(self, email: str, password: str) -> tuple[Account, str]:
        """Verify credentials and return the account with a fresh access token.

        The same InvalidCredentials error covers unknown email, an account
        without a local password, and a wrong password [C1].
        """
        account = self._store.get_by_email(email or "")
        if account is None or account.hashed_password is None:
            self._hasher.verify_dummy(password or "")
            raise InvalidCredentials("Invalid email or password.")
        if not self._hasher.verify(password or "", account.hashed_password):
            raise InvalidCredentials("Invalid email or password.")
        logger.info("Account %s logged in", account.id)
        return account, self.issue_token(account)

    def issue_token(self, account: Account) -> str:
        return self._tokens.issue(account.id)

    def federated_login(self, identity: FederatedIdentity) -> Account:
        """Resolve a verified external identity to an account, creating one if needed.

        Lookup order is federated id, then email. An existing local account
        with the same email is linked: it gains the federated id, becomes
        `federated`, keeps its password, and picks up the provider picture
        only if it has none.
        """
        email = validation.validate_email(identity.email)
        account = self._store.get_by_federated_id(identity.external_id)
        if account is None:
            account = self._store.get_by_email(email)

        if account is None:
            new = Account(
                id="",
                email=email,
                name=_display_name(identity, email),
                provenance=Provenance.federated,
                picture_url=identity.picture_url,
                federated_id=identity.external_id,
            )
            try:
                created = self._store.create_account(new)
            except IntegrityError:
                # A concurrent first login for the same identity won the insert.
                existing = self._store.get_by_federated_id(identity.external_id) or self._store.get_by_email(email)
                if existing is None:
                    raise
                account = existing
            else:
                logger.info("Account %s registered (federated)", created.id)
                return created

        updates: dict = {}
        if account.federated_id != identity.external_id:
            updates["federated_id"] = identity.external_id
        if account.provenance != Provenance.federated:
            updates["provenance"] = Provenance.federated
        if not account.picture_url and identity.picture_url:
            updates["picture_url"] = identity.picture_url
        name = _display_name(identity, email)
        if identity.display_name and account.name != name:
            updates["name"] = name
        if updates:
            self._store.update_account(account.id, **updates)
            logger.info("Account %s linked to federated identity (%s)", account.id, ", ".join(sorted(updates)))
        return self._require(account.id)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def complete_profile(self, account_id: str, data: ProfileCompletion) -> Account:
        """Set the mandatory demographics, and optionally a first local password.

        The password is only honoured for federated accounts; local accounts
        already have one and must use change_secret().
        """
        if data.age is None or not data.gender:
            raise ValidationError("Age and gender are required.")
        age = validation.validate_age(data.age)
        gender = validation.validate_gender(data.gender)
        account = self._require(account_id)

        updates: dict = {"age": age, "gender": gender}
        if data.password and account.provenance == Provenance.federated:
            updates["hashed_password"] = self._hasher.hash(validation.validate_password(data.password))
        self._store.update_account(account_id, **updates)
        logger.info("Account %s completed profile", account_id)
        return self._require(account_id)

    def update_profile(self, account_id: str, data: ProfileUpdate, picture: ImageUpload | None = None) -> Account:
        """Apply a partial profile edit; None fields are left unchanged."""
        updates: dict = {}
        if data.name is not None:
            updates["name"] = validation.validate_name(data.name)
        if data.age is not None:
            updates["age"] = validation.validate_age(data.age)
        if data.gender:
            updates["gender"] = validation.validate_gender(data.gender)
        if picture is not None:
            self._check_image(picture)
        account = self._require(account_id)

        if picture is not None:
            updates["picture_url"] = self._images.upload(picture.content, picture.filename)
        if not updates:
            return account

        self._apply_picture_update(account_id, updates)
        if "picture_url" in updates and account.picture_url:
            self._discard_picture(account.picture_url)
        logger.info("Account %s updated profile (%s)", account_id, ", ".join(sorted(updates)))
        return self._require(account_id)

    def change_secret(self, account_id: str, data: SecretChange) -> None:
        """Set a new password.

        Accounts without a password (federated-only) set one directly.
        Otherwise the current password is required and must match.
        """
        new_password = validation.validate_password(data.new_password, field="New password")
        account = self._require(account_id)
        if account.hashed_password is not None:
            if not data.current_password:
                raise ValidationError("Current password is required.")
            if not self._hasher.verify(data.current_password, account.hashed_password):
                raise InvalidCredentials("Current password is incorrect.")
        self._store.update_account(account_id, hashed_password=self._hasher.hash(new_password))
        logger.info("Account %s changed password", account_id)

    # ------------------------------------------------------------------
    # Picture
    # ------------------------------------------------------------------

    def attach_picture(self, account_id: str, upload: ImageUpload) -> Account:
        self._check_image(upload)
        account = self._require(account_id)
        url = self._images.upload(upload.content, upload.filename)
        self._apply_picture_update(account_id, {"picture_url": url})
        if account.picture_url:
            self._discard_picture(account.picture_url)
        logger.info("Account %s attached picture", account_id)
        return self._require(account_id)

    def detach_picture(self, account_id: str) -> Account:
        account = self._require(account_id)
        if not account.picture_url:
            raise NothingToDelete("No profile picture to delete.")
        self._discard_picture(account.picture_url)
        self._store.update_account(account_id, picture_url=None)
        logger.info("Account %s detached picture", account_id)
        return self._require(account_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, account_id: str) -> Account:
        return self._require(account_id)

    def list_accounts(self, limit: int = 100, offset: int = 0) -> list[Account]:
        return self._store.list_accounts(limit=limit, offset=offset)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, account_id: str) -> Account:
        account = self._store.get_by_id(account_id)
        if account is None:
            raise NotFound("User not found.")
        return account

    def _check_image(self, upload: ImageUpload) -> None:
        validation.validate_image(upload.content_type, len(upload.content), self.max_upload_bytes)

    def _apply_picture_update(self, account_id: str, updates: dict) -> None:
        """Write *updates*; if the row update fails, drop the freshly uploaded picture."""
        try:
            self._store.update_account(account_id, **updates)
        except SQLAlchemyError:
            if updates.get("picture_url"):
                self._discard_picture(updates["picture_url"])
            raise

    def _discard_picture(self, reference: str) -> None:
        """Delete a superseded picture. Failures are logged and swallowed."""
        try:
            self._images.delete(reference)
        except UpstreamFailure as exc:
            logger.warning("Could not delete superseded picture %s: %s", reference, exc.message)


def _display_name(identity: FederatedIdentity, email: str) -> str:
    name = (identity.display_name or "").strip()[: validation.MAX_NAME_LENGTH]
    return name or email.split("@", 1)[0]
