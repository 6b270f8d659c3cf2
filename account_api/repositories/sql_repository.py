"""High-level data access helpers backed by SQLAlchemy."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError

from account_api.db.models import (
    User,
    Credential,
    Profile,
    UserSession,
    Role,
    UserRole,
    Track,
    UserTrack,
    Journal,
)
from account_api.db.session import get_session
from account_api.domain.mobile import is_valid_mobile, normalize_mobile
from account_api.repositories.filters import QueryFilter, build_order, build_where

USER_WRITABLE_FIELDS = ("mobile", "email", "name")
CREDENTIAL_WRITABLE_FIELDS = ("password", "reset_token", "token_created_at")


class DuplicateEntryError(Exception):
    """Raised when an insert/update violates a unique constraint."""


class InvalidMobileError(ValueError):
    """Raised when a user write carries a mobile number that does not validate."""


def _pick(values: Mapping[str, Any], allowed: tuple[str, ...]) -> dict:
    return {k: v for k, v in values.items() if k in allowed}


def _clean_mobile(value: Any) -> str:
    mobile = normalize_mobile(value if isinstance(value, str) else None)
    if not is_valid_mobile(mobile):
        raise InvalidMobileError("Invalid mobile number")
    return mobile


def _user_values(data: dict) -> dict:
    if "mobile" in data:
        data["mobile"] = _clean_mobile(data["mobile"])
    return data


class SQLRepository:
    """CRUD helpers wrapping the SQLAlchemy session."""

    def __init__(self, session_factory: Callable = get_session) -> None:
        self._session = session_factory

    # -------------------------- users --------------------------
    def get_user(self, user_id: str) -> Optional[User]:
        with self._session() as session:
            return session.get(User, user_id)

    def find_user_by_mobile(self, mobile: str) -> Optional[User]:
        with self._session() as session:
            stmt = select(User).where(User.mobile == mobile)
            return session.execute(stmt).scalar_one_or_none()

    def find_user_by_id(self, user_id: str, query: QueryFilter | None = None) -> Optional[User]:
        """Single-row lookup; ``order``/``limit``/``skip`` are validated but cannot change the row."""
        query = query or QueryFilter()
        stmt = select(User).where(User.id == user_id).order_by(*build_order(User, query.order))
        with self._session() as session:
            return session.execute(stmt).scalar_one_or_none()

    def create_user(self, mobile: str, email: str | None = None, name: str | None = None) -> User:
        mobile = _clean_mobile(mobile)
        now = datetime.now(timezone.utc)
        user = User(mobile=mobile, email=email, name=name, created_at=now, updated_at=now)
        with self._session() as session:
            session.add(user)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateEntryError(f"mobile {mobile} already registered") from exc
            session.refresh(user)
            return user

    def find_users(self, query: QueryFilter | None = None) -> list[User]:
        query = query or QueryFilter()
        stmt = select(User).where(build_where(User, query.where))
        stmt = stmt.order_by(*build_order(User, query.order), User.id)
        if query.skip:
            stmt = stmt.offset(query.skip)
        if query.limit is not None:
            stmt = stmt.limit(query.limit)
        with self._session() as session:
            return list(session.execute(stmt).scalars().all())

    def count_users(self, where: Mapping[str, Any] | None = None) -> int:
        stmt = select(func.count()).select_from(User).where(build_where(User, where))
        with self._session() as session:
            return int(session.execute(stmt).scalar_one())

    def _write_users(self, stmt) -> int:
        with self._session() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateEntryError("mobile already registered") from exc
            return int(result.rowcount or 0)

    def update_users(self, values: Mapping[str, Any], where: Mapping[str, Any] | None = None) -> int:
        data = _user_values(_pick(values, USER_WRITABLE_FIELDS))
        if not data:
            return 0
        data["updated_at"] = datetime.now(timezone.utc)
        stmt = update(User).where(build_where(User, where)).values(**data).execution_options(synchronize_session=False)
        return self._write_users(stmt)

    def update_user(self, user_id: str, values: Mapping[str, Any]) -> bool:
        data = _user_values(_pick(values, USER_WRITABLE_FIELDS))
        if not self.get_user(user_id):
            return False
        if data:
            data["updated_at"] = datetime.now(timezone.utc)
            self._write_users(update(User).where(User.id == user_id).values(**data))
        return True

    def replace_user(self, user_id: str, values: Mapping[str, Any]) -> bool:
        data = _user_values({name: values.get(name) for name in USER_WRITABLE_FIELDS})
        data["updated_at"] = datetime.now(timezone.utc)
        return self._write_users(update(User).where(User.id == user_id).values(**data)) > 0

    def delete_user(self, user_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(User).where(User.id == user_id))
            session.commit()
            return bool(result.rowcount)

    def set_user_verified(self, user_id: str) -> None:
        now = datetime.now(timezone.utc)
        with self._session() as session:
            stmt = update(User).where(User.id == user_id).values(mobile_verified_at=now, updated_at=now)
            session.execute(stmt)
            session.commit()

    # -------------------------- credentials --------------------------
    def create_credential(self, user_id: str, password_hash: str, token_created_at: datetime | None = None) -> Credential:
        entity = Credential(user_id=user_id, password=password_hash, token_created_at=token_created_at)
        with self._session() as session:
            session.add(entity)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateEntryError(f"credential for user {user_id} already exists") from exc
            session.refresh(entity)
            return entity

    def find_credentials(self, user_id: str) -> Optional[Credential]:
        """Return the user's credential, or None when the user has none."""
        with self._session() as session:
            stmt = select(Credential).where(Credential.user_id == user_id)
            return session.execute(stmt).scalar_one_or_none()

    def update_credential(self, user_id: str, **values: Any) -> bool:
        data = _pick(values, CREDENTIAL_WRITABLE_FIELDS)
        if not data:
            return False
        data["updated_at"] = datetime.now(timezone.utc)
        with self._session() as session:
            result = session.execute(update(Credential).where(Credential.user_id == user_id).values(**data))
            session.commit()
            return bool(result.rowcount)

    def consume_reset_token(self, user_id: str, marker: str, password_hash: str) -> bool:
        """Swap the password only while ``marker`` is still the stored one; False when already used."""
        stmt = (
            update(Credential)
            .where(Credential.user_id == user_id, Credential.reset_token == marker)
            .values(password=password_hash, reset_token=None, updated_at=datetime.now(timezone.utc))
        )
        with self._session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def consume_otp(self, user_id: str, issued_at: datetime) -> bool:
        """Clear the OTP issuance instant only if it is still ``issued_at``."""
        stmt = (
            update(Credential)
            .where(Credential.user_id == user_id, Credential.token_created_at == issued_at)
            .values(token_created_at=None, updated_at=datetime.now(timezone.utc))
        )
        with self._session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    # -------------------------- profiles --------------------------
    def get_profile(self, user_id: str) -> Optional[dict]:
        with self._session() as session:
            profile = session.get(Profile, user_id)
            return profile.data if profile else None

    def upsert_profile(self, user_id: str, data: dict) -> dict:
        now = datetime.now(timezone.utc)
        with self._session() as session:
            profile = session.get(Profile, user_id)
            if not profile:
                profile = Profile(user_id=user_id, data=data, updated_at=now)
                session.add(profile)
            else:
                profile.data = data
                profile.updated_at = now
            session.commit()
            return dict(profile.data or {})

    # -------------------------- relations --------------------------
    def find_sessions_by_user_id(self, user_id: str) -> list[UserSession]:
        with self._session() as session:
            stmt = select(UserSession).where(UserSession.user_id == user_id).order_by(UserSession.started_at.desc(), UserSession.id.desc())
            return list(session.execute(stmt).scalars().all())

    def open_user_session(self, user_id: str, device: str | None = None) -> UserSession:
        entity = UserSession(user_id=user_id, device=device, started_at=datetime.now(timezone.utc))
        with self._session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity

    def find_roles_by_user_id(self, user_id: str) -> list[Role]:
        with self._session() as session:
            stmt = (
                select(Role)
                .join(UserRole, UserRole.role_id == Role.id)
                .where(UserRole.user_id == user_id)
                .order_by(Role.name)
            )
            return list(session.execute(stmt).scalars().all())

    def assign_role(self, user_id: str, role_name: str) -> Role:
        with self._session() as session:
            role = session.execute(select(Role).where(Role.name == role_name)).scalar_one_or_none()
            if not role:
                role = Role(name=role_name)
                session.add(role)
                session.flush()
            linked = session.execute(
                select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
            ).first()
            if not linked:
                session.add(UserRole(user_id=user_id, role_id=role.id))
            session.commit()
            return role

    def find_tracks_by_user_id(self, user_id: str) -> list[Track]:
        with self._session() as session:
            stmt = (
                select(Track)
                .join(UserTrack, UserTrack.track_id == Track.id)
                .where(UserTrack.user_id == user_id)
                .order_by(Track.id)
            )
            return list(session.execute(stmt).scalars().all())

    def add_track(self, user_id: str, title: str, description: str | None = None) -> Track:
        with self._session() as session:
            track = Track(title=title, description=description)
            session.add(track)
            session.flush()
            session.add(UserTrack(user_id=user_id, track_id=track.id))
            session.commit()
            return track

    def find_journals_by_user_id(self, user_id: str) -> list[Journal]:
        with self._session() as session:
            stmt = select(Journal).where(Journal.user_id == user_id).order_by(Journal.created_at.desc(), Journal.id.desc())
            return list(session.execute(stmt).scalars().all())

    def create_journal(self, user_id: str, title: str, content: str | None = None) -> Journal:
        entity = Journal(user_id=user_id, title=title, content=content, created_at=datetime.now(timezone.utc))
        with self._session() as session:
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity
