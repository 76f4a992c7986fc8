from typing import Optional

from sqlalchemy import select

from craftstore.core.errors import NotFoundError
from craftstore.core.security import hash_password, verify_password
from craftstore.db.models import User, UserRole
from craftstore.repositories.base import Repository
from craftstore.schemas import ProfileUpdate, RegisterRequest, UserOut


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository(Repository):
    conflict_message = "An account with this email already exists"

    def get(self, user_id: str) -> Optional[UserOut]:
        with self.transaction("get_user") as session:
            user = session.get(User, user_id)
            return UserOut.model_validate(user) if user else None

    def get_by_email(self, email: str) -> Optional[UserOut]:
        with self.transaction("get_user_by_email") as session:
            user = session.scalar(select(User).where(User.email == normalize_email(email)))
            return UserOut.model_validate(user) if user else None

    def authenticate(self, email: str, password: str, role: Optional[UserRole] = None) -> Optional[UserOut]:
        """Return the user when the password matches (and the role, if one is required)."""
        with self.transaction("authenticate_user") as session:
            user = session.scalar(select(User).where(User.email == normalize_email(email)))
            if user is None or not verify_password(password, user.password_hash):
                return None
            if role is not None and user.role != role:
                return None
            return UserOut.model_validate(user)

    def create(self, data: RegisterRequest, role: UserRole = UserRole.CUSTOMER) -> UserOut:
        with self.transaction("create_user") as session:
            user = User(
                email=normalize_email(data.email),
                password_hash=hash_password(data.password),
                name=data.name,
                phone=data.phone,
                role=role,
                district=data.district,
                road=data.road,
                additional_landmark=data.additional_landmark,
            )
            session.add(user)
            session.flush()
            created = UserOut.model_validate(user)

        self.logger.info("user_registered", extra={"user_id": created.id, "role": created.role.value})
        return created

    def update(self, user_id: str, data: ProfileUpdate) -> UserOut:
        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if value is not None or key != "name"
        }
        with self.transaction("update_user") as session:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            for key, value in changes.items():
                setattr(user, key, value)
            session.flush()
            updated = UserOut.model_validate(user)

        self.logger.info("user_profile_updated", extra={"user_id": user_id, "fields": sorted(changes)})
        return updated

    def upsert_admin(self, email: str, password: str, name: str = "Administrator") -> UserOut:
        """Create the admin account, or reset the password and role of an existing one."""
        with self.transaction("upsert_admin") as session:
            user = session.scalar(select(User).where(User.email == normalize_email(email)))
            if user is None:
                user = User(email=normalize_email(email), name=name)
                session.add(user)
            user.password_hash = hash_password(password)
            user.role = UserRole.ADMIN
            session.flush()
            admin = UserOut.model_validate(user)

        self.logger.info("admin_user_upserted", extra={"user_id": admin.id})
        return admin
