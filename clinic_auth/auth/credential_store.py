"""
Credential store - persistence for users, their profiles and password hashes.
"""
import logging
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ..core.security import dummy_password_hash, hash_password, utcnow, verify_password
from ..doctors.models import Doctor
from ..patients.models import Patient
from .exceptions import DuplicateEmailException, UserNotFoundException, ValidationException
from .models import AccountStatus, User, UserRole

logger = logging.getLogger(__name__)

Profile = Union[Patient, Doctor]

# Self-service editable columns per profile table
EDITABLE_PROFILE_FIELDS = {
    Patient: ("first_name", "last_name", "date_of_birth", "gender"),
    Doctor: ("first_name", "last_name", "specialization", "license_number"),
}


def username_from_email(email: str) -> str:
    return email.split("@", 1)[0]


class CredentialStore:
    """
    User and profile persistence.

    Nothing here commits; the auth service decides when a unit of work ends.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def find_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email.strip().lower()).first()

    def get_or_404(self, user_id: int) -> User:
        user = self.find_by_id(user_id)
        if not user:
            raise UserNotFoundException(f"User {user_id} not found")
        return user

    def create_user(
        self,
        email: str,
        password: str,
        role: UserRole = UserRole.PATIENT,
        phone_number: Optional[str] = None,
        status: AccountStatus = AccountStatus.ACTIVE,
        is_verified: bool = False,
    ) -> User:
        """
        Create a user with a freshly hashed password.

        Args:
            email: Login email (lower-cased before storing)
            password: Plain text password
            role: Account role
            phone_number: Optional contact number
            status: Initial account status
            is_verified: Initial email verification flag

        Returns:
            User: The flushed user row

        Raises:
            DuplicateEmailException: If the email is already registered
        """
        email = email.strip().lower()
        if self.find_by_email(email):
            raise DuplicateEmailException()

        user = User(
            email=email,
            username=username_from_email(email),
            password_hash=hash_password(password),
            role=role,
            status=status,
            phone_number=phone_number,
            is_verified=is_verified,
        )
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Lost a race with a concurrent registration
            raise DuplicateEmailException() from exc
        logger.info(f"Created {role.value} user {user.id}")
        return user

    def create_profile(
        self,
        user: User,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        specialization: Optional[str] = None,
        license_number: Optional[str] = None,
        date_of_birth=None,
        gender: Optional[str] = None,
    ) -> Optional[Profile]:
        """
        Create the role-specific profile row.

        Doctors get a doctors row; patients and staff get a patients row;
        admins have no profile.
        """
        if user.role == UserRole.DOCTOR:
            profile = Doctor(
                user_id=user.id,
                first_name=first_name,
                last_name=last_name,
                specialization=specialization,
                license_number=license_number,
            )
        elif user.role in (UserRole.PATIENT, UserRole.STAFF):
            profile = Patient(
                user_id=user.id,
                first_name=first_name,
                last_name=last_name,
                email=user.email,
                phone=phone,
                date_of_birth=date_of_birth,
                gender=gender,
            )
        else:
            return None

        self.db.add(profile)
        self.db.flush()
        return profile

    def get_profile(self, user: User) -> Optional[Profile]:
        if user.role == UserRole.DOCTOR:
            return self.db.query(Doctor).filter(Doctor.user_id == user.id).first()
        if user.role in (UserRole.PATIENT, UserRole.STAFF):
            return self.db.query(Patient).filter(Patient.user_id == user.id).first()
        return None

    def verify_password(self, plain_password: str, hashed_password: str) -> bool:
        return verify_password(plain_password, hashed_password)

    def verify_password_constant_time(self, plain_password: str, user: Optional[User]) -> bool:
        """
        Check a password for a user that may not exist.

        A missing user is checked against a dummy hash so that the bcrypt cost
        is paid either way.
        """
        if user is None:
            verify_password(plain_password, dummy_password_hash())
            return False
        return verify_password(plain_password, user.password_hash)

    def update_password_hash(self, user_id: int, new_hash: str) -> User:
        """
        Replace a user's password hash.

        Callers revoke the user's sessions in the same transaction.
        """
        user = self.get_or_404(user_id)
        user.password_hash = new_hash
        self.db.flush()
        return user

    def set_status(self, user_id: int, status: AccountStatus) -> User:
        user = self.get_or_404(user_id)
        user.status = status
        self.db.flush()
        return user

    def mark_verified(self, user_id: int) -> User:
        user = self.get_or_404(user_id)
        user.is_verified = True
        self.db.flush()
        return user

    def update_profile(self, user: User, changes: Dict[str, Any]) -> Optional[Profile]:
        """
        Apply a self-service profile edit.

        phone_number lives on the user row and is mirrored to a patient
        profile's phone; everything else goes to the profile row.

        Raises:
            ValidationException: If a field does not apply to the user's profile
        """
        changes = dict(changes)
        profile = self.get_profile(user)
        allowed = EDITABLE_PROFILE_FIELDS.get(type(profile), ()) if profile is not None else ()
        rejected = sorted(field for field in changes if field != "phone_number" and field not in allowed)
        if rejected:
            raise ValidationException(
                f"Fields not applicable to a {user.role.value} profile: {', '.join(rejected)}"
            )

        if "phone_number" in changes:
            phone = changes.pop("phone_number")
            user.phone_number = phone
            if isinstance(profile, Patient):
                profile.phone = phone

        for field, value in changes.items():
            setattr(profile, field, value)

        self.db.flush()
        return profile

    def touch_last_login(self, user: User) -> None:
        user.last_login_at = utcnow()
        self.db.flush()

    def list_users(
        self,
        role: Optional[UserRole] = None,
        status: Optional[AccountStatus] = None,
    ) -> Query:
        """Query of users, optionally filtered by role and status, oldest first."""
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if status is not None:
            query = query.filter(User.status == status)
        return query.order_by(User.id)
