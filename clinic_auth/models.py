"""
Import every model module so Base.metadata knows all tables
(used by Database.create_all and Alembic).
"""
from .auth.models import IssuedToken, PasswordReset, User  # noqa: F401
from .core.audit_models import AuditLog  # noqa: F401
from .doctors.models import Doctor  # noqa: F401
from .patients.models import Patient  # noqa: F401
