"""
Authentication module for the clinic system.

This module provides authentication and authorization functionality including:
- Registration with role-specific profiles
- Signed access/refresh tokens backed by a server-side session registry
- Refresh token rotation and logout (single device or everywhere)
- Password reset and password change with session invalidation
- Role-based access control dependencies
"""
