"""
HTTP blueprints.

Provides:
- auth_bp: login and session lookup under /api/auth
"""
from .auth import auth_bp

__all__ = ['auth_bp']
