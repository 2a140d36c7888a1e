"""
Database initialization.

This module provides:
- Database path resolution (TRIPGATE_DB_PATH)
- Table creation on startup
- Catalog seeding (SEED_CATALOG)
"""
import logging
import os

from .config_defaults import get_bool
# Import all models to ensure they're registered with SQLAlchemy
from .models import (  # noqa: F401
    Account,
    ActivityLog,
    AffiliateContract,
    AffiliateLead,
    AffiliateLink,
    AffiliateProfile,
    AffiliateRelation,
    CruiseProduct,
    Itinerary,
    LoginSession,
    UserTrip,
    VisitedCountry,
    db,
)

logger = logging.getLogger(__name__)


def get_db_path() -> str:
    """
    Get database file path.
    Priority: environment variable > current directory
    """
    db_path = os.environ.get('TRIPGATE_DB_PATH')
    if db_path:
        logger.info(f"Using database path from environment: {db_path}")
        return db_path

    db_path = os.path.join(os.getcwd(), 'tripgate.db')
    logger.info(f"Using default database path: {db_path}")
    return db_path


def init_db(app):
    """
    Initialize database with Flask app.

    Creates all tables and seeds the product catalog.
    """
    db_path = get_db_path()
    app.config['SQLALCHEMY_DATABASE_URI'] = f'sqlite:///{db_path}'
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SQLALCHEMY_ENGINE_OPTIONS'] = {
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }

    db.init_app(app)

    with app.app_context():
        db.create_all()
        logger.info("Database tables created/verified")

        if get_bool('SEED_CATALOG', True):
            from .bootstrap import seed_catalog
            seed_catalog()
