import logging
import sys

import mysql.connector
from mysql.connector import Error

from ..config import settings, DEFAULT_SUBSCRIPTION_PLANS, TRIAL_DAYS
from ..models.database import SessionLocal, SubscriptionPlan, create_tables

logger = logging.getLogger(__name__)


def _server_connection(database: str = None):
    params = dict(
        host=settings.DB_HOST,
        port=settings.DB_PORT,
        user=settings.DB_USER,
        password=settings.DB_PASSWORD,
    )
    if database:
        params["database"] = database
    return mysql.connector.connect(**params)


def create_database() -> bool:
    """Create the MySQL database with a utf8mb4 charset if it doesn't exist"""
    try:
        connection = _server_connection()
        cursor = connection.cursor()

        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{settings.DB_NAME}` "
            f"CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        logger.info(f"Database '{settings.DB_NAME}' created or already exists")

        cursor.close()
        connection.close()
        return True

    except Error as e:
        logger.error(f"Error creating database: {e}")
        return False


def test_database_connection() -> bool:
    try:
        connection = _server_connection(settings.DB_NAME)
        cursor = connection.cursor()
        cursor.execute("SELECT 1")
        result = cursor.fetchone()
        cursor.close()
        connection.close()
        return bool(result)

    except Error as e:
        logger.error(f"Database connection test failed: {e}")
        return False


def seed_subscription_plans() -> int:
    """
    Insert the default plans that are missing, matched by Stripe price id

    Returns:
        int: number of plans inserted
    """
    db = SessionLocal()
    try:
        existing = {price_id for (price_id,) in db.query(SubscriptionPlan.stripe_price_id).all()}
        inserted = 0
        for plan in DEFAULT_SUBSCRIPTION_PLANS:
            if plan["stripe_price_id"] in existing:
                continue
            db.add(SubscriptionPlan(trial_days=TRIAL_DAYS, **plan))
            inserted += 1
        db.commit()
        if inserted:
            logger.info(f"Seeded {inserted} subscription plans")
        return inserted
    except Exception as e:
        db.rollback()
        logger.error(f"Error seeding subscription plans: {e}")
        raise
    finally:
        db.close()


def initialize_database() -> bool:
    """Create the database (MySQL only), its tables and the default plans"""
    logger.info("Starting database initialization...")

    if settings.DATABASE_URL.startswith("mysql"):
        if not create_database():
            return False
        if not test_database_connection():
            return False

    try:
        create_tables()
        seed_subscription_plans()
    except Exception as e:
        logger.error(f"Error creating tables: {e}")
        return False

    logger.info("Database initialization completed successfully")
    return True


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    sys.exit(0 if initialize_database() else 1)
