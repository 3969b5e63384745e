"""
Database connection utilities
"""
import os
from typing import Dict, Optional

import psycopg2
from dotenv import load_dotenv


# Load environment variables
load_dotenv()


def db_settings(**overrides) -> Dict:
    """
    Connection settings from DB_* environment variables

    Keyword overrides (host, port, database, user, password) win over the
    environment when not None.
    """
    settings = {
        'host': os.getenv('DB_HOST', 'localhost'),
        'port': int(os.getenv('DB_PORT', '5432')),
        'database': os.getenv('DB_NAME', 'bookkeeping_db'),
        'user': os.getenv('DB_USER', 'bookkeeping_user'),
        'password': os.getenv('DB_PASSWORD', 'bookkeeping_password_local_dev'),
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return settings


def describe_target(settings: Optional[Dict] = None) -> str:
    """user@host:port/database, without the password"""
    s = settings or db_settings()
    return f"{s['user']}@{s['host']}:{s['port']}/{s['database']}"


def get_db_connection(
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None
):
    """
    Open a psycopg2 connection

    Autocommit stays off; PostgresStore decides when to commit.

    Returns:
        psycopg2 connection object
    """
    return psycopg2.connect(**db_settings(
        host=host, port=port, database=database, user=user, password=password))
