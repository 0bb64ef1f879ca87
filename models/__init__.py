import logging
from urllib.parse import urlparse
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
logger = logging.getLogger(__name__)


def check_db(database_uri):
    """Create the PostgreSQL database named in the URI if it does not exist yet."""
    parsed_uri = urlparse(database_uri)
    if not parsed_uri.scheme.startswith('postgres'):
        return False

    import psycopg2
    from psycopg2 import sql
    from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

    db_name = parsed_uri.path.lstrip('/')
    conn = psycopg2.connect(
        dbname='postgres',
        user=parsed_uri.username,
        password=parsed_uri.password,
        host=parsed_uri.hostname,
        port=parsed_uri.port
    )
    try:
        conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s", (db_name,))
            if cur.fetchone() is None:
                cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))
                logger.info("Created database %s", db_name)
                return True
    finally:
        conn.close()
    return False


from .user import User
from .audit_trail import AuditTrail
from .stored_file import StoredFile
from .research_paper import ResearchPaper, PaperAuthor, PaperFile, PaperReviewer
from .event import Event, EventRegistration
from .job import Job, JobApplication
from .contact import Contact
from .employee import Employee
from .attendance import Attendance
from .notification import Notification
from .collaboration import Collaboration, CollaborationMember, CollaborationMilestone, CollaborationUpdate
from .report import Report
