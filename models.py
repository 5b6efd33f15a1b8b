import enum
from datetime import datetime, timezone
from urllib.parse import urlparse, parse_qs, urlencode

from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean, Text, Date, create_engine
)
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def utcnow():
    """Naive UTC timestamp, the form every task timestamp is stored in."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TaskStatus(str, enum.Enum):
    TODO = "To Do"
    IN_PROGRESS = "In Progress"
    UNDER_REVIEW = "Under Review"
    REVISION_REQUIRED = "Revision Required"
    COMPLETED = "Completed"


class TaskPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Task(Base):
    __tablename__ = "task"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), default=TaskStatus.TODO.value, nullable=False, index=True)
    priority = Column(String(10), default=TaskPriority.MEDIUM.value, nullable=False)
    deadline = Column(Date, nullable=True)
    # References into the teammate/project/client tables owned elsewhere
    assigned_to_id = Column(String(64), nullable=True, index=True)
    assigned_by_id = Column(String(64), nullable=True)
    project_id = Column(String(64), nullable=True, index=True)
    client_id = Column(String(64), nullable=True)
    completed_at = Column(DateTime, nullable=True, index=True)
    archived = Column(Boolean, default=False, nullable=False, index=True)
    archived_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_updated = Column(DateTime, onupdate=utcnow)

    def __repr__(self):
        return f"<Task id={self.id} status={self.status!r} archived={self.archived}>"


# --- Database connection ---

engine = None
SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def _neon_url(database_url):
    """Rewrite a Neon postgres URL to carry the endpoint id and the psycopg2 driver."""
    parsed_url = urlparse(database_url)
    endpoint_id = parsed_url.hostname.split('.')[0]

    query_params = parse_qs(parsed_url.query)
    query_params['options'] = [f'endpoint={endpoint_id}']
    new_query = urlencode(query_params, doseq=True)

    modified_url = parsed_url._replace(query=new_query).geturl()
    if not modified_url.startswith('postgresql+psycopg2://'):
        modified_url = modified_url.replace('postgresql://', 'postgresql+psycopg2://')
    return modified_url


def configure_database(database_url):
    """Bind SessionLocal to a fresh engine for ``database_url`` and create tables."""
    global engine

    if database_url.startswith("postgresql"):
        engine = create_engine(
            _neon_url(database_url),
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            connect_args={"application_name": "ops-tasks"}
        )
    else:
        engine = create_engine(database_url, pool_pre_ping=True)

    SessionLocal.configure(bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
