"""
Recruitment Tables

The recruitment module shipped after the first tenants were provisioned, so
older stores have none of these tables. They are created on demand the first
time a tenant hits a recruitment route (see services/schema.py).

The tables sit in their own MetaData so that creating them never touches the
baseline tables. References to users/employees are plain id columns for the
same reason.
"""
from sqlalchemy import (
    MetaData, Table, Column, String, Text, Integer, Boolean, DateTime, Date,
    Numeric, ForeignKey, BigInteger, func, false,
)

recruitment_metadata = MetaData()


def _id():
    return Column("id", String(36), primary_key=True)


def _created_at():
    return Column("created_at", DateTime, nullable=False, server_default=func.current_timestamp())


job_requisitions = Table(
    "job_requisitions", recruitment_metadata,
    _id(),
    Column("requisition_number", String(50), nullable=False, unique=True),
    Column("title", String(200), nullable=False),
    Column("department_id", String(36)),
    Column("designation_id", String(36)),
    Column("location", String(200)),
    Column("employment_type", String(50), server_default="FullTime"),
    Column("openings", Integer, server_default="1"),
    Column("budget_min", Numeric(18, 2)),
    Column("budget_max", Numeric(18, 2)),
    Column("currency", String(3), server_default="USD"),
    Column("description", Text),
    Column("requirements", Text),
    Column("status", Integer, server_default="0"),
    Column("requested_by_id", String(36)),
    Column("hiring_manager_id", String(36)),
    Column("published_at", DateTime),
    Column("closed_at", DateTime),
    Column("target_start_date", Date),
    _created_at(),
    Column("updated_at", DateTime),
    Column("is_deleted", Boolean, server_default=false()),
)

candidates = Table(
    "candidates", recruitment_metadata,
    _id(),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("phone", String(20)),
    Column("city", String(100)),
    Column("country", String(100)),
    Column("linkedin_url", String(255)),
    Column("website", String(255)),
    Column("current_company", String(200)),
    Column("current_title", String(100)),
    Column("expected_salary", Numeric(18, 2)),
    Column("source", String(50)),
    Column("referral_code", String(50)),
    Column("notes", Text),
    Column("rating", Integer),
    _created_at(),
    Column("updated_at", DateTime),
    Column("is_deleted", Boolean, server_default=false()),
)

applications = Table(
    "applications", recruitment_metadata,
    _id(),
    Column("requisition_id", String(36), ForeignKey("job_requisitions.id"), nullable=False),
    Column("candidate_id", String(36), ForeignKey("candidates.id"), nullable=False),
    Column("application_number", String(50), nullable=False, unique=True),
    Column("stage", String(50), server_default="Applied"),
    Column("status", Integer, server_default="0"),
    Column("applied_at", DateTime, nullable=False, server_default=func.current_timestamp()),
    Column("resume_path", Text),
    Column("cover_letter", Text),
    _created_at(),
    Column("updated_at", DateTime),
)

candidate_documents = Table(
    "candidate_documents", recruitment_metadata,
    _id(),
    Column("candidate_id", String(36), ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False),
    Column("document_type", String(50), nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("file_path", Text, nullable=False),
    Column("file_size", BigInteger),
    Column("mime_type", String(100)),
    Column("uploaded_at", DateTime, nullable=False, server_default=func.current_timestamp()),
)

interviews = Table(
    "interviews", recruitment_metadata,
    _id(),
    Column("application_id", String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
    Column("interview_type", String(50), nullable=False),
    Column("scheduled_at", DateTime, nullable=False),
    Column("duration_minutes", Integer),
    Column("interviewer_id", String(36)),
    Column("status", Integer, server_default="0"),
    Column("notes", Text),
    _created_at(),
)

offers = Table(
    "offers", recruitment_metadata,
    _id(),
    Column("application_id", String(36), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False),
    Column("offer_number", String(50), nullable=False, unique=True),
    Column("base_salary", Numeric(18, 2), nullable=False),
    Column("currency", String(3), server_default="USD"),
    Column("joining_date", Date),
    Column("expiry_date", Date),
    Column("status", Integer, server_default="0"),
    Column("sent_at", DateTime),
    Column("accepted_at", DateTime),
    Column("rejected_at", DateTime),
    Column("rejection_reason", Text),
    _created_at(),
)
