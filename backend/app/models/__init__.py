from app.models.reference import Agency, Category  # noqa: F401
from app.models.complaint import Complaint, Response, ComplaintStatus, Priority  # noqa: F401
from app.models.user import User  # noqa: F401
from app.models.audit import AuditLog  # noqa: F401
