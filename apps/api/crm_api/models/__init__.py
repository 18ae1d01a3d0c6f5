from crm_api.models.audit import AuditLogEntry
from crm_api.models.user import User
from crm_api.crm.models import (
	CRMChargeable,
	CRMContact,
	CRMLead,
	CRMReminder,
	CRMTask,
)

__all__ = [
	"AuditLogEntry",
	"CRMChargeable",
	"CRMContact",
	"CRMLead",
	"CRMReminder",
	"CRMTask",
	"User",
]
