from app.models.organization.department import Department
from app.models.hr.employee import Employee
from app.models.kpi.template import KpiTemplate, KpiTemplateVersion
from app.models.kpi.entry import KpiEntry
from app.models.communication.whatsapp_log import WhatsAppLog
