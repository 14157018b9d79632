from sqlalchemy import Column, Integer, String, DateTime, Text, JSON
from app.models.base import BaseModel

class WhatsAppLog(BaseModel):
    __tablename__ = 'whatsapp_logs'
    
    recipient_phone = Column(String(20), nullable=False)
    recipient_name = Column(String(150))
    campaign_name = Column(String(100), nullable=False)
    template_params = Column(JSON, default=list)
    status = Column(String(20), default="SENT")  # SENT, FAILED, DRY_RUN
    sent_at = Column(DateTime(timezone=True))
    provider_response = Column(JSON)
    error_message = Column(Text)
    entry_id = Column(Integer, index=True)
