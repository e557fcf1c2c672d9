from disputedesk.db.models.audit import AuditLog
from disputedesk.db.models.dispute import Dispute, DisputeMessage
from disputedesk.db.models.settlement import SettlementInstructionRecord

__all__ = [
    "AuditLog",
    "Dispute",
    "DisputeMessage",
    "SettlementInstructionRecord",
]
