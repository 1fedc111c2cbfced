"""ORM Models: SQLAlchemy declarative models for all TIS TIS entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Tenant is the isolation root; every business row carries tenant_id

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references and Base.metadata knows every table before create_all/autogenerate
"""

from tistis.models.tenant import Tenant  # noqa: F401
from tistis.models.branch import Branch  # noqa: F401
from tistis.models.user_role import UserRole  # noqa: F401
from tistis.models.api_key import ApiKey  # noqa: F401
from tistis.models.api_key_usage_log import ApiKeyUsageLog  # noqa: F401
from tistis.models.api_key_audit_log import ApiKeyAuditLog  # noqa: F401
from tistis.models.channel_connection import ChannelConnection  # noqa: F401
from tistis.models.lead import Lead  # noqa: F401
from tistis.models.conversation import Conversation  # noqa: F401
from tistis.models.message import Message  # noqa: F401
from tistis.models.job import Job  # noqa: F401
from tistis.models.appointment import Appointment  # noqa: F401
from tistis.models.sales_order import SalesOrder  # noqa: F401
from tistis.models.supplier import Supplier  # noqa: F401
from tistis.models.inventory_item import InventoryItem  # noqa: F401
from tistis.models.inventory_movement import InventoryMovement  # noqa: F401
from tistis.models.low_stock_alert import LowStockAlert  # noqa: F401
from tistis.models.restock_preference import RestockPreference  # noqa: F401
from tistis.models.restock_order import RestockOrder  # noqa: F401
from tistis.models.restock_order_item import RestockOrderItem  # noqa: F401
from tistis.models.voice_minute_limit import VoiceMinuteLimit  # noqa: F401
from tistis.models.voice_minute_usage import VoiceMinuteUsage  # noqa: F401
from tistis.models.voice_minute_transaction import VoiceMinuteTransaction  # noqa: F401
from tistis.models.voice_usage_alert import VoiceUsageAlert  # noqa: F401
