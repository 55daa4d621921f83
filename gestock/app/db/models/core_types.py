import enum


class SiteType(str, enum.Enum):
    STORAGE = "STORAGE"
    EXIT = "EXIT"


class SupplyRisk(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"
    TRANSFER = "TRANSFER"


class PackType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class Condition(str, enum.Enum):
    NEW = "NEW"
    USED = "USED"


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_ORDER_STATUSES = {OrderStatus.COMPLETED, OrderStatus.CANCELLED}
