import enum

class Role(str, enum.Enum):
    admin = "admin"
    employee = "employee"

class SaleStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    cancelled = "cancelled"

class MovementType(str, enum.Enum):
    sale = "SALE"
    sale_reversal = "SALE_REVERSAL"
    restock = "RESTOCK"
    adjustment = "ADJUSTMENT"

class StockOperation(str, enum.Enum):
    add = "add"
    subtract = "subtract"
