from enum import Enum


class InventoryManagementType(str, Enum):
    SIMPLE = "simple"
    BOM = "bom"
