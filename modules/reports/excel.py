from io import BytesIO
from typing import Any, Callable, Dict, List, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

Table = Tuple[List[str], List[List[Any]], List[str]]


def _create_styles():
    """Create reusable style definitions."""
    thin_border = Side(style="thin", color="000000")
    return {
        "title_font": Font(bold=True, size=14),
        "section_font": Font(bold=True, size=11),
        "header_font": Font(bold=True, size=10),
        "header_fill": PatternFill(start_color="D9E1F2", end_color="D9E1F2", fill_type="solid"),
        "warning_fill": PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid"),
        "border": Border(left=thin_border, right=thin_border, top=thin_border, bottom=thin_border),
        "center_align": Alignment(horizontal="center", vertical="center"),
        "right_align": Alignment(horizontal="right", vertical="center"),
        "left_align": Alignment(horizontal="left", vertical="center"),
    }


def _apply_header_row(ws, row: int, columns: List[str], styles: dict):
    for col_idx, col_name in enumerate(columns, start=1):
        cell = ws.cell(row=row, column=col_idx, value=col_name)
        cell.font = styles["header_font"]
        cell.fill = styles["header_fill"]
        cell.border = styles["border"]
        cell.alignment = styles["center_align"]


def _apply_data_row(ws, row: int, values: List[Any], styles: dict, alignments: List[str] = None):
    for col_idx, value in enumerate(values, start=1):
        cell = ws.cell(row=row, column=col_idx, value=value)
        cell.border = styles["border"]
        if alignments and col_idx <= len(alignments):
            cell.alignment = styles.get(f"{alignments[col_idx - 1]}_align", styles["left_align"])


def _set_column_widths(ws, widths: List[int]):
    for col_idx, width in enumerate(widths, start=1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width


def _format_currency(value: float) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


def _format_percentage(value: float) -> str:
    if value is None:
        return "-"
    return f"{value:.1f}%"


def _summary_pairs(data: Dict[str, Any]) -> List[Tuple[str, Any]]:
    summary = data.get("summary") or data.get("key_metrics") or {}
    pairs = []
    for key, value in summary.items():
        if isinstance(value, dict):
            value = ", ".join(f"{k}: {v}" for k, v in value.items())
        pairs.append((key.replace("_", " ").title() + ":", value if value is not None else "-"))
    return pairs


def _recipe_costing_table(data: Dict[str, Any]) -> Table:
    columns = ["Recipe", "Product", "Yield", "Total Cost", "Cost Per Unit", "Components"]
    rows = [
        [
            r["recipe_name"],
            r.get("product_name") or "-",
            f"{r['yield_quantity']} {r['yield_unit']}",
            _format_currency(r["total_cost"]),
            _format_currency(r["cost_per_unit"]),
            r["component_count"],
        ]
        for r in data.get("recipes", [])
    ]
    return columns, rows, ["left", "left", "center", "right", "right", "center"]


def _production_efficiency_table(data: Dict[str, Any]) -> Table:
    columns = ["Product", "Recipe", "Capacity", "Cost Per Unit", "Avg Waste", "Bottleneck", "Score"]
    rows = [
        [
            r["product_name"],
            r["recipe_name"],
            r["production_capacity"],
            _format_currency(r["cost_per_unit"]),
            _format_percentage(r["average_waste_percentage"]),
            r.get("bottleneck_material") or "-",
            r["efficiency_score"],
        ]
        for r in data.get("efficiency_data", [])
    ]
    return columns, rows, ["left", "left", "right", "right", "right", "left", "right"]


def _material_usage_table(data: Dict[str, Any]) -> Table:
    columns = ["Material", "SKU", "Category", "Opening", "Received", "Consumed", "Closing", "Avg Daily Usage"]
    rows = [
        [
            r["material_name"],
            r.get("sku") or "",
            r.get("category") or "",
            r["opening_stock"],
            r["total_received"],
            r["total_consumed"],
            r["closing_stock"],
            r["average_daily_usage"],
        ]
        for r in data.get("material_details", [])
    ]
    return columns, rows, ["left", "left", "left", "right", "right", "right", "right", "right"]


def _stock_movement_table(data: Dict[str, Any]) -> Table:
    columns = ["Date", "Transactions", "Increases", "Decreases", "Net Change"]
    rows = [
        [d["date"], d["transaction_count"], d["total_increase"], d["total_decrease"], d["net_change"]]
        for d in data.get("daily_movement", [])
    ]
    return columns, rows, ["center", "right", "right", "right", "right"]


def _executive_dashboard_table(data: Dict[str, Any]) -> Table:
    columns = ["Category", "Total Value", "Materials", "Avg Unit Cost"]
    rows = [
        [c["category"], _format_currency(c["total_value"]), c["material_count"], _format_currency(c["average_unit_cost"])]
        for c in data.get("inventory_value_by_category", [])
    ]
    return columns, rows, ["left", "right", "right", "right"]


def _materials_table(data: Dict[str, Any]) -> Table:
    columns = ["SKU", "Name", "Category", "Unit", "Stock", "Reorder Level", "Unit Cost", "Supplier", "Status"]
    rows = [
        [
            m.get("sku") or "",
            m["name"],
            m.get("category") or "",
            m["unit"],
            m["stock_quantity"],
            m["reorder_level"],
            m["unit_cost"],
            m.get("supplier") or "",
            m["stock_status"].replace("_", " ").title(),
        ]
        for m in data.get("materials", [])
    ]
    return columns, rows, ["left", "left", "left", "center", "right", "right", "right", "left", "center"]


def _low_stock_table(data: Dict[str, Any]) -> Table:
    columns = ["SKU", "Name", "Current Stock", "Reorder Level", "Shortfall", "Unit", "Reorder Cost", "Supplier"]
    rows = [
        [
            m.get("sku") or "",
            m["name"],
            m["current_stock"],
            m["reorder_level"],
            m["shortfall"],
            m["unit"],
            _format_currency(m["reorder_cost"]),
            m.get("supplier") or "",
        ]
        for m in data.get("materials", [])
    ]
    return columns, rows, ["left", "left", "right", "right", "right", "center", "right", "left"]


TABLE_BUILDERS: Dict[str, Tuple[str, Callable[[Dict[str, Any]], Table]]] = {
    "materials": ("Materials", _materials_table),
    "low_stock": ("Materials Below Reorder Level", _low_stock_table),
    "recipe_costing": ("Active Recipes", _recipe_costing_table),
    "production_efficiency": ("Efficiency By Product", _production_efficiency_table),
    "material_usage": ("Material Details", _material_usage_table),
    "stock_movement": ("Daily Movement", _stock_movement_table),
    "executive_dashboard": ("Inventory Value By Category", _executive_dashboard_table),
}


def build_report_excel(report: str, data: Dict[str, Any]) -> BytesIO:
    """Render one report as a single formatted worksheet."""
    section_title, builder = TABLE_BUILDERS[report]
    wb = Workbook()
    ws = wb.active
    ws.title = report.replace("_", " ").title()[:31]
    styles = _create_styles()

    current_row = 1
    ws.cell(row=current_row, column=1, value=data.get("report_type", ws.title).upper()).font = styles["title_font"]
    ws.merge_cells(start_row=current_row, start_column=1, end_row=current_row, end_column=6)
    current_row += 2

    ws.cell(row=current_row, column=1, value="Generated At:").font = Font(bold=True)
    ws.cell(row=current_row, column=2, value=(data.get("generated_at") or "-")[:19])
    current_row += 1
    period = data.get("period")
    if period:
        ws.cell(row=current_row, column=1, value="Period:").font = Font(bold=True)
        ws.cell(row=current_row, column=2, value=f"{period['from'][:10]} - {period['to'][:10]} ({period['days']} days)")
        current_row += 1
    current_row += 1

    ws.cell(row=current_row, column=1, value="SUMMARY").font = styles["section_font"]
    current_row += 1
    for label, value in _summary_pairs(data):
        ws.cell(row=current_row, column=1, value=label).font = Font(bold=True)
        ws.cell(row=current_row, column=2, value=value)
        current_row += 1
    current_row += 1

    columns, rows, alignments = builder(data)
    ws.cell(row=current_row, column=1, value=section_title.upper()).font = styles["section_font"]
    current_row += 1
    _apply_header_row(ws, current_row, columns, styles)
    current_row += 1
    if not rows:
        cell = ws.cell(row=current_row, column=1, value="No data")
        cell.fill = styles["warning_fill"]
        ws.merge_cells(start_row=current_row, start_column=1, end_row=current_row, end_column=len(columns))
    for values in rows:
        _apply_data_row(ws, current_row, values, styles, alignments)
        current_row += 1

    _set_column_widths(ws, [28] + [16] * (len(columns) - 1))

    stream = BytesIO()
    wb.save(stream)
    stream.seek(0)
    return stream
