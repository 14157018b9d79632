import pandas as pd
from io import BytesIO
from typing import List, Dict, Any, Mapping
from datetime import datetime
from fastapi import HTTPException, status
from fastapi.responses import StreamingResponse
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
import logging

logger = logging.getLogger(__name__)

EXCEL_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
HEADER_FILL = "366092"

# Export field mappings: dotted source path -> column header
EXPORT_FIELD_MAPPINGS = {
    "kpi_ranking": {
        "rank": "Rank",
        "employee.name": "Employee",
        "employee.contact.phone": "Phone",
        "employee.department": "Department",
        "employee.department_role": "Role",
        "month": "Month",
        "year": "Year",
        "score": "Score",
        "normalized_score": "Normalized Score",
        "bucket": "Bucket",
        "status": "Status",
    },
}


def _resolve(item: Any, path: str) -> Any:
    value = item
    for attr in path.split('.'):
        if value is None:
            return None
        value = value.get(attr) if isinstance(value, Mapping) else getattr(value, attr, None)
    return value


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if hasattr(value, "value") and not isinstance(value, (str, int, float)):  # Enum
        return value.value
    return value


class DataExportService:
    """Ranking rows to CSV or styled Excel downloads"""

    def prepare_data_for_export(self, data: List[Any], fields_mapping: Dict[str, str]) -> List[Dict[str, Any]]:
        """Flatten dicts or objects into rows keyed by column header"""
        return [
            {header: _cell(_resolve(item, path)) for path, header in fields_mapping.items()}
            for item in data
        ]

    @staticmethod
    def _frame(data: List[Dict[str, Any]], columns: List[str]) -> pd.DataFrame:
        return pd.DataFrame(data, columns=columns or (list(data[0].keys()) if data else []))

    def export_to_csv(self, data: List[Dict[str, Any]], filename: str, columns: List[str] = None) -> StreamingResponse:
        """CSV download; the header row is written even when there are no rows"""
        try:
            content = self._frame(data, columns).to_csv(index=False)
            return StreamingResponse(
                iter([content]),
                media_type="text/csv",
                headers={"Content-Disposition": f"attachment; filename={filename}.csv"}
            )

        except Exception as e:
            logger.error(f"Error exporting to CSV: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to export data to CSV"
            )

    @staticmethod
    def _style_sheet(worksheet, df: pd.DataFrame) -> None:
        """Filled bold header, thin borders, two decimals on score columns, fitted widths"""
        side = Side(style='thin')
        border = Border(left=side, right=side, top=side, bottom=side)
        score_columns = {
            index for index, name in enumerate(df.columns, 1)
            if "score" in name.lower() or "marks" in name.lower()
        }

        for row in worksheet.iter_rows(min_row=1, max_row=len(df) + 1, max_col=len(df.columns)):
            for cell in row:
                cell.border = border
                if cell.row == 1:
                    cell.font = Font(bold=True, color="FFFFFF")
                    cell.fill = PatternFill("solid", fgColor=HEADER_FILL)
                elif cell.column in score_columns:
                    cell.number_format = '#,##0.00'

        for index, column in enumerate(worksheet.columns, 1):
            longest = max(len(str(cell.value)) if cell.value is not None else 0 for cell in column)
            worksheet.column_dimensions[get_column_letter(index)].width = min(max(longest + 2, 10), 50)

    def export_to_excel(self, data: List[Dict[str, Any]], filename: str, sheet_name: str = "Ranking",
                        columns: List[str] = None) -> StreamingResponse:
        """Excel download with a styled header and score formatting"""
        try:
            df = self._frame(data, columns)
            output = BytesIO()
            with pd.ExcelWriter(output, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                self._style_sheet(writer.sheets[sheet_name], df)

            logger.info(f"Excel export {filename} completed with {len(df)} rows")
            output.seek(0)
            return StreamingResponse(
                output,
                media_type=EXCEL_MEDIA_TYPE,
                headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"}
            )

        except Exception as e:
            logger.error(f"Error exporting to Excel: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to export data to Excel"
            )
