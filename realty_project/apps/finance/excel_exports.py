"""
Spreadsheet exports for expenses and category accounting.
CSV through the csv module (UTF-8 with BOM so Excel detects the encoding),
.xlsx through openpyxl.
"""
import csv

from django.http import HttpResponse
from openpyxl import Workbook
from openpyxl.cell.cell import MergedCell
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side

from apps.core.amounts import coerce_amount, sum_amounts
from apps.core.utils import as_date, record_value

EXPENSE_COLUMNS = ['Date', 'Description', 'Category', 'Project', 'Amount']
UTF8_BOM = '\ufeff'


def create_excel_response(filename):
    """Create HttpResponse for Excel file download."""
    response = HttpResponse(
        content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
    )
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response


def style_header_row(ws, row_num, col_count):
    header_font = Font(bold=True, color='FFFFFF')
    header_fill = PatternFill(start_color='366092', end_color='366092', fill_type='solid')
    header_align = Alignment(horizontal='center', vertical='center')

    for col in range(1, col_count + 1):
        cell = ws.cell(row=row_num, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align


def style_title_row(ws, row_num, title, col_count):
    ws.merge_cells(start_row=row_num, start_column=1, end_row=row_num, end_column=col_count)
    cell = ws.cell(row=row_num, column=1, value=title)
    cell.font = Font(bold=True, size=14)
    cell.alignment = Alignment(horizontal='center')


def style_total_row(ws, row_num, col_count):
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row_num, column=col)
        cell.font = Font(bold=True)
        cell.border = Border(top=Side(style='double'))


def auto_width_columns(ws):
    """Auto-adjust column widths based on content."""
    for column_cells in ws.columns:
        max_length = 0
        column = None
        for cell in column_cells:
            if isinstance(cell, MergedCell):
                continue
            if column is None:
                column = cell.column_letter
            if cell.value is not None:
                max_length = max(max_length, len(str(cell.value)))
        if column:
            ws.column_dimensions[column].width = min(max_length + 2, 50)


def excel_number(value):
    """Cell value for an amount: a float openpyxl stores as a number."""
    return float(coerce_amount(value))


def expense_row(record):
    day = as_date(record_value(record, 'date'))
    return [
        day.isoformat() if day else '',
        record_value(record, 'description') or '',
        record_value(record, 'category_name') or '',
        record_value(record, 'project_name') or '',
        coerce_amount(record_value(record, 'amount')),
    ]


def export_expenses_csv(records, filename='expenses.csv'):
    response = HttpResponse(content_type='text/csv; charset=utf-8')
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    response.write(UTF8_BOM)

    writer = csv.writer(response)
    writer.writerow([column.lower() for column in EXPENSE_COLUMNS])
    for record in records:
        writer.writerow(expense_row(record))
    return response


def build_expenses_workbook(records, title='Expenses', company_name=''):
    wb = Workbook()
    ws = wb.active
    ws.title = 'Expenses'
    col_count = len(EXPENSE_COLUMNS)

    style_title_row(ws, 1, title, col_count)
    if company_name:
        ws.cell(row=2, column=1, value=company_name)

    header_row = 4 if company_name else 3
    for col, header in enumerate(EXPENSE_COLUMNS, 1):
        ws.cell(row=header_row, column=col, value=header)
    style_header_row(ws, header_row, col_count)

    row = header_row + 1
    for record in records:
        values = expense_row(record)
        values[-1] = excel_number(values[-1])
        for col, value in enumerate(values, 1):
            ws.cell(row=row, column=col, value=value)
        ws.cell(row=row, column=col_count).number_format = '#,##0.00'
        row += 1

    ws.cell(row=row, column=1, value='TOTAL')
    ws.cell(row=row, column=col_count, value=excel_number(sum_amounts(record_value(r, 'amount') for r in records)))
    ws.cell(row=row, column=col_count).number_format = '#,##0.00'
    style_total_row(ws, row, col_count)

    auto_width_columns(ws)
    return wb


def export_expenses_xlsx(records, filename='expenses.xlsx', title='Expenses', company_name=''):
    records = list(records)
    response = create_excel_response(filename)
    build_expenses_workbook(records, title, company_name).save(response)
    return response


def build_category_workbook(category_totals, project_totals=None, title='Category Accounting', company_name=''):
    """
    One sheet with the category summary and, when given, one with the
    project > category breakdown.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = 'By Category'
    headers = ['Category', 'Transactions', 'Total', 'Share %']

    style_title_row(ws, 1, title, len(headers))
    if company_name:
        ws.cell(row=2, column=1, value=company_name)
    header_row = 4 if company_name else 3
    for col, header in enumerate(headers, 1):
        ws.cell(row=header_row, column=col, value=header)
    style_header_row(ws, header_row, len(headers))

    row = header_row + 1
    for total in category_totals:
        ws.cell(row=row, column=1, value=total.name)
        ws.cell(row=row, column=2, value=total.transaction_count)
        ws.cell(row=row, column=3, value=excel_number(total.total_amount)).number_format = '#,##0.00'
        ws.cell(row=row, column=4, value=round(float(total.share) * 100, 2))
        row += 1
    ws.cell(row=row, column=1, value='TOTAL')
    ws.cell(row=row, column=2, value=sum(t.transaction_count for t in category_totals))
    ws.cell(row=row, column=3, value=excel_number(sum_amounts(t.total_amount for t in category_totals)))
    ws.cell(row=row, column=3).number_format = '#,##0.00'
    style_total_row(ws, row, len(headers))
    auto_width_columns(ws)

    if project_totals:
        ws = wb.create_sheet('By Project')
        headers = ['Project', 'Category', 'Transactions', 'Total', 'Share of project %']
        for col, header in enumerate(headers, 1):
            ws.cell(row=1, column=col, value=header)
        style_header_row(ws, 1, len(headers))
        row = 2
        for project in project_totals:
            ws.cell(row=row, column=1, value=project.name).font = Font(bold=True)
            ws.cell(row=row, column=3, value=project.transaction_count)
            ws.cell(row=row, column=4, value=excel_number(project.total_amount)).number_format = '#,##0.00'
            row += 1
            for category in project.categories:
                ws.cell(row=row, column=2, value=category.name)
                ws.cell(row=row, column=3, value=category.transaction_count)
                ws.cell(row=row, column=4, value=excel_number(category.total_amount)).number_format = '#,##0.00'
                ws.cell(row=row, column=5, value=round(float(category.share) * 100, 2))
                row += 1
        auto_width_columns(ws)

    return wb


def export_category_summary(category_totals, project_totals=None, filename='category_accounting.xlsx',
                            title='Category Accounting', company_name=''):
    response = create_excel_response(filename)
    build_category_workbook(category_totals, project_totals, title, company_name).save(response)
    return response
