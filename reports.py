import csv
import io
import logging
from typing import Dict, List

from reportlab.lib.pagesizes import A4
from reportlab.lib import colors
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont, TTFError

from config import Settings
from models import ExpenseRecord, Group, GroupBalances, Member
from utils import format_currency

logger = logging.getLogger(__name__)

NO_PAYMENTS = "No payments needed"


def _name(members: Dict[str, Member], member_id: str) -> str:
    member = members.get(member_id)
    return member.name if member else member_id


def export_filename(group: Group, extension: str) -> str:
    return f"settlement_{group.name.replace(' ', '_')}.{extension}"


def build_csv(group: Group, expenses: List[ExpenseRecord],
              members: Dict[str, Member], report: GroupBalances,
              settings: Settings) -> bytes:
    symbol = settings.currency_symbol
    output = io.StringIO()
    writer = csv.writer(output)

    writer.writerow([f"{settings.app_title} - group export"])
    writer.writerow([f"Group: {group.name}"])
    writer.writerow(
        [f"Created: {group.created_at.strftime('%Y-%m-%d %H:%M')}"])
    writer.writerow([])

    writer.writerow(["MEMBERS"])
    writer.writerow(["Name"])
    for member_id in group.member_ids:
        writer.writerow([_name(members, member_id)])
    writer.writerow([])

    writer.writerow(["EXPENSES"])
    writer.writerow(["Date", "Description", "Category", "Amount", "Paid by", "Split between"])
    for expense in expenses:
        split_names = ", ".join(
            f"{_name(members, s.member_id)} ({format_currency(s.share_amount, symbol)})"
            for s in expense.splits)
        writer.writerow([
            expense.expense_date.strftime('%Y-%m-%d'), expense.description,
            expense.category, format_currency(expense.amount, symbol),
            _name(members, expense.payer_id), split_names
        ])
    writer.writerow([])

    writer.writerow(["BALANCES"])
    writer.writerow(["Member", "Paid", "Owes", "Net"])
    for balance in report.balances:
        writer.writerow([
            _name(members, balance.member_id),
            format_currency(balance.total_paid, symbol),
            format_currency(balance.total_owed, symbol),
            format_currency(balance.net_balance, symbol)
        ])
    writer.writerow([])

    writer.writerow(["PAYMENTS"])
    writer.writerow(["From", "To", "Amount"])
    for debt in report.debts:
        writer.writerow([
            _name(members, debt.from_member_id),
            _name(members, debt.to_member_id),
            format_currency(debt.amount, symbol)
        ])
    if not report.debts:
        writer.writerow([NO_PAYMENTS, "", ""])

    return output.getvalue().encode('utf-8-sig')


def _fonts(settings: Settings):
    try:
        pdfmetrics.registerFont(TTFont('DejaVuSans', settings.pdf_font))
        pdfmetrics.registerFont(TTFont('DejaVuSans-Bold', settings.pdf_font_bold))
        return 'DejaVuSans', 'DejaVuSans-Bold'
    except (TTFError, OSError) as e:
        logger.info("Falling back to Helvetica for PDF export: %s", e)
        return 'Helvetica', 'Helvetica-Bold'


def _table_style(font_name, font_name_bold, right_columns=()):
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e5e7eb')),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.HexColor('#1f2937')),
        ('ALIGN', (0, 0), (-1, -1), 'LEFT'),
        ('FONTNAME', (0, 0), (-1, 0), font_name_bold),
        ('FONTNAME', (0, 1), (-1, -1), font_name),
        ('FONTSIZE', (0, 0), (-1, 0), 10),
        ('FONTSIZE', (0, 1), (-1, -1), 9),
        ('BOTTOMPADDING', (0, 0), (-1, 0), 8),
        ('TOPPADDING', (0, 0), (-1, 0), 8),
        ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#d1d5db')),
    ]
    for col in right_columns:
        commands.append(('ALIGN', (col, 0), (col, -1), 'RIGHT'))
    return TableStyle(commands)


def build_pdf(group: Group, expenses: List[ExpenseRecord],
              members: Dict[str, Member], report: GroupBalances,
              settings: Settings) -> bytes:
    symbol = settings.currency_symbol
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4)
    elements = []

    font_name, font_name_bold = _fonts(settings)

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'CustomTitle',
        parent=styles['Heading1'],
        fontSize=18,
        fontName=font_name_bold,
        textColor=colors.HexColor('#1f2937'),
        spaceAfter=12,
    )
    heading_style = ParagraphStyle(
        'CustomHeading',
        parent=styles['Heading2'],
        fontSize=14,
        fontName=font_name_bold,
        textColor=colors.HexColor('#374151'),
        spaceAfter=10,
        spaceBefore=14,
    )
    normal_style = ParagraphStyle(
        'CustomNormal',
        parent=styles['Normal'],
        fontName=font_name,
    )

    elements.append(Paragraph(settings.app_title, title_style))
    elements.append(Paragraph(f"Group: {group.name}", normal_style))
    elements.append(
        Paragraph(f"Created: {group.created_at.strftime('%Y-%m-%d %H:%M')}",
                  normal_style))
    elements.append(Spacer(1, 0.5 * cm))

    elements.append(Paragraph("Members", heading_style))
    member_data = [["Name"]]
    for member_id in group.member_ids:
        member_data.append([_name(members, member_id)])
    member_table = Table(member_data, colWidths=[15 * cm])
    member_table.setStyle(_table_style(font_name, font_name_bold))
    elements.append(member_table)
    elements.append(Spacer(1, 0.5 * cm))

    elements.append(Paragraph("Expenses", heading_style))
    expense_data = [["Date", "Description", "Amount", "Paid by", "Split between"]]
    for expense in expenses:
        split_names = ", ".join(_name(members, s.member_id) for s in expense.splits)
        expense_data.append([
            expense.expense_date.strftime('%Y-%m-%d'), expense.description,
            format_currency(expense.amount, symbol),
            _name(members, expense.payer_id), split_names
        ])
    expense_table = Table(
        expense_data, colWidths=[2.5 * cm, 4 * cm, 2.5 * cm, 3 * cm, 3 * cm])
    expense_table.setStyle(_table_style(font_name, font_name_bold, right_columns=(2,)))
    elements.append(expense_table)
    elements.append(Spacer(1, 0.5 * cm))

    elements.append(Paragraph("Balances", heading_style))
    balance_data = [["Member", "Paid", "Owes", "Net"]]
    for balance in report.balances:
        balance_data.append([
            _name(members, balance.member_id),
            format_currency(balance.total_paid, symbol),
            format_currency(balance.total_owed, symbol),
            format_currency(balance.net_balance, symbol)
        ])
    balance_table = Table(balance_data, colWidths=[6 * cm, 3 * cm, 3 * cm, 3 * cm])
    balance_table.setStyle(
        _table_style(font_name, font_name_bold, right_columns=(1, 2, 3)))
    elements.append(balance_table)
    elements.append(Spacer(1, 0.5 * cm))

    elements.append(Paragraph("Payments", heading_style))
    payment_data = [["From", "To", "Amount"]]
    for debt in report.debts:
        payment_data.append([
            _name(members, debt.from_member_id),
            _name(members, debt.to_member_id),
            format_currency(debt.amount, symbol)
        ])
    if len(payment_data) == 1:
        payment_data.append([NO_PAYMENTS, "", ""])

    payment_table = Table(payment_data, colWidths=[5 * cm, 5 * cm, 5 * cm])
    payment_table.setStyle(_table_style(font_name, font_name_bold, right_columns=(2,)))
    elements.append(payment_table)

    doc.build(elements)
    return buffer.getvalue()
