"""Monthly PDF report generation using ReportLab."""

import io
from datetime import datetime, timezone
from typing import List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from ledgerly.services import ledger
from ledgerly.services.calculations import format_currency
from ledgerly.services.store import LedgerStore

HEADER_STYLE = [
    ('BACKGROUND', (0, 0), (-1, 0), colors.grey),
    ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
    ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTSIZE', (0, 0), (-1, -1), 9),
    ('BOTTOMPADDING', (0, 0), (-1, 0), 6),
    ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
]

TOTALS_STYLE = HEADER_STYLE + [
    ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),  # Totals row bold
    ('LINEABOVE', (0, -1), (-1, -1), 1.5, colors.black),
]


def _table(rows: List[list], col_widths: List[float], totals: bool = False) -> Table:
    table = Table(rows, colWidths=col_widths)
    table.setStyle(TableStyle(TOTALS_STYLE if totals else HEADER_STYLE))
    return table


def generate_monthly_pdf(store: LedgerStore, month_id: Optional[str] = None) -> bytes:
    """Generate a PDF report for one month of the ledger.

    Args:
        store: Ledger to report on
        month_id: YYYY-MM. Defaults to the active month.

    Returns:
        PDF content as bytes
    """
    month_id = month_id or store.active_month_id
    currency = store.profile.preferred_currency

    def money(value: float) -> str:
        return format_currency(value, currency)

    summary = store.summary_for(month_id)
    budgets = store.budgets_for(month_id)
    debts = store.debts
    goals = store.goals

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        topMargin=0.5*inch,
        bottomMargin=0.5*inch,
        leftMargin=0.75*inch,
        rightMargin=0.75*inch
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        'Title',
        parent=styles['Heading1'],
        fontSize=16,
        spaceAfter=6
    )
    heading_style = ParagraphStyle(
        'Heading',
        parent=styles['Heading2'],
        fontSize=12,
        spaceBefore=12,
        spaceAfter=6
    )
    normal_style = styles['Normal']
    note_style = ParagraphStyle('Note', parent=normal_style, fontSize=8, textColor=colors.grey,
                                fontName='Helvetica-Oblique')

    elements = []

    owner = store.profile.name
    elements.append(Paragraph(f"Monthly Financial Report: {ledger.month_name(month_id)}", title_style))
    if owner:
        elements.append(Paragraph(f"Prepared for: {owner}", normal_style))
    generated = datetime.now(timezone.utc).strftime('%B %d, %Y')
    elements.append(Paragraph(f"Generated: {generated}", normal_style))
    elements.append(Spacer(1, 12))

    # Summary
    elements.append(Paragraph("Summary", heading_style))
    net_prefix = '+' if summary.net_cashflow >= 0 else ''
    summary_data = [
        ['Total Income:', money(summary.total_income)],
        ['Total Expenses:', money(summary.total_expenses)],
        ['Net Cashflow:', f'{net_prefix}{money(summary.net_cashflow)}'],
        ['Savings Rate:', f'{summary.savings_rate:.1f}%'],
    ]
    summary_table = Table(summary_data, colWidths=[1.5*inch, 1.5*inch])
    summary_table.setStyle(TableStyle([
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('TOPPADDING', (0, 0), (-1, -1), 2),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 2),
    ]))
    elements.append(summary_table)

    # Budgets
    elements.append(Paragraph("Budgets", heading_style))
    if budgets:
        budget_data = [['Category', 'Limit', 'Spent', 'Remaining']]
        for budget in sorted(budgets, key=lambda b: b.category.value):
            budget_data.append([
                budget.category.value,
                money(budget.limit),
                money(budget.spent),
                money(budget.limit - budget.spent)
            ])
        total_limit = sum(b.limit for b in budgets)
        total_spent = sum(b.spent for b in budgets)
        budget_data.append(['Total', money(total_limit), money(total_spent), money(total_limit - total_spent)])
        elements.append(_table(budget_data, [2.5*inch, 1.15*inch, 1.15*inch, 1.15*inch], totals=True))

        over = [b.category.value for b in budgets if b.spent > b.limit]
        if over:
            elements.append(Spacer(1, 4))
            elements.append(Paragraph(f"*Over budget: {', '.join(over)}", note_style))
    else:
        elements.append(Paragraph("No budgets set for this month.", normal_style))

    # Debts
    elements.append(Paragraph("Debts", heading_style))
    if debts:
        debt_data = [['Debt', 'Rate', 'Minimum', 'Paid This Month', 'Balance']]
        for debt in debts:
            debt_data.append([
                f'{debt.name} (paid off)' if debt.is_paid_off else debt.name,
                f'{debt.interest_rate:.2f}%',
                money(debt.minimum_payment),
                money(debt.monthly_payments.get(month_id, 0.0)),
                money(debt.balance)
            ])
        debt_data.append([
            'Total', '-', money(sum(d.minimum_payment for d in debts)),
            money(sum(d.monthly_payments.get(month_id, 0.0) for d in debts)),
            money(sum(d.balance for d in debts))
        ])
        elements.append(_table(debt_data, [2*inch, 0.8*inch, 1*inch, 1.2*inch, 1*inch], totals=True))
    else:
        elements.append(Paragraph("No debts recorded.", normal_style))

    # Goals
    elements.append(Paragraph("Goals", heading_style))
    if goals:
        goal_data = [['Goal', 'Target Date', 'Target', 'Saved', 'Progress']]
        for goal in sorted(goals, key=lambda g: -g.priority):
            progress = goal.current_amount / goal.target_amount * 100 if goal.target_amount else 0.0
            goal_data.append([
                goal.name,
                goal.target_date,
                money(goal.target_amount),
                money(goal.current_amount),
                f'{progress:.0f}%'
            ])
        elements.append(_table(goal_data, [2*inch, 1.1*inch, 1*inch, 1*inch, 0.9*inch]))
    else:
        elements.append(Paragraph("No goals recorded.", normal_style))

    # Footer
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(
        "Generated by ledgerly",
        ParagraphStyle('Footer', parent=normal_style, fontSize=8, textColor=colors.grey)
    ))

    doc.build(elements)
    buffer.seek(0)

    return buffer.getvalue()
