"""Report generation routes."""

from typing import Optional

from ledgerly.routes import hosted
from ledgerly.services import ledger, report_generator
from ledgerly.services.store import LedgerStore
from ledgerly.utils.http import file_response


def handle_monthly_pdf(month_id: Optional[str] = None) -> dict:
    """Generate the monthly PDF from the ledger saved in the hosted store.

    The ledger is loaded read-only; a report request never writes.

    Args:
        month_id: Month label (YYYY-MM). Defaults to the active month.

    Returns:
        Response with PDF content
    """
    store = LedgerStore(hosted.get_store().store, read_only=True)
    month_id = ledger.month_id_from_label(month_id) if month_id else store.active_month_id

    pdf_bytes = report_generator.generate_monthly_pdf(store, month_id)
    return file_response(pdf_bytes, f'Ledgerly_Report_{month_id}.pdf', 'application/pdf')
