"""Voucher Template - Content of the printable expense voucher

The layout is renderer-agnostic: a title, an organization line, labelled
rows and an optional signature reference. The voucher service turns it
into a PDF.
"""
from typing import List, NamedTuple, Optional, Tuple

from ..domain.models import Expense, Organization, Voucher
from ..utils.time import format_display_date

VOUCHER_TITLE = "EXPENSE VOUCHER"


class VoucherDocument(NamedTuple):
    title: str
    organization_line: str
    rows: List[Tuple[str, str]]
    signature_url: Optional[str]
    reference: str


def build_voucher_document(
    voucher: Voucher,
    expense: Expense,
    organization: Organization,
    approver_name: Optional[str] = None
) -> VoucherDocument:
    """
    Fields: Name, Amount, Date, Credit Person, Approver, Purpose, Signature.

    Missing values print as "-".
    """
    rows = [
        ("Name", voucher.your_name),
        ("Amount", f"INR {voucher.amount:,.2f}"),
        ("Date", format_display_date(expense.expense_date)),
        ("Credit Person", voucher.credit_person),
        ("Approver", approver_name),
        ("Purpose", voucher.purpose),
    ]
    return VoucherDocument(
        title=VOUCHER_TITLE,
        organization_line=f"Organization: {organization.name}",
        rows=[(label, value or "-") for label, value in rows],
        signature_url=voucher.signature_url,
        reference=f"Voucher {voucher.voucher_id} / Expense {expense.expense_id}",
    )
