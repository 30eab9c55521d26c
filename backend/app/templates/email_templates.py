"""
Email Templates - HTML email templates for expense notifications

Every template takes the outbox payload plus the frontend base URL and
returns a dict with 'subject' and 'body'.
"""
from html import escape
from typing import Dict, Any, Optional

from ..domain.enums import NotificationTemplateKey
from ..utils.formatting import format_inr


# =============================================================================
# Base Template Wrapper
# =============================================================================

def get_base_template(
    content: str,
    action_button_text: Optional[str] = None,
    action_button_url: Optional[str] = None,
    footer_note: Optional[str] = None,
    accent_color: str = "#2563EB"
) -> str:
    """
    Email base template built from tables so it renders in Outlook, Gmail
    and Apple Mail alike
    """
    button_html = ""
    if action_button_text and action_button_url:
        button_html = f'''
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin: 32px 0;">
            <tr>
                <td align="center">
                    <a href="{action_button_url}"
                       style="display: inline-block; background-color: {accent_color}; color: #ffffff;
                              text-decoration: none; padding: 14px 32px; border-radius: 8px;
                              font-weight: 600; font-size: 14px; font-family: Arial, sans-serif;">
                        {action_button_text}
                    </a>
                </td>
            </tr>
        </table>
        '''

    footer_note_html = ""
    if footer_note:
        footer_note_html = f'''
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin-top: 16px;">
            <tr>
                <td style="padding: 16px; background-color: #FEF3C7; font-size: 13px; color: #92400E; font-family: Arial, sans-serif;">
                    {footer_note}
                </td>
            </tr>
        </table>
        '''

    return f'''
<!DOCTYPE html>
<html>
<head>
    <meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Reimbursement App</title>
</head>
<body style="margin: 0; padding: 0; background-color: #F8FAFC; font-family: Arial, Helvetica, sans-serif;">
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color: #F8FAFC;">
        <tr>
            <td style="padding: 32px 20px;">
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" align="center" style="margin: 0 auto; max-width: 600px;">
                    <tr>
                        <td style="padding: 20px 24px; background-color: #ffffff; border-bottom: 3px solid {accent_color};">
                            <span style="color: #1F2937; font-size: 18px; font-weight: bold;">Reimbursement App</span>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 32px 40px 40px 40px; background-color: #ffffff;">
                            {content}
                            {button_html}
                            {footer_note_html}
                        </td>
                    </tr>
                    <tr>
                        <td align="center" style="padding-top: 24px;">
                            <p style="margin: 0; color: #6B7280; font-size: 12px;">
                                This is an automated message from the Reimbursement App.
                            </p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
'''


# =============================================================================
# Components
# =============================================================================

def get_heading(title: str, subtitle: str, color: str = "#111827") -> str:
    return f'''
    <h1 style="margin: 0 0 8px 0; font-size: 22px; font-weight: bold; color: {color}; text-align: center;">
        {title}
    </h1>
    <p style="margin: 0 0 24px 0; color: #6B7280; text-align: center; font-size: 15px;">
        {subtitle}
    </p>
    '''


def get_info_card(
    expense_type: str,
    amount: str,
    additional_fields: Optional[Dict[str, str]] = None
) -> str:
    """Styled card with the expense details"""
    rows = {"Expense Type": expense_type, "Amount": amount}
    rows.update(additional_fields or {})

    fields_html = ""
    for label, value in rows.items():
        fields_html += f'''
        <tr>
            <td style="padding: 10px 16px; color: #6B7280; font-size: 13px; border-bottom: 1px solid #E5E7EB; width: 140px;">{label}</td>
            <td style="padding: 10px 16px; color: #111827; font-size: 13px; font-weight: bold; border-bottom: 1px solid #E5E7EB;">{value}</td>
        </tr>
        '''

    return f'''
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin: 24px 0; border: 1px solid #E5E7EB; background-color: #F9FAFB;">
        <tr>
            <td colspan="2" style="background-color: #EEF2FF; padding: 14px 16px; border-bottom: 1px solid #E5E7EB;">
                <p style="margin: 0; font-size: 11px; text-transform: uppercase; letter-spacing: 0.5px; color: #6B7280; font-weight: bold;">
                    Expense Details
                </p>
            </td>
        </tr>
        {fields_html}
    </table>
    '''


def _expense_url(payload: Dict[str, Any], app_url: str) -> str:
    org_slug = payload.get("org_slug", "")
    expense_id = payload.get("expense_id", "")
    return f"{app_url}/org/{org_slug}/expenses/{expense_id}"


def _money(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return format_inr(float(value)) if value is not None else "-"


def _approved_amount_fields(payload: Dict[str, Any]) -> Dict[str, str]:
    fields = {"Approved Amount": _money(payload, "approved_amount")}
    if payload.get("custom_amount"):
        fields["Requested Amount"] = _money(payload, "amount")
    return fields


# =============================================================================
# Templates
# =============================================================================

def get_approval_pending_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: new expense waiting for the assigned approver"""
    expense_type = escape(payload.get("expense_type", "Expense"))
    creator_name = escape(payload.get("creator_name", "A team member"))

    fields = {"Submitted by": creator_name, "Date": escape(str(payload.get("expense_date", "")))}
    if payload.get("description"):
        fields["Description"] = escape(payload["description"])

    content = f'''
    {get_heading("Approval Required", f"{creator_name} submitted an expense for your approval.")}
    {get_info_card(expense_type, _money(payload, "amount"), fields)}
    '''
    footer = escape(payload["policy_warning"]) if payload.get("policy_warning") else None

    return {
        "subject": f"{payload.get('expense_type', 'Expense')} expense is pending for your approval",
        "body": get_base_template(
            content=content,
            action_button_text="Review Expense",
            action_button_url=_expense_url(payload, app_url),
            footer_note=footer,
        )
    }


def _approved_template(payload: Dict[str, Any], app_url: str, stage_label: str) -> Dict[str, str]:
    expense_type = payload.get("expense_type", "Expense")
    actor_name = payload.get("actor_name", stage_label)
    custom = bool(payload.get("custom_amount"))

    if custom:
        subtitle = (
            f"Your expense was approved with a custom amount of {_money(payload, 'approved_amount')} "
            f"instead of the requested {_money(payload, 'amount')}."
        )
        subject = f"{expense_type} expense approved by {actor_name} with a custom amount."
    else:
        subtitle = f"Your expense was approved for {_money(payload, 'approved_amount')}."
        subject = f"{expense_type} expense approved by {actor_name}."

    fields = {"Stage": stage_label, "Approved by": escape(actor_name)}
    fields.update(_approved_amount_fields(payload))
    fields["Status"] = escape(payload.get("status_label", ""))

    content = f'''
    {get_heading("Expense Approved", escape(subtitle), "#059669")}
    {get_info_card(escape(expense_type), _money(payload, "amount"), fields)}
    '''
    return {
        "subject": subject,
        "body": get_base_template(
            content=content,
            action_button_text="View Expense",
            action_button_url=_expense_url(payload, app_url),
            accent_color="#10B981",
        )
    }


def _rejected_template(payload: Dict[str, Any], app_url: str, stage_label: str) -> Dict[str, str]:
    expense_type = payload.get("expense_type", "Expense")
    actor_name = payload.get("actor_name", stage_label)
    reason = payload.get("reason") or "No reason provided"

    fields = {
        "Stage": stage_label,
        "Rejected by": escape(actor_name),
        "Reason": escape(reason),
        "Status": escape(payload.get("status_label", "")),
    }
    content = f'''
    {get_heading("Expense Rejected", "Your expense was not approved. You can edit and resubmit it.", "#DC2626")}
    {get_info_card(escape(expense_type), _money(payload, "amount"), fields)}
    '''
    return {
        "subject": f"{expense_type} expense rejected by {actor_name}.",
        "body": get_base_template(
            content=content,
            action_button_text="View Details",
            action_button_url=_expense_url(payload, app_url),
            accent_color="#EF4444",
        )
    }


def get_manager_approved_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: manager approved - to creator"""
    return _approved_template(payload, app_url, "Manager")


def get_manager_rejected_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: manager rejected - to creator"""
    return _rejected_template(payload, app_url, "Manager")


def get_finance_approved_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: finance approved - to creator"""
    return _approved_template(payload, app_url, "Finance")


def get_finance_rejected_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: finance rejected - to creator"""
    return _rejected_template(payload, app_url, "Finance")


def get_payment_processed_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: payment made - to creator"""
    expense_type = payload.get("expense_type", "Expense")
    fields = {"Stage": "Payment", "Paid Amount": _money(payload, "approved_amount"),
              "Status": escape(payload.get("status_label", ""))}

    content = f'''
    {get_heading("Payment Processed", "Your reimbursement has been paid.", "#059669")}
    {get_info_card(escape(expense_type), _money(payload, "amount"), fields)}
    '''
    return {
        "subject": f"Payment processed for your {expense_type} expense.",
        "body": get_base_template(
            content=content,
            action_button_text="View Expense",
            action_button_url=_expense_url(payload, app_url),
            accent_color="#10B981",
        )
    }


def get_payment_not_processed_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: payment refused - to creator"""
    expense_type = payload.get("expense_type", "Expense")
    fields = {
        "Stage": "Payment",
        "Reason": escape(payload.get("reason") or "No reason provided"),
        "Status": escape(payload.get("status_label", "")),
    }

    content = f'''
    {get_heading("Payment Rejected", "Finance could not process the payment for this expense.", "#DC2626")}
    {get_info_card(escape(expense_type), _money(payload, "amount"), fields)}
    '''
    return {
        "subject": f"Payment rejected for your {expense_type} expense.",
        "body": get_base_template(
            content=content,
            action_button_text="View Details",
            action_button_url=_expense_url(payload, app_url),
            accent_color="#EF4444",
        )
    }


def get_comment_added_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: new comment - routed by who wrote it"""
    expense_type = payload.get("expense_type", "Expense")
    commenter = escape(payload.get("commenter_name", "Someone"))

    content = f'''
    {get_heading("New Comment", f"{commenter} commented on an expense.")}
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%">
        <tr>
            <td style="padding: 16px; background-color: #F3F4F6; border-left: 4px solid #2563EB; font-size: 14px; color: #374151;">
                {escape(payload.get("comment", ""))}
            </td>
        </tr>
    </table>
    {get_info_card(escape(expense_type), _money(payload, "amount"))}
    '''
    return {
        "subject": f"New Comment on {expense_type} Expense",
        "body": get_base_template(
            content=content,
            action_button_text="Reply",
            action_button_url=_expense_url(payload, app_url),
        )
    }


def get_organization_invite_template(payload: Dict[str, Any], app_url: str = "") -> Dict[str, str]:
    """Template: email invite to join an organization"""
    org_name = payload.get("org_name", "an organization")
    inviter = escape(payload.get("inviter_name", "A colleague"))
    role = escape(payload.get("role", "member"))

    content = f'''
    {get_heading("You're Invited", f"{inviter} invited you to join {escape(org_name)} as {role}.")}
    <p style="margin: 24px 0 0 0; color: #4B5563; font-size: 14px; line-height: 1.6;">
        Create your account with this email address to accept the invitation.
    </p>
    '''
    return {
        "subject": f"You've been invited to join {org_name} on the Reimbursement App",
        "body": get_base_template(
            content=content,
            action_button_text="Accept Invitation",
            action_button_url=payload.get("signup_url") or f"{app_url}/auth/signup",
        )
    }


TEMPLATE_REGISTRY = {
    NotificationTemplateKey.APPROVAL_PENDING: get_approval_pending_template,
    NotificationTemplateKey.MANAGER_APPROVED: get_manager_approved_template,
    NotificationTemplateKey.MANAGER_REJECTED: get_manager_rejected_template,
    NotificationTemplateKey.FINANCE_APPROVED: get_finance_approved_template,
    NotificationTemplateKey.FINANCE_REJECTED: get_finance_rejected_template,
    NotificationTemplateKey.PAYMENT_PROCESSED: get_payment_processed_template,
    NotificationTemplateKey.PAYMENT_NOT_PROCESSED: get_payment_not_processed_template,
    NotificationTemplateKey.COMMENT_ADDED: get_comment_added_template,
    NotificationTemplateKey.ORGANIZATION_INVITE: get_organization_invite_template,
}


def get_email_template(
    template_key: str,
    payload: Dict[str, Any],
    app_url: str = ""
) -> Dict[str, str]:
    """
    Get rendered email template by key

    Args:
        template_key: Template identifier (from NotificationTemplateKey)
        payload: Data to populate the template
        app_url: Base URL for action buttons

    Returns:
        Dict with 'subject' and 'body' keys
    """
    try:
        template_func = TEMPLATE_REGISTRY.get(NotificationTemplateKey(template_key))
    except ValueError:
        template_func = None

    if template_func:
        return template_func(payload, app_url)

    # Fallback for unknown templates
    return {
        "subject": f"[Notification] {payload.get('expense_type', 'Expense')} update",
        "body": get_base_template(
            content="<p>There is an update on one of your expenses.</p>",
            action_button_text="View Details",
            action_button_url=_expense_url(payload, app_url) if payload.get("expense_id") else app_url,
        )
    }
