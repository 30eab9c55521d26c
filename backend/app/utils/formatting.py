"""Display formatting shared by alerts, emails and vouchers"""


def _group_indian(digits: str) -> str:
    # Last three digits, then groups of two: 15,00,000
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(amount: float) -> str:
    """
    Format a rupee amount with Indian digit grouping

    Examples:
        >>> format_inr(6000)
        '₹6,000'
        >>> format_inr(1500000)
        '₹15,00,000'
        >>> format_inr(1234.5)
        '₹1,234.50'
    """
    sign = "-" if amount < 0 else ""
    whole, fraction = f"{abs(float(amount)):.2f}".split(".")
    text = _group_indian(whole)
    if fraction != "00":
        text = f"{text}.{fraction}"
    return f"{sign}₹{text}"


def format_plain_amount(amount: float) -> str:
    """Amount as entered, without grouping (6000, 1234.5)"""
    return f"₹{int(amount)}" if float(amount).is_integer() else f"₹{amount}"
