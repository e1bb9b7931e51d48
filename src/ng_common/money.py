"""Integer price arithmetic for negotiated amounts.

Prices are whole currency units stored as int. No float, no Decimal.
"""


def price_floor(original_price: int, floor_bps: int) -> int:
    """floor(original_price * floor_bps / 10000): 1000 @ 7000bps -> 700."""
    return (original_price * floor_bps) // 10000


def discount_percentage(original_price: int, discounted_price: int) -> int:
    """Discount as a whole percentage, rounding halves up: 1000 -> 700 gives 30."""
    if original_price <= 0:
        return 0
    discount = original_price - discounted_price
    return (discount * 200 + original_price) // (2 * original_price)


def price_to_display(amount: int) -> str:
    """Convert a price to display string: 1500 -> '₹1,500', -20 -> '-₹20'."""
    if amount < 0:
        return f"-₹{-amount:,}"
    return f"₹{amount:,}"
