"""Spoken-word formatting for amounts read out over the phone."""

_ONES = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
]
_TENS = ["", "", "twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]
_SCALES = [(1_000_000_000, "billion"), (1_000_000, "million"), (1_000, "thousand")]


def _below_hundred(number: int) -> str:
    if number < 20:
        return _ONES[number]
    tens, ones = divmod(number, 10)
    return _TENS[tens] + (f"-{_ONES[ones]}" if ones else "")


def _below_thousand(number: int) -> str:
    hundreds, rest = divmod(number, 100)
    parts = []
    if hundreds:
        parts.append(f"{_ONES[hundreds]} hundred")
    if rest:
        if hundreds:
            parts.append("and")
        parts.append(_below_hundred(rest))
    return " ".join(parts)


def number_to_words(number: int) -> str:
    """
    Spell out a non-negative integer in British English.

    8990 -> "eight thousand nine hundred and ninety"
    """
    if number < 0:
        raise ValueError("number must not be negative")
    if number == 0:
        return "zero"
    parts = []
    for value, name in _SCALES:
        if number >= value:
            count, number = divmod(number, value)
            parts.append(f"{_below_thousand(count)} {name}")
    if number:
        if parts and number < 100:
            parts.append("and")
        parts.append(_below_thousand(number))
    return " ".join(parts)


def spoken_rand(amount: float) -> str:
    """Format a rand amount for speech, e.g. "eight thousand nine hundred and ninety rand"."""
    if amount < 0:
        return f"minus {spoken_rand(-amount)}"
    total_cents = int(round(amount * 100))
    rands, cents = divmod(total_cents, 100)
    text = f"{number_to_words(rands)} rand"
    if cents:
        unit = "cent" if cents == 1 else "cents"
        text += f" and {number_to_words(cents)} {unit}"
    return text
