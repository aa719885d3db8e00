"""
Booking codes

Human-readable booking identifiers:

    RENT + up to 6 letters from make/model - 6 random digits - state + 2-digit year
    e.g. RENTTOYCAM-482913-AZ24
"""
import random
import re
from typing import List, Optional, Set, Tuple

DEFAULT_PREFIX = "RENT"
MAX_VEHICLE_LETTERS = 6
CODES_PER_VEHICLE = 1000000  # six random digits

_system_random = random.SystemRandom()


def booking_code_pattern(prefix: str = DEFAULT_PREFIX) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}[A-Z]{{1,6}}-\d{{6}}-[A-Z]{{2}}\d{{2}}$")


def vehicle_letters(make: Optional[str], model: Optional[str]) -> str:
    """First three letters of make and model, uppercase, at most six."""
    make_part = re.sub(r"[^A-Za-z]", "", make or "")[:3]
    model_part = re.sub(r"[^A-Za-z]", "", model or "")[:3]
    letters = (make_part + model_part).upper()[:MAX_VEHICLE_LETTERS]
    return letters or "X"


def _code_parts(make, model, state, year, prefix) -> Tuple[str, str]:
    """Fixed text before and after the random digits."""
    state_code = (state or "").strip().upper()
    if not re.fullmatch(r"[A-Z]{2}", state_code):
        raise ValueError(f"State must be a two-letter code, got {state!r}")
    return f"{prefix}{vehicle_letters(make, model)}-", f"-{state_code}{int(year) % 100:02d}"


def generate_booking_code(
    make: Optional[str],
    model: Optional[str],
    state: str,
    year: int,
    prefix: str = DEFAULT_PREFIX,
    rng: Optional[random.Random] = None,
) -> str:
    head, tail = _code_parts(make, model, state, year, prefix)
    rng = rng or _system_random
    number = rng.randint(0, CODES_PER_VEHICLE - 1)
    return f"{head}{number:06d}{tail}"


def generate_booking_codes(
    count: int,
    make: Optional[str],
    model: Optional[str],
    state: str,
    year: int,
    prefix: str = DEFAULT_PREFIX,
    rng: Optional[random.Random] = None,
    existing: Optional[Set[str]] = None,
) -> List[str]:
    """
    Generate `count` codes, unique within the batch and against `existing`.

    Codes for the same vehicle differ only in the six random digits, so
    existing codes for that vehicle use up part of its one million.
    Raises ValueError when fewer than `count` codes are still free.
    """
    if count < 0:
        raise ValueError("count must not be negative")

    taken = set(existing or ())
    head, tail = _code_parts(make, model, state, year, prefix)
    used = sum(
        1 for code in taken
        if code.startswith(head) and code.endswith(tail) and len(code) == len(head) + 6 + len(tail)
    )
    if count > CODES_PER_VEHICLE - used:
        raise ValueError(
            f"Only {CODES_PER_VEHICLE - used} codes left for {head}XXXXXX{tail}, {count} requested"
        )

    codes: List[str] = []
    while len(codes) < count:
        code = generate_booking_code(make, model, state, year, prefix, rng)
        if code in taken:
            continue
        taken.add(code)
        codes.append(code)
    return codes


def is_valid_booking_code(code: str, prefix: str = DEFAULT_PREFIX) -> bool:
    return bool(code) and booking_code_pattern(prefix).match(code) is not None
