import shortuuid


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def normalize_code(value: str | None) -> str:
    """SKUs, product codes and document numbers compare upper-cased and trimmed."""
    return (value or "").strip().upper()


def optional_code(value: str | None) -> str | None:
    return normalize_code(value) or None
