from __future__ import annotations

from services.api.app.models.invoice import NumberingConfig


def compose_invoice_number(config: NumberingConfig, value: int) -> str:
    """Render ``value`` as a printable document number.

    prefix + series + zero-padded value + suffix, with empty parts dropped and no
    separators added. Separators, if any, belong in the prefix or suffix.
    """

    padding = max(0, config.padding or 0)
    number = str(value).zfill(padding)
    parts = [config.prefix or "", config.series or "", number, config.suffix or ""]
    return "".join(p for p in parts if p)
