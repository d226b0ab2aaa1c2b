"""
Sales tax composition per Canadian province/territory.

Each jurisdiction has up to three named components: a harmonized rate (HST),
or a federal rate (GST) with an optional provincial rate (PST/QST). Quebec's
QST is charged on the price plus GST.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Final

from shared.config.settings import settings


@dataclass(frozen=True, slots=True)
class Jurisdiction:
    """Tax composition for one region. Rates are fractions (0.13 = 13%)."""

    code: str
    label: str
    hst: Decimal = Decimal("0")
    gst: Decimal = Decimal("0")
    pst: Decimal = Decimal("0")
    # PST base includes GST
    compound_pst: bool = False

    @property
    def combined_rate(self) -> Decimal:
        """Effective rate on a taxable dollar, accounting for compounding."""
        if self.compound_pst:
            return self.hst + self.gst + self.pst * (1 + self.gst)
        return self.hst + self.gst + self.pst


def _hst(code: str, rate: str, label: str) -> Jurisdiction:
    return Jurisdiction(code=code, label=label, hst=Decimal(rate))


def _gst(code: str, gst: str, pst: str, label: str, compound_pst: bool = False) -> Jurisdiction:
    return Jurisdiction(code=code, label=label, gst=Decimal(gst), pst=Decimal(pst), compound_pst=compound_pst)


TAX_TABLE: Final[dict[str, Jurisdiction]] = {
    j.code: j
    for j in (
        _hst("ON", "0.13", "HST 13%"),
        _gst("BC", "0.05", "0.07", "GST 5% + PST 7%"),
        _gst("AB", "0.05", "0", "GST 5%"),
        _gst("SK", "0.05", "0.06", "GST 5% + PST 6%"),
        _gst("MB", "0.05", "0.07", "GST 5% + PST 7%"),
        _gst("QC", "0.05", "0.09975", "GST 5% + QST 9.975%", compound_pst=True),
        _hst("NB", "0.15", "HST 15%"),
        _hst("NS", "0.15", "HST 15%"),
        _hst("PE", "0.15", "HST 15%"),
        _hst("NL", "0.15", "HST 15%"),
        _gst("YT", "0.05", "0", "GST 5%"),
        _gst("NT", "0.05", "0", "GST 5%"),
        _gst("NU", "0.05", "0", "GST 5%"),
    )
}

FALLBACK_JURISDICTION: Final[str] = "ON"


def is_known_jurisdiction(code: str | None) -> bool:
    return bool(code) and code.upper() in TAX_TABLE


def get_jurisdiction(code: str | None) -> Jurisdiction:
    """
    Look up a jurisdiction, falling back to the configured default.

    Never raises: unknown codes are rejected at the mutation boundary, so an
    unknown code here can only come from an old snapshot.
    """
    if code and code.upper() in TAX_TABLE:
        return TAX_TABLE[code.upper()]
    default = settings.default_jurisdiction.upper()
    return TAX_TABLE.get(default, TAX_TABLE[FALLBACK_JURISDICTION])
