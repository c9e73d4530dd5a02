"""Currency Service - Static currency conversion"""
from typing import Dict, List, Optional, Tuple

from ..config.settings import settings
from ..domain.errors import UnsupportedCurrencyError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CurrencyService:
    """
    Convert amounts using a configured rate table

    Rates are expressed as units of each currency per 1 USD, so any pair
    converts through USD.
    """
    
    def __init__(
        self,
        rates: Optional[Dict[str, float]] = None,
        base_currency: Optional[str] = None
    ):
        self.rates = {k.upper(): v for k, v in (rates or settings.exchange_rates_map).items()}
        self.base_currency = (base_currency or settings.base_currency).upper()
    
    def is_valid_currency(self, currency: Optional[str]) -> bool:
        return bool(currency) and currency.upper() in self.rates
    
    def supported_currencies(self) -> List[str]:
        return sorted(self.rates)
    
    def get_company_base_currency(self, company_id: str) -> str:
        """Base currency of a company (single configured default)"""
        return self.base_currency
    
    def get_rate(self, from_currency: str, to_currency: str) -> float:
        """Rate such that amount_in_from * rate == amount_in_to"""
        source = from_currency.upper()
        target = to_currency.upper()
        for code in (source, target):
            if code not in self.rates:
                raise UnsupportedCurrencyError(
                    f"Unsupported currency: {code}",
                    details={"currency": code, "supported": self.supported_currencies()}
                )
        if source == target:
            return 1.0
        return self.rates[target] / self.rates[source]
    
    def convert(self, amount: float, from_currency: str, to_currency: str) -> Tuple[float, float]:
        """
        Convert an amount
        
        Returns:
            (converted_amount, rate), both rounded (2 and 6 places)
        
        Raises:
            UnsupportedCurrencyError: Either currency has no rate
        """
        rate = self.get_rate(from_currency, to_currency)
        converted = round(amount * rate, 2)
        logger.debug(f"Converted {amount} {from_currency} -> {converted} {to_currency} at {rate}")
        return converted, round(rate, 6)
