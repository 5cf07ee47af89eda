"""
Currencies and exchange rates.

Every rate is the value of one unit of a currency in the base currency (TND),
so conversions between two foreign currencies always go through the base.
"""
import logging
import re
from decimal import Decimal, InvalidOperation

import requests
from django.conf import settings
from django.db import transaction
from django.utils import timezone

from backend.core.models import Company
from .models import Currency, ExchangeRate

logger = logging.getLogger(__name__)

BASE_CURRENCY = 'TND'

BCT_CURRENCY_NAMES = {
    'TND': 'Dinar tunisien',
    'DZD': 'Dinar algérien',
    'SAR': 'Riyal saoudien',
    'CAD': 'Dollar canadien',
    'DKK': 'Couronne danoise',
    'USD': 'Dollar des USA',
    'GBP': 'Livre sterling',
    'JPY': 'Yen japonais',
    'MAD': 'Dirham marocain',
    'NOK': 'Couronne norvégienne',
    'SEK': 'Couronne suédoise',
    'CHF': 'Franc suisse',
    'KWD': 'Dinar koweïtien',
    'AED': 'Dirham des EAU',
    'EUR': 'Euro',
    'LYD': 'Dinar libyen',
    'MRU': 'Ouguiya mauritanien',
    'BHD': 'Dinar de Bahreïn',
    'QAR': 'Rial qatari',
    'CNY': 'Yuan chinois',
    'OMR': 'Rial omanais',
}

CURRENCY_SYMBOLS = {'TND': 'DT', 'EUR': '€', 'USD': '$', 'GBP': '£'}

TABLE_RE = re.compile(r'<table[^>]*>.*?Cours Moyens.*?</table>', re.IGNORECASE | re.DOTALL)
ANY_TABLE_RE = re.compile(r'<table[^>]*>.*?</table>', re.IGNORECASE | re.DOTALL)
ROW_RE = re.compile(r'<tr[^>]*>(.*?)</tr>', re.IGNORECASE | re.DOTALL)
CELL_RE = re.compile(r'<t[dh][^>]*>(.*?)</t[dh]>', re.IGNORECASE | re.DOTALL)
TAG_RE = re.compile(r'<[^>]+>')


class UnknownRateError(ValueError):
    pass


def get_default_currency_code():
    return Company.get_solo().default_currency_code or settings.DEFAULT_CURRENCY_CODE


def set_default_currency_code(code):
    code = (code or '').strip().upper()
    if not Currency.objects.filter(code=code, is_active=True).exists():
        raise ValueError(f"Currency {code} not found or inactive")
    company = Company.get_solo()
    company.default_currency_code = code
    company.save(update_fields=['default_currency_code', 'updated_at'])
    logger.info(f"Default currency set to {code}")
    return code


def get_latest_rates(on_date=None):
    """Latest known rate per active currency, as {code: Decimal}; the base is always 1"""
    on_date = on_date or timezone.localdate()
    rates = {BASE_CURRENCY: Decimal('1')}
    queryset = (
        ExchangeRate.objects.filter(rate_date__lte=on_date, currency__is_active=True)
        .order_by('currency_id', '-rate_date', '-created_at')
        .values_list('currency_id', 'rate_to_base')
    )
    for code, rate in queryset:
        # Rows are newest first within each currency
        if code not in rates:
            rates[code] = rate
    return rates


def convert(amount, from_code, to_code, rates=None):
    """
    Convert an amount between two currencies through the base currency.

    Raises:
        UnknownRateError: When either currency has no known rate
    """
    from_code = (from_code or BASE_CURRENCY).upper()
    to_code = (to_code or BASE_CURRENCY).upper()
    amount = Decimal(amount)
    if from_code == to_code:
        return amount
    if rates is None:
        rates = get_latest_rates()
    for code in (from_code, to_code):
        if not rates.get(code):
            raise UnknownRateError(f"No exchange rate for {code}")
    return amount * rates[from_code] / rates[to_code]


def parse_bct_table(html):
    """
    Extract (code, unit, value) rows from the BCT average rates page.

    Rows have at least four cells: label, code, unit, value with a comma decimal separator.
    """
    match = TABLE_RE.search(html) or ANY_TABLE_RE.search(html)
    if not match:
        return []

    rows = []
    for row_html in ROW_RE.findall(match.group(0)):
        cells = [TAG_RE.sub('', cell).strip() for cell in CELL_RE.findall(row_html)]
        if len(cells) < 4:
            continue
        code = cells[1].strip().upper()
        unit_text = re.sub(r'\s', '', cells[2]).replace(',', '.')
        value_text = re.sub(r'\s', '', cells[3]).replace(',', '.')
        try:
            unit = int(Decimal(unit_text)) or 1
        except (InvalidOperation, ValueError):
            unit = 1
        try:
            value = Decimal(value_text)
        except InvalidOperation:
            continue
        if code and len(code) == 3 and code.isalpha():
            rows.append((code, unit, value))
    return rows


def fetch_bct_page():
    response = requests.get(
        settings.BCT_RATES_URL,
        headers={'User-Agent': 'ManagePME/1.0 (Currency sync)'},
        timeout=settings.BCT_TIMEOUT,
    )
    response.raise_for_status()
    return response.text


def import_bct_rates():
    """
    Download today's BCT rates and upsert currencies and rates.

    Returns:
        dict with imported count, currencies list and, on failure, an error message
    """
    try:
        html = fetch_bct_page()
    except requests.RequestException as e:
        logger.warning(f"BCT rates download failed: {str(e)}")
        return {
            'imported': 0,
            'currencies': [],
            'error': f"Unable to fetch the BCT page: {str(e)}",
        }

    rows = parse_bct_table(html)
    if not rows:
        logger.warning("BCT rates page has no parsable rate table")
        return {
            'imported': 0,
            'currencies': [],
            'error': 'Rate table not found on the BCT page',
        }

    today = timezone.localdate()
    currencies = []
    with transaction.atomic():
        base, _ = Currency.objects.get_or_create(
            code=BASE_CURRENCY,
            defaults={'name': BCT_CURRENCY_NAMES[BASE_CURRENCY], 'symbol': CURRENCY_SYMBOLS[BASE_CURRENCY]},
        )
        ExchangeRate.objects.update_or_create(
            currency=base, rate_date=today, source=ExchangeRate.SOURCE_BCT,
            defaults={'rate_to_base': Decimal('1')},
        )
        for code, unit, value in rows:
            if code == BASE_CURRENCY:
                continue
            currency, created = Currency.objects.get_or_create(
                code=code,
                defaults={
                    'name': BCT_CURRENCY_NAMES.get(code, code),
                    'symbol': CURRENCY_SYMBOLS.get(code, ''),
                    'unit': unit,
                },
            )
            if not created:
                currency.unit = unit
                currency.is_active = True
                currency.save(update_fields=['unit', 'is_active', 'updated_at'])
            ExchangeRate.objects.update_or_create(
                currency=currency, rate_date=today, source=ExchangeRate.SOURCE_BCT,
                defaults={'rate_to_base': (value / unit).quantize(Decimal('0.000001'))},
            )
            if code not in currencies:
                currencies.append(code)

    logger.info(f"Imported {len(currencies)} BCT rates for {today}")
    return {'imported': len(currencies), 'currencies': currencies}
