# Shared time pattern components

# Unit words in English, German, Spanish, French and Italian
SECOND_UNITS = (
    's', 'sec', 'secs', 'second', 'seconds',
    'sek', 'sekunde', 'sekunden',
    'segundo', 'segundos',
    'seconde', 'secondes',
    'secondo', 'secondi',
)

MINUTE_UNITS = (
    'm', 'min', 'mins', 'minute', 'minutes',
    'minuten',
    'minuto', 'minutos',
    'minuti',
)

HOUR_UNITS = (
    'h', 'hr', 'hrs', 'hour', 'hours',
    'std', 'stunde', 'stunden',
    'hora', 'horas',
    'heure', 'heures',
    'ora', 'ore',
)

TIME_COMPONENTS = {
    'hours': r'(\d{1,2})',                   # 0-23 / 1-12
    'minutes': r'(\d{2})',                   # 00-59
    'separator': r'[:.]',                    # 14:30 / 14.30
    'meridiem': r'([ap]\.?m\.?)',            # am / pm / a.m. / p.m.
    'spaces': r'\s*',                        # Optional spaces
    'number': r'(\d{1,4}(?:\.\d+)?)',        # 15 / 1.5
    'start': r'(?<!\S)',                     # start of text or after whitespace
    'end': r'(?!\w)',                        # not followed by a word character
}

def build_unit_pattern(*unit_sets):
    """Alternation of unit words, longest first so 'min' beats 'm'"""
    units = sorted({u for units in unit_sets for u in units}, key=len, reverse=True)
    return '(?:' + '|'.join(units) + ')'

def to_24_hour(hour, meridiem):
    """Convert a 12-hour clock value to 24-hour form"""
    period = meridiem.lower().replace('.', '')
    if period == 'pm' and hour != 12:
        hour += 12
    elif period == 'am' and hour == 12:
        hour = 0
    return hour
