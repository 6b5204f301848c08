"""Query Vocabulary: classification patterns, entity dictionaries, examples.

Everything here is data. The parser walks these tables in declaration
order, so the first matching entry wins.
"""

import re

_I = re.IGNORECASE

# Query type -> patterns; types are tried in this order
QUERY_PATTERNS = {
    "leads": [
        re.compile(r"(?:zeige?|show|list|find).+(?:leads?|interessent)", _I),
        re.compile(r"(?:wie viele|how many).+(?:leads?|kontakte)", _I),
        re.compile(r"(?:heiße?|hot|warm|kalt|cold).+(?:leads?)", _I),
        re.compile(r"(?:neue?|new|recent).+(?:leads?|kontakte)", _I),
    ],
    "bookings": [
        re.compile(r"(?:zeige?|show|list).+(?:buchung|booking|reservierung)", _I),
        re.compile(r"(?:wie viele|how many).+(?:buchung|booking)", _I),
        re.compile(r"(?:umsatz|revenue|einnahmen).+(?:buchung|booking)", _I),
        re.compile(r"(?:storniert|cancelled|refund)", _I),
    ],
    "revenue": [
        re.compile(r"(?:umsatz|revenue|einnahmen|sales)", _I),
        re.compile(r"(?:verdienst|profit|gewinn)", _I),
        re.compile(r"(?:wie viel|how much).+(?:geld|money|euro)", _I),
        re.compile(r"(?:monat|month|jahr|year).+(?:umsatz|revenue)", _I),
    ],
    "contacts": [
        re.compile(r"(?:zeige?|show|list).+(?:kontakt|contact|kunde|customer)", _I),
        re.compile(r"(?:wie viele|how many).+(?:kontakt|contact|kunde)", _I),
        re.compile(r"(?:aus|from).+(?:deutschland|germany|land|country)", _I),
        re.compile(r"(?:email|telefon|phone|adresse)", _I),
    ],
    "analytics": [
        re.compile(r"(?:statistik|statistics|analyse|analysis)", _I),
        re.compile(r"(?:dashboard|übersicht|overview)", _I),
        re.compile(r"(?:performance|leistung)", _I),
        re.compile(r"(?:vergleich|compare|trend)", _I),
    ],
}

# ── Entity dictionaries (plain substring containment) ──────────

COUNTRIES = {
    "deutschland": ["deutschland", "germany", "german", "de"],
    "schweiz": ["schweiz", "switzerland", "swiss", "ch"],
    "österreich": ["österreich", "austria", "austrian", "at"],
    "türkei": ["türkei", "turkey", "turkish", "tr"],
}

# Canonical country value stored in contacts.country
COUNTRY_VALUES = {
    "deutschland": "Germany",
    "schweiz": "Switzerland",
    "österreich": "Austria",
}

LEAD_STATUSES = {
    "hot": ["heiß", "heisse", "hot", "sehr interessiert"],
    "warm": ["warm", "interessiert", "interested"],
    "cold": ["kalt", "cold", "uninteressiert"],
}

BOOKING_STATUSES = {
    "cancelled": ["storniert", "cancelled", "abgesagt", "refund"],
    "confirmed": ["bestätigt", "confirmed", "gebucht"],
    "pending": ["pending", "wartend", "offen"],
}

BUDGET_PATTERN = re.compile(r"(\d+)(?:\s*(?:euro?|eur|€))?", _I)

# ── Timeframes, aggregations, intents ──────────────────────────

TIME_PATTERNS = {
    "today": re.compile(r"(?:heute|today|heut)", _I),
    "yesterday": re.compile(r"(?:gestern|yesterday)", _I),
    "last_week": re.compile(r"(?:letzte[rn]?\s+woche|last\s+week|vergangene\s+woche)", _I),
    "last_month": re.compile(r"(?:letzte[rn]?\s+monat|last\s+month|vergangene[rn]?\s+monat)", _I),
    "this_month": re.compile(r"(?:diese[rn]?\s+monat|this\s+month|aktuelle[rn]?\s+monat)", _I),
    "number_days": re.compile(r"(?:letzte[n]?\s+(\d+)\s+tag|last\s+(\d+)\s+days?)", _I),
}

# Checked top-down; first match wins
AGGREGATION_PATTERNS = [
    ("count", re.compile(r"(?:wie viele|how many|anzahl|count)", _I)),
    ("sum", re.compile(r"(?:summe|total|sum|gesamt)", _I)),
    ("avg", re.compile(r"(?:durchschnitt|average|avg|mittel)", _I)),
    ("max", re.compile(r"(?:maximum|max|höchste)", _I)),
    ("min", re.compile(r"(?:minimum|min|niedrigste)", _I)),
]

INTENT_PATTERNS = [
    ("count", re.compile(r"(?:wie viele|how many|count|anzahl)", _I)),
    ("compare", re.compile(r"(?:vergleich|compare|unterschied|vs)", _I)),
    ("analyze", re.compile(r"(?:analys|statistik|performance|trend)", _I)),
    ("list", re.compile(r"(?:zeig|show|list|display|anzeig)", _I)),
]

DEFAULT_INTENTS = {
    "leads": "list",
    "bookings": "list",
    "revenue": "sum",
    "contacts": "list",
    "analytics": "analyze",
}

# Suggestions shown when a query cannot be understood
EXAMPLE_QUERIES = {
    "de": [
        "Zeige mir alle heißen Leads aus Deutschland der letzten Woche",
        "Wie viele Buchungen haben wir diesen Monat?",
        "Welcher Umsatz wurde in den letzten 30 Tagen generiert?",
        "Liste alle Kontakte mit Budget über 3000 EUR",
        "Zeige mir stornierte Buchungen der letzten 7 Tage",
        "Welche Leads haben in den letzten 3 Tagen Emails geöffnet?",
        "Umsatz-Vergleich zwischen diesem und letztem Monat",
        "Alle Kunden aus der Schweiz mit Premium-Hotel Präferenz",
    ],
    "en": [
        "Show me all hot leads from Germany in the last week",
        "How many bookings do we have this month?",
        "What revenue was generated in the last 30 days?",
        "List all contacts with budget over 3000 EUR",
        "Show me cancelled bookings from the last 7 days",
        "Which leads opened emails in the last 3 days?",
        "Revenue comparison between this and last month",
        "All customers from Switzerland with premium hotel preference",
    ],
}
